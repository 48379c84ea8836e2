"""Wallet state store: current staked balance per wallet.

The number of wallets in the store is the active-wallet count. A wallet
whose balance decays to within epsilon of zero is removed, never kept
at zero.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from jupstake.config import WALLET_EPSILON
from jupstake.core.schema import WalletSnapshot


class StateLoadError(Exception):
    """Persisted state is missing or structurally invalid."""


class WalletStateStore:
    """Mutable wallet → balance map loaded from a dated snapshot."""

    def __init__(
        self,
        balances: Mapping[str, float] | None = None,
        as_of_date: str = "",
        epsilon: float = WALLET_EPSILON,
        excluded: list[str] | None = None,
    ):
        self.as_of_date = as_of_date
        self.epsilon = epsilon
        self.excluded = set(excluded or [])
        self._balances: dict[str, float] = {
            wallet: float(balance)
            for wallet, balance in (balances or {}).items()
            if float(balance) > epsilon
        }

    @classmethod
    def load(
        cls,
        snapshot: WalletSnapshot | Mapping[str, Any] | None,
        epsilon: float = WALLET_EPSILON,
        excluded: list[str] | None = None,
    ) -> WalletStateStore:
        """Build a store from a snapshot. Raises StateLoadError if unusable."""
        if snapshot is None:
            raise StateLoadError("Wallet snapshot is missing")
        if not isinstance(snapshot, WalletSnapshot):
            if not isinstance(snapshot, Mapping):
                raise StateLoadError(f"Wallet snapshot must be an object, got {type(snapshot).__name__}")
            try:
                snapshot = WalletSnapshot.model_validate(snapshot)
            except ValidationError as e:
                raise StateLoadError(f"Malformed wallet snapshot: {e}") from e
        return cls(
            balances=snapshot.wallets,
            as_of_date=snapshot.as_of_date,
            epsilon=epsilon,
            excluded=excluded,
        )

    def apply(self, wallet: str, delta: float) -> None:
        """Add a signed delta; drop the wallet once it is effectively empty."""
        balance = self._balances.get(wallet, 0.0) + delta
        if balance <= self.epsilon:
            self._balances.pop(wallet, None)
        else:
            self._balances[wallet] = balance

    def active_count(self) -> int:
        return len(self._balances)

    def balance(self, wallet: str) -> float:
        return self._balances.get(wallet, 0.0)

    @property
    def balances(self) -> dict[str, float]:
        return dict(self._balances)

    def snapshot(self, as_of_date: str) -> WalletSnapshot:
        """Persistable form tagged with as_of_date, minus excluded wallets."""
        wallets = {w: b for w, b in self._balances.items() if w not in self.excluded}
        return WalletSnapshot(as_of_date=as_of_date, wallets=wallets)

    def apply_activity(self, activity: Mapping[str, Mapping[str, Any]]) -> dict[str, int]:
        """Apply per-day wallet deltas oldest date first; count wallets after each date.

        activity maps date → wallet → object with a net_change attribute.
        Within a date only the wallet's net movement is applied, so a stake
        and withdrawal on the same day cancel before the epsilon check.
        """
        counts: dict[str, int] = {}
        for date in sorted(activity):
            for wallet, day in activity[date].items():
                self.apply(wallet, day.net_change)
            counts[date] = self.active_count()
        return counts
