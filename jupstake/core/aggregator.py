"""Daily aggregator: folds qualifying transactions into per-day sums.

Each accepted transaction credits its UTC calendar date and its payer
wallet. The feed arrives newest first, so per-wallet movement is buffered
and only handed to the wallet state store by settle_wallets(), oldest day
first. Ingestion is idempotent per signature within a run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from jupstake.config import CLAIM_STAKE_PROGRAM, JUP_MINT, JUPITER_STAKING_PROGRAM
from jupstake.core.analyzer import analyze, extract_amount
from jupstake.core.schema import Transaction, TxKind
from jupstake.core.wallets import WalletStateStore

log = logging.getLogger("jupstake.aggregator")


@dataclass
class WalletDay:
    staked: float = 0.0
    withdrawn: float = 0.0

    @property
    def net_change(self) -> float:
        return self.staked - self.withdrawn


@dataclass
class DailyAggregate:
    """Per-date totals. net_change is derived, so it always equals staked - withdrawn."""

    date: str
    staked: float = 0.0
    withdrawn: float = 0.0
    transaction_count: int = 0
    wallets: set[str] = field(default_factory=set)

    @property
    def net_change(self) -> float:
        return self.staked - self.withdrawn

    @property
    def active_wallets(self) -> int:
        return len(self.wallets)

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "staked": self.staked,
            "withdrawn": self.withdrawn,
            "netChange": self.net_change,
            "transactionCount": self.transaction_count,
            "uniqueWalletsActive": self.active_wallets,
        }


@dataclass
class IngestStats:
    seen: int = 0
    accepted: int = 0
    duplicates: int = 0
    out_of_window: int = 0
    unclassified: int = 0
    no_wallet: int = 0
    zero_amount: int = 0
    no_movement: int = 0
    multiple_paths: int = 0


class DailyAggregator:
    """Accumulates daily and per-wallet staking deltas for one run."""

    def __init__(
        self,
        wallet_store: WalletStateStore | None = None,
        staking_program: str = JUPITER_STAKING_PROGRAM,
        distributor_program: str = CLAIM_STAKE_PROGRAM,
        mint: str = JUP_MINT,
        first_transfer_only: bool = False,
    ):
        self.wallet_store = wallet_store
        self.staking_program = staking_program
        self.distributor_program = distributor_program
        self.mint = mint
        self.first_transfer_only = first_transfer_only
        self.daily_totals: dict[str, DailyAggregate] = {}
        self.wallet_activity: dict[str, dict[str, WalletDay]] = {}
        self.stats = IngestStats()
        self._seen: set[str] = set()
        self._settled: dict[str, int] | None = None

    def ingest(self, transaction: Transaction, cutoff_timestamp: float, window_end_date: str) -> bool:
        """Fold one transaction in. Returns True iff it moved any amount."""
        if transaction.signature in self._seen:
            self.stats.duplicates += 1
            return False
        self._seen.add(transaction.signature)
        self.stats.seen += 1

        date = transaction.date
        if transaction.timestamp < cutoff_timestamp or date > window_end_date:
            self.stats.out_of_window += 1
            return False

        analysis = analyze(transaction, self.staking_program, self.distributor_program)
        if analysis.kind == TxKind.UNKNOWN or not analysis.actions:
            self.stats.unclassified += 1
            return False
        if analysis.has_multiple_paths:
            self.stats.multiple_paths += 1
            log.debug("%s has multiple staking paths (%s)", transaction.signature, analysis.kind.value)

        wallet = transaction.payer
        if not wallet:
            self.stats.no_wallet += 1
            return False

        amount = extract_amount(transaction.token_transfers, self.mint, self.first_transfer_only)
        if amount == 0:
            self.stats.zero_amount += 1
            return False

        staked = 0.0
        withdrawn = 0.0
        for action in analysis.actions:
            if action.kind.is_stake:
                staked += amount
            elif action.kind.is_withdraw:
                withdrawn += amount

        if staked == 0 and withdrawn == 0:
            self.stats.no_movement += 1
            return False

        day = self.daily_totals.setdefault(date, DailyAggregate(date=date))
        day.staked += staked
        day.withdrawn += withdrawn
        day.transaction_count += 1
        day.wallets.add(wallet)

        wallet_day = self.wallet_activity.setdefault(date, {}).setdefault(wallet, WalletDay())
        wallet_day.staked += staked
        wallet_day.withdrawn += withdrawn

        self.stats.accepted += 1
        return True

    def settle_wallets(self) -> dict[str, int] | None:
        """Apply buffered wallet movement to the store, oldest day first.

        Returns the active-wallet count at the close of each day, or None
        without a wallet store. Only the first call touches the store.
        """
        if self.wallet_store is None:
            return None
        if self._settled is None:
            self._settled = self.wallet_store.apply_activity(self.wallet_activity)
        return dict(self._settled)

    def daily_deltas(self) -> list[DailyAggregate]:
        """Accumulated per-day aggregates, oldest first."""
        return [self.daily_totals[d] for d in sorted(self.daily_totals)]
