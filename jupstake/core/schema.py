"""Staking tracker schema: feed records, persisted state, derived actions.

Wire and persisted models are Pydantic v2 with camelCase aliases so they
round-trip the indexing API's JSON and the on-disk files unchanged.
Derived, never-persisted types (classified actions, analyses) are plain
dataclasses and enums.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

DATE_FORMAT = "%Y-%m-%d"


def utc_date(timestamp: float) -> str:
    """Calendar date (UTC, YYYY-MM-DD) of a unix timestamp in seconds."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime(DATE_FORMAT)


def _check_date(value: str) -> str:
    datetime.strptime(value, DATE_FORMAT)
    return value


# ── Enums ────────────────────────────────────────────────────────────


class ActionKind(str, Enum):
    INCREASE_LOCKED_AMOUNT = "increaseLockedAmount"
    WITHDRAW = "withdraw"
    WITHDRAW_PARTIAL_UNSTAKING = "withdrawPartialUnstaking"
    TOGGLE_MAX_LOCK = "toggleMaxLock"
    UNKNOWN = "unknown"

    @property
    def is_stake(self) -> bool:
        return self is ActionKind.INCREASE_LOCKED_AMOUNT

    @property
    def is_withdraw(self) -> bool:
        return self in (ActionKind.WITHDRAW, ActionKind.WITHDRAW_PARTIAL_UNSTAKING)


class Level(str, Enum):
    DIRECT = "direct"
    INNER = "inner"


class TxKind(str, Enum):
    CLAIM_AND_STAKE = "claim_and_stake"
    INNER_JUPITER = "inner_jupiter"
    DIRECT_JUPITER = "direct_jupiter"
    UNKNOWN = "unknown"


# ── Feed records ─────────────────────────────────────────────────────


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Instruction(_WireModel):
    program_id: str = Field(alias="programId")
    data: str = ""
    inner_instructions: list[Instruction] = Field(default_factory=list, alias="innerInstructions")

    @field_validator("inner_instructions", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return value or []


class AccountKey(_WireModel):
    pubkey: str


class TokenTransfer(_WireModel):
    mint: str = ""
    token_amount: float = Field(default=0.0, alias="tokenAmount")

    @field_validator("token_amount", mode="before")
    @classmethod
    def _missing_amount_is_zero(cls, value):
        return 0.0 if value is None else value


class Transaction(_WireModel):
    """One enhanced transaction as returned by the address-history endpoint."""

    signature: str
    timestamp: int
    fee_payer: str | None = Field(default=None, alias="feePayer")
    account_keys: list[AccountKey] = Field(default_factory=list, alias="accountKeys")
    instructions: list[Instruction] = Field(default_factory=list)
    token_transfers: list[TokenTransfer] = Field(default_factory=list, alias="tokenTransfers")

    @field_validator("account_keys", "instructions", "token_transfers", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return value or []

    @property
    def payer(self) -> str | None:
        """Attributable wallet: fee payer, else the first account key."""
        if self.fee_payer:
            return self.fee_payer
        if self.account_keys:
            return self.account_keys[0].pubkey
        return None

    @property
    def date(self) -> str:
        return utc_date(self.timestamp)


# ── Persisted state ──────────────────────────────────────────────────


class WalletSnapshot(_WireModel):
    as_of_date: str = Field(alias="asOfDate")
    wallets: dict[str, float] = Field(default_factory=dict)

    @field_validator("as_of_date")
    @classmethod
    def _valid_date(cls, value: str) -> str:
        return _check_date(value)


class SeriesEntry(_WireModel):
    date: str
    total_staked: float = Field(alias="totalStaked")
    active_wallets: int | None = Field(default=None, alias="activeWallets")

    @field_validator("date")
    @classmethod
    def _valid_date(cls, value: str) -> str:
        return _check_date(value)


class SeriesSummary(_WireModel):
    """Derived cache over the series head and tail."""

    total_records: int = Field(default=0, alias="totalRecords")
    latest_date: str | None = Field(default=None, alias="latestDate")
    latest_total_staked: float | None = Field(default=None, alias="latestTotalStaked")
    latest_active_wallets: int | None = Field(default=None, alias="latestActiveWallets")
    oldest_date: str | None = Field(default=None, alias="oldestDate")


class CumulativeSeries(_WireModel):
    summary: SeriesSummary = Field(default_factory=SeriesSummary)
    daily_data: list[SeriesEntry] = Field(default_factory=list, alias="dailyData")

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True)


# ── Derived ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ClassifiedAction:
    kind: ActionKind
    level: Level


@dataclass
class Analysis:
    kind: TxKind
    actions: list[ClassifiedAction] = field(default_factory=list)
    has_multiple_paths: bool = False
