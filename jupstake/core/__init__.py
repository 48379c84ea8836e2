"""Staking aggregation core: classify, aggregate, merge.

Schema:     jupstake/core/schema.py     (feed records, persisted state)
Classify:   jupstake/core/classifier.py + analyzer.py
Aggregate:  jupstake/core/aggregator.py + wallets.py
Merge:      jupstake/core/merge.py
"""

from jupstake.core.schema import (
    AccountKey,
    ActionKind,
    Analysis,
    ClassifiedAction,
    CumulativeSeries,
    Instruction,
    Level,
    SeriesEntry,
    SeriesSummary,
    TokenTransfer,
    Transaction,
    TxKind,
    WalletSnapshot,
    utc_date,
)
from jupstake.core.classifier import INSTRUCTION_PATTERNS, classify, lookup_payload
from jupstake.core.analyzer import analyze, extract_amount
from jupstake.core.wallets import StateLoadError, WalletStateStore
from jupstake.core.aggregator import DailyAggregate, DailyAggregator, IngestStats, WalletDay
from jupstake.core.merge import (
    MergeError,
    dedupe_series,
    estimate_wallet_counts,
    merge,
    require_baseline,
    summarize,
)

__all__ = [
    # Schema
    "AccountKey",
    "ActionKind",
    "Analysis",
    "ClassifiedAction",
    "CumulativeSeries",
    "Instruction",
    "Level",
    "SeriesEntry",
    "SeriesSummary",
    "TokenTransfer",
    "Transaction",
    "TxKind",
    "WalletSnapshot",
    "utc_date",
    # Classification
    "INSTRUCTION_PATTERNS",
    "classify",
    "lookup_payload",
    "analyze",
    "extract_amount",
    # Aggregation
    "StateLoadError",
    "WalletStateStore",
    "DailyAggregate",
    "DailyAggregator",
    "IngestStats",
    "WalletDay",
    # Merge
    "MergeError",
    "dedupe_series",
    "estimate_wallet_counts",
    "merge",
    "require_baseline",
    "summarize",
]
