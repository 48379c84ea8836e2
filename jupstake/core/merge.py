"""Incremental merge: fold daily deltas into the cumulative series.

The persisted series is newest-first with one entry per date. Deltas are
always applied oldest-first on top of the series' latest total; a date
that ends up present twice keeps the entry with the larger total, which
is the more complete replay of that day.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Protocol

from jupstake.core.schema import CumulativeSeries, SeriesEntry, SeriesSummary

log = logging.getLogger("jupstake.merge")


class MergeError(Exception):
    """No usable baseline series to merge into."""


class DailyDelta(Protocol):
    date: str

    @property
    def net_change(self) -> float: ...

    @property
    def active_wallets(self) -> int: ...


def require_baseline(existing: CumulativeSeries | None) -> CumulativeSeries:
    """Return existing if it can anchor a merge, else raise MergeError."""
    if existing is None or not existing.daily_data:
        raise MergeError("No existing series to update; bootstrap one first")
    summary = existing.summary
    if summary.latest_date is None or summary.latest_total_staked is None:
        raise MergeError("Series summary is missing latestDate or latestTotalStaked")
    return existing


def dedupe_series(entries: Iterable[SeriesEntry]) -> list[SeriesEntry]:
    """One entry per date (largest totalStaked wins), newest first."""
    by_date: dict[str, SeriesEntry] = {}
    for entry in entries:
        current = by_date.get(entry.date)
        if current is None or entry.total_staked > current.total_staked:
            by_date[entry.date] = entry
    return sorted(by_date.values(), key=lambda e: e.date, reverse=True)


def summarize(entries: Sequence[SeriesEntry]) -> SeriesSummary:
    """Summary cache derived from the series head and tail."""
    if not entries:
        return SeriesSummary()
    head, tail = entries[0], entries[-1]
    return SeriesSummary(
        total_records=len(entries),
        latest_date=head.date,
        latest_total_staked=head.total_staked,
        latest_active_wallets=head.active_wallets,
        oldest_date=tail.date,
    )


def estimate_wallet_counts(latest_active: int, deltas: Sequence[DailyDelta]) -> dict[str, int]:
    """Rough active-wallet counts for runs without per-wallet state.

    Approximation only: large net JUP moves are read as roughly one
    wallet per 10M JUP, plus a tenth of the day's active wallets as new
    stakers, and the count never drops by more than 1% in a day.
    """
    count = latest_active
    results: dict[str, int] = {}
    for delta in sorted(deltas, key=lambda d: d.date):
        if delta.active_wallets > 0:
            net = delta.net_change
            estimated_change = round(net / 10_000_000) if abs(net) > 1_000_000 else 0
            new_wallets = round(delta.active_wallets * 0.1)
            change = max(estimated_change + new_wallets, -round(count * 0.01))
            count = max(0, count + change)
        results[delta.date] = count
    return results


def merge(
    existing: CumulativeSeries | None,
    deltas: Iterable[DailyDelta],
    active_wallets: int | Mapping[str, int] | None = None,
) -> CumulativeSeries:
    """Apply daily deltas to a series and return the updated series.

    active_wallets is the live wallet-store count (same for every new
    entry), a per-date mapping, or None to fall back to the estimate.
    Deltas dated on or before the series head are already part of its
    total and are skipped.
    """
    baseline = require_baseline(existing)
    head = baseline.summary.latest_date
    ordered = []
    for delta in sorted(deltas, key=lambda d: d.date):
        if delta.date <= head:
            log.warning("Skipping delta for %s: not newer than series head %s", delta.date, head)
            continue
        ordered.append(delta)

    if active_wallets is None:
        counts: Mapping[str, int] | None = estimate_wallet_counts(
            baseline.summary.latest_active_wallets or 0, ordered
        )
    elif isinstance(active_wallets, Mapping):
        counts = active_wallets
    else:
        counts = None

    running = baseline.summary.latest_total_staked
    entries = list(baseline.daily_data)
    for delta in ordered:
        running += delta.net_change
        wallets = counts.get(delta.date) if counts is not None else active_wallets
        entries.insert(0, SeriesEntry(date=delta.date, total_staked=running, active_wallets=wallets))

    merged = dedupe_series(entries)
    return CumulativeSeries(
        summary=summarize(merged),
        daily_data=merged,
    )
