"""Incremental update pipeline.

Pages the staking program's transaction history backwards from now until
it passes the cutoff (the day after the series' latest date), folds each
transaction into the daily aggregator and wallet store, then merges the
new days into the persisted series.

Only fully completed UTC days are aggregated; today's transactions are
left for tomorrow's run.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Protocol

from pydantic import ValidationError

from jupstake.config import StakingConfig
from jupstake.core.aggregator import DailyAggregator
from jupstake.core.merge import merge, require_baseline
from jupstake.core.schema import DATE_FORMAT, Transaction
from jupstake.core.wallets import StateLoadError, WalletStateStore
from jupstake.state import (
    export_series_csv,
    load_series,
    load_wallet_snapshot,
    save_series,
    save_wallet_snapshot,
)
from jupstake.utils.rate_limiter import RateLimiter, get_rate_limiter

log = logging.getLogger("jupstake.pipeline")

PROVIDER = "helius"


class TransactionSource(Protocol):
    async def get_address_transactions(
        self, address: str, before: str | None = None, limit: int = 100
    ) -> list[dict[str, Any]]: ...


@dataclass
class PaginationResult:
    pages: int = 0
    transactions: int = 0
    accepted: int = 0
    malformed: int = 0
    oldest_date: str | None = None
    stop_reason: str = ""


@dataclass
class UpdateResult:
    status: str  # UP_TO_DATE | NO_CHANGES | UPDATED
    message: str
    latest_date: str | None = None
    latest_total_staked: float | None = None
    latest_active_wallets: int | None = None
    window_end: str | None = None
    days_added: list[dict[str, Any]] = field(default_factory=list)
    pagination: dict[str, Any] = field(default_factory=dict)
    ingest: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ── Clock ────────────────────────────────────────────────────────────


def last_completed_date(now: datetime | None = None) -> str:
    """Yesterday in UTC: the most recent fully completed day."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (now.astimezone(timezone.utc).date() - timedelta(days=1)).strftime(DATE_FORMAT)


def cutoff_for(latest_date: str) -> int:
    """Unix timestamp of midnight UTC on the day after latest_date."""
    day = datetime.strptime(latest_date, DATE_FORMAT).replace(tzinfo=timezone.utc)
    return int((day + timedelta(days=1)).timestamp())


# ── Pagination ───────────────────────────────────────────────────────


async def paginate(
    source: TransactionSource,
    address: str,
    handle: Callable[[Transaction], bool],
    *,
    cutoff_timestamp: float | None = None,
    page_size: int = 100,
    max_pages: int | None = None,
    page_delay: float = 0.1,
    idle_page_limit: int | None = None,
    rate_limiter: RateLimiter | None = None,
) -> PaginationResult:
    """Walk an address's history newest-first, feeding each record to handle.

    Stops on an empty page, once a page's oldest transaction is older
    than cutoff_timestamp, after max_pages pages, or after
    idle_page_limit pages in which handle never returned True.
    """
    limiter = rate_limiter or get_rate_limiter()
    result = PaginationResult()
    before: str | None = None

    while True:
        if max_pages is not None and result.pages >= max_pages:
            result.stop_reason = "max_pages"
            break

        await limiter.wait_if_needed(PROVIDER, page_delay)
        page = await source.get_address_transactions(address, before=before, limit=page_size)
        if not page:
            result.stop_reason = "empty_page"
            break

        result.pages += 1
        accepted_in_page = 0
        oldest_ts: int | None = None
        for record in page:
            result.transactions += 1
            try:
                transaction = Transaction.model_validate(record)
            except ValidationError as e:
                result.malformed += 1
                log.warning("Skipping malformed transaction record: %s", e.errors()[0].get("msg", e))
                continue
            if oldest_ts is None or transaction.timestamp < oldest_ts:
                oldest_ts = transaction.timestamp
            if handle(transaction):
                accepted_in_page += 1
        result.accepted += accepted_in_page

        # Only validated records decide the cutoff; a page of nothing but
        # malformed records keeps paging
        if oldest_ts is not None:
            result.oldest_date = datetime.fromtimestamp(oldest_ts, tz=timezone.utc).strftime(DATE_FORMAT)
        log.info(
            "Page %d: %d transactions, %d accepted, oldest %s",
            result.pages, len(page), accepted_in_page, result.oldest_date,
        )

        if cutoff_timestamp is not None and oldest_ts is not None and oldest_ts < cutoff_timestamp:
            result.stop_reason = "cutoff"
            break

        if idle_page_limit is not None and result.pages > idle_page_limit and result.accepted == 0:
            log.warning("Searched %d pages with no matches, stopping", result.pages)
            result.stop_reason = "idle"
            break

        last = page[-1]
        before = last.get("signature") if isinstance(last, dict) else None
        if not before:
            result.stop_reason = "no_cursor"
            break

    return result


async def collect(
    source: TransactionSource,
    address: str,
    aggregator: DailyAggregator,
    cutoff_timestamp: float,
    window_end_date: str,
    **kwargs: Any,
) -> PaginationResult:
    """Paginate back to the cutoff, ingesting every transaction into aggregator."""
    return await paginate(
        source,
        address,
        lambda tx: aggregator.ingest(tx, cutoff_timestamp, window_end_date),
        cutoff_timestamp=cutoff_timestamp,
        **kwargs,
    )


# ── Update run ───────────────────────────────────────────────────────


async def run_update(
    config: StakingConfig,
    source: TransactionSource,
    now: datetime | None = None,
    estimate_wallets: bool = False,
) -> UpdateResult:
    """Bring the persisted series up to date through yesterday (UTC).

    With estimate_wallets the wallet snapshot is not required and active
    wallet counts come from the estimate heuristic instead.
    """
    series = require_baseline(load_series(config.series_path))
    latest = series.summary.latest_date
    window_end = last_completed_date(now)

    if latest >= window_end:
        return UpdateResult(
            status="UP_TO_DATE",
            message=f"Series already covers the last completed day ({window_end})",
            latest_date=latest,
            latest_total_staked=series.summary.latest_total_staked,
            latest_active_wallets=series.summary.latest_active_wallets,
            window_end=window_end,
        )

    store: WalletStateStore | None = None
    if not estimate_wallets:
        snapshot = load_wallet_snapshot(config.wallet_snapshot_path)
        if snapshot.as_of_date != latest:
            raise StateLoadError(
                f"Wallet snapshot is as of {snapshot.as_of_date} but the series ends at {latest}"
            )
        store = WalletStateStore.load(
            snapshot, epsilon=config.wallet_epsilon, excluded=config.excluded_wallets
        )

    aggregator = DailyAggregator(
        wallet_store=store,
        staking_program=config.staking_program,
        distributor_program=config.distributor_program,
        mint=config.mint,
    )
    cutoff = cutoff_for(latest)
    log.info("Fetching staking transactions after %s through %s", latest, window_end)

    pagination = await collect(
        source,
        config.staking_program,
        aggregator,
        cutoff,
        window_end,
        page_size=config.page_size,
        max_pages=config.max_pages,
        page_delay=config.page_delay_seconds,
    )

    deltas = aggregator.daily_deltas()
    if not deltas:
        return UpdateResult(
            status="NO_CHANGES",
            message="No new staking activity found",
            latest_date=latest,
            latest_total_staked=series.summary.latest_total_staked,
            latest_active_wallets=series.summary.latest_active_wallets,
            window_end=window_end,
            pagination=asdict(pagination),
            ingest=asdict(aggregator.stats),
        )

    counts = aggregator.settle_wallets()
    updated = merge(series, deltas, counts)

    for delta in deltas:
        log.info(
            "%s: %+.2f JUP (%d txs, %d wallets)",
            delta.date, delta.net_change, delta.transaction_count, delta.active_wallets,
        )

    save_series(config.series_path, updated)
    export_series_csv(config.series_csv_path, updated)
    if store is not None:
        save_wallet_snapshot(config.wallet_snapshot_path, store.snapshot(updated.summary.latest_date))

    summary = updated.summary
    return UpdateResult(
        status="UPDATED",
        message=f"Added {len(deltas)} day(s) through {summary.latest_date}",
        latest_date=summary.latest_date,
        latest_total_staked=summary.latest_total_staked,
        latest_active_wallets=summary.latest_active_wallets,
        window_end=window_end,
        days_added=[d.to_dict() for d in deltas],
        pagination=asdict(pagination),
        ingest=asdict(aggregator.stats),
    )
