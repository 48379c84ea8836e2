"""Tests for pagination and the incremental update run.

The transaction source is an AsyncMock returning canned pages; persisted
state lives in tmp_path.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from jupstake.config import StakingConfig
from jupstake.core.aggregator import DailyAggregator
from jupstake.core.merge import MergeError
from jupstake.core.wallets import StateLoadError
from jupstake.pipeline import collect, cutoff_for, last_completed_date, paginate, run_update
from jupstake.utils.rate_limiter import RateLimiter
from tests.mocks.mock_helius import (
    SERIES,
    STAKING_PROGRAM,
    TOGGLE_DATA,
    WALLET_SNAPSHOT,
    direct_stake,
    direct_withdraw,
    ix,
    ts,
    tx,
)

NOW = datetime(2025, 7, 31, 10, 0, tzinfo=timezone.utc)


def _source(*pages):
    source = AsyncMock()
    source.get_address_transactions = AsyncMock(side_effect=list(pages))
    return source


@pytest.fixture
def config(tmp_path):
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    (data_dir / "jupiter_combined_staking.json").write_text(json.dumps(SERIES))
    (data_dir / "wallet_states.json").write_text(json.dumps(WALLET_SNAPSHOT))
    return StakingConfig(data_dir=data_dir, page_delay_seconds=0.0)


class TestClock:

    def test_last_completed_date_is_yesterday_utc(self):
        assert last_completed_date(NOW) == "2025-07-30"
        assert last_completed_date(datetime(2025, 8, 1, 0, 0, 1, tzinfo=timezone.utc)) == "2025-07-31"

    def test_naive_now_treated_as_utc(self):
        assert last_completed_date(datetime(2025, 7, 31, 23, 59)) == "2025-07-30"

    def test_cutoff_is_start_of_next_day(self):
        assert cutoff_for("2025-07-29") == ts("2025-07-30", hour=0)


class TestPaginate:

    @pytest.mark.asyncio
    async def test_stops_at_empty_page(self):
        source = _source([direct_stake("a", ts("2025-07-30"), 1)], [])
        seen = []
        result = await paginate(source, STAKING_PROGRAM, lambda t: seen.append(t.signature) or True,
                                page_delay=0, rate_limiter=RateLimiter())
        assert result.stop_reason == "empty_page"
        assert result.pages == 1
        assert seen == ["a"]

    @pytest.mark.asyncio
    async def test_cursor_is_last_signature(self):
        page1 = [direct_stake("new", ts("2025-07-30", 5), 1), direct_stake("old", ts("2025-07-30", 4), 1)]
        source = _source(page1, [])
        await paginate(source, STAKING_PROGRAM, lambda t: True, page_size=2, page_delay=0,
                       rate_limiter=RateLimiter())
        calls = source.get_address_transactions.await_args_list
        assert calls[0].kwargs == {"before": None, "limit": 2}
        assert calls[1].kwargs == {"before": "old", "limit": 2}

    @pytest.mark.asyncio
    async def test_stops_past_cutoff(self):
        page1 = [direct_stake("a", ts("2025-07-30"), 1), direct_stake("b", ts("2025-07-28"), 1)]
        source = _source(page1, [direct_stake("c", ts("2025-07-27"), 1)])
        result = await paginate(source, STAKING_PROGRAM, lambda t: True, cutoff_timestamp=ts("2025-07-30", 0),
                                page_delay=0, rate_limiter=RateLimiter())
        assert result.stop_reason == "cutoff"
        assert source.get_address_transactions.await_count == 1

    @pytest.mark.asyncio
    async def test_max_pages(self):
        pages = [[direct_stake(f"s{i}", ts("2025-07-30"), 1)] for i in range(5)]
        result = await paginate(_source(*pages), STAKING_PROGRAM, lambda t: True, max_pages=2,
                                page_delay=0, rate_limiter=RateLimiter())
        assert result.stop_reason == "max_pages"
        assert result.pages == 2

    @pytest.mark.asyncio
    async def test_idle_limit(self):
        pages = [[direct_stake(f"s{i}", ts("2025-07-30"), 1)] for i in range(5)]
        result = await paginate(_source(*pages), STAKING_PROGRAM, lambda t: False, idle_page_limit=2,
                                page_delay=0, rate_limiter=RateLimiter())
        assert result.stop_reason == "idle"
        assert result.pages == 3

    @pytest.mark.asyncio
    async def test_malformed_record_skipped(self):
        page = [{"signature": "broken"}, direct_stake("ok", ts("2025-07-30"), 1)]
        result = await paginate(_source(page, []), STAKING_PROGRAM, lambda t: True,
                                page_delay=0, rate_limiter=RateLimiter())
        assert result.malformed == 1
        assert result.accepted == 1

    @pytest.mark.asyncio
    async def test_malformed_last_record_does_not_trigger_cutoff(self):
        page1 = [direct_stake("a", ts("2025-07-31"), 1), {"signature": "broken-no-ts"}]
        page2 = [direct_stake("b", ts("2025-07-30"), 1), direct_stake("c", ts("2025-07-29"), 1)]
        source = _source(page1, page2)
        seen = []
        result = await paginate(source, STAKING_PROGRAM, lambda t: seen.append(t.signature) or True,
                                cutoff_timestamp=ts("2025-07-30", 0), page_delay=0, rate_limiter=RateLimiter())
        assert seen == ["a", "b", "c"]
        assert result.stop_reason == "cutoff"
        assert result.pages == 2
        assert source.get_address_transactions.await_args_list[1].kwargs["before"] == "broken-no-ts"

    @pytest.mark.asyncio
    async def test_non_dict_last_record_ends_paging(self):
        result = await paginate(_source([direct_stake("a", ts("2025-07-31"), 1), 42]), STAKING_PROGRAM,
                                lambda t: True, page_delay=0, rate_limiter=RateLimiter())
        assert result.malformed == 1
        assert result.stop_reason == "no_cursor"

    @pytest.mark.asyncio
    async def test_collect_feeds_aggregator(self):
        agg = DailyAggregator()
        page = [direct_stake("a", ts("2025-07-30"), 10), direct_withdraw("b", ts("2025-07-30"), 4)]
        result = await collect(_source(page, []), STAKING_PROGRAM, agg, ts("2025-07-30", 0), "2025-07-30",
                               page_delay=0, rate_limiter=RateLimiter())
        assert result.accepted == 2
        assert agg.daily_totals["2025-07-30"].net_change == 6


class TestRunUpdate:

    @pytest.mark.asyncio
    async def test_end_to_end(self, config):
        page = [
            direct_stake("today", ts("2025-07-31", 2), 999),
            direct_stake("s1", ts("2025-07-30"), 250),
            tx("toggle", ts("2025-07-30", 1), [ix(STAKING_PROGRAM, TOGGLE_DATA)]),
            direct_stake("old", ts("2025-07-29"), 1000),
        ]
        source = _source(page)

        result = await run_update(config, source, now=NOW)

        assert result.status == "UPDATED"
        assert result.pagination["stop_reason"] == "cutoff"
        series = json.loads(config.series_path.read_text())
        assert series["dailyData"][0] == {"date": "2025-07-30", "totalStaked": 750, "activeWallets": 1}
        assert series["summary"]["latestDate"] == "2025-07-30"
        assert series["summary"]["latestTotalStaked"] == 750
        assert series["summary"]["oldestDate"] == "2025-07-29"
        assert series["summary"]["totalRecords"] == 2

        wallets = json.loads(config.wallet_snapshot_path.read_text())
        assert wallets == {"asOfDate": "2025-07-30", "wallets": {"W1": 750}}
        assert config.series_csv_path.exists()
        assert result.days_added[0]["transactionCount"] == 1

    @pytest.mark.asyncio
    async def test_new_wallet_and_exit_counts(self, config):
        page = [
            direct_withdraw("exit", ts("2025-07-30", 3), 500, payer="W1"),
            direct_stake("join", ts("2025-07-30", 2), 20, payer="W2"),
            direct_stake("old", ts("2025-07-29"), 1),
        ]
        result = await run_update(config, _source(page), now=NOW)
        assert result.latest_total_staked == 20
        assert result.latest_active_wallets == 1
        wallets = json.loads(config.wallet_snapshot_path.read_text())
        assert wallets["wallets"] == {"W2": 20}

    @pytest.mark.asyncio
    async def test_stake_then_withdraw_in_window_leaves_no_wallet(self, config):
        page = [
            direct_withdraw("out", ts("2025-07-30", 5), 100, payer="W2"),
            direct_stake("in", ts("2025-07-30", 2), 100, payer="W2"),
            direct_stake("old", ts("2025-07-29"), 1),
        ]
        await run_update(config, _source(page), now=NOW)
        series = json.loads(config.series_path.read_text())
        snapshot = json.loads(config.wallet_snapshot_path.read_text())
        assert snapshot["wallets"] == {"W1": 500}
        assert len(snapshot["wallets"]) == series["summary"]["latestActiveWallets"]

    @pytest.mark.asyncio
    async def test_snapshot_matches_series_across_days(self, config):
        now = datetime(2025, 8, 1, 6, tzinfo=timezone.utc)
        page = [
            direct_withdraw("out", ts("2025-07-31", 5), 100, payer="W2"),
            direct_stake("in", ts("2025-07-30", 2), 100, payer="W2"),
            direct_stake("old", ts("2025-07-29"), 1),
        ]
        await run_update(config, _source(page), now=now)
        series = json.loads(config.series_path.read_text())
        snapshot = json.loads(config.wallet_snapshot_path.read_text())
        counts = {e["date"]: e["activeWallets"] for e in series["dailyData"]}
        assert counts["2025-07-30"] == 2
        assert counts["2025-07-31"] == 1
        assert snapshot == {"asOfDate": "2025-07-31", "wallets": {"W1": 500}}
        assert len(snapshot["wallets"]) == series["summary"]["latestActiveWallets"]

    @pytest.mark.asyncio
    async def test_up_to_date_does_not_fetch(self, config):
        source = _source()
        result = await run_update(config, source, now=datetime(2025, 7, 30, 8, tzinfo=timezone.utc))
        assert result.status == "UP_TO_DATE"
        source.get_address_transactions.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_activity_leaves_files_untouched(self, config):
        before = config.series_path.read_text()
        result = await run_update(config, _source([]), now=NOW)
        assert result.status == "NO_CHANGES"
        assert config.series_path.read_text() == before

    @pytest.mark.asyncio
    async def test_missing_snapshot_is_fatal_before_fetch(self, config):
        config.wallet_snapshot_path.unlink()
        source = _source()
        with pytest.raises(StateLoadError):
            await run_update(config, source, now=NOW)
        source.get_address_transactions.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_snapshot_date_mismatch_is_fatal(self, config):
        config.wallet_snapshot_path.write_text(json.dumps({"asOfDate": "2025-07-20", "wallets": {}}))
        with pytest.raises(StateLoadError, match="as of 2025-07-20"):
            await run_update(config, _source(), now=NOW)

    @pytest.mark.asyncio
    async def test_empty_series_is_fatal(self, config):
        config.series_path.write_text(json.dumps({"summary": {}, "dailyData": []}))
        with pytest.raises(MergeError):
            await run_update(config, _source(), now=NOW)

    @pytest.mark.asyncio
    async def test_estimate_mode_without_snapshot(self, config):
        config.wallet_snapshot_path.unlink()
        page = [direct_stake("s1", ts("2025-07-30"), 250), direct_stake("old", ts("2025-07-29"), 1)]
        result = await run_update(config, _source(page), now=NOW, estimate_wallets=True)
        assert result.status == "UPDATED"
        assert result.latest_total_staked == 750
        assert result.latest_active_wallets == 1  # 1 + round(1 * 0.1)
        assert not config.wallet_snapshot_path.exists()

    @pytest.mark.asyncio
    async def test_multi_day_backfill(self, config):
        now = datetime(2025, 8, 2, 6, tzinfo=timezone.utc)
        page1 = [
            direct_stake("d3", ts("2025-08-01"), 5, payer="W3"),
            direct_withdraw("d2", ts("2025-07-31"), 100, payer="W1"),
        ]
        page2 = [
            direct_stake("d1", ts("2025-07-30"), 10, payer="W2"),
            direct_stake("old", ts("2025-07-29"), 1),
        ]
        result = await run_update(config, _source(page1, page2), now=now)
        series = json.loads(config.series_path.read_text())
        rows = [(e["date"], e["totalStaked"], e["activeWallets"]) for e in series["dailyData"]]
        assert rows == [
            ("2025-08-01", 415, 3),
            ("2025-07-31", 410, 2),
            ("2025-07-30", 510, 2),
            ("2025-07-29", 500, 1),
        ]
        assert result.pagination["pages"] == 2
