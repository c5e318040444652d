"""Tests for the multi-tenant monitoring scheduler."""

from datetime import UTC, datetime, timedelta

import pytest

from chargeguard.domains.monitoring.config import MonitoringConfig
from chargeguard.domains.monitoring.models import SkipReason
from chargeguard.domains.monitoring.scheduler import (
    MonitoringScheduler,
    bucket,
    evaluate_due,
    local_day_key,
    local_minutes_of_day,
)
from chargeguard.shared.errors import SweepInProgressError
from tests.conftest import FakeMonitoringStore, make_config_row, make_post_auth_order

CONFIG = MonitoringConfig()


def _utc(hour: int, minute: int, day: int = 15) -> datetime:
    return datetime(2026, 1, day, hour, minute, tzinfo=UTC)


class TestLocalTime:
    def test_utc_plus_ten_lands_in_preferred_bucket(self):
        now = _utc(16, 5)
        assert local_minutes_of_day(now, -600) == 125
        assert bucket(125) == bucket(120) == 8

    def test_offset_wraps_past_midnight(self):
        # 14:05 UTC is 00:05 the next day at UTC+10.
        assert local_minutes_of_day(_utc(14, 5), -600) == 5

    def test_positive_offset_is_west_of_utc(self):
        # UTC-5 reports +300.
        assert local_minutes_of_day(_utc(7, 10), 300) == 130

    def test_day_key_uses_local_calendar(self):
        assert local_day_key(_utc(16, 5), -600) == "2026-01-16"
        assert local_day_key(_utc(3, 0), 300) == "2026-01-14"
        assert local_day_key(_utc(12, 0), 0) == "2026-01-15"

    def test_naive_datetimes_are_treated_as_utc(self):
        naive = datetime(2026, 1, 15, 16, 5)
        assert local_minutes_of_day(naive, -600) == 125


class TestEvaluateDue:
    def test_due_in_bucket(self):
        row = make_config_row("m1", preferred_check_minutes=120, timezone_offset_minutes=-600)
        check = evaluate_due(row, _utc(16, 5), CONFIG)
        assert check.due
        assert check.local_minutes == 125
        assert check.local_day_key == "2026-01-16"
        assert check.skip_reason is None

    def test_last_minute_of_bucket_still_due(self):
        row = make_config_row("m1", preferred_check_minutes=120)
        assert evaluate_due(row, _utc(2, 14), CONFIG).due

    def test_next_bucket_not_due(self):
        row = make_config_row("m1", preferred_check_minutes=120)
        check = evaluate_due(row, _utc(2, 15), CONFIG)
        assert not check.due
        assert check.skip_reason == SkipReason.NOT_IN_BUCKET

    def test_already_ran_today(self):
        row = make_config_row("m1", last_run_local_day_key="2026-01-15")
        check = evaluate_due(row, _utc(2, 5), CONFIG)
        assert not check.due
        assert check.skip_reason == SkipReason.ALREADY_RAN_TODAY

    def test_yesterdays_marker_does_not_block(self):
        row = make_config_row("m1", last_run_local_day_key="2026-01-14")
        assert evaluate_due(row, _utc(2, 5), CONFIG).due


class TestTick:
    @pytest.mark.asyncio
    async def test_duplicate_ticks_sweep_once(self):
        created = _utc(2, 0) - timedelta(days=10)
        store = FakeMonitoringStore(
            configs=[make_config_row("m1")],
            orders=[make_post_auth_order("m1", "o1", created)],
        )
        scheduler = MonitoringScheduler(store=store, config=CONFIG)

        first = await scheduler.tick(_utc(2, 1))
        second = await scheduler.tick(_utc(2, 7))

        assert first.merchants_triggered == 1
        assert first.orders_scanned == 1
        assert second.merchants_triggered == 0
        assert second.skipped == {"already_ran_today": 1}
        assert store.configs["m1"].last_run_local_day_key == "2026-01-15"
        assert store.commits == 1

    @pytest.mark.asyncio
    async def test_runs_again_next_local_day(self):
        store = FakeMonitoringStore(configs=[make_config_row("m1")])
        scheduler = MonitoringScheduler(store=store, config=CONFIG)

        await scheduler.tick(_utc(2, 1))
        result = await scheduler.tick(_utc(2, 1, day=16))

        assert result.merchants_triggered == 1
        assert store.configs["m1"].last_run_local_day_key == "2026-01-16"

    @pytest.mark.asyncio
    async def test_out_of_bucket_merchants_skipped(self):
        store = FakeMonitoringStore(
            configs=[
                make_config_row("m1", preferred_check_minutes=120),
                make_config_row("m2", preferred_check_minutes=600),
            ]
        )
        result = await MonitoringScheduler(store=store, config=CONFIG).tick(_utc(2, 3))

        assert result.merchants_evaluated == 2
        assert result.merchants_triggered == 1
        assert result.skipped == {"not_in_bucket": 1}

    @pytest.mark.asyncio
    async def test_locked_row_skipped_as_concurrent_run(self):
        store = FakeMonitoringStore(configs=[make_config_row("m1")])
        store.locked.add("m1")

        result = await MonitoringScheduler(store=store, config=CONFIG).tick(_utc(2, 3))

        assert result.merchants_triggered == 0
        assert result.skipped == {"locked_by_concurrent_run": 1}
        assert store.configs["m1"].last_run_local_day_key is None

    @pytest.mark.asyncio
    async def test_marker_written_under_lock_is_rechecked(self):
        """A tick that read a stale config must not sweep after a peer committed."""
        stale_view = make_config_row("m1")
        committed = make_config_row("m1", last_run_local_day_key="2026-01-15")
        store = FakeMonitoringStore(configs=[committed])

        async def list_stale():
            return [stale_view]

        store.list_configs = list_stale
        result = await MonitoringScheduler(store=store, config=CONFIG).tick(_utc(2, 3))

        assert result.merchants_triggered == 0
        assert result.skipped == {"already_ran_today": 1}
        assert store.commits == 0

    @pytest.mark.asyncio
    async def test_failing_merchant_does_not_stop_others(self):
        store = FakeMonitoringStore(configs=[make_config_row("m1"), make_config_row("m2")])
        store.failing.add("m1")

        result = await MonitoringScheduler(store=store, config=CONFIG).tick(_utc(2, 3))

        assert result.merchants_failed == 1
        assert result.merchants_triggered == 1
        assert store.configs["m1"].last_run_local_day_key is None
        assert store.configs["m2"].last_run_local_day_key == "2026-01-15"
        assert store.rollbacks == 1

    @pytest.mark.asyncio
    async def test_tick_totals_cleared_orders(self):
        now = _utc(2, 3)
        store = FakeMonitoringStore(
            configs=[make_config_row("m1")],
            orders=[
                make_post_auth_order("m1", "old", now - timedelta(days=130)),
                make_post_auth_order("m1", "new", now - timedelta(days=5)),
            ],
        )
        result = await MonitoringScheduler(store=store, config=CONFIG).tick(now)

        assert result.orders_scanned == 2
        assert result.orders_cleared == 1


class TestRunNow:
    @pytest.mark.asyncio
    async def test_run_now_ignores_bucket_and_blocks_same_day_tick(self):
        store = FakeMonitoringStore(configs=[make_config_row("m1", preferred_check_minutes=600)])
        scheduler = MonitoringScheduler(store=store, config=CONFIG)

        manual = await scheduler.run_now("m1", _utc(2, 3))
        assert manual.local_day_key == "2026-01-15"

        # 10:00 local is m1's bucket, but the day already has a completed run.
        later = await scheduler.tick(_utc(10, 2))
        assert later.merchants_triggered == 0
        assert later.skipped == {"already_ran_today": 1}

    @pytest.mark.asyncio
    async def test_run_now_runs_even_if_already_ran_today(self):
        store = FakeMonitoringStore(
            configs=[make_config_row("m1", last_run_local_day_key="2026-01-15")]
        )
        result = await MonitoringScheduler(store=store, config=CONFIG).run_now("m1", _utc(9, 0))
        assert result.merchant_id == "m1"
        assert store.commits == 1

    @pytest.mark.asyncio
    async def test_run_now_creates_missing_config(self):
        store = FakeMonitoringStore()
        await MonitoringScheduler(store=store, config=CONFIG).run_now("m-new", _utc(9, 0))

        row = store.configs["m-new"]
        assert row.preferred_check_minutes == 120
        assert row.last_run_local_day_key == "2026-01-15"

    @pytest.mark.asyncio
    async def test_run_now_conflicts_with_concurrent_run(self):
        store = FakeMonitoringStore(configs=[make_config_row("m1")])
        store.locked.add("m1")

        with pytest.raises(SweepInProgressError):
            await MonitoringScheduler(store=store, config=CONFIG).run_now("m1", _utc(9, 0))
