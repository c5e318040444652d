"""Multi-tenant daily scheduler for post-auth monitoring sweeps.

The tick source fires every ``bucket_minutes``. A merchant is due when the
current local time falls in the same 15-minute bucket as their preferred
check time, and the persisted ``last_run_local_day_key`` makes the sweep
run at most once per merchant per local calendar day:

1. Evaluate every config against ``now`` (pure, no locks)
2. For each due merchant, lock its config row and re-check the day key
3. Sweep, write the new day key, commit both together
4. Count failures per merchant; never abort the tick
"""

from collections import Counter
from datetime import UTC, datetime, timedelta

import structlog

from chargeguard.db.models import MerchantMonitoringConfig
from chargeguard.shared.errors import SweepInProgressError

from .config import MonitoringConfig, default_config
from .models import DueCheck, SkipReason, SweepResult, TickResult
from .store import MonitoringStore
from .sweep import MonitoringSweep, ensure_utc

logger = structlog.get_logger()

MINUTES_PER_DAY = 1440


def utc_minutes_of_day(now: datetime) -> int:
    now = ensure_utc(now)
    return now.hour * 60 + now.minute


def local_minutes_of_day(now: datetime, timezone_offset_minutes: int) -> int:
    """Local minutes since midnight, where ``local = utc - offset``."""
    return (
        utc_minutes_of_day(now) - timezone_offset_minutes + MINUTES_PER_DAY
    ) % MINUTES_PER_DAY


def bucket(minutes: int, bucket_minutes: int = 15) -> int:
    return minutes // bucket_minutes


def local_day_key(now: datetime, timezone_offset_minutes: int) -> str:
    local = ensure_utc(now) - timedelta(minutes=timezone_offset_minutes)
    return local.strftime("%Y-%m-%d")


def evaluate_due(
    config_row: MerchantMonitoringConfig,
    now: datetime,
    config: MonitoringConfig | None = None,
) -> DueCheck:
    cfg = config or default_config
    preferred = config_row.preferred_check_minutes
    if preferred is None:
        preferred = cfg.default_check_minutes
    offset = config_row.timezone_offset_minutes or 0

    local_minutes = local_minutes_of_day(now, offset)
    day_key = local_day_key(now, offset)

    skip_reason = None
    if bucket(local_minutes, cfg.bucket_minutes) != bucket(preferred, cfg.bucket_minutes):
        skip_reason = SkipReason.NOT_IN_BUCKET
    elif config_row.last_run_local_day_key == day_key:
        skip_reason = SkipReason.ALREADY_RAN_TODAY

    return DueCheck(
        merchant_id=config_row.merchant_id,
        due=skip_reason is None,
        local_minutes=local_minutes,
        local_day_key=day_key,
        skip_reason=skip_reason,
    )


class MonitoringScheduler:
    """Decides which merchants are due and runs their sweeps."""

    def __init__(
        self,
        store: MonitoringStore | None = None,
        config: MonitoringConfig | None = None,
        sweep: MonitoringSweep | None = None,
    ) -> None:
        self._config = config or default_config
        self._store = store or MonitoringStore(config=self._config)
        self._sweep = sweep or MonitoringSweep(config=self._config)

    async def tick(self, now: datetime | None = None) -> TickResult:
        now = ensure_utc(now or datetime.now(UTC))
        result = TickResult(ticked_at=now)
        skipped: Counter[str] = Counter()

        for config_row in await self._store.list_configs():
            result.merchants_evaluated += 1
            check = evaluate_due(config_row, now, self._config)
            if not check.due:
                skipped[check.skip_reason.value] += 1
                continue

            try:
                outcome = await self._run_locked(check.merchant_id, now, manual=False)
            except Exception:
                result.merchants_failed += 1
                logger.exception("merchant_sweep_failed", merchant_id=check.merchant_id)
                continue

            if isinstance(outcome, SkipReason):
                skipped[outcome.value] += 1
                continue

            result.merchants_triggered += 1
            result.orders_scanned += outcome.scanned
            result.orders_cleared += outcome.cleared_now

        result.skipped = dict(skipped)
        logger.info(
            "monitoring_tick_completed",
            merchants_evaluated=result.merchants_evaluated,
            merchants_triggered=result.merchants_triggered,
            merchants_failed=result.merchants_failed,
            orders_scanned=result.orders_scanned,
            orders_cleared=result.orders_cleared,
            skipped=result.skipped,
        )
        return result

    async def run_now(self, merchant_id: str, now: datetime | None = None) -> SweepResult:
        """Manual "run check now": skips the bucket check, still writes the day key."""
        now = ensure_utc(now or datetime.now(UTC))
        outcome = await self._run_locked(merchant_id, now, manual=True)
        if isinstance(outcome, SkipReason):
            raise SweepInProgressError()
        return outcome

    async def _run_locked(
        self, merchant_id: str, now: datetime, manual: bool
    ) -> SweepResult | SkipReason:
        async with self._store.unit_of_work() as uow:
            row = await uow.lock_config(merchant_id, create_missing=manual)
            if row is None:
                logger.info("merchant_sweep_locked", merchant_id=merchant_id, manual=manual)
                await uow.rollback()
                return SkipReason.LOCKED_BY_CONCURRENT_RUN

            # Re-evaluate under the lock: a concurrent tick may have committed first.
            day_key = local_day_key(now, row.timezone_offset_minutes or 0)
            if not manual and row.last_run_local_day_key == day_key:
                await uow.rollback()
                return SkipReason.ALREADY_RAN_TODAY

            result = await self._sweep.sweep(uow, merchant_id, now)
            row.last_run_local_day_key = day_key
            row.updated_at = now
            await uow.commit()

        result.local_day_key = day_key
        logger.info(
            "merchant_sweep_committed",
            merchant_id=merchant_id,
            local_day_key=day_key,
            manual=manual,
        )
        return result
