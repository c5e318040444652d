"""Monitoring sweep: ages post-auth orders and clears them past the dispute window."""

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

import structlog

from chargeguard.db.models import PostAuthOrder

from .config import MonitoringConfig, default_config
from .models import PostAuthStatus, SweepResult

logger = structlog.get_logger()


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def days_in_monitoring(created_at: datetime, now: datetime) -> int:
    """Whole days since ``created_at``, floored."""
    return (ensure_utc(now) - ensure_utc(created_at)) // timedelta(days=1)


def apply_sweep(
    orders: Iterable[PostAuthOrder],
    merchant_id: str,
    now: datetime,
    dispute_window_days: int,
) -> SweepResult:
    """Age the given orders in place.

    Orders owned by another merchant or already CLEARED are ignored, so the
    result only counts rows this sweep was allowed to touch.
    """
    result = SweepResult(merchant_id=merchant_id, ran_at=now)

    for order in orders:
        if order.merchant_id != merchant_id:
            logger.warning(
                "sweep_foreign_order_ignored",
                merchant_id=merchant_id,
                order_id=order.order_id,
                owner=order.merchant_id,
            )
            continue
        if order.status != PostAuthStatus.UNDER_MONITORING:
            continue

        result.scanned += 1
        order.last_checked_at = now

        if days_in_monitoring(order.created_at, now) >= dispute_window_days:
            order.status = PostAuthStatus.CLEARED.value
            order.cleared_at = now
            result.cleared_now += 1
        else:
            result.still_monitoring += 1

    return result


class MonitoringSweep:
    """Runs the aging rule over one merchant's UNDER_MONITORING orders."""

    def __init__(self, config: MonitoringConfig | None = None) -> None:
        self._config = config or default_config

    async def sweep(self, uow, merchant_id: str, now: datetime) -> SweepResult:
        orders = await uow.monitoring_orders(merchant_id)
        result = apply_sweep(orders, merchant_id, now, self._config.dispute_window_days)
        logger.info(
            "merchant_sweep_completed",
            merchant_id=merchant_id,
            scanned=result.scanned,
            still_monitoring=result.still_monitoring,
            cleared_now=result.cleared_now,
        )
        return result
