"""Post-auth monitoring endpoints: tick trigger, run-now, config, order listing."""

from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from chargeguard.api.deps import get_merchant_id, get_monitoring_scheduler
from chargeguard.db.database import get_session
from chargeguard.domains.monitoring.config import default_config
from chargeguard.domains.monitoring.models import (
    MonitoringConfigUpdate,
    MonitoringConfigView,
    PostAuthStatus,
    SweepResult,
    TickResult,
)
from chargeguard.domains.monitoring.scheduler import MonitoringScheduler
from chargeguard.domains.monitoring.store import (
    get_monitoring_config,
    list_post_auth_orders,
    upsert_monitoring_config,
)
from chargeguard.domains.monitoring.sweep import days_in_monitoring

logger = structlog.get_logger()
router = APIRouter(prefix="/api/v1/monitoring", tags=["monitoring"])


class TickRequest(BaseModel):
    now: datetime | None = None


@router.post("/tick", response_model=TickResult)
async def trigger_tick(
    body: TickRequest | None = None,
    scheduler: MonitoringScheduler = Depends(get_monitoring_scheduler),  # noqa: B008
) -> TickResult:
    """External cron entry point; ``now`` may be pinned for replays."""
    return await scheduler.tick(body.now if body else None)


@router.post("/run-now", response_model=SweepResult)
async def run_now(
    merchant_id: str = Depends(get_merchant_id),  # noqa: B008
    scheduler: MonitoringScheduler = Depends(get_monitoring_scheduler),  # noqa: B008
) -> SweepResult:
    logger.info("manual_sweep_requested", merchant_id=merchant_id)
    return await scheduler.run_now(merchant_id)


@router.get("/config", response_model=MonitoringConfigView)
async def get_config(
    merchant_id: str = Depends(get_merchant_id),  # noqa: B008
    session: AsyncSession = Depends(get_session),  # noqa: B008
) -> MonitoringConfigView:
    row = await get_monitoring_config(session, merchant_id)
    if row is None:
        return MonitoringConfigView(
            merchant_id=merchant_id,
            preferred_check_minutes=default_config.default_check_minutes,
            timezone_offset_minutes=0,
        )
    return MonitoringConfigView(
        merchant_id=row.merchant_id,
        preferred_check_minutes=row.preferred_check_minutes,
        timezone_offset_minutes=row.timezone_offset_minutes,
        last_run_local_day_key=row.last_run_local_day_key,
    )


@router.put("/config", response_model=MonitoringConfigView)
async def put_config(
    update: MonitoringConfigUpdate,
    merchant_id: str = Depends(get_merchant_id),  # noqa: B008
    session: AsyncSession = Depends(get_session),  # noqa: B008
) -> MonitoringConfigView:
    row = await upsert_monitoring_config(
        session,
        merchant_id,
        update.preferred_check_minutes,
        update.timezone_offset_minutes,
    )
    logger.info(
        "monitoring_config_updated",
        merchant_id=merchant_id,
        preferred_check_minutes=update.preferred_check_minutes,
        timezone_offset_minutes=update.timezone_offset_minutes,
    )
    return MonitoringConfigView(
        merchant_id=merchant_id,
        preferred_check_minutes=row.preferred_check_minutes,
        timezone_offset_minutes=row.timezone_offset_minutes,
        last_run_local_day_key=row.last_run_local_day_key,
    )


@router.get("/orders")
async def get_monitored_orders(
    status: PostAuthStatus | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    merchant_id: str = Depends(get_merchant_id),  # noqa: B008
    session: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict:
    rows = await list_post_auth_orders(
        session,
        merchant_id,
        status=status.value if status else None,
        limit=limit,
        offset=offset,
    )
    now = datetime.now(UTC)
    return {
        "items": [
            {
                "platform": row.platform,
                "order_id": row.order_id,
                "amount": row.amount,
                "customer_email": row.customer_email,
                "fused_score": row.fused_score,
                "status": row.status,
                "created_at": row.created_at.isoformat(),
                "last_checked_at": row.last_checked_at.isoformat() if row.last_checked_at else None,
                "cleared_at": row.cleared_at.isoformat() if row.cleared_at else None,
                "days_in_monitoring": days_in_monitoring(row.created_at, now),
            }
            for row in rows
        ],
        "limit": limit,
        "offset": offset,
    }
