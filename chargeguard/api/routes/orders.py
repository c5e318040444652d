"""Order intake and queue endpoints."""

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from chargeguard.api.deps import get_merchant_id, get_order_processor
from chargeguard.db.database import get_session
from chargeguard.domains.orders.intake import enqueue, list_orders, requeue
from chargeguard.domains.orders.models import (
    BatchResult,
    IntakeResult,
    OrderIntakeRequest,
    OrderStatus,
    OrderView,
)
from chargeguard.domains.orders.processor import OrderProcessor

logger = structlog.get_logger()
router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


@router.post("", status_code=202, response_model=IntakeResult)
async def receive_order(
    order: OrderIntakeRequest,
    session: AsyncSession = Depends(get_session),  # noqa: B008
) -> IntakeResult:
    return await enqueue(session, order)


@router.get("", response_model=list[OrderView])
async def get_orders(
    status: OrderStatus | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    merchant_id: str = Depends(get_merchant_id),  # noqa: B008
    session: AsyncSession = Depends(get_session),  # noqa: B008
) -> list[OrderView]:
    rows = await list_orders(session, merchant_id, status=status, limit=limit, offset=offset)
    return [OrderView.model_validate(row) for row in rows]


@router.post("/{platform}/{order_id}/requeue", response_model=IntakeResult)
async def requeue_order(
    platform: str,
    order_id: str,
    merchant_id: str = Depends(get_merchant_id),  # noqa: B008
    session: AsyncSession = Depends(get_session),  # noqa: B008
) -> IntakeResult:
    return await requeue(session, merchant_id, platform, order_id)


@router.post("/process", response_model=BatchResult)
async def process_orders(
    max_batch: int | None = Query(default=None, ge=1, le=100),
    processor: OrderProcessor = Depends(get_order_processor),  # noqa: B008
) -> BatchResult:
    result = await processor.process_batch(max_batch=max_batch)
    logger.info("manual_batch_processed", claimed=result.claimed, failed=result.failed)
    return result
