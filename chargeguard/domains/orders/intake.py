"""Order intake: idempotent enqueue, explicit requeue and queue listing."""

import structlog
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from chargeguard.db.models import IncomingOrder
from chargeguard.shared.errors import OrderNotFoundError, OrderValidationError

from .models import IntakeResult, OrderIntakeRequest, OrderStatus

logger = structlog.get_logger()


def parse_intake_request(payload: dict) -> OrderIntakeRequest:
    try:
        return OrderIntakeRequest.model_validate(payload)
    except ValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
        raise OrderValidationError(f"Invalid order payload: {', '.join(fields)}") from exc


async def find_order(
    session: AsyncSession,
    merchant_id: str,
    platform: str,
    order_id: str,
) -> IncomingOrder | None:
    result = await session.execute(
        select(IncomingOrder).where(
            IncomingOrder.merchant_id == merchant_id,
            IncomingOrder.platform == platform,
            IncomingOrder.order_id == order_id,
        )
    )
    return result.scalar_one_or_none()


def _result(row: IncomingOrder, duplicate: bool) -> IntakeResult:
    return IntakeResult(
        merchant_id=row.merchant_id,
        platform=row.platform,
        order_id=row.order_id,
        status=OrderStatus(row.status),
        duplicate=duplicate,
    )


async def enqueue(session: AsyncSession, request: OrderIntakeRequest | dict) -> IntakeResult:
    """Insert the order as PENDING.

    Webhook retries deliver the same order more than once: a duplicate key
    returns the existing row with ``duplicate=True`` and writes nothing.
    """
    if isinstance(request, dict):
        request = parse_intake_request(request)

    existing = await find_order(session, request.merchant_id, request.platform, request.order_id)
    if existing is not None:
        logger.info(
            "order_duplicate",
            merchant_id=request.merchant_id,
            platform=request.platform,
            order_id=request.order_id,
            status=existing.status,
        )
        return _result(existing, duplicate=True)

    row = IncomingOrder(
        merchant_id=request.merchant_id,
        platform=request.platform,
        order_id=request.order_id,
        customer_email=request.customer_email,
        customer_phone=request.customer_phone,
        shipping_address=request.shipping_address,
        billing_address=request.billing_address,
        device_fingerprint=request.device_fingerprint,
        amount=request.amount,
        ip_address=request.ip_address,
        behavioral_signals=(
            request.behavioral_signals.model_dump() if request.behavioral_signals else None
        ),
        status=OrderStatus.PENDING.value,
        attempts=0,
    )
    session.add(row)
    try:
        await session.commit()
    except IntegrityError:
        # Lost an insert race to a concurrent delivery of the same order.
        await session.rollback()
        existing = await find_order(
            session, request.merchant_id, request.platform, request.order_id
        )
        if existing is None:
            raise
        return _result(existing, duplicate=True)

    logger.info(
        "order_enqueued",
        merchant_id=row.merchant_id,
        platform=row.platform,
        order_id=row.order_id,
        amount=row.amount,
    )
    return _result(row, duplicate=False)


async def requeue(
    session: AsyncSession,
    merchant_id: str,
    platform: str,
    order_id: str,
) -> IntakeResult:
    """FAILED -> PENDING. Any other state is returned unchanged."""
    row = await find_order(session, merchant_id, platform, order_id)
    if row is None:
        raise OrderNotFoundError(f"Order {platform}/{order_id} not found")

    if row.status != OrderStatus.FAILED.value:
        return _result(row, duplicate=False)

    row.status = OrderStatus.PENDING.value
    row.failure_reason = None
    row.claimed_at = None
    row.processed_at = None
    await session.commit()

    logger.info("order_requeued", merchant_id=merchant_id, platform=platform, order_id=order_id)
    return _result(row, duplicate=False)


async def list_orders(
    session: AsyncSession,
    merchant_id: str,
    status: OrderStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[IncomingOrder]:
    stmt = select(IncomingOrder).where(IncomingOrder.merchant_id == merchant_id)
    if status:
        stmt = stmt.where(IncomingOrder.status == status.value)
    stmt = stmt.order_by(IncomingOrder.received_at.desc()).offset(offset).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())
