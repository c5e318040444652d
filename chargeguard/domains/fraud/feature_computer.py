"""Local history features for Layer 1. Reads only the merchant's own orders."""

from datetime import datetime, timedelta

import structlog
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from chargeguard.db.models import IncomingOrder

from .config import FusionConfig, default_config
from .models import OrderFeatures, OrderSnapshot

logger = structlog.get_logger()


class OrderFeatureComputer:
    """Computes velocity and customer-history counts for one order."""

    def __init__(self, config: FusionConfig | None = None) -> None:
        self._config = config or default_config

    async def compute(
        self,
        session: AsyncSession,
        order: OrderSnapshot,
        as_of: datetime,
    ) -> OrderFeatures:
        """Count the order's history up to ``as_of``, normally its ``received_at``.

        Orders received later never count, so a requeued or backlogged order
        sees the same history it had when it arrived.
        """
        features = OrderFeatures()
        hour_ago = as_of - timedelta(hours=1)
        burst_start = as_of - timedelta(minutes=self._config.velocity.email_burst_window_minutes)

        # Every query is scoped to the merchant and excludes the order itself.
        base = and_(
            IncomingOrder.merchant_id == order.merchant_id,
            IncomingOrder.received_at <= as_of,
            ~and_(
                IncomingOrder.platform == order.platform,
                IncomingOrder.order_id == order.order_id,
            ),
        )

        if order.customer_email:
            email = func.lower(IncomingOrder.customer_email) == order.customer_email.strip().lower()
            features.email_orders_burst = await self._count(
                session, base, email, IncomingOrder.received_at >= burst_start
            )
            features.email_orders_1h = await self._count(
                session, base, email, IncomingOrder.received_at >= hour_ago
            )

            history = await session.execute(
                select(func.count(), func.avg(IncomingOrder.amount)).where(base, email)
            )
            prior_count, avg_amount = history.one()
            features.prior_orders = prior_count or 0
            features.avg_prior_amount = float(avg_amount or 0.0)

        if order.ip_address:
            features.ip_orders_1h = await self._count(
                session,
                base,
                IncomingOrder.ip_address == order.ip_address,
                IncomingOrder.received_at >= hour_ago,
            )

        if order.customer_phone:
            features.phone_orders_1h = await self._count(
                session,
                base,
                IncomingOrder.customer_phone == order.customer_phone,
                IncomingOrder.received_at >= hour_ago,
            )

        if order.device_fingerprint:
            features.device_orders_1h = await self._count(
                session,
                base,
                IncomingOrder.device_fingerprint == order.device_fingerprint,
                IncomingOrder.received_at >= hour_ago,
            )

        logger.debug(
            "order_features_computed",
            merchant_id=order.merchant_id,
            order_id=order.order_id,
            email_orders_1h=features.email_orders_1h,
            prior_orders=features.prior_orders,
        )
        return features

    @staticmethod
    async def _count(session: AsyncSession, *conditions) -> int:
        result = await session.execute(
            select(func.count()).select_from(IncomingOrder).where(*conditions)
        )
        return result.scalar_one()
