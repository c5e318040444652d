"""Persistence for the order processor.

Claims use ``FOR UPDATE SKIP LOCKED`` so concurrent workers never pick the
same order. Each claimed order is then assessed in its own unit of work.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chargeguard.db.models import IncomingOrder, PostAuthOrder
from chargeguard.domains.fraud.merchant_settings import load_decision_settings
from chargeguard.domains.fraud.models import DecisionSettings, RiskAssessment
from chargeguard.domains.monitoring.models import PostAuthStatus

from .config import OrderQueueConfig, default_config
from .models import OrderStatus, QueuedOrder


class OrderUnitOfWork:
    """Session-scoped writes for one order's assessment."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def load_settings(self, merchant_id: str) -> DecisionSettings:
        return await load_decision_settings(self.session, merchant_id)

    async def mark_scanned(
        self, order: QueuedOrder, assessment: RiskAssessment, now: datetime
    ) -> None:
        await self.session.execute(
            update(IncomingOrder)
            .where(IncomingOrder.id == order.id)
            .values(
                status=OrderStatus.SCANNED.value,
                assessment=assessment.model_dump(mode="json"),
                failure_reason=None,
                processed_at=now,
            )
        )

    async def ensure_post_auth(
        self, order: QueuedOrder, assessment: RiskAssessment, now: datetime
    ) -> None:
        """Start monitoring; a repeat for the same order leaves the first row alone."""
        stmt = (
            insert(PostAuthOrder)
            .values(
                merchant_id=order.merchant_id,
                platform=order.platform,
                order_id=order.order_id,
                amount=order.amount,
                customer_email=order.customer_email,
                fused_score=assessment.fused_score,
                status=PostAuthStatus.UNDER_MONITORING.value,
                created_at=now,
            )
            .on_conflict_do_nothing(
                index_elements=[
                    PostAuthOrder.merchant_id,
                    PostAuthOrder.platform,
                    PostAuthOrder.order_id,
                ]
            )
        )
        await self.session.execute(stmt)

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()


class OrderQueueStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        config: OrderQueueConfig | None = None,
    ) -> None:
        if session_factory is None:
            from chargeguard.db.database import async_session_factory

            session_factory = async_session_factory
        self._session_factory = session_factory
        self._config = config or default_config

    async def release_stale(self, now: datetime) -> int:
        """Return PROCESSING orders whose claim expired to PENDING."""
        cutoff = now - timedelta(minutes=self._config.stale_claim_minutes)
        async with self._session_factory() as session:
            result = await session.execute(
                update(IncomingOrder)
                .where(
                    IncomingOrder.status == OrderStatus.PROCESSING.value,
                    IncomingOrder.claimed_at < cutoff,
                )
                .values(status=OrderStatus.PENDING.value, claimed_at=None)
            )
            await session.commit()
            return result.rowcount or 0

    async def claim_batch(self, limit: int, now: datetime) -> list[QueuedOrder]:
        """Claim up to ``limit`` PENDING orders, oldest first."""
        async with self._session_factory() as session:
            stmt = (
                select(IncomingOrder)
                .where(IncomingOrder.status == OrderStatus.PENDING.value)
                .order_by(IncomingOrder.received_at, IncomingOrder.id)
                .limit(limit)
                .with_for_update(skip_locked=True)
            )
            rows = list((await session.execute(stmt)).scalars().all())
            for row in rows:
                row.status = OrderStatus.PROCESSING.value
                row.attempts = (row.attempts or 0) + 1
                row.claimed_at = now
            claimed = [QueuedOrder.model_validate(row, from_attributes=True) for row in rows]
            await session.commit()
            return claimed

    async def mark_failed(self, order: QueuedOrder, reason: str, now: datetime) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(IncomingOrder)
                .where(IncomingOrder.id == order.id)
                .values(
                    status=OrderStatus.FAILED.value,
                    failure_reason=reason[: self._config.failure_reason_max_length],
                    processed_at=now,
                )
            )
            await session.commit()

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[OrderUnitOfWork]:
        async with self._session_factory() as session:
            uow = OrderUnitOfWork(session)
            try:
                yield uow
            except Exception:
                await session.rollback()
                raise
