"""Persistence for the monitoring scheduler.

Each merchant is processed in its own unit of work: the config row is locked
with ``FOR UPDATE SKIP LOCKED`` so two ticks can never sweep the same
merchant at once, and the sweep's effects commit together with the new
day-key marker.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chargeguard.db.models import MerchantMonitoringConfig, PostAuthOrder

from .config import MonitoringConfig, default_config
from .models import PostAuthStatus

logger = structlog.get_logger()


class MerchantUnitOfWork:
    """Session-scoped operations for a single merchant's sweep."""

    def __init__(self, session: AsyncSession, config: MonitoringConfig) -> None:
        self._session = session
        self._config = config

    async def lock_config(
        self, merchant_id: str, create_missing: bool = False
    ) -> MerchantMonitoringConfig | None:
        """Lock and return the merchant's config row.

        Returns None when another transaction holds the lock, or when the
        row does not exist and ``create_missing`` is False.
        """
        stmt = (
            select(MerchantMonitoringConfig)
            .where(MerchantMonitoringConfig.merchant_id == merchant_id)
            .with_for_update(skip_locked=True)
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is not None or not create_missing:
            return row

        exists = await self._session.execute(
            select(func.count()).where(MerchantMonitoringConfig.merchant_id == merchant_id)
        )
        if exists.scalar_one() > 0:
            return None

        row = MerchantMonitoringConfig(
            merchant_id=merchant_id,
            preferred_check_minutes=self._config.default_check_minutes,
            timezone_offset_minutes=0,
            updated_at=datetime.now(UTC),
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
                await self._session.flush()
        except IntegrityError:
            # A concurrent run_now created the row first and now holds it.
            logger.info("monitoring_config_create_raced", merchant_id=merchant_id)
            return None
        return row

    async def monitoring_orders(self, merchant_id: str) -> list[PostAuthOrder]:
        stmt = select(PostAuthOrder).where(
            PostAuthOrder.merchant_id == merchant_id,
            PostAuthOrder.status == PostAuthStatus.UNDER_MONITORING.value,
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()


class MonitoringStore:
    """Entry point the scheduler uses to read configs and open units of work."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        config: MonitoringConfig | None = None,
    ) -> None:
        if session_factory is None:
            from chargeguard.db.database import async_session_factory

            session_factory = async_session_factory
        self._session_factory = session_factory
        self._config = config or default_config

    async def list_configs(self) -> list[MerchantMonitoringConfig]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(MerchantMonitoringConfig).order_by(MerchantMonitoringConfig.merchant_id)
            )
            return list(result.scalars().all())

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[MerchantUnitOfWork]:
        async with self._session_factory() as session:
            uow = MerchantUnitOfWork(session, self._config)
            try:
                yield uow
            except Exception:
                await session.rollback()
                raise


async def get_monitoring_config(
    session: AsyncSession, merchant_id: str
) -> MerchantMonitoringConfig | None:
    result = await session.execute(
        select(MerchantMonitoringConfig).where(
            MerchantMonitoringConfig.merchant_id == merchant_id
        )
    )
    return result.scalar_one_or_none()


async def upsert_monitoring_config(
    session: AsyncSession,
    merchant_id: str,
    preferred_check_minutes: int,
    timezone_offset_minutes: int,
) -> MerchantMonitoringConfig:
    """Written by the merchant settings surface; leaves the day-key marker alone."""
    row = await get_monitoring_config(session, merchant_id)
    if row is None:
        row = MerchantMonitoringConfig(merchant_id=merchant_id)
        session.add(row)
    row.preferred_check_minutes = preferred_check_minutes
    row.timezone_offset_minutes = timezone_offset_minutes
    row.updated_at = datetime.now(UTC)
    await session.commit()
    return row


async def list_post_auth_orders(
    session: AsyncSession,
    merchant_id: str,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[PostAuthOrder]:
    stmt = select(PostAuthOrder).where(PostAuthOrder.merchant_id == merchant_id)
    if status:
        stmt = stmt.where(PostAuthOrder.status == status)
    stmt = stmt.order_by(PostAuthOrder.created_at.desc()).offset(offset).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())
