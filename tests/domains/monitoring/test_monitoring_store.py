"""Tests for merchant config locking in the monitoring store."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from chargeguard.db.models import MerchantMonitoringConfig
from chargeguard.domains.monitoring.config import MonitoringConfig
from chargeguard.domains.monitoring.scheduler import MonitoringScheduler
from chargeguard.domains.monitoring.store import MerchantUnitOfWork, MonitoringStore
from chargeguard.shared.errors import SweepInProgressError

CONFIG = MonitoringConfig()


def _scalar(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    result.scalar_one.return_value = value
    return result


def _session_without_config(flush_error: Exception | None = None):
    """A session where the config row is absent: the locked read and the count both miss."""
    session = MagicMock()
    session.execute = AsyncMock(side_effect=[_scalar(None), _scalar(0)])
    session.flush = AsyncMock(side_effect=flush_error)
    session.rollback = AsyncMock()
    session.commit = AsyncMock()

    savepoint = MagicMock()
    savepoint.__aenter__ = AsyncMock(return_value=savepoint)
    savepoint.__aexit__ = AsyncMock(return_value=False)
    session.begin_nested = MagicMock(return_value=savepoint)
    return session


def _integrity_error() -> IntegrityError:
    return IntegrityError("INSERT INTO merchant_monitoring_configs", {}, Exception("duplicate key"))


class TestLockConfig:
    @pytest.mark.asyncio
    async def test_missing_row_created_for_manual_run(self):
        session = _session_without_config()

        row = await MerchantUnitOfWork(session, CONFIG).lock_config("merchant-1", create_missing=True)

        assert isinstance(row, MerchantMonitoringConfig)
        assert row.preferred_check_minutes == CONFIG.default_check_minutes
        session.add.assert_called_once_with(row)
        session.begin_nested.assert_called_once()

    @pytest.mark.asyncio
    async def test_concurrent_create_reported_as_locked(self):
        session = _session_without_config(flush_error=_integrity_error())

        row = await MerchantUnitOfWork(session, CONFIG).lock_config("merchant-1", create_missing=True)

        assert row is None

    @pytest.mark.asyncio
    async def test_missing_row_not_created_for_tick(self):
        session = _session_without_config()

        row = await MerchantUnitOfWork(session, CONFIG).lock_config("merchant-1")

        assert row is None
        session.add.assert_not_called()


class TestRunNowCreateRace:
    @pytest.mark.asyncio
    async def test_losing_run_now_gets_conflict(self):
        session = _session_without_config(flush_error=_integrity_error())

        @asynccontextmanager
        async def factory():
            yield session

        scheduler = MonitoringScheduler(store=MonitoringStore(factory, CONFIG), config=CONFIG)

        with pytest.raises(SweepInProgressError):
            await scheduler.run_now("merchant-1")

        session.rollback.assert_awaited()
