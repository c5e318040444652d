"""Tests for queue claims and stale-claim recovery."""

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from chargeguard.domains.fraud.models import FusionStrategy, RiskAssessment
from chargeguard.domains.orders.config import OrderQueueConfig
from chargeguard.domains.orders.models import QueuedOrder
from chargeguard.domains.orders.store import OrderQueueStore, OrderUnitOfWork
from tests.conftest import mock_session_with_no_results

NOW = datetime(2026, 1, 15, 14, 0, tzinfo=UTC)


def _factory(session):
    @asynccontextmanager
    async def factory():
        yield session

    return factory


def _sql(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


def _pending_row(pk: int):
    return SimpleNamespace(
        id=pk,
        merchant_id="merchant-1",
        platform="shopify",
        order_id=f"o{pk}",
        customer_email=None,
        customer_phone=None,
        shipping_address=None,
        billing_address=None,
        device_fingerprint=None,
        amount=42.0,
        ip_address=None,
        behavioral_signals=None,
        status="pending",
        attempts=0,
        claimed_at=None,
        received_at=datetime(2026, 1, 15, 9, 30, tzinfo=UTC),
    )


class TestOrderQueueStore:
    @pytest.mark.asyncio
    async def test_claim_marks_processing(self):
        session = mock_session_with_no_results()
        rows = [_pending_row(1), _pending_row(2)]
        session.execute.return_value.scalars.return_value = MagicMock(all=MagicMock(return_value=rows))

        claimed = await OrderQueueStore(_factory(session)).claim_batch(10, NOW)

        assert [o.order_id for o in claimed] == ["o1", "o2"]
        assert all(isinstance(o, QueuedOrder) for o in claimed)
        assert claimed[0].attempts == 1
        assert claimed[0].received_at == datetime(2026, 1, 15, 9, 30, tzinfo=UTC)
        assert rows[0].status == "processing"
        assert rows[0].claimed_at == NOW
        assert "FOR UPDATE SKIP LOCKED" in _sql(session.execute.call_args.args[0])
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_release_stale_uses_cutoff(self):
        session = mock_session_with_no_results()
        session.execute.return_value.rowcount = 3
        store = OrderQueueStore(_factory(session), OrderQueueConfig(stale_claim_minutes=15))

        assert await store.release_stale(NOW) == 3

        stmt = session.execute.call_args.args[0]
        params = stmt.compile(dialect=postgresql.dialect()).params
        assert params["status"] == "pending"
        assert "claimed_at" in params

    @pytest.mark.asyncio
    async def test_failure_reason_truncated(self):
        session = mock_session_with_no_results()
        store = OrderQueueStore(_factory(session), OrderQueueConfig(failure_reason_max_length=20))
        order = QueuedOrder(id=7, merchant_id="m", platform="p", order_id="o", amount=1)

        await store.mark_failed(order, "RuntimeError: " + "x" * 100, NOW)

        params = session.execute.call_args.args[0].compile(dialect=postgresql.dialect()).params
        assert params["status"] == "failed"
        assert len(params["failure_reason"]) == 20


class TestOrderUnitOfWork:
    @pytest.mark.asyncio
    async def test_post_auth_insert_is_idempotent_per_platform(self):
        session = mock_session_with_no_results()
        assessment = RiskAssessment(
            assessment_id="a",
            merchant_id="m",
            order_id="o",
            layer1_score=5,
            fused_score=5,
            risk_level="low",
            decision="approve",
            layer1_confidence=1.0,
            fusion_strategy=FusionStrategy.LAYER1_ONLY,
            assessed_at=NOW,
        )

        uow = OrderUnitOfWork(session)
        for platform in ("shopify", "woocommerce"):
            order = QueuedOrder(id=7, merchant_id="m", platform=platform, order_id="1001", amount=10)
            await uow.ensure_post_auth(order, assessment, NOW)

        statements = [call.args[0] for call in session.execute.call_args_list]
        assert len(statements) == 2
        for stmt, platform in zip(statements, ("shopify", "woocommerce"), strict=True):
            compiled = stmt.compile(dialect=postgresql.dialect())
            assert "ON CONFLICT (merchant_id, platform, order_id) DO NOTHING" in str(compiled)
            assert compiled.params["platform"] == platform
            assert compiled.params["order_id"] == "1001"
