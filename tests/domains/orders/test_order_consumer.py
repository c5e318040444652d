"""Tests for the Kafka order intake consumer."""

from contextlib import asynccontextmanager
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from chargeguard.consumers.order_consumer import OrderConsumer
from chargeguard.domains.orders.models import IntakeResult, OrderStatus
from chargeguard.shared.errors import OrderValidationError


def _consumer(session):
    @asynccontextmanager
    async def factory():
        yield session

    return OrderConsumer(bootstrap_servers="localhost:9092", session_factory=factory)


class TestOrderConsumer:
    @pytest.mark.asyncio
    async def test_order_received_enqueued(self, mock_db_session, sample_order_received_event):
        result = IntakeResult(
            merchant_id="merchant-1", platform="shopify", order_id="1001", status=OrderStatus.PENDING
        )
        with patch(
            "chargeguard.consumers.order_consumer.enqueue", new=AsyncMock(return_value=result)
        ) as mock_enqueue:
            await _consumer(mock_db_session).dispatch(sample_order_received_event)

        mock_enqueue.assert_awaited_once_with(mock_db_session, sample_order_received_event["payload"])

    @pytest.mark.asyncio
    async def test_invalid_payload_is_logged_not_raised(self, mock_db_session, sample_order_received_event):
        with patch(
            "chargeguard.consumers.order_consumer.enqueue",
            new=AsyncMock(side_effect=OrderValidationError("Invalid order payload: amount")),
        ):
            await _consumer(mock_db_session).dispatch(sample_order_received_event)

    @pytest.mark.asyncio
    async def test_unknown_event_type_ignored(self, mock_db_session):
        with patch("chargeguard.consumers.order_consumer.enqueue", new=AsyncMock()) as mock_enqueue:
            await _consumer(mock_db_session).dispatch({"event_type": "refund-issued", "payload": {}})
        mock_enqueue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_malformed_message_swallowed(self, mock_db_session):
        consumer = _consumer(mock_db_session)
        msg = SimpleNamespace(value=["not", "an", "envelope"], topic="t", offset=3)
        await consumer._process_message(msg)

    @pytest.mark.asyncio
    async def test_envelope_without_event_id_dropped(self, mock_db_session, sample_order_received_event):
        del sample_order_received_event["event_id"]
        with patch("chargeguard.consumers.order_consumer.enqueue", new=AsyncMock()) as mock_enqueue:
            await _consumer(mock_db_session).dispatch(sample_order_received_event)
        mock_enqueue.assert_not_awaited()
