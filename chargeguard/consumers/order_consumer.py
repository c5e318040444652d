"""Consumer for platform order webhooks relayed through Kafka."""

from typing import Any

import structlog
from pydantic import ValidationError

from chargeguard.domains.orders.intake import enqueue
from chargeguard.domains.orders.models import OrderReceivedEvent
from chargeguard.shared.errors import OrderValidationError

from .base import BaseConsumer

logger = structlog.get_logger()

ORDER_RECEIVED = "order-received"


class OrderConsumer(BaseConsumer):
    def __init__(
        self,
        bootstrap_servers: str,
        group_id: str = "chargeguard",
        topic: str = "chargeguard.orders.incoming",
        session_factory=None,
    ) -> None:
        super().__init__(
            topics=[topic],
            bootstrap_servers=bootstrap_servers,
            group_id=group_id,
        )
        if session_factory is None:
            from chargeguard.db.database import async_session_factory

            session_factory = async_session_factory
        self._session_factory = session_factory
        self.register_handler(ORDER_RECEIVED, self._handle_order_received)

    async def _handle_order_received(self, event: dict[str, Any]) -> None:
        try:
            envelope = OrderReceivedEvent.model_validate(event)
        except ValidationError:
            logger.warning("order_event_malformed", event_id=event.get("event_id"))
            return

        logger.info(
            "order_event_received",
            event_id=envelope.event_id,
            merchant_id=envelope.payload.get("merchant_id"),
            order_id=envelope.payload.get("order_id"),
        )

        try:
            async with self._session_factory() as session:
                result = await enqueue(session, envelope.payload)
        except OrderValidationError as exc:
            logger.warning(
                "order_event_rejected",
                event_id=envelope.event_id,
                reason=exc.message,
            )
            return

        logger.info(
            "order_event_enqueued",
            event_id=envelope.event_id,
            order_id=result.order_id,
            duplicate=result.duplicate,
        )
