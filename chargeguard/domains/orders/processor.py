"""Drains the intake queue through the risk fusion pipeline."""

from collections import Counter
from datetime import UTC, datetime

import structlog

from chargeguard.domains.fraud.alerts import build_high_risk_event, publish_high_risk_event
from chargeguard.domains.fraud.models import Decision, HighRiskEvent
from chargeguard.domains.fraud.pipeline import RiskFusionPipeline
from chargeguard.shared.errors import PipelineError

from .config import OrderQueueConfig, default_config
from .models import BatchResult, QueuedOrder
from .store import OrderQueueStore

logger = structlog.get_logger()


class OrderProcessor:
    """Claims PENDING orders and assesses each one in its own transaction.

    One order failing never stops the batch: it is marked FAILED with the
    exception type and message and stays there until explicitly requeued.
    """

    def __init__(
        self,
        store: OrderQueueStore | None = None,
        pipeline: RiskFusionPipeline | None = None,
        config: OrderQueueConfig | None = None,
        kafka_producer=None,
    ) -> None:
        self._config = config or default_config
        self._store = store or OrderQueueStore(config=self._config)
        self._pipeline = pipeline or RiskFusionPipeline()
        self._kafka_producer = kafka_producer

    async def process_batch(
        self,
        max_batch: int | None = None,
        now: datetime | None = None,
    ) -> BatchResult:
        now = now or datetime.now(UTC)
        limit = max_batch or self._config.batch_size
        result = BatchResult()

        result.released_stale = await self._store.release_stale(now)
        if result.released_stale:
            logger.warning("stale_claims_released", count=result.released_stale)

        claimed = await self._store.claim_batch(limit, now)
        result.claimed = len(claimed)
        if claimed:
            logger.info("orders_claimed", count=len(claimed))

        decisions: Counter[Decision] = Counter()
        for order in claimed:
            try:
                decision, event = await self._process_one(order, now)
            except Exception as exc:
                error = PipelineError(f"{type(exc).__name__}: {exc}")
                logger.exception(
                    "order_processing_failed",
                    merchant_id=order.merchant_id,
                    order_id=order.order_id,
                    attempts=order.attempts,
                )
                await self._store.mark_failed(order, error.message, now)
                result.failed += 1
                continue

            result.scanned += 1
            decisions[decision] += 1
            # Published after commit so consumers never see an uncommitted assessment.
            if event is not None:
                await publish_high_risk_event(event, self._kafka_producer)

        result.approved = decisions[Decision.APPROVE]
        result.held = decisions[Decision.HOLD]
        result.blocked = decisions[Decision.BLOCK]

        if claimed:
            logger.info("order_batch_completed", **result.model_dump())
        return result

    async def _process_one(
        self, order: QueuedOrder, now: datetime
    ) -> tuple[Decision, HighRiskEvent | None]:
        async with self._store.unit_of_work() as uow:
            settings = await uow.load_settings(order.merchant_id)
            assessment = await self._pipeline.assess(
                order,
                order.behavioral_signals,
                settings,
                uow.session,
                now=now,
                history_as_of=order.received_at,
            )
            await uow.mark_scanned(order, assessment, now)
            if assessment.decision == Decision.APPROVE:
                await uow.ensure_post_auth(order, assessment, now)
            await uow.commit()

        logger.info(
            "order_scanned",
            merchant_id=order.merchant_id,
            order_id=order.order_id,
            fused_score=assessment.fused_score,
            risk_level=assessment.risk_level.value,
            decision=assessment.decision.value,
        )
        event = build_high_risk_event(assessment, order.amount, order.customer_email, settings)
        return assessment.decision, event
