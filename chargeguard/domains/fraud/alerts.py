"""High-risk egress events and Kafka publishing."""

from datetime import UTC, datetime

import structlog

from chargeguard.config import settings

from .models import DecisionSettings, HighRiskEvent, RiskAssessment, RiskLevel

logger = structlog.get_logger()


def build_high_risk_event(
    assessment: RiskAssessment,
    amount: float,
    customer_email: str | None,
    decision_settings: DecisionSettings,
) -> HighRiskEvent | None:
    """Event for HIGH/CRITICAL assessments when the merchant wants notifications."""
    if assessment.risk_level not in (RiskLevel.HIGH, RiskLevel.CRITICAL):
        return None
    if not decision_settings.notify_high_risk:
        logger.debug("high_risk_notification_disabled", merchant_id=assessment.merchant_id)
        return None

    return HighRiskEvent(
        assessment_id=assessment.assessment_id,
        merchant_id=assessment.merchant_id,
        order_id=assessment.order_id,
        order_amount=amount,
        fused_score=assessment.fused_score,
        customer_email=customer_email,
        risk_level=assessment.risk_level,
        decision=assessment.decision,
        detected_at=datetime.now(UTC),
    )


async def publish_high_risk_event(event: HighRiskEvent, producer, topic: str | None = None) -> None:
    """Publish to Kafka keyed by merchant. Failures are logged, never raised.

    Args:
        event: The egress payload.
        producer: An aiokafka AIOKafkaProducer instance, or None when Kafka is off.
        topic: Overrides the configured alerts topic.
    """
    if producer is None:
        logger.debug("kafka_producer_not_available", assessment_id=event.assessment_id)
        return

    topic = topic or settings.alerts_topic
    try:
        await producer.send_and_wait(
            topic,
            value=event.model_dump_json().encode("utf-8"),
            key=event.merchant_id.encode("utf-8"),
        )
        logger.info(
            "high_risk_event_published",
            assessment_id=event.assessment_id,
            merchant_id=event.merchant_id,
            topic=topic,
        )
    except Exception:
        logger.exception("high_risk_event_publish_failed", assessment_id=event.assessment_id, topic=topic)
