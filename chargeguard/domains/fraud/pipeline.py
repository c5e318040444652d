"""Risk fusion pipeline: features -> Layer 1 -> optional Layer 2 -> fuse -> decide."""

import uuid
from datetime import UTC, datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from chargeguard.db.models import FusionDiscrepancy, RiskAssessmentRecord
from chargeguard.shared.errors import TransientProviderError

from .config import FusionConfig, default_config
from .feature_computer import OrderFeatureComputer
from .fusion import classify_risk_level, decide, fuse, needs_layer2
from .layer2 import ExternalValidator
from .models import (
    BehavioralSignals,
    DecisionSettings,
    Layer1Result,
    Layer2Result,
    OrderSnapshot,
    RiskAssessment,
)
from .providers import build_providers
from .rules_engine import Layer1Engine

logger = structlog.get_logger()


class RiskFusionPipeline:
    """Orchestrates the two-stage assessment of one order.

    The caller owns the transaction: rows added here (audit record,
    discrepancy, cache upserts) are committed or rolled back with it.
    """

    def __init__(
        self,
        config: FusionConfig | None = None,
        validator: ExternalValidator | None = None,
        feature_computer: OrderFeatureComputer | None = None,
        engine: Layer1Engine | None = None,
    ) -> None:
        self._config = config or default_config
        self._feature_computer = feature_computer or OrderFeatureComputer(self._config)
        self._engine = engine or Layer1Engine(config=self._config)
        if validator is None:
            from chargeguard.config import settings

            validator = ExternalValidator(
                build_providers(
                    ipqs_api_key=settings.ipqs_api_key,
                    twilio_account_sid=settings.twilio_account_sid,
                    twilio_auth_token=settings.twilio_auth_token,
                ),
                config=self._config,
            )
        self._validator = validator

    async def assess(
        self,
        order: OrderSnapshot,
        signals: BehavioralSignals | None,
        settings: DecisionSettings,
        session: AsyncSession,
        now: datetime | None = None,
        force_layer2: bool = False,
        persist: bool = True,
        history_as_of: datetime | None = None,
    ) -> RiskAssessment:
        now = now or datetime.now(UTC)

        # 1. Stage 1: local history up to the order's arrival + heuristic rules
        features = await self._feature_computer.compute(session, order, history_as_of or now)
        layer1 = self._engine.evaluate(order, features, signals)

        # 2. Stage 2 only when Layer 1 is ambiguous or the order is large
        stage2_triggered = force_layer2 or needs_layer2(layer1.score, order.amount, self._config)
        layer2: Layer2Result | None = None
        skipped_reason: str | None = None
        if stage2_triggered:
            try:
                layer2 = await self._validator.validate(session, order, now)
            except TransientProviderError as exc:
                skipped_reason = exc.message
                logger.warning(
                    "stage2_skipped",
                    merchant_id=order.merchant_id,
                    order_id=order.order_id,
                    provider=exc.provider,
                    reason=exc.message,
                )

        # 3. Fuse and decide
        fused, strategy = fuse(layer1, layer2, self._config)
        risk_level = classify_risk_level(fused)
        decision = decide(fused, settings)

        assessment = RiskAssessment(
            assessment_id=str(uuid.uuid4()),
            merchant_id=order.merchant_id,
            order_id=order.order_id,
            layer1_score=layer1.score,
            layer2_score=layer2.score if layer2 else None,
            fused_score=fused,
            risk_level=risk_level,
            decision=decision,
            layer1_confidence=layer1.confidence,
            layer2_confidence=layer2.confidence if layer2 else None,
            fusion_strategy=strategy,
            stage2_triggered=stage2_triggered,
            stage2_skipped_reason=skipped_reason,
            triggered_rules=layer1.triggered_rules,
            layer2_sources=layer2.sources if layer2 else [],
            assessed_at=now,
        )

        # 4. Record layer disagreement for threshold tuning
        if layer2 is not None:
            self._record_discrepancy(session, order, layer1, layer2, now, persist)

        if persist:
            session.add(
                RiskAssessmentRecord(
                    assessment_id=assessment.assessment_id,
                    merchant_id=order.merchant_id,
                    order_id=order.order_id,
                    layer1_score=assessment.layer1_score,
                    layer2_score=assessment.layer2_score,
                    fused_score=assessment.fused_score,
                    risk_level=risk_level.value,
                    decision=decision.value,
                    details=assessment.model_dump(mode="json"),
                    assessed_at=now,
                )
            )

        logger.info(
            "order_assessed",
            merchant_id=order.merchant_id,
            order_id=order.order_id,
            layer1_score=layer1.score,
            layer2_score=assessment.layer2_score,
            fused_score=fused,
            strategy=strategy.value,
            risk_level=risk_level.value,
            decision=decision.value,
        )
        return assessment

    def _record_discrepancy(
        self,
        session: AsyncSession,
        order: OrderSnapshot,
        layer1: Layer1Result,
        layer2: Layer2Result,
        now: datetime,
        persist: bool,
    ) -> None:
        discrepancy = abs(layer1.score - layer2.score)
        if discrepancy <= self._config.layer2.discrepancy_threshold:
            return

        providers = sorted({source.provider for source in layer2.sources})
        logger.warning(
            "fusion_discrepancy",
            merchant_id=order.merchant_id,
            order_id=order.order_id,
            layer1_score=layer1.score,
            layer2_score=layer2.score,
            discrepancy=round(discrepancy, 2),
            providers=providers,
        )
        if persist:
            session.add(
                FusionDiscrepancy(
                    merchant_id=order.merchant_id,
                    order_id=order.order_id,
                    layer1_score=layer1.score,
                    layer2_score=layer2.score,
                    discrepancy=round(discrepancy, 2),
                    providers=providers,
                    recorded_at=now,
                )
            )
