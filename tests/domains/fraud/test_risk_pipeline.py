"""Tests for the two-stage risk fusion pipeline."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from chargeguard.db.models import FusionDiscrepancy, RiskAssessmentRecord
from chargeguard.domains.fraud.models import (
    Decision,
    DecisionSettings,
    FusionStrategy,
    Layer1Result,
    Layer2Result,
    Layer2Source,
    OrderFeatures,
    OrderSnapshot,
    RiskLevel,
    RuleResult,
)
from chargeguard.domains.fraud.layer2 import ExternalValidator
from chargeguard.domains.fraud.pipeline import RiskFusionPipeline
from chargeguard.domains.fraud.providers import build_providers
from chargeguard.domains.fraud.rules_engine import Layer1Engine
from chargeguard.shared.errors import TransientProviderError
from tests.conftest import mock_session_with_no_results

NOW = datetime(2026, 1, 15, 14, 0, tzinfo=UTC)


def _order(amount: float = 500.0) -> OrderSnapshot:
    return OrderSnapshot(
        merchant_id="merchant-1",
        platform="shopify",
        order_id="1001",
        customer_email="buyer@example.com",
        customer_phone="+14155550142",
        amount=amount,
        ip_address="203.0.113.7",
    )


def _pipeline(layer1_score: float, validator=None) -> RiskFusionPipeline:
    feature_computer = MagicMock()
    feature_computer.compute = AsyncMock(return_value=OrderFeatures())
    engine = MagicMock()
    engine.evaluate.return_value = Layer1Result(
        score=layer1_score,
        confidence=0.6,
        rule_results=[
            RuleResult(rule_name="order_value", triggered=layer1_score > 0, score=0.5, category="amount"),
        ],
    )
    if validator is None:
        validator = MagicMock()
        validator.validate = AsyncMock(return_value=None)
    return RiskFusionPipeline(validator=validator, feature_computer=feature_computer, engine=engine)


def _added(session, model):
    return [call.args[0] for call in session.add.call_args_list if isinstance(call.args[0], model)]


class TestRiskFusionPipeline:
    @pytest.mark.asyncio
    async def test_provider_outage_degrades_to_layer1(self):
        validator = MagicMock()
        validator.validate = AsyncMock(side_effect=TransientProviderError("ipqs_phone", "ipqs_phone: timed out"))
        session = mock_session_with_no_results()

        result = await _pipeline(50.0, validator).assess(
            _order(), None, DecisionSettings(), session, now=NOW
        )

        assert result.stage2_triggered
        assert result.stage2_skipped_reason == "ipqs_phone: timed out"
        assert result.layer2_score is None
        assert result.fused_score == 50.0
        assert result.fusion_strategy == FusionStrategy.LAYER1_ONLY
        assert result.risk_level == RiskLevel.MEDIUM
        assert result.decision == Decision.HOLD
        assert len(_added(session, RiskAssessmentRecord)) == 1

    @pytest.mark.asyncio
    async def test_confident_layer1_skips_stage2(self):
        pipeline = _pipeline(20.0)
        result = await pipeline.assess(
            _order(amount=100.0), None, DecisionSettings(), mock_session_with_no_results(), now=NOW
        )

        pipeline._validator.validate.assert_not_awaited()
        assert not result.stage2_triggered
        assert result.decision == Decision.APPROVE
        assert result.risk_level == RiskLevel.LOW

    @pytest.mark.asyncio
    async def test_high_value_order_forces_stage2(self):
        pipeline = _pipeline(10.0)
        await pipeline.assess(
            _order(amount=2500.0), None, DecisionSettings(), mock_session_with_no_results(), now=NOW
        )
        pipeline._validator.validate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_layer2_override_records_discrepancy(self):
        validator = MagicMock()
        validator.validate = AsyncMock(
            return_value=Layer2Result(
                score=90.0,
                confidence=0.85,
                sources=[
                    Layer2Source(subject_key="ip:203.0.113.7", provider="ipqs_ip", risk_score=90, confidence=85)
                ],
            )
        )
        session = mock_session_with_no_results()

        result = await _pipeline(50.0, validator).assess(
            _order(), None, DecisionSettings(), session, now=NOW
        )

        assert result.fused_score == 90.0
        assert result.fusion_strategy == FusionStrategy.LAYER2_OVERRIDE
        assert result.risk_level == RiskLevel.CRITICAL
        assert result.decision == Decision.BLOCK
        discrepancies = _added(session, FusionDiscrepancy)
        assert len(discrepancies) == 1
        assert discrepancies[0].discrepancy == 40.0
        assert discrepancies[0].providers == ["ipqs_ip"]

    @pytest.mark.asyncio
    async def test_small_disagreement_not_recorded(self):
        validator = MagicMock()
        validator.validate = AsyncMock(return_value=Layer2Result(score=60.0, confidence=0.6))
        session = mock_session_with_no_results()

        result = await _pipeline(50.0, validator).assess(_order(), None, DecisionSettings(), session, now=NOW)

        assert result.fusion_strategy == FusionStrategy.WEIGHTED_BLEND
        assert result.fused_score == 55.0
        assert _added(session, FusionDiscrepancy) == []

    @pytest.mark.asyncio
    async def test_force_layer2(self):
        pipeline = _pipeline(5.0)
        result = await pipeline.assess(
            _order(amount=20.0),
            None,
            DecisionSettings(),
            mock_session_with_no_results(),
            now=NOW,
            force_layer2=True,
        )
        assert result.stage2_triggered
        pipeline._validator.validate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_persist_adds_nothing(self):
        validator = MagicMock()
        validator.validate = AsyncMock(return_value=Layer2Result(score=95.0, confidence=0.9))
        session = mock_session_with_no_results()

        await _pipeline(50.0, validator).assess(
            _order(), None, DecisionSettings(), session, now=NOW, persist=False
        )

        session.add.assert_not_called()
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_manual_review_merchant_holds(self):
        result = await _pipeline(95.0).assess(
            _order(amount=100.0),
            None,
            DecisionSettings(automatic_scanning_enabled=False),
            mock_session_with_no_results(),
            now=NOW,
        )
        assert result.risk_level == RiskLevel.CRITICAL
        assert result.decision == Decision.HOLD

    @pytest.mark.asyncio
    async def test_unusable_provider_payload_degrades_to_layer1(self):
        def handler(request):
            return httpx.Response(200, json={"success": True, "fraud_score": "N/A"})

        cache = MagicMock()
        cache.get = AsyncMock(return_value=None)
        cache.put = AsyncMock()
        validator = ExternalValidator(
            build_providers(ipqs_api_key="ipqs-key"),
            cache=cache,
            transport=httpx.MockTransport(handler),
        )
        session = mock_session_with_no_results()

        result = await _pipeline(50.0, validator).assess(
            _order(amount=500.0), None, DecisionSettings(), session, now=NOW
        )

        assert result.stage2_triggered
        assert result.layer2_score is None
        assert result.fused_score == 50.0
        assert result.fusion_strategy == FusionStrategy.LAYER1_ONLY
        cache.put.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_history_anchored_on_receipt_time(self):
        received = datetime(2026, 1, 15, 9, 30, tzinfo=UTC)
        feature_computer = MagicMock()
        feature_computer.compute = AsyncMock(return_value=OrderFeatures())
        pipeline = RiskFusionPipeline(
            validator=MagicMock(), feature_computer=feature_computer, engine=Layer1Engine()
        )

        result = await pipeline.assess(
            _order(amount=100.0),
            None,
            DecisionSettings(),
            mock_session_with_no_results(),
            now=NOW,
            history_as_of=received,
        )

        assert feature_computer.compute.await_args.args[2] == received
        assert result.assessed_at == NOW
