"""Score fusion, risk levels and merchant decisions."""

from .config import FusionConfig, default_config
from .models import Decision, DecisionSettings, FusionStrategy, Layer1Result, Layer2Result, RiskLevel


def in_band(score: float, band: tuple[float, float]) -> bool:
    low, high = band
    return low <= score <= high


def needs_layer2(
    layer1_score: float,
    amount: float,
    config: FusionConfig | None = None,
) -> bool:
    """Stage 2 runs for ambiguous Layer 1 scores or high-value orders."""
    cfg = config or default_config
    return in_band(layer1_score, cfg.layer2.ambiguous_band) or amount > cfg.layer2.high_value_threshold


def _clamp(score: float) -> float:
    return round(max(0.0, min(score, 100.0)), 2)


def fuse(
    layer1: Layer1Result,
    layer2: Layer2Result | None,
    config: FusionConfig | None = None,
) -> tuple[float, FusionStrategy]:
    """Combine both layers into one 0-100 score.

    A Layer 2 answer outside its own ambiguous band is taken as-is. Otherwise
    the layers are blended with weights proportional to their confidences.
    """
    cfg = config or default_config

    if layer2 is None:
        return _clamp(layer1.score), FusionStrategy.LAYER1_ONLY

    if not in_band(layer2.score, cfg.layer2.layer2_ambiguous_band):
        return _clamp(layer2.score), FusionStrategy.LAYER2_OVERRIDE

    c1, c2 = layer1.confidence, layer2.confidence
    if c1 + c2 <= 0:
        w2 = 0.5
    else:
        w2 = c2 / (c1 + c2)
    w1 = 1.0 - w2
    return _clamp(w1 * layer1.score + w2 * layer2.score), FusionStrategy.WEIGHTED_BLEND


def classify_risk_level(score: float) -> RiskLevel:
    if score >= 90:
        return RiskLevel.CRITICAL
    if score >= 70:
        return RiskLevel.HIGH
    if score >= 40:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def decide(fused_score: float, settings: DecisionSettings) -> Decision:
    """BLOCK wins over APPROVE; anything in between is held for review."""
    if not settings.automatic_scanning_enabled:
        return Decision.HOLD
    if settings.auto_block_enabled and fused_score >= settings.auto_block_threshold:
        return Decision.BLOCK
    if settings.auto_approve_enabled and fused_score <= settings.auto_approve_threshold:
        return Decision.APPROVE
    return Decision.HOLD
