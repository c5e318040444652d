"""Risk fusion domain."""

from .cache import ExternalValidationCache
from .feature_computer import OrderFeatureComputer
from .fusion import classify_risk_level, decide, fuse, needs_layer2
from .layer2 import ExternalValidator
from .models import (
    AssessRequest,
    BehavioralSignals,
    Decision,
    DecisionSettings,
    FusionStrategy,
    HighRiskEvent,
    Layer1Result,
    Layer2Result,
    OrderFeatures,
    OrderSnapshot,
    RiskAssessment,
    RiskLevel,
    RuleResult,
    ValidationResult,
)
from .pipeline import RiskFusionPipeline
from .rules import ALL_RULES
from .rules_engine import Layer1Engine

__all__ = [
    "ALL_RULES",
    "AssessRequest",
    "BehavioralSignals",
    "Decision",
    "DecisionSettings",
    "ExternalValidationCache",
    "ExternalValidator",
    "FusionStrategy",
    "HighRiskEvent",
    "Layer1Engine",
    "Layer1Result",
    "Layer2Result",
    "OrderFeatureComputer",
    "OrderFeatures",
    "OrderSnapshot",
    "RiskAssessment",
    "RiskFusionPipeline",
    "RiskLevel",
    "RuleResult",
    "ValidationResult",
    "classify_risk_level",
    "decide",
    "fuse",
    "needs_layer2",
]
