"""Abstract base class for Layer 1 heuristic rules."""

from abc import ABC, abstractmethod

from ..config import FusionConfig
from ..models import BehavioralSignals, OrderFeatures, OrderSnapshot, RuleResult


class Layer1Rule(ABC):
    """Base class for all Layer 1 rules.

    Rules are synchronous and pure: history is computed up front by
    ``OrderFeatureComputer`` so that Stage 1 never waits on I/O beyond it.
    A rule whose inputs are missing reports ``evaluated=False``, which lowers
    Layer 1 confidence instead of pretending the order is clean.
    """

    rule_id: str
    category: str  # "velocity" | "identity" | "amount" | "behavior"
    default_weight: float

    @abstractmethod
    def evaluate(
        self,
        order: OrderSnapshot,
        features: OrderFeatures,
        signals: BehavioralSignals | None,
        config: FusionConfig,
    ) -> RuleResult:
        """Evaluate this rule and return a RuleResult."""
        ...

    def _not_evaluated(self, details: str = "") -> RuleResult:
        return RuleResult(
            rule_name=self.rule_id,
            evaluated=False,
            details=details,
            category=self.category,
        )

    def _not_triggered(self) -> RuleResult:
        return RuleResult(
            rule_name=self.rule_id,
            triggered=False,
            category=self.category,
        )

    def _triggered(
        self,
        score: float,
        details: str,
        severity: str = "medium",
        evidence: dict | None = None,
    ) -> RuleResult:
        return RuleResult(
            rule_name=self.rule_id,
            triggered=True,
            score=score,
            details=details,
            severity=severity,
            evidence=evidence or {},
            category=self.category,
        )
