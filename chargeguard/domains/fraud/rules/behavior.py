"""Behavioral signal rules fed by the checkout session tracker."""

from ..config import FusionConfig
from ..models import BehavioralSignals, OrderFeatures, OrderSnapshot, RuleResult
from .base import Layer1Rule


class RushedCheckoutRule(Layer1Rule):
    rule_id = "rushed_checkout"
    category = "behavior"
    default_weight = 0.25

    def evaluate(
        self,
        order: OrderSnapshot,
        features: OrderFeatures,
        signals: BehavioralSignals | None,
        config: FusionConfig,
    ) -> RuleResult:
        if signals is None or not signals.captured:
            return self._not_evaluated("no session signals")

        # Autofill legitimately makes forms fast.
        if signals.auto_fill_detected:
            return self._not_triggered()

        limit = config.behavior.rushed_checkout_ms
        if signals.form_fill_time_ms >= limit:
            return self._not_triggered()

        seconds = signals.form_fill_time_ms / 1000
        return self._triggered(
            score=1.0,
            details=f"Rushed checkout ({seconds:.0f}s)",
            severity="high",
            evidence={"form_fill_time_ms": signals.form_fill_time_ms},
        )


class LowInteractionRule(Layer1Rule):
    rule_id = "low_interaction"
    category = "behavior"
    default_weight = 0.15

    def evaluate(
        self,
        order: OrderSnapshot,
        features: OrderFeatures,
        signals: BehavioralSignals | None,
        config: FusionConfig,
    ) -> RuleResult:
        if signals is None or not signals.captured:
            return self._not_evaluated("no session signals")

        minimum = config.behavior.min_field_interactions
        if signals.field_interactions >= minimum:
            return self._not_triggered()

        return self._triggered(
            score=0.5,
            details=f"Only {signals.field_interactions} field interactions",
            evidence={"field_interactions": signals.field_interactions},
        )


class CopyPasteRule(Layer1Rule):
    rule_id = "copy_paste"
    category = "behavior"
    default_weight = 0.15

    def evaluate(
        self,
        order: OrderSnapshot,
        features: OrderFeatures,
        signals: BehavioralSignals | None,
        config: FusionConfig,
    ) -> RuleResult:
        if signals is None or not signals.captured:
            return self._not_evaluated("no session signals")

        if signals.copy_paste_count < config.behavior.copy_paste_max:
            return self._not_triggered()

        return self._triggered(
            score=0.6,
            details=f"{signals.copy_paste_count} paste events during checkout",
            evidence={"copy_paste_count": signals.copy_paste_count},
        )


class TypingSpeedRule(Layer1Rule):
    """Keystroke intervals faster than a human can type."""

    rule_id = "typing_speed"
    category = "behavior"
    default_weight = 0.20

    def evaluate(
        self,
        order: OrderSnapshot,
        features: OrderFeatures,
        signals: BehavioralSignals | None,
        config: FusionConfig,
    ) -> RuleResult:
        if signals is None or not signals.captured or signals.typing_speed_ms <= 0:
            return self._not_evaluated("no typing measurements")

        if signals.typing_speed_ms >= config.behavior.bot_typing_interval_ms:
            return self._not_triggered()

        return self._triggered(
            score=1.0,
            details=f"Mean keystroke interval {signals.typing_speed_ms:.0f}ms (scripted input)",
            severity="high",
            evidence={"typing_speed_ms": signals.typing_speed_ms},
        )
