"""Order value anomaly rules."""

from ..config import FusionConfig
from ..models import BehavioralSignals, OrderFeatures, OrderSnapshot, RuleResult
from .base import Layer1Rule


class OrderValueRule(Layer1Rule):
    """High-value first orders, or orders far above the customer's average."""

    rule_id = "order_value"
    category = "amount"
    default_weight = 0.30

    def evaluate(
        self,
        order: OrderSnapshot,
        features: OrderFeatures,
        signals: BehavioralSignals | None,
        config: FusionConfig,
    ) -> RuleResult:
        thresholds = config.amount
        amount = order.amount

        if features.prior_orders == 0:
            if amount > thresholds.first_order_high:
                return self._triggered(
                    score=1.0,
                    details=f"High-value first order (${amount:,.2f})",
                    severity="high",
                    evidence={"amount": amount, "first_order": True},
                )
            if amount > thresholds.first_order_elevated:
                return self._triggered(
                    score=0.5,
                    details=f"First order over ${thresholds.first_order_elevated:,.0f} (${amount:,.2f})",
                    evidence={"amount": amount, "first_order": True},
                )
            return self._not_triggered()

        if features.avg_prior_amount <= 0:
            return self._not_triggered()

        ratio = amount / features.avg_prior_amount
        evidence = {"amount": amount, "avg_prior_amount": features.avg_prior_amount, "ratio": ratio}
        if ratio > thresholds.average_ratio_high:
            return self._triggered(
                score=0.85,
                details=f"Order {ratio:.1f}x above average (${features.avg_prior_amount:,.2f} avg)",
                severity="high",
                evidence=evidence,
            )
        if ratio > thresholds.average_ratio_elevated:
            return self._triggered(
                score=0.5,
                details=f"Order {ratio:.1f}x above average (${features.avg_prior_amount:,.2f} avg)",
                evidence=evidence,
            )
        return self._not_triggered()
