"""Layer 1 rules engine with weighted category aggregation."""

from collections import defaultdict

import structlog

from .config import FusionConfig, default_config
from .models import BehavioralSignals, Layer1Result, OrderFeatures, OrderSnapshot, RuleResult
from .rules import ALL_RULES
from .rules.base import Layer1Rule

logger = structlog.get_logger()


class Layer1Engine:
    """Evaluates an order against the local heuristic rules.

    Scoring uses weighted category aggregation:
    1. Run all rules -> list[RuleResult]
    2. Group triggered rules by category
    3. Per category: weighted sum, capped at category max
    4. Composite = sum of category scores, capped at 1.0, reported on 0-100
    5. Confidence = evaluated rules / total rules
    """

    def __init__(
        self,
        config: FusionConfig | None = None,
        rules: list[Layer1Rule] | None = None,
    ) -> None:
        self._rules = list(rules if rules is not None else ALL_RULES)
        self._config = config or default_config
        self._weights = {rule.rule_id: rule.default_weight for rule in self._rules}

    @property
    def rules(self) -> list[Layer1Rule]:
        return list(self._rules)

    def evaluate(
        self,
        order: OrderSnapshot,
        features: OrderFeatures,
        signals: BehavioralSignals | None = None,
    ) -> Layer1Result:
        cfg = self._config
        results: list[RuleResult] = []

        for rule in self._rules:
            try:
                results.append(rule.evaluate(order, features, signals, cfg))
            except Exception:
                logger.exception("rule_evaluation_error", rule_id=rule.rule_id)
                results.append(
                    RuleResult(
                        rule_name=rule.rule_id,
                        evaluated=False,
                        details="Rule evaluation failed",
                        category=rule.category,
                    )
                )

        by_category: dict[str, list[RuleResult]] = defaultdict(list)
        for r in results:
            if r.triggered:
                by_category[r.category].append(r)

        category_caps = {
            "velocity": cfg.scoring.velocity_cap,
            "identity": cfg.scoring.identity_cap,
            "amount": cfg.scoring.amount_cap,
            "behavior": cfg.scoring.behavior_cap,
        }

        category_scores: dict[str, float] = {}
        for cat, cat_results in by_category.items():
            cap = category_caps.get(cat, 0.25)
            weighted_sum = sum(r.score * self._weights.get(r.rule_name, 0.10) for r in cat_results)
            category_scores[cat] = round(min(weighted_sum, cap), 4)

        composite = min(sum(category_scores.values()), 1.0)
        evaluated = sum(1 for r in results if r.evaluated)
        confidence = evaluated / len(results) if results else 0.0

        layer1 = Layer1Result(
            score=round(composite * 100, 2),
            confidence=round(confidence, 4),
            rule_results=results,
            category_scores=category_scores,
        )

        logger.info(
            "layer1_evaluated",
            merchant_id=order.merchant_id,
            order_id=order.order_id,
            score=layer1.score,
            confidence=layer1.confidence,
            triggered_count=len(layer1.triggered_rules),
            categories=list(by_category.keys()),
        )
        return layer1
