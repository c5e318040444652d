"""Velocity rules: orders per identity per time window."""

from ..config import FusionConfig
from ..models import BehavioralSignals, OrderFeatures, OrderSnapshot, RuleResult
from .base import Layer1Rule


class EmailVelocityRule(Layer1Rule):
    """Bursts of orders from one email (bot checkout) or a busy hour."""

    rule_id = "email_velocity"
    category = "velocity"
    default_weight = 0.40

    def evaluate(
        self,
        order: OrderSnapshot,
        features: OrderFeatures,
        signals: BehavioralSignals | None,
        config: FusionConfig,
    ) -> RuleResult:
        if not order.customer_email:
            return self._not_evaluated("no customer email")

        burst_max = config.velocity.email_burst_max
        hourly_max = config.velocity.email_hourly_max
        window = config.velocity.email_burst_window_minutes

        if features.email_orders_burst > burst_max:
            return self._triggered(
                score=1.0,
                details=f"{features.email_orders_burst} orders in {window} minutes (bot pattern)",
                severity="high",
                evidence={"count": features.email_orders_burst, "window_minutes": window},
            )
        if features.email_orders_1h > hourly_max:
            return self._triggered(
                score=0.85,
                details=f"{features.email_orders_1h} orders in 1 hour",
                severity="high",
                evidence={"count": features.email_orders_1h, "window": "1h"},
            )
        return self._not_triggered()


class IpVelocityRule(Layer1Rule):
    rule_id = "ip_velocity"
    category = "velocity"
    default_weight = 0.25

    def evaluate(
        self,
        order: OrderSnapshot,
        features: OrderFeatures,
        signals: BehavioralSignals | None,
        config: FusionConfig,
    ) -> RuleResult:
        if not order.ip_address:
            return self._not_evaluated("no ip address")

        threshold = config.velocity.ip_hourly_max
        if features.ip_orders_1h < threshold:
            return self._not_triggered()

        return self._triggered(
            score=0.8,
            details=f"{features.ip_orders_1h} orders from this IP in 1 hour (limit: {threshold})",
            evidence={"count": features.ip_orders_1h, "threshold": threshold},
        )


class PhoneVelocityRule(Layer1Rule):
    rule_id = "phone_velocity"
    category = "velocity"
    default_weight = 0.20

    def evaluate(
        self,
        order: OrderSnapshot,
        features: OrderFeatures,
        signals: BehavioralSignals | None,
        config: FusionConfig,
    ) -> RuleResult:
        if not order.customer_phone:
            return self._not_evaluated("no customer phone")

        threshold = config.velocity.phone_hourly_max
        if features.phone_orders_1h < threshold:
            return self._not_triggered()

        return self._triggered(
            score=0.8,
            details=f"{features.phone_orders_1h} orders from this phone in 1 hour",
            evidence={"count": features.phone_orders_1h, "threshold": threshold},
        )


class DeviceVelocityRule(Layer1Rule):
    rule_id = "device_velocity"
    category = "velocity"
    default_weight = 0.20

    def evaluate(
        self,
        order: OrderSnapshot,
        features: OrderFeatures,
        signals: BehavioralSignals | None,
        config: FusionConfig,
    ) -> RuleResult:
        if not order.device_fingerprint:
            return self._not_evaluated("no device fingerprint")

        threshold = config.velocity.device_hourly_max
        if features.device_orders_1h < threshold:
            return self._not_triggered()

        return self._triggered(
            score=0.8,
            details=f"{features.device_orders_1h} orders from this device in 1 hour (limit: {threshold})",
            evidence={"count": features.device_orders_1h, "threshold": threshold},
        )
