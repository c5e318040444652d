"""Identity pattern rules: email, phone and address checks."""

import re

from ..config import FusionConfig
from ..models import BehavioralSignals, OrderFeatures, OrderSnapshot, RuleResult
from .base import Layer1Rule

_REPEATED_DIGITS = re.compile(r"(\d)\1{5,}")
_ASCENDING = "01234567890123456789"
_DESCENDING = _ASCENDING[::-1]
_SEQUENCE_LENGTH = 7

# Token -> ISO country. Matched on whole tokens so "AUSTIN" is not "US".
_COUNTRY_TOKENS = {
    "US": "US",
    "USA": "US",
    "UK": "GB",
    "GB": "GB",
    "AU": "AU",
    "CA": "CA",
    "CANADA": "CA",
    "NZ": "NZ",
    "DE": "DE",
    "GERMANY": "DE",
    "FR": "FR",
    "FRANCE": "FR",
    "IT": "IT",
    "ITALY": "IT",
    "ES": "ES",
    "SPAIN": "ES",
}


def normalize_address(address: str) -> str:
    return re.sub(r"[^a-z0-9]", "", address.lower())


def extract_country(address: str) -> str | None:
    """Last country-looking token in the address, if any."""
    found = None
    for token in re.split(r"[^A-Z]+", address.upper()):
        if token in _COUNTRY_TOKENS:
            found = _COUNTRY_TOKENS[token]
    return found


def email_domain(email: str) -> str:
    return email.rsplit("@", 1)[-1].lower() if "@" in email else ""


class DisposableEmailRule(Layer1Rule):
    rule_id = "disposable_email"
    category = "identity"
    default_weight = 0.30

    def evaluate(
        self,
        order: OrderSnapshot,
        features: OrderFeatures,
        signals: BehavioralSignals | None,
        config: FusionConfig,
    ) -> RuleResult:
        if not order.customer_email:
            return self._not_evaluated("no customer email")

        domain = email_domain(order.customer_email)
        disposable = any(
            domain == d or domain.endswith(f".{d}") for d in config.identity.disposable_domains
        )
        if not disposable:
            return self._not_triggered()

        return self._triggered(
            score=1.0,
            details="Disposable email detected",
            severity="high",
            evidence={"domain": domain},
        )


class PhonePatternRule(Layer1Rule):
    """Impossible lengths and filler numbers like 5555555 or 1234567."""

    rule_id = "phone_pattern"
    category = "identity"
    default_weight = 0.25

    def evaluate(
        self,
        order: OrderSnapshot,
        features: OrderFeatures,
        signals: BehavioralSignals | None,
        config: FusionConfig,
    ) -> RuleResult:
        if not order.customer_phone:
            return self._not_evaluated("no customer phone")

        digits = re.sub(r"\D", "", order.customer_phone)
        low, high = config.identity.phone_min_digits, config.identity.phone_max_digits

        if not low <= len(digits) <= high:
            return self._triggered(
                score=0.6,
                details=f"Phone has {len(digits)} digits (expected {low}-{high})",
                evidence={"digits": len(digits)},
            )

        if _REPEATED_DIGITS.search(digits):
            return self._triggered(
                score=0.6,
                details="Phone contains a repeated-digit run",
                evidence={"pattern": "repeated"},
            )

        for start in range(len(digits) - _SEQUENCE_LENGTH + 1):
            chunk = digits[start : start + _SEQUENCE_LENGTH]
            if chunk in _ASCENDING or chunk in _DESCENDING:
                return self._triggered(
                    score=0.6,
                    details="Phone contains a sequential-digit run",
                    evidence={"pattern": "sequential"},
                )

        return self._not_triggered()


class AddressMismatchRule(Layer1Rule):
    rule_id = "address_mismatch"
    category = "identity"
    default_weight = 0.25

    def evaluate(
        self,
        order: OrderSnapshot,
        features: OrderFeatures,
        signals: BehavioralSignals | None,
        config: FusionConfig,
    ) -> RuleResult:
        if not order.shipping_address:
            return self._triggered(
                score=0.3,
                details="No shipping address supplied",
                severity="low",
            )

        if not order.billing_address:
            return self._not_triggered()

        if normalize_address(order.billing_address) == normalize_address(order.shipping_address):
            return self._not_triggered()

        billing_country = extract_country(order.billing_address)
        shipping_country = extract_country(order.shipping_address)
        if billing_country and shipping_country and billing_country != shipping_country:
            return self._triggered(
                score=1.0,
                details=f"Different countries: {billing_country} -> {shipping_country}",
                severity="high",
                evidence={"billing_country": billing_country, "shipping_country": shipping_country},
            )

        return self._triggered(
            score=0.5,
            details="Billing address differs from shipping address",
        )
