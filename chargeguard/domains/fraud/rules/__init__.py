"""Layer 1 rules package.

Exports ALL_RULES (list of all rule instances) and individual rule classes
for direct use.
"""

from .amount import OrderValueRule
from .base import Layer1Rule
from .behavior import CopyPasteRule, LowInteractionRule, RushedCheckoutRule, TypingSpeedRule
from .identity import (
    AddressMismatchRule,
    DisposableEmailRule,
    PhonePatternRule,
    extract_country,
    normalize_address,
)
from .velocity import DeviceVelocityRule, EmailVelocityRule, IpVelocityRule, PhoneVelocityRule

# All rule instances in evaluation order
ALL_RULES: list[Layer1Rule] = [
    # Velocity rules
    EmailVelocityRule(),
    IpVelocityRule(),
    PhoneVelocityRule(),
    DeviceVelocityRule(),
    # Identity rules
    DisposableEmailRule(),
    PhonePatternRule(),
    AddressMismatchRule(),
    # Amount rules
    OrderValueRule(),
    # Behavior rules
    RushedCheckoutRule(),
    LowInteractionRule(),
    CopyPasteRule(),
    TypingSpeedRule(),
]

__all__ = [
    "ALL_RULES",
    "Layer1Rule",
    "extract_country",
    "normalize_address",
    # Velocity
    "EmailVelocityRule",
    "IpVelocityRule",
    "PhoneVelocityRule",
    "DeviceVelocityRule",
    # Identity
    "DisposableEmailRule",
    "PhonePatternRule",
    "AddressMismatchRule",
    # Amount
    "OrderValueRule",
    # Behavior
    "RushedCheckoutRule",
    "LowInteractionRule",
    "CopyPasteRule",
    "TypingSpeedRule",
]
