"""Risk fusion configuration with sensible defaults."""

import os
from dataclasses import dataclass, field


@dataclass
class VelocityThresholds:
    email_burst_window_minutes: int = 5
    email_burst_max: int = 3
    email_hourly_max: int = 10
    ip_hourly_max: int = 5
    phone_hourly_max: int = 5
    device_hourly_max: int = 5


@dataclass
class IdentitySettings:
    disposable_domains: tuple[str, ...] = (
        "tempmail.com",
        "guerrillamail.com",
        "10minutemail.com",
        "throwaway.email",
        "temp-mail.org",
        "mailinator.com",
        "maildrop.cc",
        "trashmail.com",
    )
    phone_min_digits: int = 7
    phone_max_digits: int = 15


@dataclass
class AmountThresholds:
    first_order_high: float = 1_000.0
    first_order_elevated: float = 500.0
    average_ratio_high: float = 5.0
    average_ratio_elevated: float = 3.0


@dataclass
class BehaviorThresholds:
    rushed_checkout_ms: float = 20_000.0
    min_field_interactions: int = 2
    copy_paste_max: int = 3
    bot_typing_interval_ms: float = 30.0


@dataclass
class ScoringWeights:
    velocity_cap: float = 0.40
    identity_cap: float = 0.35
    amount_cap: float = 0.30
    behavior_cap: float = 0.30


@dataclass
class Layer2Settings:
    # Closed band where Layer 1 is not trusted on its own.
    ambiguous_band: tuple[float, float] = (35.0, 65.0)
    # Layer 2 results inside this band are blended instead of taken as-is.
    layer2_ambiguous_band: tuple[float, float] = (35.0, 65.0)
    high_value_threshold: float = 1_000.0
    provider_timeout_seconds: float = 3.0
    stage2_timeout_seconds: float = 8.0
    cache_freshness_days: int = 30
    discrepancy_threshold: float = 30.0
    phone_providers: tuple[str, ...] = ("ipqs_phone", "twilio_lookup")
    email_providers: tuple[str, ...] = ("ipqs_email",)
    ip_providers: tuple[str, ...] = ("ipqs_ip",)
    # No device reputation provider yet: device keys are served from the cache only.
    device_providers: tuple[str, ...] = ()


@dataclass
class FusionConfig:
    velocity: VelocityThresholds = field(default_factory=VelocityThresholds)
    identity: IdentitySettings = field(default_factory=IdentitySettings)
    amount: AmountThresholds = field(default_factory=AmountThresholds)
    behavior: BehaviorThresholds = field(default_factory=BehaviorThresholds)
    scoring: ScoringWeights = field(default_factory=ScoringWeights)
    layer2: Layer2Settings = field(default_factory=Layer2Settings)

    @classmethod
    def from_env(cls) -> "FusionConfig":
        """Load config with env var overrides. Env vars use FUSION_ prefix."""
        config = cls()

        # Velocity overrides
        if v := os.getenv("FUSION_EMAIL_BURST_MAX"):
            config.velocity.email_burst_max = int(v)
        if v := os.getenv("FUSION_EMAIL_HOURLY_MAX"):
            config.velocity.email_hourly_max = int(v)

        # Layer 2 overrides
        if v := os.getenv("FUSION_HIGH_VALUE_THRESHOLD"):
            config.layer2.high_value_threshold = float(v)
        if v := os.getenv("FUSION_PROVIDER_TIMEOUT_SECONDS"):
            config.layer2.provider_timeout_seconds = float(v)
        if v := os.getenv("FUSION_STAGE2_TIMEOUT_SECONDS"):
            config.layer2.stage2_timeout_seconds = float(v)
        if v := os.getenv("FUSION_DISCREPANCY_THRESHOLD"):
            config.layer2.discrepancy_threshold = float(v)
        if v := os.getenv("FUSION_AMBIGUOUS_BAND"):
            low, high = (float(part) for part in v.split(","))
            config.layer2.ambiguous_band = (low, high)

        return config


# Module-level default instance
default_config = FusionConfig()
