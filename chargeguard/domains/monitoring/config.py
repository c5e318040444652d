"""Post-auth monitoring configuration with sensible defaults."""

import os
from dataclasses import dataclass


@dataclass
class MonitoringConfig:
    # Scheduler tick tolerance; ticks within the same bucket count as "on time".
    bucket_minutes: int = 15
    default_check_minutes: int = 120
    # Card-network dispute window. Global so every merchant is audited the same way.
    dispute_window_days: int = 120

    @classmethod
    def from_env(cls) -> "MonitoringConfig":
        """Load config with env var overrides. Env vars use MONITORING_ prefix."""
        config = cls()
        if v := os.getenv("MONITORING_BUCKET_MINUTES"):
            config.bucket_minutes = int(v)
        if v := os.getenv("MONITORING_DEFAULT_CHECK_MINUTES"):
            config.default_check_minutes = int(v)
        return config


# Module-level default instance
default_config = MonitoringConfig()
