"""Order queue configuration with sensible defaults."""

import os
from dataclasses import dataclass


@dataclass
class OrderQueueConfig:
    batch_size: int = 10
    # PROCESSING claims older than this are handed back to PENDING.
    stale_claim_minutes: int = 15
    failure_reason_max_length: int = 500

    @classmethod
    def from_env(cls) -> "OrderQueueConfig":
        """Load config with env var overrides. Env vars use ORDERS_ prefix."""
        config = cls()
        if v := os.getenv("ORDERS_BATCH_SIZE"):
            config.batch_size = int(v)
        if v := os.getenv("ORDERS_STALE_CLAIM_MINUTES"):
            config.stale_claim_minutes = int(v)
        return config


# Module-level default instance
default_config = OrderQueueConfig()
