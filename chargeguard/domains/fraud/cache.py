"""Shared cache of external validation results, keyed by subject."""

from datetime import datetime, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from chargeguard.db.models import ExternalValidationCacheEntry

from .config import FusionConfig, default_config
from .models import ValidationResult

logger = structlog.get_logger()


def is_fresh(fetched_at: datetime, now: datetime, freshness_days: int) -> bool:
    return now - fetched_at <= timedelta(days=freshness_days)


class ExternalValidationCache:
    """Entries older than the freshness window are treated as absent."""

    def __init__(self, config: FusionConfig | None = None) -> None:
        self._config = config or default_config

    async def get(
        self,
        session: AsyncSession,
        subject_key: str,
        now: datetime,
    ) -> ValidationResult | None:
        result = await session.execute(
            select(ExternalValidationCacheEntry).where(
                ExternalValidationCacheEntry.subject_key == subject_key
            )
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            return None

        if not is_fresh(entry.fetched_at, now, self._config.layer2.cache_freshness_days):
            logger.debug("validation_cache_stale", subject_key=subject_key, fetched_at=str(entry.fetched_at))
            return None

        return ValidationResult.model_validate(entry.result)

    async def put(
        self,
        session: AsyncSession,
        result: ValidationResult,
        now: datetime,
    ) -> None:
        """Upsert; last write wins."""
        payload = result.model_dump(mode="json")
        stmt = insert(ExternalValidationCacheEntry).values(
            subject_key=result.subject_key,
            provider=result.provider,
            result=payload,
            fetched_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[ExternalValidationCacheEntry.subject_key],
            set_={
                "provider": stmt.excluded.provider,
                "result": stmt.excluded.result,
                "fetched_at": stmt.excluded.fetched_at,
            },
        )
        await session.execute(stmt)
        logger.debug("validation_cache_written", subject_key=result.subject_key, provider=result.provider)
