"""Persistence for per-merchant decision thresholds."""

from datetime import UTC, datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chargeguard.db.models import MerchantSettings

from .models import DecisionSettings

logger = structlog.get_logger()

_FIELDS = tuple(DecisionSettings.model_fields)


def _to_model(row: MerchantSettings) -> DecisionSettings:
    return DecisionSettings(**{name: getattr(row, name) for name in _FIELDS})


async def load_decision_settings(session: AsyncSession, merchant_id: str) -> DecisionSettings:
    """Merchant's thresholds, or defaults when the merchant never saved any."""
    result = await session.execute(
        select(MerchantSettings).where(MerchantSettings.merchant_id == merchant_id)
    )
    row = result.scalar_one_or_none()
    if row is None:
        return DecisionSettings()
    return _to_model(row)


async def save_decision_settings(
    session: AsyncSession,
    merchant_id: str,
    settings: DecisionSettings,
) -> DecisionSettings:
    result = await session.execute(
        select(MerchantSettings).where(MerchantSettings.merchant_id == merchant_id)
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = MerchantSettings(merchant_id=merchant_id)
        session.add(row)

    for name in _FIELDS:
        setattr(row, name, getattr(settings, name))
    row.updated_at = datetime.now(UTC)
    await session.commit()

    logger.info(
        "merchant_settings_saved",
        merchant_id=merchant_id,
        auto_approve_threshold=settings.auto_approve_threshold,
        auto_block_threshold=settings.auto_block_threshold,
    )
    return settings
