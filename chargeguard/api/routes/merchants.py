"""Merchant decision settings."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from chargeguard.api.deps import get_merchant_id
from chargeguard.db.database import get_session
from chargeguard.domains.fraud.merchant_settings import load_decision_settings, save_decision_settings
from chargeguard.domains.fraud.models import DecisionSettings

router = APIRouter(prefix="/api/v1/merchants", tags=["merchants"])


@router.get("/settings", response_model=DecisionSettings)
async def get_settings(
    merchant_id: str = Depends(get_merchant_id),  # noqa: B008
    session: AsyncSession = Depends(get_session),  # noqa: B008
) -> DecisionSettings:
    return await load_decision_settings(session, merchant_id)


@router.put("/settings", response_model=DecisionSettings)
async def put_settings(
    update: DecisionSettings,
    merchant_id: str = Depends(get_merchant_id),  # noqa: B008
    session: AsyncSession = Depends(get_session),  # noqa: B008
) -> DecisionSettings:
    return await save_decision_settings(session, merchant_id, update)
