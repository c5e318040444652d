"""Ad-hoc risk assessment and discrepancy review endpoints."""

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chargeguard.api.deps import get_merchant_id, get_pipeline
from chargeguard.db.database import get_session
from chargeguard.db.models import FusionDiscrepancy
from chargeguard.domains.fraud.merchant_settings import load_decision_settings
from chargeguard.domains.fraud.models import AssessRequest, RiskAssessment
from chargeguard.domains.fraud.pipeline import RiskFusionPipeline

logger = structlog.get_logger()
router = APIRouter(prefix="/api/v1/fraud", tags=["fraud"])


@router.post("/assess", response_model=RiskAssessment)
async def assess_order(
    request: AssessRequest,
    merchant_id: str = Depends(get_merchant_id),  # noqa: B008
    session: AsyncSession = Depends(get_session),  # noqa: B008
    pipeline: RiskFusionPipeline = Depends(get_pipeline),  # noqa: B008
) -> RiskAssessment:
    """Score an order without queueing it. Only the validation cache is written."""
    if request.merchant_id != merchant_id:
        raise PermissionError("Cannot assess orders for another merchant")

    settings = await load_decision_settings(session, merchant_id)
    assessment = await pipeline.assess(
        request,
        request.behavioral_signals,
        settings,
        session,
        force_layer2=request.force_layer2,
        persist=False,
    )
    # Keep fresh provider answers for later orders.
    await session.commit()
    return assessment


@router.get("/discrepancies")
async def list_discrepancies(
    min_discrepancy: float = Query(default=30.0, ge=0, le=100),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    merchant_id: str = Depends(get_merchant_id),  # noqa: B008
    session: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict:
    stmt = (
        select(FusionDiscrepancy)
        .where(
            FusionDiscrepancy.merchant_id == merchant_id,
            FusionDiscrepancy.discrepancy >= min_discrepancy,
        )
        .order_by(FusionDiscrepancy.recorded_at.desc())
        .offset(offset)
        .limit(limit)
    )
    result = await session.execute(stmt)
    rows = result.scalars().all()
    return {
        "items": [
            {
                "order_id": row.order_id,
                "layer1_score": row.layer1_score,
                "layer2_score": row.layer2_score,
                "discrepancy": row.discrepancy,
                "providers": row.providers,
                "recorded_at": row.recorded_at.isoformat(),
            }
            for row in rows
        ],
        "limit": limit,
        "offset": offset,
    }
