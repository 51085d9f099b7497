"""
Fees API — fee schedule and fee calculation.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from permitflow.api.deps import get_acting_user, get_db
from permitflow.auth.context import ActingUser
from permitflow.models import FeeSchedule
from permitflow.schemas.schemas import FeeQuoteResponse, FeeScheduleItem, FeeScheduleResponse
from permitflow.services.fee_calculator import FeeCalculator, normalize_level

router = APIRouter(prefix="/api/fees", tags=["fees"])


@router.get("/schedule", response_model=FeeScheduleResponse)
async def list_fee_schedule(
    permit_level: str | None = Query(None, description="e.g. 'Level 2' or '2'"),
    category: str | None = Query(None),
    actor: ActingUser = Depends(get_acting_user),
    db: AsyncSession = Depends(get_db),
) -> FeeScheduleResponse:
    query = (
        select(FeeSchedule)
        .where(FeeSchedule.is_active == True)  # noqa: E712
        .order_by(FeeSchedule.permit_level, FeeSchedule.activity_type)
    )
    if permit_level:
        query = query.where(FeeSchedule.permit_level == normalize_level(permit_level))
    if category:
        query = query.where(FeeSchedule.category == category)

    result = await db.execute(query)
    items = [
        FeeScheduleItem(
            activity_type=row.activity_type,
            permit_level=row.permit_level,
            category=row.category,
            fee_category=row.fee_category,
            administration_fee=float(row.administration_fee),
            technical_fee=float(row.technical_fee),
            administration_form=row.administration_form,
            technical_form=row.technical_form,
            processing_days=row.processing_days,
        )
        for row in result.scalars()
    ]
    return FeeScheduleResponse(total=len(items), items=items)


@router.get("/calculate", response_model=FeeQuoteResponse)
async def calculate_fees(
    activity_type: str | None = Query(None),
    permit_level: str | None = Query(None),
    category: str | None = Query(None, description="Activity grouping used to pick an estimate"),
    actor: ActingUser = Depends(get_acting_user),
    db: AsyncSession = Depends(get_db),
) -> FeeQuoteResponse:
    """Official fee when scheduled, otherwise a flagged estimate or a not-calculable reason."""
    quote = await FeeCalculator(db).quote(activity_type, permit_level, category=category)
    return FeeQuoteResponse(**quote.to_dict())
