"""Deal routes: listing, creation, edits, timeline and investing."""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from sahem_invest.app.routes.auth import get_current_user_dep
from sahem_invest.domain.enums import DealStatus
from sahem_invest.domain.errors import ValidationError
from sahem_invest.domain.models import User
from sahem_invest.domain.schemas import (
    DealCreate,
    DealEditResponse,
    DealResponse,
    DealUpdate,
    InvestmentPreviewResponse,
    InvestmentResponse,
    InvestRequest,
    TimelineEntryCreate,
)
from sahem_invest.infra.database import get_db
from sahem_invest.services import deal_service, investment_service
from sahem_invest.services.deal_update_service import submit_update_request
from sahem_invest.services.notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/deals", tags=["deals"])


def _status_filter(status: Optional[str]) -> Optional[DealStatus]:
    if status is None:
        return None
    try:
        return DealStatus(status.upper())
    except ValueError:
        raise ValidationError(f"Unknown deal status: {status}")


@router.get("", response_model=list[DealResponse])
async def list_deals(
    status: Optional[str] = Query(None),
    owner_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    deals = await deal_service.list_deals(db, _status_filter(status), owner_id)
    return [DealResponse.model_validate(d) for d in deals]


@router.post("", response_model=DealResponse, status_code=201)
async def create_deal(
    data: DealCreate,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    deal = await deal_service.create_deal(db, user, data.model_dump(exclude_none=True))
    return DealResponse.model_validate(deal)


@router.get("/{deal_id}", response_model=DealResponse)
async def get_deal(deal_id: str, db: AsyncSession = Depends(get_db)):
    return DealResponse.model_validate(await deal_service.get_deal(db, deal_id))


@router.put("/{deal_id}", response_model=DealEditResponse)
async def update_deal(
    deal_id: str,
    data: DealUpdate,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    """Edit a deal. Published partner deals are queued for admin review."""
    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No changes provided")
    submission = await submit_update_request(db, deal_id, user, changes)
    if submission.requires_approval:
        message = "Your changes have been submitted for admin approval"
    else:
        message = "Deal updated"
    return DealEditResponse(
        deal=DealResponse.model_validate(submission.deal),
        requires_approval=submission.requires_approval,
        update_request_id=submission.update_request.id if submission.update_request else None,
        message=message,
    )


@router.post("/{deal_id}/timeline", response_model=DealResponse)
async def add_timeline_entry(
    deal_id: str,
    data: TimelineEntryCreate,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    deal = await deal_service.add_timeline_entry(db, deal_id, user, data.model_dump())
    return DealResponse.model_validate(deal)


@router.post("/{deal_id}/invest/preview", response_model=InvestmentPreviewResponse)
async def preview_investment(
    deal_id: str,
    data: InvestRequest,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    """Check an amount without investing; ``cap`` is the most that would be accepted."""
    outcome = await investment_service.preview_investment(db, deal_id, user, data.amount)
    return InvestmentPreviewResponse(**outcome.to_dict())


@router.post("/{deal_id}/invest", response_model=InvestmentResponse, status_code=201)
async def invest(
    deal_id: str,
    data: InvestRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    investment = await investment_service.commit_investment(
        db, deal_id, user, data.amount, NotificationDispatcher(background_tasks)
    )
    return InvestmentResponse.model_validate(investment)
