"""Admin API routes: review queues for deal updates, deals, applications and transfers.

Every endpoint checks the caller's permission inside the service call, so a
DEAL_MANAGER reaches the deal queues and a FINANCIAL_OFFICER the money ones.
"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from sahem_invest.app.routes.auth import get_current_user_dep, require_permission
from sahem_invest.domain.enums import ApplicationKind, ApplicationStatus, TransactionStatus, UpdateRequestStatus
from sahem_invest.domain.errors import ValidationError
from sahem_invest.domain.models import User
from sahem_invest.domain.permissions import Permission
from sahem_invest.domain.schemas import (
    ApplicationResponse,
    ApplicationReview,
    ApplicationReviewResponse,
    DealResponse,
    DealUpdateRequestResponse,
    DealUpdateReview,
    DistributionRequest,
    DistributionResponse,
    ReviewDecision,
    TransactionResponse,
)
from sahem_invest.infra.database import get_db
from sahem_invest.services import (
    deal_service,
    deal_update_service,
    onboarding_service,
    profit_distribution_service,
    wallet_service,
)
from sahem_invest.services.notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"])


def _enum_filter(enum_cls, value: Optional[str]):
    if value is None:
        return None
    try:
        return enum_cls(value.upper())
    except ValueError:
        raise ValidationError(f"Unknown status: {value}")


# ---------------------------------------------------------------------------
# Deal update requests
# ---------------------------------------------------------------------------


@router.get("/deal-update-requests", response_model=list[DealUpdateRequestResponse])
async def list_deal_update_requests(
    status: Optional[str] = Query(None),
    user: User = Depends(require_permission(Permission.REVIEW_DEAL_UPDATES)),
    db: AsyncSession = Depends(get_db),
):
    wanted = _enum_filter(UpdateRequestStatus, status) or UpdateRequestStatus.PENDING
    requests = await deal_update_service.list_update_requests(db, wanted)
    return [DealUpdateRequestResponse.model_validate(r) for r in requests]


@router.get("/deal-update-requests/{request_id}", response_model=DealUpdateRequestResponse)
async def get_deal_update_request(
    request_id: str,
    user: User = Depends(require_permission(Permission.REVIEW_DEAL_UPDATES)),
    db: AsyncSession = Depends(get_db),
):
    update_request = await deal_update_service.get_update_request(db, request_id)
    return DealUpdateRequestResponse.model_validate(update_request)


@router.post("/deal-update-requests/{request_id}", response_model=DealUpdateRequestResponse)
async def review_deal_update_request(
    request_id: str,
    data: DealUpdateReview,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    """Approve (deal becomes ACTIVE with the proposed values) or reject with a reason."""
    update_request = await deal_update_service.review_update_request(
        db,
        request_id,
        user,
        data.action,
        data.rejection_reason,
        NotificationDispatcher(background_tasks),
    )
    return DealUpdateRequestResponse.model_validate(update_request)


# ---------------------------------------------------------------------------
# Deals
# ---------------------------------------------------------------------------


@router.post("/deals/{deal_id}/review", response_model=DealResponse)
async def review_deal(
    deal_id: str,
    data: ReviewDecision,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    deal = await deal_service.review_deal(
        db, deal_id, user, data.action, data.reason, NotificationDispatcher(background_tasks)
    )
    return DealResponse.model_validate(deal)


@router.post("/deals/{deal_id}/distributions", response_model=DistributionResponse, status_code=201)
async def distribute_profit(
    deal_id: str,
    data: DistributionRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    result = await profit_distribution_service.distribute_profit(
        db,
        deal_id,
        user,
        data.total_amount,
        data.description,
        NotificationDispatcher(background_tasks),
    )
    return DistributionResponse(
        id=result.distribution.id,
        project_id=result.distribution.project_id,
        total_amount=result.distribution.total_amount,
        investor_count=result.distribution.investor_count,
        payouts=[
            {
                "investment_id": p.investment_id,
                "investor_id": p.investor_id,
                "amount": str(p.amount),
                "reference": p.reference,
            }
            for p in result.payouts
        ],
    )


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------


async def _list_applications(db: AsyncSession, kind: ApplicationKind, status: Optional[str]):
    applications = await onboarding_service.list_applications(
        db, kind, _enum_filter(ApplicationStatus, status)
    )
    return [ApplicationResponse.model_validate(a) for a in applications]


async def _review_application(
    db: AsyncSession,
    kind: ApplicationKind,
    application_id: str,
    data: ApplicationReview,
    reviewer: User,
    background_tasks: BackgroundTasks,
) -> ApplicationReviewResponse:
    status = _enum_filter(ApplicationStatus, data.status)
    result = await onboarding_service.review_application(
        db,
        kind,
        application_id,
        reviewer,
        status,
        rejection_reason=data.rejection_reason,
        notes=data.notes,
        notifier=NotificationDispatcher(background_tasks),
    )
    return ApplicationReviewResponse(
        application=ApplicationResponse.model_validate(result.application),
        user_id=result.user.id if result.user else None,
    )


@router.get("/applications", response_model=list[ApplicationResponse])
async def list_investor_applications(
    status: Optional[str] = Query(None),
    user: User = Depends(require_permission(Permission.REVIEW_APPLICATIONS)),
    db: AsyncSession = Depends(get_db),
):
    return await _list_applications(db, ApplicationKind.INVESTOR, status)


@router.patch("/applications/{application_id}", response_model=ApplicationReviewResponse)
async def review_investor_application(
    application_id: str,
    data: ApplicationReview,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    return await _review_application(
        db, ApplicationKind.INVESTOR, application_id, data, user, background_tasks
    )


@router.get("/partner-applications", response_model=list[ApplicationResponse])
async def list_partner_applications(
    status: Optional[str] = Query(None),
    user: User = Depends(require_permission(Permission.REVIEW_APPLICATIONS)),
    db: AsyncSession = Depends(get_db),
):
    return await _list_applications(db, ApplicationKind.PARTNER, status)


@router.patch("/partner-applications/{application_id}", response_model=ApplicationReviewResponse)
async def review_partner_application(
    application_id: str,
    data: ApplicationReview,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    return await _review_application(
        db, ApplicationKind.PARTNER, application_id, data, user, background_tasks
    )


# ---------------------------------------------------------------------------
# Wallet transactions
# ---------------------------------------------------------------------------


@router.get("/transactions", response_model=list[TransactionResponse])
async def list_transactions(
    status: Optional[str] = Query(None),
    user: User = Depends(require_permission(Permission.REVIEW_TRANSACTIONS)),
    db: AsyncSession = Depends(get_db),
):
    transactions = await wallet_service.list_transactions(
        db, status=_enum_filter(TransactionStatus, status)
    )
    return [TransactionResponse.model_validate(t) for t in transactions]


@router.post("/transactions/{transaction_id}/review", response_model=TransactionResponse)
async def review_transaction(
    transaction_id: str,
    data: ReviewDecision,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    transaction = await wallet_service.review_transaction(
        db, transaction_id, user, data.action, data.reason, NotificationDispatcher(background_tasks)
    )
    return TransactionResponse.model_validate(transaction)
