"""Deal lifecycle: creation, publication review and timeline milestones."""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sahem_invest.domain.enums import (
    DealStatus,
    NotificationType,
    ReviewAction,
    TimelineEntryStatus,
    TimelineEntryType,
)
from sahem_invest.domain.errors import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from sahem_invest.domain.models import Project, User
from sahem_invest.domain.permissions import Permission, has_permission, require_permission
from sahem_invest.services.deal_update_service import (
    coerce_action,
    deserialize_changes,
    serialize_changes,
    slugify,
)
from sahem_invest.services.notification_service import NotificationDispatcher, record_in_app
from sahem_invest.services.review_state_machine import ReviewedEntity, ReviewStateMachine

logger = logging.getLogger(__name__)

_state_machine = ReviewStateMachine()

# Statuses investors can see in the public listing
PUBLIC_STATUSES = [
    DealStatus.PUBLISHED.value,
    DealStatus.ACTIVE.value,
    DealStatus.FUNDED.value,
    DealStatus.COMPLETED.value,
]

TIMELINE_WRITE_ATTEMPTS = 3


async def get_deal(db: AsyncSession, deal_id: str) -> Project:
    deal = await db.get(Project, deal_id)
    if deal is None:
        raise NotFoundError("Deal not found")
    return deal


async def list_deals(
    db: AsyncSession,
    status: Optional[DealStatus] = None,
    owner_id: Optional[str] = None,
) -> list[Project]:
    stmt = select(Project)
    if status is not None:
        stmt = stmt.where(Project.status == status.value)
    elif owner_id is None:
        stmt = stmt.where(Project.status.in_(PUBLIC_STATUSES))
    if owner_id is not None:
        stmt = stmt.where(Project.owner_id == owner_id)
    result = await db.execute(stmt.order_by(Project.created_at.desc()))
    return list(result.scalars().all())


async def create_deal(db: AsyncSession, creator: User, data: dict) -> Project:
    """Create a deal. Partner deals wait for review; managers may publish directly."""
    is_manager = has_permission(creator.role, Permission.MANAGE_DEALS)
    if not is_manager:
        require_permission(creator.role, Permission.SUBMIT_DEALS)

    data = dict(data)
    requested_owner = data.pop("owner_id", None)
    fields = deserialize_changes(serialize_changes(data))
    if not (fields.get("title") or "").strip():
        raise ValidationError("Title is required")
    goal = fields.get("funding_goal")
    if goal is None or goal <= 0:
        raise ValidationError("Funding goal must be positive")
    if fields.get("min_investment", Decimal("0")) < 0:
        raise ValidationError("Minimum investment cannot be negative")

    requested = fields.pop("status", None)
    if is_manager:
        status = requested or DealStatus.ACTIVE.value
    elif requested == DealStatus.DRAFT.value:
        status = DealStatus.DRAFT.value
    else:
        status = DealStatus.PENDING.value

    owner_id = requested_owner if is_manager and requested_owner else creator.id
    deal = Project(
        **fields,
        slug=slugify(fields["title"]),
        status=status,
        owner_id=owner_id,
        current_funding=Decimal("0"),
        timeline=[],
    )
    if status in (DealStatus.PUBLISHED.value, DealStatus.ACTIVE.value):
        deal.published_at = datetime.now(timezone.utc)
    db.add(deal)
    await db.commit()
    await db.refresh(deal)
    logger.info("Deal %s created by %s with status %s", deal.id, creator.id, deal.status)
    return deal


async def review_deal(
    db: AsyncSession,
    deal_id: str,
    reviewer: User,
    action: ReviewAction | str,
    reason: Optional[str] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> Project:
    """Publication review of a newly submitted (PENDING) deal."""
    require_permission(reviewer.role, Permission.REVIEW_DEALS)
    action = coerce_action(action)
    deal = await get_deal(db, deal_id)

    target = DealStatus.ACTIVE if action == ReviewAction.APPROVE else DealStatus.REJECTED
    _state_machine.validate_transition(ReviewedEntity.DEAL, deal.status, target)

    reason = (reason or "").strip()
    if action == ReviewAction.REJECT and not reason:
        raise ValidationError("Rejection reason is required")

    values = {"status": target.value}
    if target == DealStatus.ACTIVE and deal.published_at is None:
        values["published_at"] = datetime.now(timezone.utc)

    result = await db.execute(
        update(Project)
        .where(Project.id == deal.id, Project.status == DealStatus.PENDING.value)
        .values(**values)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise InvalidStateError("Deal already reviewed")
    await db.commit()
    await db.refresh(deal)
    logger.info("Deal %s %s by %s", deal.id, target.value, reviewer.id)

    owner = await db.get(User, deal.owner_id)
    if owner is not None:
        approved = target == DealStatus.ACTIVE
        if notifier is not None:
            await notifier.notify(
                "deal_approved" if approved else "deal_rejected",
                owner.email,
                {
                    "partner_name": owner.name or "Partner",
                    "deal_title": deal.title,
                    "reason": None if approved else reason,
                },
            )
        await record_in_app(
            db,
            owner.id,
            "Deal approved" if approved else "Deal rejected",
            (
                f'"{deal.title}" is now live for investors.'
                if approved
                else f'"{deal.title}" was rejected: {reason}'
            ),
            NotificationType.SUCCESS if approved else NotificationType.WARNING,
            {"deal_id": deal.id},
        )
    return deal


async def add_timeline_entry(db: AsyncSession, deal_id: str, actor: User, entry: dict) -> Project:
    """Append a milestone to the deal timeline (owner or deal managers)."""
    deal = await get_deal(db, deal_id)
    if deal.owner_id != actor.id and not has_permission(actor.role, Permission.MANAGE_DEALS):
        raise PermissionDeniedError("You can only edit your own deals")

    title = (entry.get("title") or "").strip()
    if not title:
        raise ValidationError("Timeline entry title is required")
    try:
        status = TimelineEntryStatus(entry.get("status") or TimelineEntryStatus.UPCOMING.value)
        entry_type = TimelineEntryType(entry.get("type") or TimelineEntryType.MILESTONE.value)
    except ValueError:
        raise ValidationError("Invalid timeline status or type")

    date = entry.get("date") or datetime.now(timezone.utc)
    if isinstance(date, datetime):
        date = date.isoformat()

    milestone = {
        "id": uuid.uuid4().hex[:12],
        "title": title,
        "description": entry.get("description") or "",
        "date": str(date),
        "status": status.value,
        "type": entry_type.value,
    }
    # Whole-list rewrite, conditional on the updated_at it was read with
    for _ in range(TIMELINE_WRITE_ATTEMPTS):
        await db.refresh(deal)
        written = await db.execute(
            update(Project)
            .where(Project.id == deal.id, Project.updated_at == deal.updated_at)
            .values(timeline=[*(deal.timeline or []), milestone])
        )
        if written.rowcount == 1:
            await db.commit()
            await db.refresh(deal)
            return deal
        await db.rollback()
    raise InvalidStateError("Deal changed while adding the timeline entry, please try again")
