"""Deal update requests: partner proposals and the admin approval workflow.

A partner editing a published deal does not touch the deal; the edit is
stored as a DealUpdateRequest holding the proposed field values. Review is a
one-shot PENDING -> APPROVED / REJECTED transition:

* approve: the proposal is written over the deal field by field (later writes
  win), with ``status`` forced to ACTIVE whatever the proposal said.
* reject: a reason is mandatory and the deal drops to REJECTED so the owner
  can edit and resubmit.

The request row is claimed with ``UPDATE ... WHERE status = 'PENDING'`` in the
same transaction as the deal write, so a retried or concurrent review finds
nothing to claim and changes nothing.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sahem_invest.domain.enums import (
    DealStatus,
    NotificationType,
    ReviewAction,
    UpdateRequestStatus,
)
from sahem_invest.domain.errors import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from sahem_invest.domain.models import DealUpdateRequest, Project, User
from sahem_invest.domain.permissions import Permission, has_permission, require_permission
from sahem_invest.services.notification_service import NotificationDispatcher, record_in_app
from sahem_invest.services.review_state_machine import ReviewedEntity, ReviewStateMachine

logger = logging.getLogger(__name__)

_state_machine = ReviewStateMachine()

# Deals a partner may still edit in place (not yet visible to investors)
DIRECT_EDIT_STATUSES = {DealStatus.DRAFT.value, DealStatus.PENDING.value, DealStatus.REJECTED.value}
LOCKED_STATUSES = {DealStatus.COMPLETED.value, DealStatus.CANCELLED.value}


# ---------------------------------------------------------------------------
# Proposed-change payloads
# ---------------------------------------------------------------------------


def _to_decimal(value) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}")


def _to_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}")


def _to_status(value) -> str:
    try:
        return DealStatus(str(value.value if isinstance(value, Enum) else value).upper()).value
    except ValueError:
        raise ValidationError(f"Invalid deal status: {value!r}")


def _to_int(value) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid integer: {value!r}")


def _identity(value):
    return value


# Fields a proposal may set, with the converter from stored JSON back to column values
UPDATABLE_FIELDS: dict[str, Callable[[Any], Any]] = {
    "title": _identity,
    "description": _identity,
    "category": _identity,
    "location": _identity,
    "funding_goal": _to_decimal,
    "min_investment": _to_decimal,
    "expected_return": _to_decimal,
    "duration": _to_int,
    "risk_level": _identity,
    "highlights": _identity,
    "status": _to_status,
    "start_date": _to_datetime,
    "end_date": _to_datetime,
}


def slugify(title: str) -> str:
    cleaned = "".join(ch for ch in title.lower() if ch.isalnum() or ch in " -")
    return "-".join(part for part in cleaned.replace("-", " ").split() if part)


def serialize_changes(changes: dict) -> dict:
    """Make a change set JSON-safe for storage on the request row."""
    out = {}
    for key, value in changes.items():
        if isinstance(value, Decimal):
            value = str(value)
        elif isinstance(value, datetime):
            value = value.isoformat()
        elif isinstance(value, Enum):
            value = value.value
        out[key] = value
    return out


def deserialize_changes(changes: dict) -> dict:
    """Validate field names and convert stored values back to column types."""
    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Fields cannot be changed: {', '.join(sorted(unknown))}")
    return {key: UPDATABLE_FIELDS[key](value) for key, value in changes.items()}


def _check_amounts(deal: Project, changes: dict) -> None:
    goal = changes.get("funding_goal")
    if goal is not None:
        if goal <= 0:
            raise ValidationError("Funding goal must be positive")
        if goal < (deal.current_funding or Decimal("0")):
            raise ValidationError(
                "Funding goal cannot be below current funding",
                {"current_funding": str(deal.current_funding)},
            )
    minimum = changes.get("min_investment")
    if minimum is not None and minimum < 0:
        raise ValidationError("Minimum investment cannot be negative")
    title = changes.get("title")
    if "title" in changes and not (title or "").strip():
        raise ValidationError("Title cannot be empty")


def build_changes_summary(deal: Project, changes: dict) -> str:
    """Human-readable diff shown to reviewers."""
    lines = []
    if "title" in changes and changes["title"] != deal.title:
        lines.append(f'Title: "{deal.title}" → "{changes["title"]}"')
    if "description" in changes and changes["description"] != deal.description:
        lines.append("Description updated")
    if "funding_goal" in changes and changes["funding_goal"] != deal.funding_goal:
        lines.append(f"Funding Goal: ${deal.funding_goal} → ${changes['funding_goal']}")
    if "min_investment" in changes and changes["min_investment"] != deal.min_investment:
        lines.append(f"Min Investment: ${deal.min_investment} → ${changes['min_investment']}")
    if "expected_return" in changes and changes["expected_return"] != deal.expected_return:
        lines.append(f"Expected Return: {deal.expected_return}% → {changes['expected_return']}%")
    if "duration" in changes and changes["duration"] != deal.duration:
        lines.append(f"Duration: {deal.duration} → {changes['duration']} days")
    if "status" in changes and changes["status"] != deal.status:
        lines.append(f"Status: {deal.status} → {changes['status']}")
    return "\n".join(lines) if lines else "General updates"


def _apply_changes(deal: Project, changes: dict) -> None:
    for key, value in changes.items():
        setattr(deal, key, value)
    if "title" in changes:
        deal.slug = slugify(deal.title)


# ---------------------------------------------------------------------------
# Submitting changes
# ---------------------------------------------------------------------------


@dataclass
class UpdateSubmission:
    deal: Project
    update_request: Optional[DealUpdateRequest] = None

    @property
    def requires_approval(self) -> bool:
        return self.update_request is not None


async def _get_deal(db: AsyncSession, deal_id: str) -> Project:
    deal = await db.get(Project, deal_id)
    if deal is None:
        raise NotFoundError("Deal not found")
    return deal


async def apply_direct_update(db: AsyncSession, deal: Project, changes: dict) -> Project:
    """Write ``changes`` straight onto the deal (admin / deal-manager edits)."""
    converted = deserialize_changes(serialize_changes(changes))
    _check_amounts(deal, converted)
    if not converted:
        return deal

    values = dict(converted)
    if "title" in values:
        values["slug"] = slugify(values["title"])
    if values.get("status") in (DealStatus.PUBLISHED.value, DealStatus.ACTIVE.value) and deal.published_at is None:
        values["published_at"] = datetime.now(timezone.utc)

    stmt = update(Project).where(Project.id == deal.id)
    if "funding_goal" in values:
        # current_funding above may be stale; the goal is checked again at write time
        stmt = stmt.where(Project.current_funding <= values["funding_goal"])
    try:
        written = await db.execute(stmt.values(**values))
        if written.rowcount != 1:
            raise ValidationError("Funding goal cannot be below current funding")
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(deal)
    return deal


async def submit_update_request(
    db: AsyncSession,
    deal_id: str,
    requester: User,
    changes: dict,
) -> UpdateSubmission:
    """Edit a deal, going through review when the deal is already published."""
    deal = await _get_deal(db, deal_id)

    if deal.status in LOCKED_STATUSES:
        raise InvalidStateError(f"Deal is {deal.status} and can no longer be edited")

    if has_permission(requester.role, Permission.MANAGE_DEALS):
        return UpdateSubmission(await apply_direct_update(db, deal, changes))

    require_permission(requester.role, Permission.SUBMIT_DEALS)
    if deal.owner_id != requester.id:
        raise PermissionDeniedError("You can only edit your own deals")

    converted = deserialize_changes(serialize_changes(changes))
    _check_amounts(deal, converted)

    if deal.status in DIRECT_EDIT_STATUSES:
        requested_status = converted.pop("status", None)
        if deal.status == DealStatus.REJECTED.value:
            # Editing a rejected deal resubmits it
            _state_machine.validate_transition(ReviewedEntity.DEAL, deal.status, DealStatus.PENDING)
            converted["status"] = DealStatus.PENDING.value
        elif requested_status == DealStatus.PENDING.value and deal.status == DealStatus.DRAFT.value:
            converted["status"] = DealStatus.PENDING.value
        elif requested_status not in (None, deal.status):
            raise ValidationError(f"Partners cannot set deal status to {requested_status}")
        _apply_changes(deal, converted)
        await db.commit()
        await db.refresh(deal)
        logger.info("Partner %s edited unpublished deal %s directly", requester.id, deal.id)
        return UpdateSubmission(deal)

    existing = await db.execute(
        select(DealUpdateRequest.id).where(
            DealUpdateRequest.project_id == deal.id,
            DealUpdateRequest.status == UpdateRequestStatus.PENDING.value,
        )
    )
    if existing.first() is not None:
        raise InvalidStateError("This deal already has an update request awaiting review")

    update_request = DealUpdateRequest(
        project_id=deal.id,
        requested_by=requester.id,
        proposed_changes=serialize_changes(converted),
        changes_summary=build_changes_summary(deal, converted),
        status=UpdateRequestStatus.PENDING.value,
    )
    db.add(update_request)
    await db.commit()
    logger.info("Update request %s created for deal %s", update_request.id, deal.id)
    return UpdateSubmission(deal, update_request)


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------


async def list_update_requests(
    db: AsyncSession,
    status: UpdateRequestStatus = UpdateRequestStatus.PENDING,
) -> list[DealUpdateRequest]:
    result = await db.execute(
        select(DealUpdateRequest)
        .where(DealUpdateRequest.status == status.value)
        .options(
            selectinload(DealUpdateRequest.project),
            selectinload(DealUpdateRequest.requester),
        )
        .order_by(DealUpdateRequest.created_at.desc())
    )
    return list(result.scalars().all())


async def get_update_request(db: AsyncSession, request_id: str) -> DealUpdateRequest:
    result = await db.execute(
        select(DealUpdateRequest)
        .where(DealUpdateRequest.id == request_id)
        .options(
            selectinload(DealUpdateRequest.project),
            selectinload(DealUpdateRequest.requester),
            selectinload(DealUpdateRequest.reviewer),
        )
    )
    update_request = result.scalar_one_or_none()
    if update_request is None:
        raise NotFoundError("Update request not found")
    return update_request


def coerce_action(action) -> ReviewAction:
    try:
        return ReviewAction(action.value if isinstance(action, Enum) else action)
    except ValueError:
        raise ValidationError("Invalid action", {"allowed": [a.value for a in ReviewAction]})


async def review_update_request(
    db: AsyncSession,
    request_id: str,
    reviewer: User,
    action: ReviewAction | str,
    rejection_reason: Optional[str] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> DealUpdateRequest:
    """Approve or reject a pending update request.

    Raises:
        PermissionDeniedError: reviewer is not ADMIN / DEAL_MANAGER.
        ValidationError: bad action, missing rejection reason, or a proposal
            that would put the funding goal under current funding.
        NotFoundError: request (or its deal) does not exist.
        InvalidStateError: request already APPROVED or REJECTED.
    """
    require_permission(reviewer.role, Permission.REVIEW_DEAL_UPDATES)
    action = coerce_action(action)

    update_request = await db.get(DealUpdateRequest, request_id)
    if update_request is None:
        raise NotFoundError("Update request not found")

    target = UpdateRequestStatus.APPROVED if action == ReviewAction.APPROVE else UpdateRequestStatus.REJECTED
    _state_machine.validate_transition(ReviewedEntity.UPDATE_REQUEST, update_request.status, target)

    reason = (rejection_reason or "").strip()
    if action == ReviewAction.REJECT and not reason:
        raise ValidationError("Rejection reason is required")

    deal = await _get_deal(db, update_request.project_id)

    changes: dict = {}
    if action == ReviewAction.APPROVE:
        changes = deserialize_changes(dict(update_request.proposed_changes or {}))
        changes["status"] = DealStatus.ACTIVE.value
        _check_amounts(deal, changes)

    now = datetime.now(timezone.utc)
    try:
        claimed = await db.execute(
            update(DealUpdateRequest)
            .where(
                DealUpdateRequest.id == request_id,
                DealUpdateRequest.status == UpdateRequestStatus.PENDING.value,
            )
            .values(
                status=target.value,
                reviewed_by=reviewer.id,
                reviewed_at=now,
                rejection_reason=reason if action == ReviewAction.REJECT else None,
            )
        )
        if claimed.rowcount != 1:
            raise InvalidStateError("Update request already processed")

        if action == ReviewAction.APPROVE:
            stmt = update(Project).where(Project.id == deal.id)
            if "funding_goal" in changes:
                # Guard against an investment landing between check and write
                stmt = stmt.where(Project.current_funding <= changes["funding_goal"])
            values = dict(changes)
            if "title" in values:
                values["slug"] = slugify(values["title"])
            if deal.published_at is None:
                values["published_at"] = now
            written = await db.execute(stmt.values(**values))
            if written.rowcount != 1:
                raise ValidationError("Funding goal cannot be below current funding")
        else:
            await db.execute(
                update(Project)
                .where(Project.id == deal.id)
                .values(status=DealStatus.REJECTED.value)
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(update_request)
    await db.refresh(deal)
    logger.info(
        "Update request %s %s by %s (deal %s now %s)",
        request_id,
        target.value,
        reviewer.id,
        deal.id,
        deal.status,
    )

    await _notify_owner(db, deal, action, reason, notifier)
    return update_request


async def _notify_owner(
    db: AsyncSession,
    deal: Project,
    action: ReviewAction,
    reason: str,
    notifier: Optional[NotificationDispatcher],
) -> None:
    owner = await db.get(User, deal.owner_id)
    if owner is None:
        logger.warning("Deal %s has no owner to notify", deal.id)
        return

    approved = action == ReviewAction.APPROVE
    if notifier is not None:
        await notifier.notify(
            "deal_update_approved" if approved else "deal_update_rejected",
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
        "Deal update approved" if approved else "Deal update rejected",
        (
            f'Your changes to "{deal.title}" were approved and are now live.'
            if approved
            else f'Your changes to "{deal.title}" were rejected: {reason}'
        ),
        NotificationType.SUCCESS if approved else NotificationType.WARNING,
        {"deal_id": deal.id},
    )
