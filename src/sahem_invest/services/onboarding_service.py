"""Onboarding: application intake, application review and account issuing.

An approved application turns into a live account with a one-time password.
Only the bcrypt hash is stored; the plaintext leaves the process exactly once,
in the welcome email. The account is kept even if that email fails, so an
admin can resend credentials by hand.
"""

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sahem_invest.app.config import get_settings
from sahem_invest.domain.enums import (
    ApplicationKind,
    ApplicationStatus,
    PartnerStatus,
    PartnerTier,
    UserRole,
)
from sahem_invest.domain.errors import (
    AlreadyExistsError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from sahem_invest.domain.models import Partner, PartnerApplication, User, UserApplication
from sahem_invest.domain.permissions import Permission, require_permission
from sahem_invest.services.auth_service import get_user_by_email, hash_password, normalize_email
from sahem_invest.services.notification_service import NotificationDispatcher
from sahem_invest.services.review_state_machine import ReviewedEntity, ReviewStateMachine

logger = logging.getLogger(__name__)

UPPERCASE = string.ascii_uppercase
LOWERCASE = string.ascii_lowercase
DIGITS = string.digits
SYMBOLS = "!@#$%^&*"
PASSWORD_ALPHABET = UPPERCASE + LOWERCASE + DIGITS + SYMBOLS
MIN_TEMPORARY_PASSWORD_LENGTH = 12

_rng = secrets.SystemRandom()
_state_machine = ReviewStateMachine()

APPLICATION_MODELS = {
    ApplicationKind.INVESTOR: UserApplication,
    ApplicationKind.PARTNER: PartnerApplication,
}

# Role granted to the account created when an application is approved
APPLICATION_ROLES = {
    ApplicationKind.INVESTOR: UserRole.INVESTOR,
    ApplicationKind.PARTNER: UserRole.PARTNER,
}


def generate_temporary_password(length: int = MIN_TEMPORARY_PASSWORD_LENGTH) -> str:
    """Return a shuffled password with at least one upper, lower, digit and symbol."""
    if length < MIN_TEMPORARY_PASSWORD_LENGTH:
        raise ValueError(f"Temporary passwords must be at least {MIN_TEMPORARY_PASSWORD_LENGTH} characters")

    chars = [
        _rng.choice(UPPERCASE),
        _rng.choice(LOWERCASE),
        _rng.choice(DIGITS),
        _rng.choice(SYMBOLS),
    ]
    chars.extend(_rng.choice(PASSWORD_ALPHABET) for _ in range(length - len(chars)))
    _rng.shuffle(chars)
    return "".join(chars)


async def issue_account_from_application(
    db: AsyncSession,
    email: str,
    name: str,
    role: UserRole,
    application_id: str,
    notifier: Optional[NotificationDispatcher] = None,
    phone: Optional[str] = None,
    partner_profile: Optional[dict] = None,
) -> User:
    """Create the account for an approved application and send credentials.

    Raises:
        AlreadyExistsError: if a user with exactly this email exists.
    """
    email = normalize_email(email)
    if await get_user_by_email(db, email):
        raise AlreadyExistsError("User already exists", {"email": email})

    settings = get_settings()
    temporary_password = generate_temporary_password(
        max(settings.temporary_password_length, MIN_TEMPORARY_PASSWORD_LENGTH)
    )

    user = User(
        email=email,
        name=name,
        phone=phone,
        role=UserRole(role).value,
        password_hash=hash_password(temporary_password),
        email_verified=True,  # admin approval stands in for verification
        is_active=True,
        needs_password_change=True,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race against a concurrent approval for the same email
        await db.rollback()
        raise AlreadyExistsError("User already exists", {"email": email})

    logger.info("Issued %s account %s from application %s", user.role, user.id, application_id)

    if partner_profile is not None:
        await _create_partner_profile(db, user, partner_profile)

    if notifier is not None:
        await notifier.notify(
            "welcome",
            user.email,
            {
                "name": user.name,
                "email": user.email,
                "temporary_password": temporary_password,
                "role": user.role,
                "login_url": settings.login_url,
            },
        )
    return user


async def _create_partner_profile(db: AsyncSession, user: User, profile: dict) -> Optional[Partner]:
    """Attach a PENDING/BRONZE partner profile. Failure keeps the user."""
    try:
        partner = Partner(
            user_id=user.id,
            company_name=profile.get("company_name"),
            contact_name=profile.get("contact_name") or user.name,
            phone=profile.get("phone"),
            address=profile.get("address"),
            website=profile.get("website"),
            industry=profile.get("industry"),
            description=profile.get("description"),
            status=PartnerStatus.PENDING.value,
            tier=PartnerTier.BRONZE.value,
        )
        db.add(partner)
        await db.commit()
        return partner
    except Exception:
        await db.rollback()
        await db.refresh(user)
        logger.exception("Failed to create partner profile for user %s", user.id)
        return None


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------


@dataclass
class ApplicationReviewResult:
    application: UserApplication | PartnerApplication
    user: Optional[User] = None


async def submit_application(db: AsyncSession, kind: ApplicationKind, data: dict):
    """Create a PENDING application. One open application per email."""
    model = APPLICATION_MODELS[kind]
    email = normalize_email(data.get("email", ""))
    if not email:
        raise ValidationError("Email is required")

    if await get_user_by_email(db, email):
        raise AlreadyExistsError("An account with this email already exists")

    result = await db.execute(
        select(model).where(
            model.email == email,
            model.status.in_([ApplicationStatus.PENDING.value, ApplicationStatus.IN_PROGRESS.value]),
        )
    )
    if result.scalars().first() is not None:
        raise AlreadyExistsError("An application for this email is already under review")

    application = model(**{**data, "email": email, "status": ApplicationStatus.PENDING.value})
    db.add(application)
    await db.commit()
    logger.info("New %s application %s", kind.value, application.id)
    return application


async def list_applications(db: AsyncSession, kind: ApplicationKind, status: Optional[ApplicationStatus] = None):
    model = APPLICATION_MODELS[kind]
    stmt = select(model)
    if status is not None:
        stmt = stmt.where(model.status == status.value)
    result = await db.execute(stmt.order_by(model.created_at.desc()))
    return list(result.scalars().all())


async def review_application(
    db: AsyncSession,
    kind: ApplicationKind,
    application_id: str,
    reviewer: User,
    status: ApplicationStatus,
    rejection_reason: Optional[str] = None,
    notes: Optional[str] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> ApplicationReviewResult:
    """Move an application through review; approval issues the account."""
    require_permission(reviewer.role, Permission.REVIEW_APPLICATIONS)

    model = APPLICATION_MODELS[kind]
    application = await db.get(model, application_id)
    if application is None:
        raise NotFoundError("Application not found")

    current = application.status
    _state_machine.validate_transition(ReviewedEntity.APPLICATION, current, status)

    reason = (rejection_reason or "").strip()
    if status == ApplicationStatus.REJECTED and not reason:
        raise ValidationError("Rejection reason is required when rejecting an application")

    claimed = await db.execute(
        update(model)
        .where(model.id == application_id, model.status == current)
        .values(
            status=status.value,
            rejection_reason=reason if status == ApplicationStatus.REJECTED else None,
            notes=notes or reason or None,
            reviewed_by=reviewer.id,
            reviewed_at=datetime.now(timezone.utc),
        )
    )
    if claimed.rowcount != 1:
        await db.rollback()
        raise InvalidStateError("Application already processed", {"application_id": application_id})
    await db.commit()
    await db.refresh(application)
    logger.info("%s application %s -> %s by %s", kind.value, application_id, status.value, reviewer.id)

    if status != ApplicationStatus.APPROVED:
        return ApplicationReviewResult(application)

    if kind == ApplicationKind.PARTNER:
        name = application.contact_name
        profile = {
            "company_name": application.company_name,
            "contact_name": application.contact_name,
            "phone": application.phone,
            "address": application.address,
            "website": application.website,
            "industry": application.industry,
            "description": application.description,
        }
    else:
        name = application.name
        profile = None

    try:
        user = await issue_account_from_application(
            db,
            email=application.email,
            name=name,
            role=APPLICATION_ROLES[kind],
            application_id=application.id,
            notifier=notifier,
            phone=application.phone,
            partner_profile=profile,
        )
    except AlreadyExistsError:
        logger.warning("Application %s approved but an account for its email already exists", application_id)
        return ApplicationReviewResult(application)
    return ApplicationReviewResult(application, user)
