"""SQLAlchemy ORM models for the Sahem Invest platform.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- JSON for structured data (no JSONB)
- Numeric(18, 2) for money, read back as Decimal
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from sahem_invest.domain.enums import (
    ApplicationStatus,
    DealStatus,
    InvestmentStatus,
    NotificationType,
    PartnerStatus,
    PartnerTier,
    TransactionStatus,
    UpdateRequestStatus,
    UserRole,
)
from sahem_invest.infra.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


Money = Numeric(18, 2)


# ---------------------------------------------------------------------------
# Auth / User
# ---------------------------------------------------------------------------


class User(Base):
    """Platform account. Investors also carry a wallet."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    role = Column(String(32), nullable=False, default=UserRole.INVESTOR.value)
    wallet_balance = Column(Money, nullable=False, default=Decimal("0"))
    total_invested = Column(Money, nullable=False, default=Decimal("0"))
    total_returns = Column(Money, nullable=False, default=Decimal("0"))
    is_active = Column(Boolean, default=True)
    email_verified = Column(Boolean, default=False)
    needs_password_change = Column(Boolean, default=False)
    # Set and cleared together
    reset_token = Column(String(128), nullable=True, index=True)
    reset_token_expiry = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now)
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    partner_profile = relationship("Partner", back_populates="user", uselist=False)
    deals = relationship("Project", back_populates="owner")
    investments = relationship("Investment", back_populates="investor")


class Partner(Base):
    """Company profile attached to a PARTNER user."""

    __tablename__ = "partners"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), unique=True, nullable=False)
    company_name = Column(String(255), nullable=False)
    contact_name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(String(500), nullable=True)
    website = Column(String(255), nullable=True)
    industry = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=PartnerStatus.PENDING.value)
    tier = Column(String(20), nullable=False, default=PartnerTier.BRONZE.value)
    created_at = Column(DateTime(timezone=True), default=_now)

    user = relationship("User", back_populates="partner_profile")


# ---------------------------------------------------------------------------
# Deals
# ---------------------------------------------------------------------------


class Project(Base):
    """An investment opportunity (deal) owned by a partner."""

    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=_uuid)
    title = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=True, index=True)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    location = Column(String(255), nullable=True)
    funding_goal = Column(Money, nullable=False)
    current_funding = Column(Money, nullable=False, default=Decimal("0"))
    min_investment = Column(Money, nullable=False, default=Decimal("0"))
    expected_return = Column(Numeric(6, 2), nullable=False, default=Decimal("0"))  # percent
    duration = Column(Integer, nullable=True)  # days
    risk_level = Column(String(20), nullable=True)
    highlights = Column(JSON, default=list)
    timeline = Column(JSON, default=list)
    status = Column(String(20), nullable=False, default=DealStatus.DRAFT.value, index=True)
    owner_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)

    # Relationships
    owner = relationship("User", back_populates="deals")
    investments = relationship("Investment", back_populates="project")
    update_requests = relationship("DealUpdateRequest", back_populates="project")


class DealUpdateRequest(Base):
    """Partner-proposed patch to a published deal, gated by admin review."""

    __tablename__ = "deal_update_requests"

    id = Column(String(36), primary_key=True, default=_uuid)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False, index=True)
    requested_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    proposed_changes = Column(JSON, nullable=False)
    changes_summary = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=UpdateRequestStatus.PENDING.value, index=True)
    reviewed_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now)

    # Relationships
    project = relationship("Project", back_populates="update_requests")
    requester = relationship("User", foreign_keys=[requested_by])
    reviewer = relationship("User", foreign_keys=[reviewed_by])


# ---------------------------------------------------------------------------
# Money movement
# ---------------------------------------------------------------------------


class Investment(Base):
    """An investor's position in a deal. ``amount`` never changes after creation."""

    __tablename__ = "investments"

    id = Column(String(36), primary_key=True, default=_uuid)
    investor_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False, index=True)
    amount = Column(Money, nullable=False)
    status = Column(String(20), nullable=False, default=InvestmentStatus.ACTIVE.value)
    expected_return = Column(Money, nullable=False, default=Decimal("0"))
    actual_return = Column(Money, nullable=False, default=Decimal("0"))
    investment_date = Column(DateTime(timezone=True), default=_now)

    investor = relationship("User", back_populates="investments")
    project = relationship("Project", back_populates="investments")


class Transaction(Base):
    """Wallet ledger entry: deposits, withdrawals, investments, returns."""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=TransactionStatus.PENDING.value, index=True)
    amount = Column(Money, nullable=False)
    method = Column(String(20), nullable=True)
    reference = Column(String(64), unique=True, nullable=False)
    description = Column(String(500), nullable=True)
    investment_id = Column(String(36), ForeignKey("investments.id"), nullable=True)
    reviewed_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now)


class ProfitDistribution(Base):
    """One profit payout across every investment in a deal."""

    __tablename__ = "profit_distributions"

    id = Column(String(36), primary_key=True, default=_uuid)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False, index=True)
    distributed_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    total_amount = Column(Money, nullable=False)
    investor_count = Column(Integer, nullable=False, default=0)
    description = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now)


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------


class UserApplication(Base):
    """Investor application awaiting admin review."""

    __tablename__ = "user_applications"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    details = Column(JSON, default=dict)
    status = Column(String(20), nullable=False, default=ApplicationStatus.PENDING.value, index=True)
    rejection_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    reviewed_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now)


class PartnerApplication(Base):
    """Company application to list deals on the platform."""

    __tablename__ = "partner_applications"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), nullable=False, index=True)
    contact_name = Column(String(255), nullable=False)
    company_name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    address = Column(String(500), nullable=True)
    website = Column(String(255), nullable=True)
    industry = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=ApplicationStatus.PENDING.value, index=True)
    rejection_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    reviewed_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now)


# ---------------------------------------------------------------------------
# In-app notifications
# ---------------------------------------------------------------------------


class Notification(Base):
    """Inbox entry shown in the dashboard bell."""

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(20), nullable=False, default=NotificationType.INFO.value)
    read = Column(Boolean, default=False)
    data = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now)
