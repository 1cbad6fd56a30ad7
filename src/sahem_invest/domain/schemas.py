"""Pydantic v2 schemas for API request/response validation."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class UserLogin(BaseModel):
    """Schema for user login."""

    email: str
    password: str


class UserResponse(BaseModel):
    """Schema for user API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str
    role: str
    phone: str | None = None
    wallet_balance: Decimal = Decimal("0")
    total_invested: Decimal = Decimal("0")
    total_returns: Decimal = Decimal("0")
    is_active: bool
    email_verified: bool
    needs_password_change: bool = False


class TokenResponse(BaseModel):
    """Schema for JWT token responses."""

    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str
    confirm_password: str


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str
    confirm_password: str


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str


# ---------------------------------------------------------------------------
# Deals
# ---------------------------------------------------------------------------


class DealCreate(BaseModel):
    """Schema for creating a deal."""

    title: str
    description: str | None = None
    category: str | None = None
    location: str | None = None
    funding_goal: Decimal
    min_investment: Decimal = Decimal("0")
    expected_return: Decimal = Decimal("0")
    duration: int | None = None
    risk_level: str | None = None
    highlights: list[str] = Field(default_factory=list)
    status: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    owner_id: str | None = None


class DealUpdate(BaseModel):
    """Partial deal edit. Only the fields that were sent are applied."""

    title: str | None = None
    description: str | None = None
    category: str | None = None
    location: str | None = None
    funding_goal: Decimal | None = None
    min_investment: Decimal | None = None
    expected_return: Decimal | None = None
    duration: int | None = None
    risk_level: str | None = None
    highlights: list[str] | None = None
    status: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


class DealResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    slug: str | None = None
    description: str | None = None
    category: str | None = None
    location: str | None = None
    funding_goal: Decimal
    current_funding: Decimal
    min_investment: Decimal
    expected_return: Decimal
    duration: int | None = None
    risk_level: str | None = None
    highlights: list[Any] | None = None
    timeline: list[dict] | None = None
    status: str
    owner_id: str
    start_date: datetime | None = None
    end_date: datetime | None = None
    published_at: datetime | None = None
    created_at: datetime | None = None


class DealEditResponse(BaseModel):
    """Result of a deal edit: either applied, or queued for review."""

    deal: DealResponse
    requires_approval: bool
    update_request_id: str | None = None
    message: str


class TimelineEntryCreate(BaseModel):
    title: str
    description: str | None = None
    date: datetime | None = None
    status: str | None = None
    type: str | None = None


class ReviewDecision(BaseModel):
    """Approve / reject body shared by the admin review endpoints."""

    action: str
    reason: str | None = None


# ---------------------------------------------------------------------------
# Deal update requests
# ---------------------------------------------------------------------------


class DealUpdateRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    requested_by: str
    proposed_changes: dict
    changes_summary: str | None = None
    status: str
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime | None = None


class DealUpdateReview(BaseModel):
    action: str
    rejection_reason: str | None = None


# ---------------------------------------------------------------------------
# Investments
# ---------------------------------------------------------------------------


class InvestRequest(BaseModel):
    amount: Decimal


class InvestmentPreviewResponse(BaseModel):
    decision: str
    accepted: bool
    requested: Decimal
    remaining: Decimal
    cap: Decimal


class InvestmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    investor_id: str
    project_id: str
    amount: Decimal
    status: str
    expected_return: Decimal
    actual_return: Decimal
    investment_date: datetime | None = None


# ---------------------------------------------------------------------------
# Wallet
# ---------------------------------------------------------------------------


class WalletRequest(BaseModel):
    amount: Decimal
    method: str


class WalletBalanceResponse(BaseModel):
    balance: Decimal
    total_invested: Decimal
    total_returns: Decimal


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    type: str
    status: str
    amount: Decimal
    method: str | None = None
    reference: str
    description: str | None = None
    investment_id: str | None = None
    rejection_reason: str | None = None
    created_at: datetime | None = None


class DistributionRequest(BaseModel):
    total_amount: Decimal
    description: str | None = None


class DistributionResponse(BaseModel):
    id: str
    project_id: str
    total_amount: Decimal
    investor_count: int
    payouts: list[dict]


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------


class InvestorApplicationCreate(BaseModel):
    email: str
    name: str
    phone: str | None = None
    details: dict = Field(default_factory=dict)


class PartnerApplicationCreate(BaseModel):
    email: str
    contact_name: str
    company_name: str
    phone: str | None = None
    address: str | None = None
    website: str | None = None
    industry: str | None = None
    description: str | None = None


class ApplicationResponse(BaseModel):
    """Investor or partner application; partner-only fields stay empty for investors."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str | None = None
    contact_name: str | None = None
    company_name: str | None = None
    phone: str | None = None
    status: str
    rejection_reason: str | None = None
    notes: str | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    created_at: datetime | None = None


class ApplicationReview(BaseModel):
    status: str
    rejection_reason: str | None = None
    notes: str | None = None


class ApplicationReviewResponse(BaseModel):
    application: ApplicationResponse
    user_id: str | None = None


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    message: str
    type: str
    read: bool
    data: dict | None = None
    created_at: datetime | None = None
