"""Domain enumerations for the Sahem Invest platform.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
Values match the upper-case identifiers stored in the database.
"""

from enum import Enum


class UserRole(str, Enum):
    """Platform roles. Each role maps to a fixed permission set."""

    ADMIN = "ADMIN"
    DEAL_MANAGER = "DEAL_MANAGER"
    FINANCIAL_OFFICER = "FINANCIAL_OFFICER"
    PORTFOLIO_ADVISOR = "PORTFOLIO_ADVISOR"
    INVESTOR = "INVESTOR"
    PARTNER = "PARTNER"


class DealStatus(str, Enum):
    """Lifecycle of a deal (Project)."""

    DRAFT = "DRAFT"
    PENDING = "PENDING"
    PUBLISHED = "PUBLISHED"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    FUNDED = "FUNDED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


class UpdateRequestStatus(str, Enum):
    """Status of a partner-submitted deal update request."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ApplicationStatus(str, Enum):
    """Status of an investor or partner application."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ApplicationKind(str, Enum):
    """Which application table a review targets."""

    INVESTOR = "investor"
    PARTNER = "partner"


class ReviewAction(str, Enum):
    """Reviewer decision on a pending item."""

    APPROVE = "approve"
    REJECT = "reject"


class InvestmentStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class InvestmentDecision(str, Enum):
    """Outcome of the investment-limit guard."""

    ACCEPTED = "ACCEPTED"
    BELOW_MINIMUM = "BELOW_MINIMUM"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    EXCEEDS_REMAINING_FUNDING = "EXCEEDS_REMAINING_FUNDING"


class TransactionType(str, Enum):
    """Types of wallet ledger entries."""

    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    INVESTMENT = "INVESTMENT"
    RETURN = "RETURN"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class PaymentMethod(str, Enum):
    """How money enters or leaves a wallet."""

    CASH = "CASH"
    CARD = "CARD"
    BANK = "BANK"


class PartnerStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class PartnerTier(str, Enum):
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"
    PLATINUM = "PLATINUM"


class NotificationType(str, Enum):
    """Display flavour of an in-app notification."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class TimelineEntryStatus(str, Enum):
    COMPLETED = "completed"
    CURRENT = "current"
    UPCOMING = "upcoming"


class TimelineEntryType(str, Enum):
    MILESTONE = "milestone"
    FUNDING = "funding"
    BUSINESS = "business"
    COMPLETION = "completion"
