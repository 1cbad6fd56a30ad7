"""Investment-limit guard and the invest flow.

``evaluate_investment`` is a pure decision over five decimals. The caller
commits an accepted amount with conditional UPDATEs so the wallet debit, the
funding increment and the Investment insert land together or not at all, and
two investors racing for the last slice of a deal cannot both win.
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from sahem_invest.domain.enums import (
    DealStatus,
    InvestmentDecision,
    InvestmentStatus,
    NotificationType,
    TransactionStatus,
    TransactionType,
)
from sahem_invest.domain.errors import (
    InvalidStateError,
    InvestmentRejectedError,
    NotFoundError,
    ValidationError,
)
from sahem_invest.domain.models import Investment, Project, Transaction, User
from sahem_invest.domain.permissions import Permission, require_permission
from sahem_invest.services.notification_service import NotificationDispatcher, record_in_app

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENTS = Decimal("0.01")

# Deals open to new money
INVESTABLE_STATUSES = (DealStatus.PUBLISHED.value, DealStatus.ACTIVE.value)


class _ConcurrentWrite(Exception):
    """A conditional update matched no row."""


@dataclass(frozen=True)
class InvestmentOutcome:
    decision: InvestmentDecision
    requested: Decimal
    remaining: Decimal
    cap: Decimal

    @property
    def accepted(self) -> bool:
        return self.decision == InvestmentDecision.ACCEPTED

    def to_dict(self) -> dict:
        return {
            "decision": self.decision.value,
            "accepted": self.accepted,
            "requested": str(self.requested),
            "remaining": str(self.remaining),
            "cap": str(self.cap),
        }


def _dec(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}")


def evaluate_investment(
    requested_amount,
    min_investment,
    wallet_balance,
    funding_goal,
    current_funding,
) -> InvestmentOutcome:
    """Decide whether ``requested_amount`` may be invested.

    Checks run in order and the first failure wins: below the deal minimum,
    more than the wallet holds, more than the deal still needs. ``cap`` is the
    most the investor could put in right now (``min(remaining, balance)``);
    an amount equal to the remaining funding is accepted.
    """
    requested = _dec(requested_amount)
    minimum = _dec(min_investment)
    balance = _dec(wallet_balance)
    remaining = max(ZERO, _dec(funding_goal) - _dec(current_funding))
    cap = max(ZERO, min(remaining, balance))

    if requested < minimum:
        decision = InvestmentDecision.BELOW_MINIMUM
    elif requested > balance:
        decision = InvestmentDecision.INSUFFICIENT_BALANCE
    elif requested > remaining:
        decision = InvestmentDecision.EXCEEDS_REMAINING_FUNDING
    else:
        decision = InvestmentDecision.ACCEPTED
    return InvestmentOutcome(decision, requested, remaining, cap)


_MESSAGES = {
    InvestmentDecision.BELOW_MINIMUM: "Minimum investment is ${minimum}",
    InvestmentDecision.INSUFFICIENT_BALANCE: "Insufficient wallet balance",
    InvestmentDecision.EXCEEDS_REMAINING_FUNDING: "Amount exceeds remaining funding. Maximum available: ${cap}",
}


def _rejection(outcome: InvestmentOutcome, deal: Project) -> InvestmentRejectedError:
    message = _MESSAGES[outcome.decision].format(minimum=deal.min_investment, cap=outcome.cap)
    return InvestmentRejectedError(outcome, message)


def _evaluate_for(deal: Project, investor: User, amount: Decimal) -> InvestmentOutcome:
    return evaluate_investment(
        amount,
        deal.min_investment or ZERO,
        investor.wallet_balance or ZERO,
        deal.funding_goal,
        deal.current_funding or ZERO,
    )


def _positive_amount(amount) -> Decimal:
    value = _dec(amount)
    if value <= 0:
        raise ValidationError("Amount must be greater than zero")
    return value.quantize(CENTS)


async def _load_open_deal(db: AsyncSession, deal_id: str) -> Project:
    deal = await db.get(Project, deal_id)
    if deal is None:
        raise NotFoundError("Deal not found")
    if deal.status not in INVESTABLE_STATUSES:
        raise InvalidStateError(f"Deal is {deal.status} and not open for investment")
    return deal


async def preview_investment(db: AsyncSession, deal_id: str, investor: User, amount) -> InvestmentOutcome:
    """Run the guard against current values without changing anything."""
    require_permission(investor.role, Permission.INVEST)
    value = _positive_amount(amount)
    deal = await _load_open_deal(db, deal_id)
    return _evaluate_for(deal, investor, value)


async def commit_investment(
    db: AsyncSession,
    deal_id: str,
    investor: User,
    amount,
    notifier: Optional[NotificationDispatcher] = None,
) -> Investment:
    """Invest ``amount`` from the investor's wallet into the deal.

    Raises:
        PermissionDeniedError: caller cannot invest.
        ValidationError: amount is not positive.
        NotFoundError: deal does not exist.
        InvalidStateError: deal is not PUBLISHED / ACTIVE.
        InvestmentRejectedError: the guard refused the amount.
    """
    require_permission(investor.role, Permission.INVEST)
    value = _positive_amount(amount)
    deal = await _load_open_deal(db, deal_id)

    outcome = _evaluate_for(deal, investor, value)
    if not outcome.accepted:
        raise _rejection(outcome, deal)

    reference = f"INV-{uuid.uuid4().hex[:12].upper()}"
    try:
        debited = await db.execute(
            update(User)
            .where(User.id == investor.id, User.wallet_balance >= value)
            .values(
                wallet_balance=User.wallet_balance - value,
                total_invested=User.total_invested + value,
            )
        )
        funded = await db.execute(
            update(Project)
            .where(
                Project.id == deal.id,
                Project.status.in_(INVESTABLE_STATUSES),
                Project.current_funding + value <= Project.funding_goal,
            )
            .values(current_funding=Project.current_funding + value)
        )
        if debited.rowcount != 1 or funded.rowcount != 1:
            raise _ConcurrentWrite()

        investment = Investment(
            investor_id=investor.id,
            project_id=deal.id,
            amount=value,
            status=InvestmentStatus.ACTIVE.value,
            expected_return=(value * _dec(deal.expected_return or ZERO) / 100).quantize(CENTS),
            actual_return=ZERO,
        )
        db.add(investment)
        await db.flush()

        db.add(
            Transaction(
                user_id=investor.id,
                type=TransactionType.INVESTMENT.value,
                status=TransactionStatus.COMPLETED.value,
                amount=value,
                reference=reference,
                description=f"Investment in {deal.title}",
                investment_id=investment.id,
            )
        )

        await db.execute(
            update(Project)
            .where(
                Project.id == deal.id,
                Project.status.in_(INVESTABLE_STATUSES),
                Project.current_funding >= Project.funding_goal,
            )
            .values(status=DealStatus.FUNDED.value)
        )
        await db.commit()
    except _ConcurrentWrite:
        await db.rollback()
        await db.refresh(investor)
        deal = await _load_open_deal_fresh(db, deal)
        retry = _evaluate_for(deal, investor, value)
        logger.info("Investment by %s in deal %s lost a concurrent write (%s)", investor.id, deal.id, retry.decision.value)
        if retry.accepted:
            # Values moved under us but the amount still fits; let the caller retry
            raise InvalidStateError("Deal changed while investing, please try again")
        raise _rejection(retry, deal)
    except Exception:
        await db.rollback()
        raise

    await db.refresh(investor)
    await db.refresh(deal)
    logger.info("Investor %s invested %s in deal %s (%s)", investor.id, value, deal.id, reference)

    if notifier is not None:
        await notifier.notify(
            "investment_confirmation",
            investor.email,
            {
                "name": investor.name,
                "amount": value,
                "deal_title": deal.title,
                "reference": reference,
            },
        )
    await record_in_app(
        db,
        investor.id,
        "Investment confirmed",
        f"You invested ${value:,.2f} in {deal.title}.",
        NotificationType.SUCCESS,
        {"deal_id": deal.id, "investment_id": investment.id},
    )
    return investment


async def _load_open_deal_fresh(db: AsyncSession, deal: Project) -> Project:
    await db.refresh(deal)
    if deal.status not in INVESTABLE_STATUSES:
        raise InvalidStateError(f"Deal is {deal.status} and not open for investment")
    return deal
