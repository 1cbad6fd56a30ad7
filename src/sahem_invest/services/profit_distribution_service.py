"""Pro rata profit payouts from a deal to its investors."""

import logging
import uuid
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sahem_invest.domain.enums import (
    InvestmentStatus,
    NotificationType,
    TransactionStatus,
    TransactionType,
)
from sahem_invest.domain.errors import InvalidStateError, NotFoundError, ValidationError
from sahem_invest.domain.models import Investment, ProfitDistribution, Project, Transaction, User
from sahem_invest.domain.permissions import Permission, require_permission
from sahem_invest.services.notification_service import NotificationDispatcher, record_in_app

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


@dataclass
class Payout:
    investment_id: str
    investor_id: str
    amount: Decimal
    reference: str = ""


@dataclass
class DistributionResult:
    distribution: ProfitDistribution
    payouts: list[Payout] = field(default_factory=list)


def split_pro_rata(total: Decimal, investments: list[Investment]) -> list[Payout]:
    """Split ``total`` by investment amount, rounded down to cents.

    The leftover cents go to the largest holder so the shares add up to
    ``total`` exactly.
    """
    stake = sum((inv.amount for inv in investments), Decimal("0"))
    if stake <= 0:
        raise InvalidStateError("Deal has no invested capital to distribute against")

    payouts = [
        Payout(inv.id, inv.investor_id, (total * inv.amount / stake).quantize(CENTS, rounding=ROUND_DOWN))
        for inv in investments
    ]
    remainder = total - sum((p.amount for p in payouts), Decimal("0"))
    if remainder:
        largest = max(range(len(investments)), key=lambda i: investments[i].amount)
        payouts[largest].amount += remainder
    return payouts


async def distribute_profit(
    db: AsyncSession,
    deal_id: str,
    distributor: User,
    total_amount,
    description: Optional[str] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> DistributionResult:
    """Credit every active investment in the deal with its share of ``total_amount``."""
    require_permission(distributor.role, Permission.DISTRIBUTE_PROFITS)
    try:
        total = Decimal(str(total_amount))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {total_amount!r}")
    if not total.is_finite() or total <= 0:
        raise ValidationError("Distribution amount must be greater than zero")
    total = total.quantize(CENTS)

    deal = await db.get(Project, deal_id)
    if deal is None:
        raise NotFoundError("Deal not found")

    result = await db.execute(
        select(Investment)
        .where(
            Investment.project_id == deal.id,
            Investment.status == InvestmentStatus.ACTIVE.value,
        )
        .order_by(Investment.investment_date)
    )
    investments = list(result.scalars().all())
    if not investments:
        raise InvalidStateError("Deal has no active investments")

    payouts = split_pro_rata(total, investments)

    try:
        distribution = ProfitDistribution(
            project_id=deal.id,
            distributed_by=distributor.id,
            total_amount=total,
            investor_count=len({p.investor_id for p in payouts}),
            description=description or f"Profit distribution for {deal.title}",
        )
        db.add(distribution)

        for payout in payouts:
            if payout.amount <= 0:
                continue
            payout.reference = f"RET-{uuid.uuid4().hex[:12].upper()}"
            await db.execute(
                update(Investment)
                .where(Investment.id == payout.investment_id)
                .values(actual_return=Investment.actual_return + payout.amount)
            )
            await db.execute(
                update(User)
                .where(User.id == payout.investor_id)
                .values(
                    wallet_balance=User.wallet_balance + payout.amount,
                    total_returns=User.total_returns + payout.amount,
                )
            )
            db.add(
                Transaction(
                    user_id=payout.investor_id,
                    type=TransactionType.RETURN.value,
                    status=TransactionStatus.COMPLETED.value,
                    amount=payout.amount,
                    reference=payout.reference,
                    description=f"Return from {deal.title}",
                    investment_id=payout.investment_id,
                )
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(distribution)
    logger.info(
        "Distributed %s across %d investments in deal %s (by %s)",
        total,
        len(payouts),
        deal.id,
        distributor.id,
    )

    for payout in payouts:
        if payout.amount <= 0:
            continue
        investor = await db.get(User, payout.investor_id)
        if investor is None:
            continue
        if notifier is not None:
            await notifier.notify(
                "return_payment",
                investor.email,
                {
                    "name": investor.name,
                    "amount": payout.amount,
                    "deal_title": deal.title,
                    "reference": payout.reference,
                },
            )
        await record_in_app(
            db,
            investor.id,
            "Return credited",
            f"${payout.amount:,.2f} from {deal.title} was added to your wallet.",
            NotificationType.SUCCESS,
            {"deal_id": deal.id, "investment_id": payout.investment_id},
        )
    return DistributionResult(distribution, payouts)
