"""Wallet deposits, withdrawals and finance-team review of pending transfers."""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sahem_invest.domain.enums import (
    NotificationType,
    PaymentMethod,
    ReviewAction,
    TransactionStatus,
    TransactionType,
)
from sahem_invest.domain.errors import (
    InsufficientBalanceError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from sahem_invest.domain.models import Transaction, User
from sahem_invest.domain.permissions import Permission, require_permission
from sahem_invest.services.deal_update_service import coerce_action
from sahem_invest.services.notification_service import NotificationDispatcher, record_in_app
from sahem_invest.services.review_state_machine import ReviewedEntity, ReviewStateMachine

logger = logging.getLogger(__name__)

_state_machine = ReviewStateMachine()

CENTS = Decimal("0.01")
DEPOSIT_METHODS = {PaymentMethod.CASH, PaymentMethod.CARD, PaymentMethod.BANK}
WITHDRAWAL_METHODS = {PaymentMethod.CASH, PaymentMethod.BANK}


def _amount(value) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Amount must be greater than zero")
    return amount.quantize(CENTS)


def _method(value, allowed: set[PaymentMethod]) -> PaymentMethod:
    try:
        method = PaymentMethod(str(getattr(value, "value", value)).upper())
    except ValueError:
        method = None
    if method not in allowed:
        raise ValidationError(
            "Invalid payment method",
            {"allowed": sorted(m.value.lower() for m in allowed)},
        )
    return method


def _reference(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12].upper()}"


async def request_deposit(db: AsyncSession, user: User, amount, method) -> Transaction:
    """Card deposits settle at once; cash and bank wait for finance review."""
    require_permission(user.role, Permission.USE_WALLET)
    value = _amount(amount)
    method = _method(method, DEPOSIT_METHODS)

    instant = method == PaymentMethod.CARD
    transaction = Transaction(
        user_id=user.id,
        type=TransactionType.DEPOSIT.value,
        status=(TransactionStatus.COMPLETED if instant else TransactionStatus.PENDING).value,
        amount=value,
        method=method.value,
        reference=_reference("DEP"),
        description=f"{method.value.title()} deposit",
    )
    db.add(transaction)
    if instant:
        await db.execute(
            update(User)
            .where(User.id == user.id)
            .values(wallet_balance=User.wallet_balance + value)
        )
    await db.commit()
    await db.refresh(user)
    logger.info("Deposit %s (%s, %s) for user %s", transaction.reference, value, transaction.status, user.id)
    return transaction


async def request_withdrawal(db: AsyncSession, user: User, amount, method) -> Transaction:
    """Queue a withdrawal. The balance is only debited on approval."""
    require_permission(user.role, Permission.USE_WALLET)
    value = _amount(amount)
    method = _method(method, WITHDRAWAL_METHODS)

    await db.refresh(user)
    if value > (user.wallet_balance or Decimal("0")):
        raise InsufficientBalanceError(
            "Insufficient wallet balance",
            {"balance": str(user.wallet_balance)},
        )

    transaction = Transaction(
        user_id=user.id,
        type=TransactionType.WITHDRAWAL.value,
        status=TransactionStatus.PENDING.value,
        amount=value,
        method=method.value,
        reference=_reference("WDR"),
        description=f"{method.value.title()} withdrawal",
    )
    db.add(transaction)
    await db.commit()
    logger.info("Withdrawal %s (%s) requested by user %s", transaction.reference, value, user.id)
    return transaction


async def list_transactions(
    db: AsyncSession,
    user: Optional[User] = None,
    status: Optional[TransactionStatus] = None,
) -> list[Transaction]:
    """A user's ledger, or every transaction when ``user`` is None."""
    stmt = select(Transaction)
    if user is not None:
        stmt = stmt.where(Transaction.user_id == user.id)
    if status is not None:
        stmt = stmt.where(Transaction.status == status.value)
    result = await db.execute(stmt.order_by(Transaction.created_at.desc()))
    return list(result.scalars().all())


async def review_transaction(
    db: AsyncSession,
    transaction_id: str,
    reviewer: User,
    action: ReviewAction | str,
    reason: Optional[str] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> Transaction:
    """Approve or reject a pending deposit or withdrawal."""
    require_permission(reviewer.role, Permission.REVIEW_TRANSACTIONS)
    action = coerce_action(action)

    transaction = await db.get(Transaction, transaction_id)
    if transaction is None:
        raise NotFoundError("Transaction not found")
    if transaction.type not in (TransactionType.DEPOSIT.value, TransactionType.WITHDRAWAL.value):
        raise InvalidStateError("Only deposits and withdrawals are reviewed")

    approve = action == ReviewAction.APPROVE
    target = TransactionStatus.COMPLETED if approve else TransactionStatus.REJECTED
    _state_machine.validate_transition(ReviewedEntity.TRANSACTION, transaction.status, target)

    reason = (reason or "").strip()
    if not approve and not reason:
        raise ValidationError("Rejection reason is required")

    try:
        claimed = await db.execute(
            update(Transaction)
            .where(
                Transaction.id == transaction.id,
                Transaction.status == TransactionStatus.PENDING.value,
            )
            .values(
                status=target.value,
                reviewed_by=reviewer.id,
                reviewed_at=datetime.now(timezone.utc),
                rejection_reason=None if approve else reason,
            )
        )
        if claimed.rowcount != 1:
            raise InvalidStateError("Transaction already processed")

        if approve and transaction.type == TransactionType.DEPOSIT.value:
            await db.execute(
                update(User)
                .where(User.id == transaction.user_id)
                .values(wallet_balance=User.wallet_balance + transaction.amount)
            )
        elif approve:
            debited = await db.execute(
                update(User)
                .where(
                    User.id == transaction.user_id,
                    User.wallet_balance >= transaction.amount,
                )
                .values(wallet_balance=User.wallet_balance - transaction.amount)
            )
            if debited.rowcount != 1:
                raise InsufficientBalanceError("Insufficient wallet balance for this withdrawal")
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(transaction)
    owner = await db.get(User, transaction.user_id)
    await db.refresh(owner)
    logger.info("Transaction %s %s by %s", transaction.reference, target.value, reviewer.id)

    kind = transaction.type.lower()
    if notifier is not None:
        params = {
            "name": owner.name,
            "type": kind,
            "amount": transaction.amount,
            "reference": transaction.reference,
        }
        if approve:
            params["new_balance"] = owner.wallet_balance
        else:
            params["reason"] = reason
        await notifier.notify(
            "transaction_approved" if approve else "transaction_rejected",
            owner.email,
            params,
        )
    await record_in_app(
        db,
        owner.id,
        f"{kind.title()} {'approved' if approve else 'rejected'}",
        (
            f"Your {kind} of ${transaction.amount:,.2f} was approved."
            if approve
            else f"Your {kind} of ${transaction.amount:,.2f} was rejected: {reason}"
        ),
        NotificationType.SUCCESS if approve else NotificationType.WARNING,
        {"transaction_id": transaction.id},
    )
    return transaction
