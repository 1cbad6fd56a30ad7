"""Tests for the investment-limit guard and the invest flow."""

from decimal import Decimal

import pytest
from sqlalchemy import select, update

from sahem_invest.domain.enums import (
    DealStatus,
    InvestmentDecision,
    TransactionType,
    UserRole,
)
from sahem_invest.domain.errors import (
    ErrorKind,
    InvalidStateError,
    InvestmentRejectedError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from sahem_invest.domain.models import Investment, Project, Transaction
from sahem_invest.services.investment_service import (
    commit_investment,
    evaluate_investment,
    preview_investment,
)

D = InvestmentDecision


# ---------------------------------------------------------------------------
# Pure guard
# ---------------------------------------------------------------------------


class TestEvaluateInvestment:
    def test_below_minimum(self):
        outcome = evaluate_investment(500, 1000, 5000, 10000, 0)
        assert outcome.decision == D.BELOW_MINIMUM
        assert not outcome.accepted

    def test_insufficient_balance(self):
        outcome = evaluate_investment(2000, 1000, 1500, 10000, 0)
        assert outcome.decision == D.INSUFFICIENT_BALANCE

    def test_exceeds_remaining_reports_cap(self):
        outcome = evaluate_investment(9000, 1000, 20000, 10000, 8000)
        assert outcome.decision == D.EXCEEDS_REMAINING_FUNDING
        assert outcome.cap == Decimal("2000")
        assert outcome.remaining == Decimal("2000")

    def test_exactly_remaining_is_accepted(self):
        outcome = evaluate_investment(2000, 1000, 20000, 10000, 8000)
        assert outcome.decision == D.ACCEPTED
        assert outcome.accepted

    def test_amount_equal_to_remaining_and_balance_is_accepted(self):
        assert evaluate_investment(2000, 1000, 2000, 10000, 8000).accepted

    def test_minimum_checked_before_balance(self):
        outcome = evaluate_investment(500, 1000, 100, 10000, 9900)
        assert outcome.decision == D.BELOW_MINIMUM

    def test_balance_checked_before_remaining(self):
        outcome = evaluate_investment(5000, 1000, 3000, 10000, 8000)
        assert outcome.decision == D.INSUFFICIENT_BALANCE
        assert outcome.cap == Decimal("2000")

    def test_cap_limited_by_balance(self):
        outcome = evaluate_investment(3000, 1000, 2500, 10000, 0)
        assert outcome.cap == Decimal("2500")

    def test_overfunded_deal_has_no_room(self):
        outcome = evaluate_investment(1000, 1000, 5000, 10000, 12000)
        assert outcome.remaining == Decimal("0")
        assert outcome.cap == Decimal("0")
        assert outcome.decision == D.EXCEEDS_REMAINING_FUNDING

    def test_decimal_inputs_avoid_float_drift(self):
        outcome = evaluate_investment("0.30", "0.10", "0.30", "0.30", "0.00")
        assert outcome.accepted

    def test_to_dict(self):
        data = evaluate_investment(9000, 1000, 20000, 10000, 8000).to_dict()
        assert data == {
            "decision": "EXCEEDS_REMAINING_FUNDING",
            "accepted": False,
            "requested": "9000",
            "remaining": "2000",
            "cap": "2000",
        }


# ---------------------------------------------------------------------------
# Invest flow
# ---------------------------------------------------------------------------


class TestCommitInvestment:
    async def test_accepted_investment_moves_money_atomically(
        self, db_session, make_user, make_deal, notifier
    ):
        investor = await make_user(wallet_balance="5000")
        deal = await make_deal(funding_goal="10000", current_funding="2000", expected_return="10")

        investment = await commit_investment(db_session, deal.id, investor, "3000", notifier)

        assert investment.amount == Decimal("3000")
        assert investment.expected_return == Decimal("300")
        assert investment.status == "ACTIVE"
        assert investor.wallet_balance == Decimal("2000")
        assert investor.total_invested == Decimal("3000")
        assert deal.current_funding == Decimal("5000")
        assert deal.status == DealStatus.ACTIVE.value

        ledger = (await db_session.execute(select(Transaction))).scalars().all()
        assert len(ledger) == 1
        assert ledger[0].type == TransactionType.INVESTMENT.value
        assert ledger[0].investment_id == investment.id
        assert ledger[0].reference.startswith("INV-")

        template, recipient, params = notifier.notify.await_args.args
        assert template == "investment_confirmation"
        assert recipient == investor.email
        assert params["reference"] == ledger[0].reference

    async def test_reaching_goal_marks_deal_funded(self, db_session, make_user, make_deal):
        investor = await make_user(wallet_balance="20000")
        deal = await make_deal(funding_goal="10000", current_funding="8000")

        await commit_investment(db_session, deal.id, investor, 2000)

        assert deal.current_funding == Decimal("10000")
        assert deal.status == DealStatus.FUNDED.value

    async def test_exceeding_remaining_raises_with_cap(self, db_session, make_user, make_deal):
        investor = await make_user(wallet_balance="20000")
        deal = await make_deal(funding_goal="10000", current_funding="8000")

        with pytest.raises(InvestmentRejectedError) as exc_info:
            await commit_investment(db_session, deal.id, investor, 9000)

        error = exc_info.value
        assert error.kind == ErrorKind.EXCEEDS_REMAINING_FUNDING
        assert error.to_dict()["cap"] == "2000"
        assert error.status_code == 400
        await db_session.refresh(investor)
        await db_session.refresh(deal)
        assert investor.wallet_balance == Decimal("20000")
        assert deal.current_funding == Decimal("8000")
        assert (await db_session.execute(select(Investment))).scalars().all() == []

    async def test_insufficient_balance(self, db_session, make_user, make_deal):
        investor = await make_user(wallet_balance="1500")
        deal = await make_deal()

        with pytest.raises(InvestmentRejectedError) as exc_info:
            await commit_investment(db_session, deal.id, investor, 2000)
        assert exc_info.value.kind == ErrorKind.INSUFFICIENT_BALANCE

    async def test_below_minimum(self, db_session, make_user, make_deal):
        investor = await make_user(wallet_balance="5000")
        deal = await make_deal(min_investment="1000")

        with pytest.raises(InvestmentRejectedError) as exc_info:
            await commit_investment(db_session, deal.id, investor, 500)
        assert exc_info.value.kind == ErrorKind.BELOW_MINIMUM

    async def test_concurrent_writer_is_caught_by_conditional_update(
        self, db_session, make_user, make_deal
    ):
        investor = await make_user(wallet_balance="5000")
        deal = await make_deal(funding_goal="10000", current_funding="8000")
        # Another investor takes the last 2000 behind this session's back,
        # leaving the in-memory deal stale at 8000
        await db_session.execute(
            update(Project)
            .where(Project.id == deal.id)
            .values(current_funding=Decimal("10000"))
            .execution_options(synchronize_session=False)
        )
        await db_session.commit()

        with pytest.raises(InvestmentRejectedError) as exc_info:
            await commit_investment(db_session, deal.id, investor, 2000)

        assert exc_info.value.kind == ErrorKind.EXCEEDS_REMAINING_FUNDING
        await db_session.refresh(investor)
        assert investor.wallet_balance == Decimal("5000")
        assert (await db_session.execute(select(Transaction))).scalars().all() == []

    @pytest.mark.parametrize("amount", [0, -100, "abc"])
    async def test_non_positive_amount(self, db_session, make_user, make_deal, amount):
        investor = await make_user(wallet_balance="5000")
        deal = await make_deal()

        with pytest.raises(ValidationError):
            await commit_investment(db_session, deal.id, investor, amount)

    @pytest.mark.parametrize("status", [DealStatus.PENDING, DealStatus.FUNDED, DealStatus.COMPLETED])
    async def test_closed_deal(self, db_session, make_user, make_deal, status):
        investor = await make_user(wallet_balance="5000")
        deal = await make_deal(status=status)

        with pytest.raises(InvalidStateError):
            await commit_investment(db_session, deal.id, investor, 1000)

    async def test_missing_deal(self, db_session, make_user):
        investor = await make_user(wallet_balance="5000")

        with pytest.raises(NotFoundError):
            await commit_investment(db_session, "missing", investor, 1000)

    async def test_partner_cannot_invest(self, db_session, make_user, make_deal):
        partner = await make_user(role=UserRole.PARTNER, wallet_balance="5000")
        deal = await make_deal()

        with pytest.raises(PermissionDeniedError):
            await commit_investment(db_session, deal.id, partner, 1000)


class TestPreviewInvestment:
    async def test_preview_does_not_mutate(self, db_session, make_user, make_deal):
        investor = await make_user(wallet_balance="20000")
        deal = await make_deal(funding_goal="10000", current_funding="8000")

        outcome = await preview_investment(db_session, deal.id, investor, 9000)

        assert outcome.decision == D.EXCEEDS_REMAINING_FUNDING
        assert outcome.cap == Decimal("2000")
        await db_session.refresh(deal)
        assert deal.current_funding == Decimal("8000")
