"""Unit tests for the ReviewStateMachine."""

import pytest

from sahem_invest.domain.enums import (
    ApplicationStatus,
    DealStatus,
    TransactionStatus,
    UpdateRequestStatus,
)
from sahem_invest.domain.errors import ErrorKind, InvalidStateError
from sahem_invest.services.review_state_machine import (
    TERMINAL_STATES,
    TRANSITION_MAP,
    InvalidTransitionError,
    ReviewedEntity,
    ReviewStateMachine,
)

E = ReviewedEntity
U = UpdateRequestStatus


@pytest.fixture
def sm():
    return ReviewStateMachine()


# ---------------------------------------------------------------------------
# Test every valid transition in the transition map
# ---------------------------------------------------------------------------


class TestValidTransitions:
    """Every transition defined in TRANSITION_MAP should succeed."""

    @pytest.mark.parametrize(
        "entity,from_status,to_status",
        [
            (entity, from_s, to_s)
            for entity, edges in TRANSITION_MAP.items()
            for from_s, targets in edges.items()
            for to_s in targets
        ],
    )
    def test_all_valid_transitions(self, sm, entity, from_status, to_status):
        assert sm.validate_transition(entity, from_status, to_status) is True

    def test_accepts_enum_members(self, sm):
        assert sm.validate_transition(E.UPDATE_REQUEST, U.PENDING, U.APPROVED) is True


# ---------------------------------------------------------------------------
# Test invalid transitions
# ---------------------------------------------------------------------------


class TestInvalidTransitions:
    @pytest.mark.parametrize("terminal", [U.APPROVED, U.REJECTED])
    @pytest.mark.parametrize("target", [U.APPROVED, U.REJECTED])
    def test_processed_update_request_cannot_be_reviewed_again(self, sm, terminal, target):
        with pytest.raises(InvalidTransitionError) as exc_info:
            sm.validate_transition(E.UPDATE_REQUEST, terminal, target)
        assert "already processed" in str(exc_info.value)
        assert exc_info.value.current_status == terminal.value

    def test_update_request_cannot_go_back_to_pending(self, sm):
        with pytest.raises(InvalidTransitionError):
            sm.validate_transition(E.UPDATE_REQUEST, U.PENDING, U.PENDING)

    def test_application_in_progress_cannot_return_to_pending(self, sm):
        with pytest.raises(InvalidTransitionError):
            sm.validate_transition(
                E.APPLICATION, ApplicationStatus.IN_PROGRESS, ApplicationStatus.PENDING
            )

    def test_active_deal_is_not_awaiting_review(self, sm):
        with pytest.raises(InvalidTransitionError) as exc_info:
            sm.validate_transition(E.DEAL, DealStatus.ACTIVE, DealStatus.REJECTED)
        assert "not awaiting review" in exc_info.value.message

    def test_completed_transaction_is_terminal(self, sm):
        with pytest.raises(InvalidTransitionError):
            sm.validate_transition(
                E.TRANSACTION, TransactionStatus.COMPLETED, TransactionStatus.REJECTED
            )

    def test_error_is_an_invalid_state_error(self, sm):
        with pytest.raises(InvalidStateError) as exc_info:
            sm.validate_transition(E.UPDATE_REQUEST, U.APPROVED, U.REJECTED)
        assert exc_info.value.kind == ErrorKind.INVALID_STATE
        assert exc_info.value.to_dict()["target_status"] == U.REJECTED.value


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_allowed_transitions_from_pending_request(self, sm):
        assert sm.get_allowed_transitions(E.UPDATE_REQUEST, U.PENDING) == ["APPROVED", "REJECTED"]

    def test_no_transitions_out_of_terminal_states(self, sm):
        for entity, states in TERMINAL_STATES.items():
            for state in states:
                assert sm.get_allowed_transitions(entity, state) == []
                assert sm.is_terminal(entity, state)

    def test_pending_is_not_terminal(self, sm):
        assert not sm.is_terminal(E.UPDATE_REQUEST, U.PENDING)
        assert not sm.is_terminal(E.APPLICATION, ApplicationStatus.PENDING)
