"""Review state machine: validates status transitions of reviewed records.

Covers deal update requests, investor/partner applications, the initial
publication review of a deal, and pending wallet transactions. Terminal
states have no outgoing transitions.
"""

from enum import Enum

from sahem_invest.domain.enums import (
    ApplicationStatus,
    DealStatus,
    TransactionStatus,
    UpdateRequestStatus,
)
from sahem_invest.domain.errors import InvalidStateError


class ReviewedEntity(str, Enum):
    UPDATE_REQUEST = "update_request"
    APPLICATION = "application"
    DEAL = "deal"
    TRANSACTION = "transaction"


class InvalidTransitionError(InvalidStateError):
    """Raised when a review transition is not allowed."""

    def __init__(self, entity: ReviewedEntity, current_status: str, target_status: str, reason: str):
        self.entity = entity
        self.current_status = current_status
        self.target_status = target_status
        self.reason = reason
        super().__init__(
            reason,
            {"current_status": current_status, "target_status": target_status},
        )


# ---------------------------------------------------------------------------
# Transition maps: from_status -> set of allowed to_status
# ---------------------------------------------------------------------------

U = UpdateRequestStatus
AS = ApplicationStatus
D = DealStatus
T = TransactionStatus

TRANSITION_MAP: dict[ReviewedEntity, dict[str, set[str]]] = {
    ReviewedEntity.UPDATE_REQUEST: {
        U.PENDING.value: {U.APPROVED.value, U.REJECTED.value},
    },
    ReviewedEntity.APPLICATION: {
        AS.PENDING.value: {AS.IN_PROGRESS.value, AS.APPROVED.value, AS.REJECTED.value},
        AS.IN_PROGRESS.value: {AS.APPROVED.value, AS.REJECTED.value},
    },
    ReviewedEntity.DEAL: {
        D.PENDING.value: {D.ACTIVE.value, D.REJECTED.value},
        D.REJECTED.value: {D.PENDING.value},
    },
    ReviewedEntity.TRANSACTION: {
        T.PENDING.value: {T.COMPLETED.value, T.REJECTED.value},
    },
}

TERMINAL_STATES: dict[ReviewedEntity, set[str]] = {
    ReviewedEntity.UPDATE_REQUEST: {U.APPROVED.value, U.REJECTED.value},
    ReviewedEntity.APPLICATION: {AS.APPROVED.value, AS.REJECTED.value},
    ReviewedEntity.TRANSACTION: {T.COMPLETED.value, T.REJECTED.value},
    # Deals keep living after review; only the review edges are modelled here.
    ReviewedEntity.DEAL: set(),
}

_LABELS = {
    ReviewedEntity.UPDATE_REQUEST: "Update request",
    ReviewedEntity.APPLICATION: "Application",
    ReviewedEntity.DEAL: "Deal",
    ReviewedEntity.TRANSACTION: "Transaction",
}


def _value(status) -> str:
    return status.value if isinstance(status, Enum) else str(status)


class ReviewStateMachine:
    """Validates review transitions for every reviewed entity type."""

    def validate_transition(self, entity: ReviewedEntity, current_status, target_status) -> bool:
        """Return True if the transition is valid. Raise InvalidTransitionError if not."""
        current = _value(current_status)
        target = _value(target_status)
        label = _LABELS[entity]

        if current in TERMINAL_STATES[entity]:
            raise InvalidTransitionError(
                entity, current, target, f"{label} already processed ({current})"
            )

        allowed = TRANSITION_MAP[entity].get(current)
        if not allowed:
            raise InvalidTransitionError(
                entity, current, target, f"{label} in status {current} is not awaiting review"
            )

        if target not in allowed:
            raise InvalidTransitionError(
                entity,
                current,
                target,
                f"{label} cannot move from {current} to {target}",
            )
        return True

    def get_allowed_transitions(self, entity: ReviewedEntity, current_status) -> list[str]:
        """Return the sorted list of valid next states."""
        return sorted(TRANSITION_MAP[entity].get(_value(current_status), set()))

    def is_terminal(self, entity: ReviewedEntity, status) -> bool:
        return _value(status) in TERMINAL_STATES[entity]
