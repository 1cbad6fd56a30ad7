"""Error taxonomy shared by services and the HTTP layer.

Services raise these before mutating anything; ``app.main`` maps them to
JSON responses. Notification failures (DEPENDENCY_FAILURE) are logged and
swallowed by the dispatcher and never reach a caller.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    VALIDATION_ERROR = "validation_error"
    INVALID_STATE = "invalid_state"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    FORBIDDEN = "forbidden"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    BELOW_MINIMUM = "below_minimum"
    EXCEEDS_REMAINING_FUNDING = "exceeds_remaining_funding"
    DEPENDENCY_FAILURE = "dependency_failure"


HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.INVALID_STATE: 400,
    ErrorKind.INSUFFICIENT_BALANCE: 400,
    ErrorKind.BELOW_MINIMUM: 400,
    ErrorKind.EXCEEDS_REMAINING_FUNDING: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.ALREADY_EXISTS: 409,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.DEPENDENCY_FAILURE: 502,
}


class PlatformError(Exception):
    """Base class for every business-rule failure."""

    kind: ErrorKind = ErrorKind.VALIDATION_ERROR

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind.value, "detail": self.message, **self.details}


class ValidationError(PlatformError):
    kind = ErrorKind.VALIDATION_ERROR


class InvalidStateError(PlatformError):
    kind = ErrorKind.INVALID_STATE


class NotFoundError(PlatformError):
    kind = ErrorKind.NOT_FOUND


class AlreadyExistsError(PlatformError):
    kind = ErrorKind.ALREADY_EXISTS


class PermissionDeniedError(PlatformError):
    kind = ErrorKind.FORBIDDEN


class InsufficientBalanceError(PlatformError):
    kind = ErrorKind.INSUFFICIENT_BALANCE


class InvestmentRejectedError(PlatformError):
    """Raised when the investment-limit guard refuses an amount.

    ``kind`` follows the guard decision so the HTTP body names the exact
    reason; ``cap`` is set for EXCEEDS_REMAINING_FUNDING.
    """

    def __init__(self, outcome, message: str):
        from sahem_invest.domain.enums import InvestmentDecision

        self.outcome = outcome
        self.kind = {
            InvestmentDecision.BELOW_MINIMUM: ErrorKind.BELOW_MINIMUM,
            InvestmentDecision.INSUFFICIENT_BALANCE: ErrorKind.INSUFFICIENT_BALANCE,
            InvestmentDecision.EXCEEDS_REMAINING_FUNDING: ErrorKind.EXCEEDS_REMAINING_FUNDING,
        }[outcome.decision]
        details = {}
        if outcome.decision == InvestmentDecision.EXCEEDS_REMAINING_FUNDING:
            details["cap"] = str(outcome.cap)
        super().__init__(message, details)
