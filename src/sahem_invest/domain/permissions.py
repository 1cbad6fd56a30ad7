"""Role -> permission table.

Built once at import as an enum-keyed read-only mapping of frozensets; no
code path can grant a role extra permissions at runtime.
"""

from enum import Enum
from types import MappingProxyType
from typing import Mapping

from sahem_invest.domain.enums import UserRole
from sahem_invest.domain.errors import PermissionDeniedError


class Permission(str, Enum):
    REVIEW_DEAL_UPDATES = "review_deal_updates"
    REVIEW_DEALS = "review_deals"
    REVIEW_APPLICATIONS = "review_applications"
    MANAGE_DEALS = "manage_deals"
    REVIEW_TRANSACTIONS = "review_transactions"
    VIEW_FINANCES = "view_finances"
    DISTRIBUTE_PROFITS = "distribute_profits"
    VIEW_PORTFOLIOS = "view_portfolios"
    INVEST = "invest"
    USE_WALLET = "use_wallet"
    SUBMIT_DEALS = "submit_deals"


R = UserRole
P = Permission

ROLE_PERMISSIONS: Mapping[UserRole, frozenset[Permission]] = MappingProxyType({
    R.ADMIN: frozenset(Permission),
    R.DEAL_MANAGER: frozenset({
        P.REVIEW_DEAL_UPDATES,
        P.REVIEW_DEALS,
        P.REVIEW_APPLICATIONS,
        P.MANAGE_DEALS,
    }),
    R.FINANCIAL_OFFICER: frozenset({
        P.REVIEW_TRANSACTIONS,
        P.VIEW_FINANCES,
        P.DISTRIBUTE_PROFITS,
    }),
    R.PORTFOLIO_ADVISOR: frozenset({P.VIEW_PORTFOLIOS}),
    R.INVESTOR: frozenset({P.INVEST, P.USE_WALLET}),
    R.PARTNER: frozenset({P.SUBMIT_DEALS}),
})


def _coerce_role(role) -> UserRole | None:
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(role)
    except ValueError:
        return None


def has_permission(role, permission: Permission) -> bool:
    """Return True if ``role`` (enum or stored string) grants ``permission``."""
    resolved = _coerce_role(role)
    if resolved is None:
        return False
    return permission in ROLE_PERMISSIONS[resolved]


def require_permission(role, permission: Permission) -> None:
    """Raise PermissionDeniedError unless ``role`` grants ``permission``."""
    if not has_permission(role, permission):
        raise PermissionDeniedError(
            "Insufficient permissions",
            {"required": permission.value},
        )
