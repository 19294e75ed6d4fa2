"""Static role -> permission tables and the FastAPI dependencies that enforce them."""
from typing import Callable

from fastapi import Depends, HTTPException

from yatrasathi.models import User
from yatrasathi.security import get_current_user

PERMISSION_FLAGS = (
    "canViewDashboard",
    "canViewBookings",
    "canViewTravelPlans",
    "canViewPayments",
    "canViewBilling",
    "canViewReports",
    "canViewAdminPanel",
    "canViewEmployeeDashboard",
    "canApproveBookings",
    "canModifyFinancialValues",
    "canDeleteBookings",
    "canGenerateBills",
    "canProcessPayments",
    "canModifySystemSettings",
)


def _grant(*flags: str) -> dict[str, bool]:
    unknown = set(flags) - set(PERMISSION_FLAGS)
    if unknown:
        raise ValueError(f"unknown permission flags: {sorted(unknown)}")
    return {flag: flag in flags for flag in PERMISSION_FLAGS}


ROLE_PERMISSIONS: dict[str, dict[str, bool]] = {
    "ADM": _grant(*(flag for flag in PERMISSION_FLAGS if flag != "canViewEmployeeDashboard")),
    "ACC": _grant(
        "canViewBookings",
        "canViewPayments",
        "canViewBilling",
        "canViewReports",
        "canViewEmployeeDashboard",
        "canModifyFinancialValues",
        "canGenerateBills",
        "canProcessPayments",
    ),
    "AGT": _grant("canViewBookings", "canViewEmployeeDashboard"),
    "MGT": _grant(
        "canViewDashboard",
        "canViewBookings",
        "canViewTravelPlans",
        "canViewPayments",
        "canViewBilling",
        "canViewReports",
        "canViewEmployeeDashboard",
        "canApproveBookings",
    ),
    "HR": _grant("canViewReports", "canViewEmployeeDashboard"),
    "CC": _grant("canViewBookings", "canViewReports", "canViewEmployeeDashboard"),
    "MKT": _grant(
        "canViewBookings",
        "canViewTravelPlans",
        "canViewReports",
        "canViewEmployeeDashboard",
    ),
    "CUS": _grant(
        "canViewDashboard",
        "canViewBookings",
        "canViewTravelPlans",
        "canViewPayments",
        "canViewBilling",
    ),
}

# employees whose role code is not in the table
EMPLOYEE_FALLBACK = _grant("canViewBookings", "canViewEmployeeDashboard")

EMPLOYEE_ROLES = ("ADM", "ACC", "AGT", "MGT", "HR", "CC", "MKT")


def is_admin(user: User) -> bool:
    return user.user_type == "admin" or user.role == "ADM"


def is_customer(user: User) -> bool:
    return user.user_type == "customer"


def permissions_for(user: User) -> dict[str, bool]:
    if is_admin(user):
        return dict(ROLE_PERMISSIONS["ADM"])
    if is_customer(user):
        return dict(ROLE_PERMISSIONS["CUS"])
    return dict(ROLE_PERMISSIONS.get(user.role, EMPLOYEE_FALLBACK))


def has_permission(user: User, flag: str) -> bool:
    return permissions_for(user).get(flag, False)


def require_permission(*flags: str) -> Callable[..., User]:
    """Dependency that passes when the user holds any of ``flags``."""

    def dependency(user: User = Depends(get_current_user)) -> User:
        if not any(has_permission(user, flag) for flag in flags):
            raise HTTPException(status_code=403, detail="not authorized for this action")
        return user

    return dependency


def require_roles(*roles: str) -> Callable[..., User]:
    """Dependency that passes for admins and for the listed role codes."""

    def dependency(user: User = Depends(get_current_user)) -> User:
        if is_admin(user) or user.role in roles:
            return user
        raise HTTPException(status_code=403, detail=f"role {user.role} is not authorized")

    return dependency


require_admin = require_roles()
