"""
Security guards for role-based access control.

Billing routes are staff-only; every route depends on
`require_role([UserRole.ADMIN])`.
"""

from typing import Iterable
from fastapi import Depends
from backend.app.models.enums import UserRole
from backend.app.core.dependencies import get_current_user
from backend.app.core.exceptions import InsufficientPermissionsError, field_errors


def require_role(allowed_roles: Iterable[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/admin/invoices/{invoice_id}/payments")
        async def record_payment(current_user: dict = Depends(require_role([UserRole.ADMIN]))):
            ...

    Raises:
        InsufficientPermissionsError: role claim missing, unknown or not allowed (403)
    """
    allowed = frozenset(allowed_roles)
    required = ", ".join(sorted(role.value for role in allowed))

    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        try:
            role = UserRole(current_user.get("role"))
        except ValueError:
            raise InsufficientPermissionsError(
                "Role information missing or invalid in token",
                details=field_errors("general", "Invalid role in token"),
            )

        if role not in allowed:
            message = f"Access denied. Required role: {required}"
            raise InsufficientPermissionsError(message, details=field_errors("general", message))

        return current_user

    return role_checker
