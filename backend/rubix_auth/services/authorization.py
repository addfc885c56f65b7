"""
Authorization guard.

Pure reads over a Principal snapshot. No I/O, and every query answers
False (never raises) when there is no principal or the role/permission
name is unknown. require_permission is the only raising entry point and
is meant for server-side enforcement.
"""
from __future__ import annotations

from typing import Callable, Iterable

from ..auth.rbac_contract import Permission, Role, level_of
from ..domain.models import Principal
from ..errors import PermissionDeniedError

PrincipalSource = Callable[[], Principal | None]


def _as_role(value: Role | str) -> Role | None:
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        return None


def _as_permission(value: Permission | str) -> Permission | None:
    if isinstance(value, Permission):
        return value
    try:
        return Permission(value)
    except ValueError:
        return None


class AuthorizationGuard:
    """Answers capability questions about the current principal.

    Built either from a fixed Principal or from a zero-argument callable
    returning the current one (e.g. ``lambda: manager.principal``), so a
    guard held by a long-lived caller always reads the latest snapshot.
    """

    def __init__(self, principal: Principal | PrincipalSource | None) -> None:
        if principal is None or isinstance(principal, Principal):
            self._source: PrincipalSource = lambda: principal
        else:
            self._source = principal

    @property
    def principal(self) -> Principal | None:
        principal = self._source()
        if principal is None or not principal.is_active:
            return None
        return principal

    def has_role(self, role: Role | str) -> bool:
        principal = self.principal
        wanted = _as_role(role)
        return principal is not None and wanted is not None and principal.role is wanted

    def has_any_role(self, roles: Iterable[Role | str]) -> bool:
        return any(self.has_role(role) for role in roles)

    def has_permission(self, permission: Permission | str) -> bool:
        principal = self.principal
        wanted = _as_permission(permission)
        return (
            principal is not None
            and wanted is not None
            and wanted in principal.permissions
        )

    def has_any_permission(self, permissions: Iterable[Permission | str]) -> bool:
        return any(self.has_permission(permission) for permission in permissions)

    def has_all_permissions(self, permissions: Iterable[Permission | str]) -> bool:
        permissions = list(permissions)
        if self.principal is None:
            return False
        return all(self.has_permission(permission) for permission in permissions)

    def is_elevated(self) -> bool:
        return self.has_role(Role.ELEVATED)

    def is_admin_or_higher(self) -> bool:
        principal = self.principal
        return principal is not None and level_of(principal.role) >= level_of(Role.ADMIN)

    def has_premium_access(self) -> bool:
        return self.has_permission(Permission.ACCESS_PREMIUM_FEATURES) or self.is_admin_or_higher()

    def require_permission(self, permission: Permission | str) -> None:
        """
        Raises:
            PermissionDeniedError: If the principal lacks *permission*
        """
        if not self.has_permission(permission):
            principal = self.principal
            raise PermissionDeniedError(
                details={
                    "required_permission": str(getattr(permission, "value", permission)),
                    "principal_id": principal.id if principal else None,
                }
            )
