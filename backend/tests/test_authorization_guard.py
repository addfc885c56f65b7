from datetime import datetime, timezone

import pytest

from rubix_auth.auth.rbac_contract import Permission, Role, permissions_for
from rubix_auth.domain.models import Principal
from rubix_auth.errors import PermissionDeniedError
from rubix_auth.services.authorization import AuthorizationGuard


def _principal(role: Role, *, is_active: bool = True) -> Principal:
    return Principal(
        id=f"{role.value}-1",
        email=f"{role.value}@example.com",
        role=role,
        permissions=permissions_for(role),
        is_active=is_active,
        last_revalidated_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


def test_no_principal_answers_false_everywhere():
    guard = AuthorizationGuard(None)
    assert not guard.has_role(Role.STANDARD)
    assert not guard.has_any_role(list(Role))
    assert not guard.has_permission(Permission.VIEW_USERS)
    assert not guard.has_any_permission(list(Permission))
    assert not guard.has_all_permissions([])
    assert not guard.is_elevated()
    assert not guard.is_admin_or_higher()
    assert not guard.has_premium_access()


def test_has_role_and_any_role():
    guard = AuthorizationGuard(_principal(Role.ADMIN))
    assert guard.has_role(Role.ADMIN)
    assert guard.has_role("admin")
    assert not guard.has_role(Role.ELEVATED)
    assert guard.has_any_role([Role.STANDARD, Role.ADMIN])
    assert not guard.has_any_role([])


def test_permission_queries():
    guard = AuthorizationGuard(_principal(Role.ADMIN))
    assert guard.has_permission(Permission.MANAGE_USERS)
    assert not guard.has_permission(Permission.ASSIGN_ADMIN_ROLE)
    assert guard.has_any_permission([Permission.ASSIGN_ADMIN_ROLE, Permission.VIEW_USERS])
    assert guard.has_all_permissions([Permission.VIEW_USERS, Permission.MANAGE_SYSTEM])
    assert not guard.has_all_permissions([Permission.VIEW_USERS, Permission.ASSIGN_ADMIN_ROLE])


def test_unknown_names_answer_false_without_raising():
    guard = AuthorizationGuard(_principal(Role.ELEVATED))
    assert not guard.has_role("root")
    assert not guard.has_permission("launch_rockets")
    assert not guard.has_all_permissions(["view_users", "launch_rockets"])


def test_inactive_principal_is_treated_as_absent():
    guard = AuthorizationGuard(_principal(Role.ELEVATED, is_active=False))
    assert not guard.is_elevated()
    assert not guard.has_permission(Permission.VIEW_USERS)


def test_hierarchy_helpers():
    assert AuthorizationGuard(_principal(Role.ELEVATED)).is_elevated()
    assert AuthorizationGuard(_principal(Role.ADMIN)).is_admin_or_higher()
    assert not AuthorizationGuard(_principal(Role.STANDARD)).is_admin_or_higher()
    assert AuthorizationGuard(_principal(Role.STANDARD)).has_premium_access()


def test_guard_reads_latest_snapshot_from_source():
    current = {"principal": _principal(Role.STANDARD)}
    guard = AuthorizationGuard(lambda: current["principal"])
    assert not guard.has_role(Role.ADMIN)
    current["principal"] = _principal(Role.ADMIN)
    assert guard.has_role(Role.ADMIN)


def test_require_permission_raises_permission_denied():
    guard = AuthorizationGuard(_principal(Role.STANDARD))
    guard.require_permission(Permission.EXPORT_SOLVE_DATA)  # Should not raise
    with pytest.raises(PermissionDeniedError) as exc_info:
        guard.require_permission(Permission.MANAGE_SYSTEM)
    assert exc_info.value.details["required_permission"] == "manage_system"
