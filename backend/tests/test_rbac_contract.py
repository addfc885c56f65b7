"""
Tests for the closed role/permission contract.

The contract is pure data plus lookups; every test here runs without I/O.
"""
import pytest

from rubix_auth.auth import rbac_contract
from rubix_auth.auth.rbac_contract import Permission, Role
from rubix_auth.errors import PermissionDeniedError, PolicyViolationError, ValidationError


class TestPermissionTable:
    @pytest.mark.parametrize("role", list(Role))
    def test_permissions_are_drawn_from_closed_set(self, role):
        permissions = rbac_contract.permissions_for(role)
        assert isinstance(permissions, frozenset)
        assert permissions <= rbac_contract.ALLOWED_PERMISSIONS

    @pytest.mark.parametrize("role", list(Role))
    def test_permissions_for_is_deterministic(self, role):
        assert rbac_contract.permissions_for(role) is rbac_contract.permissions_for(role)

    def test_elevated_is_superset_of_admin(self):
        assert rbac_contract.permissions_for(Role.ELEVATED) >= rbac_contract.permissions_for(
            Role.ADMIN
        )

    def test_admin_lacks_admin_role_management(self):
        admin = rbac_contract.permissions_for(Role.ADMIN)
        assert Permission.ASSIGN_ADMIN_ROLE not in admin
        assert Permission.REVOKE_ADMIN_ROLE not in admin
        assert Permission.MANAGE_USERS in admin

    def test_standard_holds_premium_and_export_only(self):
        assert rbac_contract.permissions_for(Role.STANDARD) == {
            Permission.ACCESS_PREMIUM_FEATURES,
            Permission.EXPORT_SOLVE_DATA,
        }

    def test_permission_set_has_thirteen_members(self):
        assert len(rbac_contract.ALLOWED_PERMISSIONS) == 13

    def test_contract_validates_at_import(self):
        rbac_contract.validate_contract()  # Should not raise

    def test_contract_rejects_mutable_permission_set(self, monkeypatch):
        table = dict(rbac_contract.ROLE_PERMISSIONS)
        table[Role.STANDARD] = set(table[Role.STANDARD])
        monkeypatch.setattr(rbac_contract, "ROLE_PERMISSIONS", table)
        with pytest.raises(ValueError, match="must be frozen"):
            rbac_contract.validate_contract()

    def test_contract_rejects_admin_escaping_elevated(self, monkeypatch):
        table = dict(rbac_contract.ROLE_PERMISSIONS)
        table[Role.ELEVATED] = frozenset({Permission.VIEW_USERS})
        monkeypatch.setattr(rbac_contract, "ROLE_PERMISSIONS", table)
        with pytest.raises(ValueError, match="Elevated permissions"):
            rbac_contract.validate_contract()


class TestHierarchy:
    def test_levels_are_totally_ordered(self):
        assert (
            rbac_contract.level_of(Role.ELEVATED)
            > rbac_contract.level_of(Role.ADMIN)
            > rbac_contract.level_of(Role.STANDARD)
        )

    def test_is_admin_or_higher(self):
        assert rbac_contract.is_admin_or_higher(Role.ELEVATED)
        assert rbac_contract.is_admin_or_higher(Role.ADMIN)
        assert not rbac_contract.is_admin_or_higher(Role.STANDARD)

    def test_display_names(self):
        assert rbac_contract.role_display_name(Role.ELEVATED) == "Super Administrator"
        assert rbac_contract.role_display_name(Role.STANDARD) == "User"

    def test_parse_role_accepts_stored_values(self):
        assert rbac_contract.parse_role("super_admin") is Role.ELEVATED
        assert rbac_contract.parse_role(Role.ADMIN) is Role.ADMIN

    def test_parse_role_rejects_unknown(self):
        with pytest.raises(ValidationError):
            rbac_contract.parse_role("moderator")


class TestAssignmentMatrix:
    def test_elevated_may_assign_admin(self):
        assert rbac_contract.is_assignment_allowed(Role.ELEVATED, Role.ADMIN)

    def test_elevated_may_assign_standard(self):
        assert rbac_contract.is_assignment_allowed(Role.ELEVATED, Role.STANDARD)

    def test_admin_may_not_assign_admin(self):
        assert not rbac_contract.is_assignment_allowed(Role.ADMIN, Role.ADMIN)

    def test_admin_may_assign_standard(self):
        assert rbac_contract.is_assignment_allowed(Role.ADMIN, Role.STANDARD)

    def test_standard_may_not_assign(self):
        assert not rbac_contract.is_assignment_allowed(Role.STANDARD, Role.STANDARD)
        assert not rbac_contract.is_assignment_allowed(Role.STANDARD, Role.ADMIN)

    @pytest.mark.parametrize("assigner", list(Role))
    def test_nobody_may_assign_elevated(self, assigner):
        assert not rbac_contract.is_assignment_allowed(assigner, Role.ELEVATED)

    def test_validate_assignment_elevated_target_is_policy_violation(self):
        with pytest.raises(PolicyViolationError):
            rbac_contract.validate_assignment(Role.ELEVATED, Role.ELEVATED)

    def test_validate_assignment_denied_is_permission_error(self):
        with pytest.raises(PermissionDeniedError):
            rbac_contract.validate_assignment(Role.ADMIN, Role.ADMIN)

    def test_validate_assignment_allowed(self):
        rbac_contract.validate_assignment(Role.ADMIN, Role.STANDARD)  # Should not raise
