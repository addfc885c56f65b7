"""
RBAC Security Contract - closed role and permission model.

This module defines the complete role/permission contract for the app:
- Three user roles ordered by hierarchy level (elevated > admin > standard)
- A closed permission set, no wildcards, no runtime extension
- A frozen role -> permission table validated at import time
- The assignment-validity matrix used by every role mutation

Everything here is pure: no I/O, no state. Role mutations and the
authorization guard both read from this module and nothing else.
"""
from __future__ import annotations

from enum import Enum
from typing import Final

from ..errors import PermissionDeniedError, PolicyViolationError, ValidationError


# ============================================================================
# ROLES - IMMUTABLE
# ============================================================================

class Role(str, Enum):
    """
    User roles. These are IMMUTABLE and cannot be extended at runtime.

    ELEVATED is established exactly once through the bootstrap operation
    and can never be reached through a role assignment.
    """
    ELEVATED = "super_admin"
    ADMIN = "admin"
    STANDARD = "user"


ROLE_LEVELS: Final[dict[Role, int]] = {
    Role.ELEVATED: 3,
    Role.ADMIN: 2,
    Role.STANDARD: 1,
}

ROLE_DISPLAY_NAMES: Final[dict[Role, str]] = {
    Role.ELEVATED: "Super Administrator",
    Role.ADMIN: "Administrator",
    Role.STANDARD: "User",
}


# ============================================================================
# PERMISSIONS - EXPLICIT ONLY, NO WILDCARDS
# ============================================================================

class Permission(str, Enum):
    """Closed set of capability tokens."""
    # User management
    MANAGE_USERS = "manage_users"
    VIEW_USERS = "view_users"
    DELETE_USERS = "delete_users"

    # Role management
    ASSIGN_ADMIN_ROLE = "assign_admin_role"
    REVOKE_ADMIN_ROLE = "revoke_admin_role"

    # System administration
    VIEW_ANALYTICS = "view_analytics"
    MANAGE_SYSTEM = "manage_system"
    ACCESS_ADMIN_PANEL = "access_admin_panel"

    # Solver features
    UNLIMITED_SOLVES = "unlimited_solves"
    ACCESS_PREMIUM_FEATURES = "access_premium_features"
    EXPORT_SOLVE_DATA = "export_solve_data"

    # Content management
    MODERATE_CONTENT = "moderate_content"
    MANAGE_LEADERBOARDS = "manage_leaderboards"


ALLOWED_PERMISSIONS: Final[frozenset[Permission]] = frozenset(Permission)

ROLE_MANAGEMENT_PERMISSIONS: Final[frozenset[Permission]] = frozenset({
    Permission.ASSIGN_ADMIN_ROLE,
    Permission.REVOKE_ADMIN_ROLE,
})

ROLE_PERMISSIONS: Final[dict[Role, frozenset[Permission]]] = {
    Role.ELEVATED: ALLOWED_PERMISSIONS,
    # Admin holds everything except admin-role management
    Role.ADMIN: ALLOWED_PERMISSIONS - ROLE_MANAGEMENT_PERMISSIONS,
    Role.STANDARD: frozenset({
        Permission.ACCESS_PREMIUM_FEATURES,
        Permission.EXPORT_SOLVE_DATA,
    }),
}


# ============================================================================
# LOOKUPS - PURE, TOTAL
# ============================================================================

def permissions_for(role: Role) -> frozenset[Permission]:
    """Return the frozen permission set granted to *role*."""
    return ROLE_PERMISSIONS[role]


def level_of(role: Role) -> int:
    """Return the hierarchy level of *role* (higher is more privileged)."""
    return ROLE_LEVELS[role]


def is_admin_or_higher(role: Role) -> bool:
    return level_of(role) >= level_of(Role.ADMIN)


def role_display_name(role: Role) -> str:
    return ROLE_DISPLAY_NAMES[role]


def parse_role(value: str | Role) -> Role:
    """
    Convert a stored or user-supplied value into a Role.

    Raises:
        ValidationError: If value is not one of the contract roles
    """
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError as exc:
        raise ValidationError(
            f"Invalid role '{value}'",
            details={"allowed": sorted(role.value for role in Role)},
        ) from exc


# ============================================================================
# ASSIGNMENT MATRIX - HARD RULES
# ============================================================================

def is_assignment_allowed(assigner_role: Role, target_role: Role) -> bool:
    """
    Check whether *assigner_role* may move a user to *target_role*.

    Rules:
    - Nobody may assign ELEVATED (bootstrap only)
    - ELEVATED may assign ADMIN or STANDARD
    - ADMIN may only assign STANDARD (demote, never promote)
    - STANDARD may not assign anything
    """
    if target_role is Role.ELEVATED:
        return False
    if assigner_role is Role.ELEVATED:
        return True
    if assigner_role is Role.ADMIN:
        return target_role is Role.STANDARD
    return False


def validate_assignment(assigner_role: Role, target_role: Role) -> None:
    """
    Enforce the assignment matrix.

    Raises:
        PolicyViolationError: If target_role is ELEVATED
        PermissionDeniedError: If the matrix denies the assignment
    """
    if target_role is Role.ELEVATED:
        raise PolicyViolationError(
            "Elevated role can only be established through bootstrap",
            details={"target_role": target_role.value},
        )
    if not is_assignment_allowed(assigner_role, target_role):
        raise PermissionDeniedError(
            f"Role '{assigner_role.value}' cannot assign role '{target_role.value}'",
            details={
                "assigner_role": assigner_role.value,
                "target_role": target_role.value,
            },
        )


# ============================================================================
# CONTRACT VALIDATION - FAIL AT IMPORT
# ============================================================================

def validate_contract() -> None:
    """
    Verify the table invariants.

    Raises:
        ValueError: If the table is incomplete, uses unknown permissions,
            is mutable, or ELEVATED is not a superset of ADMIN
    """
    if set(ROLE_PERMISSIONS) != set(Role) or set(ROLE_LEVELS) != set(Role):
        raise ValueError("Every role must have a permission set and a level")
    for role, permissions in ROLE_PERMISSIONS.items():
        if not isinstance(permissions, frozenset):
            raise ValueError(f"Permission set for '{role.value}' must be frozen")
        unknown = permissions - ALLOWED_PERMISSIONS
        if unknown:
            raise ValueError(
                f"Role '{role.value}' grants unknown permissions: {sorted(unknown)}"
            )
    if not ROLE_PERMISSIONS[Role.ELEVATED] >= ROLE_PERMISSIONS[Role.ADMIN]:
        raise ValueError("Elevated permissions must include every admin permission")
    if len(set(ROLE_LEVELS.values())) != len(ROLE_LEVELS):
        raise ValueError("Role levels must be totally ordered")


validate_contract()
