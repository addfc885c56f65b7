from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from ..auth.rbac_contract import Permission, Role


@dataclass(frozen=True)
class Principal:
    """Authenticated identity as known to this core.

    Immutable: revalidation replaces the instance, it never edits one.
    """

    id: str
    email: str
    role: Role
    permissions: frozenset[Permission]
    is_active: bool
    last_revalidated_at: datetime
    display_name: str | None = None


@dataclass(frozen=True)
class SessionFingerprint:
    """Display-only session hint persisted across restarts."""

    principal_id: str
    role: Role
    last_revalidated_at: datetime


@dataclass
class UserProfile:
    id: str
    email: str
    role: Role = Role.STANDARD
    is_active: bool = True
    display_name: str | None = None
    created_at: datetime | None = None
    last_login_at: datetime | None = None
    last_role_modified_at: datetime | None = None
    last_role_modified_by: str | None = None


@dataclass(frozen=True)
class Credentials:
    email: str
    password: str = field(repr=False)

    @classmethod
    def normalized(cls, email: str, password: str) -> "Credentials":
        return cls(email=email.strip().lower(), password=password)


@dataclass(frozen=True)
class ExternalToken:
    provider: str
    id_token: str = field(repr=False)
    access_token: str | None = field(default=None, repr=False)


@dataclass(frozen=True)
class IdentityResult:
    principal_id: str
    email: str
    is_new_user: bool = False


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class RoleChangeRequest:
    id: str
    target_user_id: str
    requested_role: Role
    current_role_at_request_time: Role
    requested_by: str
    reason: str
    status: RequestStatus = RequestStatus.PENDING
    created_at: datetime | None = None
    processed_by: str | None = None
    processed_at: datetime | None = None
    rejection_reason: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not RequestStatus.PENDING


class AuditAction(str, Enum):
    ROLE_ASSIGNED = "role_assigned"
    ROLE_REMOVED = "role_removed"
    ROLE_REQUESTED = "role_requested"
    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"
    ELEVATED_BOOTSTRAP = "elevated_bootstrap"


@dataclass(frozen=True)
class AuditLogEntry:
    action: AuditAction
    performed_by: str
    target_user_id: str
    timestamp: datetime
    previous_role: Role | None = None
    new_role: Role | None = None
    reason: str | None = None
    request_id: str | None = None
    source: str = "role-workflow"


@dataclass(frozen=True)
class RoleStatistics:
    total_by_role: dict[Role, int]
    recent_changes: int
    pending_requests: int
