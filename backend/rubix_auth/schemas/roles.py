from datetime import datetime

from pydantic import BaseModel, Field

from ..auth.rbac_contract import Role
from ..domain.models import (
    AuditAction,
    AuditLogEntry,
    RequestStatus,
    RoleChangeRequest,
    RoleStatistics,
)


class RoleChangeRequestCreate(BaseModel):
    target_user_id: str = Field(..., min_length=1, max_length=128)
    requested_role: Role
    reason: str = Field(..., min_length=1, max_length=2000)


class RoleRejection(BaseModel):
    reason: str | None = Field(None, max_length=2000)


class RoleAssignment(BaseModel):
    role: Role
    reason: str | None = Field(None, max_length=2000)


class RoleRemoval(BaseModel):
    reason: str | None = Field(None, max_length=2000)


class RoleChangeRequestRead(BaseModel):
    id: str
    target_user_id: str
    requested_role: Role
    current_role_at_request_time: Role
    requested_by: str
    reason: str
    status: RequestStatus
    created_at: datetime | None = None
    processed_by: str | None = None
    processed_at: datetime | None = None
    rejection_reason: str | None = None

    @classmethod
    def from_domain(cls, request: RoleChangeRequest) -> "RoleChangeRequestRead":
        return cls(
            id=request.id,
            target_user_id=request.target_user_id,
            requested_role=request.requested_role,
            current_role_at_request_time=request.current_role_at_request_time,
            requested_by=request.requested_by,
            reason=request.reason,
            status=request.status,
            created_at=request.created_at,
            processed_by=request.processed_by,
            processed_at=request.processed_at,
            rejection_reason=request.rejection_reason,
        )


class AuditLogRead(BaseModel):
    action: AuditAction
    performed_by: str
    target_user_id: str
    timestamp: datetime
    previous_role: Role | None = None
    new_role: Role | None = None
    reason: str | None = None
    request_id: str | None = None
    source: str

    @classmethod
    def from_domain(cls, entry: AuditLogEntry) -> "AuditLogRead":
        return cls(
            action=entry.action,
            performed_by=entry.performed_by,
            target_user_id=entry.target_user_id,
            timestamp=entry.timestamp,
            previous_role=entry.previous_role,
            new_role=entry.new_role,
            reason=entry.reason,
            request_id=entry.request_id,
            source=entry.source,
        )


class AuditLogList(BaseModel):
    entries: list[AuditLogRead]
    total: int


class RoleStatisticsRead(BaseModel):
    total_by_role: dict[Role, int]
    recent_changes: int
    pending_requests: int

    @classmethod
    def from_domain(cls, stats: RoleStatistics) -> "RoleStatisticsRead":
        return cls(
            total_by_role=dict(stats.total_by_role),
            recent_changes=stats.recent_changes,
            pending_requests=stats.pending_requests,
        )
