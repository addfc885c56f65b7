from fastapi import APIRouter, Depends, Query, status

from ..auth.rbac_contract import Permission
from ..domain.models import Principal
from ..schemas.roles import (
    AuditLogList,
    AuditLogRead,
    RoleAssignment,
    RoleChangeRequestCreate,
    RoleChangeRequestRead,
    RoleRejection,
    RoleRemoval,
    RoleStatisticsRead,
)
from ..services.role_assignment import RoleAssignmentService
from .dependencies import get_current_principal, get_role_service, require_permission

router = APIRouter(prefix="/roles", tags=["roles"])


@router.post(
    "/requests",
    response_model=RoleChangeRequestRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_role_change_request(
    payload: RoleChangeRequestCreate,
    principal: Principal = Depends(get_current_principal),
    service: RoleAssignmentService = Depends(get_role_service),
) -> RoleChangeRequestRead:
    request = await service.create_role_change_request(
        payload.target_user_id,
        payload.requested_role,
        principal.id,
        payload.reason,
    )
    return RoleChangeRequestRead.from_domain(request)


@router.get("/requests/pending", response_model=list[RoleChangeRequestRead])
async def list_pending_requests(
    _: Principal = Depends(require_permission(Permission.ACCESS_ADMIN_PANEL)),
    service: RoleAssignmentService = Depends(get_role_service),
) -> list[RoleChangeRequestRead]:
    requests = await service.list_pending_requests()
    return [RoleChangeRequestRead.from_domain(request) for request in requests]


@router.post("/requests/{request_id}/approve", response_model=RoleChangeRequestRead)
async def approve_request(
    request_id: str,
    principal: Principal = Depends(require_permission(Permission.MANAGE_USERS)),
    service: RoleAssignmentService = Depends(get_role_service),
) -> RoleChangeRequestRead:
    request = await service.approve(request_id, principal.id)
    return RoleChangeRequestRead.from_domain(request)


@router.post("/requests/{request_id}/reject", response_model=RoleChangeRequestRead)
async def reject_request(
    request_id: str,
    payload: RoleRejection | None = None,
    principal: Principal = Depends(require_permission(Permission.MANAGE_USERS)),
    service: RoleAssignmentService = Depends(get_role_service),
) -> RoleChangeRequestRead:
    reason = payload.reason if payload is not None else None
    request = await service.reject(request_id, principal.id, reason)
    return RoleChangeRequestRead.from_domain(request)


@router.put("/users/{user_id}", response_model=AuditLogRead)
async def assign_role(
    user_id: str,
    payload: RoleAssignment,
    principal: Principal = Depends(require_permission(Permission.MANAGE_USERS)),
    service: RoleAssignmentService = Depends(get_role_service),
) -> AuditLogRead:
    entry = await service.assign_role(user_id, payload.role, principal.id, payload.reason)
    return AuditLogRead.from_domain(entry)


@router.delete("/users/{user_id}", response_model=AuditLogRead)
async def remove_role(
    user_id: str,
    payload: RoleRemoval | None = None,
    principal: Principal = Depends(require_permission(Permission.MANAGE_USERS)),
    service: RoleAssignmentService = Depends(get_role_service),
) -> AuditLogRead:
    reason = payload.reason if payload is not None else None
    entry = await service.remove_role(user_id, principal.id, reason)
    return AuditLogRead.from_domain(entry)


@router.get("/audit", response_model=AuditLogList)
async def role_assignment_history(
    target_user_id: str | None = Query(None, max_length=128),
    limit: int = Query(50, ge=1, le=500),
    _: Principal = Depends(require_permission(Permission.VIEW_USERS)),
    service: RoleAssignmentService = Depends(get_role_service),
) -> AuditLogList:
    entries = await service.get_role_assignment_history(target_user_id, limit)
    return AuditLogList(
        entries=[AuditLogRead.from_domain(entry) for entry in entries],
        total=len(entries),
    )


@router.get("/statistics", response_model=RoleStatisticsRead)
async def role_statistics(
    _: Principal = Depends(require_permission(Permission.VIEW_ANALYTICS)),
    service: RoleAssignmentService = Depends(get_role_service),
) -> RoleStatisticsRead:
    return RoleStatisticsRead.from_domain(await service.get_role_statistics())
