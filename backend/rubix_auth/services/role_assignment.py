"""
Role assignment workflow.

Every mutation runs inside one unit of work: the role change, the
request transition and the audit entries commit together or not at
all. Invariants are checked before the first write.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable

from ..auth.rbac_contract import (
    Role,
    is_assignment_allowed,
    parse_role,
    validate_assignment,
)
from ..domain.invariants import (
    validate_elevated_modification,
    validate_not_elevated_target,
    validate_removal_target,
    validate_request_pending,
)
from ..domain.models import (
    AuditAction,
    AuditLogEntry,
    RequestStatus,
    RoleChangeRequest,
    RoleStatistics,
    UserProfile,
)
from ..domain.ports.role_requests import RoleUnitOfWork, RoleUnitOfWorkFactory
from ..errors import (
    AccountInactiveError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

logger = logging.getLogger("rubix_auth.roles")

ROLE_CHANGE_ACTIONS = (AuditAction.ROLE_ASSIGNED, AuditAction.ROLE_REMOVED)
RECENT_CHANGES_WINDOW = timedelta(days=7)
MAX_HISTORY_LIMIT = 500


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def _load_actor(uow: RoleUnitOfWork, actor_id: str) -> UserProfile:
    profile = await uow.users.get_profile(actor_id)
    if profile is None:
        raise NotFoundError("Acting user not found", details={"user_id": actor_id})
    if not profile.is_active:
        raise AccountInactiveError(details={"user_id": actor_id})
    return profile


async def _load_target(uow: RoleUnitOfWork, target_user_id: str) -> UserProfile:
    profile = await uow.users.get_profile(target_user_id)
    if profile is None:
        raise NotFoundError("User not found", details={"user_id": target_user_id})
    return profile


class RoleAssignmentService:
    def __init__(
        self,
        uow_factory: RoleUnitOfWorkFactory,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self._clock = clock

    # ------------------------------------------------------------------
    # direct mutations
    # ------------------------------------------------------------------

    async def assign_role(
        self,
        target_user_id: str,
        new_role: Role | str,
        assigned_by: str,
        reason: str | None = None,
    ) -> AuditLogEntry:
        """
        Move *target_user_id* to *new_role*.

        Raises:
            ValidationError: Unknown role name
            PolicyViolationError: Target role is ELEVATED, or the change
                would demote the caller itself or the last elevated account
            PermissionDeniedError: Assignment matrix denies the change
            NotFoundError: Unknown assigner or target
        """
        role = parse_role(new_role)
        async with self._uow_factory() as uow:
            try:
                entry = await self._apply_assignment(
                    uow,
                    target_user_id,
                    role,
                    assigned_by,
                    reason=reason,
                    action=AuditAction.ROLE_ASSIGNED,
                    now=self._clock(),
                )
                await uow.commit()
            except Exception:
                await uow.rollback()
                raise
        logger.info(
            "role_assigned target_user_id=%s previous_role=%s new_role=%s by=%s",
            target_user_id,
            entry.previous_role.value if entry.previous_role else None,
            role.value,
            assigned_by,
        )
        return entry

    async def remove_role(
        self,
        target_user_id: str,
        removed_by: str,
        reason: str | None = None,
    ) -> AuditLogEntry:
        """
        Revert *target_user_id* to STANDARD.

        An elevated account is never demoted through this path, whoever
        the caller is.
        """
        async with self._uow_factory() as uow:
            try:
                target = await _load_target(uow, target_user_id)
                validate_removal_target(target.role, target_user_id=target_user_id)
                entry = await self._apply_assignment(
                    uow,
                    target_user_id,
                    Role.STANDARD,
                    removed_by,
                    reason=reason,
                    action=AuditAction.ROLE_REMOVED,
                    now=self._clock(),
                )
                await uow.commit()
            except Exception:
                await uow.rollback()
                raise
        logger.info(
            "role_removed target_user_id=%s previous_role=%s by=%s",
            target_user_id,
            entry.previous_role.value if entry.previous_role else None,
            removed_by,
        )
        return entry

    async def _apply_assignment(
        self,
        uow: RoleUnitOfWork,
        target_user_id: str,
        role: Role,
        assigned_by: str,
        *,
        reason: str | None,
        action: AuditAction,
        now: datetime,
        request_id: str | None = None,
    ) -> AuditLogEntry:
        assigner = await _load_actor(uow, assigned_by)
        validate_assignment(assigner.role, role)

        target = await _load_target(uow, target_user_id)
        if target.role is Role.ELEVATED:
            counts = await uow.users.count_by_role()
            validate_elevated_modification(
                target.role,
                assigner_role=assigner.role,
                assigner_id=assigned_by,
                target_user_id=target_user_id,
                elevated_count=counts.get(Role.ELEVATED, 0),
            )

        await uow.users.set_role(
            target_user_id, role, modified_by=assigned_by, modified_at=now
        )
        entry = AuditLogEntry(
            action=action,
            performed_by=assigned_by,
            target_user_id=target_user_id,
            timestamp=now,
            previous_role=target.role,
            new_role=role,
            reason=reason,
            request_id=request_id,
        )
        await uow.audit.append(entry)
        return entry

    # ------------------------------------------------------------------
    # request workflow
    # ------------------------------------------------------------------

    async def create_role_change_request(
        self,
        target_user_id: str,
        requested_role: Role | str,
        requested_by: str,
        reason: str,
    ) -> RoleChangeRequest:
        role = parse_role(requested_role)
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A reason is required for a role change request")
        validate_not_elevated_target(role, target_user_id=target_user_id)

        now = self._clock()
        async with self._uow_factory() as uow:
            try:
                await _load_actor(uow, requested_by)
                target = await _load_target(uow, target_user_id)
                if target.role is role:
                    raise ValidationError(
                        f"User already holds role '{role.value}'",
                        details={"user_id": target_user_id},
                    )
                request = await uow.requests.add(
                    RoleChangeRequest(
                        id=str(uuid.uuid4()),
                        target_user_id=target_user_id,
                        requested_role=role,
                        current_role_at_request_time=target.role,
                        requested_by=requested_by,
                        reason=reason,
                        status=RequestStatus.PENDING,
                        created_at=now,
                    )
                )
                await uow.audit.append(
                    AuditLogEntry(
                        action=AuditAction.ROLE_REQUESTED,
                        performed_by=requested_by,
                        target_user_id=target_user_id,
                        timestamp=now,
                        previous_role=target.role,
                        new_role=role,
                        reason=reason,
                        request_id=request.id,
                    )
                )
                await uow.commit()
            except Exception:
                await uow.rollback()
                raise
        logger.info(
            "role_requested request_id=%s target_user_id=%s role=%s by=%s",
            request.id,
            target_user_id,
            role.value,
            requested_by,
        )
        return request

    async def approve(self, request_id: str, approved_by: str) -> RoleChangeRequest:
        """
        Approve a pending request and apply the role change.

        Raises:
            NotFoundError: Unknown request
            RequestAlreadyProcessedError: Request is approved or rejected
            PermissionDeniedError: Approver may not assign the requested role
        """
        now = self._clock()
        async with self._uow_factory() as uow:
            try:
                request = await self._load_pending(uow, request_id)
                await self._authorize_processing(uow, request, approved_by)
                await self._apply_assignment(
                    uow,
                    request.target_user_id,
                    request.requested_role,
                    approved_by,
                    reason=f"Approved request: {request.reason}",
                    action=AuditAction.ROLE_ASSIGNED,
                    now=now,
                    request_id=request.id,
                )
                approved = replace(
                    request,
                    status=RequestStatus.APPROVED,
                    processed_by=approved_by,
                    processed_at=now,
                )
                await uow.requests.save(approved)
                await uow.audit.append(
                    AuditLogEntry(
                        action=AuditAction.REQUEST_APPROVED,
                        performed_by=approved_by,
                        target_user_id=request.target_user_id,
                        timestamp=now,
                        previous_role=request.current_role_at_request_time,
                        new_role=request.requested_role,
                        reason=request.reason,
                        request_id=request.id,
                    )
                )
                await uow.commit()
            except Exception:
                await uow.rollback()
                raise
        logger.info("request_approved request_id=%s by=%s", request_id, approved_by)
        return approved

    async def reject(
        self, request_id: str, rejected_by: str, reason: str | None = None
    ) -> RoleChangeRequest:
        now = self._clock()
        async with self._uow_factory() as uow:
            try:
                request = await self._load_pending(uow, request_id)
                await self._authorize_processing(uow, request, rejected_by)
                rejected = replace(
                    request,
                    status=RequestStatus.REJECTED,
                    processed_by=rejected_by,
                    processed_at=now,
                    rejection_reason=reason,
                )
                await uow.requests.save(rejected)
                await uow.audit.append(
                    AuditLogEntry(
                        action=AuditAction.REQUEST_REJECTED,
                        performed_by=rejected_by,
                        target_user_id=request.target_user_id,
                        timestamp=now,
                        previous_role=request.current_role_at_request_time,
                        new_role=request.requested_role,
                        reason=reason,
                        request_id=request.id,
                    )
                )
                await uow.commit()
            except Exception:
                await uow.rollback()
                raise
        logger.info("request_rejected request_id=%s by=%s", request_id, rejected_by)
        return rejected

    @staticmethod
    async def _load_pending(uow: RoleUnitOfWork, request_id: str) -> RoleChangeRequest:
        request = await uow.requests.get(request_id, for_update=True)
        if request is None:
            raise NotFoundError(
                "Role change request not found", details={"request_id": request_id}
            )
        validate_request_pending(request)
        return request

    @staticmethod
    async def _authorize_processing(
        uow: RoleUnitOfWork, request: RoleChangeRequest, actor_id: str
    ) -> None:
        actor = await _load_actor(uow, actor_id)
        if not is_assignment_allowed(actor.role, request.requested_role):
            raise PermissionDeniedError(
                f"Role '{actor.role.value}' cannot process a request for "
                f"'{request.requested_role.value}'",
                details={"request_id": request.id, "actor_id": actor_id},
            )

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    async def list_pending_requests(self) -> list[RoleChangeRequest]:
        async with self._uow_factory() as uow:
            return await uow.requests.list_pending()

    async def get_role_assignment_history(
        self, target_user_id: str | None = None, limit: int = 50
    ) -> list[AuditLogEntry]:
        """Role assignments and removals, newest first."""
        if limit <= 0 or limit > MAX_HISTORY_LIMIT:
            raise ValidationError(
                f"limit must be between 1 and {MAX_HISTORY_LIMIT}",
                details={"limit": limit},
            )
        async with self._uow_factory() as uow:
            return await uow.audit.list_entries(
                target_user_id=target_user_id,
                actions=ROLE_CHANGE_ACTIONS,
                limit=limit,
            )

    async def get_role_statistics(self, now: datetime | None = None) -> RoleStatistics:
        now = now or self._clock()
        async with self._uow_factory() as uow:
            counts = await uow.users.count_by_role()
            recent = await uow.audit.list_entries(
                actions=ROLE_CHANGE_ACTIONS,
                since=now - RECENT_CHANGES_WINDOW,
                limit=MAX_HISTORY_LIMIT,
            )
            pending = await uow.requests.list_pending()
        return RoleStatistics(
            total_by_role={role: counts.get(role, 0) for role in Role},
            recent_changes=len(recent),
            pending_requests=len(pending),
        )

    async def can_user_assign_role(self, assigner_id: str, role: Role | str) -> bool:
        """Matrix check for UI hints. Unknown users or roles answer False."""
        try:
            target_role = parse_role(role)
        except ValidationError:
            return False
        async with self._uow_factory() as uow:
            profile = await uow.users.get_profile(assigner_id)
        if profile is None or not profile.is_active:
            return False
        return is_assignment_allowed(profile.role, target_role)
