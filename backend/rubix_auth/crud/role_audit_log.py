from datetime import datetime
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.rbac_contract import parse_role
from ..domain.models import AuditAction, AuditLogEntry
from ..models.role_audit_log import RoleAuditLog
from ._time import as_utc


def to_domain(record: RoleAuditLog) -> AuditLogEntry:
    return AuditLogEntry(
        action=AuditAction(record.action),
        performed_by=record.performed_by,
        target_user_id=record.target_user_id,
        timestamp=as_utc(record.created_at),
        previous_role=parse_role(record.previous_role) if record.previous_role else None,
        new_role=parse_role(record.new_role) if record.new_role else None,
        reason=record.reason,
        request_id=record.request_id,
        source=record.source,
    )


class RoleAuditLogRepository:
    """Append-only. No update or delete operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(self, entry: AuditLogEntry) -> None:
        self.session.add(
            RoleAuditLog(
                action=entry.action.value,
                performed_by=entry.performed_by,
                target_user_id=entry.target_user_id,
                previous_role=entry.previous_role.value if entry.previous_role else None,
                new_role=entry.new_role.value if entry.new_role else None,
                reason=entry.reason,
                request_id=entry.request_id,
                source=entry.source,
                created_at=entry.timestamp,
            )
        )
        await self.session.flush()

    async def list_entries(
        self,
        *,
        target_user_id: str | None = None,
        actions: Sequence[AuditAction] | None = None,
        since: datetime | None = None,
        limit: int = 50,
    ) -> list[AuditLogEntry]:
        query = select(RoleAuditLog)
        if target_user_id is not None:
            query = query.where(RoleAuditLog.target_user_id == target_user_id)
        if actions:
            query = query.where(RoleAuditLog.action.in_([action.value for action in actions]))
        if since is not None:
            query = query.where(RoleAuditLog.created_at >= since)
        result = await self.session.execute(
            query.order_by(RoleAuditLog.created_at.desc()).limit(limit)
        )
        return [to_domain(record) for record in result.scalars().all()]
