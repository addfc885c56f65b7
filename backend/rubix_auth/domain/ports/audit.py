from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence

from ..models import AuditAction, AuditLogEntry


class AuditSink(Protocol):
    """Append-only audit log. Entries are never updated or deleted."""

    async def append(self, entry: AuditLogEntry) -> None:
        ...

    async def list_entries(
        self,
        *,
        target_user_id: str | None = None,
        actions: Sequence[AuditAction] | None = None,
        since: datetime | None = None,
        limit: int = 50,
    ) -> list[AuditLogEntry]:
        ...
