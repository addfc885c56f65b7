from __future__ import annotations

from typing import AsyncContextManager, Callable, Protocol

from ..models import RoleChangeRequest
from .audit import AuditSink
from .user_store import UserStore


class RoleRequestStore(Protocol):
    async def add(self, request: RoleChangeRequest) -> RoleChangeRequest:
        ...

    async def get(
        self, request_id: str, *, for_update: bool = False
    ) -> RoleChangeRequest | None:
        ...

    async def save(self, request: RoleChangeRequest) -> None:
        ...

    async def list_pending(self) -> list[RoleChangeRequest]:
        ...


class RoleUnitOfWork(Protocol):
    """Transaction scope shared by a role mutation and its audit entry."""

    users: UserStore
    audit: AuditSink
    requests: RoleRequestStore

    async def commit(self) -> None:
        ...

    async def rollback(self) -> None:
        ...


RoleUnitOfWorkFactory = Callable[[], AsyncContextManager[RoleUnitOfWork]]
