"""SQL-backed unit of work and user store."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator

from sqlalchemy.exc import (
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..auth.rbac_contract import Role
from ..crud.role_audit_log import RoleAuditLogRepository
from ..crud.role_change_request import RoleChangeRequestRepository
from ..crud.user_profile import UserProfileRepository
from ..domain.models import UserProfile
from ..domain.ports.role_requests import RoleUnitOfWorkFactory
from ..errors import InternalError, NetworkUnavailableError, ValidationError

logger = logging.getLogger("rubix_auth.sql")


@asynccontextmanager
async def translate_db_errors() -> AsyncIterator[None]:
    """Map driver failures onto the AppError taxonomy."""
    try:
        yield
    except IntegrityError as exc:
        logger.warning("db_integrity_error error=%s", exc.orig.__class__.__name__)
        raise ValidationError("Conflicting record") from exc
    except (OperationalError, InterfaceError) as exc:
        logger.warning("db_unavailable error=%s", exc.__class__.__name__)
        raise NetworkUnavailableError("User store unavailable") from exc
    except SQLAlchemyError as exc:
        logger.error("db_error", exc_info=True)
        raise InternalError() from exc


class SqlUnitOfWork:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.users = UserProfileRepository(session)
        self.audit = RoleAuditLogRepository(session)
        self.requests = RoleChangeRequestRepository(session)

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()


def sql_unit_of_work(
    session_factory: async_sessionmaker[AsyncSession],
) -> RoleUnitOfWorkFactory:
    @asynccontextmanager
    async def factory() -> AsyncIterator[SqlUnitOfWork]:
        async with translate_db_errors():
            async with session_factory() as session:
                yield SqlUnitOfWork(session)

    return factory


class SqlUserStore:
    """UserStore for the session manager: one short session per call."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _repository(self, *, write: bool = False) -> AsyncIterator[UserProfileRepository]:
        async with translate_db_errors():
            async with self._session_factory() as session:
                yield UserProfileRepository(session)
                if write:
                    await session.commit()

    async def get_role(self, principal_id: str) -> Role:
        async with self._repository() as repo:
            return await repo.get_role(principal_id)

    async def get_profile(self, principal_id: str) -> UserProfile | None:
        async with self._repository() as repo:
            return await repo.get_profile(principal_id)

    async def create_profile(self, profile: UserProfile) -> UserProfile:
        async with self._repository(write=True) as repo:
            return await repo.create_profile(profile)

    async def set_role(
        self,
        principal_id: str,
        role: Role,
        *,
        modified_by: str,
        modified_at: datetime,
    ) -> None:
        async with self._repository(write=True) as repo:
            await repo.set_role(
                principal_id, role, modified_by=modified_by, modified_at=modified_at
            )

    async def touch_last_login(self, principal_id: str, at: datetime) -> None:
        async with self._repository(write=True) as repo:
            await repo.touch_last_login(principal_id, at)

    async def elevated_account_exists(self) -> bool:
        async with self._repository() as repo:
            return await repo.elevated_account_exists()

    async def count_by_role(self) -> dict[Role, int]:
        async with self._repository() as repo:
            return await repo.count_by_role()
