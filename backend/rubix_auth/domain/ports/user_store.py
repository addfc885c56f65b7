from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ...auth.rbac_contract import Role
from ..models import UserProfile


class UserStore(Protocol):
    """Durable source of truth for profiles and roles."""

    async def get_role(self, principal_id: str) -> Role:
        ...

    async def get_profile(self, principal_id: str) -> UserProfile | None:
        ...

    async def create_profile(self, profile: UserProfile) -> UserProfile:
        ...

    async def set_role(
        self,
        principal_id: str,
        role: Role,
        *,
        modified_by: str,
        modified_at: datetime,
    ) -> None:
        ...

    async def touch_last_login(self, principal_id: str, at: datetime) -> None:
        ...

    async def elevated_account_exists(self) -> bool:
        ...

    async def count_by_role(self) -> dict[Role, int]:
        ...
