from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.rbac_contract import Role, parse_role
from ..domain.models import UserProfile
from ..errors import NotFoundError
from ..models.user_profile import UserProfileRecord
from ._time import as_utc


def to_domain(record: UserProfileRecord) -> UserProfile:
    return UserProfile(
        id=record.id,
        email=record.email,
        role=parse_role(record.role),
        is_active=record.is_active,
        display_name=record.display_name,
        created_at=as_utc(record.created_at),
        last_login_at=as_utc(record.last_login_at),
        last_role_modified_at=as_utc(record.last_role_modified_at),
        last_role_modified_by=record.last_role_modified_by,
    )


class UserProfileRepository:
    """UserStore over a caller-owned AsyncSession. Flushes, never commits."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_role(self, principal_id: str) -> Role:
        result = await self.session.execute(
            select(UserProfileRecord.role).where(UserProfileRecord.id == principal_id)
        )
        role = result.scalar_one_or_none()
        if role is None:
            raise NotFoundError("User not found", details={"user_id": principal_id})
        return parse_role(role)

    async def get_profile(self, principal_id: str) -> UserProfile | None:
        record = await self.session.get(UserProfileRecord, principal_id)
        return to_domain(record) if record is not None else None

    async def create_profile(self, profile: UserProfile) -> UserProfile:
        record = UserProfileRecord(
            id=profile.id,
            email=profile.email,
            display_name=profile.display_name,
            role=profile.role.value,
            is_active=profile.is_active,
            last_login_at=profile.last_login_at,
            last_role_modified_at=profile.last_role_modified_at,
            last_role_modified_by=profile.last_role_modified_by,
        )
        if profile.created_at is not None:
            record.created_at = profile.created_at
        self.session.add(record)
        await self.session.flush()
        await self.session.refresh(record)
        return to_domain(record)

    async def set_role(
        self,
        principal_id: str,
        role: Role,
        *,
        modified_by: str,
        modified_at: datetime,
    ) -> None:
        result = await self.session.execute(
            update(UserProfileRecord)
            .where(UserProfileRecord.id == principal_id)
            .values(
                role=role.value,
                last_role_modified_at=modified_at,
                last_role_modified_by=modified_by,
            )
        )
        if result.rowcount == 0:
            raise NotFoundError("User not found", details={"user_id": principal_id})

    async def touch_last_login(self, principal_id: str, at: datetime) -> None:
        await self.session.execute(
            update(UserProfileRecord)
            .where(UserProfileRecord.id == principal_id)
            .values(last_login_at=at)
        )

    async def elevated_account_exists(self) -> bool:
        result = await self.session.execute(
            select(UserProfileRecord.id)
            .where(UserProfileRecord.role == Role.ELEVATED.value)
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def count_by_role(self) -> dict[Role, int]:
        result = await self.session.execute(
            select(UserProfileRecord.role, func.count())
            .group_by(UserProfileRecord.role)
        )
        counts = {role: 0 for role in Role}
        for role, total in result.all():
            counts[parse_role(role)] = int(total)
        return counts
