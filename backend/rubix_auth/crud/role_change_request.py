from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.rbac_contract import parse_role
from ..domain.models import RequestStatus, RoleChangeRequest
from ..errors import NotFoundError
from ..models.role_change_request import RoleChangeRequestRecord
from ._time import as_utc


def to_domain(record: RoleChangeRequestRecord) -> RoleChangeRequest:
    return RoleChangeRequest(
        id=record.id,
        target_user_id=record.target_user_id,
        requested_role=parse_role(record.requested_role),
        current_role_at_request_time=parse_role(record.current_role_at_request_time),
        requested_by=record.requested_by,
        reason=record.reason,
        status=RequestStatus(record.status),
        created_at=as_utc(record.created_at),
        processed_by=record.processed_by,
        processed_at=as_utc(record.processed_at),
        rejection_reason=record.rejection_reason,
    )


class RoleChangeRequestRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, request: RoleChangeRequest) -> RoleChangeRequest:
        record = RoleChangeRequestRecord(
            id=request.id,
            target_user_id=request.target_user_id,
            requested_role=request.requested_role.value,
            current_role_at_request_time=request.current_role_at_request_time.value,
            requested_by=request.requested_by,
            reason=request.reason,
            status=request.status.value,
            created_at=request.created_at,
        )
        self.session.add(record)
        await self.session.flush()
        return to_domain(record)

    async def get(
        self, request_id: str, *, for_update: bool = False
    ) -> RoleChangeRequest | None:
        query = select(RoleChangeRequestRecord).where(
            RoleChangeRequestRecord.id == request_id
        )
        if for_update:
            # Serializes concurrent approve/reject of the same request
            query = query.with_for_update()
        result = await self.session.execute(query)
        record = result.scalar_one_or_none()
        return to_domain(record) if record is not None else None

    async def save(self, request: RoleChangeRequest) -> None:
        record = await self.session.get(RoleChangeRequestRecord, request.id)
        if record is None:
            raise NotFoundError(
                "Role change request not found", details={"request_id": request.id}
            )
        record.status = request.status.value
        record.processed_by = request.processed_by
        record.processed_at = request.processed_at
        record.rejection_reason = request.rejection_reason
        await self.session.flush()

    async def list_pending(self) -> list[RoleChangeRequest]:
        result = await self.session.execute(
            select(RoleChangeRequestRecord)
            .where(RoleChangeRequestRecord.status == RequestStatus.PENDING.value)
            .order_by(RoleChangeRequestRecord.created_at.desc())
        )
        return [to_domain(record) for record in result.scalars().all()]
