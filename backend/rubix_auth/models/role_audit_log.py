import uuid
from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class RoleAuditLog(Base):
    """Append-only record of role mutations. Rows are never updated."""

    __tablename__ = "role_audit_logs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    performed_by: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    target_user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    previous_role: Mapped[str | None] = mapped_column(String(32))
    new_role: Mapped[str | None] = mapped_column(String(32))
    reason: Mapped[str | None] = mapped_column(Text)
    request_id: Mapped[str | None] = mapped_column(String(36), index=True)
    source: Mapped[str] = mapped_column(String(50), nullable=False, default="role-workflow")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
