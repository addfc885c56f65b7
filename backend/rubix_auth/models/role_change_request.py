from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class RoleChangeRequestRecord(Base):
    __tablename__ = "role_change_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    target_user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    requested_role: Mapped[str] = mapped_column(String(32), nullable=False)
    current_role_at_request_time: Mapped[str] = mapped_column(String(32), nullable=False)
    requested_by: Mapped[str] = mapped_column(String(128), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    processed_by: Mapped[str | None] = mapped_column(String(128))
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rejection_reason: Mapped[str | None] = mapped_column(Text)

    # Elevated is bootstrap-only and never requestable
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="valid_request_status",
        ),
        CheckConstraint(
            "requested_role IN ('admin', 'user')",
            name="valid_requested_role",
        ),
    )
