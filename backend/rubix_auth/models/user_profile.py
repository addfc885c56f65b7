from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, validates

from ..auth.rbac_contract import Role
from .base import Base

ROLE_VALUES = tuple(role.value for role in Role)


class UserProfileRecord(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True, index=True)
    display_name: Mapped[str | None] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(
        String(32), nullable=False, index=True, default=Role.STANDARD.value
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_role_modified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_role_modified_by: Mapped[str | None] = mapped_column(String(128))

    __table_args__ = (
        CheckConstraint(
            "role IN ('super_admin', 'admin', 'user')",
            name="valid_user_role",
        ),
    )

    @validates("role")
    def validate_role(self, key: str, value: str) -> str:
        """Reject role strings outside the closed role set before they reach the database."""
        if value not in ROLE_VALUES:
            raise ValueError(
                f"Invalid role '{value}'. Must be one of: {', '.join(sorted(ROLE_VALUES))}"
            )
        return value
