from .base import Base
from .user_profile import UserProfileRecord
from .role_audit_log import RoleAuditLog
from .role_change_request import RoleChangeRequestRecord

__all__ = [
    "Base",
    "UserProfileRecord",
    "RoleAuditLog",
    "RoleChangeRequestRecord",
]
