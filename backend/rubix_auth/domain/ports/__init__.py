from .audit import AuditSink
from .identity import AccountRegistrar, IdentityProvider, TokenResolver
from .role_requests import RoleRequestStore, RoleUnitOfWork, RoleUnitOfWorkFactory
from .secure_store import SecureKeyValueStore
from .user_store import UserStore

__all__ = [
    "AccountRegistrar",
    "AuditSink",
    "IdentityProvider",
    "RoleRequestStore",
    "RoleUnitOfWork",
    "RoleUnitOfWorkFactory",
    "SecureKeyValueStore",
    "TokenResolver",
    "UserStore",
]
