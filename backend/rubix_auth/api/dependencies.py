"""
Request-scoped dependencies for the role API.

Authentication: ``Authorization: Bearer <id token>`` is resolved to a
principal id by the identity provider, then the profile is read from the
user store. The resulting Principal is built per request and never
cached, so a role change is enforced on the very next call.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..auth.rbac_contract import Permission, permissions_for
from ..domain.models import Principal
from ..domain.ports.identity import TokenResolver
from ..domain.ports.role_requests import RoleUnitOfWorkFactory
from ..errors import AccountInactiveError, InvalidCredentialsError
from ..services.authorization import AuthorizationGuard
from ..services.role_assignment import RoleAssignmentService

bearer_scheme = HTTPBearer(auto_error=False)


def get_uow_factory(request: Request) -> RoleUnitOfWorkFactory:
    return request.app.state.uow_factory


def get_token_resolver(request: Request) -> TokenResolver:
    return request.app.state.token_resolver


def get_role_service(
    uow_factory: RoleUnitOfWorkFactory = Depends(get_uow_factory),
) -> RoleAssignmentService:
    return RoleAssignmentService(uow_factory)


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    resolver: TokenResolver = Depends(get_token_resolver),
    uow_factory: RoleUnitOfWorkFactory = Depends(get_uow_factory),
) -> Principal:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise InvalidCredentialsError("Not authenticated")

    principal_id = await resolver.resolve_principal_id(credentials.credentials)
    async with uow_factory() as uow:
        profile = await uow.users.get_profile(principal_id)
    if profile is None:
        raise InvalidCredentialsError("Unknown account")
    if not profile.is_active:
        raise AccountInactiveError()

    return Principal(
        id=profile.id,
        email=profile.email,
        role=profile.role,
        permissions=permissions_for(profile.role),
        is_active=profile.is_active,
        last_revalidated_at=datetime.now(timezone.utc),
        display_name=profile.display_name,
    )


def require_permission(permission: Permission) -> Callable:
    """Dependency enforcing *permission* on the calling principal."""

    async def dependency(
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:
        AuthorizationGuard(principal).require_permission(permission)
        return principal

    return dependency
