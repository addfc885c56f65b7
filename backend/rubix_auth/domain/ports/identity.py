from __future__ import annotations

from typing import Protocol

from ..models import Credentials, ExternalToken, IdentityResult


class IdentityProvider(Protocol):
    """Credential verification and provider-side session handling.

    Transport failures MUST surface as NetworkUnavailableError so callers
    can tell transient faults from credential errors.
    """

    async def authenticate(self, credentials: Credentials) -> IdentityResult:
        ...

    async def authenticate_external(self, token: ExternalToken) -> IdentityResult:
        ...

    async def current_session_principal_id(self) -> str | None:
        ...

    async def invalidate_session(self) -> None:
        ...


class AccountRegistrar(Protocol):
    async def create_account(
        self, email: str, password: str, display_name: str | None = None
    ) -> IdentityResult:
        ...


class TokenResolver(Protocol):
    async def resolve_principal_id(self, id_token: str) -> str:
        ...
