"""Identity provider client for the Identity Toolkit REST API.

Implements the IdentityProvider, AccountRegistrar and TokenResolver
ports. The refresh token of the current session is kept in the secure
key-value store so a session survives a process restart.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

import httpx

from ..domain.models import Credentials, ExternalToken, IdentityResult
from ..domain.ports.secure_store import SecureKeyValueStore
from ..errors import (
    AccountInactiveError,
    AppError,
    InvalidCredentialsError,
    NetworkUnavailableError,
    ValidationError,
)

logger = logging.getLogger("rubix_auth.identity")

REFRESH_TOKEN_KEY = "rubix_auth:identity_refresh"

INVALID_CREDENTIAL_CODES = frozenset({
    "EMAIL_NOT_FOUND",
    "INVALID_PASSWORD",
    "INVALID_LOGIN_CREDENTIALS",
    "INVALID_EMAIL",
    "INVALID_IDP_RESPONSE",
    "INVALID_ID_TOKEN",
    "TOKEN_EXPIRED",
    "INVALID_REFRESH_TOKEN",
    "USER_NOT_FOUND",
    "MISSING_PASSWORD",
})
DISABLED_CODES = frozenset({"USER_DISABLED"})
THROTTLED_CODES = frozenset({"TOO_MANY_ATTEMPTS_TRY_LATER", "QUOTA_EXCEEDED"})
# Refresh failures that mean the stored session is gone for good
SESSION_ENDED_CODES = frozenset({
    "TOKEN_EXPIRED",
    "INVALID_REFRESH_TOKEN",
    "USER_NOT_FOUND",
    "USER_DISABLED",
})
VALIDATION_CODES = frozenset({"EMAIL_EXISTS", "WEAK_PASSWORD", "OPERATION_NOT_ALLOWED"})

PROVIDER_IDS: Mapping[str, str] = {
    "google": "google.com",
    "apple": "apple.com",
}


def _error_code(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return "UNKNOWN"
    message = str(payload.get("error", {}).get("message", "UNKNOWN"))
    # Codes may carry a suffix, e.g. "WEAK_PASSWORD : Password should be ..."
    return message.split(" ", 1)[0].strip()


class IdentityToolkitProvider:
    def __init__(
        self,
        *,
        api_key: str,
        token_store: SecureKeyValueStore,
        base_url: str = "https://identitytoolkit.googleapis.com/v1",
        token_url: str = "https://securetoken.googleapis.com/v1/token",
        timeout_seconds: float = 10.0,
        max_retries: int = 1,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required for the identity provider")
        self._api_key = api_key
        self._token_store = token_store
        self._base_url = base_url.rstrip("/")
        self._token_url = token_url
        self._timeout_seconds = timeout_seconds
        self._max_retries = max_retries
        self._client = client
        self._refresh_token: str | None = None

    # ------------------------------------------------------------------
    # IdentityProvider
    # ------------------------------------------------------------------

    async def authenticate(self, credentials: Credentials) -> IdentityResult:
        payload = await self._post_json(
            "accounts:signInWithPassword",
            {
                "email": credentials.email,
                "password": credentials.password,
                "returnSecureToken": True,
            },
        )
        return await self._start_session(payload)

    async def authenticate_external(self, token: ExternalToken) -> IdentityResult:
        provider_id = PROVIDER_IDS.get(token.provider)
        if provider_id is None:
            raise ValidationError(f"Unsupported identity provider '{token.provider}'")
        post_body = {"id_token": token.id_token, "providerId": provider_id}
        if token.access_token:
            post_body["access_token"] = token.access_token
        payload = await self._post_json(
            "accounts:signInWithIdp",
            {
                "postBody": urlencode(post_body),
                "requestUri": "http://localhost",
                "returnIdpCredential": True,
                "returnSecureToken": True,
            },
        )
        return await self._start_session(payload)

    async def current_session_principal_id(self) -> str | None:
        refresh_token = self._refresh_token
        if refresh_token is None:
            stored = await self._token_store.get(REFRESH_TOKEN_KEY)
            if stored is None:
                return None
            refresh_token = stored.decode("utf-8")

        try:
            payload = await self._request(
                self._token_url,
                data={"grant_type": "refresh_token", "refresh_token": refresh_token},
            )
        except (InvalidCredentialsError, AccountInactiveError) as exc:
            if exc.details not in SESSION_ENDED_CODES:
                raise
            logger.info("identity_session_expired code=%s", exc.details)
            await self.invalidate_session()
            return None

        principal_id = str(payload["user_id"])
        await self._remember(str(payload.get("refresh_token") or refresh_token))
        return principal_id

    async def invalidate_session(self) -> None:
        self._refresh_token = None
        await self._token_store.delete(REFRESH_TOKEN_KEY)

    # ------------------------------------------------------------------
    # AccountRegistrar / TokenResolver
    # ------------------------------------------------------------------

    async def create_account(
        self, email: str, password: str, display_name: str | None = None
    ) -> IdentityResult:
        payload = await self._post_json(
            "accounts:signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        if display_name:
            await self._post_json(
                "accounts:update",
                {
                    "idToken": payload["idToken"],
                    "displayName": display_name,
                    "returnSecureToken": False,
                },
            )
        return IdentityResult(
            principal_id=str(payload["localId"]),
            email=str(payload.get("email") or email),
            is_new_user=True,
        )

    async def resolve_principal_id(self, id_token: str) -> str:
        payload = await self._post_json("accounts:lookup", {"idToken": id_token})
        users = payload.get("users") or []
        if not users:
            raise InvalidCredentialsError("Unknown or expired token")
        user = users[0]
        if user.get("disabled"):
            raise AccountInactiveError()
        return str(user["localId"])

    # ------------------------------------------------------------------
    # transport
    # ------------------------------------------------------------------

    async def _start_session(self, payload: Mapping[str, Any]) -> IdentityResult:
        refresh_token = payload.get("refreshToken")
        if refresh_token:
            await self._remember(str(refresh_token))
        return IdentityResult(
            principal_id=str(payload["localId"]),
            email=str(payload.get("email", "")).lower(),
            is_new_user=bool(payload.get("isNewUser", False)),
        )

    async def _remember(self, refresh_token: str) -> None:
        self._refresh_token = refresh_token
        await self._token_store.put(REFRESH_TOKEN_KEY, refresh_token.encode("utf-8"))

    async def _post_json(self, method: str, body: Mapping[str, Any]) -> dict[str, Any]:
        return await self._request(f"{self._base_url}/{method}", json=body)

    async def _request(
        self,
        url: str,
        *,
        json: Mapping[str, Any] | None = None,
        data: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        last_error: Exception | None = None
        for attempt in range(self._max_retries + 1):
            try:
                response = await self._send(url, json=json, data=data)
            except httpx.RequestError as exc:
                last_error = exc
                logger.warning(
                    "identity_request_failed url=%s attempt=%d error=%s",
                    url.split("?", 1)[0],
                    attempt + 1,
                    exc.__class__.__name__,
                )
                if attempt >= self._max_retries:
                    break
                await asyncio.sleep(0.5 * (attempt + 1))
                continue

            if response.status_code == 429:
                raise NetworkUnavailableError(
                    "Identity provider is throttling requests",
                    details={"status_code": response.status_code},
                )
            if response.status_code >= 500:
                raise NetworkUnavailableError(
                    "Identity provider unavailable",
                    details={"status_code": response.status_code},
                )
            if response.status_code >= 400:
                raise self._map_error(response)
            return response.json()

        raise NetworkUnavailableError("Identity provider unreachable") from last_error

    async def _send(
        self,
        url: str,
        *,
        json: Mapping[str, Any] | None,
        data: Mapping[str, str] | None,
    ) -> httpx.Response:
        params = {"key": self._api_key}
        if self._client is not None:
            return await self._client.post(url, params=params, json=json, data=data)
        async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
            return await client.post(url, params=params, json=json, data=data)

    @staticmethod
    def _map_error(response: httpx.Response) -> AppError:
        code = _error_code(response)
        if code in THROTTLED_CODES:
            return NetworkUnavailableError("Identity provider is throttling requests", details=code)
        if code in DISABLED_CODES:
            return AccountInactiveError(details=code)
        if code in INVALID_CREDENTIAL_CODES:
            return InvalidCredentialsError(details=code)
        if code in VALIDATION_CODES:
            return ValidationError(f"Identity provider rejected request: {code}", details=code)
        return InvalidCredentialsError("Authentication failed", details=code)
