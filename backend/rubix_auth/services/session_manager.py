"""
Session lifecycle: sign-in, sign-out and periodic revalidation.

The SessionManager is the single writer of the current Principal. Every
state change happens under one asyncio.Lock and bumps an epoch counter;
a revalidation that started under an older epoch is discarded when it
completes, so a late fetch can never resurrect a signed-out session.

Background revalidation fails soft (logged, last-known-good Principal
kept). User-initiated calls fail loud.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from ..auth.rbac_contract import Role, level_of, permissions_for
from ..domain.models import (
    Credentials,
    ExternalToken,
    IdentityResult,
    Principal,
    SessionFingerprint,
    UserProfile,
)
from ..domain.ports.identity import IdentityProvider
from ..domain.ports.user_store import UserStore
from ..errors import AccountInactiveError, AppError, InitializationFailedError
from ..security.session_cache import SecureSessionCache

logger = logging.getLogger("rubix_auth.session")

DEFAULT_REVALIDATION_INTERVAL_SECONDS = 300.0


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class SessionEventType(str, Enum):
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"
    PRINCIPAL_UPDATED = "principal_updated"
    ROLE_DEMOTED = "role_demoted"
    SESSION_REVOKED = "session_revoked"


@dataclass(frozen=True)
class SessionEvent:
    type: SessionEventType
    principal: Principal | None
    previous_role: Role | None = None


SessionListener = Callable[[SessionEvent], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _principal_from(profile: UserProfile, now: datetime) -> Principal:
    return Principal(
        id=profile.id,
        email=profile.email,
        role=profile.role,
        permissions=permissions_for(profile.role),
        is_active=profile.is_active,
        last_revalidated_at=now,
        display_name=profile.display_name,
    )


def _fingerprint_of(principal: Principal) -> SessionFingerprint:
    return SessionFingerprint(
        principal_id=principal.id,
        role=principal.role,
        last_revalidated_at=principal.last_revalidated_at,
    )


class SessionManager:
    def __init__(
        self,
        identity: IdentityProvider,
        user_store: UserStore,
        cache: SecureSessionCache,
        *,
        revalidation_interval: float = DEFAULT_REVALIDATION_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if revalidation_interval <= 0:
            raise ValueError("revalidation_interval must be greater than 0")
        self._identity = identity
        self._users = user_store
        self._cache = cache
        self._interval = revalidation_interval
        self._clock = clock

        self._lock = asyncio.Lock()
        self._state = SessionState.UNINITIALIZED
        self._principal: Principal | None = None
        self._epoch = 0
        self._cached_fingerprint: SessionFingerprint | None = None
        self._loop_task: asyncio.Task[None] | None = None
        self._inflight: asyncio.Task[Principal | None] | None = None
        self._listeners: list[SessionListener] = []

    # ------------------------------------------------------------------
    # read side
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def principal(self) -> Principal | None:
        return self._principal

    @property
    def is_authenticated(self) -> bool:
        return self._state is SessionState.AUTHENTICATED

    @property
    def cached_fingerprint(self) -> SessionFingerprint | None:
        """Fingerprint found at startup. Display-only, never authoritative."""
        return self._cached_fingerprint

    @property
    def revalidation_in_flight(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            with suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> SessionState:
        """
        Recover an existing identity session at process start.

        Raises:
            InitializationFailedError: If the identity provider or the
                user store cannot be reached. The fingerprint is cleared
                and the manager returns to UNINITIALIZED so a retry is
                possible.
        """
        async with self._lock:
            if self._state is not SessionState.UNINITIALIZED:
                return self._state
            self._state = SessionState.INITIALIZING

            try:
                self._cached_fingerprint = await self._cache.get()
            except AppError as exc:
                logger.warning("session_cache_unreadable error=%s", exc.code)
                self._cached_fingerprint = None

            try:
                principal = await self._recover_principal()
            except Exception as exc:
                logger.error(
                    "session_initialize_failed error=%s", exc.__class__.__name__
                )
                self._state = SessionState.UNINITIALIZED
                await self._clear_fingerprint_quietly()
                raise InitializationFailedError(
                    details={"cause": exc.__class__.__name__}
                ) from exc

            if principal is None:
                self._state = SessionState.UNAUTHENTICATED
                await self._clear_fingerprint_quietly()
                logger.info("session_initialized state=unauthenticated")
                return self._state

            self._install(principal)
            await self._persist_fingerprint(principal)
            logger.info(
                "session_initialized state=authenticated principal_id=%s role=%s",
                principal.id,
                principal.role.value,
            )

        self._emit(SessionEventType.SIGNED_IN, principal)
        return SessionState.AUTHENTICATED

    async def _recover_principal(self) -> Principal | None:
        principal_id = await self._identity.current_session_principal_id()
        if principal_id is None:
            return None
        profile = await self._users.get_profile(principal_id)
        if profile is None or not profile.is_active:
            logger.info(
                "session_recovery_rejected principal_id=%s reason=%s",
                principal_id,
                "missing_profile" if profile is None else "inactive",
            )
            await self._identity.invalidate_session()
            return None
        return _principal_from(profile, self._clock())

    async def sign_in(self, credentials: Credentials) -> Principal:
        result = await self._identity.authenticate(credentials)
        return await self._establish(result, method="password")

    async def sign_in_with_external_provider(self, token: ExternalToken) -> Principal:
        result = await self._identity.authenticate_external(token)
        return await self._establish(result, method=token.provider)

    async def _establish(self, result: IdentityResult, *, method: str) -> Principal:
        now = self._clock()
        profile = await self._users.get_profile(result.principal_id)
        if profile is None:
            # New principals always start as STANDARD
            profile = await self._users.create_profile(
                UserProfile(
                    id=result.principal_id,
                    email=result.email,
                    role=Role.STANDARD,
                    created_at=now,
                    last_login_at=now,
                )
            )
            logger.info("profile_created principal_id=%s", profile.id)
        if not profile.is_active:
            await self._identity.invalidate_session()
            logger.warning("sign_in_rejected principal_id=%s reason=inactive", profile.id)
            raise AccountInactiveError()

        await self._users.touch_last_login(profile.id, now)
        principal = _principal_from(profile, now)

        async with self._lock:
            previous_loop = self._detach_loop()
            self._install(principal)
            await self._persist_fingerprint(principal)
        await self._stop_loop(previous_loop)

        logger.info(
            "sign_in principal_id=%s role=%s method=%s",
            principal.id,
            principal.role.value,
            method,
        )
        self._emit(SessionEventType.SIGNED_IN, principal)
        return principal

    async def sign_out(self) -> None:
        """
        Clear the Principal and fingerprint, stop the loop, end the identity session.

        The identity session is ended and SIGNED_OUT emitted even when the
        fingerprint cannot be cleared; that failure is re-raised afterwards.
        """
        previous = None
        try:
            async with self._lock:
                self._epoch += 1
                previous = self._principal
                self._principal = None
                self._state = SessionState.UNAUTHENTICATED
                loop_task = self._detach_loop()
                try:
                    await self._cache.clear()
                finally:
                    await self._stop_loop(loop_task)
        finally:
            await self._end_identity_session(previous)

    async def _end_identity_session(self, previous: Principal | None) -> None:
        try:
            await self._identity.invalidate_session()
        finally:
            logger.info(
                "sign_out principal_id=%s", previous.id if previous else None
            )
            self._emit(
                SessionEventType.SIGNED_OUT,
                None,
                previous_role=previous.role if previous else None,
            )

    async def close(self) -> None:
        """Stop background work on shutdown. Identity state is left untouched."""
        loop_task = self._detach_loop()
        await self._stop_loop(loop_task)
        inflight, self._inflight = self._inflight, None
        await self._stop_loop(inflight)

    # ------------------------------------------------------------------
    # revalidation
    # ------------------------------------------------------------------

    async def revalidate(self) -> None:
        """Timer-driven revalidation. A no-op while another one is in flight."""
        if self.revalidation_in_flight:
            logger.debug("revalidation_skipped reason=in_flight")
            return
        task = self._ensure_revalidation()
        if task is None:
            return
        try:
            await asyncio.shield(task)
        except AppError as exc:
            logger.warning(
                "revalidation_failed principal_id=%s error=%s",
                self._principal.id if self._principal else None,
                exc.code,
            )
        except Exception:
            logger.error("revalidation_crashed", exc_info=True)

    async def refresh_user(self) -> Principal | None:
        """
        User-initiated revalidation.

        Joins the in-flight revalidation when there is one so only a
        single external fetch happens.

        Raises:
            NetworkUnavailableError: If the user store cannot be reached
        """
        task = self._ensure_revalidation()
        if task is None:
            return None
        return await asyncio.shield(task)

    def _ensure_revalidation(self) -> asyncio.Task[Principal | None] | None:
        if self.revalidation_in_flight:
            return self._inflight
        if self._state is not SessionState.AUTHENTICATED or self._principal is None:
            return None
        task = asyncio.create_task(
            self._revalidate_once(self._epoch, self._principal)
        )
        task.add_done_callback(self._revalidation_done)
        self._inflight = task
        return task

    def _revalidation_done(self, task: asyncio.Task[Principal | None]) -> None:
        if self._inflight is task:
            self._inflight = None
        if not task.cancelled():
            # Mark the exception retrieved; callers that awaited it already saw it
            task.exception()

    async def _revalidate_once(self, epoch: int, current: Principal) -> Principal | None:
        profile = await self._users.get_profile(current.id)
        now = self._clock()
        events: list[SessionEvent] = []

        async with self._lock:
            if epoch != self._epoch or self._state is not SessionState.AUTHENTICATED:
                logger.debug("revalidation_discarded principal_id=%s", current.id)
                return self._principal

            if profile is None or not profile.is_active:
                revoked = await self._revoke_locked(
                    "missing_profile" if profile is None else "inactive"
                )
                events.append(
                    SessionEvent(
                        SessionEventType.SESSION_REVOKED,
                        None,
                        previous_role=revoked.role,
                    )
                )
                result = None
            else:
                held = self._principal
                new_permissions = permissions_for(profile.role)
                if profile.role is held.role and new_permissions == held.permissions:
                    result = held
                else:
                    result = _principal_from(profile, now)
                    self._principal = result
                    await self._persist_fingerprint(result)
                    logger.info(
                        "principal_updated principal_id=%s previous_role=%s role=%s",
                        result.id,
                        held.role.value,
                        result.role.value,
                    )
                    events.append(
                        SessionEvent(
                            SessionEventType.PRINCIPAL_UPDATED,
                            result,
                            previous_role=held.role,
                        )
                    )
                    if level_of(result.role) < level_of(held.role):
                        events.append(
                            SessionEvent(
                                SessionEventType.ROLE_DEMOTED,
                                result,
                                previous_role=held.role,
                            )
                        )

        if result is None:
            try:
                await self._identity.invalidate_session()
            except AppError as exc:
                logger.warning("identity_invalidate_failed error=%s", exc.code)
        for event in events:
            self._dispatch(event)
        return result

    async def _revoke_locked(self, reason: str) -> Principal:
        revoked = self._principal
        self._epoch += 1
        self._principal = None
        self._state = SessionState.UNAUTHENTICATED
        loop_task = self._detach_loop()
        if loop_task is not None:
            # The loop may be awaiting this very revalidation; do not await it
            loop_task.cancel()
        await self._clear_fingerprint_quietly()
        logger.warning(
            "session_revoked principal_id=%s reason=%s", revoked.id, reason
        )
        return revoked

    async def _revalidation_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.revalidate()

    # ------------------------------------------------------------------
    # helpers (callers hold the lock where state is touched)
    # ------------------------------------------------------------------

    def _install(self, principal: Principal) -> None:
        self._epoch += 1
        self._principal = principal
        self._state = SessionState.AUTHENTICATED
        self._loop_task = asyncio.create_task(self._revalidation_loop())

    def _detach_loop(self) -> asyncio.Task | None:
        task, self._loop_task = self._loop_task, None
        return task

    @staticmethod
    async def _stop_loop(task: asyncio.Task | None) -> None:
        if task is None or task.done():
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    async def _persist_fingerprint(self, principal: Principal) -> None:
        try:
            await self._cache.put(_fingerprint_of(principal))
        except AppError as exc:
            logger.warning(
                "session_cache_write_failed principal_id=%s error=%s",
                principal.id,
                exc.code,
            )

    async def _clear_fingerprint_quietly(self) -> None:
        try:
            await self._cache.clear()
        except AppError as exc:
            logger.warning("session_cache_clear_failed error=%s", exc.code)

    def _emit(
        self,
        event_type: SessionEventType,
        principal: Principal | None,
        *,
        previous_role: Role | None = None,
    ) -> None:
        self._dispatch(SessionEvent(event_type, principal, previous_role))

    def _dispatch(self, event: SessionEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.error(
                    "session_listener_failed event=%s", event.type.value, exc_info=True
                )
