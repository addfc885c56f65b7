"""Persisted session fingerprint.

The fingerprint only bootstraps a "probably still signed in" UI state
before the first authoritative fetch returns. It is never consulted for
an authorization decision.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime

from ..auth.rbac_contract import Role
from ..domain.models import SessionFingerprint
from ..domain.ports.secure_store import SecureKeyValueStore

logger = logging.getLogger("rubix_auth.cache")

DEFAULT_CACHE_KEY = "rubix_auth:session"


def encode_fingerprint(fingerprint: SessionFingerprint) -> bytes:
    payload = {
        "principal_id": fingerprint.principal_id,
        "role": fingerprint.role.value,
        "last_revalidated_at": fingerprint.last_revalidated_at.isoformat(),
    }
    return json.dumps(payload, sort_keys=True).encode("utf-8")


def decode_fingerprint(raw: bytes) -> SessionFingerprint:
    payload = json.loads(raw.decode("utf-8"))
    return SessionFingerprint(
        principal_id=str(payload["principal_id"]),
        role=Role(payload["role"]),
        last_revalidated_at=datetime.fromisoformat(payload["last_revalidated_at"]),
    )


class SecureSessionCache:
    def __init__(self, store: SecureKeyValueStore, key: str = DEFAULT_CACHE_KEY) -> None:
        self._store = store
        self._key = key

    async def put(self, fingerprint: SessionFingerprint) -> None:
        await self._store.put(self._key, encode_fingerprint(fingerprint))

    async def get(self) -> SessionFingerprint | None:
        raw = await self._store.get(self._key)
        if raw is None:
            return None
        try:
            return decode_fingerprint(raw)
        except (ValueError, KeyError, TypeError) as exc:
            # Unreadable fingerprint is dropped, it carries no authority
            logger.warning("session_cache_corrupt key=%s error=%s", self._key, exc)
            await self._store.delete(self._key)
            return None

    async def clear(self) -> None:
        await self._store.delete(self._key)
