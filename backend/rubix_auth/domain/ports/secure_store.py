from __future__ import annotations

from typing import Protocol


class SecureKeyValueStore(Protocol):
    """Encrypted-at-rest byte store."""

    async def put(self, key: str, value: bytes) -> None:
        ...

    async def get(self, key: str) -> bytes | None:
        ...

    async def delete(self, key: str) -> None:
        ...
