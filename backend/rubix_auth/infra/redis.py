import logging

from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import RedisError

from ..errors import NetworkUnavailableError
from ..security.encryption import ValueCipher

logger = logging.getLogger("rubix_auth.redis")


def get_async_redis_client(redis_url: str) -> AsyncRedis:
    """Create an async Redis client returning raw bytes."""
    if not redis_url:
        raise ValueError("REDIS_URL must be set")
    return AsyncRedis.from_url(redis_url, decode_responses=False)


class RedisSecureStore:
    """
    Secure key-value store on Redis.

    Values are Fernet-encrypted before they leave the process, so Redis
    only ever holds ciphertext.
    """

    def __init__(
        self,
        redis_client: AsyncRedis,
        cipher: ValueCipher,
        *,
        ttl_seconds: int | None = None,
    ) -> None:
        self._redis = redis_client
        self._cipher = cipher
        self._ttl = ttl_seconds

    async def put(self, key: str, value: bytes) -> None:
        token = self._cipher.encrypt(value)
        try:
            await self._redis.set(key, token, ex=self._ttl)
        except RedisError as exc:
            logger.error("Redis operation failed operation=SET key=%s error=%s", key, exc)
            raise NetworkUnavailableError("Secure store unavailable") from exc

    async def get(self, key: str) -> bytes | None:
        try:
            token = await self._redis.get(key)
        except RedisError as exc:
            logger.error("Redis operation failed operation=GET key=%s error=%s", key, exc)
            raise NetworkUnavailableError("Secure store unavailable") from exc
        if token is None:
            return None
        if isinstance(token, str):
            token = token.encode("ascii")
        try:
            return self._cipher.decrypt(token)
        except ValueError:
            # Written under another secret or tampered with
            logger.warning("secure_store_undecryptable key=%s", key)
            await self.delete(key)
            return None

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except RedisError as exc:
            logger.error("Redis operation failed operation=DEL key=%s error=%s", key, exc)
            raise NetworkUnavailableError("Secure store unavailable") from exc
