import logging

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..settings import Settings, get_settings

logger = logging.getLogger(__name__)

_REDIS_ERRORS = (RedisConnectionError, RedisTimeoutError)


class RedisStore:
    """KeyValueStore over Redis; every key is written under ``key_prefix``.

    Read and write failures are logged and reported as a miss or ``False``
    so a flaky Redis degrades persistence instead of failing a command.
    """

    def __init__(self, url: str, key_prefix: str = "ghlops:") -> None:
        self._url = url
        self._prefix = key_prefix
        self._client: Redis | None = None

    @property
    def client(self) -> Redis | None:
        return self._client

    @property
    def key_prefix(self) -> str:
        return self._prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def connect(self) -> None:
        """Open the client and ping it; a second call is a no-op.

        Raises:
            redis.exceptions.ConnectionError / TimeoutError: the server did not answer.
        """
        if self._client is not None:
            return
        client = Redis.from_url(self._url, decode_responses=True)
        try:
            await client.ping()
        except _REDIS_ERRORS as e:
            logger.warning("Redis at %s did not answer ping: %s", self._url.split("@")[-1], e)
            await client.aclose()
            raise
        self._client = client
        logger.info("State store connected to Redis %s (prefix %r)", self._url.split("@")[-1], self._prefix)

    async def close(self) -> None:
        if self._client is None:
            return
        await self._client.aclose()
        self._client = None

    async def get(self, key: str) -> str | None:
        if self._client is None:
            return None
        try:
            value = await self._client.get(self._key(key))
        except _REDIS_ERRORS as e:
            logger.warning("Reading %s from Redis failed: %s", key, e)
            return None
        return None if value is None else str(value)

    async def set(self, key: str, value: str) -> bool:
        if self._client is None:
            return False
        try:
            await self._client.set(self._key(key), value)
        except _REDIS_ERRORS as e:
            logger.warning("Writing %s to Redis failed: %s", key, e)
            return False
        return True

    async def remove(self, key: str) -> bool:
        """Delete ``key``; a key that was never stored also counts as removed."""
        if self._client is None:
            return False
        try:
            await self._client.delete(self._key(key))
        except _REDIS_ERRORS as e:
            logger.warning("Removing %s from Redis failed: %s", key, e)
            return False
        return True


def get_redis_store(settings: Settings | None = None) -> RedisStore | None:
    """Build a RedisStore from settings, or None when REDIS_URL is unset."""
    settings = settings or get_settings()
    url = (settings.redis_url or "").strip()
    if not url:
        return None
    return RedisStore(url, key_prefix=settings.redis_key_prefix)
