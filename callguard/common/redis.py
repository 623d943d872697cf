"""Redis client management with a DI-friendly provider pattern.

Redis only coordinates redaction runs (per-call locks), so the provider
keeps a single lazily created client per process.
"""

import asyncio

from redis.asyncio import Redis
from redis.asyncio import from_url as redis_from_url

from callguard.config import Settings, get_settings


class RedisProvider:
    """Manages the lifecycle of one Redis client."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._client: Redis | None = None
        self._lock = asyncio.Lock()

    def _create_client(self) -> Redis:
        return redis_from_url(
            self._settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )

    async def get_client(self) -> Redis:
        """Get or create the Redis client.

        Uses double-checked locking to prevent race conditions.
        """
        if self._client is not None:
            return self._client

        async with self._lock:
            if self._client is None:
                self._client = self._create_client()
        return self._client

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None


_provider: RedisProvider | None = None


def set_provider(provider: RedisProvider) -> None:
    """Set the global Redis provider (for testing or custom providers)."""
    global _provider
    _provider = provider


async def reset_provider() -> None:
    """Close any existing connection and clear the global provider."""
    global _provider
    if _provider is not None:
        await _provider.close()
        _provider = None


async def get_redis() -> Redis:
    """Get the process-wide Redis client."""
    global _provider
    if _provider is None:
        _provider = RedisProvider(get_settings())
    return await _provider.get_client()
