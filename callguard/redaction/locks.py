"""Per-call redaction locks in Redis."""

import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

import structlog
from redis.asyncio import Redis

from callguard.common.constants import REDACTION_LOCK_KEY

logger = structlog.get_logger()

# Delete the key only while it still holds our token, so a lock that expired
# and was taken by another worker is never released by us.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class LockNotAcquiredError(Exception):
    """Another worker holds the redaction lock for this call."""

    def __init__(self, call_id: UUID | str):
        self.call_id = call_id
        super().__init__(f"Redaction already in progress for call {call_id}")


async def acquire_call_lock(redis: Redis, call_id: UUID | str, ttl_seconds: int) -> str | None:
    """Attempt to acquire the redaction lock for a call.

    Uses Redis SET NX EX for atomic lock acquisition with TTL.

    Returns:
        The lock token if acquired, None if already locked
    """
    token = secrets.token_hex(16)
    key = REDACTION_LOCK_KEY.format(call_id=str(call_id))
    acquired = await redis.set(key, token, nx=True, ex=ttl_seconds)
    return token if acquired else None


async def release_call_lock(redis: Redis, call_id: UUID | str, token: str) -> bool:
    """Release a redaction lock previously acquired with ``token``.

    Returns:
        True if the lock was released, False if it had expired or changed owner
    """
    key = REDACTION_LOCK_KEY.format(call_id=str(call_id))
    released = await redis.eval(_RELEASE_SCRIPT, 1, key, token)
    return bool(released)


@asynccontextmanager
async def call_lock(redis: Redis, call_id: UUID | str, ttl_seconds: int) -> AsyncIterator[str]:
    """Hold the redaction lock for a call for the duration of the block.

    Raises:
        LockNotAcquiredError: If another worker holds the lock
    """
    token = await acquire_call_lock(redis, call_id, ttl_seconds)
    if token is None:
        raise LockNotAcquiredError(call_id)
    try:
        yield token
    finally:
        if not await release_call_lock(redis, call_id, token):
            logger.warning("redaction_lock_lost", call_id=str(call_id))
