"""FastAPI dependency injection functions."""

from collections.abc import AsyncGenerator

from fastapi import HTTPException, Request
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from callguard.common.redis import get_redis as _get_redis_client
from callguard.config import Settings
from callguard.config import get_settings as _get_settings
from callguard.db.session import async_session
from callguard.gateway.services.calls import CallsService
from callguard.redaction.worker import RedactionWorkerPool


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_redis() -> Redis:
    """Get async Redis client."""
    return await _get_redis_client()


def get_settings() -> Settings:
    """Get application settings."""
    return _get_settings()


# Service singletons for dependency injection
_calls_service: CallsService | None = None


def get_calls_service() -> CallsService:
    """Get CallsService instance (singleton)."""
    global _calls_service
    if _calls_service is None:
        _calls_service = CallsService()
    return _calls_service


def get_worker_pool(request: Request) -> RedactionWorkerPool:
    """Get the redaction worker pool.

    The pool is created in main.py lifespan and stored on app state.
    """
    pool = getattr(request.app.state, "worker_pool", None)
    if pool is None:
        raise HTTPException(
            status_code=503,
            detail="Redaction worker pool not initialized",
        )
    return pool
