"""FastAPI Gateway application entry point."""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.responses import Response

import callguard.logging
import callguard.metrics
from callguard import __version__
from callguard.common.redis import RedisProvider, reset_provider, set_provider
from callguard.config import get_settings
from callguard.db.session import async_session, engine, init_db
from callguard.gateway.api.v1.router import router as v1_router
from callguard.gateway.middleware import setup_exception_handlers
from callguard.gateway.middleware.correlation import CorrelationIdMiddleware
from callguard.gateway.middleware.metrics import MetricsMiddleware
from callguard.redaction.audio import ffmpeg_available
from callguard.redaction.pipeline import RedactionPipeline
from callguard.redaction.worker import RedactionWorkerPool

# Configure structured logging
callguard.logging.configure("gateway")
logger = structlog.get_logger()

# Configure Prometheus metrics
callguard.metrics.configure_metrics("gateway")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Startup:
    - Initialize Redis provider
    - Initialize database tables
    - Start the redaction worker pool

    Shutdown:
    - Stop the worker pool, letting running redactions finish
    - Close Redis connections
    - Dispose database engine
    """
    logger.info("gateway_starting")

    settings = get_settings()
    redis_provider = RedisProvider(settings)
    set_provider(redis_provider)
    app.state.redis_provider = redis_provider

    await init_db()

    pipeline = RedactionPipeline(
        settings,
        async_session,
        await redis_provider.get_client(),
    )
    worker_pool = RedactionWorkerPool(pipeline, settings.redaction_max_concurrency)
    app.state.worker_pool = worker_pool

    if not await asyncio.to_thread(ffmpeg_available, settings.ffmpeg_path):
        logger.warning("ffmpeg_unavailable", ffmpeg_path=settings.ffmpeg_path)

    logger.info(
        "gateway_started",
        redaction_max_concurrency=settings.redaction_max_concurrency,
    )

    yield

    logger.info("gateway_stopping")
    await worker_pool.stop()
    await reset_provider()
    await engine.dispose()
    logger.info("gateway_stopped")


# Create FastAPI application
app = FastAPI(
    title="callguard",
    description="Sensitive-data redaction and delivery for recorded calls",
    version=__version__,
    lifespan=lifespan,
)

# Add correlation ID middleware (generates request_id for every request)
app.add_middleware(CorrelationIdMiddleware)

# Add metrics middleware - records request counts and latencies
if callguard.metrics.is_metrics_enabled():
    app.add_middleware(MetricsMiddleware)

# Setup exception handlers
setup_exception_handlers(app)

# Mount API routes
app.include_router(v1_router)


@app.get("/health", tags=["system"])
async def health_check():
    """Health check endpoint."""
    settings = get_settings()
    ffmpeg_ok = await asyncio.to_thread(ffmpeg_available, settings.ffmpeg_path)
    return {
        "status": "healthy" if ffmpeg_ok else "degraded",
        "ffmpeg": ffmpeg_ok,
    }


@app.get("/metrics", tags=["system"], include_in_schema=False)
async def metrics_endpoint():
    """Prometheus metrics endpoint."""
    if not callguard.metrics.is_metrics_enabled():
        return Response(content="Metrics disabled", status_code=404)

    from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/", tags=["system"])
async def root():
    """Root endpoint with API info."""
    return {
        "name": "callguard",
        "version": __version__,
        "docs": "/docs",
    }
