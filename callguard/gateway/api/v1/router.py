"""V1 API router - aggregates all v1 routes."""

from fastapi import APIRouter

from callguard.gateway.api.v1 import audio, calls

router = APIRouter(prefix="/v1")

# Mount recording delivery routes
router.include_router(audio.router)  # GET /v1/audio/{call_id}, /meta

# Mount redaction routes
router.include_router(calls.router)  # /v1/calls/{call_id}/redaction
