"""Call redaction endpoints.

GET /v1/calls/{call_id}/redaction - Redaction state for the dashboard
POST /v1/calls/{call_id}/redaction - Submit a word-timed transcript for redaction
"""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from callguard.common.models import RedactionStatus
from callguard.gateway.dependencies import get_calls_service, get_db, get_worker_pool
from callguard.gateway.models.requests import RedactionRequest
from callguard.gateway.models.responses import (
    RedactionAcceptedResponse,
    RedactionStatusResponse,
)
from callguard.gateway.services.calls import CallsService
from callguard.redaction.worker import RedactionWorkerPool

logger = structlog.get_logger()

router = APIRouter(prefix="/calls", tags=["calls"])


@router.get(
    "/{call_id}/redaction",
    response_model=RedactionStatusResponse,
    summary="Get redaction status",
)
async def get_redaction(
    call_id: UUID,
    db: AsyncSession = Depends(get_db),
    calls_service: CallsService = Depends(get_calls_service),
) -> RedactionStatusResponse:
    """Get the redaction record of a call."""
    call = await calls_service.get_call(db, call_id)
    if call is None:
        raise HTTPException(status_code=404, detail="Call not found")
    return RedactionStatusResponse.from_result(call.id, call.redaction_result)


@router.post(
    "/{call_id}/redaction",
    response_model=RedactionAcceptedResponse,
    status_code=202,
    summary="Redact a call",
    description=(
        "Queue detection, transcript sanitization and recording redaction for a call. "
        "Calls that already finished redaction must be reset with the CLI first."
    ),
)
async def submit_redaction(
    call_id: UUID,
    body: RedactionRequest,
    db: AsyncSession = Depends(get_db),
    calls_service: CallsService = Depends(get_calls_service),
    worker_pool: RedactionWorkerPool = Depends(get_worker_pool),
) -> RedactionAcceptedResponse:
    """Queue a redaction run."""
    call = await calls_service.get_call(db, call_id)
    if call is None:
        raise HTTPException(status_code=404, detail="Call not found")

    status = RedactionStatus(call.redaction_status)
    if status == RedactionStatus.PROCESSING:
        raise HTTPException(status_code=409, detail="Redaction already in progress")
    if status.is_terminal:
        raise HTTPException(
            status_code=409,
            detail=f"Redaction already {status.value}; reset the call to reprocess",
        )

    worker_pool.submit(call_id, body.to_transcript())
    logger.info("redaction_accepted", call_id=str(call_id), word_count=len(body.words))
    return RedactionAcceptedResponse(call_id=call_id)
