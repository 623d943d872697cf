"""Recording delivery endpoints.

GET /v1/audio/{call_id} - Stream the current recording, with Range support
GET /v1/audio/{call_id}/meta - Duration read from the recording header
"""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

import callguard.metrics
from callguard.common.audio_probe import probe_duration
from callguard.common.constants import AUDIO_MEDIA_TYPE
from callguard.common.sftp import RemoteFileNotFoundError, RemoteStorageError
from callguard.config import Settings
from callguard.db.models import CallModel
from callguard.gateway.dependencies import get_calls_service, get_db, get_settings
from callguard.gateway.models.responses import AudioMetaResponse
from callguard.gateway.services.calls import CallsService
from callguard.gateway.services.ranges import InvalidRangeError, parse_range
from callguard.gateway.services.recordings import (
    RecordingSource,
    RecordingUnavailableError,
    open_recording_source,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/audio", tags=["audio"])


class RecordingStreamResponse(StreamingResponse):
    """Streaming response that closes its recording source when done.

    The source is closed after the body is sent, when the client
    disconnects, and when reading fails mid-stream.
    """

    def __init__(self, source: RecordingSource, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.source = source

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.source.aclose()


async def _stream(source: RecordingSource, start: int, end: int, chunk_size: int):
    try:
        async for chunk in source.iter_range(start, end, chunk_size):
            yield chunk
    except (RemoteStorageError, OSError) as e:
        # Abort the response; never pad the body to the promised length
        logger.error("audio_stream_aborted", source=source.kind, error=str(e))
        raise


async def _get_playable_call(
    call_id: UUID,
    db: AsyncSession,
    calls_service: CallsService,
) -> CallModel:
    call = await calls_service.get_call(db, call_id)
    if call is None:
        raise HTTPException(status_code=404, detail="Call not found")
    if not call.redaction_result.playable:
        raise HTTPException(
            status_code=409,
            detail="Recording is being redacted; try again shortly",
        )
    return call


async def _open_source(call: CallModel, settings: Settings) -> RecordingSource:
    try:
        return await open_recording_source(call, settings)
    except (RecordingUnavailableError, RemoteFileNotFoundError) as e:
        raise HTTPException(status_code=404, detail="Recording not found") from e
    except RemoteStorageError as e:
        logger.warning("recording_host_unavailable", call_id=str(call.id), error=str(e))
        raise HTTPException(
            status_code=502, detail="Recording host is unavailable"
        ) from e


@router.get(
    "/{call_id}",
    summary="Stream call recording",
    description="Stream the current (redacted if applicable) recording. Supports a single byte Range.",
    response_class=StreamingResponse,
    responses={
        200: {"content": {AUDIO_MEDIA_TYPE: {}}},
        206: {"description": "Partial content"},
        404: {"description": "Call or recording not found"},
        409: {"description": "Redaction in progress"},
        416: {"description": "Range not satisfiable"},
        502: {"description": "Recording host unavailable"},
    },
)
async def get_audio(
    call_id: UUID,
    range_header: str | None = Header(default=None, alias="Range"),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    calls_service: CallsService = Depends(get_calls_service),
) -> StreamingResponse:
    """Stream a call recording."""
    call = await _get_playable_call(call_id, db, calls_service)
    source = await _open_source(call, settings)

    try:
        byte_range = parse_range(range_header, source.size)
    except InvalidRangeError as e:
        await source.aclose()
        raise HTTPException(
            status_code=416,
            detail=f"Range not satisfiable: {e.reason}",
            headers={"Content-Range": e.content_range},
        ) from e

    headers = {
        "Accept-Ranges": "bytes",
        "Content-Disposition": f'inline; filename="{call_id}.wav"',
    }
    if byte_range is None:
        status_code = 200
        start, end = 0, source.size - 1
        length = source.size
    else:
        status_code = 206
        start, end = byte_range.start, byte_range.end
        length = byte_range.length
        headers["Content-Range"] = byte_range.content_range(source.size)
    headers["Content-Length"] = str(length)

    callguard.metrics.inc_gateway_audio_bytes(source.kind, length)

    return RecordingStreamResponse(
        source,
        _stream(source, start, end, settings.audio_stream_chunk_bytes),
        status_code=status_code,
        headers=headers,
        media_type=AUDIO_MEDIA_TYPE,
    )


@router.get(
    "/{call_id}/meta",
    response_model=AudioMetaResponse,
    summary="Get recording duration",
    description="Read the recording duration from its header without downloading the file.",
)
async def get_audio_meta(
    call_id: UUID,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    calls_service: CallsService = Depends(get_calls_service),
) -> AudioMetaResponse:
    """Probe the recording header for its duration."""
    call = await _get_playable_call(call_id, db, calls_service)
    source = await _open_source(call, settings)

    try:
        head = await source.read_head(settings.audio_meta_header_bytes)
    except (RemoteStorageError, OSError) as e:
        logger.warning("recording_header_read_failed", call_id=str(call_id), error=str(e))
        raise HTTPException(
            status_code=502, detail="Recording host is unavailable"
        ) from e
    finally:
        await source.aclose()

    return AudioMetaResponse(duration_seconds=probe_duration(head))
