"""callguard CLI commands.

Usage:
    callguard serve --port 8000
    callguard reprocess <call-id> transcript.json
    callguard sanitize-transcripts --dry-run
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Annotated
from uuid import UUID

import typer

import callguard.logging
import callguard.metrics
from callguard.common.models import RedactionStatus
from callguard.redaction.pipeline import (
    CallNotFoundError,
    PipelineResult,
    TranscriptInput,
)

app = typer.Typer(help="callguard: sensitive-data redaction for recorded calls.")


@app.command("serve")
def serve(
    host: Annotated[str, typer.Option("--host", help="Bind address")] = "0.0.0.0",
    port: Annotated[int, typer.Option("--port", "-p", help="Bind port")] = 8000,
    reload: Annotated[
        bool, typer.Option("--reload", help="Reload on code changes (development)")
    ] = False,
) -> None:
    """Run the gateway (audio delivery and redaction API)."""
    import uvicorn

    uvicorn.run(
        "callguard.gateway.main:app",
        host=host,
        port=port,
        reload=reload,
        log_config=None,  # structlog owns logging
    )


async def _reprocess(call_id: UUID, transcript: TranscriptInput) -> PipelineResult:
    from callguard.common.redis import get_redis, reset_provider
    from callguard.config import get_settings
    from callguard.db.session import async_session, engine, init_db
    from callguard.gateway.services.calls import CallsService
    from callguard.redaction.pipeline import RedactionPipeline

    await init_db()
    calls = CallsService()
    try:
        async with async_session() as db:
            if await calls.get_call(db, call_id) is None:
                raise CallNotFoundError(call_id)
            if not await calls.reset_redaction(db, call_id):
                raise RuntimeError("Call is currently being redacted")

        pipeline = RedactionPipeline(
            get_settings(), async_session, await get_redis(), calls_service=calls
        )
        return await pipeline.run(call_id, transcript)
    finally:
        await reset_provider()
        await engine.dispose()


@app.command("reprocess")
def reprocess(
    call_id: Annotated[UUID, typer.Argument(help="Call to redact again")],
    transcript_file: Annotated[
        Path,
        typer.Argument(
            help='Transcript JSON: {"text": ..., "words": [{"word", "start", "end"}]}',
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ],
) -> None:
    """Reset a call's redaction record and run the pipeline again."""
    callguard.logging.configure("cli")
    callguard.metrics.configure_metrics("cli")

    try:
        transcript = TranscriptInput.from_dict(json.loads(transcript_file.read_text()))
    except (ValueError, KeyError, TypeError) as e:
        typer.echo(f"Error: invalid transcript file: {e}", err=True)
        sys.exit(1)

    try:
        result = asyncio.run(_reprocess(call_id, transcript))
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        sys.exit(1)

    typer.echo(f"Status:   {result.status.value}")
    if result.error_code is not None:
        typer.echo(f"Error:    {result.error_code.value}")
    typer.echo(f"Segments: {len(result.segments)}")
    for segment in result.segments:
        typer.echo(f"  {segment.start:8.3f} - {segment.end:8.3f}  {segment.reason}")

    if result.status == RedactionStatus.FAILED:
        sys.exit(1)


async def _sanitize_transcripts(dry_run: bool) -> tuple[int, int]:
    from callguard.db.session import async_session, engine
    from callguard.gateway.services.calls import CallsService
    from callguard.redaction.sanitizer import redact_text

    calls = CallsService()
    scanned = 0
    changed = 0
    try:
        async with async_session() as reader, async_session() as writer:
            async for call_id, transcript in calls.iter_transcripts(reader):
                scanned += 1
                sanitized = redact_text(transcript)
                if sanitized == transcript:
                    continue
                changed += 1
                if not dry_run:
                    await calls.update_transcript(writer, call_id, sanitized)
    finally:
        await engine.dispose()
    return scanned, changed


@app.command("sanitize-transcripts")
def sanitize_transcripts(
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Report affected calls without writing"),
    ] = False,
) -> None:
    """Sanitize transcripts stored before redaction was enabled."""
    callguard.logging.configure("cli")

    try:
        scanned, changed = asyncio.run(_sanitize_transcripts(dry_run))
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        sys.exit(1)

    verb = "would be sanitized" if dry_run else "sanitized"
    typer.echo(f"Scanned {scanned} transcript(s); {changed} {verb}.")


if __name__ == "__main__":
    app()
