"""Redaction pipeline for one call.

Steps, in order, under the call's Redis lock:

1. Load the call and move it into ``processing``.
2. Detect sensitive spans in the word-timed transcript.
3. Merge spans and sanitize the transcript text.
4. Fetch the recording (local store first, then the owner's PBX host).
5. Mute the merged ranges with ffmpeg in a worker thread.
6. Write the redacted recording back and record the final status.

Step 6 is shielded from cancellation: once the remote swap has started it
runs to completion and its outcome is persisted. An unexpected error at any
step, or a cancellation before step 6, records ``internal_error`` so the call
never stays in ``processing``.

The sanitized transcript is only released when the recording was redacted
as well (or nothing needed redacting). On any failure it is withheld so
the caller never forwards text whose audio still contains the data.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

import structlog
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

import callguard.metrics
from callguard.common.models import (
    MergedSpan,
    RedactionErrorCode,
    RedactionSegment,
    RedactionStatus,
    WordTiming,
    segments_from_merged,
)
from callguard.config import Settings
from callguard.db.models import CallModel
from callguard.gateway.services.calls import CallsService
from callguard.redaction.audio import RedactionError, redact
from callguard.redaction.detector import detect
from callguard.redaction.locks import LockNotAcquiredError, call_lock
from callguard.redaction.merger import merge, text_ranges
from callguard.redaction.sanitizer import sanitize
from callguard.storage.local import LocalRecordingStore
from callguard.storage.sftp import (
    CallOwnerCredentials,
    RemoteFileReplacer,
    RemoteStorageError,
    ReplaceOutcome,
    download,
    resolve_remote_path,
)

logger = structlog.get_logger()


class CallNotFoundError(Exception):
    """No call exists with the given ID."""

    def __init__(self, call_id: UUID):
        self.call_id = call_id
        super().__init__(f"Call not found: {call_id}")


@dataclass
class TranscriptInput:
    """Transcript text and word timings produced by speech-to-text."""

    text: str
    words: list[WordTiming] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TranscriptInput:
        """Build from ``{"text": ..., "words": [{"word", "start", "end"}]}``."""
        words = [
            WordTiming(word=str(w["word"]), start=float(w["start"]), end=float(w["end"]))
            for w in data.get("words") or []
        ]
        return cls(text=data.get("text") or "", words=words)


@dataclass
class PipelineResult:
    """Outcome of one pipeline run.

    ``sanitized_transcript`` is the text to hand to downstream analysis, or
    None when it must be withheld.
    """

    call_id: UUID
    status: RedactionStatus
    sanitized_transcript: str | None
    segments: list[RedactionSegment] = field(default_factory=list)
    error_code: RedactionErrorCode | None = None
    skipped: bool = False  # Another run holds the call, or it is already terminal


@dataclass
class _Recording:
    audio: bytes
    local_path: str | None
    remote_path: str | None
    owner: CallOwnerCredentials | None


@dataclass
class _Redacted:
    recording: _Recording
    audio: bytes
    merged: list[MergedSpan]
    sanitized: str


class RedactionPipeline:
    """Runs detection, sanitization, audio redaction and replacement for a call."""

    def __init__(
        self,
        settings: Settings,
        db_session_factory: Callable[[], AbstractAsyncContextManager[AsyncSession]],
        redis: Redis,
        calls_service: CallsService | None = None,
        replacer: RemoteFileReplacer | None = None,
        local_store: LocalRecordingStore | None = None,
    ):
        self.settings = settings
        self.db_session_factory = db_session_factory
        self.redis = redis
        self.calls = calls_service or CallsService()
        self.replacer = replacer or RemoteFileReplacer(settings)
        self.local_store = local_store or LocalRecordingStore(settings)

    async def run(self, call_id: UUID, transcript: TranscriptInput) -> PipelineResult:
        """Redact one call.

        Raises:
            CallNotFoundError: If the call does not exist
        """
        started = time.perf_counter()
        with structlog.contextvars.bound_contextvars(call_id=str(call_id)):
            try:
                async with call_lock(
                    self.redis, call_id, self.settings.redaction_lock_ttl_seconds
                ):
                    result = await self._run_locked(call_id, transcript)
            except LockNotAcquiredError:
                logger.info("redaction_skipped", reason="locked")
                return PipelineResult(
                    call_id, RedactionStatus.PROCESSING, None, skipped=True
                )

            if not result.skipped:
                callguard.metrics.inc_redaction_runs(
                    result.status.value,
                    result.error_code.value if result.error_code else None,
                )
                callguard.metrics.observe_redaction_duration(
                    time.perf_counter() - started
                )
            return result

    async def _run_locked(
        self, call_id: UUID, transcript: TranscriptInput
    ) -> PipelineResult:
        async with self.db_session_factory() as db:
            call = await self.calls.get_call(db, call_id)
            if call is None:
                raise CallNotFoundError(call_id)

            current = RedactionStatus(call.redaction_status)
            if current.is_terminal:
                logger.info("redaction_skipped", reason=current.value)
                return PipelineResult(
                    call_id,
                    current,
                    None,
                    error_code=call.redaction_result.error_code,
                    skipped=True,
                )

            if not await self.calls.mark_processing(db, call_id):
                logger.info("redaction_skipped", reason="status_changed")
                return PipelineResult(call_id, current, None, skipped=True)

        # From here on the call is in processing and every exit must leave it
        # in a terminal status.
        try:
            outcome = await self._redact(call, transcript)
        except asyncio.CancelledError:
            logger.warning("redaction_cancelled")
            await asyncio.shield(
                self._fail(
                    call_id, RedactionErrorCode.INTERNAL_ERROR, reason="cancelled"
                )
            )
            raise
        except Exception as e:
            logger.exception("redaction_crashed", step="redact")
            return await asyncio.shield(
                self._fail(call_id, RedactionErrorCode.INTERNAL_ERROR, error=repr(e))
            )

        if isinstance(outcome, PipelineResult):
            return outcome
        return await asyncio.shield(self._commit(call_id, outcome))

    async def _redact(
        self, call: CallModel, transcript: TranscriptInput
    ) -> PipelineResult | _Redacted:
        """Run every step that leaves the recording untouched.

        Returns a final result when the run ends early, otherwise the
        redacted audio ready to be committed.
        """
        call_id = call.id
        logger.info(
            "redaction_started",
            word_count=len(transcript.words),
            audio_duration=call.audio_duration,
        )

        spans = detect(
            transcript.text,
            transcript.words,
            self.settings.redaction_padding_seconds,
            audio_duration=call.audio_duration,
        )
        if not spans:
            async with self.db_session_factory() as db:
                await self.calls.mark_not_needed(db, call_id, transcript.text)
            logger.info("redaction_not_needed")
            return PipelineResult(
                call_id, RedactionStatus.NOT_NEEDED, transcript.text
            )

        merged = merge(spans, call.audio_duration)
        unaligned = [s for s in merged if s.text_ranges is None]
        if unaligned:
            return await self._fail(
                call_id,
                RedactionErrorCode.TEXT_ALIGNMENT_FAILED,
                unaligned_count=len(unaligned),
            )
        sanitized = sanitize(transcript.text, text_ranges(merged))

        try:
            recording = await self._fetch_recording(call)
        except (RemoteStorageError, OSError) as e:
            return await self._fail(
                call_id, RedactionErrorCode.RECORDING_UNAVAILABLE, error=str(e)
            )

        try:
            redacted_audio = await asyncio.to_thread(
                redact,
                recording.audio,
                [(s.start_time, s.end_time) for s in merged],
                ffmpeg_path=self.settings.ffmpeg_path,
                timeout_seconds=self.settings.ffmpeg_timeout_seconds,
            )
        except RedactionError as e:
            return await self._fail(
                call_id, RedactionErrorCode.AUDIO_REDACTION_FAILED, error=str(e)
            )

        return _Redacted(recording, redacted_audio, merged, sanitized)

    async def _fetch_recording(self, call: CallModel) -> _Recording:
        local_path = call.local_audio_path
        if local_path and not self.local_store.exists(local_path):
            local_path = None

        remote_path = None
        owner = None
        if call.recording_path and call.owner is not None and call.owner.ssh_host:
            owner = CallOwnerCredentials.from_model(call.owner)
            remote_path = resolve_remote_path(call.recording_path, owner.base_path)

        if local_path:
            audio = await asyncio.to_thread(self.local_store.read, local_path)
        elif owner is not None and remote_path is not None:
            audio = await download(owner, remote_path, self.settings)
        else:
            raise RemoteStorageError("Call has no local or remote recording")

        return _Recording(audio, local_path, remote_path, owner)


    async def _commit(self, call_id: UUID, redacted: _Redacted) -> PipelineResult:
        try:
            return await self._write_back(call_id, redacted)
        except Exception as e:
            logger.exception("redaction_crashed", step="commit")
            return await self._fail(
                call_id, RedactionErrorCode.INTERNAL_ERROR, error=repr(e)
            )

    async def _write_back(self, call_id: UUID, redacted: _Redacted) -> PipelineResult:
        recording = redacted.recording
        if recording.owner is not None and recording.remote_path is not None:
            replaced = await self.replacer.replace(
                recording.owner, recording.remote_path, redacted.audio
            )
            if replaced.outcome == ReplaceOutcome.INCONSISTENT:
                return await self._fail(
                    call_id,
                    RedactionErrorCode.REPLACE_INCONSISTENT,
                    remote_path=replaced.target_path,
                    temp_path=replaced.temp_path,
                )
            if replaced.outcome == ReplaceOutcome.FAILED:
                return await self._fail(
                    call_id, RedactionErrorCode.REPLACE_FAILED, error=replaced.error
                )

        if recording.local_path:
            try:
                await asyncio.to_thread(
                    self.local_store.write_atomic, recording.local_path, redacted.audio
                )
            except OSError as e:
                return await self._fail(
                    call_id, RedactionErrorCode.REPLACE_FAILED, error=str(e)
                )

        merged = redacted.merged
        segments = segments_from_merged(merged)
        async with self.db_session_factory() as db:
            await self.calls.complete(db, call_id, segments, redacted.sanitized)

        callguard.metrics.inc_redaction_segments(len(segments))
        logger.info(
            "redaction_completed",
            segment_count=len(segments),
            reasons=sorted({r.value for s in merged for r in s.reasons}),
        )
        return PipelineResult(
            call_id, RedactionStatus.COMPLETED, redacted.sanitized, segments=segments
        )

    async def _fail(
        self, call_id: UUID, error_code: RedactionErrorCode, **context: Any
    ) -> PipelineResult:
        logger.warning("redaction_failed", error_code=error_code.value, **context)
        async with self.db_session_factory() as db:
            await self.calls.fail(db, call_id, error_code)
        return PipelineResult(
            call_id, RedactionStatus.FAILED, None, error_code=error_code
        )
