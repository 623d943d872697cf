"""Call lookup and redaction state transitions."""

from collections.abc import AsyncIterator
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from callguard.common.models import (
    RedactionErrorCode,
    RedactionSegment,
    RedactionStatus,
)
from callguard.db.models import CallModel


class CallsService:
    """Service for call reads and redaction status updates.

    Every transition out of ``processing`` is a conditional UPDATE on the
    current status, so a call reaches a terminal status at most once even
    if two writers race.
    """

    async def get_call(
        self,
        db: AsyncSession,
        call_id: UUID,
    ) -> CallModel | None:
        """Fetch a call with its owner.

        Args:
            db: Database session
            call_id: Call UUID

        Returns:
            CallModel or None if not found
        """
        query = (
            select(CallModel)
            .options(selectinload(CallModel.owner))
            .where(CallModel.id == call_id)
        )
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def mark_processing(self, db: AsyncSession, call_id: UUID) -> bool:
        """Move a call into ``processing`` and clear any previous result.

        Callers must hold the call's redaction lock. A row already in
        ``processing`` under the lock was abandoned by a crashed run and is
        taken over.

        Returns:
            True if the call was moved, False if it has a terminal status
        """
        result = await db.execute(
            update(CallModel)
            .where(
                CallModel.id == call_id,
                CallModel.redaction_status.in_(
                    [
                        RedactionStatus.NOT_NEEDED.value,
                        RedactionStatus.PROCESSING.value,
                    ]
                ),
            )
            .values(
                redaction_status=RedactionStatus.PROCESSING.value,
                redacted=False,
                redacted_segments=[],
                redacted_at=None,
                redaction_error=None,
            )
        )
        await db.commit()
        return result.rowcount == 1

    async def complete(
        self,
        db: AsyncSession,
        call_id: UUID,
        segments: list[RedactionSegment],
        transcript: str,
    ) -> bool:
        """Record a successful redaction and store the sanitized transcript."""
        result = await db.execute(
            update(CallModel)
            .where(
                CallModel.id == call_id,
                CallModel.redaction_status == RedactionStatus.PROCESSING.value,
            )
            .values(
                redaction_status=RedactionStatus.COMPLETED.value,
                redacted=True,
                redacted_segments=[s.model_dump() for s in segments],
                redacted_at=datetime.now(UTC),
                redaction_error=None,
                transcript=transcript,
            )
        )
        await db.commit()
        return result.rowcount == 1

    async def mark_not_needed(
        self,
        db: AsyncSession,
        call_id: UUID,
        transcript: str,
    ) -> bool:
        """Record that nothing sensitive was found and store the transcript."""
        result = await db.execute(
            update(CallModel)
            .where(
                CallModel.id == call_id,
                CallModel.redaction_status == RedactionStatus.PROCESSING.value,
            )
            .values(
                redaction_status=RedactionStatus.NOT_NEEDED.value,
                redacted=False,
                redacted_segments=[],
                transcript=transcript,
            )
        )
        await db.commit()
        return result.rowcount == 1

    async def fail(
        self,
        db: AsyncSession,
        call_id: UUID,
        error_code: RedactionErrorCode,
    ) -> bool:
        """Record a failed redaction. The stored transcript is left as it was."""
        result = await db.execute(
            update(CallModel)
            .where(
                CallModel.id == call_id,
                CallModel.redaction_status == RedactionStatus.PROCESSING.value,
            )
            .values(
                redaction_status=RedactionStatus.FAILED.value,
                redacted=False,
                redaction_error=error_code.value,
            )
        )
        await db.commit()
        return result.rowcount == 1

    async def reset_redaction(self, db: AsyncSession, call_id: UUID) -> bool:
        """Make a call eligible for another redaction run.

        Returns:
            True if reset, False if the call is missing or currently processing
        """
        result = await db.execute(
            update(CallModel)
            .where(
                CallModel.id == call_id,
                CallModel.redaction_status != RedactionStatus.PROCESSING.value,
            )
            .values(
                redaction_status=RedactionStatus.NOT_NEEDED.value,
                redaction_error=None,
            )
        )
        await db.commit()
        return result.rowcount == 1

    async def update_transcript(
        self,
        db: AsyncSession,
        call_id: UUID,
        transcript: str,
    ) -> None:
        """Overwrite the stored transcript text."""
        await db.execute(
            update(CallModel)
            .where(CallModel.id == call_id)
            .values(transcript=transcript)
        )
        await db.commit()

    async def iter_transcripts(
        self,
        db: AsyncSession,
        batch_size: int = 500,
    ) -> AsyncIterator[tuple[UUID, str]]:
        """Yield (call_id, transcript) for every call with stored text."""
        last_id: UUID | None = None
        while True:
            query = (
                select(CallModel.id, CallModel.transcript)
                .where(CallModel.transcript.is_not(None))
                .order_by(CallModel.id)
                .limit(batch_size)
            )
            if last_id is not None:
                query = query.where(CallModel.id > last_id)
            rows = (await db.execute(query)).all()
            if not rows:
                return
            for call_id, transcript in rows:
                yield call_id, transcript
            last_id = rows[-1][0]
