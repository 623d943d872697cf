"""Unit tests for CallsService."""

from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest
from sqlalchemy.dialects import postgresql

from callguard.common.models import RedactionErrorCode, RedactionSegment
from callguard.gateway.services.calls import CallsService


def _rowcount(n: int):
    result = MagicMock()
    result.rowcount = n
    return result


def _params(mock_db) -> dict:
    """Bind parameters of the last executed statement."""
    statement = mock_db.execute.await_args.args[0]
    return statement.compile(dialect=postgresql.dialect()).params


class TestStatusTransitions:
    """Tests for conditional redaction status updates."""

    @pytest.fixture
    def service(self) -> CallsService:
        return CallsService()

    @pytest.fixture
    def mock_db(self):
        db = AsyncMock()
        db.execute.return_value = _rowcount(1)
        return db

    @pytest.mark.asyncio
    async def test_mark_processing_clears_previous_result(self, service, mock_db):
        assert await service.mark_processing(mock_db, uuid4()) is True

        params = _params(mock_db)
        assert params["redaction_status"] == "processing"
        assert params["redacted"] is False
        assert params["redaction_error"] is None
        assert params["redaction_status_1"] == ["not_needed", "processing"]
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_mark_processing_refused_for_terminal_call(self, service, mock_db):
        mock_db.execute.return_value = _rowcount(0)

        assert await service.mark_processing(mock_db, uuid4()) is False

    @pytest.mark.asyncio
    async def test_complete_stores_segments_and_transcript(self, service, mock_db):
        segments = [RedactionSegment(start=1.5, end=4.4, reason="card_number")]

        assert await service.complete(mock_db, uuid4(), segments, "my card [REDACTED]")

        params = _params(mock_db)
        assert params["redaction_status"] == "completed"
        assert params["redacted"] is True
        assert params["redacted_segments"] == [
            {"start": 1.5, "end": 4.4, "reason": "card_number"}
        ]
        assert params["transcript"] == "my card [REDACTED]"
        assert params["redacted_at"] is not None
        # Only a processing call can complete
        assert params["redaction_status_1"] == "processing"

    @pytest.mark.asyncio
    async def test_second_terminal_write_is_refused(self, service, mock_db):
        mock_db.execute.return_value = _rowcount(0)

        assert await service.fail(mock_db, uuid4(), RedactionErrorCode.REPLACE_FAILED) is False

    @pytest.mark.asyncio
    async def test_fail_leaves_transcript_alone(self, service, mock_db):
        await service.fail(mock_db, uuid4(), RedactionErrorCode.AUDIO_REDACTION_FAILED)

        params = _params(mock_db)
        assert params["redaction_status"] == "failed"
        assert params["redaction_error"] == "audio_redaction_failed"
        assert "transcript" not in params

    @pytest.mark.asyncio
    async def test_mark_not_needed(self, service, mock_db):
        await service.mark_not_needed(mock_db, uuid4(), "thanks for calling")

        params = _params(mock_db)
        assert params["redaction_status"] == "not_needed"
        assert params["transcript"] == "thanks for calling"

    @pytest.mark.asyncio
    async def test_reset_skips_processing_call(self, service, mock_db):
        await service.reset_redaction(mock_db, uuid4())

        params = _params(mock_db)
        assert params["redaction_status"] == "not_needed"
        assert params["redaction_status_1"] == "processing"


class TestIterTranscripts:
    @pytest.mark.asyncio
    async def test_pages_by_id(self):
        ids = [UUID(int=i) for i in range(1, 4)]
        pages = [
            [(ids[0], "one"), (ids[1], "two")],
            [(ids[2], "three")],
            [],
        ]
        mock_db = AsyncMock()
        mock_db.execute.side_effect = [MagicMock(all=MagicMock(return_value=p)) for p in pages]

        rows = [row async for row in CallsService().iter_transcripts(mock_db, batch_size=2)]

        assert rows == [(ids[0], "one"), (ids[1], "two"), (ids[2], "three")]
        assert mock_db.execute.await_count == 3
        last_query = mock_db.execute.await_args.args[0]
        assert last_query.compile(dialect=postgresql.dialect()).params["id_1"] == ids[2]
