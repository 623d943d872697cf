"""Unit tests for the redaction worker pool and per-call locks."""

import asyncio
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from callguard.common.models import RedactionStatus
from callguard.redaction.locks import (
    LockNotAcquiredError,
    acquire_call_lock,
    call_lock,
    release_call_lock,
)
from callguard.redaction.pipeline import PipelineResult, TranscriptInput
from callguard.redaction.worker import RedactionWorkerPool

TRANSCRIPT = TranscriptInput(text="hello")


class TestRedactionWorkerPool:
    """Tests for RedactionWorkerPool."""

    @pytest.mark.asyncio
    async def test_submit_runs_pipeline(self):
        call_id = uuid4()
        expected = PipelineResult(call_id, RedactionStatus.NOT_NEEDED, "hello")
        pipeline = MagicMock()
        pipeline.run = AsyncMock(return_value=expected)
        pool = RedactionWorkerPool(pipeline, max_concurrency=2)

        result = await pool.submit(call_id, TRANSCRIPT)

        assert result is expected
        pipeline.run.assert_awaited_once_with(call_id, TRANSCRIPT)
        assert pool.pending == 0

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        running = 0
        peak = 0

        async def run(call_id, transcript):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return PipelineResult(call_id, RedactionStatus.NOT_NEEDED, "")

        pipeline = MagicMock()
        pipeline.run = run
        pool = RedactionWorkerPool(pipeline, max_concurrency=2)

        for _ in range(6):
            pool.submit(uuid4(), TRANSCRIPT)
        await pool.drain()

        assert peak == 2
        assert pool.pending == 0

    @pytest.mark.asyncio
    async def test_crashed_run_propagates_to_task(self):
        pipeline = MagicMock()
        pipeline.run = AsyncMock(side_effect=RuntimeError("database gone"))
        pool = RedactionWorkerPool(pipeline, max_concurrency=1)

        task = pool.submit(uuid4(), TRANSCRIPT)
        await pool.drain()

        assert isinstance(task.exception(), RuntimeError)

    @pytest.mark.asyncio
    async def test_stop_rejects_new_work_and_cancels_stragglers(self):
        started = asyncio.Event()

        async def run(call_id, transcript):
            started.set()
            await asyncio.sleep(60)

        pipeline = MagicMock()
        pipeline.run = run
        pool = RedactionWorkerPool(pipeline, max_concurrency=1)

        task = pool.submit(uuid4(), TRANSCRIPT)
        await started.wait()
        await pool.stop(timeout=0.01)

        assert task.cancelled()
        with pytest.raises(RuntimeError):
            pool.submit(uuid4(), TRANSCRIPT)

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ValueError):
            RedactionWorkerPool(MagicMock(), max_concurrency=0)


class TestCallLock:
    """Tests for Redis-backed per-call locks."""

    @pytest.fixture
    def redis(self):
        client = MagicMock()
        client.set = AsyncMock(return_value=True)
        client.eval = AsyncMock(return_value=1)
        return client

    @pytest.mark.asyncio
    async def test_acquire_uses_set_nx_ex(self, redis):
        call_id = uuid4()

        token = await acquire_call_lock(redis, call_id, 900)

        assert token
        redis.set.assert_awaited_once_with(
            f"callguard:redaction_lock:call:{call_id}", token, nx=True, ex=900
        )

    @pytest.mark.asyncio
    async def test_acquire_returns_none_when_held(self, redis):
        redis.set.return_value = None

        assert await acquire_call_lock(redis, uuid4(), 900) is None

    @pytest.mark.asyncio
    async def test_release_checks_token(self, redis):
        call_id = uuid4()

        assert await release_call_lock(redis, call_id, "abc") is True

        _, numkeys, key, token = redis.eval.await_args.args
        assert (numkeys, key, token) == (1, f"callguard:redaction_lock:call:{call_id}", "abc")

    @pytest.mark.asyncio
    async def test_release_of_expired_lock(self, redis):
        redis.eval.return_value = 0

        assert await release_call_lock(redis, uuid4(), "abc") is False

    @pytest.mark.asyncio
    async def test_context_manager_releases_on_error(self, redis):
        with pytest.raises(ValueError):
            async with call_lock(redis, uuid4(), 900):
                raise ValueError("boom")

        redis.eval.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_context_manager_raises_when_held(self, redis):
        redis.set.return_value = None

        with pytest.raises(LockNotAcquiredError):
            async with call_lock(redis, uuid4(), 900):
                pass

        redis.eval.assert_not_called()
