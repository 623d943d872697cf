"""Bounded pool of concurrent redaction runs."""

import asyncio
from uuid import UUID

import structlog

from callguard.redaction.pipeline import PipelineResult, RedactionPipeline, TranscriptInput

logger = structlog.get_logger()


class RedactionWorkerPool:
    """Runs each call's pipeline as its own asyncio task.

    At most ``max_concurrency`` runs execute at once; further submissions
    wait on a semaphore. Runs for the same call are serialized by the
    pipeline's Redis lock, not by the pool.
    """

    def __init__(self, pipeline: RedactionPipeline, max_concurrency: int):
        """Initialize worker pool.

        Args:
            pipeline: Pipeline executed for each submitted call
            max_concurrency: Maximum simultaneous runs
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.pipeline = pipeline
        self.max_concurrency = max_concurrency
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._tasks: set[asyncio.Task] = set()
        self._accepting = True

    @property
    def pending(self) -> int:
        """Submitted runs that have not finished yet."""
        return len(self._tasks)

    def submit(self, call_id: UUID, transcript: TranscriptInput) -> asyncio.Task[PipelineResult]:
        """Schedule a redaction run for a call.

        Raises:
            RuntimeError: If the pool is stopping
        """
        if not self._accepting:
            raise RuntimeError("Redaction worker pool is stopped")

        task = asyncio.create_task(
            self._run(call_id, transcript), name=f"redaction-{call_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug("redaction_submitted", call_id=str(call_id), pending=self.pending)
        return task

    async def _run(self, call_id: UUID, transcript: TranscriptInput) -> PipelineResult:
        async with self._semaphore:
            try:
                return await self.pipeline.run(call_id, transcript)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("redaction_run_crashed", call_id=str(call_id))
                raise

    async def drain(self) -> None:
        """Wait for every submitted run to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def stop(self, timeout: float | None = 30.0) -> None:
        """Stop accepting work, wait for running calls, then cancel stragglers."""
        self._accepting = False
        if not self._tasks:
            return

        tasks = list(self._tasks)
        _, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning("redaction_runs_cancelled", count=len(still_running))

        logger.info("redaction_worker_pool_stopped")
