"""In-process work queue for fire-and-forget jobs."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from cryptopilot.core.logging import with_rid
from cryptopilot.core.telemetry import job_span

logger = logging.getLogger(__name__)


class Job(Protocol):
    name: str
    rid: str

    async def run(self) -> Any: ...


class JobQueue:
    """Run submitted jobs on a fixed pool of worker tasks.

    A failing job is logged with its correlation id and never reaches the
    submitter nor stops its worker.
    """

    def __init__(self, workers: int = 2):
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self._worker_count = workers
        self._queue: asyncio.Queue[Job] | None = None
        self._workers: list[asyncio.Task[None]] = []
        self.completed = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"cryptopilot-job-worker-{index}")
            for index in range(self._worker_count)
        ]
        logger.info("Job queue started with %d workers", self._worker_count)

    def submit(self, job: Job) -> None:
        if not self.running or self._queue is None:
            raise RuntimeError("Job queue is not running")
        self._queue.put_nowait(job)
        with_rid(logger, job.rid).debug("Queued job %s", job.name)

    async def join(self) -> None:
        """Wait until every submitted job has finished."""

        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        """Drain outstanding jobs, then cancel the workers."""

        if not self.running:
            return
        await self.join()
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self._queue = None
        logger.info("Job queue stopped (%d completed, %d failed)", self.completed, self.failed)

    async def _worker(self, index: int) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            job = await queue.get()
            log = with_rid(logger, job.rid)
            try:
                with job_span(job.name, job.rid, index):
                    await job.run()
                self.completed += 1
            except asyncio.CancelledError:
                raise
            except Exception:
                self.failed += 1
                log.exception("Job %s failed", job.name)
            finally:
                queue.task_done()


__all__ = ["Job", "JobQueue"]
