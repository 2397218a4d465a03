"""Background worker: runs admitted jobs off the request path.

Tasks are persisted in ``pipeline_tasks`` so a restart re-queues waiting work
and fails jobs whose run was cut short. A watchdog fails running jobs that
have not reported a heartbeat within the configured timeout.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Awaitable, Callable

from models.listing import GenerationRequest
from services import store
from services.admission import load_request, remove_spool

logger = logging.getLogger(__name__)

INTERRUPTED_TEXT = "Processing was interrupted"
TIMED_OUT_TEXT = "Processing timed out"

RunJob = Callable[[GenerationRequest], Awaitable[None]]


class PipelineWorker:
    def __init__(
        self,
        run_job: RunJob,
        *,
        concurrency: int = 2,
        stale_after_seconds: float = 45 * 60,
        watchdog_interval: float = 60.0,
    ) -> None:
        self.run_job = run_job
        self.concurrency = concurrency
        self.stale_after = timedelta(seconds=stale_after_seconds)
        self.watchdog_interval = watchdog_interval
        self.queue: asyncio.Queue[str] = asyncio.Queue()
        self._tasks: list[asyncio.Task] = []

    def enqueue(self, job_id: str) -> None:
        self.queue.put_nowait(job_id)

    def recover(self) -> list[str]:
        """Fail jobs a dead process left running and re-queue everything still waiting."""
        abandoned = store.abandon_running_tasks(INTERRUPTED_TEXT)
        for job_id in abandoned:
            logger.warning("[%s] run was interrupted by a restart; marked failed", job_id)
        queued = store.queued_task_ids()
        for job_id in queued:
            self.enqueue(job_id)
        if queued:
            logger.info("[worker] re-queued %d waiting job(s)", len(queued))
        return queued

    async def start(self) -> None:
        await asyncio.to_thread(self.recover)
        self._tasks = [asyncio.create_task(self._consume(i)) for i in range(self.concurrency)]
        self._tasks.append(asyncio.create_task(self._watchdog()))
        logger.info("[worker] started with %d slot(s)", self.concurrency)

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("[worker] stopped")

    async def process(self, job_id: str) -> bool:
        """Claim and run one job; False when it was not claimable."""
        payload = await asyncio.to_thread(store.claim_task, job_id)
        if payload is None:
            logger.debug("[%s] task not claimable, skipping", job_id)
            return False
        try:
            try:
                request = await asyncio.to_thread(load_request, payload)
            except (OSError, KeyError, ValueError) as exc:
                logger.error("[%s] could not load spooled request: %s", job_id, exc)
                await asyncio.to_thread(store.fail_job, job_id, f"Could not load request: {exc}")
                return True
            await self.run_job(request)
        finally:
            await asyncio.to_thread(store.finish_task, job_id)
            remove_spool(payload)
        return True

    async def _consume(self, slot: int) -> None:
        while True:
            job_id = await self.queue.get()
            try:
                await self.process(job_id)
            except Exception:
                logger.exception("[%s] worker slot %d crashed while processing", job_id, slot)
            finally:
                self.queue.task_done()

    def sweep_stale(self) -> list[str]:
        cutoff = store.utcnow() - self.stale_after
        failed = store.fail_stale_jobs(cutoff, TIMED_OUT_TEXT)
        for job_id in failed:
            logger.warning("[%s] no heartbeat for %s; marked failed", job_id, self.stale_after)
        return failed

    async def _watchdog(self) -> None:
        while True:
            await asyncio.sleep(self.watchdog_interval)
            try:
                await asyncio.to_thread(self.sweep_stale)
            except Exception:
                logger.exception("[worker] watchdog sweep failed")
