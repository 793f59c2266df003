"""
Pre-Generation Scheduler

Keeps playback gap-free by narrating upcoming slides before the presenter
reaches them. Jobs run on a fixed pool of worker tasks that drain a priority
queue (HIGH before LOW, FIFO within a priority) and go through exactly the
same narration path as foreground requests.
"""

import asyncio
import itertools
from typing import Any

from services.narration.service import NarrationService
from shared.enums import JobPriority, JobStatus
from shared.models import PreGenerationJob, Slide
from shared.utils import setup_logging, utc_now

logger = setup_logging("pregeneration-scheduler")

CANCELLED_MESSAGE = "cancelled"


class PreGenerationScheduler:
    """Bounded worker pool issuing idempotent narration jobs per slide key."""

    def __init__(
        self,
        narration_service: NarrationService,
        max_workers: int = 2,
        low_priority_delay: float = 2.0,
        lookahead: int = 2,
    ) -> None:
        self.narration_service = narration_service
        self.max_workers = max(1, max_workers)
        self.low_priority_delay = low_priority_delay
        self.lookahead = max(1, lookahead)
        self._jobs: dict[str, PreGenerationJob] = {}
        self._slides: dict[str, Slide] = {}
        self._done: dict[str, asyncio.Event] = {}
        self._cancel: dict[str, asyncio.Event] = {}
        self._delayed: dict[str, asyncio.Task] = {}
        self._workers: list[asyncio.Task] = []
        self._queue: asyncio.PriorityQueue | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._sequence = itertools.count()

    @property
    def running(self) -> bool:
        return any(not worker.done() for worker in self._workers)

    def start(self) -> None:
        """Spawn the worker tasks on the running loop (no-op when already running there)."""
        loop = asyncio.get_running_loop()
        if self.running and self._loop is loop:
            return
        self._loop = loop
        self._queue = asyncio.PriorityQueue()
        for job in self._jobs.values():
            if job.status is JobStatus.PENDING:
                self._enqueue(job)
        self._workers = [loop.create_task(self._worker(index)) for index in range(self.max_workers)]
        logger.info(f"Pre-generation scheduler started with {self.max_workers} workers")

    async def shutdown(self) -> None:
        """Stop workers and drop pending delayed submissions."""
        tasks = list(self._delayed.values()) + self._workers
        self._delayed.clear()
        self._workers = []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Pre-generation scheduler stopped")

    def _enqueue(self, job: PreGenerationJob) -> None:
        self._queue.put_nowait((job.priority.rank, next(self._sequence), job.slide_key))

    def submit(self, slide: Slide, priority: JobPriority = JobPriority.HIGH) -> PreGenerationJob | None:
        """
        Issue a narration job for ``slide`` unless one is already live.

        PENDING, GENERATING and READY jobs are returned unchanged (a PENDING
        job may be promoted to a higher priority). A FAILED job, or a READY job whose audio has
        since expired, is replaced.
        """
        if not 1 <= slide.ordinal <= slide.total_count:
            return None
        self.start()

        key = slide.slide_key
        existing = self._jobs.get(key)
        if existing is not None and existing.status is JobStatus.READY and not self.narration_service.is_ready(key):
            existing = None
        if existing is not None and existing.status is not JobStatus.FAILED:
            if existing.status is JobStatus.PENDING and priority.rank < existing.priority.rank:
                existing.priority = priority
                existing.updated_at = utc_now()
                self._enqueue(existing)
                logger.debug(f"Promoted job {key} to {priority.value}")
            return existing

        job = PreGenerationJob(slide_key=key, slide_id=slide.id, ordinal=slide.ordinal, priority=priority)
        self._jobs[key] = job
        self._slides[key] = slide
        self._done[key] = asyncio.Event()
        self._cancel[key] = asyncio.Event()

        if self.narration_service.is_ready(key):
            self._settle(job, JobStatus.READY, record=self.narration_service.current(key))
            return job

        self._enqueue(job)
        logger.debug(f"Queued {priority.value} job for {key}")
        return job

    def on_slide_advanced(self, slides: list[Slide], current_index: int) -> dict[str, Any]:
        """
        React to the presenter reaching ``slides[current_index]``.

        The next slide is submitted at HIGH priority immediately; slides
        further ahead are submitted at LOW priority after the configured delay.
        """
        scheduled: list[PreGenerationJob] = []
        deferred: list[str] = []

        for offset in range(1, self.lookahead + 1):
            index = current_index + offset
            if index < 0 or index >= len(slides):
                break
            slide = slides[index]
            if offset == 1:
                job = self.submit(slide, JobPriority.HIGH)
                if job is not None:
                    scheduled.append(job)
            else:
                self._submit_later(slide, self.low_priority_delay * (offset - 1))
                deferred.append(slide.slide_key)

        return {"current_index": current_index, "scheduled": scheduled, "deferred": deferred}

    def _submit_later(self, slide: Slide, delay: float) -> None:
        key = slide.slide_key
        pending = self._delayed.get(key)
        if pending is not None and not pending.done():
            return

        async def _delayed_submit() -> None:
            await asyncio.sleep(delay)
            if self._delayed.get(key) is task:
                del self._delayed[key]
            self.submit(slide, JobPriority.LOW)

        task = asyncio.get_running_loop().create_task(_delayed_submit())
        self._delayed[key] = task

    async def _worker(self, index: int) -> None:
        while True:
            _, _, key = await self._queue.get()
            try:
                job = self._jobs.get(key)
                if job is None or job.status is not JobStatus.PENDING:
                    continue
                await self._run(job)
            except Exception as e:
                logger.error(f"Worker {index} crashed while handling {key}: {e}")
            finally:
                self._queue.task_done()

    async def _run(self, job: PreGenerationJob) -> None:
        key = job.slide_key
        cancel_event = self._cancel[key]
        if cancel_event.is_set():
            return

        job.status = JobStatus.GENERATING
        job.updated_at = utc_now()
        try:
            record = await self.narration_service.generate(self._slides[key])
        except Exception as e:
            if not cancel_event.is_set():
                logger.warning(f"Pre-generation failed for {key}: {e}")
                self._settle(job, JobStatus.FAILED, error=str(e) or type(e).__name__)
            return

        if not cancel_event.is_set():
            self._settle(job, JobStatus.READY, record=record)
            logger.info(f"Pre-generated {job.priority.value} slide {key}")

    def _settle(self, job: PreGenerationJob, status: JobStatus, record=None, error: str | None = None) -> None:
        job.status = status
        job.record = record
        job.error = error
        job.updated_at = utc_now()
        done = self._done.get(job.slide_key)
        if done is not None:
            done.set()

    async def wait_for(self, slide_key: str, timeout: float | None = None) -> PreGenerationJob | None:
        """Wait until the job settles (READY or FAILED) or ``timeout`` elapses."""
        done = self._done.get(slide_key)
        if done is None:
            return self._jobs.get(slide_key)
        try:
            await asyncio.wait_for(done.wait(), timeout)
        except asyncio.TimeoutError:
            logger.debug(f"Timed out waiting for job {slide_key}")
        return self._jobs.get(slide_key)

    def get_job(self, slide_key: str) -> PreGenerationJob | None:
        return self._jobs.get(slide_key)

    def jobs(self) -> list[PreGenerationJob]:
        return sorted(self._jobs.values(), key=lambda job: (job.created_at, job.ordinal))

    def cancel(self, slide_key: str) -> bool:
        """Cancel a job that has not finished. Returns False when nothing was cancelled."""
        delayed = self._delayed.pop(slide_key, None)
        if delayed is not None:
            delayed.cancel()

        job = self._jobs.get(slide_key)
        if job is None or job.status in (JobStatus.READY, JobStatus.FAILED):
            return delayed is not None

        self._cancel[slide_key].set()
        self._settle(job, JobStatus.FAILED, error=CANCELLED_MESSAGE)
        logger.info(f"Cancelled pre-generation job {slide_key}")
        return True

    def clear(self) -> int:
        """Forget every job and delayed submission. Returns the number of jobs dropped."""
        for task in self._delayed.values():
            task.cancel()
        self._delayed.clear()
        for event in self._cancel.values():
            event.set()
        for event in self._done.values():
            event.set()
        count = len(self._jobs)
        self._jobs.clear()
        self._slides.clear()
        self._done.clear()
        self._cancel.clear()
        return count

    def stats(self) -> dict[str, Any]:
        counts = {status.value: 0 for status in JobStatus}
        for job in self._jobs.values():
            counts[job.status.value] += 1
        return {
            "workers": self.max_workers,
            "running": self.running,
            "queued": self._queue.qsize() if self._queue is not None else 0,
            "delayed": len(self._delayed),
            "jobs": counts,
        }
