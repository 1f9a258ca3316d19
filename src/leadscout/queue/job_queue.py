"""In-process job submission boundary.

``submit`` validates a payload synchronously and returns the job id at once;
worker tasks run the jobs in the background (HIGH priority first, then in
submission order) and ``fetch`` / ``wait`` expose the terminal JobResult.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from leadscout.browser.sessions import SessionFactory
from leadscout.exceptions import JobValidationError, UnknownJobError
from leadscout.models import (
    ErrorKind,
    JobConfig,
    JobResult,
    JobStatus,
    Stage,
    StageError,
    StageResult,
)
from leadscout.pipeline.job_pipeline import JobPipeline, unstarted_result, validate_stage_plan
from leadscout.schemas import parse_job_request

logger = logging.getLogger(__name__)

PlanBuilder = Callable[[JobConfig], Sequence[Stage]]


@dataclass
class _JobEntry:
    config: JobConfig
    stages: tuple[Stage, ...]
    status: JobStatus = JobStatus.QUEUED
    pipeline: JobPipeline | None = None
    result: JobResult | None = None
    cancel_requested: bool = False
    done: asyncio.Event = field(default_factory=asyncio.Event)


class JobQueue:
    """Runs up to *max_concurrent* pipelines at once, each with its own session."""

    def __init__(
        self,
        sessions: SessionFactory,
        plan_builder: PlanBuilder,
        *,
        max_concurrent: int = 3,
        on_stage_result: Callable[[StageResult], None] | None = None,
        on_job_result: Callable[[JobResult], None] | None = None,
    ) -> None:
        self._sessions = sessions
        self._plan_builder = plan_builder
        self._max_concurrent = max(1, max_concurrent)
        self._on_stage_result = on_stage_result
        self._on_job_result = on_job_result
        self._pending: asyncio.PriorityQueue[tuple[int, int, str]] = asyncio.PriorityQueue()
        self._seq = itertools.count()
        self._jobs: dict[str, _JobEntry] = {}
        self._workers: list[asyncio.Task] = []

    # ---- lifecycle ----

    async def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"leadscout-worker-{i}")
            for i in range(self._max_concurrent)
        ]
        logger.info("Job queue started with %d worker(s).", self._max_concurrent)

    async def close(self) -> None:
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Job queue stopped.")

    async def __aenter__(self) -> "JobQueue":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ---- submission boundary ----

    def submit(self, payload: Any, stages: Sequence[Stage] | None = None) -> str:
        """Validate *payload* and enqueue it. Returns the job id immediately.

        Raises :class:`JobValidationError` before anything is queued when the
        payload or the stage list is malformed.
        """
        config = parse_job_request(payload)
        if config.job_id in self._jobs:
            raise JobValidationError(f"Job id {config.job_id!r} was already submitted.")
        plan = validate_stage_plan(stages if stages is not None else self._plan_builder(config))

        self._jobs[config.job_id] = _JobEntry(config=config, stages=plan)
        self._pending.put_nowait((config.priority.rank, next(self._seq), config.job_id))
        logger.info("Queued job %s [priority=%s].", config.job_id, config.priority.value)
        return config.job_id

    def status(self, job_id: str) -> JobStatus:
        return self._entry(job_id).status

    def fetch(self, job_id: str) -> JobResult | None:
        """Return the terminal result, or ``None`` while the job is pending."""
        return self._entry(job_id).result

    async def wait(self, job_id: str) -> JobResult:
        entry = self._entry(job_id)
        await entry.done.wait()
        assert entry.result is not None
        return entry.result

    async def join(self) -> None:
        """Wait until every submitted job has finished."""
        await self._pending.join()

    def cancel(self, job_id: str) -> bool:
        """Request cancellation. Returns ``False`` if the job already ended."""
        entry = self._entry(job_id)
        if entry.status.is_terminal:
            return False
        entry.cancel_requested = True
        if entry.pipeline is not None:
            entry.pipeline.cancel()
        logger.info("Cancellation requested for job %s.", job_id)
        return True

    def results(self) -> list[JobResult]:
        return [e.result for e in self._jobs.values() if e.result is not None]

    # ---- workers ----

    def _entry(self, job_id: str) -> _JobEntry:
        try:
            return self._jobs[job_id]
        except KeyError:
            raise UnknownJobError(f"Unknown job id {job_id!r}.") from None

    async def _worker(self, index: int) -> None:
        while True:
            _, _, job_id = await self._pending.get()
            try:
                await self._run(self._jobs[job_id])
            finally:
                self._pending.task_done()

    async def _run(self, entry: _JobEntry) -> None:
        config = entry.config
        if entry.cancel_requested:
            result = unstarted_result(
                config,
                entry.stages,
                JobStatus.CANCELLED,
                StageError(ErrorKind.CANCELLED, "Job cancelled while queued."),
            )
        else:
            entry.status = JobStatus.RUNNING
            result = None
            opened = False
            try:
                async with self._sessions(config) as (driver, media_sink):
                    opened = True
                    entry.pipeline = JobPipeline(
                        driver, media_sink, on_stage_result=self._on_stage_result
                    )
                    if entry.cancel_requested:
                        entry.pipeline.cancel()
                    result = await entry.pipeline.execute(config, entry.stages)
            except Exception as exc:
                if result is not None:
                    logger.warning("Job %s: closing the browser session failed: %s", config.job_id, exc)
                elif opened:
                    logger.exception("Job %s aborted inside its browser session.", config.job_id)
                    result = unstarted_result(
                        config,
                        entry.stages,
                        JobStatus.FAILED,
                        StageError(ErrorKind.DRIVER_FAILURE, str(exc) or type(exc).__name__),
                        opened=True,
                    )
                else:
                    logger.exception("Job %s could not open a browser session.", config.job_id)
                    result = unstarted_result(
                        config,
                        entry.stages,
                        JobStatus.FAILED,
                        StageError(ErrorKind.DRIVER_FAILURE, str(exc) or type(exc).__name__),
                    )

        entry.result = result
        entry.status = result.status
        entry.pipeline = None
        entry.done.set()
        if self._on_job_result is not None:
            try:
                self._on_job_result(result)
            except Exception:
                logger.exception("Result handler failed for job %s.", config.job_id)
