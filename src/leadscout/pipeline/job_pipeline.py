"""Pipeline coordinator: stages → extraction → scoring → JobResult."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Callable, Sequence

from leadscout.browser.base import AutomationDriver, MediaSink
from leadscout.exceptions import JobValidationError, LeadScoutError
from leadscout.extraction.lead_extractor import extract
from leadscout.models import (
    Category,
    ErrorKind,
    JobConfig,
    JobResult,
    JobStatus,
    Lead,
    LeadCandidate,
    Stage,
    StageAction,
    StageError,
    StageOutcome,
    StageResult,
    utc_now,
)
from leadscout.pipeline.stage_runner import JobContext, StageRunner, is_critical

logger = logging.getLogger(__name__)


def validate_stage_plan(stages: Sequence[Stage]) -> tuple[Stage, ...]:
    """Reject a stage list that cannot run. Returns it as a tuple."""
    plan = tuple(stages)
    if not plan:
        raise JobValidationError("A job needs at least one stage.")
    names: set[str] = set()
    for stage in plan:
        if not isinstance(stage, Stage):
            raise JobValidationError(f"Not a Stage: {stage!r}")
        if stage.name in names:
            raise JobValidationError(f"Duplicate stage name: {stage.name!r}")
        names.add(stage.name)
    if not any(stage.action is StageAction.EXTRACT for stage in plan):
        raise JobValidationError("A job needs at least one extract stage.")
    return plan


def unstarted_result(
    config: JobConfig,
    stages: Sequence[Stage],
    status: JobStatus,
    error: StageError,
    *,
    opened: bool = False,
) -> JobResult:
    """Result for a job that ended without a stage trace of its own.

    For FAILED the first stage carries *error*, unless the session *opened*
    and the failure came later, in which case every stage is SKIPPED with
    *error* attached, as for CANCELLED.
    """
    now = utc_now()
    results: list[StageResult] = []
    for index, stage in enumerate(stages):
        failed = status is JobStatus.FAILED and index == 0 and not opened
        results.append(
            StageResult(
                stage_name=stage.name,
                started_at=now,
                ended_at=now,
                outcome=StageOutcome.FAILED if failed else StageOutcome.SKIPPED,
                error=error if failed or opened or status is JobStatus.CANCELLED else None,
            )
        )
    return JobResult(
        job_id=config.job_id,
        status=status,
        started_at=now,
        ended_at=now,
        stages=tuple(results),
    )


class JobPipeline:
    """Drives one job from QUEUED to a terminal status.

    One instance owns one driver session and one media sink for its whole
    life and runs exactly one job. Once terminal, :meth:`execute` returns the
    same result again without doing any work.
    """

    def __init__(
        self,
        driver: AutomationDriver,
        media_sink: MediaSink | None = None,
        on_stage_result: Callable[[StageResult], None] | None = None,
    ) -> None:
        self._runner = StageRunner(driver, media_sink, on_result=self._record)
        self._media_sink = media_sink
        self._on_stage_result = on_stage_result
        self._cancel_event = asyncio.Event()
        self._status = JobStatus.QUEUED
        self._result: JobResult | None = None
        self._trace: list[StageResult] = []

    @property
    def status(self) -> JobStatus:
        return self._status

    @property
    def result(self) -> JobResult | None:
        return self._result

    def cancel(self) -> None:
        """Request cancellation; honoured before the next stage starts."""
        if not self._status.is_terminal:
            self._cancel_event.set()

    async def execute(self, config: JobConfig, stages: Sequence[Stage]) -> JobResult:
        if self._result is not None:
            return self._result
        if self._status is JobStatus.RUNNING:
            raise LeadScoutError(f"Job {config.job_id} is already running.")

        plan = validate_stage_plan(stages)
        context = JobContext(config=config, cancel_event=self._cancel_event)

        self._status = JobStatus.RUNNING
        started = utc_now()
        logger.info(
            "Job %s running %d stage(s) for %d keyword(s) [priority=%s].",
            config.job_id,
            len(plan),
            len(config.keywords),
            config.priority.value,
        )

        try:
            status, results, leads = await self._run(config, plan, context)
        except Exception as exc:
            logger.exception("Job %s aborted by an unexpected error.", config.job_id)
            status, results, leads = JobStatus.FAILED, self._aborted_trace(plan, exc), ()

        video_ref = await self._finalize_video(config)

        self._status = status
        self._result = JobResult(
            job_id=config.job_id,
            status=status,
            started_at=started,
            ended_at=utc_now(),
            stages=tuple(results),
            leads=leads,
            video_ref=video_ref,
        )
        hot = sum(1 for lead in leads if lead.category is Category.HOT)
        logger.info(
            "Job %s finished: %s with %d lead(s), %d hot.",
            config.job_id,
            status.value,
            len(leads),
            hot,
        )
        return self._result

    # ---- helpers ----

    async def _run(
        self, config: JobConfig, plan: Sequence[Stage], context: JobContext
    ) -> tuple[JobStatus, list[StageResult], tuple[Lead, ...]]:
        results = await self._runner.run(plan, context)

        if context.cancelled:
            return JobStatus.CANCELLED, results, ()
        if self._critical_failure(plan, results):
            return JobStatus.FAILED, results, ()

        candidates = extract(self._collect_posts(plan, results))
        if not candidates:
            logger.info("Job %s: %s.", config.job_id, ErrorKind.EXTRACTION_EMPTY.value)
        leads = await self._score(candidates, config, self._extraction_ref(plan, results))
        if context.cancelled:
            return JobStatus.CANCELLED, results, ()
        if any(r.outcome is StageOutcome.FAILED for r in results):
            return JobStatus.PARTIAL, results, leads
        return JobStatus.COMPLETED, results, leads

    def _record(self, result: StageResult) -> None:
        self._trace.append(result)
        if self._on_stage_result is not None:
            self._on_stage_result(result)

    def _aborted_trace(self, plan: Sequence[Stage], exc: Exception) -> list[StageResult]:
        """Stages that finished keep their real result; the rest are SKIPPED."""
        results = list(self._trace)
        error = StageError(ErrorKind.DRIVER_FAILURE, str(exc) or type(exc).__name__)
        now = utc_now()
        for stage in plan[len(results):]:
            results.append(
                StageResult(
                    stage_name=stage.name,
                    started_at=now,
                    ended_at=now,
                    outcome=StageOutcome.SKIPPED,
                    error=error,
                )
            )
        return results

    @staticmethod
    def _critical_failure(plan: Sequence[Stage], results: Sequence[StageResult]) -> bool:
        return any(
            result.outcome is StageOutcome.FAILED and is_critical(stage)
            for stage, result in zip(plan, results)
        )

    @staticmethod
    def _collect_posts(plan: Sequence[Stage], results: Sequence[StageResult]) -> list:
        posts: list = []
        for stage, result in zip(plan, results):
            if stage.action is StageAction.EXTRACT and result.outcome is StageOutcome.SUCCESS:
                posts.extend(result.payload or [])
        return posts

    @staticmethod
    def _extraction_ref(plan: Sequence[Stage], results: Sequence[StageResult]) -> str | None:
        for stage, result in zip(plan, results):
            if stage.action is StageAction.EXTRACT and result.media_ref:
                return result.media_ref
        return None

    async def _score(
        self,
        candidates: Sequence[LeadCandidate],
        config: JobConfig,
        extraction_ref: str | None,
    ) -> tuple[Lead, ...]:
        leads: list[Lead] = []
        for candidate in candidates:
            lead = Lead.from_candidate(candidate, config.keywords, media_ref=extraction_ref)
            if lead.category is Category.HOT and config.capture_media:
                ref = await self._capture_lead(config.job_id, lead)
                if ref:
                    lead = replace(lead, media_ref=ref)
            leads.append(lead)
        return tuple(leads)

    async def _capture_lead(self, job_id: str, lead: Lead) -> str | None:
        if self._media_sink is None:
            return None
        try:
            return await self._media_sink.capture(job_id, lead.id)
        except Exception as exc:
            logger.warning("Capture for hot lead %s failed: %s", lead.id, exc)
            return None

    async def _finalize_video(self, config: JobConfig) -> str | None:
        if not config.record_video or self._media_sink is None:
            return None
        try:
            return await self._media_sink.finalize(config.job_id)
        except Exception as exc:
            logger.warning("Video finalisation for job %s failed: %s", config.job_id, exc)
            return None
