"""Generic executor for an ordered list of stages."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from leadscout.browser.base import AutomationDriver, MediaSink
from leadscout.exceptions import StageTimeoutError
from leadscout.extraction.lead_extractor import parse_raw_posts
from leadscout.models import (
    ErrorKind,
    JobConfig,
    Stage,
    StageAction,
    StageError,
    StageOutcome,
    StageResult,
    utc_now,
)
from leadscout.schemas import PostBatch

logger = logging.getLogger(__name__)


@dataclass
class JobContext:
    """Per-job state shared with the runner: the config and a cancel flag."""

    config: JobConfig
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def job_id(self) -> str:
        return self.config.job_id

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


def is_critical(stage: Stage) -> bool:
    """A failed critical stage aborts the job; extraction is always critical."""
    return stage.required or stage.action is StageAction.EXTRACT


class StageRunner:
    """Runs stages strictly in order against one driver and one media sink.

    Holds no state between stages apart from the result list being built.
    """

    def __init__(
        self,
        driver: AutomationDriver,
        media_sink: MediaSink | None = None,
        on_result: Callable[[StageResult], None] | None = None,
    ) -> None:
        self._driver = driver
        self._media_sink = media_sink
        self._on_result = on_result

    async def run(self, stages: Sequence[Stage], context: JobContext) -> list[StageResult]:
        """Execute *stages* and return one result per stage, in the same order.

        After a critical stage fails, or once cancellation is requested, the
        remaining stages are recorded as SKIPPED without being started.
        """
        results: list[StageResult] = []
        halt: StageError | None = None
        halted = False

        for stage in stages:
            if not halted and context.cancelled:
                logger.info("Job %s cancelled before stage %r.", context.job_id, stage.name)
                halt = StageError(ErrorKind.CANCELLED, "Job cancelled before this stage started.")
                halted = True

            if halted:
                now = utc_now()
                result = StageResult(
                    stage_name=stage.name,
                    started_at=now,
                    ended_at=now,
                    outcome=StageOutcome.SKIPPED,
                    error=halt,
                )
            else:
                result = await self.run_stage(stage, context)
                if result.outcome is StageOutcome.FAILED and is_critical(stage):
                    logger.error(
                        "Critical stage %r failed for job %s; skipping the rest.",
                        stage.name,
                        context.job_id,
                    )
                    halted = True

            results.append(result)
            if self._on_result is not None:
                try:
                    self._on_result(result)
                except Exception:
                    logger.exception("Stage result handler failed for %r.", stage.name)

        return results

    async def run_stage(self, stage: Stage, context: JobContext) -> StageResult:
        """Run one stage with its deadline and retry budget."""
        started = utc_now()
        total_attempts = stage.max_retries + 1
        error: StageError | None = None
        payload: Any = None
        attempts = 0

        for attempt in range(1, total_attempts + 1):
            attempts = attempt
            try:
                payload = await asyncio.wait_for(
                    self._invoke(stage), timeout=stage.timeout_ms / 1000
                )
            except (asyncio.TimeoutError, StageTimeoutError):
                error = StageError(ErrorKind.TIMEOUT, f"Exceeded {stage.timeout_ms} ms deadline.")
            except Exception as exc:
                error = StageError(ErrorKind.DRIVER_FAILURE, str(exc) or type(exc).__name__)
            else:
                error = None
                break

            if attempt < total_attempts:
                logger.warning(
                    "Stage %r attempt %d/%d failed (%s): %s. Retrying.",
                    stage.name,
                    attempt,
                    total_attempts,
                    error.kind.value,
                    error.message,
                )

        if error is not None:
            logger.warning(
                "Stage %r failed after %d attempt(s): %s.", stage.name, attempts, error.message
            )
            return StageResult(
                stage_name=stage.name,
                started_at=started,
                ended_at=utc_now(),
                outcome=StageOutcome.FAILED,
                attempts=attempts,
                error=error,
            )

        media_ref, warnings = await self._capture(stage, context)
        logger.info("Stage %r succeeded (attempt %d).", stage.name, attempts)
        return StageResult(
            stage_name=stage.name,
            started_at=started,
            ended_at=utc_now(),
            outcome=StageOutcome.SUCCESS,
            attempts=attempts,
            media_ref=media_ref,
            warnings=warnings,
            payload=payload,
        )

    # ---- internals ----

    async def _invoke(self, stage: Stage) -> Any:
        if stage.action is StageAction.NAVIGATE:
            await self._driver.navigate(stage.target, stage.timeout_ms)
            return None
        if stage.action is StageAction.OBSERVE:
            observation = await self._driver.observe(stage.target)
            # Drivers may answer in free text or semi-structured form.
            return "" if observation is None else str(observation)
        raw = await self._driver.extract(stage.target, PostBatch)
        return parse_raw_posts(raw)

    async def _capture(
        self, stage: Stage, context: JobContext
    ) -> tuple[str | None, tuple[StageError, ...]]:
        if self._media_sink is None or not (stage.captures_media and context.config.capture_media):
            return None, ()
        try:
            ref = await asyncio.wait_for(
                self._media_sink.capture(context.job_id, stage.name),
                timeout=stage.timeout_ms / 1000,
            )
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.warning("Capture for stage %r failed: %s", stage.name, message)
            return None, (StageError(ErrorKind.CAPTURE_FAILURE, message),)
        return ref, ()
