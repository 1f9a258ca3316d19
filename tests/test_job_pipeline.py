"""Tests for one job's lifecycle: stages, extraction, scoring and terminal status."""

from __future__ import annotations

import asyncio

import pytest

from leadscout.browser.scripted import MemoryMediaSink, ScriptedDriver
from leadscout.exceptions import DriverError, JobValidationError
from leadscout.models import (
    Category,
    ErrorKind,
    JobConfig,
    JobStatus,
    Stage,
    StageAction,
    StageOutcome,
)
from leadscout.pipeline.job_pipeline import JobPipeline


def _execute(pipeline: JobPipeline, config: JobConfig, stages):
    return asyncio.run(pipeline.execute(config, stages))


def _by_handle(result):
    return {lead.author_handle: lead for lead in result.leads}


def test_successful_job_scores_every_post(job_config, simple_stages):
    sink = MemoryMediaSink()
    pipeline = JobPipeline(ScriptedDriver(), sink)
    result = _execute(pipeline, job_config, simple_stages)

    assert result.status is JobStatus.COMPLETED
    assert pipeline.status is JobStatus.COMPLETED
    assert result.started_at <= result.ended_at
    assert len(result.leads) == 4
    leads = _by_handle(result)
    assert leads["marketing_director"].category is Category.HOT
    assert leads["appdev456"].category is Category.COLD
    assert leads["weekend_runner"].score == 0.0
    assert leads["tech_consultant"].metrics.views == 4500


def test_hot_leads_get_their_own_capture(job_config, simple_stages):
    sink = MemoryMediaSink()
    result = _execute(JobPipeline(ScriptedDriver(), sink), job_config, simple_stages)
    leads = _by_handle(result)
    hot = leads["marketing_director"]

    assert ("job-test", hot.id) in sink.captures
    assert hot.media_ref.startswith(f"memory://job-test/{hot.id}/")
    assert leads["appdev456"].media_ref == "memory://job-test/extract/1"


def test_result_serialises_thread_urls(job_config, simple_stages):
    result = _execute(JobPipeline(ScriptedDriver(), MemoryMediaSink()), job_config, simple_stages)
    data = result.to_dict()

    assert data["status"] == "completed"
    assert [s["stage_name"] for s in data["stages"]] == ["open", "look", "extract"]
    urls = {lead["author_handle"]: lead["thread_url"] for lead in data["leads"]}
    assert urls["marketing_director"] == "https://www.threads.net/@marketing_director/post/C456def789"
    assert urls["weekend_runner"] is None
    assert data["summary"]["hot"] == 1


def test_failed_extraction_fails_the_job(job_config, simple_stages):
    driver = ScriptedDriver(failures={"extract posts": [DriverError("selector vanished")]})
    result = _execute(JobPipeline(driver, MemoryMediaSink()), job_config, simple_stages)

    assert result.status is JobStatus.FAILED
    assert result.leads == ()
    failed = result.failed_stage()
    assert failed.stage_name == "extract"
    assert failed.error.kind is ErrorKind.DRIVER_FAILURE


def test_malformed_extraction_payload_fails_the_job(job_config, simple_stages):
    driver = ScriptedDriver(extract_payload="<html>not json</html>")
    result = _execute(JobPipeline(driver), job_config, simple_stages)

    assert result.status is JobStatus.FAILED
    assert result.leads == ()


def test_optional_stage_failure_is_partial(job_config, simple_stages):
    driver = ScriptedDriver(failures={"look around": [DriverError("blank page")]})
    result = _execute(JobPipeline(driver, MemoryMediaSink()), job_config, simple_stages)

    assert result.status is JobStatus.PARTIAL
    assert len(result.leads) == 4
    assert result.failed_stage().stage_name == "look"


def test_empty_extraction_completes_without_leads(job_config, simple_stages):
    result = _execute(JobPipeline(ScriptedDriver(posts=[])), job_config, simple_stages)

    assert result.status is JobStatus.COMPLETED
    assert result.leads == ()


def test_cancel_before_execute(job_config, simple_stages):
    driver = ScriptedDriver()
    pipeline = JobPipeline(driver)
    pipeline.cancel()
    result = _execute(pipeline, job_config, simple_stages)

    assert result.status is JobStatus.CANCELLED
    assert result.leads == ()
    assert driver.calls == []
    assert all(s.outcome is StageOutcome.SKIPPED for s in result.stages)


def test_cancel_between_stages(job_config, simple_stages):
    driver = ScriptedDriver()
    holder = {}

    def on_stage(stage_result):
        if stage_result.stage_name == "open":
            holder["pipeline"].cancel()

    pipeline = JobPipeline(driver, on_stage_result=on_stage)
    holder["pipeline"] = pipeline
    result = _execute(pipeline, job_config, simple_stages)

    assert result.status is JobStatus.CANCELLED
    assert [s.outcome for s in result.stages] == [
        StageOutcome.SUCCESS,
        StageOutcome.SKIPPED,
        StageOutcome.SKIPPED,
    ]
    assert result.stages[1].error.kind is ErrorKind.CANCELLED
    assert result.leads == ()


def test_execute_is_idempotent(job_config, simple_stages):
    driver = ScriptedDriver()
    pipeline = JobPipeline(driver)
    first = _execute(pipeline, job_config, simple_stages)
    calls = list(driver.calls)
    second = _execute(pipeline, job_config, simple_stages)

    assert second is first
    assert driver.calls == calls


def test_video_finalised_only_when_recording(simple_stages):
    sink = MemoryMediaSink()
    config = JobConfig.create(["automation"], job_id="job-video", record_video=True)
    result = _execute(JobPipeline(ScriptedDriver(), sink), config, simple_stages)
    assert result.video_ref == "memory://job-video/video"
    assert sink.finalized == ["job-video"]

    quiet_sink = MemoryMediaSink()
    config = JobConfig.create(["automation"], job_id="job-novideo")
    result = _execute(JobPipeline(ScriptedDriver(), quiet_sink), config, simple_stages)
    assert result.video_ref is None
    assert quiet_sink.finalized == []


def test_posts_from_several_extract_stages_are_merged(job_config):
    stages = (
        Stage(name="first", action=StageAction.EXTRACT, target="page one", timeout_ms=500),
        Stage(name="second", action=StageAction.EXTRACT, target="page two", timeout_ms=500),
    )
    result = _execute(JobPipeline(ScriptedDriver()), job_config, stages)

    # same posts twice: the second pass only repeats known ids
    assert len(result.leads) == 4


@pytest.mark.parametrize(
    "stages",
    [
        (),
        (Stage(name="look", action=StageAction.OBSERVE, target="x"),),
        (
            Stage(name="same", action=StageAction.EXTRACT, target="x"),
            Stage(name="same", action=StageAction.OBSERVE, target="y"),
        ),
    ],
)
def test_invalid_stage_plans_are_rejected(job_config, stages):
    pipeline = JobPipeline(ScriptedDriver())
    with pytest.raises(JobValidationError):
        _execute(pipeline, job_config, stages)
    assert pipeline.status is JobStatus.QUEUED


def test_invalid_job_config():
    with pytest.raises(JobValidationError):
        JobConfig.create(["  ", ""])
    with pytest.raises(JobValidationError):
        JobConfig.create("automation")
    with pytest.raises(JobValidationError):
        JobConfig.create(["automation"], priority="urgent")


def test_auxiliary_failure_after_extraction_is_partial(job_config):
    stages = (
        Stage(name="open", action=StageAction.NAVIGATE, target="https://example.test/", required=True, timeout_ms=500),
        Stage(name="extract", action=StageAction.EXTRACT, target="extract posts", timeout_ms=500),
        Stage(name="review", action=StageAction.OBSERVE, target="review page", timeout_ms=500),
    )
    driver = ScriptedDriver(failures={"review page": [DriverError("error banner")]})
    result = _execute(JobPipeline(driver, MemoryMediaSink()), job_config, stages)

    assert result.status is JobStatus.PARTIAL
    assert len(result.leads) == 4
    assert [s.outcome for s in result.stages] == [
        StageOutcome.SUCCESS,
        StageOutcome.SUCCESS,
        StageOutcome.FAILED,
    ]
    review = result.stages[-1]
    assert review.error.kind is ErrorKind.DRIVER_FAILURE
    assert review.error.message == "error banner"


def test_failing_stage_handler_does_not_abort_the_job(job_config, simple_stages):
    def broken_handler(stage_result):
        raise RuntimeError("reporter bug")

    pipeline = JobPipeline(ScriptedDriver(), MemoryMediaSink(), on_stage_result=broken_handler)
    result = _execute(pipeline, job_config, simple_stages)

    assert result.status is JobStatus.COMPLETED
    assert all(s.outcome is StageOutcome.SUCCESS for s in result.stages)
    assert len(result.leads) == 4


def test_unexpected_error_keeps_real_stage_trace(job_config, simple_stages, monkeypatch):
    def explode(raw_posts):
        raise RuntimeError("extractor bug")

    monkeypatch.setattr("leadscout.pipeline.job_pipeline.extract", explode)
    pipeline = JobPipeline(ScriptedDriver(), MemoryMediaSink())
    result = _execute(pipeline, job_config, simple_stages)

    assert result.status is JobStatus.FAILED
    assert pipeline.status is JobStatus.FAILED
    assert result.leads == ()
    assert [s.stage_name for s in result.stages] == ["open", "look", "extract"]
    assert all(s.outcome is StageOutcome.SUCCESS for s in result.stages)
    assert result.stages[-1].media_ref == "memory://job-test/extract/1"
