"""Tests for the in-process job submission boundary."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

import pytest

from leadscout.browser.scripted import MemoryMediaSink, ScriptedDriver
from leadscout.browser.sessions import scripted_sessions
from leadscout.discovery.stage_plan import build_stage_plan
from leadscout.exceptions import BrowserLaunchError, JobValidationError, UnknownJobError
from leadscout.models import ErrorKind, JobStatus, StageOutcome
from leadscout.queue.job_queue import JobQueue
from leadscout.settings import AppSettings


def test_submit_returns_id_then_completes(simple_stages):
    async def go():
        async with JobQueue(scripted_sessions(), lambda config: simple_stages) as queue:
            job_id = queue.submit({"keywords": ["automation"], "job_id": "job-1"})
            assert job_id == "job-1"
            assert queue.fetch(job_id) is None
            result = await queue.wait(job_id)
            return queue, result

    queue, result = asyncio.run(go())
    assert result.status is JobStatus.COMPLETED
    assert queue.status("job-1") is JobStatus.COMPLETED
    assert queue.fetch("job-1") is result
    assert queue.results() == [result]


def test_generated_job_ids_are_unique(simple_stages):
    async def go():
        queue = JobQueue(scripted_sessions(), lambda config: simple_stages)
        return {queue.submit({"keywords": ["automation"]}) for _ in range(5)}

    ids = asyncio.run(go())
    assert len(ids) == 5
    assert all(i.startswith("job-") for i in ids)


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"keywords": []},
        {"keywords": ["  "]},
        {"keywords": "automation"},
        {"keywords": ["automation"], "priority": "urgent"},
        {"keywords": ["automation"], "surprise": True},
        ["automation"],
    ],
)
def test_bad_payload_is_rejected_synchronously(simple_stages, payload):
    async def go():
        queue = JobQueue(scripted_sessions(), lambda config: simple_stages)
        with pytest.raises(JobValidationError):
            queue.submit(payload)
        return queue

    queue = asyncio.run(go())
    assert queue.results() == []


def test_camel_case_payload(simple_stages):
    async def go():
        queue = JobQueue(scripted_sessions(), lambda config: simple_stages)
        payload = {
            "keywords": ["automation"],
            "jobId": "job-camel",
            "priority": "HIGH",
            "captureMedia": False,
            "recordVideo": True,
        }
        async with queue:
            job_id = queue.submit(payload)
            return await queue.wait(job_id)

    result = asyncio.run(go())
    assert result.job_id == "job-camel"
    assert result.video_ref == "memory://job-camel/video"
    assert all(s.media_ref is None for s in result.stages)


def test_duplicate_job_id_is_rejected(simple_stages):
    async def go():
        queue = JobQueue(scripted_sessions(), lambda config: simple_stages)
        queue.submit({"keywords": ["automation"], "job_id": "job-dup"})
        with pytest.raises(JobValidationError):
            queue.submit({"keywords": ["workflow"], "job_id": "job-dup"})

    asyncio.run(go())


def test_invalid_stage_list_is_rejected(simple_stages):
    async def go():
        queue = JobQueue(scripted_sessions(), lambda config: simple_stages)
        with pytest.raises(JobValidationError):
            queue.submit({"keywords": ["automation"]}, stages=simple_stages[:2])

    asyncio.run(go())


def test_high_priority_runs_first(simple_stages):
    order = []

    async def go():
        queue = JobQueue(
            scripted_sessions(),
            lambda config: simple_stages,
            max_concurrent=1,
            on_job_result=lambda result: order.append(result.job_id),
        )
        queue.submit({"keywords": ["a"], "job_id": "low", "priority": "low"})
        queue.submit({"keywords": ["a"], "job_id": "normal-1"})
        queue.submit({"keywords": ["a"], "job_id": "high", "priority": "high"})
        queue.submit({"keywords": ["a"], "job_id": "normal-2"})
        async with queue:
            await queue.join()

    asyncio.run(go())
    assert order == ["high", "normal-1", "normal-2", "low"]


def test_each_job_gets_its_own_session(simple_stages):
    drivers = []

    @asynccontextmanager
    async def sessions(config):
        driver = ScriptedDriver(delay_ms=5)
        drivers.append(driver)
        try:
            yield driver, MemoryMediaSink()
        finally:
            await driver.close()

    async def go():
        async with JobQueue(sessions, lambda config: simple_stages, max_concurrent=2) as queue:
            ids = [queue.submit({"keywords": ["automation"]}) for _ in range(3)]
            return [await queue.wait(i) for i in ids]

    results = asyncio.run(go())
    assert all(r.status is JobStatus.COMPLETED for r in results)
    assert len(drivers) == 3
    assert all(d.closed for d in drivers)
    assert all(len(d.calls) == 3 for d in drivers)


def test_cancel_while_queued(simple_stages):
    async def go():
        queue = JobQueue(scripted_sessions(), lambda config: simple_stages)
        job_id = queue.submit({"keywords": ["automation"]})
        assert queue.cancel(job_id) is True
        async with queue:
            result = await queue.wait(job_id)
        assert queue.cancel(job_id) is False
        return result

    result = asyncio.run(go())
    assert result.status is JobStatus.CANCELLED
    assert result.leads == ()
    assert all(s.outcome is StageOutcome.SKIPPED for s in result.stages)
    assert all(s.error.kind is ErrorKind.CANCELLED for s in result.stages)


def test_session_failure_fails_the_job(simple_stages):
    @asynccontextmanager
    async def broken(config):
        raise BrowserLaunchError("no chromium")
        yield  # pragma: no cover

    async def go():
        async with JobQueue(broken, lambda config: simple_stages) as queue:
            return await queue.wait(queue.submit({"keywords": ["automation"]}))

    result = asyncio.run(go())
    assert result.status is JobStatus.FAILED
    assert result.stages[0].outcome is StageOutcome.FAILED
    assert result.stages[0].error.kind is ErrorKind.DRIVER_FAILURE
    assert result.stages[0].error.message == "no chromium"
    assert all(s.outcome is StageOutcome.SKIPPED for s in result.stages[1:])


def test_unknown_job_id():
    async def go():
        queue = JobQueue(scripted_sessions(), lambda config: ())
        with pytest.raises(UnknownJobError):
            queue.status("job-missing")
        with pytest.raises(UnknownJobError):
            queue.cancel("job-missing")

    asyncio.run(go())


def test_default_plan_end_to_end(tmp_path):
    settings = AppSettings(
        keywords=["automation", "workflow"],
        simulation_mode=True,
        state_dir=str(tmp_path / ".state"),
    )

    async def go():
        queue = JobQueue(scripted_sessions(), lambda config: build_stage_plan(config, settings))
        async with queue:
            job_id = queue.submit(settings.job_payload("job-e2e"))
            return await queue.wait(job_id)

    result = asyncio.run(go())
    assert result.status is JobStatus.COMPLETED
    assert [s.stage_name for s in result.stages] == [
        "authenticate",
        "search",
        "scan",
        "extract",
        "review",
    ]
    assert len(result.leads) == 4


def test_stage_handler_error_keeps_job_result(simple_stages):
    def broken_handler(stage_result):
        raise TypeError("cannot render")

    async def go():
        queue = JobQueue(scripted_sessions(), lambda config: simple_stages, on_stage_result=broken_handler)
        async with queue:
            return await queue.wait(queue.submit({"keywords": ["automation"]}))

    result = asyncio.run(go())
    assert result.status is JobStatus.COMPLETED
    assert all(s.outcome is StageOutcome.SUCCESS for s in result.stages)
    assert len(result.leads) == 4


def test_error_inside_open_session_is_not_blamed_on_first_stage(simple_stages, monkeypatch):
    async def crash(self, config, stages):
        raise RuntimeError("pipeline bug")

    monkeypatch.setattr("leadscout.queue.job_queue.JobPipeline.execute", crash)

    async def go():
        async with JobQueue(scripted_sessions(), lambda config: simple_stages) as queue:
            return await queue.wait(queue.submit({"keywords": ["automation"]}))

    result = asyncio.run(go())
    assert result.status is JobStatus.FAILED
    assert all(s.outcome is StageOutcome.SKIPPED for s in result.stages)
    assert all(s.error.message == "pipeline bug" for s in result.stages)
