"""Shared test fixtures."""

from __future__ import annotations

import pytest

from leadscout.models import JobConfig, Stage, StageAction


@pytest.fixture()
def tmp_settings_yaml(tmp_path):
    """Write a minimal settings.yaml and return its path."""
    content = """\
account_handle: "@Scout_Account"
headless: true
keywords:
  - " automation "
  - "workflow"
  - ""
search_filter: "Recent"
priority: "HIGH"
capture_media: true
record_video: false
stage_retries: 1
max_concurrent_jobs: 2
simulation_mode: true
state_dir: "{state}"
captures_dir: "{captures}"
""".format(state=str(tmp_path / ".state"), captures=str(tmp_path / "captures"))
    p = tmp_path / "settings.yaml"
    p.write_text(content)
    return p


@pytest.fixture()
def job_config():
    return JobConfig.create(["automation", "workflow"], job_id="job-test")


@pytest.fixture()
def simple_stages():
    """A small plan: navigate → observe → extract, fast deadlines."""
    return (
        Stage(name="open", action=StageAction.NAVIGATE, target="https://example.test/", required=True, timeout_ms=500),
        Stage(name="look", action=StageAction.OBSERVE, target="look around", timeout_ms=500),
        Stage(
            name="extract",
            action=StageAction.EXTRACT,
            target="extract posts",
            captures_media=True,
            timeout_ms=500,
        ),
    )
