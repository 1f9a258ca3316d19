"""Tests for YAML + env settings loading."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from leadscout.exceptions import ConfigurationError
from leadscout.settings import AppSettings


def test_from_yaml(tmp_settings_yaml):
    settings = AppSettings.from_yaml(tmp_settings_yaml)
    assert settings.keywords == ["automation", "workflow"]
    assert settings.priority == "high"
    assert settings.search_filter == "recent"
    assert settings.stage_retries == 1
    assert settings.max_concurrent_jobs == 2
    assert settings.simulation_mode is True


def test_env_overrides_yaml(tmp_settings_yaml, monkeypatch):
    monkeypatch.setenv("LEADSCOUT_MAX_CONCURRENT_JOBS", "7")
    monkeypatch.setenv("LEADSCOUT_HEADLESS", "false")
    settings = AppSettings.from_yaml(tmp_settings_yaml)
    assert settings.max_concurrent_jobs == 7
    assert settings.headless is False


def test_missing_file_uses_defaults(tmp_path):
    settings = AppSettings.from_yaml(tmp_path / "absent.yaml")
    assert settings.keywords == []
    assert settings.base_url == "https://www.threads.net"


def test_non_mapping_yaml(tmp_path):
    p = tmp_path / "settings.yaml"
    p.write_text("- just\n- a list\n")
    with pytest.raises(ConfigurationError):
        AppSettings.from_yaml(p)


def test_negative_retries_rejected():
    with pytest.raises(ValidationError):
        AppSettings(stage_retries=-1)


def test_unknown_export_format_rejected():
    with pytest.raises(ValidationError):
        AppSettings(export_format="xml")
    assert AppSettings(export_format=" CSV ").export_format == "csv"


def test_job_payload(tmp_settings_yaml):
    settings = AppSettings.from_yaml(tmp_settings_yaml)
    payload = settings.job_payload("job-7")
    assert payload == {
        "keywords": ["automation", "workflow"],
        "priority": "high",
        "capture_media": True,
        "record_video": False,
        "job_id": "job-7",
    }
    assert "job_id" not in settings.job_payload()
