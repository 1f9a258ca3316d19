"""Pydantic-based settings loaded from YAML with env-var overrides."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from leadscout.exceptions import ConfigurationError


_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class AppSettings(BaseSettings):
    """Application configuration with YAML + env var support.

    Env vars are prefixed with ``LEADSCOUT_``.
    Example: ``LEADSCOUT_HEADLESS=false``
    """

    model_config = {"env_prefix": "LEADSCOUT_"}

    # --- account ---
    account_handle: str = ""  # selects the stored browser session

    # --- browser ---
    headless: bool = True
    slow_mo: int = 50  # ms between Playwright actions
    base_url: str = "https://www.threads.net"

    # --- search ---
    keywords: list[str] = Field(default_factory=list)
    search_filter: str = "recent"  # recent | top
    priority: str = "normal"

    # --- capture ---
    capture_media: bool = True
    record_video: bool = False

    # --- stages ---
    navigate_timeout_ms: int = 30_000
    observe_timeout_ms: int = 20_000
    extract_timeout_ms: int = 45_000
    stage_retries: int = 2

    # --- execution ---
    max_concurrent_jobs: int = 3
    simulation_mode: bool = False

    # --- output ---
    export_format: str = ""  # json | csv; empty disables the export

    # --- paths ---
    state_dir: str = ".state"
    captures_dir: str = "captures"
    exports_dir: str = "exports"

    @field_validator("keywords")
    @classmethod
    def _strip_keywords(cls, v: list[str]) -> list[str]:
        return [k.strip() for k in v if k and k.strip()]

    @field_validator("priority", "search_filter", "export_format")
    @classmethod
    def _normalise(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("export_format")
    @classmethod
    def _known_format(cls, v: str) -> str:
        if v not in ("", "json", "csv"):
            raise ValueError("must be json, csv or empty")
        return v

    @field_validator("stage_retries", "max_concurrent_jobs")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    def job_payload(self, job_id: str | None = None) -> dict[str, Any]:
        """Build a job submission payload from these settings."""
        payload: dict[str, Any] = {
            "keywords": list(self.keywords),
            "priority": self.priority,
            "capture_media": self.capture_media,
            "record_video": self.record_video,
        }
        if job_id:
            payload["job_id"] = job_id
        return payload

    # ---- factory ----

    @classmethod
    def from_yaml(cls, path: str | Path | None = None) -> "AppSettings":
        """Load settings from a YAML file, then overlay env vars.

        Env vars (``LEADSCOUT_*``) take priority over YAML values.
        """
        import os

        if path is None:
            path = _PROJECT_ROOT / "settings.yaml"
        path = Path(path)
        raw: dict[str, Any] = {}
        if path.exists():
            with open(path) as fh:
                raw = yaml.safe_load(fh) or {}
        if not isinstance(raw, dict):
            raise ConfigurationError(f"{path} must contain a mapping of settings.")

        # Let env vars override YAML: remove YAML keys that have an env override
        prefix = "LEADSCOUT_"
        for key in list(raw.keys()):
            env_key = f"{prefix}{key.upper()}"
            if env_key in os.environ:
                del raw[key]

        return cls(**raw)
