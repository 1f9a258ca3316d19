"""Factories that hand each job its own driver + media sink.

A factory is called once per job and returns an async context manager
yielding ``(driver, media_sink)``; the session is closed when the job ends,
so no two jobs ever share a browser.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncContextManager, AsyncIterator, Callable, Optional

from leadscout.auth.session_store import SessionStore
from leadscout.browser.base import AutomationDriver, MediaSink
from leadscout.browser.playwright_driver import PlaywrightDriver, PlaywrightMediaSink
from leadscout.browser.scripted import MemoryMediaSink, ScriptedDriver
from leadscout.models import JobConfig
from leadscout.settings import AppSettings

BrowserSession = tuple[AutomationDriver, Optional[MediaSink]]
SessionFactory = Callable[[JobConfig], AsyncContextManager[BrowserSession]]


def scripted_sessions(posts: list[Any] | None = None, **driver_kwargs: Any) -> SessionFactory:
    """Sessions backed by :class:`ScriptedDriver` (simulation mode, tests)."""

    @asynccontextmanager
    async def _open(config: JobConfig) -> AsyncIterator[BrowserSession]:
        driver = ScriptedDriver(posts, **driver_kwargs)
        try:
            yield driver, MemoryMediaSink()
        finally:
            await driver.close()

    return _open


def playwright_sessions(settings: AppSettings) -> SessionFactory:
    """Sessions backed by a fresh Playwright Chromium per job."""
    store = SessionStore(settings.account_handle, settings.state_dir)

    @asynccontextmanager
    async def _open(config: JobConfig) -> AsyncIterator[BrowserSession]:
        video_dir = str(Path(settings.captures_dir) / "videos") if config.record_video else None
        driver = PlaywrightDriver(
            headless=settings.headless,
            slow_mo=settings.slow_mo,
            storage_state_path=store.storage_state_path() or None,
            video_dir=video_dir,
        )
        await driver.launch()
        try:
            yield driver, PlaywrightMediaSink(driver, settings.captures_dir)
            if settings.account_handle:
                await store.save(driver)
        finally:
            await driver.close()

    return _open


def session_factory(settings: AppSettings) -> SessionFactory:
    if settings.simulation_mode:
        return scripted_sessions()
    return playwright_sessions(settings)
