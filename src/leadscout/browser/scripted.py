"""Deterministic in-memory driver and media sink.

Used for ``simulation_mode`` runs and throughout the test-suite, so the
pipeline can be exercised without a browser.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any

from leadscout.exceptions import CaptureError

logger = logging.getLogger(__name__)

# Sentinel: a scripted step that never returns (until its deadline cancels it).
HANG = object()

SAMPLE_POSTS: tuple[dict[str, Any], ...] = (
    {
        "text": (
            "Looking for workflow automation experts. Our team is drowning in "
            "repetitive tasks. Need someone who can help us streamline our processes ASAP."
        ),
        "author": {"handle": "marketing_director", "displayName": "Sarah Johnson"},
        "metrics": {"likes": 89, "replies": 15, "reposts": 5, "views": 1523},
        "threadUrl": "https://www.threads.net/@marketing_director/post/C456def789",
    },
    {
        "text": (
            "Just lost 3 days of productivity due to manual data entry. There has "
            "to be a better way to handle lead qualification. What are you all using?"
        ),
        "author": {"handle": "tech_consultant", "displayName": "Mike Rodriguez"},
        "metrics": {"likes": "203", "replies": "31", "reposts": 18, "views": "4.5K"},
        "threadUrl": "https://www.threads.net/@tech_consultant/post/C789ghi012",
    },
    {
        "text": "Just launched our new productivity app, check it out!",
        "author": {"handle": "appdev456"},
        "metrics": {"likes": 3, "replies": 1},
        "threadUrl": "https://www.threads.net/@appdev456/post/C000aaa111",
    },
    {
        "text": "Great weather for a run today.",
        "author": {"handle": "weekend_runner"},
    },
)


class ScriptedDriver:
    """Automation driver that replays canned behaviour.

    *failures* maps a stage target (URL or instruction) to a list of
    per-call outcomes consumed in order: an exception instance is raised,
    :data:`HANG` blocks forever, ``None`` lets the call succeed.
    """

    def __init__(
        self,
        posts: list[Any] | tuple[Any, ...] | None = None,
        *,
        observation: str = "Search results page listing recent threads.",
        failures: dict[str, list[Any]] | None = None,
        delay_ms: int = 0,
        extract_payload: Any = None,
    ) -> None:
        self.posts = list(posts) if posts is not None else list(SAMPLE_POSTS)
        self.observation = observation
        self.extract_payload = extract_payload
        self.calls: list[tuple[str, str]] = []
        self.closed = False
        self._failures = {k: list(v) for k, v in (failures or {}).items()}
        self._delay = delay_ms / 1000

    async def _step(self, action: str, target: str) -> None:
        self.calls.append((action, target))
        if self._delay:
            await asyncio.sleep(self._delay)
        pending = self._failures.get(target)
        if not pending:
            return
        outcome = pending.pop(0)
        if outcome is HANG:
            await asyncio.sleep(3600)
        elif isinstance(outcome, BaseException):
            raise outcome

    async def navigate(self, url: str, timeout_ms: int) -> None:
        await self._step("navigate", url)

    async def observe(self, instruction: str) -> str:
        await self._step("observe", instruction)
        return self.observation

    async def extract(self, instruction: str, schema: type) -> Any:
        await self._step("extract", instruction)
        if self.extract_payload is not None:
            return copy.deepcopy(self.extract_payload)
        return {"posts": copy.deepcopy(self.posts)}

    async def close(self) -> None:
        self.closed = True


class MemoryMediaSink:
    """Media sink that only records what it was asked to store."""

    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.captures: list[tuple[str, str]] = []
        self.finalized: list[str] = []
        self._fail_on = fail_on or set()

    async def capture(self, job_id: str, stage_name: str) -> str:
        if stage_name in self._fail_on:
            raise CaptureError(f"Simulated capture failure for {stage_name!r}.")
        self.captures.append((job_id, stage_name))
        ref = f"memory://{job_id}/{stage_name}/{len(self.captures)}"
        logger.debug("Captured %s.", ref)
        return ref

    async def finalize(self, job_id: str) -> str | None:
        self.finalized.append(job_id)
        return f"memory://{job_id}/video"
