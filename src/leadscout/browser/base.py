"""Protocol definitions for the automation driver and the media sink."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class AutomationDriver(Protocol):
    """Narrow capability surface the pipeline needs from a browser session.

    Every method is async so the pipeline can ``await`` each interaction.
    Implementations raise :class:`~leadscout.exceptions.DriverError` (or any
    exception) on failure; the stage runner maps it to a stage error.
    """

    async def navigate(self, url: str, timeout_ms: int) -> None:
        """Load *url*, failing if it does not settle within *timeout_ms*."""
        ...

    async def observe(self, instruction: str) -> str:
        """Return a free-text description of the page guided by *instruction*."""
        ...

    async def extract(self, instruction: str, schema: type) -> Any:
        """Return structured data shaped like *schema* (a pydantic model class).

        The result is untrusted: the caller validates it before use.
        """
        ...


@runtime_checkable
class MediaSink(Protocol):
    """Durable storage for screenshots and session video."""

    async def capture(self, job_id: str, stage_name: str) -> str:
        """Store a screenshot for *job_id* / *stage_name* and return its reference."""
        ...

    async def finalize(self, job_id: str) -> str | None:
        """Close any recording for *job_id*; return the video reference, if any."""
        ...
