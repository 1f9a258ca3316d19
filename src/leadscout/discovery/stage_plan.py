"""Default stage list for a lead discovery job.

The sequence is plain data handed to the stage runner, so tests and callers
can reorder, drop or replace stages without touching the pipeline.
"""

from __future__ import annotations

from leadscout.discovery.query_builder import build_search_url
from leadscout.models import JobConfig, SearchCriteria, Stage, StageAction
from leadscout.settings import AppSettings

AUTHENTICATE = "authenticate"
SEARCH = "search"
SCAN = "scan"
EXTRACT = "extract"
REVIEW = "review"

_SCAN_INSTRUCTION = "Scroll through the search results and describe the visible posts."
_EXTRACT_INSTRUCTION = (
    "Extract every visible post about {keywords}: its text, the author's handle "
    "and display name, like/reply/repost/view counts and the post's permalink."
)
_REVIEW_INSTRUCTION = "Confirm the page still shows search results and note any error banner."


def build_stage_plan(config: JobConfig, settings: AppSettings) -> tuple[Stage, ...]:
    """Return the ordered stages: authenticate → search → scan → extract → review."""
    retries = settings.stage_retries
    search_url = build_search_url(
        SearchCriteria(keywords=config.keywords, search_filter=settings.search_filter),
        base_url=settings.base_url,
    )
    return (
        Stage(
            name=AUTHENTICATE,
            action=StageAction.NAVIGATE,
            target=settings.base_url,
            captures_media=True,
            max_retries=retries,
            timeout_ms=settings.navigate_timeout_ms,
            required=True,
        ),
        Stage(
            name=SEARCH,
            action=StageAction.NAVIGATE,
            target=search_url,
            captures_media=True,
            max_retries=retries,
            timeout_ms=settings.navigate_timeout_ms,
            required=True,
        ),
        Stage(
            name=SCAN,
            action=StageAction.OBSERVE,
            target=_SCAN_INSTRUCTION,
            max_retries=retries,
            timeout_ms=settings.observe_timeout_ms,
        ),
        Stage(
            name=EXTRACT,
            action=StageAction.EXTRACT,
            target=_EXTRACT_INSTRUCTION.format(keywords=", ".join(config.keywords)),
            captures_media=True,
            max_retries=retries,
            timeout_ms=settings.extract_timeout_ms,
            required=True,
        ),
        Stage(
            name=REVIEW,
            action=StageAction.OBSERVE,
            target=_REVIEW_INSTRUCTION,
            captures_media=True,
            timeout_ms=settings.observe_timeout_ms,
        ),
    )
