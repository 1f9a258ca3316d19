"""Pydantic schemas for untrusted input: driver extraction output and job payloads."""

from __future__ import annotations

import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from leadscout.exceptions import JobValidationError
from leadscout.models import EngagementMetrics, JobConfig, Priority

_COUNTER_FIELDS = ("likes", "replies", "reposts", "views")

# Key spellings seen in driver output, mapped onto RawPost field names.
_KEY_ALIASES: dict[str, str] = {
    "authorHandle": "author_handle",
    "handle": "author_handle",
    "username": "author_handle",
    "displayName": "display_name",
    "authorName": "display_name",
    "threadUrl": "thread_url",
    "postUrl": "thread_url",
    "url": "thread_url",
    "content": "text",
}

_COMPACT_COUNT_RE = re.compile(r"^([\d.]+)\s*([kKmMbB]?)$")
_MULTIPLIERS = {"": 1, "k": 1_000, "m": 1_000_000, "b": 1_000_000_000}


def parse_count(value: Any) -> int | None:
    """Parse an engagement counter as rendered on a page.

    Accepts ints, floats and strings such as ``"1,234"``, ``"1.2K"`` or
    ``"3M"``. Anything unreadable becomes ``None``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if not isinstance(value, str):
        return None
    text = value.strip().replace(",", "")
    match = _COMPACT_COUNT_RE.match(text)
    if not match:
        return None
    try:
        number = float(match.group(1))
    except ValueError:
        return None
    return int(number * _MULTIPLIERS[match.group(2).lower()])


class RawPost(BaseModel):
    """Unvalidated post as returned by the automation driver.

    Every field is optional at parse time; emptiness is judged later by the
    lead extractor, which drops posts with no text or no author.
    """

    model_config = ConfigDict(extra="ignore")

    text: str = ""
    author_handle: str = ""
    display_name: Optional[str] = None
    likes: Optional[int] = None
    replies: Optional[int] = None
    reposts: Optional[int] = None
    views: Optional[int] = None
    thread_url: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _flatten(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        flat: dict[str, Any] = {}
        for key, value in data.items():
            if key == "author" and isinstance(value, dict):
                flat.setdefault("author_handle", value.get("handle") or value.get("username"))
                name = value.get("displayName") or value.get("display_name")
                if name:
                    flat.setdefault("display_name", name)
            elif key == "author" and isinstance(value, str):
                flat.setdefault("author_handle", value)
            elif key == "metrics" and isinstance(value, dict):
                for counter in _COUNTER_FIELDS:
                    if counter in value:
                        flat.setdefault(counter, value[counter])
            else:
                flat.setdefault(_KEY_ALIASES.get(key, key), value)
        return flat

    @field_validator("text", mode="before")
    @classmethod
    def _clean_text(cls, v: Any) -> Any:
        if v is None:
            return ""
        return v.strip() if isinstance(v, str) else v

    @field_validator("author_handle", mode="before")
    @classmethod
    def _clean_handle(cls, v: Any) -> Any:
        if v is None:
            return ""
        return v.strip().lstrip("@") if isinstance(v, str) else v

    @field_validator("display_name", "thread_url", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip() or None
        return v

    @field_validator(*_COUNTER_FIELDS, mode="before")
    @classmethod
    def _parse_counter(cls, v: Any) -> int | None:
        return parse_count(v)

    @property
    def metrics(self) -> EngagementMetrics:
        return EngagementMetrics.from_counts(self.likes, self.replies, self.reposts, self.views)


class PostBatch(BaseModel):
    """Envelope expected from an EXTRACT call: ``{"posts": [...]}``."""

    model_config = ConfigDict(extra="ignore")

    posts: list[Any]


class JobRequest(BaseModel):
    """Job submission payload. Accepts snake_case or camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    keywords: list[str]
    job_id: Optional[str] = None
    priority: Priority = Priority.NORMAL
    capture_media: bool = True
    record_video: bool = False

    @field_validator("priority", mode="before")
    @classmethod
    def _normalise_priority(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    def to_config(self) -> JobConfig:
        return JobConfig.create(
            self.keywords,
            job_id=self.job_id,
            priority=self.priority,
            capture_media=self.capture_media,
            record_video=self.record_video,
        )


def parse_job_request(payload: Any) -> JobConfig:
    """Validate a submission payload into a :class:`JobConfig`.

    Raises :class:`JobValidationError` on any problem.
    """
    if isinstance(payload, JobConfig):
        return payload
    try:
        request = JobRequest.model_validate(payload)
    except ValidationError as exc:
        raise JobValidationError(f"Invalid job payload: {exc}") from exc
    return request.to_config()
