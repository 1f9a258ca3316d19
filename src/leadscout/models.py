"""Domain models for LeadScout."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Iterable

from leadscout.exceptions import JobValidationError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


# ---- enums ----


class Priority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"

    @property
    def rank(self) -> int:
        """Queue ordering key; lower runs first."""
        return {Priority.HIGH: 0, Priority.NORMAL: 1, Priority.LOW: 2}[self]


class StageAction(str, enum.Enum):
    NAVIGATE = "navigate"
    OBSERVE = "observe"
    EXTRACT = "extract"


class StageOutcome(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    TIMEOUT = "timeout"
    DRIVER_FAILURE = "driver_failure"
    CAPTURE_FAILURE = "capture_failure"
    EXTRACTION_EMPTY = "extraction_empty"
    CANCELLED = "cancelled"


class Category(str, enum.Enum):
    COLD = "cold"
    WARM = "warm"
    HOT = "hot"

    @property
    def rank(self) -> int:
        return {Category.COLD: 0, Category.WARM: 1, Category.HOT: 2}[self]


class JobStatus(str, enum.Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in (JobStatus.QUEUED, JobStatus.RUNNING)


# ---- job configuration ----


@dataclass(frozen=True)
class JobConfig:
    """Immutable parameters of one discovery job."""

    job_id: str
    keywords: tuple[str, ...]
    priority: Priority = Priority.NORMAL
    capture_media: bool = True
    record_video: bool = False

    def __post_init__(self) -> None:
        if not self.job_id or not self.job_id.strip():
            raise JobValidationError("job_id must be a non-empty string.")
        if not self.keywords:
            raise JobValidationError("At least one keyword is required.")
        if not isinstance(self.priority, Priority):
            raise JobValidationError(f"Invalid priority: {self.priority!r}")

    @classmethod
    def create(
        cls,
        keywords: Iterable[str],
        *,
        job_id: str | None = None,
        priority: Priority | str = Priority.NORMAL,
        capture_media: bool = True,
        record_video: bool = False,
    ) -> "JobConfig":
        """Normalise raw inputs and build a config.

        Keywords are stripped and de-duplicated case-insensitively, keeping
        the first spelling and the caller's order.
        """
        if isinstance(keywords, str):
            raise JobValidationError("keywords must be a list of strings, not a string.")
        seen: set[str] = set()
        cleaned: list[str] = []
        for kw in keywords:
            if not isinstance(kw, str):
                raise JobValidationError(f"Keyword must be a string: {kw!r}")
            kw = kw.strip()
            if kw and kw.lower() not in seen:
                seen.add(kw.lower())
                cleaned.append(kw)

        if isinstance(priority, str) and not isinstance(priority, Priority):
            try:
                priority = Priority(priority.strip().lower())
            except ValueError:
                raise JobValidationError(f"Invalid priority: {priority!r}") from None

        return cls(
            job_id=job_id or f"job-{uuid.uuid4().hex[:12]}",
            keywords=tuple(cleaned),
            priority=priority,
            capture_media=capture_media,
            record_video=record_video,
        )


@dataclass(frozen=True)
class SearchCriteria:
    """Parameters for a single site search URL."""

    keywords: tuple[str, ...]
    search_filter: str = "recent"


@dataclass(frozen=True)
class Stage:
    """One named step of a job's automation sequence.

    ``target`` is the URL for NAVIGATE stages and the natural-language
    instruction for OBSERVE / EXTRACT stages.
    """

    name: str
    action: StageAction
    target: str = ""
    captures_media: bool = False
    max_retries: int = 0
    timeout_ms: int = 30_000
    required: bool = False

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise JobValidationError("Stage name must be non-empty.")
        if not isinstance(self.action, StageAction):
            try:
                object.__setattr__(self, "action", StageAction(self.action))
            except ValueError:
                raise JobValidationError(
                    f"Stage {self.name!r}: unknown action {self.action!r}"
                ) from None
        if self.max_retries < 0:
            raise JobValidationError(f"Stage {self.name!r}: max_retries must be >= 0.")
        if self.timeout_ms <= 0:
            raise JobValidationError(f"Stage {self.name!r}: timeout_ms must be > 0.")


# ---- execution trace ----


@dataclass(frozen=True)
class StageError:
    kind: ErrorKind
    message: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "message": self.message}


@dataclass(frozen=True)
class StageResult:
    """Terminal outcome of one stage, including every retry."""

    stage_name: str
    started_at: datetime
    ended_at: datetime
    outcome: StageOutcome
    attempts: int = 0
    media_ref: str | None = None
    error: StageError | None = None
    warnings: tuple[StageError, ...] = ()
    payload: Any = field(default=None, compare=False, repr=False)

    @property
    def duration_ms(self) -> int:
        return int((self.ended_at - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage_name": self.stage_name,
            "outcome": self.outcome.value,
            "started_at": _iso(self.started_at),
            "ended_at": _iso(self.ended_at),
            "duration_ms": self.duration_ms,
            "attempts": self.attempts,
            "media_ref": self.media_ref,
            "error": self.error.to_dict() if self.error else None,
            "warnings": [w.to_dict() for w in self.warnings],
        }


# ---- leads ----


@dataclass(frozen=True)
class EngagementMetrics:
    likes: int = 0
    replies: int = 0
    reposts: int = 0
    views: int = 0

    @classmethod
    def from_counts(
        cls,
        likes: int | None = None,
        replies: int | None = None,
        reposts: int | None = None,
        views: int | None = None,
    ) -> "EngagementMetrics":
        """Absent or negative counters become 0."""
        return cls(
            likes=max(likes or 0, 0),
            replies=max(replies or 0, 0),
            reposts=max(reposts or 0, 0),
            views=max(views or 0, 0),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "likes": self.likes,
            "replies": self.replies,
            "reposts": self.reposts,
            "views": self.views,
        }


@dataclass(frozen=True)
class LeadCandidate:
    """A validated, de-duplicated post that has not been scored yet."""

    id: str
    author_handle: str
    text: str
    metrics: EngagementMetrics = field(default_factory=EngagementMetrics)
    display_name: str | None = None
    thread_url: str | None = None


@dataclass(frozen=True)
class Lead:
    """A scored candidate. ``category`` is always derived from ``score``."""

    id: str
    author_handle: str
    text: str
    metrics: EngagementMetrics
    score: float
    captured_at: datetime
    display_name: str | None = None
    thread_url: str | None = None
    media_ref: str | None = None

    @property
    def category(self) -> Category:
        from leadscout.scoring.engine import categorize

        return categorize(self.score)

    @classmethod
    def from_candidate(
        cls,
        candidate: LeadCandidate,
        keywords: Iterable[str],
        *,
        captured_at: datetime | None = None,
        media_ref: str | None = None,
    ) -> "Lead":
        from leadscout.scoring.engine import score

        value, _ = score(candidate, keywords)
        return cls(
            id=candidate.id,
            author_handle=candidate.author_handle,
            text=candidate.text,
            metrics=candidate.metrics,
            score=value,
            captured_at=captured_at or utc_now(),
            display_name=candidate.display_name,
            thread_url=candidate.thread_url,
            media_ref=media_ref,
        )

    def rescored(
        self, keywords: Iterable[str], metrics: EngagementMetrics | None = None
    ) -> "Lead":
        """Return a copy scored against *keywords* and (optionally) fresh metrics."""
        from leadscout.scoring.engine import score

        updated = replace(self, metrics=metrics or self.metrics)
        value, _ = score(updated, keywords)
        return replace(updated, score=value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "author_handle": self.author_handle,
            "display_name": self.display_name,
            "text": self.text,
            "thread_url": self.thread_url,
            "metrics": self.metrics.to_dict(),
            "score": round(self.score, 4),
            "category": self.category.value,
            "captured_at": _iso(self.captured_at),
            "media_ref": self.media_ref,
        }


# ---- job result ----


@dataclass(frozen=True)
class JobResult:
    """Terminal artifact of one pipeline execution."""

    job_id: str
    status: JobStatus
    started_at: datetime
    ended_at: datetime
    stages: tuple[StageResult, ...] = ()
    leads: tuple[Lead, ...] = ()
    video_ref: str | None = None

    def lead_counts(self) -> dict[Category, int]:
        counts = {c: 0 for c in Category}
        for lead in self.leads:
            counts[lead.category] += 1
        return counts

    def failed_stage(self) -> StageResult | None:
        for result in self.stages:
            if result.outcome is StageOutcome.FAILED:
                return result
        return None

    def to_dict(self) -> dict[str, Any]:
        counts = self.lead_counts()
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "started_at": _iso(self.started_at),
            "ended_at": _iso(self.ended_at),
            "video_ref": self.video_ref,
            "stages": [s.to_dict() for s in self.stages],
            "leads": [lead.to_dict() for lead in self.leads],
            "summary": {c.value: n for c, n in counts.items()},
        }
