"""Turn noisy driver output into validated, de-duplicated lead candidates."""

from __future__ import annotations

import hashlib
import logging
from typing import Any, Iterable
from urllib.parse import urlsplit, urlunsplit

from pydantic import ValidationError

from leadscout.exceptions import DriverError
from leadscout.models import LeadCandidate
from leadscout.schemas import PostBatch, RawPost

logger = logging.getLogger(__name__)

# Text prefix used for identity when a post has no thread URL.
IDENTITY_TEXT_CHARS = 64


def normalise_thread_url(url: str) -> str:
    """Canonical form of a thread URL: no query, no fragment, no trailing slash."""
    parts = urlsplit(url.strip())
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, "", ""))


def derive_lead_id(author_handle: str, text: str, thread_url: str | None = None) -> str:
    """Deterministic identity for a post.

    The thread URL wins when present; otherwise the id hashes the author
    handle together with the first :data:`IDENTITY_TEXT_CHARS` characters of
    the text.
    """
    if thread_url:
        key = "url:" + normalise_thread_url(thread_url)
    else:
        handle = author_handle.strip().lstrip("@").lower()
        key = "post:" + handle + "\x00" + text.strip()[:IDENTITY_TEXT_CHARS]
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]
    return f"lead-{digest}"


def parse_raw_posts(payload: Any) -> list[RawPost]:
    """Validate an EXTRACT payload against the RawPost shape.

    *payload* may be ``{"posts": [...]}`` or a bare list. A payload of any
    other shape raises :class:`DriverError`; individual malformed posts are
    dropped.
    """
    if isinstance(payload, PostBatch):
        items = payload.posts
    elif isinstance(payload, list):
        items = payload
    elif isinstance(payload, dict):
        try:
            items = PostBatch.model_validate(payload).posts
        except ValidationError as exc:
            raise DriverError(f"Malformed extraction payload: {exc}") from exc
    else:
        raise DriverError(
            f"Extraction payload must be a list or a posts envelope, got {type(payload).__name__}."
        )

    posts: list[RawPost] = []
    for index, item in enumerate(items):
        if isinstance(item, RawPost):
            posts.append(item)
            continue
        try:
            posts.append(RawPost.model_validate(item))
        except ValidationError as exc:
            logger.debug("Dropping malformed post #%d: %s", index, exc.errors()[0]["msg"])
    return posts


def extract(raw_posts: Iterable[RawPost]) -> list[LeadCandidate]:
    """Validate and de-duplicate *raw_posts*, keeping first-seen order.

    Posts with empty text or an empty author handle are dropped. When two
    posts share an id the first one is kept untouched; later duplicates are
    discarded, never merged.
    """
    candidates: dict[str, LeadCandidate] = {}
    dropped = 0
    duplicates = 0

    for post in raw_posts:
        if not post.text or not post.author_handle:
            dropped += 1
            continue
        lead_id = derive_lead_id(post.author_handle, post.text, post.thread_url)
        if lead_id in candidates:
            duplicates += 1
            continue
        candidates[lead_id] = LeadCandidate(
            id=lead_id,
            author_handle=post.author_handle,
            text=post.text,
            metrics=post.metrics,
            display_name=post.display_name,
            thread_url=post.thread_url,
        )

    logger.info(
        "Extraction: %d candidate(s), %d invalid dropped, %d duplicate(s) skipped.",
        len(candidates),
        dropped,
        duplicates,
    )
    return list(candidates.values())
