"""Deterministic lead scoring.

A post's score is the sum of four terms, each capped at its own weight:

* keyword relevance  (0.4): share of job keywords present in the text
* intent signal      (0.3): a question mark or an intent phrase
* engagement         (0.2): tiered on ``likes + 2 * replies``
* domain context     (0.1): any business-context term

The total is clamped to ``[0, 1]`` and bucketed into a :class:`Category`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol

from leadscout.models import Category, EngagementMetrics

# ---- weights ----

KEYWORD_WEIGHT = 0.4
INTENT_WEIGHT = 0.3
ENGAGEMENT_WEIGHT = 0.2
DOMAIN_WEIGHT = 0.1

# ---- category thresholds (strictly greater than) ----

HOT_THRESHOLD = 0.6
WARM_THRESHOLD = 0.3

# (engagement value must exceed, contribution), checked top-down
ENGAGEMENT_TIERS: tuple[tuple[float, float], ...] = (
    (10, 0.2),
    (5, 0.15),
    (0, 0.1),
)

# ---- vocabularies ----

INTENT_MARKERS: tuple[str, ...] = (
    "?",
    "recommend",
    "help",
    "need",
    "looking for",
    "suggestion",
    "advice",
    "anyone know",
)

BUSINESS_TERMS: tuple[str, ...] = (
    "automation",
    "workflow",
    "productivity",
    "business",
    "efficiency",
    "process",
)


class Scorable(Protocol):
    text: str

    @property
    def metrics(self) -> EngagementMetrics: ...


@dataclass(frozen=True)
class EngagementFormula:
    """Weights used to collapse counters into one engagement value.

    Reposts carry no weight by default; raise ``repost_weight`` to count them.
    """

    like_weight: float = 1.0
    reply_weight: float = 2.0
    repost_weight: float = 0.0

    def value(self, metrics: EngagementMetrics) -> float:
        return (
            metrics.likes * self.like_weight
            + metrics.replies * self.reply_weight
            + metrics.reposts * self.repost_weight
        )


DEFAULT_FORMULA = EngagementFormula()


@dataclass(frozen=True)
class ScoreBreakdown:
    relevance: float
    intent: float
    engagement: float
    domain: float

    @property
    def total(self) -> float:
        # rounded so float noise cannot push a sum across a threshold
        raw = round(self.relevance + self.intent + self.engagement + self.domain, 10)
        return min(1.0, max(0.0, raw))

    @property
    def category(self) -> Category:
        return categorize(self.total)


def categorize(score: float) -> Category:
    """Map a score to its bucket. Monotonic in *score*."""
    if score > HOT_THRESHOLD:
        return Category.HOT
    if score > WARM_THRESHOLD:
        return Category.WARM
    return Category.COLD


def _normalise_keywords(keywords: Iterable[str]) -> list[str]:
    seen: list[str] = []
    for kw in keywords:
        kw = kw.strip().lower()
        if kw and kw not in seen:
            seen.append(kw)
    return seen


def keyword_relevance(text_lower: str, keywords: Iterable[str]) -> float:
    terms = _normalise_keywords(keywords)
    if not terms:
        return 0.0
    matches = sum(1 for term in terms if term in text_lower)
    return min(KEYWORD_WEIGHT, (matches / len(terms)) * KEYWORD_WEIGHT)


def intent_signal(text_lower: str) -> float:
    if any(marker in text_lower for marker in INTENT_MARKERS):
        return INTENT_WEIGHT
    return 0.0


def engagement_signal(
    metrics: EngagementMetrics, formula: EngagementFormula = DEFAULT_FORMULA
) -> float:
    value = formula.value(metrics)
    for floor, contribution in ENGAGEMENT_TIERS:
        if value > floor:
            return min(ENGAGEMENT_WEIGHT, contribution)
    return 0.0


def domain_context(text_lower: str) -> float:
    if any(term in text_lower for term in BUSINESS_TERMS):
        return DOMAIN_WEIGHT
    return 0.0


def score_breakdown(
    post: Scorable,
    keywords: Iterable[str],
    formula: EngagementFormula = DEFAULT_FORMULA,
) -> ScoreBreakdown:
    text_lower = (post.text or "").lower()
    return ScoreBreakdown(
        relevance=keyword_relevance(text_lower, keywords),
        intent=intent_signal(text_lower),
        engagement=engagement_signal(post.metrics, formula),
        domain=domain_context(text_lower),
    )


def score(
    post: Scorable,
    keywords: Iterable[str],
    formula: EngagementFormula = DEFAULT_FORMULA,
) -> tuple[float, Category]:
    """Return ``(score, category)`` for *post* against *keywords*.

    Pure and deterministic: no I/O, no clock, no randomness.
    """
    breakdown = score_breakdown(post, keywords, formula)
    return breakdown.total, breakdown.category
