# src/tracegrid/modules/enrichment.py
"""
Rendering of post-hoc analysis results attached to a record under
``metadata.enrichment``.

Each known kind parses into its own variant; anything else (including a
known kind whose value has an unexpected shape) becomes UnknownEnrichment
and is shown verbatim, so new upstream kinds render without code changes.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

from tracegrid.core.visual import Badge, BadgeGroup, Glyph, Inline, NEUTRAL_COLOR
from tracegrid.utils.colors import color_from_seed

SENTIMENT_THRESHOLD = 0.5

SMILE = Glyph("🙂", "green", "smile")
FROWN = Glyph("🙁", "red", "frown")
NEUTRAL_FACE = Glyph("😐", NEUTRAL_COLOR, "neutral")

PII_WARNING = Glyph("⚠️", None, "warning")
PII_BLOCK = Glyph("❌", None, "block")
PII_CLEAR = Glyph("❎", None, "clear")


@dataclass(frozen=True)
class SentimentEnrichment:
    score: float


@dataclass(frozen=True)
class PiiEnrichment:
    level: Any


@dataclass(frozen=True)
class TopicsEnrichment:
    topics: Tuple[str, ...]


@dataclass(frozen=True)
class UnknownEnrichment:
    kind: str
    value: Any


Enrichment = Union[SentimentEnrichment, PiiEnrichment, TopicsEnrichment, UnknownEnrichment]


@dataclass(frozen=True)
class EnrichmentView:
    visual: Any
    tooltip: Optional[str] = None


def parse_enrichment(kind: str, value: Any) -> Enrichment:
    if kind == "sentiment":
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return SentimentEnrichment(score=value)
        return UnknownEnrichment(kind=kind, value=value)

    if kind == "pii":
        return PiiEnrichment(level=value)

    if kind == "topics":
        if value is None:
            return TopicsEnrichment(topics=())
        if isinstance(value, (list, tuple)):
            return TopicsEnrichment(topics=tuple(str(t) for t in value if t is not None))
        return UnknownEnrichment(kind=kind, value=value)

    return UnknownEnrichment(kind=kind, value=value)


def sentiment_bucket(score: float) -> str:
    if score > SENTIMENT_THRESHOLD:
        return "positive"
    if score < -SENTIMENT_THRESHOLD:
        return "negative"
    return "neutral"


_SENTIMENT_GLYPHS = {"positive": SMILE, "negative": FROWN, "neutral": NEUTRAL_FACE}


def _render_sentiment(e: SentimentEnrichment) -> EnrichmentView:
    bucket = sentiment_bucket(e.score)
    return EnrichmentView(
        visual=Inline((_SENTIMENT_GLYPHS[bucket], str(e.score))),
        tooltip=f"Sentiment: {bucket}",
    )


def _render_pii(e: PiiEnrichment) -> EnrichmentView:
    if e.level == "soft":
        return EnrichmentView(visual=PII_WARNING)
    if e.level == "hard":
        return EnrichmentView(visual=PII_BLOCK)
    return EnrichmentView(visual=PII_CLEAR)


def topic_badge(topic: str) -> Badge:
    return Badge(label=topic, color=color_from_seed(topic), variant="outline")


def _render_topics(e: TopicsEnrichment) -> EnrichmentView:
    return EnrichmentView(
        visual=BadgeGroup(tuple(topic_badge(t) for t in e.topics)),
        tooltip="Topics",
    )


def render_enrichment_value(enrichment: Enrichment) -> EnrichmentView:
    if isinstance(enrichment, SentimentEnrichment):
        return _render_sentiment(enrichment)
    if isinstance(enrichment, PiiEnrichment):
        return _render_pii(enrichment)
    if isinstance(enrichment, TopicsEnrichment):
        return _render_topics(enrichment)
    # Forward compatibility: unknown kinds pass through untouched.
    return EnrichmentView(visual=enrichment.value, tooltip=enrichment.kind)


def render_enrichment(kind: str, value: Any) -> EnrichmentView:
    return render_enrichment_value(parse_enrichment(kind, value))
