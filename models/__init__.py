"""Pydantic models for the relay news pipeline.

NewsSource:
    Entry of the source registry (id, name, enabled, max_items).

NewsItem:
    One collected article in canonical shape.

NewsStats / NewsDigest:
    Run counters and the bounded digest handed to the delivery sink.

RunReport:
    Structured success/failure result of a pipeline run.

EnrichmentResult:
    Tech-relevance signal from the LLM or the local fallback classifier.
"""

from models.news import (
    DEFAULT_CATEGORY,
    NewsDigest,
    NewsItem,
    NewsSource,
    NewsStats,
    RunReport,
)
from models.enrichment import EnrichmentResult

__all__ = [
    "DEFAULT_CATEGORY",
    "NewsSource",
    "NewsItem",
    "NewsStats",
    "NewsDigest",
    "RunReport",
    "EnrichmentResult",
]
