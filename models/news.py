"""Core data models for collected news.

Every entity here is created fresh for a collection run. Attributes use
snake_case in Python and serialize with camelCase aliases so that
``model_dump(by_alias=True)`` yields the wire shape consumed by the
digest sink (``publishTime``, ``topNews``, ``generatedAt``, ...).

Scores:
    ``NewsItem.score`` is the rule-based 0-100 score assigned during
    normalization. The boosted value used for ranking is computed in
    ``scoring.score_item`` and never written back to this field.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_CATEGORY = "其他"
DEFAULT_MAX_ITEMS = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _WireModel(BaseModel):
    """Base model accepting both field names and camelCase aliases."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys and ISO-8601 timestamps."""
        return self.model_dump(mode="json", by_alias=True)


class NewsSource(_WireModel):
    """One upstream feed in the source registry.

    Attributes:
        id: Upstream feed key passed to the aggregation endpoint
        name: Display name, used as ``NewsItem.source``
        enabled: Disabled sources are never fetched
        max_items: Per-source item cap applied before normalization
    """

    id: str = Field(description="Upstream feed key")
    name: str = Field(description="Display name")
    enabled: bool = Field(default=True)
    max_items: int = Field(default=DEFAULT_MAX_ITEMS, ge=1, alias="maxItems")


class NewsItem(_WireModel):
    """A single collected article in canonical shape."""

    id: str = Field(description="Unique per collection run")
    title: str = Field(min_length=1)
    url: str = Field(default="")
    description: str = Field(default="")
    publish_time: datetime | None = Field(default=None, alias="publishTime")
    source: str = Field(description="Name of the origin feed")
    category: str = Field(default=DEFAULT_CATEGORY)
    score: int = Field(default=0, ge=0, le=100)
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def _unique_tags(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    def __str__(self) -> str:
        return f"NewsItem({self.id[:8]}, '{self.title[:40]}', {self.category}, {self.score})"


class NewsStats(_WireModel):
    """Counters for one collection run."""

    total_collected: int = Field(default=0, alias="totalCollected")
    by_source: dict[str, int] = Field(default_factory=dict, alias="bySource")
    by_category: dict[str, int] = Field(default_factory=dict, alias="byCategory")
    duplicates_removed: int = Field(default=0, alias="duplicatesRemoved")
    processing_time: int = Field(default=0, alias="processingTime", description="Milliseconds")


class NewsDigest(_WireModel):
    """Bounded, ranked and summarized output of one run.

    ``total_count`` is the size of the ranked set before the top-N cut;
    ``categories`` is ordered by descending count.
    """

    total_count: int = Field(default=0, alias="totalCount")
    categories: dict[str, int] = Field(default_factory=dict)
    top_news: list[NewsItem] = Field(default_factory=list, alias="topNews", max_length=20)
    summary: str = Field(default="")
    generated_at: datetime = Field(default_factory=_utcnow, alias="generatedAt")


class RunReport(_WireModel):
    """Structured result of a pipeline run.

    The pipeline entry point always returns one of these instead of
    raising; per-source failures are listed in ``source_errors``.
    """

    success: bool
    message: str
    error: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)
    stats: NewsStats | None = None
    digest: NewsDigest | None = None
    delivered: bool | None = None
    source_errors: dict[str, str] = Field(default_factory=dict, alias="sourceErrors")
    duration: float = 0.0

    @classmethod
    def failure(cls, message: str, error: str | None = None, **kwargs: Any) -> "RunReport":
        return cls(success=False, message=message, error=error or message, **kwargs)
