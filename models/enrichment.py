"""Relevance-enrichment result model.

Produced either by the chat-completion endpoint or by the local keyword
fallback; both paths yield the same shape so callers never branch on
where a result came from.
"""

import logging

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


class EnrichmentResult(BaseModel):
    """Tech-relevance signal for a single news item.

    Attributes:
        is_tech_news: Whether the item is technology news
        confidence: Classifier confidence (0.0 to 1.0, clamped)
        tech_keywords: Technology keywords recognized in the text
        reasoning: Short explanation of the decision
        relevance_score: 0-100 relevance used for blended ranking
        category: Category override ("科技" for tech items)
        tags: Extra tags contributed by enrichment
    """

    is_tech_news: bool = Field(default=False)
    confidence: float = Field(default=0.0)
    tech_keywords: list[str] = Field(default_factory=list)
    reasoning: str = Field(default="")
    relevance_score: float | None = Field(default=None)
    category: str | None = Field(default=None)
    tags: list[str] = Field(default_factory=list)
    fallback: bool = Field(default=False, description="Produced by the local classifier")

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value) -> float:
        try:
            return max(0.0, min(1.0, float(value or 0)))
        except (TypeError, ValueError):
            logger.debug("Unparsable confidence; using 0 | value=%r", value)
            return 0.0

    @field_validator("tech_keywords", "tags", mode="before")
    @classmethod
    def _string_list(cls, value) -> list[str]:
        if not isinstance(value, list):
            return []
        return [str(v) for v in value if v]

    @classmethod
    def from_llm_payload(cls, data: dict) -> "EnrichmentResult":
        """Build a result from the JSON object returned by the model.

        Missing fields take neutral defaults; ``relevanceScore``,
        ``category`` and ``tags`` are only present for full analysis.
        """
        if not isinstance(data, dict):
            raise ValueError("Enrichment payload is not a JSON object")
        return cls(
            is_tech_news=bool(data.get("isTechNews", False)),
            confidence=data.get("confidence", 0),
            tech_keywords=data.get("techKeywords", []),
            reasoning=str(data.get("reasoning", "") or ""),
            relevance_score=data.get("relevanceScore"),
            category=data.get("category") or None,
            tags=data.get("tags", []),
        )

    def __str__(self) -> str:
        status = "TECH" if self.is_tech_news else "OTHER"
        origin = "fallback" if self.fallback else "llm"
        return f"Enrichment({status}, {self.confidence:.2f}, {origin})"
