"""Quality filtering applied before the aggregator's fuzzy dedup."""

import logging
import re
from typing import Sequence
from urllib.parse import urlparse

from models.news import NewsItem

logger = logging.getLogger(__name__)

DEFAULT_MIN_SCORE = 30
MIN_TITLE_LENGTH = 5

LOW_QUALITY_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^\s*$"),              # blank
    re.compile(r"^\d+$"),              # digits only
    re.compile(r"测试|test", re.IGNORECASE),
    re.compile(r"广告|推广", re.IGNORECASE),
    re.compile(r"^.{1,3}$"),           # too short
)


def is_valid_url(url: str) -> bool:
    """True for absolute http(s) URLs with a host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_low_quality_title(title: str) -> bool:
    return any(pattern.search(title) for pattern in LOW_QUALITY_PATTERNS)


def filter_quality(items: Sequence[NewsItem], min_score: int = DEFAULT_MIN_SCORE) -> list[NewsItem]:
    """Keep items with a usable title, a valid URL and a minimum score.

    Args:
        items: Candidate items
        min_score: Minimum provisional score to keep an item

    Returns:
        Retained items in input order
    """
    kept = [
        item for item in items
        if len(item.title) >= MIN_TITLE_LENGTH
        and is_valid_url(item.url)
        and item.score >= min_score
        and not is_low_quality_title(item.title)
    ]
    logger.info("Quality filter | before=%d after=%d", len(items), len(kept))
    return kept
