"""Duplicate removal for combined news lists.

Two passes are available and both preserve the relative order of first
occurrences:

Exact pass (``dedupe_exact``):
    Key is ``lowercase(title) + "-" + url``; the first item per key wins.
    The collector runs this over the combined feed.

Fuzzy pass (``dedupe_fuzzy``):
    An item is dropped when an already-accepted item has the same non-empty
    url or a title whose Jaccard similarity over lowercased whitespace
    tokens reaches the threshold. The aggregator re-runs this after quality
    filtering, since upstream feeds can emit pairs differing only by
    punctuation or a trailing word.
"""

import logging
from typing import Sequence

from models.news import NewsItem

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.8


def title_tokens(text: str) -> set[str]:
    """Lowercased whitespace-separated token set."""
    return set(text.lower().split())


def jaccard_similarity(text1: str, text2: str) -> float:
    """Jaccard index of the token sets of two strings.

    Two token-less strings have no defined ratio and score 0.0, so blank
    titles are never considered duplicates of each other.
    """
    tokens1 = title_tokens(text1)
    tokens2 = title_tokens(text2)
    union = tokens1 | tokens2
    if not union:
        return 0.0
    return len(tokens1 & tokens2) / len(union)


def exact_key(item: NewsItem) -> str:
    return f"{item.title.lower()}-{item.url}"


def dedupe_exact(items: Sequence[NewsItem]) -> list[NewsItem]:
    """Drop items whose (title, url) key was already seen."""
    seen: set[str] = set()
    result = []
    for item in items:
        key = exact_key(item)
        if key in seen:
            continue
        seen.add(key)
        result.append(item)
    return result


def _is_duplicate(item: NewsItem, accepted: list[NewsItem], threshold: float) -> bool:
    for existing in accepted:
        if item.url and item.url == existing.url:
            return True
        if jaccard_similarity(item.title, existing.title) >= threshold:
            return True
    return False


def dedupe_fuzzy(
    items: Sequence[NewsItem],
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> list[NewsItem]:
    """Drop items matching an accepted item by url or title similarity.

    Args:
        items: Items in priority order (earlier wins)
        similarity_threshold: Minimum Jaccard similarity to treat titles
            as the same story

    Returns:
        Accepted items in original order
    """
    accepted: list[NewsItem] = []
    for item in items:
        if not _is_duplicate(item, accepted, similarity_threshold):
            accepted.append(item)

    logger.debug("Fuzzy dedup | before=%d after=%d", len(items), len(accepted))
    return accepted


def dedupe(
    items: Sequence[NewsItem],
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> list[NewsItem]:
    """Run the exact pass followed by the fuzzy pass."""
    return dedupe_fuzzy(dedupe_exact(items), similarity_threshold)
