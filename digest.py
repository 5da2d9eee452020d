"""Digest synthesis: ranking, category histogram, hot topics and summary.

``DigestBuilder.build`` is a pure function of its inputs (items, optional
enrichment results keyed by item id, and a reference time): running it
twice on the same arguments produces identical digests.

Summary Composition (in order):
    1. Total count and the top-3 categories with their counts
    2. Tech highlight, if any tech items exist: tech item count and up to
       3 tech keywords found in their titles
    3. Up to 3 hot topics (tags or topic-pattern matches present in at
       least 2 items, most frequent first)
    4. Freshness, if any item was published within the last 6 hours
"""

import logging
import re
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Mapping, Sequence

from models.enrichment import EnrichmentResult
from models.news import DEFAULT_CATEGORY, NewsDigest, NewsItem
from scoring import TECH_CATEGORY, apply_enrichment, sort_key

logger = logging.getLogger(__name__)

TOP_NEWS_LIMIT = 20
HOT_TOPIC_MIN_COUNT = 2
FRESH_WINDOW = timedelta(hours=6)

NO_NEWS_SUMMARY = {
    "zh": "暂无新闻数据",
    "en": "No news available.",
}

SUMMARY_TEMPLATES = {
    "zh": {
        "category": "{category}({count}条)",
        "joiner": "、",
        "overview": "今日共收集到 {total} 条新闻，主要涵盖 {categories} 等领域。",
        "tech": " 🔥 科技前沿：本日重点关注 {count} 条科技资讯",
        "tech_keywords": "，聚焦 {keywords} 等热点",
        "tech_end": "。",
        "hot_topics": " 热门话题包括：{topics}。",
        "fresh": " 其中 {count} 条为6小时内的最新资讯。",
    },
    "en": {
        "category": "{category} ({count})",
        "joiner": ", ",
        "overview": "Collected {total} news items today, mainly covering {categories}.",
        "tech": " 🔥 Tech focus: {count} technology stories",
        "tech_keywords": ", highlighting {keywords}",
        "tech_end": ".",
        "hot_topics": " Trending topics: {topics}.",
        "fresh": " {count} of them were published within the last 6 hours.",
    },
}

# Vocabulary for the tech highlight clause (case-sensitive title match)
SUMMARY_TECH_KEYWORDS: tuple[str, ...] = (
    "AI", "人工智能", "科技", "技术", "互联网", "软件", "硬件", "芯片", "5G", "区块链",
    "ChatGPT", "GPT", "元宇宙", "VR", "AR", "新能源", "电动车", "自动驾驶",
)

TOPIC_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"AI|人工智能"),
    re.compile(r"区块链|比特币|加密货币"),
    re.compile(r"5G|6G"),
    re.compile(r"新能源|电动车|特斯拉"),
    re.compile(r"芯片|半导体"),
    re.compile(r"元宇宙|VR|AR"),
    re.compile(r"ChatGPT|GPT"),
    re.compile(r"苹果|iPhone|iPad"),
    re.compile(r"华为|小米|OPPO|vivo"),
    re.compile(r"腾讯|阿里巴巴|字节跳动|百度"),
)


def categorize(items: Sequence[NewsItem]) -> dict[str, int]:
    """Category histogram ordered by descending count.

    Ties keep the order in which categories first appear in ``items``.
    """
    counts = Counter(item.category or DEFAULT_CATEGORY for item in items)
    return dict(sorted(counts.items(), key=lambda entry: -entry[1]))


def extract_keywords(text: str) -> list[str]:
    """Distinct topic-pattern matches in ``text``, in pattern order."""
    matches: list[str] = []
    for pattern in TOPIC_PATTERNS:
        matches.extend(pattern.findall(text))
    return list(dict.fromkeys(matches))


def extract_hot_topics(items: Sequence[NewsItem], limit: int = 5) -> list[str]:
    """Topics present in at least two items, most frequent first.

    A topic is an item tag or a topic-pattern match in the title; each
    item counts at most once per topic.
    """
    counts: Counter[str] = Counter()
    for item in items:
        topics = list(dict.fromkeys([*item.tags, *extract_keywords(item.title)]))
        counts.update(topics)

    ranked = sorted(counts.items(), key=lambda entry: -entry[1])
    return [topic for topic, count in ranked if count >= HOT_TOPIC_MIN_COUNT][:limit]


def extract_tech_keywords(tech_items: Sequence[NewsItem], limit: int = 5) -> list[str]:
    """Most frequent summary tech keywords across tech item titles."""
    counts: Counter[str] = Counter()
    for item in tech_items:
        counts.update(keyword for keyword in SUMMARY_TECH_KEYWORDS if keyword in item.title)
    ranked = sorted(counts.items(), key=lambda entry: -entry[1])
    return [keyword for keyword, _ in ranked][:limit]


def count_recent(items: Sequence[NewsItem], now: datetime, window: timedelta = FRESH_WINDOW) -> int:
    return sum(
        1 for item in items
        if item.publish_time is not None and now - item.publish_time < window
    )


def compose_summary(
    items: Sequence[NewsItem],
    categories: Mapping[str, int],
    now: datetime,
    language: str = "zh",
) -> str:
    """Compose the digest summary text for ranked items."""
    if not items:
        return NO_NEWS_SUMMARY.get(language, NO_NEWS_SUMMARY["zh"])

    t = SUMMARY_TEMPLATES.get(language, SUMMARY_TEMPLATES["zh"])
    joiner = t["joiner"]

    top_categories = [
        t["category"].format(category=category, count=count)
        for category, count in list(categories.items())[:3]
    ]
    summary = t["overview"].format(total=len(items), categories=joiner.join(top_categories))

    tech_count = categories.get(TECH_CATEGORY, 0)
    if tech_count > 0:
        summary += t["tech"].format(count=tech_count)
        tech_items = [item for item in items if item.category == TECH_CATEGORY]
        keywords = extract_tech_keywords(tech_items)
        if keywords:
            summary += t["tech_keywords"].format(keywords=joiner.join(keywords[:3]))
        summary += t["tech_end"]

    hot_topics = extract_hot_topics(items)
    if hot_topics:
        summary += t["hot_topics"].format(topics=joiner.join(hot_topics[:3]))

    recent = count_recent(items, now)
    if recent > 0:
        summary += t["fresh"].format(count=recent)

    return summary


class DigestBuilder:
    """Builds a NewsDigest from filtered, deduplicated items.

    Example:
        >>> builder = DigestBuilder(language="zh")
        >>> digest = builder.build(items, enrichments)
        >>> digest.total_count, len(digest.top_news)
    """

    def __init__(self, language: str = "zh", top_n: int = TOP_NEWS_LIMIT):
        self.language = language
        self.top_n = min(top_n, TOP_NEWS_LIMIT)

    def rank(
        self,
        items: Sequence[NewsItem],
        enrichments: Mapping[str, EnrichmentResult] | None = None,
    ) -> list[NewsItem]:
        """Sort by ranking score (desc) then recency, merging enrichment.

        The sort is stable, so fully tied items keep their input order.
        """
        enrichments = enrichments or {}
        keyed = [
            (sort_key(item, enrichments.get(item.id)), index, apply_enrichment(item, enrichments.get(item.id)))
            for index, item in enumerate(items)
        ]
        keyed.sort(key=lambda entry: (entry[0], entry[1]))
        return [item for _, _, item in keyed]

    def build(
        self,
        items: Sequence[NewsItem],
        enrichments: Mapping[str, EnrichmentResult] | None = None,
        now: datetime | None = None,
    ) -> NewsDigest:
        """Rank items and produce the digest.

        Args:
            items: Post-filter, post-dedup items
            enrichments: Optional enrichment results keyed by item id
            now: Reference time for freshness and ``generated_at``

        Returns:
            NewsDigest with at most ``top_n`` items in ``top_news``
        """
        now = now or datetime.now(timezone.utc)

        if not items:
            return NewsDigest(
                total_count=0,
                categories={},
                top_news=[],
                summary=NO_NEWS_SUMMARY.get(self.language, NO_NEWS_SUMMARY["zh"]),
                generated_at=now,
            )

        ranked = self.rank(items, enrichments)
        categories = categorize(ranked)
        summary = compose_summary(ranked, categories, now, self.language)

        tech_count = categories.get(TECH_CATEGORY, 0)
        logger.info(
            "Digest built | total=%d top=%d categories=%d tech=%d",
            len(ranked), min(len(ranked), self.top_n), len(categories), tech_count,
        )
        return NewsDigest(
            total_count=len(items),
            categories=categories,
            top_news=ranked[: self.top_n],
            summary=summary,
            generated_at=now,
        )
