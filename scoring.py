"""Rule-based categorization and scoring for news items.

Two scoring stages exist and are kept apart:

Provisional score (``base_score``):
    Assigned at normalization time. Starts at 50 and adds bonuses for a
    reasonable title length, a non-trivial description and recency. The
    result is clamped to [0, 100] and stored on ``NewsItem.score``.

Ranking score (``score_item``):
    Used only to order items in the digest. Adds a flat tech-category
    boost, per-keyword tech boosts and, when available, the enrichment
    signal. It is clamped at 0 but not at 100, and is never written back
    to the item.

Category detection:
    ``CATEGORY_TABLE`` is an ordered list of (category, keywords). The
    tech category is always checked first and short-circuits the rest,
    whatever its position in the table. Tech matching is
    case-insensitive; the remaining categories match case-sensitively
    against the raw title.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from models.enrichment import EnrichmentResult
from models.news import DEFAULT_CATEGORY, NewsItem

logger = logging.getLogger(__name__)

TECH_CATEGORY = "科技"

TECH_CATEGORY_KEYWORDS: tuple[str, ...] = (
    "AI", "人工智能", "科技", "技术", "互联网", "软件", "硬件", "芯片", "5G", "6G", "区块链",
    "ChatGPT", "GPT", "OpenAI", "机器学习", "深度学习", "神经网络", "算法",
    "元宇宙", "VR", "AR", "MR", "虚拟现实", "增强现实",
    "云计算", "大数据", "物联网", "IoT", "边缘计算",
    "自动驾驶", "无人驾驶", "智能汽车", "新能源", "电动车", "特斯拉",
    "量子计算", "量子", "生物技术", "基因", "DNA",
    "苹果", "iPhone", "iPad", "Mac", "华为", "小米", "OPPO", "vivo",
    "腾讯", "阿里巴巴", "字节跳动", "百度", "微软", "谷歌", "Meta",
    "半导体", "台积电", "英伟达", "NVIDIA", "AMD", "英特尔",
    "编程", "开发", "代码", "GitHub", "开源", "Linux",
    "网络安全", "黑客", "数据泄露", "加密", "隐私",
    "直播", "短视频", "抖音", "TikTok", "快手", "B站",
)

CATEGORY_TABLE: tuple[tuple[str, tuple[str, ...]], ...] = (
    (TECH_CATEGORY, TECH_CATEGORY_KEYWORDS),
    ("财经", ("股票", "金融", "经济", "投资", "银行", "基金", "债券", "货币", "财经", "市场")),
    ("社会", ("社会", "民生", "教育", "医疗", "环境", "交通", "住房", "就业")),
    ("国际", ("国际", "全球", "美国", "欧洲", "日本", "韩国", "俄罗斯", "印度")),
    ("娱乐", ("娱乐", "明星", "电影", "音乐", "游戏", "体育", "足球", "篮球")),
)

# Tags are the subset of these found verbatim in the title
TAG_KEYWORDS: tuple[str, ...] = ("AI", "人工智能", "区块链", "5G", "新能源", "芯片", "互联网", "科技")

# Vocabulary for the ranking boost (+5 per case-insensitive hit)
RANKING_TECH_KEYWORDS: tuple[str, ...] = (
    "AI", "人工智能", "科技", "技术", "互联网", "软件", "硬件", "芯片", "5G", "区块链",
    "ChatGPT", "GPT", "元宇宙", "VR", "AR",
)

BASE_SCORE = 50
TECH_CATEGORY_BOOST = 30
TECH_KEYWORD_BOOST = 5
ENRICHMENT_TAG_BOOST = 2
RELEVANCE_WEIGHT = 0.3


def clamp_score(value: float, low: int = 0, high: int = 100) -> int:
    """Round and clamp a score into [low, high]."""
    return int(max(low, min(high, round(value))))


def detect_category(title: str) -> str:
    """Return the provisional category for a title.

    Args:
        title: Raw item title

    Returns:
        Category label, or the default category when nothing matches
    """
    lowered = title.lower()
    # Tech priority override: checked before the table order applies
    if any(keyword.lower() in lowered for keyword in TECH_CATEGORY_KEYWORDS):
        return TECH_CATEGORY

    for category, keywords in CATEGORY_TABLE:
        if category == TECH_CATEGORY:
            continue
        if any(keyword in title for keyword in keywords):
            return category
    return DEFAULT_CATEGORY


def extract_tags(title: str) -> list[str]:
    """Return the tag keywords that appear verbatim in the title."""
    return [tag for tag in TAG_KEYWORDS if tag in title]


def recency_bonus(publish_time: datetime | None, now: datetime | None = None) -> int:
    """Score bonus for fresh items: <1h +20, <6h +10, <24h +5.

    Unknown publication time earns no bonus.
    """
    if publish_time is None:
        return 0
    now = now or datetime.now(timezone.utc)
    hours = (now - publish_time).total_seconds() / 3600
    if hours < 1:
        return 20
    if hours < 6:
        return 10
    if hours < 24:
        return 5
    return 0


def base_score(
    title: str,
    description: str,
    publish_time: datetime | None,
    now: datetime | None = None,
) -> int:
    """Compute the provisional 0-100 score assigned at normalization."""
    score = BASE_SCORE
    if 10 < len(title) < 100:
        score += 10
    if len(description) > 20:
        score += 5
    score += recency_bonus(publish_time, now)
    return clamp_score(score)


def tech_keyword_hits(title: str, vocabulary: tuple[str, ...] = RANKING_TECH_KEYWORDS) -> list[str]:
    """Return vocabulary terms found case-insensitively in the title."""
    lowered = title.lower()
    return [keyword for keyword in vocabulary if keyword.lower() in lowered]


@dataclass(frozen=True)
class ScoreResult:
    """Outcome of ranking one item.

    Attributes:
        rank_score: Boosted value used for sort order only
        category: Final category (enrichment may override)
        tags: Item tags followed by enrichment tags, deduplicated
    """

    rank_score: float
    category: str
    tags: list[str] = field(default_factory=list)


def score_item(item: NewsItem, enrichment: EnrichmentResult | None = None) -> ScoreResult:
    """Compute the ranking score, category and tags for an item.

    Args:
        item: Normalized item carrying its provisional score
        enrichment: Optional external relevance signal

    Returns:
        ScoreResult; ``item`` itself is not modified
    """
    score = float(item.score)
    category = item.category
    tags = list(item.tags)

    enriched_category = enrichment.category if enrichment else None
    if category == TECH_CATEGORY or enriched_category == TECH_CATEGORY:
        score += TECH_CATEGORY_BOOST

    score += len(tech_keyword_hits(item.title)) * TECH_KEYWORD_BOOST

    if enrichment is not None:
        if enrichment.relevance_score:
            score += enrichment.relevance_score * RELEVANCE_WEIGHT
        score += len(enrichment.tags) * ENRICHMENT_TAG_BOOST
        if enriched_category:
            category = enriched_category
        tags.extend(enrichment.tags)

    return ScoreResult(
        rank_score=max(0.0, score),
        category=category,
        tags=list(dict.fromkeys(tags)),
    )


def publish_timestamp(item: NewsItem) -> float:
    """Epoch seconds of publication; unknown sorts as epoch 0."""
    if item.publish_time is None:
        return 0.0
    return item.publish_time.timestamp()


def sort_key(item: NewsItem, enrichment: EnrichmentResult | None = None) -> tuple[float, float]:
    """Descending-sort key: ranking score, then most recent first."""
    result = score_item(item, enrichment)
    return (-result.rank_score, -publish_timestamp(item))


def apply_enrichment(item: NewsItem, enrichment: EnrichmentResult | None) -> NewsItem:
    """Return a copy of ``item`` with enrichment category and tags merged.

    The stored ``score`` keeps its 0-100 rule value; the boosted ranking
    score stays inside ``score_item``.
    """
    if enrichment is None:
        return item
    result = score_item(item, enrichment)
    return item.model_copy(update={"category": result.category, "tags": result.tags})
