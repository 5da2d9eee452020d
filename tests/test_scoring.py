from datetime import timedelta

import pytest

from models.enrichment import EnrichmentResult
from scoring import (
    TECH_CATEGORY,
    apply_enrichment,
    base_score,
    detect_category,
    extract_tags,
    recency_bonus,
    score_item,
    sort_key,
)


@pytest.mark.parametrize(
    "title, category",
    [
        ("OpenAI 发布新模型", TECH_CATEGORY),
        ("openai 发布新模型", TECH_CATEGORY),
        ("股票市场今日大幅上涨", "财经"),
        ("教育部发布新规定", "社会"),
        ("俄罗斯总统发表讲话", "国际"),
        ("电影票房创新高", "娱乐"),
        ("今日天气晴朗", "其他"),
    ],
)
def test_detect_category(title, category):
    assert detect_category(title) == category


def test_tech_wins_over_table_order():
    # Contains both a finance keyword and a tech keyword
    assert detect_category("芯片股票全线上涨") == TECH_CATEGORY


def test_extract_tags_case_sensitive():
    assert extract_tags("ai 区块链") == ["区块链"]


@pytest.mark.parametrize(
    "age, bonus",
    [
        (timedelta(minutes=30), 20),
        (timedelta(hours=3), 10),
        (timedelta(hours=12), 5),
        (timedelta(days=2), 0),
    ],
)
def test_recency_bonus(now, age, bonus):
    assert recency_bonus(now - age, now) == bonus


def test_recency_bonus_unknown_time(now):
    assert recency_bonus(None, now) == 0


def test_base_score_bounds(now):
    assert base_score("", "", None, now) == 50
    assert base_score("十一个字的新闻标题内容", "x" * 21, now, now) == 85


class TestScoreItem:
    def test_rule_only(self, make_item):
        item = make_item("AI 芯片突破", category=TECH_CATEGORY, score=60)
        result = score_item(item)
        # 60 + 30 tech + 2 keyword hits * 5
        assert result.rank_score == 100
        assert result.category == TECH_CATEGORY

    def test_enrichment_blend_not_clamped(self, make_item):
        item = make_item("AI 芯片突破", category=TECH_CATEGORY, score=60)
        enrichment = EnrichmentResult(relevance_score=80, category=TECH_CATEGORY, tags=["AI", "GPU"])
        result = score_item(item, enrichment)
        # 100 + 80 * 0.3 + 2 tags * 2
        assert result.rank_score == pytest.approx(128)
        assert result.tags == ["AI", "GPU"]

    def test_enrichment_category_triggers_tech_boost(self, make_item):
        item = make_item("股票市场今日大幅上涨", category="财经", score=50)
        result = score_item(item, EnrichmentResult(category=TECH_CATEGORY))
        assert result.rank_score == 80
        assert result.category == TECH_CATEGORY

    def test_item_not_modified(self, make_item):
        item = make_item("AI 芯片突破", category=TECH_CATEGORY, score=60)
        score_item(item, EnrichmentResult(relevance_score=100, tags=["x"]))
        assert item.score == 60
        assert item.tags == []


def test_sort_key_breaks_ties_by_recency(make_item, now):
    older = make_item("今日天气晴朗甲", score=50, publish_time=now - timedelta(hours=2))
    newer = make_item("今日天气晴朗乙", score=50, publish_time=now)
    assert sorted([older, newer], key=sort_key) == [newer, older]


def test_apply_enrichment_keeps_stored_score(make_item):
    item = make_item("股票市场今日大幅上涨", category="财经", score=55)
    enriched = apply_enrichment(item, EnrichmentResult(relevance_score=90, category=TECH_CATEGORY, tags=["量化"]))
    assert enriched.score == 55
    assert enriched.category == TECH_CATEGORY
    assert enriched.tags == ["量化"]
    assert apply_enrichment(item, None) is item
