"""Enrichment agent for tech-relevance analysis of news items.

This module implements the EnrichmentAgent, which asks a chat-completion
endpoint whether a news item is technology news and turns the answer into
an EnrichmentResult used to boost ranking.

Design Philosophy:
    - Best-effort: enrichment never decides whether an item survives
    - Fail-safe: any endpoint error falls back to local keyword matching,
      which yields the same result shape
    - Bounded concurrency: items are enriched in fixed-size batches; items
      in a batch run concurrently, batches run one after another

The raw model reply is free text; the first ``{...}`` block in it is
parsed as the JSON answer.
"""

import asyncio
import json
import logging
import re
from datetime import datetime
from typing import Sequence

from openai import AsyncOpenAI

from config import Config
from models.enrichment import EnrichmentResult
from models.news import NewsItem
from scoring import TECH_CATEGORY, clamp_score, recency_bonus

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10

SYSTEM_PROMPT = "你是一个专业的新闻分类专家，擅长识别科技类新闻。请严格按照JSON格式回复，不要添加任何其他内容。"

USER_PROMPT = """请分析以下新闻是否属于科技类新闻。科技类新闻包括但不限于：人工智能、机器学习、软件开发、硬件技术、互联网、移动应用、区块链、云计算、大数据、物联网、自动驾驶、新能源技术、生物技术、量子计算、网络安全、科技公司动态等。

新闻内容：
{content}

请以JSON格式回复，包含以下字段：
{{
  "isTechNews": boolean, // 是否为科技类新闻
  "confidence": number, // 置信度(0-1)
  "techKeywords": string[], // 识别到的科技关键词
  "reasoning": string // 判断理由
}}"""

# Local classifier vocabulary (case-insensitive substring match)
FALLBACK_TECH_KEYWORDS: tuple[str, ...] = (
    "AI", "人工智能", "机器学习", "深度学习", "神经网络",
    "科技", "技术", "互联网", "软件", "硬件", "芯片", "5G", "6G",
    "区块链", "ChatGPT", "GPT", "OpenAI", "算法",
    "元宇宙", "VR", "AR", "MR", "虚拟现实", "增强现实",
    "云计算", "大数据", "物联网", "IoT", "边缘计算",
    "自动驾驶", "无人驾驶", "智能汽车", "新能源", "电动车",
    "量子计算", "量子", "生物技术", "基因", "DNA",
    "苹果", "iPhone", "iPad", "华为", "小米", "腾讯", "阿里巴巴",
    "字节跳动", "百度", "微软", "谷歌", "Meta", "英伟达", "NVIDIA",
    "半导体", "台积电", "AMD", "英特尔", "编程", "开发", "代码",
    "GitHub", "开源", "Linux", "网络安全", "黑客", "数据泄露",
)

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


class EnrichmentError(Exception):
    """The enrichment endpoint returned no usable answer."""


def fallback_analysis(title: str, description: str = "") -> EnrichmentResult:
    """Classify by keyword matching without any network access.

    Confidence is ``min(0.8, matches * 0.2)``.
    """
    content = f"{title} {description or ''}".lower()
    found = [keyword for keyword in FALLBACK_TECH_KEYWORDS if keyword.lower() in content]
    is_tech = bool(found)
    return EnrichmentResult(
        is_tech_news=is_tech,
        confidence=min(0.8, len(found) * 0.2),
        tech_keywords=found,
        reasoning=f"关键词匹配: {', '.join(found)}" if is_tech else "未找到科技相关关键词",
        fallback=True,
    )


def parse_reply(content: str | None) -> EnrichmentResult:
    """Extract the first JSON object from a model reply.

    Raises:
        EnrichmentError: If the reply is empty or holds no valid JSON object
    """
    if not content:
        raise EnrichmentError("LLM返回结果为空")
    match = _JSON_BLOCK.search(content)
    if not match:
        raise EnrichmentError("LLM返回格式不正确")
    try:
        data = json.loads(match.group(0))
        return EnrichmentResult.from_llm_payload(data)
    except ValueError as e:
        raise EnrichmentError(f"Unparsable LLM reply: {e}") from e


def relevance_score(item: NewsItem, analysis: EnrichmentResult, now: datetime | None = None) -> int:
    """0-100 relevance of an item given its tech analysis."""
    score = 50.0
    if analysis.is_tech_news:
        score += analysis.confidence * 30
    if 10 < len(item.title) < 100:
        score += 10
    if len(item.description) > 20:
        score += 5
    score += recency_bonus(item.publish_time, now)
    return clamp_score(score)


class EnrichmentAgent:
    """Scores news items for tech relevance.

    With the LLM disabled (or no client configured) every call uses the
    local keyword classifier, so enrichment still works offline.

    Example:
        >>> agent = EnrichmentAgent(config)
        >>> results = await agent.enhance_batch(items)
        >>> results[item.id].is_tech_news
    """

    def __init__(self, config: Config, client: AsyncOpenAI | None = None):
        """Initialize the enrichment agent.

        Args:
            config: Application configuration with LLM settings
            client: Optional pre-built OpenAI-compatible client
        """
        self.config = config
        self.model = config.llm_model
        if client is None and config.llm_enabled and config.llm_api_key:
            client = AsyncOpenAI(
                base_url=config.llm_base_url,
                api_key=config.llm_api_key,
                timeout=config.request_timeout,
                max_retries=0,
            )
        self._client = client

    @property
    def uses_llm(self) -> bool:
        return self._client is not None

    async def _complete(self, title: str, description: str) -> EnrichmentResult:
        content = f"标题: {title}" + (f"\n描述: {description}" if description else "")
        resp = await self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": USER_PROMPT.format(content=content)},
            ],
            temperature=0.1,
            max_tokens=500,
        )
        reply = resp.choices[0].message.content if resp.choices else None
        return parse_reply(reply)

    async def analyze_tech_news(self, title: str, description: str = "") -> EnrichmentResult:
        """Decide whether a title/description is tech news.

        Any endpoint failure returns ``fallback_analysis`` for the same
        input instead of raising.
        """
        if not self.uses_llm:
            return fallback_analysis(title, description)
        try:
            result = await self._complete(title, description)
            logger.debug("Enriched: %s... -> tech=%s", title[:50], result.is_tech_news)
            return result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("LLM analysis failed | title=%s error=%s", title[:50], e)
            return fallback_analysis(title, description)

    async def analyze_news(self, item: NewsItem, now: datetime | None = None) -> EnrichmentResult:
        """Full analysis: tech decision plus relevance, category and tags."""
        analysis = await self.analyze_tech_news(item.title, item.description)
        return analysis.model_copy(update={
            "relevance_score": float(relevance_score(item, analysis, now)),
            "category": TECH_CATEGORY if analysis.is_tech_news else item.category,
            "tags": list(analysis.tech_keywords),
        })

    async def enhance_batch(
        self,
        items: Sequence[NewsItem],
        batch_size: int | None = None,
    ) -> dict[str, EnrichmentResult]:
        """Enrich items in sequential batches of concurrent calls.

        An item whose enrichment raises is left out of the result and
        passes through the pipeline unenriched; its batch continues.

        Args:
            items: Items to enrich
            batch_size: Items per batch (defaults to the configured size)

        Returns:
            Dict mapping item id to its EnrichmentResult
        """
        size = max(1, batch_size or self.config.enrichment_batch_size or DEFAULT_BATCH_SIZE)
        results: dict[str, EnrichmentResult] = {}
        failed = 0

        for start in range(0, len(items), size):
            batch = items[start:start + size]
            outcomes = await asyncio.gather(
                *(self.analyze_news(item) for item in batch),
                return_exceptions=True,
            )
            for item, outcome in zip(batch, outcomes):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                if isinstance(outcome, BaseException):
                    failed += 1
                    logger.warning("Enrichment failed, item kept unenriched | id=%s error=%s", item.id, outcome)
                    continue
                results[item.id] = outcome

        tech = sum(1 for r in results.values() if r.is_tech_news)
        logger.info(
            "Enrichment complete | items=%d enriched=%d failed=%d tech=%d llm=%s",
            len(items), len(results), failed, tech, self.uses_llm,
        )
        return results
