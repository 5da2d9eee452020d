"""Summarizer agent that polishes the rule-based digest summary."""

import logging
from dataclasses import dataclass

from openai import AsyncOpenAI
from pydantic_ai import Agent, RunContext, UsageLimits
from pydantic_ai.models.openai import OpenAIModel
from pydantic_ai.providers.openai import OpenAIProvider

from config import Config
from models.news import NewsDigest

logger = logging.getLogger(__name__)


SUMMARIZER_PROMPTS = {
    "zh": """你是一个专业的新闻编辑，擅长生成简洁有吸引力的新闻摘要。

## 要求
1. 基于给定的统计数据和基础摘要改写，不要编造新闻或数字。
2. 重点突出科技类新闻。
3. 只输出摘要正文，不超过200字，不要使用标题或列表。""",
    "en": """You are a professional news editor who writes concise, engaging news summaries.

## Requirements
1. Rewrite from the given statistics and base summary; do not invent stories or numbers.
2. Highlight technology news.
3. Output only the summary text, under 120 words, with no headings or lists.""",
}


@dataclass
class SummarizerContext:
    """Runtime context passed to the summarizer agent.

    Attributes:
        language: Output language ('zh' or 'en')
    """

    language: str = "zh"


def _create_model(config: Config, client: AsyncOpenAI | None = None) -> OpenAIModel:
    """Wrap the OpenAI-compatible endpoint in a PydanticAI model."""
    client = client or AsyncOpenAI(
        base_url=config.llm_base_url,
        api_key=config.llm_api_key,
        timeout=config.request_timeout,
    )
    return OpenAIModel(
        model_name=config.llm_model,
        provider=OpenAIProvider(openai_client=client),
    )


def _create_agent(model) -> Agent[SummarizerContext, str]:
    """Create the underlying PydanticAI agent for summary polish."""
    agent = Agent(
        model,
        output_type=str,
        system_prompt=SUMMARIZER_PROMPTS["zh"],  # Default fallback
        retries=1,
    )

    @agent.system_prompt
    def dynamic_prompt(ctx: RunContext[SummarizerContext]) -> str:
        return SUMMARIZER_PROMPTS.get(ctx.deps.language, SUMMARIZER_PROMPTS["zh"])

    return agent


def build_user_message(digest: NewsDigest) -> str:
    """Build the polish request from digest statistics and top titles."""
    categories = "、".join(f"{name}({count})" for name, count in digest.categories.items())
    headlines = "、".join(item.title for item in digest.top_news[:3])
    return "\n".join([
        f"新闻总数：{digest.total_count}",
        f"分类统计：{categories}",
        f"热门新闻标题：{headlines}",
        "",
        f"基础摘要：{digest.summary}",
        "",
        "请生成一个更加生动、有吸引力的新闻摘要，重点突出科技类新闻。",
    ])


class SummarizerAgent:
    """Rewrites the digest summary with a chat model.

    The digest itself is never mutated; ``polish`` returns new summary
    text and falls back to the base summary on any failure.

    Example:
        >>> summarizer = SummarizerAgent(config)
        >>> text = await summarizer.polish(digest)
    """

    def __init__(self, config: Config, model=None):
        """Initialize the summarizer agent.

        Args:
            config: Application configuration with LLM and language settings
            model: Optional PydanticAI model (e.g. a test model) to use instead
        """
        self.config = config
        self._agent = _create_agent(model or _create_model(config))
        self._context = SummarizerContext(language=config.language)

    async def polish(self, digest: NewsDigest) -> str:
        """Return a polished summary for the digest.

        Args:
            digest: Digest carrying the rule-based base summary

        Returns:
            Polished text, or ``digest.summary`` when the model fails or
            returns nothing
        """
        if not digest.top_news:
            return digest.summary
        try:
            result = await self._agent.run(
                build_user_message(digest),
                deps=self._context,
                usage_limits=UsageLimits(request_limit=2),
            )
        except Exception as e:
            logger.error("Summary polish failed | error=%s", e, exc_info=True)
            return digest.summary

        text = (result.output or "").strip()
        if not text:
            logger.warning("Summary polish returned empty text; keeping base summary")
            return digest.summary
        usage = result.usage()
        logger.info(
            "Summary polished | chars=%d input_tokens=%d output_tokens=%d",
            len(text), usage.request_tokens or 0, usage.response_tokens or 0,
        )
        return text
