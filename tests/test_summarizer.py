import pytest
from pydantic_ai.messages import ModelMessage
from pydantic_ai.models.function import AgentInfo, FunctionModel
from pydantic_ai.models import test as canned

from agents.summarizer import SummarizerAgent, build_user_message
from config import Config
from digest import DigestBuilder


@pytest.fixture
def digest(make_item, now):
    items = [
        make_item("AI 芯片突破", category="科技"),
        make_item("股票市场今日大幅上涨", category="财经"),
    ]
    return DigestBuilder().build(items, now=now)


def test_user_message_contains_stats(digest):
    message = build_user_message(digest)
    assert "新闻总数：2" in message
    assert "科技(1)" in message
    assert f"基础摘要：{digest.summary}" in message


@pytest.mark.asyncio
async def test_polish_returns_model_text(digest):
    summarizer = SummarizerAgent(Config(), model=canned.TestModel(custom_output_text="今日科技新闻亮点纷呈。"))
    assert await summarizer.polish(digest) == "今日科技新闻亮点纷呈。"


@pytest.mark.asyncio
async def test_polish_falls_back_on_error(digest):
    def explode(messages: list[ModelMessage], info: AgentInfo):
        raise RuntimeError("model unavailable")

    summarizer = SummarizerAgent(Config(), model=FunctionModel(explode))
    assert await summarizer.polish(digest) == digest.summary


@pytest.mark.asyncio
async def test_polish_skips_empty_digest(now):
    empty = DigestBuilder().build([], now=now)
    summarizer = SummarizerAgent(Config(), model=canned.TestModel(custom_output_text="不应使用"))
    assert await summarizer.polish(empty) == "暂无新闻数据"
