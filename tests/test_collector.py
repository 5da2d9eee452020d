import pytest
from aiohttp import web

from collector import NewsCollector
from config import Config
from models.news import NewsSource

PAYLOADS = {
    "alpha": [
        {"title": "人工智能大会在上海开幕", "url": "https://a.example/1"},
        {"title": "股票市场今日大幅上涨", "url": "https://a.example/2"},
        {"title": "电影票房创下新纪录", "url": "https://shared.example/x"},
    ],
    "beta": [
        {"title": "教育改革方案正式公布", "url": "https://b.example/1"},
        {"title": "同一事件的另一种标题", "url": "https://shared.example/x"},
    ],
}


def _config(base_url: str, **kwargs) -> Config:
    defaults = {
        "news_api_base_url": base_url,
        "sources": [
            NewsSource(id="alpha", name="Alpha"),
            NewsSource(id="beta", name="Beta"),
        ],
    }
    defaults.update(kwargs)
    return Config(**defaults)


def _handler(calls: list[str], failing: set[str] = frozenset()):
    async def handler(request):
        source_id = request.query["id"]
        calls.append(source_id)
        if source_id in failing:
            return web.Response(status=503)
        return web.json_response({"status": "success", "items": PAYLOADS.get(source_id, [])})

    return handler


@pytest.mark.asyncio
async def test_shared_url_counted_as_duplicate(serve, fake_sleep):
    calls: list[str] = []
    async with serve({"/api/s": _handler(calls)}) as base_url:
        config = _config(base_url)
        result = await NewsCollector(config, sleep=fake_sleep).collect_all(config.sources)

    assert len(result.news) == 4
    assert result.stats.total_collected == 5
    assert result.stats.duplicates_removed == 1
    assert result.stats.by_source == {"Alpha": 3, "Beta": 2}
    assert sum(result.stats.by_category.values()) == 4
    assert result.errors == {}
    assert [item.url for item in result.news].count("https://shared.example/x") == 1
    # Source order is kept: first alpha items, then beta
    assert result.news[0].source == "Alpha"


@pytest.mark.asyncio
async def test_failing_source_does_not_affect_others(serve, fake_sleep):
    calls: list[str] = []
    async with serve({"/api/s": _handler(calls, failing={"beta"})}) as base_url:
        config = _config(base_url)
        result = await NewsCollector(config, sleep=fake_sleep).collect_all(config.sources)

    assert len(result.news) == 3
    assert result.stats.by_source == {"Alpha": 3, "Beta": 0}
    assert "Beta" in result.errors
    assert "server_error" in result.errors["Beta"]
    assert calls.count("beta") == 3
    assert calls.count("alpha") == 1


@pytest.mark.asyncio
async def test_disabled_sources_are_skipped(serve, fake_sleep):
    calls: list[str] = []
    async with serve({"/api/s": _handler(calls)}) as base_url:
        config = _config(base_url, sources=[
            NewsSource(id="alpha", name="Alpha"),
            NewsSource(id="beta", name="Beta", enabled=False),
        ])
        result = await NewsCollector(config, sleep=fake_sleep).collect_all(config.sources)

    assert calls == ["alpha"]
    assert "Beta" not in result.stats.by_source


@pytest.mark.asyncio
async def test_total_limit_truncates(serve, fake_sleep):
    calls: list[str] = []
    async with serve({"/api/s": _handler(calls)}) as base_url:
        config = _config(base_url, news_total_limit=2)
        result = await NewsCollector(config, sleep=fake_sleep).collect_all(config.sources)

    assert len(result.news) == 2
    assert sum(result.stats.by_category.values()) == 2


@pytest.mark.asyncio
async def test_cache_skips_network_until_cleared(serve, fake_sleep):
    calls: list[str] = []
    async with serve({"/api/s": _handler(calls)}) as base_url:
        config = _config(base_url)
        collector = NewsCollector(config, sleep=fake_sleep)
        first = await collector.collect_all(config.sources)
        second = await collector.collect_all(config.sources)
        assert sorted(calls) == ["alpha", "beta"]
        assert len(second.news) == len(first.news)

        collector.clear_cache()
        await collector.collect_all(config.sources)

    assert sorted(calls) == ["alpha", "alpha", "beta", "beta"]


@pytest.mark.asyncio
async def test_cache_disabled_with_zero_duration(serve, fake_sleep):
    calls: list[str] = []
    async with serve({"/api/s": _handler(calls)}) as base_url:
        config = _config(base_url, cache_duration=0)
        collector = NewsCollector(config, sleep=fake_sleep)
        await collector.collect_all(config.sources)
        await collector.collect_all(config.sources)

    assert len(calls) == 4


@pytest.mark.asyncio
async def test_failures_are_not_cached(serve, fake_sleep):
    calls: list[str] = []
    async with serve({"/api/s": _handler(calls, failing={"beta"})}) as base_url:
        config = _config(base_url, retry_attempts=1)
        collector = NewsCollector(config, sleep=fake_sleep)
        await collector.collect_all(config.sources)
        await collector.collect_all(config.sources)

    assert calls.count("alpha") == 1
    assert calls.count("beta") == 2


@pytest.mark.asyncio
async def test_items_without_url_are_not_duplicates(serve, fake_sleep):
    async def handler(request):
        return web.json_response({"items": [
            {"title": "国产芯片实现重大突破"},
            {"title": "央行宣布下调存款准备金率"},
        ]})

    async with serve({"/api/s": handler}) as base_url:
        config = _config(base_url, sources=[NewsSource(id="bare", name="Bare")])
        result = await NewsCollector(config, sleep=fake_sleep).collect_all(config.sources)

    assert len(result.news) == 2
    assert result.stats.duplicates_removed == 0
