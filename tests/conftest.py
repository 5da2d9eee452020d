"""Shared fixtures: item factory, fake sleep and a local aggregation server."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from models.news import NewsItem

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


class RecordingSleep:
    """Stands in for asyncio.sleep; records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def fake_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_item():
    counter = {"n": 0}

    def factory(title: str = "默认标题新闻内容", **kwargs) -> NewsItem:
        counter["n"] += 1
        defaults = {
            "id": f"item-{counter['n']}",
            "title": title,
            "url": f"https://example.com/{counter['n']}",
            "source": "IT之家",
            "score": 60,
        }
        defaults.update(kwargs)
        return NewsItem(**defaults)

    return factory


@pytest.fixture
def serve():
    """Run an aiohttp app with the given route handlers on a free port.

    Usage:
        async with serve({"/api/s": handler}) as base_url: ...
    """

    @asynccontextmanager
    async def _serve(routes: dict, method: str = "GET"):
        app = web.Application()
        for path, handler in routes.items():
            app.router.add_route(method, path, handler)
        server = TestServer(app)
        await server.start_server()
        try:
            yield f"http://{server.host}:{server.port}"
        finally:
            await server.close()

    return _serve
