import base64
import hashlib
import hmac
import json

import pytest
from aiohttp import web

from digest import DigestBuilder
from notifications import (
    append_digest_file,
    build_card_message,
    build_text_message,
    save_digest_report,
    send_digest,
    send_text,
    sign_webhook,
    truncate_text,
)


@pytest.fixture
def digest(make_item, now):
    items = [make_item(f"人工智能新闻标题第{i}条", category="科技", description="描述内容") for i in range(10)]
    return DigestBuilder().build(items, now=now)


def test_sign_webhook():
    expected = base64.b64encode(
        hmac.new(b"1700000000\nsecret", b"", hashlib.sha256).digest()
    ).decode()
    assert sign_webhook("1700000000", "secret") == expected


def test_truncate_text():
    assert truncate_text("abc", 5) == "abc"
    assert truncate_text("abcdefgh", 6) == "abc..."


def test_card_message_shape(digest):
    message = build_card_message(digest)
    assert message["msg_type"] == "interactive"
    content = message["card"]["body"]["elements"][0]["content"]
    assert "**8. [" in content
    assert "**9. [" not in content
    assert f"总计: **{digest.total_count}**" in content
    assert digest.summary in content


def test_text_message_shape(digest):
    message = build_text_message(digest)
    assert message["msg_type"] == "text"
    text = message["content"]["text"]
    assert text.startswith("📰 今日新闻速递")
    assert "10. " in text
    assert "🔗 https://example.com/" in text


def _webhook(received: list[dict], responder):
    async def handler(request):
        payload = await request.json()
        received.append(payload)
        return responder(payload, len(received))

    return handler


@pytest.mark.asyncio
async def test_send_digest_card_accepted(serve, fake_sleep, digest):
    received: list[dict] = []
    handler = _webhook(received, lambda p, n: web.json_response({"StatusCode": 0, "StatusMessage": "success"}))

    async with serve({"/hook": handler}, method="POST") as base_url:
        ok = await send_digest(digest, f"{base_url}/hook", secret="s3cret", sleep=fake_sleep)

    assert ok
    assert len(received) == 1
    assert received[0]["msg_type"] == "interactive"
    assert received[0]["sign"] == sign_webhook(received[0]["timestamp"], "s3cret")


@pytest.mark.asyncio
async def test_send_digest_falls_back_to_text(serve, fake_sleep, digest):
    received: list[dict] = []

    def responder(payload, n):
        if payload["msg_type"] == "interactive":
            return web.json_response({"code": 19002, "msg": "card not supported"})
        return web.json_response({"code": 0})

    async with serve({"/hook": _webhook(received, responder)}, method="POST") as base_url:
        ok = await send_digest(digest, f"{base_url}/hook", sleep=fake_sleep)

    assert ok
    assert [p["msg_type"] for p in received] == ["interactive"] * 3 + ["text"]
    assert "sign" not in received[0]
    assert fake_sleep.delays == [2.0, 4.0]


@pytest.mark.asyncio
async def test_send_digest_gives_up(serve, fake_sleep, digest):
    received: list[dict] = []
    handler = _webhook(received, lambda p, n: web.Response(status=500))

    async with serve({"/hook": handler}, method="POST") as base_url:
        ok = await send_digest(digest, f"{base_url}/hook", sleep=fake_sleep)

    assert not ok
    assert len(received) == 6
    assert fake_sleep.delays == [2.0, 4.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_send_digest_without_url(digest):
    assert not await send_digest(digest, "")


@pytest.mark.asyncio
async def test_non_json_success_body_is_a_failed_attempt(serve, fake_sleep):
    received: list[dict] = []
    handler = _webhook(received, lambda p, n: web.Response(text="ok"))

    async with serve({"/hook": handler}, method="POST") as base_url:
        ok = await send_text("hello", f"{base_url}/hook", sleep=fake_sleep)

    assert not ok
    assert len(received) == 3
    assert fake_sleep.delays == [2.0, 4.0]


@pytest.mark.asyncio
async def test_send_text_signed(serve, fake_sleep):
    received: list[dict] = []
    handler = _webhook(received, lambda p, n: web.json_response({"code": 0, "msg": "success"}))

    async with serve({"/hook": handler}, method="POST") as base_url:
        ok = await send_text("hello", f"{base_url}/hook", secret="secret", sleep=fake_sleep)

    assert ok
    assert received[0]["content"] == {"text": "hello"}
    assert received[0]["sign"] == sign_webhook(received[0]["timestamp"], "secret")
    assert fake_sleep.delays == []


@pytest.mark.asyncio
async def test_save_digest_report(tmp_path, digest):
    path = await save_digest_report(digest, tmp_path / "reports")
    assert path is not None
    text = path.read_text(encoding="utf-8")
    assert text.startswith("# News Digest")
    assert "## Top News" in text


@pytest.mark.asyncio
async def test_append_digest_file(tmp_path, digest):
    target = tmp_path / "out" / "digests.jsonl"
    assert await append_digest_file(digest, str(target))
    assert await append_digest_file(digest, str(target))

    lines = target.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    record = json.loads(lines[0])
    assert record["totalCount"] == 10
    assert len(record["topNews"]) == 10
    assert "generatedAt" in record
