"""Digest delivery: webhook messages, markdown reports and a JSONL archive.

This module handles all output for a finished digest:
- Webhook POST to a chat-bot endpoint (interactive card, text fallback)
- Markdown digest saved to disk
- JSONL digest archive

All sinks are async and fail gracefully (errors are logged and reported
as ``False``/``None``; they never affect the run's success).

Webhook Protocol:
    - Payload: ``{"msg_type": "interactive", "card": {...}}`` or
      ``{"msg_type": "text", "content": {"text": ...}}``
    - Signing (when a secret is set): ``timestamp`` (epoch seconds) and
      ``sign`` = base64(HMAC-SHA256(key=timestamp + "\\n" + secret, msg=""))
    - Success: HTTP < 300 and a JSON body with ``StatusCode == 0`` or
      ``code == 0``
    - Retry: 3 attempts per message with 2s, 4s linear back-off
"""

import asyncio
import base64
import hashlib
import hmac
import json
import logging
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable

import aiohttp

from config import Config
from models.news import NewsDigest, NewsItem

logger = logging.getLogger(__name__)

CARD_NEWS_LIMIT = 8
TEXT_NEWS_LIMIT = 20
DELIVERY_ATTEMPTS = 3
DELIVERY_DELAY = 2.0
DELIVERY_TIMEOUT = 10
UNCATEGORIZED = "未分类"
TITLE = "📰 今日新闻速递"

BEIJING = timezone(timedelta(hours=8))


class DeliveryError(Exception):
    """The webhook rejected or failed to accept a message."""


def truncate_text(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def format_time(moment: datetime | None = None) -> str:
    """Format a time in Beijing time (UTC+8)."""
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(BEIJING).strftime("%Y-%m-%d %H:%M:%S") + " (北京时间)"


def _category_stats(digest: NewsDigest) -> str:
    return ", ".join(f"{category}({count})" for category, count in digest.categories.items())


def _item_meta(item: NewsItem) -> str:
    return f"📰 {item.source} | 🏷️ {item.category or UNCATEGORIZED} | ⭐ {item.score}分"


def sign_webhook(timestamp: str, secret: str) -> str:
    """Compute the webhook signature for a timestamp.

    The string ``timestamp + "\\n" + secret`` is the HMAC key and the
    message is empty.
    """
    key = f"{timestamp}\n{secret}".encode("utf-8")
    digest = hmac.new(key, b"", digestmod=hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def build_card_message(digest: NewsDigest, now: datetime | None = None) -> dict[str, Any]:
    """Build an interactive card with stats, summary and the top 8 items."""
    entries = []
    for index, item in enumerate(digest.top_news[:CARD_NEWS_LIMIT], start=1):
        lines = [f"**{index}. [{truncate_text(item.title, 50)}]({item.url})**", _item_meta(item)]
        if item.description:
            lines.append(truncate_text(item.description, 80))
        entries.append("\n".join(lines))

    content = (
        f"📊 **数据统计**\n"
        f"📈 总计: **{digest.total_count}** 条新闻\n"
        f"📂 分类: {_category_stats(digest)}\n\n"
        f"💡 **今日摘要**\n{digest.summary}\n\n"
        f"🔥 **热门新闻**\n\n" + "\n\n".join(entries) + "\n\n"
        f"🤖 由 relay 定时推送 | ⏰ {format_time(now)}"
    )

    return {
        "msg_type": "interactive",
        "card": {
            "schema": "2.0",
            "config": {"update_multi": True},
            "body": {
                "direction": "vertical",
                "padding": "12px 12px 12px 12px",
                "elements": [
                    {"tag": "markdown", "content": content, "text_align": "left"},
                ],
            },
            "header": {
                "title": {"tag": "plain_text", "content": TITLE},
                "template": "blue",
                "padding": "12px 12px 12px 12px",
            },
        },
    }


def build_text_message(digest: NewsDigest, now: datetime | None = None) -> dict[str, Any]:
    """Build the plain-text fallback message with up to 20 items."""
    lines = [
        TITLE,
        "",
        f"📊 新闻摘要 ({format_time(digest.generated_at)})",
        f"📈 总计: {digest.total_count} 条新闻",
        f"📂 分类: {_category_stats(digest)}",
        "",
        f"💡 {digest.summary}",
        "",
    ]
    if digest.top_news:
        lines.extend(["🔥 热门新闻:", ""])
        for index, item in enumerate(digest.top_news[:TEXT_NEWS_LIMIT], start=1):
            lines.append(f"{index}. {truncate_text(item.title, 50)}")
            lines.append(_item_meta(item))
            lines.append(f"🔗 {item.url}")
            if item.description:
                lines.append(truncate_text(item.description, 80))
            lines.append("")
    lines.append(f"🤖 由 relay 定时推送 | ⏰ {format_time(now)}")
    return {"msg_type": "text", "content": {"text": "\n".join(lines)}}


def _signed(message: dict[str, Any], secret: str) -> dict[str, Any]:
    if not secret:
        return message
    timestamp = str(int(time.time()))
    return {**message, "timestamp": timestamp, "sign": sign_webhook(timestamp, secret)}


async def _post(session: aiohttp.ClientSession, url: str, payload: dict[str, Any]) -> dict[str, Any]:
    """POST one message and check the bot's acknowledgement.

    Raises:
        DeliveryError: On transport error, HTTP >= 300, a non-JSON body
            or a non-zero status
    """
    try:
        async with session.post(url, json=payload, timeout=aiohttp.ClientTimeout(total=DELIVERY_TIMEOUT)) as resp:
            if resp.status >= 300:
                raise DeliveryError(f"HTTP {resp.status}: {resp.reason}")
            try:
                body = await resp.json(content_type=None)
            except ValueError as e:
                raise DeliveryError(f"Invalid JSON response: {e}") from e
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise DeliveryError(f"{type(e).__name__}: {e}") from e

    if not isinstance(body, dict) or (body.get("StatusCode") != 0 and body.get("code") != 0):
        detail = body.get("StatusMessage") or body.get("msg") if isinstance(body, dict) else body
        raise DeliveryError(f"Webhook API error: {detail or 'unknown error'}")
    return body


async def post_message(
    session: aiohttp.ClientSession,
    url: str,
    message: dict[str, Any],
    secret: str = "",
    attempts: int = DELIVERY_ATTEMPTS,
    delay: float = DELIVERY_DELAY,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> dict[str, Any]:
    """Send a message with linear back-off between attempts.

    Raises:
        DeliveryError: The last error once all attempts failed
    """
    last_error = DeliveryError("No attempt made")
    for attempt in range(1, attempts + 1):
        try:
            return await _post(session, url, _signed(message, secret))
        except DeliveryError as e:
            last_error = e
            logger.warning(
                "Webhook attempt failed | type=%s attempt=%d/%d error=%s",
                message.get("msg_type"), attempt, attempts, e,
            )
        if attempt < attempts:
            await sleep(delay * attempt)
    raise last_error


async def send_digest(
    digest: NewsDigest,
    url: str,
    secret: str = "",
    session: aiohttp.ClientSession | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> bool:
    """Deliver a digest as a card, falling back to plain text.

    Returns:
        True if either message was accepted
    """
    if not url:
        return False

    own_session = session is None
    session = session or aiohttp.ClientSession()
    try:
        try:
            await post_message(session, url, build_card_message(digest), secret, sleep=sleep)
            logger.info("Digest delivered | type=card total=%d", digest.total_count)
            return True
        except DeliveryError as e:
            logger.warning("Card message failed, falling back to text | error=%s", e)
        try:
            await post_message(session, url, build_text_message(digest), secret, sleep=sleep)
            logger.info("Digest delivered | type=text total=%d", digest.total_count)
            return True
        except DeliveryError as e:
            logger.error("Digest delivery failed | error=%s", e)
            return False
    finally:
        if own_session:
            await session.close()


def connection_test_message() -> str:
    return f"🤖 新闻推送服务连接测试\n⏰ 测试时间: {format_time()}\n✅ 机器人连接正常！"


async def send_text(
    text: str,
    url: str,
    secret: str = "",
    session: aiohttp.ClientSession | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> bool:
    """Send a single plain-text message (used for connection checks)."""
    if not url:
        return False

    message = {"msg_type": "text", "content": {"text": text}}
    own_session = session is None
    session = session or aiohttp.ClientSession()
    try:
        await post_message(session, url, message, secret, sleep=sleep)
        logger.info("Text message delivered | length=%d", len(text))
        return True
    except DeliveryError as e:
        logger.error("Text message failed | error=%s", e)
        return False
    finally:
        if own_session:
            await session.close()


def render_digest_markdown(digest: NewsDigest) -> str:
    """Render a digest into a human-readable markdown file."""
    lines = [
        "# News Digest",
        "",
        f"**Generated:** {format_time(digest.generated_at)}",
        f"**Total:** {digest.total_count}",
        f"**Categories:** {_category_stats(digest) or '-'}",
        "",
        "## Summary",
        "",
        digest.summary,
    ]
    if digest.top_news:
        lines.extend(["", "## Top News", ""])
        for index, item in enumerate(digest.top_news, start=1):
            lines.append(f"{index}. [{item.title}]({item.url}) ({item.source}, {item.category}, {item.score})")
            if item.tags:
                lines.append(f"   - Tags: {', '.join(item.tags)}")
    return "\n".join(lines) + "\n"


async def save_digest_report(digest: NewsDigest, reports_dir: Path) -> Path | None:
    """Save a per-run digest markdown file."""
    try:
        reports_dir.mkdir(parents=True, exist_ok=True)
        timestamp = digest.generated_at.strftime("%Y%m%d_%H%M%S")
        filepath = reports_dir / f"{timestamp}_digest.md"
        filepath.write_text(render_digest_markdown(digest), encoding="utf-8")
        logger.info("Digest saved | file=%s", filepath.name)
        return filepath
    except OSError as e:
        logger.error("Digest save failed: %s", e, exc_info=True)
        return None


async def append_digest_file(digest: NewsDigest, filepath: str) -> bool:
    """Append the digest as one JSON line."""
    if not filepath:
        return True

    try:
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Warn if file is getting large (> 100MB)
        if path.exists():
            size_mb = path.stat().st_size / (1024 * 1024)
            if size_mb > 100:
                logger.warning("Digest file large | size=%.1fMB path=%s", size_mb, filepath)

        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(digest.to_wire(), ensure_ascii=False) + "\n")
        return True
    except OSError as e:
        logger.error("Digest file error: %s (%s)", e, type(e).__name__, exc_info=True)
        return False


async def notify(digest: NewsDigest, config: Config) -> bool | None:
    """Run all configured sinks for a digest.

    Returns:
        Webhook delivery result, or None when the webhook is disabled
    """
    if config.reports_dir is not None:
        await save_digest_report(digest, config.reports_dir)
    if config.digest_file:
        await append_digest_file(digest, config.digest_file)
    if not config.webhook_enabled:
        return None
    return await send_digest(digest, config.webhook_url, config.webhook_secret)
