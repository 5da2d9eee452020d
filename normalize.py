"""Normalization of upstream feed payloads into NewsItem records.

Upstream aggregation feeds are schema-less: the same concept may arrive
under different keys, or not at all. Decoding is an explicit step with a
named default per field (see ``RawFeedItem``), after which ``normalize``
assigns an id, a provisional category, score and tags.

Default substitution:
    title        <- title                          else "无标题"
    url          <- url                            else ""
    description  <- description, summary           else ""
    publish_time <- publishTime, time, pubDate     else None (unknown)
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from models.news import NewsItem, NewsSource
from scoring import base_score, detect_category, extract_tags

logger = logging.getLogger(__name__)

UNTITLED = "无标题"

# Epoch values above this are treated as milliseconds
_EPOCH_MS_THRESHOLD = 1e12


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an upstream timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (naive values are taken as UTC, a trailing
    ``Z`` is allowed) and epoch numbers in seconds or milliseconds.
    Numeric strings are treated as epoch values.

    Returns:
        Datetime in UTC, or None when missing or unparsable
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                logger.debug("Unparsable timestamp | value=%s", text[:40])
                return None
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)

    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > _EPOCH_MS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            logger.debug("Out-of-range epoch timestamp | value=%r", value)
            return None

    return None


def _first_text(data: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return ""


@dataclass(frozen=True)
class RawFeedItem:
    """One upstream item after optional-field decoding."""

    title: str
    url: str
    description: str
    publish_time: datetime | None

    @classmethod
    def decode(cls, data: Any) -> "RawFeedItem":
        """Decode a raw upstream mapping, substituting named defaults.

        Non-mapping input decodes to an untitled, url-less item, which
        the quality filter later drops.
        """
        if not isinstance(data, dict):
            data = {}

        publish_time = None
        for key in ("publishTime", "time", "pubDate"):
            publish_time = parse_timestamp(data.get(key))
            if publish_time is not None:
                break

        return cls(
            title=_first_text(data, "title") or UNTITLED,
            url=_first_text(data, "url"),
            description=_first_text(data, "description", "summary"),
            publish_time=publish_time,
        )


def new_item_id() -> str:
    """Return a fresh opaque item id."""
    return uuid.uuid4().hex


def normalize(raw: RawFeedItem | dict[str, Any], source: NewsSource, now: datetime | None = None) -> NewsItem:
    """Map one raw item into a canonical NewsItem.

    Args:
        raw: Decoded item, or the raw upstream mapping
        source: Source the item was fetched from
        now: Reference time for the recency bonus (defaults to now, UTC)

    Returns:
        NewsItem with provisional category, score and tags
    """
    if not isinstance(raw, RawFeedItem):
        raw = RawFeedItem.decode(raw)

    return NewsItem(
        id=new_item_id(),
        title=raw.title,
        url=raw.url,
        description=raw.description,
        publish_time=raw.publish_time,
        source=source.name,
        category=detect_category(raw.title),
        score=base_score(raw.title, raw.description, raw.publish_time, now),
        tags=extract_tags(raw.title),
    )


def normalize_payload(
    items: Iterable[Any],
    source: NewsSource,
    now: datetime | None = None,
) -> list[NewsItem]:
    """Normalize a list of raw upstream items from one source."""
    now = now or datetime.now(timezone.utc)
    return [normalize(item, source, now) for item in items]
