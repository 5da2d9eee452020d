"""Concurrent collection across all enabled sources.

``NewsCollector`` fans out one fetch task per enabled source, joins them
all, normalizes each payload, merges the results and removes duplicates.

Concurrency:
    - All enabled sources are fetched concurrently over one pooled
      aiohttp session; retries and backoff are local to each task
    - The join waits for every task; a failing source never cancels or
      blocks its siblings
    - The per-source cache is read before the fan-out and written after
      the join, so no cache slot is touched concurrently
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import aiohttp

from cache import TTLCache
from config import Config
from dedup import dedupe
from feeds import FetchFailure, FetchResult, FetchSuccess, SourceFetcher, classify_error
from models.news import NewsItem, NewsSource, NewsStats
from normalize import normalize_payload

logger = logging.getLogger(__name__)

UNCATEGORIZED = "未分类"


@dataclass
class CollectionResult:
    """Merged items and counters from one collection pass.

    Attributes:
        news: Deduplicated items, truncated to the configured total limit
        stats: Run counters (``by_category`` counts ``news``)
        errors: Source name -> final error message for failed sources
    """

    news: list[NewsItem] = field(default_factory=list)
    stats: NewsStats = field(default_factory=NewsStats)
    errors: dict[str, str] = field(default_factory=dict)


class NewsCollector:
    """Collects news from all enabled sources of a registry.

    The collector owns a TTL cache (source id -> raw items) that persists
    between runs and can be emptied with ``clear_cache``.

    Example:
        >>> collector = NewsCollector(config)
        >>> result = await collector.collect_all(config.sources)
        >>> len(result.news), result.stats.duplicates_removed
    """

    def __init__(
        self,
        config: Config,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.cache: TTLCache[list[dict[str, Any]]] = TTLCache(ttl=config.cache_duration)
        self._sleep = sleep

    def _fetcher(self, session: aiohttp.ClientSession) -> SourceFetcher:
        return SourceFetcher(
            self.config.news_api_base_url,
            attempts=self.config.retry_attempts,
            timeout=self.config.request_timeout,
            session=session,
            sleep=self._sleep,
        )

    async def fetch_sources(self, sources: list[NewsSource]) -> list[FetchResult]:
        """Fetch all given sources concurrently, serving fresh cache hits.

        Returns:
            One FetchResult per source, in input order
        """
        results: list[FetchResult | None] = []
        pending: list[tuple[int, NewsSource]] = []
        for source in sources:
            cached = self.cache.get(source.id)
            if cached is not None:
                logger.debug("Cache hit | source=%s items=%d", source.id, len(cached))
                results.append(FetchSuccess(source_id=source.id, items=cached, attempts=0, cached=True))
            else:
                results.append(None)
                pending.append((len(results) - 1, source))

        if pending:
            connector = aiohttp.TCPConnector(limit=self.config.max_workers)
            async with aiohttp.ClientSession(connector=connector) as session:
                fetcher = self._fetcher(session)
                fetched = await asyncio.gather(
                    *(fetcher.fetch(source) for _, source in pending),
                    return_exceptions=True,
                )

            for (index, source), result in zip(pending, fetched):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                if isinstance(result, BaseException):
                    # fetch() classifies its own errors; this is a bug path
                    logger.error("Fetch task crashed | source=%s error=%s", source.id, result, exc_info=result)
                    result = FetchFailure(source_id=source.id, error=classify_error(result), attempts=0)
                elif isinstance(result, FetchSuccess):
                    self.cache.set(source.id, result.items)
                results[index] = result

        return [r for r in results if r is not None]

    async def collect_all(self, sources: list[NewsSource]) -> CollectionResult:
        """Collect, normalize and deduplicate news from enabled sources.

        Args:
            sources: Source registry; disabled entries are ignored

        Returns:
            CollectionResult with merged items, stats and per-source errors
        """
        start = time.monotonic()
        enabled = [source for source in sources if source.enabled]
        stats = NewsStats()
        errors: dict[str, str] = {}

        logger.info("Collection started | sources=%d enabled=%d", len(sources), len(enabled))

        fetched = await self.fetch_sources(enabled)

        now = datetime.now(timezone.utc)
        combined: list[NewsItem] = []
        for source, result in zip(enabled, fetched):
            if isinstance(result, FetchFailure):
                errors[source.name] = str(result.error)
                stats.by_source[source.name] = 0
                logger.warning("Source failed | source=%s attempts=%d error=%s", source.name, result.attempts, result.error)
                continue
            items = normalize_payload(result.items, source, now)
            stats.by_source[source.name] = len(items)
            stats.total_collected += len(items)
            combined.extend(items)
            logger.info("Source collected | source=%s items=%d cached=%s", source.name, len(items), result.cached)

        unique = dedupe(combined)
        stats.duplicates_removed = len(combined) - len(unique)

        limited = unique[: self.config.news_total_limit]
        for item in limited:
            category = item.category or UNCATEGORIZED
            stats.by_category[category] = stats.by_category.get(category, 0) + 1

        stats.processing_time = int((time.monotonic() - start) * 1000)
        logger.info(
            "Collection complete | collected=%d unique=%d kept=%d failed_sources=%d duration_ms=%d",
            stats.total_collected, len(unique), len(limited), len(errors), stats.processing_time,
        )
        return CollectionResult(news=limited, stats=stats, errors=errors)

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("Source cache cleared")
