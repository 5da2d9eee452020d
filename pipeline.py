"""Main pipeline orchestration for the news digest.

This module coordinates one collection-to-delivery run:

Pipeline Flow:
    1. COLLECT: Fetch all enabled sources concurrently, normalize, dedupe
       (exact + fuzzy) and truncate to the total limit
    2. FILTER: Drop low-quality items (short or spammy titles, bad URLs,
       low provisional score)
    3. DEDUP: Second fuzzy pass over the surviving items
    4. ENRICH: Optional tech-relevance analysis in sequential batches
    5. DIGEST: Rank, histogram, hot topics and summary text
    6. POLISH: Optional LLM rewrite of the summary
    7. DELIVER: Webhook, markdown report and JSONL archive

Error Handling:
    ``Pipeline.run_once`` never raises (except on cancellation). Source
    failures are listed in the report, enrichment failures leave items
    unenriched, and delivery failures only clear the ``delivered`` flag.
    A run with no collected items at all is reported as a failure.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from agents.enricher import EnrichmentAgent
from agents.summarizer import SummarizerAgent
from collector import NewsCollector
from config import Config
from dedup import DEFAULT_SIMILARITY_THRESHOLD, dedupe_fuzzy
from digest import DigestBuilder
from feeds import SourceFetcher
from models.enrichment import EnrichmentResult
from models.news import NewsItem, RunReport
from notifications import connection_test_message, notify, send_text
from observability.logging import clear_context, set_run_context
from observability.tracing import PipelineTracer, setup_tracing, trace_operation
from quality import filter_quality

logger = logging.getLogger(__name__)

NO_ITEMS_MESSAGE = "未收集到任何新闻"
RUN_IN_PROGRESS_MESSAGE = "run already in progress"


@dataclass
class PipelineStatus:
    """Execution counters kept across runs of one Pipeline.

    Attributes:
        running: Whether a run is currently executing
        executions: Completed runs (success or failure)
        successes: Runs that produced a digest
        last_run: When the last run finished
        last_message: Message of the last run report
    """

    running: bool = False
    executions: int = 0
    successes: int = 0
    last_run: datetime | None = None
    last_message: str = ""

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["last_run"] = self.last_run.isoformat() if self.last_run else None
        return d


class Pipeline:
    """Async news digest pipeline.

    Components:
        - NewsCollector: concurrent fetch with retry and a TTL cache
        - EnrichmentAgent: tech relevance (LLM or local keywords)
        - SummarizerAgent: optional LLM summary polish
        - DigestBuilder: pure ranking and summary synthesis

    Components can be injected for testing; otherwise they are built
    from ``config``.
    """

    def __init__(
        self,
        config: Config,
        collector: NewsCollector | None = None,
        enricher: EnrichmentAgent | None = None,
        summarizer: SummarizerAgent | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.collector = collector or NewsCollector(config)
        self.enricher = enricher
        if self.enricher is None and config.enrichment_enabled:
            self.enricher = EnrichmentAgent(config)
        self.summarizer = summarizer
        if self.summarizer is None and config.llm_enabled and config.summary_enabled:
            self.summarizer = SummarizerAgent(config)
        self.builder = DigestBuilder(language=config.language)
        self.status = PipelineStatus()
        self._sleep = sleep

        if config.enable_logfire:
            setup_tracing(enabled=True, service_name="relay", token=config.logfire_token)

    async def _enrich(self, items: list[NewsItem], tracer: PipelineTracer) -> dict[str, EnrichmentResult]:
        if self.enricher is None or not items:
            return {}
        with trace_operation("enrich", {"items": len(items)}) as attrs:
            enrichments = await self.enricher.enhance_batch(items)
            attrs["enriched"] = len(enrichments)
        tech = sum(1 for e in enrichments.values() if e.is_tech_news)
        tracer.record_enrichment(len(items), len(enrichments), tech)
        return enrichments

    async def _execute(self, tracer: PipelineTracer) -> RunReport:
        sources = self.config.sources
        if not any(source.enabled for source in sources):
            return RunReport.failure("没有启用的新闻源")

        with trace_operation("collect", {"sources": len(sources)}) as attrs:
            collection = await self.collector.collect_all(sources)
            attrs["items"] = len(collection.news)
        stats = collection.stats
        tracer.record_fetch(
            len(stats.by_source), len(collection.errors), stats.total_collected,
        )

        if not collection.news:
            logger.warning("No items collected | failed_sources=%d", len(collection.errors))
            return RunReport.failure(
                NO_ITEMS_MESSAGE, stats=stats, source_errors=collection.errors,
            )

        filtered = filter_quality(collection.news)
        unique = dedupe_fuzzy(filtered, DEFAULT_SIMILARITY_THRESHOLD)
        tracer.record_dedup(len(filtered), len(unique))

        enrichments = await self._enrich(unique, tracer)
        digest = self.builder.build(unique, enrichments, now=datetime.now(timezone.utc))

        if self.summarizer is not None and digest.top_news:
            polished = await self.summarizer.polish(digest)
            digest = digest.model_copy(update={"summary": polished})

        delivered = await notify(digest, self.config)
        tracer.record_delivery(delivered)
        if delivered is False:
            logger.error("Digest delivery failed; run still counts as success")

        return RunReport(
            success=True,
            message=f"Collected {len(unique)} items, digest of {len(digest.top_news)}",
            stats=stats,
            digest=digest,
            delivered=delivered,
            source_errors=collection.errors,
        )

    async def run_once(self) -> RunReport:
        """Execute one complete pipeline run.

        Returns:
            RunReport; never raises except on cancellation
        """
        if self.status.running:
            logger.warning("Run skipped, previous run still executing")
            return RunReport.failure(RUN_IN_PROGRESS_MESSAGE)

        self.status.running = True
        run_id = uuid.uuid4().hex[:8]
        set_run_context(run_id)
        start = time.monotonic()
        tracer = PipelineTracer()

        logger.info("Pipeline started | sources=%d", len(self.config.enabled_sources))
        try:
            with tracer.trace_run(run_id):
                report = await self._execute(tracer)
        except asyncio.CancelledError:
            logger.info("Pipeline run cancelled")
            raise
        except Exception as e:
            logger.error("Pipeline error | type=%s error=%s", type(e).__name__, e, exc_info=True)
            report = RunReport.failure(f"执行失败: {e}", error=f"{type(e).__name__}: {e}")
        finally:
            self.status.running = False

        report.duration = round(time.monotonic() - start, 3)
        self.status.executions += 1
        self.status.successes += int(report.success)
        self.status.last_run = datetime.now(timezone.utc)
        self.status.last_message = report.message

        logger.info(
            "Pipeline done | success=%s duration=%.1fs items=%d failed_sources=%d delivered=%s",
            report.success, report.duration,
            report.digest.total_count if report.digest else 0,
            len(report.source_errors), report.delivered,
        )
        clear_context()
        return report

    async def run_continuous(self, max_runs: int = 0) -> None:
        """Run the pipeline repeatedly with polling.

        Args:
            max_runs: Stop after this many runs (0 = run until cancelled)
        """
        run_count = 0
        failures = 0

        logger.info("Starting continuous mode | interval=%ds", self.config.poll_interval_seconds)

        try:
            while True:
                run_count += 1
                report = await self.run_once()
                if not report.success:
                    failures += 1
                logger.info("Run complete | run=%d failures=%d", run_count, failures)
                if max_runs and run_count >= max_runs:
                    break
                await self._sleep(self.config.poll_interval_seconds)
        except asyncio.CancelledError:
            logger.info("Pipeline stopped | runs=%d failures=%d", run_count, failures)
            raise

    async def check(self) -> dict[str, Any]:
        """System check: config validity, one live fetch, webhook test message.

        Returns:
            Dict with ``config``, ``fetch`` and ``webhook`` sections and an
            overall ``success`` flag
        """
        error = self.config.validate()
        results: dict[str, Any] = {"config": {"valid": error is None, "error": error}}

        enabled = self.config.enabled_sources
        if enabled:
            source = enabled[0].model_copy(update={"max_items": 2})
            fetcher = SourceFetcher(
                self.config.news_api_base_url,
                attempts=1,
                timeout=self.config.request_timeout,
            )
            result = await fetcher.fetch(source)
            results["fetch"] = {
                "source": source.id,
                "success": result.ok,
                "items": len(result.items),
                "error": None if result.ok else str(result.error),
            }
        else:
            results["fetch"] = {"source": None, "success": False, "items": 0, "error": "no enabled sources"}

        webhook: dict[str, Any] = {
            "enabled": self.config.webhook_enabled,
            "configured": bool(self.config.webhook_url),
            "signed": bool(self.config.webhook_secret),
            "success": None,
        }
        if self.config.webhook_enabled:
            webhook["success"] = await send_text(
                connection_test_message(),
                self.config.webhook_url,
                self.config.webhook_secret,
                sleep=self._sleep,
            )
        results["webhook"] = webhook

        results["success"] = (
            error is None
            and results["fetch"]["success"]
            and webhook["success"] is not False
        )
        return results


async def run_once(config: Config) -> RunReport:
    """Run pipeline once and return the run report."""
    return await Pipeline(config).run_once()


async def run_continuous(config: Config, max_runs: int = 0) -> None:
    """Run pipeline continuously until cancelled."""
    await Pipeline(config).run_continuous(max_runs=max_runs)
