"""Optional Logfire tracing and per-run pipeline counters.

Logfire is imported lazily, so the package only needs to be installed
when ``ENABLE_LOGFIRE=true``. With tracing off, ``trace_operation`` is a
no-op span and ``PipelineTracer`` still collects counters for the run
report and the logs.

Requirements:
    pip install logfire

Usage:
    >>> setup_tracing(enabled=True, service_name="relay")
    >>> with trace_operation("collect", {"sources": 13}) as attrs:
    ...     attrs["items"] = 87
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator

logger = logging.getLogger(__name__)


@dataclass
class TracingContext:
    """Process-wide tracing state."""
    enabled: bool = False
    service_name: str = "relay"
    _logfire_configured: bool = field(default=False, init=False)


_context = TracingContext()


def setup_tracing(
    enabled: bool = False,
    service_name: str = "relay",
    token: str = "",
) -> TracingContext:
    """Configure Logfire and instrument PydanticAI and OpenAI calls.

    A missing ``logfire`` package or a configuration error leaves tracing
    disabled and logs why.
    """
    _context.enabled = enabled
    _context.service_name = service_name

    if not enabled:
        logger.debug("Tracing disabled")
        return _context

    try:
        import logfire

        logfire.configure(service_name=service_name, token=token or None)
        logfire.instrument_pydantic_ai()
        logfire.instrument_openai()
        _context._logfire_configured = True
        logger.info("Logfire tracing enabled | service=%s", service_name)
    except ImportError:
        logger.warning("Logfire not installed. Tracing disabled.")
        _context.enabled = False
    except Exception as e:
        logger.error("Failed to configure Logfire | error=%s", e)
        _context.enabled = False

    return _context


@contextmanager
def trace_operation(name: str, attributes: dict[str, Any] | None = None) -> Iterator[dict[str, Any]]:
    """Open a span; keys added to the yielded dict become span attributes."""
    result_attrs: dict[str, Any] = {}
    start = time.monotonic()
    try:
        if _context.enabled and _context._logfire_configured:
            import logfire

            with logfire.span(name, **(attributes or {})) as span:
                yield result_attrs
                for key, value in result_attrs.items():
                    span.set_attribute(key, value)
        else:
            yield result_attrs
    finally:
        logger.debug("Operation completed | name=%s duration=%.2fs", name, time.monotonic() - start)


class PipelineTracer:
    """Collects counters for one pipeline run.

    Example:
        >>> tracer = PipelineTracer()
        >>> with tracer.trace_run("3f9a1c2e"):
        ...     tracer.record_fetch(sources=13, failed=1, items=120)
        >>> tracer.get_summary()["items_fetched"]
        120
    """

    def __init__(self, context: TracingContext | None = None):
        self.context = context or _context
        self.stats: dict[str, Any] = {}
        self._start: float | None = None

    @contextmanager
    def trace_run(self, run_id: str) -> Iterator[None]:
        self._start = time.monotonic()
        self.stats = {"run_id": run_id}
        with trace_operation("pipeline_run", {"run_id": run_id}) as attrs:
            try:
                yield
            finally:
                self.stats["duration_seconds"] = round(time.monotonic() - self._start, 3)
                attrs.update(self.stats)

    def record_fetch(self, sources: int, failed: int, items: int) -> None:
        self.stats["sources_fetched"] = sources
        self.stats["sources_failed"] = failed
        self.stats["items_fetched"] = items
        logger.info("Fetch stats | sources=%d failed=%d items=%d", sources, failed, items)

    def record_dedup(self, before: int, after: int) -> None:
        self.stats["items_before_dedup"] = before
        self.stats["items_after_dedup"] = after
        self.stats["items_deduplicated"] = before - after
        logger.info("Dedup stats | before=%d after=%d removed=%d", before, after, before - after)

    def record_enrichment(self, total: int, enriched: int, tech: int) -> None:
        self.stats["items_enriched"] = enriched
        self.stats["enrichment_skipped"] = total - enriched
        self.stats["items_tech"] = tech
        logger.info("Enrichment stats | total=%d enriched=%d tech=%d", total, enriched, tech)

    def record_delivery(self, delivered: bool | None) -> None:
        self.stats["delivered"] = delivered
        logger.info("Delivery stats | delivered=%s", delivered)

    def get_summary(self) -> dict[str, Any]:
        return self.stats.copy()
