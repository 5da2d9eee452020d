import json
import logging

import pytest

from config import Config
from observability.logging import (
    LOG_FILE_NAME,
    ContextFilter,
    JsonFormatter,
    clear_context,
    set_run_context,
    setup_logging,
)
from observability.tracing import PipelineTracer, trace_operation


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def _record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("relay.test", logging.WARNING, __file__, 10, message, None, None)
    record.__dict__.update(extra)
    return record


def test_json_formatter_includes_run_id_and_extras():
    set_run_context("abc12345")
    try:
        record = _record("Source failed | source=%s", source="知乎")
        record.args = ("知乎",)
        ContextFilter().filter(record)
        data = json.loads(JsonFormatter().format(record))
    finally:
        clear_context()

    assert data["run_id"] == "abc12345"
    assert data["message"] == "Source failed | source=知乎"
    assert data["source"] == "知乎"
    assert data["level"] == "WARNING"
    assert "where" in data


def test_setup_logging_writes_file(tmp_path, restore_root_logger):
    config = Config(log_dir=tmp_path / "log", log_format="json")
    assert setup_logging(config)

    logging.getLogger("relay.test").info("Collection started | sources=%d", 3)
    for handler in logging.getLogger().handlers:
        handler.flush()

    lines = (tmp_path / "log" / LOG_FILE_NAME).read_text(encoding="utf-8").splitlines()
    assert json.loads(lines[-1])["message"] == "Collection started | sources=3"
    assert logging.getLogger("openai").level == logging.WARNING


def test_pipeline_tracer_counters():
    tracer = PipelineTracer()
    with tracer.trace_run("run1"):
        tracer.record_fetch(sources=3, failed=1, items=12)
        tracer.record_dedup(before=12, after=10)
        tracer.record_enrichment(total=10, enriched=9, tech=4)
        tracer.record_delivery(True)

    summary = tracer.get_summary()
    assert summary["run_id"] == "run1"
    assert summary["items_deduplicated"] == 2
    assert summary["enrichment_skipped"] == 1
    assert summary["delivered"] is True
    assert "duration_seconds" in summary


def test_trace_operation_without_logfire():
    with trace_operation("collect", {"sources": 2}) as attrs:
        attrs["items"] = 5
    assert attrs == {"items": 5}
