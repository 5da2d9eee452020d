"""Logging and optional tracing for the relay pipeline.

setup_logging / set_run_context:
    Console plus rotating-file logging with a per-run id on every record.

setup_tracing / trace_operation / PipelineTracer:
    Optional Logfire spans (ENABLE_LOGFIRE=true) and per-run counters.
"""

from observability.logging import set_run_context, setup_logging
from observability.tracing import PipelineTracer, TracingContext, setup_tracing, trace_operation

__all__ = [
    "PipelineTracer",
    "TracingContext",
    "set_run_context",
    "setup_logging",
    "setup_tracing",
    "trace_operation",
]
