"""Logging, metrics and tracing shared by every fc-search component."""

from fc_search.observability.context import (
    bind_revision,
    channel_context,
    get_trace_context,
    set_trace_context,
    trace_context,
)
from fc_search.observability.logging import JsonFormatter, configure_logging
from fc_search.observability.metrics import (
    CHANNEL_ACTIVE,
    CHANNEL_REFRESHES,
    INDEXED_DOCUMENTS,
    SEARCH_LATENCY,
    build_metric_reader,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    start_metrics_server,
    track_latency,
)
from fc_search.observability.tracing import (
    channel_span,
    configure_trace_exporter,
    create_span,
    get_tracer,
    init_tracing,
)


__all__ = [
    "CHANNEL_ACTIVE",
    "CHANNEL_REFRESHES",
    "INDEXED_DOCUMENTS",
    "SEARCH_LATENCY",
    "JsonFormatter",
    "bind_revision",
    "build_metric_reader",
    "channel_context",
    "channel_span",
    "configure_logging",
    "configure_trace_exporter",
    "create_span",
    "get_metrics",
    "get_metrics_content_type",
    "get_trace_context",
    "get_tracer",
    "init_metrics",
    "init_tracing",
    "set_trace_context",
    "start_metrics_server",
    "trace_context",
    "track_latency",
]
