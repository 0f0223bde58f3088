"""Golden-signal metrics for searches and channel refreshes.

Every metric is a Prometheus collector (scraped through ``get_metrics`` or
the endpoint started by ``start_metrics_server``) mirrored onto an
OpenTelemetry instrument created lazily on first use, so the OTLP reader
built by ``build_metric_reader`` exports the same values.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
import time
from typing import TYPE_CHECKING, Any, Literal

from opentelemetry import metrics as otel_metrics
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
    OTLPMetricExporter as GrpcOTLPMetricExporter,
)
from opentelemetry.exporter.otlp.proto.http.metric_exporter import (
    OTLPMetricExporter as HttpOTLPMetricExporter,
)
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest, start_http_server

from fc_search.config import CollectorConfig


if TYPE_CHECKING:
    from collections.abc import Generator, Sequence
    from threading import Thread
    from wsgiref.simple_server import WSGIServer

logger = logging.getLogger(__name__)


MetricKind = Literal["counter", "histogram", "gauge"]

LATENCY_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0)

_meter_holder: dict[str, Any] = {"meter": None, "provider": None}


def init_metrics(
    service_name: str = "fc-search",
    resource_attributes: dict[str, str] | None = None,
    metric_readers: list[MetricReader] | None = None,
) -> MeterProvider:
    """Install the process-wide meter provider; later calls return the first one."""
    if isinstance(_meter_holder["provider"], MeterProvider):
        return _meter_holder["provider"]

    resource = Resource.create({"service.name": service_name, **(resource_attributes or {})})
    provider = MeterProvider(resource=resource, metric_readers=metric_readers or [])
    otel_metrics.set_meter_provider(provider)
    _meter_holder["provider"] = provider
    _meter_holder["meter"] = provider.get_meter(__name__)
    return provider


def metrics_endpoint(config: CollectorConfig) -> str:
    """HTTP collectors are configured with the traces path; metrics go next to it."""
    endpoint = config.collector_endpoint
    if config.otlp_protocol == "http" and endpoint.endswith("/v1/traces"):
        endpoint = endpoint.removesuffix("/v1/traces") + "/v1/metrics"
    return endpoint


def build_metric_reader(config: CollectorConfig | None) -> PeriodicExportingMetricReader | None:
    """Return an OTLP exporting reader for ``init_metrics``, or ``None`` when export is off."""
    if not config or not config.enabled:
        return None

    endpoint = metrics_endpoint(config)
    if config.otlp_protocol == "grpc":
        exporter = GrpcOTLPMetricExporter(
            endpoint=endpoint,
            headers=config.headers,
            timeout=config.timeout_seconds,
            insecure=config.grpc_insecure,
        )
    else:
        exporter = HttpOTLPMetricExporter(
            endpoint=endpoint,
            headers=config.headers,
            timeout=config.timeout_seconds,
        )
    logger.info("OTLP metric export enabled (%s) to %s", config.otlp_protocol, endpoint)
    return PeriodicExportingMetricReader(exporter)


def _get_meter():
    if _meter_holder["meter"] is None:
        init_metrics()
    return _meter_holder["meter"]


class _BoundMetric:
    """A ``MetricBridge`` with its label values fixed."""

    def __init__(self, bridge: MetricBridge, labels: dict[str, str]) -> None:
        self._bridge = bridge
        self._labels = labels

    def inc(self, amount: float = 1.0) -> None:
        self._bridge.inc(self._labels, amount)

    def observe(self, value: float) -> None:
        self._bridge.observe(self._labels, value)

    def set(self, value: float) -> None:
        self._bridge.set(self._labels, value)


class MetricBridge:
    """Record into a Prometheus collector and the matching OTel instrument.

    OTel has no synchronous gauge in every SDK release, so gauges are
    mirrored as up-down counters fed with the difference to the last value.
    """

    def __init__(
        self,
        prom_metric: Counter | Histogram | Gauge,
        *,
        otel_name: str,
        otel_description: str,
        otel_kind: MetricKind,
    ) -> None:
        self._prom_metric = prom_metric
        self._otel_name = otel_name
        self._otel_description = otel_description
        self._otel_kind = otel_kind
        self._otel_instrument = None
        self._gauge_values: dict[tuple[tuple[str, str], ...], float] = {}

    def labels(self, **labels: str) -> _BoundMetric:
        return _BoundMetric(self, labels)

    def _instrument(self):
        if self._otel_instrument is None:
            meter = _get_meter()
            create = {
                "counter": meter.create_counter,
                "histogram": meter.create_histogram,
                "gauge": meter.create_up_down_counter,
            }.get(self._otel_kind)
            if create is None:
                raise ValueError(f"Unknown metric kind: {self._otel_kind}")
            self._otel_instrument = create(self._otel_name, description=self._otel_description)
        return self._otel_instrument

    def inc(self, labels: dict[str, str], amount: float) -> None:
        self._prom_metric.labels(**labels).inc(amount)
        self._instrument().add(amount, labels)

    def observe(self, labels: dict[str, str], value: float) -> None:
        self._prom_metric.labels(**labels).observe(value)
        self._instrument().record(value, labels)

    def set(self, labels: dict[str, str], value: float) -> None:
        self._prom_metric.labels(**labels).set(value)
        key = tuple(sorted(labels.items()))
        delta = value - self._gauge_values.get(key, 0.0)
        if delta:
            self._instrument().add(delta, labels)
        self._gauge_values[key] = value


def _bridged(kind: MetricKind, name: str, description: str, labels: Sequence[str], **options: Any) -> MetricBridge:
    prom_type = {"counter": Counter, "histogram": Histogram, "gauge": Gauge}[kind]
    return MetricBridge(
        prom_type(name, description, list(labels), **options),
        otel_name=name,
        otel_description=description,
        otel_kind=kind,
    )


SEARCH_LATENCY = _bridged(
    "histogram",
    "fc_search_query_latency_seconds",
    "Search query latency",
    ("channel", "kind"),
    buckets=LATENCY_BUCKETS,
)
CHANNEL_REFRESHES = _bridged(
    "counter",
    "fc_search_channel_refreshes_total",
    "Channel refresh ticks by outcome",
    ("channel", "status"),
)
CHANNEL_ACTIVE = _bridged(
    "gauge",
    "fc_search_channel_active",
    "Channel serves content (1=active, 0=inactive)",
    ("channel",),
)
INDEXED_DOCUMENTS = _bridged(
    "gauge",
    "fc_search_indexed_documents",
    "Documents in a channel index",
    ("channel", "kind"),
)


@contextmanager
def track_latency(histogram: MetricBridge, **labels: str) -> Generator[None, None, None]:
    """Observe the wall time of the block, including when it raises."""
    start = time.perf_counter()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.perf_counter() - start)


def get_metrics() -> bytes:
    """Prometheus text exposition of every registered collector."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST


def start_metrics_server(port: int, addr: str = "0.0.0.0") -> tuple[WSGIServer, Thread]:
    """Serve the Prometheus exposition on ``http://addr:port/`` from a daemon thread.

    Call ``shutdown()`` and ``server_close()`` on the returned server to stop it.
    """
    server, thread = start_http_server(port, addr=addr)
    logger.info("Prometheus metrics served on %s:%d", addr, server.server_port)
    return server, thread
