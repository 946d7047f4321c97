"""OpenTelemetry metrics instrumentation helpers."""

from __future__ import annotations

import logging

from opentelemetry import metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource

from survival.core.config import settings

_logger = logging.getLogger(__name__)

_metrics_enabled = False
_meter = None
_provider: MeterProvider | None = None
_run_duration_hist = None
_runs_started_counter = None
_prs_processed_counter = None
_source_retry_counter = None
_degraded_files_counter = None


def configure_metrics() -> None:
    """Initialise the metrics provider if enabled via settings."""

    global _metrics_enabled, _meter, _provider
    global _run_duration_hist, _runs_started_counter, _prs_processed_counter
    global _source_retry_counter, _degraded_files_counter

    if not settings.otel_enabled:
        return
    if _metrics_enabled:
        return

    exporter_name = settings.otel_exporter.lower().strip()
    metric_readers = []

    if exporter_name == "console":
        exporter = ConsoleMetricExporter()
        metric_readers.append(PeriodicExportingMetricReader(exporter))
    elif exporter_name == "prometheus":
        try:
            from opentelemetry.exporter.prometheus import PrometheusMetricReader  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError(
                "Prometheus exporter selected but opentelemetry-exporter-prometheus is not installed."
            ) from exc
        metric_readers.append(PrometheusMetricReader())
    elif exporter_name == "otlp":
        try:
            from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError(
                "OTLP exporter selected but opentelemetry-exporter-otlp is not installed."
            ) from exc
        endpoint = settings.otel_otlp_endpoint
        exporter = OTLPMetricExporter(endpoint=endpoint) if endpoint else OTLPMetricExporter()
        metric_readers.append(PeriodicExportingMetricReader(exporter))
    else:
        _logger.warning("Unsupported OTEL exporter '%s'; defaulting to console", exporter_name)
        metric_readers.append(PeriodicExportingMetricReader(ConsoleMetricExporter()))

    _provider = MeterProvider(metric_readers=metric_readers, resource=Resource.create({"service.name": "code-survival"}))
    metrics.set_meter_provider(_provider)
    _meter = metrics.get_meter("survival")
    _run_duration_hist = _meter.create_histogram(
        name="survival.run.duration",
        unit="s",
        description="Analysis run execution duration in seconds",
    )
    _runs_started_counter = _meter.create_counter(
        name="survival.runs.started",
        unit="1",
        description="Total analysis runs started",
    )
    _prs_processed_counter = _meter.create_counter(
        name="survival.prs.processed",
        unit="1",
        description="Pull requests processed across runs",
    )
    _source_retry_counter = _meter.create_counter(
        name="survival.source.retries",
        unit="1",
        description="Retries of diff and blame collaborator calls",
    )
    _degraded_files_counter = _meter.create_counter(
        name="survival.files.degraded",
        unit="1",
        description="Files recorded without analysis because a source was unavailable",
    )
    _metrics_enabled = True


def record_run_duration(seconds: float, status: str) -> None:
    if _metrics_enabled and _run_duration_hist is not None:
        _run_duration_hist.record(max(seconds, 0.0), {"status": status})


def increment_runs_started() -> None:
    if _metrics_enabled and _runs_started_counter is not None:
        _runs_started_counter.add(1)


def record_pr_processed() -> None:
    if _metrics_enabled and _prs_processed_counter is not None:
        _prs_processed_counter.add(1)


def record_source_retry(error_type: str) -> None:
    if _metrics_enabled and _source_retry_counter is not None:
        _source_retry_counter.add(1, {"error": error_type})


def record_degraded_file(reason: str) -> None:
    if _metrics_enabled and _degraded_files_counter is not None:
        _degraded_files_counter.add(1, {"reason": reason})


def collect_prometheus_metrics() -> tuple[bytes, str]:
    """Render the default Prometheus registry for the /metrics endpoint."""

    from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

    return generate_latest(), CONTENT_TYPE_LATEST


def shutdown_metrics() -> None:
    global _metrics_enabled, _provider
    if _metrics_enabled and _provider is not None:
        try:
            _provider.shutdown()
        except Exception:  # pragma: no cover - defensive
            _logger.exception("Failed to shutdown metrics provider")
        finally:
            _metrics_enabled = False
            _provider = None
