"""Telemetry utilities for exporting run metrics."""

from .metrics import (
    configure_metrics,
    record_run_duration,
    increment_runs_started,
    record_pr_processed,
    record_source_retry,
    record_degraded_file,
    shutdown_metrics,
    collect_prometheus_metrics,
)

__all__ = [
    "configure_metrics",
    "record_run_duration",
    "increment_runs_started",
    "record_pr_processed",
    "record_source_retry",
    "record_degraded_file",
    "shutdown_metrics",
    "collect_prometheus_metrics",
]
