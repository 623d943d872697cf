"""Prometheus metrics configuration for callguard services.

Provides a unified `configure_metrics()` function that sets up Prometheus
metrics collection for the gateway and the redaction worker.

Environment Variables:
    METRICS_ENABLED: Enable/disable metrics collection (default: true)

Metric Naming Convention:
    callguard_{subsystem}_{metric_name}_{unit}
"""

from __future__ import annotations

import os
from typing import Any

# Global state
_metrics_enabled: bool = False
_service_name: str = ""
_metrics_initialized: bool = False

# Metric registries by subsystem
_gateway_metrics: dict[str, Any] = {}
_redaction_metrics: dict[str, Any] = {}


def is_metrics_enabled() -> bool:
    """Check if metrics collection is enabled."""
    return _metrics_enabled


def get_service_name() -> str:
    """Get the configured service name."""
    return _service_name


def configure_metrics(service_name: str) -> None:
    """Configure Prometheus metrics for a callguard service.

    Redaction metrics are created for every service, since the gateway
    process also hosts the redaction worker pool. HTTP metrics are only
    created for the gateway.

    Args:
        service_name: Identifier for this service (e.g. "gateway", "cli")

    Environment Variables:
        METRICS_ENABLED: Set to "false" to disable metrics (default: "true")
    """
    global _metrics_enabled, _service_name, _metrics_initialized

    enabled = os.environ.get("METRICS_ENABLED", "true").lower() == "true"
    _metrics_enabled = enabled
    _service_name = service_name

    if not enabled:
        return

    if _metrics_initialized:
        return

    _metrics_initialized = True

    _init_redaction_metrics()
    if service_name == "gateway":
        _init_gateway_metrics()


def _init_gateway_metrics() -> None:
    """Initialize Gateway-specific metrics."""
    from prometheus_client import Counter, Histogram

    _gateway_metrics["requests_total"] = Counter(
        "callguard_gateway_requests_total",
        "Total HTTP requests",
        ["method", "endpoint", "status_code"],
    )

    _gateway_metrics["request_duration_seconds"] = Histogram(
        "callguard_gateway_request_duration_seconds",
        "Request latency in seconds (time to first byte for streams)",
        ["method", "endpoint"],
        buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    )

    _gateway_metrics["audio_bytes_served_total"] = Counter(
        "callguard_gateway_audio_bytes_served_total",
        "Recording bytes promised to clients",
        ["source"],
    )


def _init_redaction_metrics() -> None:
    """Initialize redaction pipeline metrics."""
    from prometheus_client import Counter, Histogram

    _redaction_metrics["runs_total"] = Counter(
        "callguard_redaction_runs_total",
        "Redaction runs by final status",
        ["status", "error_code"],
    )

    _redaction_metrics["run_duration_seconds"] = Histogram(
        "callguard_redaction_run_duration_seconds",
        "Redaction run time from lock acquisition to final status",
        buckets=(0.1, 0.5, 1, 2.5, 5, 10, 30, 60, 120, 300),
    )

    _redaction_metrics["segments_total"] = Counter(
        "callguard_redaction_segments_total",
        "Merged segments muted in recordings",
    )

    _redaction_metrics["remote_replacements_total"] = Counter(
        "callguard_redaction_remote_replacements_total",
        "Remote recording replacements by outcome",
        ["outcome"],
    )


# =============================================================================
# Gateway Metrics
# =============================================================================


def inc_gateway_requests(method: str, endpoint: str, status_code: int) -> None:
    """Increment the gateway requests counter.

    Args:
        method: HTTP method (GET, POST, etc.)
        endpoint: Normalized request endpoint path
        status_code: HTTP response status code
    """
    if not _metrics_enabled or "requests_total" not in _gateway_metrics:
        return
    _gateway_metrics["requests_total"].labels(
        method=method, endpoint=endpoint, status_code=str(status_code)
    ).inc()


def observe_gateway_request_duration(
    method: str, endpoint: str, duration: float
) -> None:
    """Record gateway request duration."""
    if not _metrics_enabled or "request_duration_seconds" not in _gateway_metrics:
        return
    _gateway_metrics["request_duration_seconds"].labels(
        method=method, endpoint=endpoint
    ).observe(duration)


def inc_gateway_audio_bytes(source: str, bytes_count: int) -> None:
    """Increment the served recording bytes counter.

    Args:
        source: Where the recording came from ("local" or "sftp")
        bytes_count: Bytes in the response body
    """
    if not _metrics_enabled or "audio_bytes_served_total" not in _gateway_metrics:
        return
    _gateway_metrics["audio_bytes_served_total"].labels(source=source).inc(bytes_count)


# =============================================================================
# Redaction Metrics
# =============================================================================


def inc_redaction_runs(status: str, error_code: str | None = None) -> None:
    """Increment the redaction runs counter.

    Args:
        status: Final redaction status
        error_code: Failure code, empty for successful runs
    """
    if not _metrics_enabled or "runs_total" not in _redaction_metrics:
        return
    _redaction_metrics["runs_total"].labels(
        status=status, error_code=error_code or ""
    ).inc()


def observe_redaction_duration(duration: float) -> None:
    """Record redaction run duration in seconds."""
    if not _metrics_enabled or "run_duration_seconds" not in _redaction_metrics:
        return
    _redaction_metrics["run_duration_seconds"].observe(duration)


def inc_redaction_segments(count: int) -> None:
    """Increment the muted segments counter."""
    if not _metrics_enabled or "segments_total" not in _redaction_metrics:
        return
    _redaction_metrics["segments_total"].inc(count)


def inc_remote_replacements(outcome: str) -> None:
    """Increment the remote replacement counter.

    Args:
        outcome: replaced, failed or inconsistent
    """
    if not _metrics_enabled or "remote_replacements_total" not in _redaction_metrics:
        return
    _redaction_metrics["remote_replacements_total"].labels(outcome=outcome).inc()
