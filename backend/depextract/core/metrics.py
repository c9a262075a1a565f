"""
Prometheus Metrics Collection for the Extraction Worker

Metrics are process-local; each worker machine exposes its own registry.
"""

import logging
from importlib.metadata import version as get_version

from prometheus_client import Counter, Gauge, Histogram, Info, start_http_server

logger = logging.getLogger(__name__)

# =============================================================================
# Application Info Metrics
# =============================================================================

try:
    APP_VERSION = get_version("dependency-extraction")
except Exception:
    APP_VERSION = "unknown"

app_info = Info("dependency_extraction_app", "Application information")
app_info.info(
    {
        "version": APP_VERSION,
        "app_name": "Dependency Extraction Worker",
    }
)

# =============================================================================
# Worker Queue Metrics
# =============================================================================

worker_active_count = Gauge(
    "worker_active_count",
    "Number of active workers",
)

worker_jobs_claimed_total = Counter(
    "worker_jobs_claimed_total",
    "Total number of extraction jobs claimed by this machine",
)

worker_jobs_processed_total = Counter(
    "worker_jobs_processed_total",
    "Total number of jobs processed by workers",
    ["status"],
)

worker_job_duration_seconds = Histogram(
    "worker_job_duration_seconds",
    "Worker job processing duration in seconds",
    buckets=(1, 5, 10, 30, 60, 120, 300, 600, 1800, 3600),
)

# =============================================================================
# Pipeline Metrics
# =============================================================================

pipeline_stage_duration_seconds = Histogram(
    "pipeline_stage_duration_seconds",
    "Pipeline stage duration in seconds",
    ["stage", "outcome"],
    buckets=(0.1, 0.5, 1, 5, 10, 30, 60, 300, 900, 3600),
)

pipeline_retries_total = Counter(
    "pipeline_retries_total",
    "Total retry attempts for critical operations",
    ["operation"],
)

dependencies_synced_total = Counter(
    "dependencies_synced_total",
    "Total project dependency rows written",
    ["kind"],
)

vulnerabilities_persisted_total = Counter(
    "vulnerabilities_persisted_total",
    "Total vulnerability rows submitted for persistence",
)

# =============================================================================
# External API Metrics
# =============================================================================

external_api_requests_total = Counter(
    "external_api_requests_total",
    "Total external API requests by service",
    ["service"],
)

external_api_errors_total = Counter(
    "external_api_errors_total",
    "Total external API errors by service",
    ["service"],
)

external_api_duration_seconds = Histogram(
    "external_api_duration_seconds",
    "External API call duration in seconds",
    ["service"],
    buckets=(0.1, 0.5, 1, 2.5, 5, 10, 30, 60),
)


def start_metrics_server(port: int) -> None:
    """Expose the default registry over HTTP. A port of 0 disables the exporter."""
    if port <= 0:
        return
    start_http_server(port)
    logger.info(f"Prometheus metrics exposed on port {port}")
