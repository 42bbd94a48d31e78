"""
Prometheus metrics for upstream ingestion, the tiered cache, rankings refresh
and alliance deduction.

Design principles:
- Low cardinality (controlled labels)
- Best-effort (never block main flow)

=============================================================================
CARDINALITY CONTROL
=============================================================================

ALLOWED LABELS (bounded sets):
- endpoint_class: "events", "teams", "schedule", "matches", "scores",
                  "rankings", "other"
- status_code:    "200", "401", "404", "429", "500", "0"
- error_code:     "timeout", "http_4xx", "http_5xx", "request_error",
                  "malformed_body", "rate_limit"
- result:         "fresh_hit", "miss", "stale_served", "store_error"
- status:         "ok", "error", "empty"
- outcome:        "created", "duplicate", "unresolved", "not_found"

FORBIDDEN AS LABELS: event codes, team numbers, match numbers, URLs,
entry ids. Use logs for those.
=============================================================================
"""

import logging

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

# =============================================================================
# UPSTREAM (FTC Events API)
# =============================================================================

ftc_upstream_requests_total = Counter(
    "ftc_upstream_requests_total",
    "Total requests to the FTC Events API",
    ["endpoint_class", "status_code"],
)

ftc_upstream_errors_total = Counter(
    "ftc_upstream_errors_total",
    "Total failed requests to the FTC Events API",
    ["endpoint_class", "error_code"],
)

ftc_upstream_latency_ms = Histogram(
    "ftc_upstream_latency_ms",
    "FTC Events API request latency in milliseconds",
    ["endpoint_class"],
    buckets=[10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 20000],
)

# =============================================================================
# TIERED CACHE
# =============================================================================

ftc_cache_lookups_total = Counter(
    "ftc_cache_lookups_total",
    "Tiered cache lookups by outcome",
    ["endpoint_class", "result"],
)

ftc_cache_stale_age_seconds = Histogram(
    "ftc_cache_stale_age_seconds",
    "Age of stale entries served after an upstream failure",
    ["endpoint_class"],
    buckets=[60, 300, 900, 1800, 3600, 7200, 21600, 86400],
)

# =============================================================================
# RANKINGS
# =============================================================================

rankings_refresh_total = Counter(
    "rankings_refresh_total",
    "Global rankings recomputations by status",
    ["status"],
)

rankings_refresh_duration_ms = Histogram(
    "rankings_refresh_duration_ms",
    "Global rankings recomputation duration in milliseconds",
    buckets=[1000, 5000, 15000, 30000, 60000, 120000, 300000, 600000],
)

rankings_teams = Gauge(
    "rankings_teams",
    "Teams in the latest rankings snapshot",
    ["metric"],
)

rankings_events_processed = Gauge(
    "rankings_events_processed",
    "Events contributing to the latest rankings snapshot",
)

# =============================================================================
# ALLIANCE DEDUCTION
# =============================================================================

deductions_total = Counter(
    "deductions_total",
    "Alliance deduction attempts by outcome",
    ["outcome"],
)


# =============================================================================
# HELPERS
# =============================================================================


def record_upstream_request(endpoint_class: str, status_code: int, latency_ms: float) -> None:
    """Record an FTC API request with latency."""
    try:
        ftc_upstream_requests_total.labels(
            endpoint_class=endpoint_class,
            status_code=str(status_code),
        ).inc()
        ftc_upstream_latency_ms.labels(endpoint_class=endpoint_class).observe(latency_ms)
    except Exception as e:
        logger.warning(f"Failed to record upstream request metric: {e}")


def record_upstream_error(endpoint_class: str, error_code: str) -> None:
    """Record a failed FTC API request."""
    try:
        ftc_upstream_errors_total.labels(
            endpoint_class=endpoint_class,
            error_code=error_code,
        ).inc()
    except Exception as e:
        logger.warning(f"Failed to record upstream error metric: {e}")


def record_cache_lookup(endpoint_class: str, result: str, stale_age_seconds: float = None) -> None:
    """Record a tiered cache lookup outcome."""
    try:
        ftc_cache_lookups_total.labels(endpoint_class=endpoint_class, result=result).inc()
        if stale_age_seconds is not None:
            ftc_cache_stale_age_seconds.labels(endpoint_class=endpoint_class).observe(stale_age_seconds)
    except Exception as e:
        logger.warning(f"Failed to record cache lookup metric: {e}")


def record_rankings_refresh(
    status: str,
    duration_ms: float,
    epa_teams: int = 0,
    opr_teams: int = 0,
    events_processed: int = 0,
) -> None:
    """Record a rankings recomputation."""
    try:
        rankings_refresh_total.labels(status=status).inc()
        rankings_refresh_duration_ms.observe(duration_ms)
        if status == "ok":
            rankings_teams.labels(metric="epa").set(epa_teams)
            rankings_teams.labels(metric="opr").set(opr_teams)
            rankings_events_processed.set(events_processed)
    except Exception as e:
        logger.warning(f"Failed to record rankings refresh metric: {e}")


def record_deduction(outcome: str) -> None:
    """Record an alliance deduction outcome."""
    try:
        deductions_total.labels(outcome=outcome).inc()
    except Exception as e:
        logger.warning(f"Failed to record deduction metric: {e}")


def get_metrics_text() -> tuple[str, str]:
    """
    Generate Prometheus metrics text output.

    Returns:
        Tuple of (content, content_type)
    """
    return generate_latest(REGISTRY).decode("utf-8"), CONTENT_TYPE_LATEST
