"""
Telemetry module.

Provides Prometheus metrics for:
- Upstream ingestion (requests, errors, latency)
- Tiered cache outcomes (fresh hits, misses, stale fallbacks)
- Rankings refresh and alliance deduction

and Sentry error tracking for scheduler jobs.
"""

from ftcmetrics.telemetry.metrics import (
    deductions_total,
    ftc_cache_lookups_total,
    ftc_upstream_errors_total,
    ftc_upstream_latency_ms,
    ftc_upstream_requests_total,
    get_metrics_text,
    rankings_refresh_total,
    record_cache_lookup,
    record_deduction,
    record_rankings_refresh,
    record_upstream_error,
    record_upstream_request,
)

__all__ = [
    "ftc_upstream_requests_total",
    "ftc_upstream_errors_total",
    "ftc_upstream_latency_ms",
    "ftc_cache_lookups_total",
    "rankings_refresh_total",
    "deductions_total",
    "record_upstream_request",
    "record_upstream_error",
    "record_cache_lookup",
    "record_rankings_refresh",
    "record_deduction",
    "get_metrics_text",
]
