"""Per-event analytics."""

from ftcmetrics.analytics.service import EventAnalyticsService

__all__ = ["EventAnalyticsService"]
