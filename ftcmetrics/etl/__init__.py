"""Upstream FTC Events API access and match transformation."""

from ftcmetrics.etl.base import AllianceScore, MatchResult, UpstreamUnavailable
from ftcmetrics.etl.ftc_events import FTCEventsClient
from ftcmetrics.etl.transform import transform_matches

__all__ = [
    "AllianceScore",
    "MatchResult",
    "UpstreamUnavailable",
    "FTCEventsClient",
    "transform_matches",
]
