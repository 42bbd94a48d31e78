"""Global EPA/OPR rankings: computation, caching and location-scoped reads."""

from ftcmetrics.rankings.service import LookupResult, LookupStatus, RankingsService
from ftcmetrics.rankings.snapshot import OprRankingEntry, RankingEntry, RankingsSnapshot

__all__ = [
    "LookupResult",
    "LookupStatus",
    "RankingsService",
    "OprRankingEntry",
    "RankingEntry",
    "RankingsSnapshot",
]
