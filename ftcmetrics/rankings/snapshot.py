"""Serialized global rankings snapshots (one per metric)."""

import json
from dataclasses import asdict, dataclass, field, replace
from typing import Iterable, Optional, Union


@dataclass
class RankingEntry:
    rank: int
    team_number: int
    epa: float
    auto_epa: float
    teleop_epa: float
    endgame_epa: float
    match_count: int
    trend: str = "stable"


@dataclass
class OprRankingEntry:
    rank: int
    team_number: int
    opr: float
    auto_opr: float
    teleop_opr: float
    endgame_opr: float
    match_count: int


Entry = Union[RankingEntry, OprRankingEntry]

_ENTRY_TYPES = {"epa": RankingEntry, "opr": OprRankingEntry}


@dataclass
class RankingsSnapshot:
    """
    A complete ranking for one metric ("epa" or "opr").

    Replaced wholesale on every recomputation; never mutated in place.
    """

    metric: str
    season: int
    total_teams: int
    total_matches: int
    events_processed: int
    last_updated: str
    rankings: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> "RankingsSnapshot":
        entry_type = _ENTRY_TYPES[data["metric"]]
        return cls(
            metric=data["metric"],
            season=data["season"],
            total_teams=data["total_teams"],
            total_matches=data["total_matches"],
            events_processed=data["events_processed"],
            last_updated=data["last_updated"],
            rankings=[entry_type(**entry) for entry in data.get("rankings", [])],
        )

    @classmethod
    def from_json(cls, raw: str) -> "RankingsSnapshot":
        return cls.from_dict(json.loads(raw))

    def find(self, team_number: int) -> Optional[Entry]:
        for entry in self.rankings:
            if entry.team_number == team_number:
                return entry
        return None

    def restricted_to(self, entries: Iterable[Entry]) -> "RankingsSnapshot":
        """Copy holding only `entries`, ranks renumbered 1..N in their current order."""
        reranked = [replace(entry, rank=i) for i, entry in enumerate(entries, start=1)]
        return replace(self, total_teams=len(reranked), rankings=reranked)


def position(entries: list, team_number: int, key: Optional[str] = None) -> Optional[int]:
    """
    1-based position of a team in `entries`.

    With `key`, entries are first re-sorted by that attribute, highest first
    (ties keep their snapshot order).
    """
    ordered = sorted(entries, key=lambda e: -getattr(e, key)) if key else entries
    for i, entry in enumerate(ordered, start=1):
        if entry.team_number == team_number:
            return i
    return None
