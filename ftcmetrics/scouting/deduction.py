"""
Alliance deduction.

A scouting team usually watches one robot per alliance. The partner's
contribution is inferred from the official alliance score minus what the
scouted robot was measured to score, per phase when the breakdown is
available and from the total otherwise.

Outcomes are returned as `DeductionOutcome` values, never raised, so batch
callers can tell "try again later" from "nothing to do".
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ftcmetrics.etl.base import AllianceScore, UpstreamUnavailable
from ftcmetrics.etl.ftc_events import FTCEventsClient
from ftcmetrics.etl.transform import find_alliance, parse_alliance_score
from ftcmetrics.models import Match, ScoutingEntry, Team
from ftcmetrics.telemetry.metrics import record_deduction

logger = logging.getLogger(__name__)

ERR_ENTRY_NOT_FOUND = "Entry not found"
ERR_SCORES_UNAVAILABLE = "Match scores not available from FTC API or database"
ERR_ALLIANCE_NOT_FOUND = "Alliance data not found in match scores"
ERR_PARTNER_UNKNOWN = "Could not identify partner team"
ERR_DUPLICATE = "Scouting entry already exists for partner team in this match"
ERR_STORAGE = "Scouting data could not be read or saved"


class DeductionStatus(str, Enum):
    CREATED = "created"
    DUPLICATE = "duplicate"
    UNRESOLVED = "unresolved"
    NOT_FOUND = "not_found"


@dataclass
class DeductionOutcome:
    status: DeductionStatus
    error: Optional[str] = None
    retryable: bool = False
    total_only: bool = False
    entry: Optional[ScoutingEntry] = None

    @property
    def success(self) -> bool:
        return self.status == DeductionStatus.CREATED

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "status": self.status.value,
            "error": self.error,
            "retryable": self.retryable,
            "total_only": self.total_only,
        }
        if self.entry is not None:
            data["entry"] = self.entry.model_dump(mode="json")
        return data


@dataclass
class PartnerScores:
    auto: int
    teleop: int
    endgame: int
    total: int
    total_only: bool


def deduce_partner_scores(
    alliance: AllianceScore,
    scouted_auto: int,
    scouted_teleop: int,
    scouted_endgame: int,
    scouted_total: int,
) -> PartnerScores:
    """
    Partner share of an alliance score.

    Per phase when the alliance reports any non-zero phase points; otherwise
    only the total is deduced and phases are reported as zero. Results never
    go below zero.
    """
    phases = (alliance.auto, alliance.teleop, alliance.endgame)
    has_phases = any(p is not None and p > 0 for p in phases)

    if has_phases:
        auto = max(0, (alliance.auto or 0) - scouted_auto)
        teleop = max(0, (alliance.teleop or 0) - scouted_teleop)
        endgame = max(0, (alliance.endgame or 0) - scouted_endgame)
        return PartnerScores(auto, teleop, endgame, auto + teleop + endgame, total_only=False)

    return PartnerScores(0, 0, 0, max(0, alliance.total - scouted_total), total_only=True)


def _score_from_match_record(match: Match) -> dict:
    """Shape a persisted match like an upstream score payload."""
    alliances = [
        {"alliance": "Red", "totalPoints": match.red_score, "team1": match.red1, "team2": match.red2},
        {"alliance": "Blue", "totalPoints": match.blue_score, "team1": match.blue1, "team2": match.blue2},
    ]
    details = match.score_details or {}
    breakdown = details.get("alliances") or details.get("matchScores")
    if isinstance(breakdown, list):
        for source in breakdown:
            if not isinstance(source, dict):
                continue
            target = alliances[0] if str(source.get("alliance", "")).lower() == "red" else alliances[1]
            for key in ("autoPoints", "dcPoints", "teleopPoints", "endgamePoints", "teleopBasePoints"):
                if isinstance(source.get(key), (int, float)):
                    target[key] = source[key]
    return {"matchLevel": match.tournament_level, "matchNumber": match.match_number, "alliances": alliances}


class AllianceDeductionService:
    """Creates deduced partner entries from official alliance scores."""

    def __init__(self, client: FTCEventsClient, session_factory):
        self._client = client
        self._session_factory = session_factory

    async def _upstream_score(self, event_code: str, match_number: int) -> Optional[tuple[dict, str]]:
        for level in ("qual", "playoff"):
            try:
                payload = await self._client.get_scores(event_code, level)
            except UpstreamUnavailable as e:
                logger.info(f"[DEDUCTION] {level} scores unavailable for {event_code}: {e}")
                continue
            for score in payload.get("matchScores") or []:
                if score.get("matchNumber") == match_number:
                    return score, level
        return None

    async def _stored_score(self, session, event_code: str, match_number: int) -> Optional[tuple[dict, str]]:
        result = await session.execute(
            select(Match).where(Match.event_code == event_code, Match.match_number == match_number)
        )
        match = result.scalars().first()
        if match is None or match.red_score is None or match.blue_score is None:
            return None
        level = "qual" if "QUAL" in (match.tournament_level or "").upper() else "playoff"
        return _score_from_match_record(match), level

    async def _schedule_teams(self, event_code: str, level: str, match_number: int, color: str) -> list[int]:
        try:
            payload = await self._client.get_schedule(event_code, level)
        except UpstreamUnavailable as e:
            logger.info(f"[DEDUCTION] Schedule unavailable for {event_code}: {e}")
            return []
        for scheduled in payload.get("schedule") or []:
            if scheduled.get("matchNumber") != match_number:
                continue
            stations = {t.get("station"): t.get("teamNumber") for t in scheduled.get("teams") or []}
            return [stations.get(f"{color}1"), stations.get(f"{color}2")]
        return []

    async def perform_alliance_deduction(self, entry_id: str) -> DeductionOutcome:
        """Deduce and persist the partner entry for one scouting entry."""
        try:
            outcome = await self._deduce(entry_id)
        except SQLAlchemyError as e:
            logger.warning(f"[DEDUCTION] Database error while deducing from {entry_id}: {e}")
            outcome = DeductionOutcome(DeductionStatus.UNRESOLVED, error=ERR_STORAGE, retryable=True)
        record_deduction(outcome.status.value)
        if outcome.success:
            logger.info(
                f"[DEDUCTION] Created partner entry {outcome.entry.id} from {entry_id} "
                f"(total_only={outcome.total_only})"
            )
        else:
            logger.info(f"[DEDUCTION] {entry_id}: {outcome.status.value} ({outcome.error})")
        return outcome

    async def _deduce(self, entry_id: str) -> DeductionOutcome:
        async with self._session_factory() as session:
            entry = await session.get(ScoutingEntry, entry_id)
            if entry is None:
                return DeductionOutcome(DeductionStatus.NOT_FOUND, error=ERR_ENTRY_NOT_FOUND)
            scouted_team = await session.get(Team, entry.scouted_team_id)
            if scouted_team is None:
                return DeductionOutcome(DeductionStatus.NOT_FOUND, error=ERR_ENTRY_NOT_FOUND)

            resolved = await self._upstream_score(entry.event_code, entry.match_number)
            if resolved is None:
                resolved = await self._stored_score(session, entry.event_code, entry.match_number)
            if resolved is None:
                return DeductionOutcome(DeductionStatus.UNRESOLVED, error=ERR_SCORES_UNAVAILABLE, retryable=True)
            score, level = resolved

            color = "Red" if entry.alliance.upper() == "RED" else "Blue"
            alliance_raw = find_alliance(score, color)
            alliance = parse_alliance_score(alliance_raw) if alliance_raw else None
            if alliance is None:
                return DeductionOutcome(DeductionStatus.UNRESOLVED, error=ERR_ALLIANCE_NOT_FOUND)

            roster = [alliance_raw.get("team1"), alliance_raw.get("team2")]
            if not all(roster):
                scheduled = await self._schedule_teams(entry.event_code, level, entry.match_number, color)
                roster = [scheduled[i] if i < len(scheduled) and scheduled[i] else roster[i] for i in range(2)]

            scouted_number = scouted_team.team_number
            partner_number = roster[1] if roster[0] == scouted_number else roster[0]
            if not partner_number or partner_number == scouted_number:
                return DeductionOutcome(DeductionStatus.UNRESOLVED, error=ERR_PARTNER_UNKNOWN, retryable=True)

            result = await session.execute(select(Team).where(Team.team_number == partner_number))
            partner_team = result.scalar_one_or_none()
            if partner_team is not None:
                existing = await session.execute(
                    select(ScoutingEntry.id).where(
                        ScoutingEntry.scouted_team_id == partner_team.id,
                        ScoutingEntry.event_code == entry.event_code,
                        ScoutingEntry.match_number == entry.match_number,
                        ScoutingEntry.scouting_team_id == entry.scouting_team_id,
                    )
                )
                if existing.first() is not None:
                    return DeductionOutcome(DeductionStatus.DUPLICATE, error=ERR_DUPLICATE)

            partner = deduce_partner_scores(
                alliance, entry.auto_score, entry.teleop_score, entry.endgame_score, entry.total_score
            )

            if partner_team is None:
                partner_team = Team(team_number=partner_number, name=f"Team {partner_number}")
                session.add(partner_team)
                await session.flush()

            partner_entry = ScoutingEntry(
                scouter_id=entry.scouter_id,
                scouting_team_id=entry.scouting_team_id,
                scouted_team_id=partner_team.id,
                event_code=entry.event_code,
                match_number=entry.match_number,
                alliance=entry.alliance,
                auto_score=partner.auto,
                teleop_score=partner.teleop,
                endgame_score=partner.endgame,
                total_score=partner.total,
                alliance_notes=entry.alliance_notes,
                is_deduced=True,
                deduced_from_id=entry.id,
                deduction_mode="total_only" if partner.total_only else "phase",
            )
            session.add(partner_entry)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return DeductionOutcome(DeductionStatus.DUPLICATE, error=ERR_DUPLICATE)
            except SQLAlchemyError as e:
                await session.rollback()
                logger.warning(f"[DEDUCTION] Commit failed for partner of {entry_id}: {e}")
                return DeductionOutcome(DeductionStatus.UNRESOLVED, error=ERR_STORAGE, retryable=True)

            await session.refresh(partner_entry)
            return DeductionOutcome(
                DeductionStatus.CREATED, total_only=partner.total_only, entry=partner_entry
            )

    async def retry_deductions(self, event_code: str, scouting_team_id: int) -> dict:
        """
        Re-run deduction for every directly scouted entry of a team at an event.

        Returns:
            {"deducted", "skipped", "failed", "total"}. Duplicates count as skipped.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                select(ScoutingEntry.id).where(
                    ScoutingEntry.event_code == event_code,
                    ScoutingEntry.scouting_team_id == scouting_team_id,
                    ScoutingEntry.is_deduced == False,  # noqa: E712
                )
            )
            entry_ids = list(result.scalars().all())

        deducted = skipped = failed = 0
        for entry_id in entry_ids:
            outcome = await self.perform_alliance_deduction(entry_id)
            if outcome.success:
                deducted += 1
            elif outcome.status == DeductionStatus.DUPLICATE:
                skipped += 1
            else:
                failed += 1

        logger.info(
            f"[DEDUCTION] Retry {event_code} team={scouting_team_id}: "
            f"deducted={deducted} skipped={skipped} failed={failed} total={len(entry_ids)}"
        )
        return {"deducted": deducted, "skipped": skipped, "failed": failed, "total": len(entry_ids)}
