"""
Tests for alliance deduction.

Arithmetic is tested directly; the service is tested against an in-memory
database with a mocked FTC client.
"""

from unittest.mock import AsyncMock, MagicMock

from helpers import score_payload
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from ftcmetrics.etl.base import AllianceScore, UpstreamUnavailable
from ftcmetrics.models import Match, ScoutingEntry, Team
from ftcmetrics.scouting.deduction import (
    ERR_DUPLICATE,
    ERR_ENTRY_NOT_FOUND,
    ERR_PARTNER_UNKNOWN,
    ERR_SCORES_UNAVAILABLE,
    ERR_STORAGE,
    AllianceDeductionService,
    DeductionStatus,
    deduce_partner_scores,
)

EVENT = "USTXCMP"


# =============================================================================
# ARITHMETIC
# =============================================================================


class TestDeducePartnerScores:
    def test_per_phase(self):
        alliance = AllianceScore(total=60, auto=20, teleop=30, endgame=10)
        partner = deduce_partner_scores(alliance, 12, 19, 10, 41)

        assert (partner.auto, partner.teleop, partner.endgame) == (8, 11, 0)
        assert partner.total == 19
        assert not partner.total_only

    def test_total_only_clamped(self):
        alliance = AllianceScore(total=20)
        partner = deduce_partner_scores(alliance, 0, 0, 0, 25)

        assert partner.total == 0
        assert partner.total_only
        assert (partner.auto, partner.teleop, partner.endgame) == (0, 0, 0)

    def test_zero_phases_fall_back_to_total(self):
        alliance = AllianceScore(total=50, auto=0, teleop=0, endgame=0)
        partner = deduce_partner_scores(alliance, 5, 5, 5, 15)

        assert partner.total_only
        assert partner.total == 35

    def test_phase_never_negative(self):
        alliance = AllianceScore(total=30, auto=5, teleop=20, endgame=5)
        partner = deduce_partner_scores(alliance, 10, 10, 10, 30)

        assert (partner.auto, partner.teleop, partner.endgame) == (0, 10, 0)
        assert partner.total == 10


# =============================================================================
# SERVICE
# =============================================================================


def make_client(qual=None, playoff=None, schedule=None):
    """FTC client mock. Unset score levels raise UpstreamUnavailable."""

    async def get_scores(event_code, level="qual"):
        payload = qual if level == "qual" else playoff
        if payload is None:
            raise UpstreamUnavailable("no scores", status_code=404)
        return payload

    client = MagicMock()
    client.get_scores = AsyncMock(side_effect=get_scores)
    client.get_schedule = AsyncMock(return_value=schedule or {"schedule": []})
    return client


async def seed_entry(session_factory, scouted=100, alliance="RED", scores=(12, 19, 10, 41), match_number=5):
    """Create a scouting team, a scouted team and one directly scouted entry."""
    async with session_factory() as session:
        scouting_team = Team(team_number=8569, name="RoboKnights")
        scouted_team = Team(team_number=scouted, name=f"Team {scouted}")
        session.add_all([scouting_team, scouted_team])
        await session.flush()
        entry = ScoutingEntry(
            scouter_id="user-1",
            scouting_team_id=scouting_team.id,
            scouted_team_id=scouted_team.id,
            event_code=EVENT,
            match_number=match_number,
            alliance=alliance,
            auto_score=scores[0],
            teleop_score=scores[1],
            endgame_score=scores[2],
            total_score=scores[3],
        )
        session.add(entry)
        await session.commit()
        return entry.id, scouting_team.id


def red_60(red_teams=(100, 200)):
    return {
        "matchScores": [
            score_payload(5, 60, 45, red_teams=red_teams, blue_teams=(300, 400),
                          red_phases=(20, 30, 10), blue_phases=(10, 25, 10)),
        ]
    }


class TestPerformAllianceDeduction:
    async def test_creates_phase_entry(self, session_factory):
        entry_id, _ = await seed_entry(session_factory)
        service = AllianceDeductionService(make_client(qual=red_60()), session_factory)

        outcome = await service.perform_alliance_deduction(entry_id)

        assert outcome.status == DeductionStatus.CREATED
        assert outcome.success
        partner = outcome.entry
        assert (partner.auto_score, partner.teleop_score, partner.endgame_score) == (8, 11, 0)
        assert partner.total_score == 19
        assert partner.is_deduced
        assert partner.deduced_from_id == entry_id
        assert partner.deduction_mode == "phase"
        assert partner.alliance == "RED"

        async with session_factory() as session:
            team = (await session.execute(select(Team).where(Team.team_number == 200))).scalar_one()
            assert team.name == "Team 200"
            assert partner.scouted_team_id == team.id

    async def test_second_call_is_duplicate(self, session_factory):
        entry_id, _ = await seed_entry(session_factory)
        service = AllianceDeductionService(make_client(qual=red_60()), session_factory)

        await service.perform_alliance_deduction(entry_id)
        outcome = await service.perform_alliance_deduction(entry_id)

        assert outcome.status == DeductionStatus.DUPLICATE
        assert outcome.error == ERR_DUPLICATE
        assert not outcome.retryable

    async def test_playoff_scores_used_when_not_in_qual(self, session_factory):
        entry_id, _ = await seed_entry(session_factory)
        service = AllianceDeductionService(make_client(qual={"matchScores": []}, playoff=red_60()), session_factory)

        outcome = await service.perform_alliance_deduction(entry_id)
        assert outcome.success

    async def test_stored_match_fallback_total_only(self, session_factory):
        entry_id, _ = await seed_entry(session_factory, scores=(0, 0, 0, 25))
        async with session_factory() as session:
            session.add(Match(
                event_code=EVENT, match_number=5, red1=100, red2=200, blue1=300, blue2=400,
                red_score=20, blue_score=40,
            ))
            await session.commit()
        service = AllianceDeductionService(make_client(), session_factory)

        outcome = await service.perform_alliance_deduction(entry_id)

        assert outcome.success
        assert outcome.total_only
        assert outcome.entry.total_score == 0
        assert outcome.entry.deduction_mode == "total_only"

    async def test_partner_from_schedule(self, session_factory):
        entry_id, _ = await seed_entry(session_factory)
        schedule = {
            "schedule": [
                {
                    "matchNumber": 5,
                    "teams": [
                        {"teamNumber": 100, "station": "Red1"},
                        {"teamNumber": 250, "station": "Red2"},
                        {"teamNumber": 300, "station": "Blue1"},
                        {"teamNumber": 400, "station": "Blue2"},
                    ],
                }
            ]
        }
        client = make_client(qual=red_60(red_teams=(0, 0)), schedule=schedule)
        service = AllianceDeductionService(client, session_factory)

        outcome = await service.perform_alliance_deduction(entry_id)

        assert outcome.success
        client.get_schedule.assert_awaited_once_with(EVENT, "qual")
        async with session_factory() as session:
            partner_team = await session.get(Team, outcome.entry.scouted_team_id)
            assert partner_team.team_number == 250

    async def test_partner_unknown_is_retryable(self, session_factory):
        entry_id, _ = await seed_entry(session_factory)
        service = AllianceDeductionService(make_client(qual=red_60(red_teams=(0, 0))), session_factory)

        outcome = await service.perform_alliance_deduction(entry_id)

        assert outcome.status == DeductionStatus.UNRESOLVED
        assert outcome.error == ERR_PARTNER_UNKNOWN
        assert outcome.retryable

    async def test_scores_unavailable_is_retryable(self, session_factory):
        entry_id, _ = await seed_entry(session_factory)
        service = AllianceDeductionService(make_client(), session_factory)

        outcome = await service.perform_alliance_deduction(entry_id)

        assert outcome.status == DeductionStatus.UNRESOLVED
        assert outcome.error == ERR_SCORES_UNAVAILABLE
        assert outcome.retryable

    async def test_missing_entry(self, session_factory):
        service = AllianceDeductionService(make_client(qual=red_60()), session_factory)

        outcome = await service.perform_alliance_deduction("does-not-exist")

        assert outcome.status == DeductionStatus.NOT_FOUND
        assert outcome.error == ERR_ENTRY_NOT_FOUND

    async def test_to_dict(self, session_factory):
        entry_id, _ = await seed_entry(session_factory)
        service = AllianceDeductionService(make_client(qual=red_60()), session_factory)

        data = (await service.perform_alliance_deduction(entry_id)).to_dict()

        assert data["success"] is True
        assert data["status"] == "created"
        assert data["entry"]["total_score"] == 19

    async def test_partner_entry_reads_back(self, session_factory):
        entry_id, _ = await seed_entry(session_factory)
        service = AllianceDeductionService(make_client(qual=red_60()), session_factory)

        outcome = await service.perform_alliance_deduction(entry_id)

        async with session_factory() as session:
            stored = await session.get(ScoutingEntry, outcome.entry.id)
            original = await session.get(ScoutingEntry, entry_id)
        assert stored.total_score == 19
        assert stored.created_at is not None
        assert original.created_at is not None

    async def test_commit_failure_is_retryable(self, session_factory, monkeypatch):
        entry_id, _ = await seed_entry(session_factory)
        service = AllianceDeductionService(make_client(qual=red_60()), session_factory)
        monkeypatch.setattr(
            AsyncSession, "commit",
            AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("database is locked"))),
        )

        outcome = await service.perform_alliance_deduction(entry_id)

        assert outcome.status == DeductionStatus.UNRESOLVED
        assert outcome.error == ERR_STORAGE
        assert outcome.retryable
        assert outcome.to_dict()["success"] is False


class TestRetryDeductions:
    async def test_counts(self, session_factory):
        entry_id, scouting_team_id = await seed_entry(session_factory)
        service = AllianceDeductionService(make_client(qual=red_60()), session_factory)

        first = await service.retry_deductions(EVENT, scouting_team_id)
        second = await service.retry_deductions(EVENT, scouting_team_id)

        assert first == {"deducted": 1, "skipped": 0, "failed": 0, "total": 1}
        # The deduced entry itself is never re-deduced.
        assert second == {"deducted": 0, "skipped": 1, "failed": 0, "total": 1}

    async def test_failures_counted(self, session_factory):
        _, scouting_team_id = await seed_entry(session_factory)
        service = AllianceDeductionService(make_client(), session_factory)

        result = await service.retry_deductions(EVENT, scouting_team_id)
        assert result == {"deducted": 0, "skipped": 0, "failed": 1, "total": 1}

        async with session_factory() as session:
            rows = (await session.execute(select(ScoutingEntry))).scalars().all()
            assert len(rows) == 1

    async def test_database_errors_counted_as_failed(self, session_factory, monkeypatch):
        _, scouting_team_id = await seed_entry(session_factory)
        service = AllianceDeductionService(make_client(qual=red_60()), session_factory)
        monkeypatch.setattr(
            AsyncSession, "commit",
            AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("database is locked"))),
        )

        result = await service.retry_deductions(EVENT, scouting_team_id)

        assert result == {"deducted": 0, "skipped": 0, "failed": 1, "total": 1}
