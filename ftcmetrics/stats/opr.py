"""OPR (Offensive Power Rating) via least squares.

Each played match contributes two equations, one per alliance:

    rating[team1] + rating[team2] = alliance score

The overdetermined system M·x = s is solved through the normal equations
(MᵗM)·x = Mᵗs. When MᵗM is rank-deficient or badly conditioned (a team seen
only with one partner, fewer matches than teams) a ridge term λ·I is added to
the diagonal. That is a smoothing choice: the solution shrinks slightly
toward zero instead of the solve failing.

DPR uses the opponent's score as right-hand side; CCWM = OPR - DPR.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Iterable, Optional

import numpy as np

from ftcmetrics.etl.base import MatchResult

logger = logging.getLogger(__name__)

DEFAULT_RIDGE_LAMBDA = 1e-3
DEFAULT_CONDITION_LIMIT = 1e10


@dataclass
class OPRResult:
    team_number: int
    opr: float = 0.0
    auto_opr: float = 0.0
    teleop_opr: float = 0.0
    endgame_opr: float = 0.0
    dpr: float = 0.0
    ccwm: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def solve_least_squares(
    design: np.ndarray,
    rhs: np.ndarray,
    ridge_lambda: float = DEFAULT_RIDGE_LAMBDA,
    condition_limit: float = DEFAULT_CONDITION_LIMIT,
) -> np.ndarray:
    """Solve (MᵗM)·x = Mᵗs, regularizing the diagonal when ill-posed."""
    ata = design.T @ design
    atb = design.T @ rhs
    n = ata.shape[0]

    rank = np.linalg.matrix_rank(ata)
    condition = np.linalg.cond(ata) if rank == n else np.inf
    if rank < n or condition > condition_limit:
        logger.debug(
            f"[OPR] Ill-posed system (rank={rank}/{n}, cond={condition:.3g}); "
            f"adding ridge lambda={ridge_lambda}"
        )
        ata = ata + ridge_lambda * np.eye(n)

    return np.linalg.solve(ata, atb)


def _design_matrix(matches: list[MatchResult], index: dict[int, int]) -> np.ndarray:
    design = np.zeros((2 * len(matches), len(index)))
    for row, match in enumerate(matches):
        for team in match.red_teams:
            design[2 * row, index[team]] = 1.0
        for team in match.blue_teams:
            design[2 * row + 1, index[team]] = 1.0
    return design


def _rhs(matches: list[MatchResult], red_value, blue_value) -> np.ndarray:
    values = []
    for match in matches:
        values.append(red_value(match))
        values.append(blue_value(match))
    return np.array(values, dtype=float)


def calculate_opr(
    matches: list[MatchResult],
    teams: Iterable[int] = (),
    ridge_lambda: float = DEFAULT_RIDGE_LAMBDA,
    condition_limit: float = DEFAULT_CONDITION_LIMIT,
) -> dict[int, OPRResult]:
    """
    Compute OPR, phase OPRs, DPR and CCWM for every team.

    Args:
        matches: Played matches, in any order.
        teams: Optional roster. Teams listed here that never played are
            reported with all-zero ratings.

    Returns:
        Dict of team number -> OPRResult, values rounded to two decimals.
    """
    results: dict[int, OPRResult] = {int(t): OPRResult(team_number=int(t)) for t in teams}
    if not matches:
        return results

    universe = sorted({team for match in matches for team in match.teams()})
    index = {team: i for i, team in enumerate(universe)}

    design = _design_matrix(matches, index)
    opr = solve_least_squares(
        design, _rhs(matches, lambda m: m.red.total, lambda m: m.blue.total), ridge_lambda, condition_limit
    )
    dpr = solve_least_squares(
        design, _rhs(matches, lambda m: m.blue.total, lambda m: m.red.total), ridge_lambda, condition_limit
    )

    phase_matches = [m for m in matches if m.has_phases]
    phases = {}
    if phase_matches:
        phase_design = _design_matrix(phase_matches, index)
        for phase in ("auto", "teleop", "endgame"):
            rhs = _rhs(
                phase_matches,
                lambda m, p=phase: getattr(m.red, p),
                lambda m, p=phase: getattr(m.blue, p),
            )
            phases[phase] = solve_least_squares(phase_design, rhs, ridge_lambda, condition_limit)
    else:
        zeros = np.zeros(len(universe))
        phases = {"auto": zeros, "teleop": zeros, "endgame": zeros}

    for team, i in index.items():
        results[team] = OPRResult(
            team_number=team,
            opr=round(float(opr[i]), 2),
            auto_opr=round(float(phases["auto"][i]), 2),
            teleop_opr=round(float(phases["teleop"][i]), 2),
            endgame_opr=round(float(phases["endgame"][i]), 2),
            dpr=round(float(dpr[i]), 2),
            ccwm=round(float(opr[i] - dpr[i]), 2),
        )

    return results


def get_opr_rankings(matches: list[MatchResult], **kwargs) -> list[OPRResult]:
    """All teams sorted by OPR, highest first."""
    return sorted(calculate_opr(matches, **kwargs).values(), key=lambda r: (-r.opr, r.team_number))


def get_team_opr(matches: list[MatchResult], team_number: int, **kwargs) -> Optional[OPRResult]:
    return calculate_opr(matches, **kwargs).get(team_number)
