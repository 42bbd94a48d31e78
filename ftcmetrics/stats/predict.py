"""Match outcome prediction from EPA ratings."""

import math
from dataclasses import asdict, dataclass
from typing import Mapping, Optional

from ftcmetrics.config import Settings
from ftcmetrics.stats.epa import EPAResult


@dataclass(frozen=True)
class PredictorConfig:
    logistic_scale: float = 10.0
    probability_floor: float = 0.01

    def __post_init__(self):
        # Reported probabilities have two decimals; a smaller floor would round to 0 or 1.
        if not 0.005 <= self.probability_floor < 0.5:
            raise ValueError(f"probability_floor must be in [0.005, 0.5), got {self.probability_floor}")
        if self.logistic_scale <= 0:
            raise ValueError(f"logistic_scale must be positive, got {self.logistic_scale}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "PredictorConfig":
        return cls(
            logistic_scale=settings.PREDICT_LOGISTIC_SCALE,
            probability_floor=settings.PREDICT_PROBABILITY_FLOOR,
        )


@dataclass
class MatchPrediction:
    predicted_red_score: float
    predicted_blue_score: float
    red_win_probability: float
    blue_win_probability: float
    predicted_winner: str  # "red", "blue" or "tie"
    margin: float

    def to_dict(self) -> dict:
        return asdict(self)


def _logistic(x: float) -> float:
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    z = math.exp(x)
    return z / (1.0 + z)


def win_probability(score_diff: float, config: Optional[PredictorConfig] = None) -> float:
    """Logistic of the differential, clamped to [floor, 1 - floor]. Zero gives 0.5."""
    config = config or PredictorConfig()
    p = _logistic(score_diff / config.logistic_scale)
    return min(1.0 - config.probability_floor, max(config.probability_floor, p))


def predict_match(
    epa_by_team: Mapping[int, EPAResult],
    red1: int,
    red2: int,
    blue1: int,
    blue2: int,
    config: Optional[PredictorConfig] = None,
) -> MatchPrediction:
    """
    Predict a 2v2 match from overall EPA ratings.

    Teams missing from `epa_by_team` count as zero.
    """

    def epa(team: int) -> float:
        result = epa_by_team.get(team)
        return result.epa if result is not None else 0.0

    red = epa(red1) + epa(red2)
    blue = epa(blue1) + epa(blue2)
    p_red = round(win_probability(red - blue, config), 2)

    if p_red > 0.5:
        winner = "red"
    elif p_red < 0.5:
        winner = "blue"
    else:
        winner = "tie"

    return MatchPrediction(
        predicted_red_score=round(red, 2),
        predicted_blue_score=round(blue, 2),
        red_win_probability=p_red,
        blue_win_probability=round(1.0 - p_red, 2),
        predicted_winner=winner,
        margin=round(abs(red - blue), 2),
    )
