"""Team performance estimators: OPR, EPA and the match predictor."""

from ftcmetrics.stats.epa import EPAConfig, EPAResult, calculate_epa, get_epa_rankings, get_team_epa
from ftcmetrics.stats.opr import OPRResult, calculate_opr, get_opr_rankings, get_team_opr
from ftcmetrics.stats.predict import MatchPrediction, PredictorConfig, predict_match

__all__ = [
    "EPAConfig",
    "EPAResult",
    "calculate_epa",
    "get_epa_rankings",
    "get_team_epa",
    "OPRResult",
    "calculate_opr",
    "get_opr_rankings",
    "get_team_opr",
    "MatchPrediction",
    "PredictorConfig",
    "predict_match",
]
