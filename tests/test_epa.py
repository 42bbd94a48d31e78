"""
Tests for the chronological EPA fold.

Fixed-baseline configs are used where exact values are asserted so the
starting rating does not depend on the match set.
"""

import math
import random

import pytest
from helpers import exact_event_matches, make_match

from ftcmetrics.stats.epa import (
    EPAConfig,
    calculate_baseline,
    calculate_epa,
    get_epa_rankings,
    get_team_epa,
)

FIXED_ZERO = EPAConfig(baseline_mode="fixed")


def series(team_scores: list[int], start: float = 0.0, opponent_score: int = 0):
    """Matches where team 1 (with partner 2) scores each value in turn, one minute apart."""
    return [
        make_match(n, (1, 2), (3, 4), score, opponent_score, timestamp=start + 60 * n)
        for n, score in enumerate(team_scores, start=1)
    ]


class TestKFactor:
    def test_decays_to_floor(self):
        config = EPAConfig()
        assert config.k_factor(0) == 0.5
        assert config.k_factor(5) == pytest.approx(0.5 * math.exp(-0.5))
        assert config.k_factor(100) == 0.1

    def test_monotone_non_increasing(self):
        config = EPAConfig()
        ks = [config.k_factor(n) for n in range(40)]
        assert all(a >= b for a, b in zip(ks, ks[1:]))


class TestFold:
    def test_single_match_update(self):
        """Zero baseline, k=0.5: rating = 0.5 * (40 / 2)."""
        matches = [make_match(1, (1, 2), (3, 4), 40, 20, red_phases=(8, 24, 8), blue_phases=(4, 12, 4))]
        results = calculate_epa(matches, FIXED_ZERO)

        assert results[1].epa == 10.0
        assert results[1].auto_epa == 2.0
        assert results[1].teleop_epa == 6.0
        assert results[1].endgame_epa == 2.0
        assert results[3].epa == 5.0
        assert results[1].match_count == 1

    def test_match_count_per_team(self):
        results = calculate_epa(exact_event_matches())
        assert {t: r.match_count for t, r in results.items()} == {1: 3, 2: 3, 3: 3, 4: 3}

    def test_input_order_irrelevant(self):
        matches = series([20, 40, 60, 80, 30])
        shuffled = matches[:]
        random.Random(11).shuffle(shuffled)

        assert calculate_epa(matches) == calculate_epa(shuffled)

    def test_timestamp_beats_match_number(self):
        """Match 2 was played first: the later, lower-numbered match gets the larger weight."""
        early = make_match(2, (1, 2), (3, 4), 100, 0, timestamp=1000.0)
        late = make_match(1, (1, 2), (3, 4), 0, 0, timestamp=2000.0)
        results = calculate_epa([late, early], FIXED_ZERO)

        # 0 -> 25 (k=0.5), then 25 + 0.5*e^-0.1 * (0 - 25)
        expected = 25 - 0.5 * math.exp(-0.1) * 25
        assert results[1].epa == round(expected, 2)

    def test_untimestamped_matches_sort_last(self):
        timed = make_match(5, (1, 2), (3, 4), 100, 0, timestamp=1000.0)
        untimed = make_match(1, (1, 2), (3, 4), 0, 0)
        results = calculate_epa([untimed, timed], FIXED_ZERO)

        assert results[1].epa == round(25 - 0.5 * math.exp(-0.1) * 25, 2)

    def test_phase_ratings_hold_without_breakdown(self):
        matches = [
            make_match(1, (1, 2), (3, 4), 40, 20, red_phases=(8, 24, 8), blue_phases=(4, 12, 4), timestamp=1.0),
            make_match(2, (1, 2), (3, 4), 80, 20, timestamp=2.0),
        ]
        results = calculate_epa(matches, FIXED_ZERO)

        assert results[1].auto_epa == 2.0
        assert results[1].epa > 10.0

    def test_recent_epa_is_mean_of_last_five(self):
        results = calculate_epa(series([20] * 7), FIXED_ZERO)
        assert results[1].recent_epa is not None
        assert results[1].recent_epa <= results[1].epa


class TestBaseline:
    def test_dynamic_baseline_is_per_robot_average(self):
        matches = [make_match(1, (1, 2), (3, 4), 40, 20), make_match(2, (1, 3), (2, 4), 60, 40)]
        baseline = calculate_baseline(matches, EPAConfig())
        assert baseline["total"] == pytest.approx((40 + 20 + 60 + 40) / 8)

    def test_fixed_baseline(self):
        config = EPAConfig(baseline_mode="fixed", baseline_auto=2, baseline_teleop=5, baseline_endgame=3)
        baseline = calculate_baseline(exact_event_matches(), config)
        assert baseline == {"auto": 2, "teleop": 5, "endgame": 3, "total": 10}


class TestTrend:
    def test_rising_scores_trend_up(self):
        results = calculate_epa(series([20, 40, 60, 80]), FIXED_ZERO)
        assert results[1].trend == "up"

    def test_falling_scores_trend_down(self):
        config = EPAConfig(baseline_mode="fixed", baseline_teleop=50)
        results = calculate_epa(series([20, 20, 20, 20]), config)
        assert results[1].trend == "down"

    def test_flat_scores_stable(self):
        config = EPAConfig(baseline_mode="fixed", baseline_teleop=10)
        results = calculate_epa(series([20, 20, 20, 20, 20], opponent_score=20), config)
        assert results[1].trend == "stable"
        assert results[3].trend == "stable"

    def test_fewer_matches_than_window_stable(self):
        results = calculate_epa(series([20, 80]), FIXED_ZERO)
        assert results[1].match_count == 2
        assert results[1].trend == "stable"


class TestLookups:
    def test_rankings_descending(self):
        ranking = get_epa_rankings(exact_event_matches(), FIXED_ZERO)
        epas = [r.epa for r in ranking]
        assert epas == sorted(epas, reverse=True)

    def test_unknown_team_is_zero(self):
        result = get_team_epa(exact_event_matches(), 12345)
        assert result.team_number == 12345
        assert result.epa == 0.0
        assert result.match_count == 0
        assert result.trend == "stable"
