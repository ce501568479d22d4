"""
Tests for the pure scoring helpers: score codec, match points, rating
averages and the MOTM tally.
"""

import math

import pytest

from footsquad.utils.scoring import MotmCalculator, RatingCalculator, ScoreCalculator


class TestScoreCalculator:
    def test_format_and_parse(self):
        assert ScoreCalculator.format_score(3, 1) == "3-1"
        assert ScoreCalculator.parse_score("10-0") == (10, 0)

    @pytest.mark.parametrize("value", [-1, 1.5, "2", True, None])
    def test_validate_goals_rejects_bad_values(self, value):
        with pytest.raises(ValueError):
            ScoreCalculator.validate_goals(value)

    def test_validate_goals_accepts_zero(self):
        assert ScoreCalculator.validate_goals(0) == 0

    @pytest.mark.parametrize("score", ["3", "3-1-2", "a-1", "-1-2", ""])
    def test_parse_rejects_malformed(self, score):
        with pytest.raises(ValueError):
            ScoreCalculator.parse_score(score)

    def test_win_loss_points(self):
        points = ScoreCalculator.calculate_match_points(3, 1)
        assert (points.points_a, points.points_b) == (3, 0)
        assert points.team_a_won and not points.team_b_won

        points = ScoreCalculator.calculate_match_points(0, 2)
        assert (points.points_a, points.points_b) == (0, 3)
        assert points.team_b_won and not points.team_a_won

    def test_draw_points(self):
        points = ScoreCalculator.calculate_match_points(3, 3)
        assert (points.points_a, points.points_b) == (1, 1)
        assert not points.team_a_won and not points.team_b_won


class TestRatingCalculator:
    def test_trimmed_mean_drops_extremes_from_five_ratings(self):
        assert RatingCalculator.trimmed_mean([1, 1, 4, 4, 5, 5, 5]) == 3.8

    def test_trimmed_mean_keeps_all_below_five_ratings(self):
        assert RatingCalculator.trimmed_mean([3, 4, 5]) == 4.0

    def test_trimmed_mean_exactly_five(self):
        # Drops 1 and 10, averages 5, 6, 7
        assert RatingCalculator.trimmed_mean([10, 5, 1, 6, 7]) == 6.0

    def test_trimmed_mean_empty(self):
        assert RatingCalculator.trimmed_mean([]) == 0.0

    def test_round_half_up(self):
        assert RatingCalculator.round_one_decimal(6.25) == 6.3
        assert RatingCalculator.round_one_decimal(6.24) == 6.2

    def test_average_rating_from_totals(self):
        assert RatingCalculator.average_rating(20, 3) == 6.7
        assert RatingCalculator.average_rating(0, 0) == 0.0

    def test_rating_budget(self):
        assert RatingCalculator.rating_budget(5) == 35
        assert RatingCalculator.rating_budget(0) == 0

    @pytest.mark.parametrize("value", [0, 10.5, -3, math.nan, "7", False])
    def test_validate_score_rejects_out_of_range(self, value):
        with pytest.raises(ValueError):
            RatingCalculator.validate_score(value)

    def test_validate_score_bounds(self):
        assert RatingCalculator.validate_score(1) == 1.0
        assert RatingCalculator.validate_score(10) == 10.0
        assert RatingCalculator.validate_score(7.5) == 7.5


class TestMotmCalculator:
    def test_clear_winner(self):
        tally = MotmCalculator.tally([1, 2, 1, 3, 1])
        assert tally.winner_id == 1
        assert tally.max_votes == 3
        assert tally.counts == {1: 3, 2: 1, 3: 1}

    def test_tie_goes_to_earliest_first_vote(self):
        assert MotmCalculator.tally([1, 2, 1, 2]).winner_id == 1
        assert MotmCalculator.tally([2, 1, 1, 2]).winner_id == 2

    def test_tie_reports_all_leaders(self):
        tally = MotmCalculator.tally([4, 5, 5, 4, 6])
        assert tally.leaders == [4, 5]
        assert tally.winner_id == 4

    def test_no_votes(self):
        tally = MotmCalculator.tally([])
        assert tally.winner_id is None
        assert tally.leaders == []
