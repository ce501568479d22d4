"""
Pure scoring helpers shared by the score, rating and MOTM operations.

Nothing here touches the database, so every rule can be checked in
isolation: the "X-Y" score codec, win/draw/loss points, the outlier
trimmed rating average and the Man-of-the-Match tally.
"""

import math
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from footsquad.constants import PointsConstants, RatingConstants, ScoreConstants


@dataclass(frozen=True)
class MatchPoints:
    """Points and win flags for both sides of a confirmed result"""
    points_a: int
    points_b: int
    team_a_won: bool
    team_b_won: bool


@dataclass(frozen=True)
class MotmTally:
    """Outcome of counting MOTM votes"""
    counts: Dict[int, int]
    leaders: List[int]
    winner_id: Optional[int]
    max_votes: int


class ScoreCalculator:
    """Score string codec and points table for confirmed results"""

    @staticmethod
    def validate_goals(value) -> int:
        """
        Validate a single goal count.

        Args:
            value: Submitted goal count

        Returns:
            The goal count as an int

        Raises:
            ValueError: If the value is not a non-negative integer
        """
        # bool is an int subclass; True must not count as one goal
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"Score must be an integer, got {value!r}")
        if value < 0:
            raise ValueError(f"Score cannot be negative, got {value}")
        return value

    @staticmethod
    def format_score(score_a: int, score_b: int) -> str:
        """Encode a result as the "X-Y" submission string"""
        return f"{score_a}{ScoreConstants.SCORE_SEPARATOR}{score_b}"

    @staticmethod
    def parse_score(score: str) -> Tuple[int, int]:
        """
        Decode an "X-Y" submission string.

        Raises:
            ValueError: If the string is not two non-negative integers
        """
        parts = score.split(ScoreConstants.SCORE_SEPARATOR)
        if len(parts) != 2 or not all(part.isdigit() for part in parts):
            raise ValueError(f"Malformed score string {score!r}")
        return int(parts[0]), int(parts[1])

    @staticmethod
    def calculate_match_points(score_a: int, score_b: int) -> MatchPoints:
        """
        Calculate per-player points for each side.

        Win = 3, draw = 1, loss = 0.
        """
        team_a_won = score_a > score_b
        team_b_won = score_b > score_a

        if team_a_won:
            points_a, points_b = PointsConstants.WIN_POINTS, PointsConstants.LOSS_POINTS
        elif team_b_won:
            points_a, points_b = PointsConstants.LOSS_POINTS, PointsConstants.WIN_POINTS
        else:
            points_a = points_b = PointsConstants.DRAW_POINTS

        return MatchPoints(
            points_a=points_a,
            points_b=points_b,
            team_a_won=team_a_won,
            team_b_won=team_b_won
        )


class RatingCalculator:
    """Rating validation and outlier-resistant averaging"""

    @staticmethod
    def validate_score(value) -> float:
        """
        Validate a single rating score.

        Raises:
            ValueError: If the score is not a number in [1, 10]
        """
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"Rating must be a number, got {value!r}")
        if math.isnan(value) or not RatingConstants.MIN_SCORE <= value <= RatingConstants.MAX_SCORE:
            raise ValueError(
                f"Rating must be between {RatingConstants.MIN_SCORE} and "
                f"{RatingConstants.MAX_SCORE}, got {value}"
            )
        return float(value)

    @staticmethod
    def rating_budget(opponent_count: int) -> int:
        """Maximum total a captain may distribute across the opposing roster"""
        return opponent_count * RatingConstants.BUDGET_PER_OPPONENT

    @staticmethod
    def round_one_decimal(value: float) -> float:
        """Round half up to one decimal place"""
        return math.floor(value * 10 + 0.5) / 10

    @staticmethod
    def trimmed_mean(scores: Sequence[float]) -> float:
        """
        Average a player's ratings, dropping one highest and one lowest
        once there are at least five of them.

        Args:
            scores: Individual rating scores for one player

        Returns:
            Average rounded to one decimal, 0.0 for no scores
        """
        if not scores:
            return 0.0

        filtered = list(scores)
        if len(filtered) >= RatingConstants.TRIM_THRESHOLD:
            filtered.sort()
            filtered = filtered[1:-1]

        return RatingCalculator.round_one_decimal(sum(filtered) / len(filtered))

    @staticmethod
    def average_rating(total_ratings: float, rating_count: int) -> float:
        """Running profile average from the stored totals"""
        if not rating_count:
            return 0.0
        return RatingCalculator.round_one_decimal(total_ratings / rating_count)


class MotmCalculator:
    """Man-of-the-Match tally"""

    @staticmethod
    def tally(voted_player_ids: Iterable[int]) -> MotmTally:
        """
        Count votes and pick the winner.

        Ties go to the candidate who received a vote first: candidates keep
        the order in which their first vote arrived, and the first one
        holding the highest count wins.

        Args:
            voted_player_ids: Voted player ids in submission order

        Returns:
            MotmTally with counts, all leaders and the single winner
        """
        counts = Counter(voted_player_ids)
        if not counts:
            return MotmTally(counts={}, leaders=[], winner_id=None, max_votes=0)

        max_votes = max(counts.values())
        leaders = [player_id for player_id, count in counts.items() if count == max_votes]

        return MotmTally(
            counts=dict(counts),
            leaders=leaders,
            winner_id=leaders[0],
            max_votes=max_votes
        )
