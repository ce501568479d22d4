"""
Product-wide constants for match coordination.

These values are product decisions, not tuning knobs: changing any of them
changes how points, ratings and score agreement behave for every match.
"""

class PointsConstants:
    """Points awarded per player when a result is confirmed."""
    
    WIN_POINTS = 3
    DRAW_POINTS = 1
    LOSS_POINTS = 0
    
    # Bonus on top of match points for the Man of the Match
    MOTM_BONUS_POINTS = 2

class RatingConstants:
    """Constants for post-match peer ratings."""
    
    MIN_SCORE = 1
    MAX_SCORE = 10
    
    # Maximum average a captain may hand out across the opposing roster
    BUDGET_PER_OPPONENT = 7
    
    # Ratings needed before the single highest and lowest are dropped
    TRIM_THRESHOLD = 5

class ScoreConstants:
    """Constants for the two-captain score agreement."""
    
    # Second disagreement ends the match as a null result
    MAX_CONFLICTS = 2
    
    SCORE_SEPARATOR = "-"

class FormatConstants:
    """Players allowed per side for each match format."""
    
    PLAYERS_PER_TEAM = {
        "5v5": 5,
        "8v8": 8,
        "11v11": 11,
    }
