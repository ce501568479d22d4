"""
Error taxonomy for match coordination with user-friendly messages.

Every operation either returns a complete result or raises one of these.
``user_message`` is safe to show to players as-is.
"""

class FootsquadError(Exception):
    """Base exception for all match coordination errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

class NotFoundError(FootsquadError):
    """Raised when a match, player, team or roster entry does not exist."""

class ForbiddenError(FootsquadError):
    """Raised when the caller does not hold the role an action needs."""

class InvalidStateError(FootsquadError):
    """Raised when the match is not in a status that allows the action."""

class CapacityExceededError(FootsquadError):
    """Raised when a roster side has no free places."""

class BudgetExceededError(FootsquadError):
    """Raised when a rating batch spends more than the allowed budget."""

class AlreadyDoneError(FootsquadError):
    """Raised for duplicate votes, rating batches, joins and proposals."""

class InvalidInputError(FootsquadError):
    """Raised when submitted values are malformed or out of range."""

class MatchNotFoundError(NotFoundError):
    """Raised when a match id does not resolve."""
    def __init__(self, match_id: int):
        super().__init__(
            f"Match {match_id} not found",
            "❌ This match no longer exists."
        )
        self.match_id = match_id

class AlreadyInMatchError(AlreadyDoneError):
    """Raised when a player already holds a roster entry for the match."""
    def __init__(self, match_id: int, player_id: int, join_status: str):
        super().__init__(
            f"Player {player_id} already has a {join_status} entry in Match {match_id}",
            "❌ You have already asked to join this match."
        )
        self.match_id = match_id
        self.player_id = player_id

class SideFullError(CapacityExceededError):
    """Raised when the requested side already has every place approved."""
    def __init__(self, match_id: int, side: str, capacity: int):
        super().__init__(
            f"Side {side} of Match {match_id} is full ({capacity} players)",
            f"❌ Team {side} is full ({capacity}/{capacity})."
        )
        self.match_id = match_id
        self.side = side

class CaptainAlreadyMemberError(AlreadyDoneError):
    """Raised when a side's captain asks to join a match they are seated in."""
    def __init__(self, match_id: int, player_id: int):
        super().__init__(
            f"Captain {player_id} is already seated in Match {match_id}",
            "❌ Captains are already in their team's roster."
        )
        self.match_id = match_id
        self.player_id = player_id
