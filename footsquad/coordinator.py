"""
MatchCoordinator - the caller-facing API for match coordination.

Wires the operations classes to one Database and NotificationService and
exposes each operation as an async method. Every method returns a complete
result object or raises a FootsquadError subclass; callers never see
partial state.
"""

from datetime import datetime
from typing import List, Optional, Union

from footsquad.database.database import Database
from footsquad.database.models import JoinStatus, Match, MatchFormat, MatchPlayer, MatchRequest, MatchType, TeamSide
from footsquad.operations.match_operations import MatchDetail, MatchOperations, OpponentAcceptanceResult
from footsquad.operations.motm_operations import MotmOperations, MotmResults, MotmVoteResult
from footsquad.operations.rating_operations import (
    PlayerRatingResult, RatingBatch, RatingOperations, RatingSubmissionResult
)
from footsquad.operations.roster_operations import (
    JoinDecisionResult, JoinRequestResult, RosterOperations
)
from footsquad.operations.score_operations import ScoreOperations, ScoreStatus, ScoreSubmissionResult
from footsquad.services.housekeeping import HousekeepingReport, HousekeepingService
from footsquad.services.notifications import NotificationService
from footsquad.utils.exceptions import MatchNotFoundError


class MatchCoordinator:
    """Single entry point over roster, lifecycle, score, rating and MOTM operations"""

    def __init__(self, db: Database, notifications: Optional[NotificationService] = None):
        self.db = db
        self.notifications = notifications or NotificationService(db.session_factory)

        self.matches = MatchOperations(db, self.notifications)
        self.roster = RosterOperations(db, self.notifications)
        self.scores = ScoreOperations(db, self.notifications)
        self.ratings = RatingOperations(db, self.notifications)
        self.motm = MotmOperations(db, self.notifications)
        self.housekeeping = HousekeepingService(db, self.matches, self.scores, self.ratings)

    # ============================================================================
    # Match lifecycle
    # ============================================================================

    async def create_match(self, captain_id: int, match_type: Union[MatchType, str],
                           match_format: Union[MatchFormat, str], city: str, pitch_name: str,
                           match_date: datetime, invite_team_id: Optional[int] = None) -> Match:
        return await self.matches.create_match(
            captain_id, match_type, match_format, city, pitch_name, match_date, invite_team_id
        )

    async def invite_team(self, match_id: int, captain_id: int, team_id: int) -> MatchRequest:
        return await self.matches.invite_team(match_id, captain_id, team_id)

    async def request_to_play(self, match_id: int, captain_id: int) -> MatchRequest:
        return await self.matches.request_to_play(match_id, captain_id)

    async def accept_opponent(self, match_id: int, proposal_id: int,
                              caller_id: int) -> OpponentAcceptanceResult:
        return await self.matches.accept_opponent(match_id, proposal_id, caller_id)

    async def decline_proposal(self, proposal_id: int, caller_id: int) -> MatchRequest:
        return await self.matches.decline_proposal(proposal_id, caller_id)

    async def cancel_match(self, match_id: int, reason: Optional[str] = None) -> Match:
        return await self.matches.cancel_match(match_id, reason)

    async def get_match(self, match_id: int) -> MatchDetail:
        """
        Raises:
            MatchNotFoundError: If the match does not exist
        """
        detail = await self.matches.get_match_detail(match_id)
        if detail is None:
            raise MatchNotFoundError(match_id)
        return detail

    async def get_open_matches(self, city: Optional[str] = None) -> List[Match]:
        return await self.matches.get_open_matches(city)

    # ============================================================================
    # Roster
    # ============================================================================

    async def request_join(self, match_id: int, player_id: int, team_id: int,
                           side: Union[TeamSide, str]) -> JoinRequestResult:
        return await self.roster.request_join(match_id, player_id, team_id, side)

    async def decide_join(self, match_id: int, captain_id: int, player_id: int,
                          decision: str) -> JoinDecisionResult:
        return await self.roster.decide(match_id, captain_id, player_id, decision)

    async def my_join_status(self, match_id: int, player_id: int) -> Optional[JoinStatus]:
        return await self.roster.my_join_status(match_id, player_id)

    async def get_pending_requests(self, match_id: int,
                                   side: Optional[Union[TeamSide, str]] = None) -> List[MatchPlayer]:
        """Join requests still waiting for a captain, oldest first"""
        return await self.roster.get_pending_requests(match_id, side)

    # ============================================================================
    # Score, ratings, MOTM
    # ============================================================================

    async def submit_score(self, match_id: int, captain_id: int,
                           score_a: int, score_b: int) -> ScoreSubmissionResult:
        return await self.scores.submit_score(match_id, captain_id, score_a, score_b)

    async def get_score_status(self, match_id: int, caller_id: Optional[int] = None) -> ScoreStatus:
        return await self.scores.get_score_status(match_id, caller_id)

    async def submit_ratings(self, match_id: int, rater_id: int,
                             ratings: RatingBatch) -> RatingSubmissionResult:
        return await self.ratings.submit_ratings(match_id, rater_id, ratings)

    async def get_rating_results(self, match_id: int) -> List[PlayerRatingResult]:
        return await self.ratings.get_rating_results(match_id)

    async def has_rated(self, match_id: int, player_id: int) -> bool:
        return await self.ratings.has_rated(match_id, player_id)

    async def get_player_average_rating(self, player_id: int) -> float:
        return await self.ratings.get_player_average_rating(player_id)

    async def vote_motm(self, match_id: int, voter_id: int, voted_player_id: int) -> MotmVoteResult:
        return await self.motm.vote(match_id, voter_id, voted_player_id)

    async def get_motm_results(self, match_id: int) -> MotmResults:
        return await self.motm.get_results(match_id)

    async def has_voted(self, match_id: int, player_id: int) -> bool:
        return await self.motm.has_voted(match_id, player_id)

    # ============================================================================
    # Sweeps
    # ============================================================================

    async def run_housekeeping(self, now: Optional[datetime] = None) -> HousekeepingReport:
        return await self.housekeeping.run_all(now)
