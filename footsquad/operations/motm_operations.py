"""
MOTM Operations

Man-of-the-Match voting. Every approved player on either side votes once
for another approved player. When the number of votes reaches the number
of eligible players the vote is finalized: the winner gets a MOTM award
and bonus points, and voting closes.

Tie policy: candidates are ranked by vote count, and among equal counts
the candidate whose first vote arrived earliest wins.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from footsquad.constants import PointsConstants
from footsquad.database.models import JoinStatus, Match, MotmVote, StatKind
from footsquad.operations.match_lifecycle import LockedMatchOperations, Outcome, lock_match
from footsquad.operations.roster_operations import get_roster_entries
from footsquad.services.notifications import MotmWinner
from footsquad.utils.exceptions import (
    AlreadyDoneError, ForbiddenError, InvalidStateError, MatchNotFoundError
)
from footsquad.utils.scoring import MotmCalculator


@dataclass
class MotmVoteResult:
    """Result of a single vote"""
    match_id: int
    votes_cast: int
    eligible_voters: int
    finalized: bool = False
    winner_id: Optional[int] = None


@dataclass
class MotmResults:
    """Current tally for a match"""
    match_id: int
    counts: Dict[int, int] = field(default_factory=dict)
    leaders: List[int] = field(default_factory=list)
    total_votes: int = 0
    eligible_voters: int = 0
    winner_id: Optional[int] = None
    voting_open: bool = False


class MotmOperations(LockedMatchOperations):
    """Man-of-the-Match votes and finalization"""

    async def vote(self, match_id: int, voter_id: int, voted_player_id: int) -> MotmVoteResult:
        """
        Cast a vote, finalizing the award when every eligible player has voted.

        Args:
            match_id: Completed match with voting open
            voter_id: Approved roster member casting the vote
            voted_player_id: Approved roster member receiving it

        Returns:
            MotmVoteResult; finalized and winner_id are set by the last vote

        Raises:
            ForbiddenError: For self-votes or players not on the approved roster
            InvalidStateError: If voting is closed
            AlreadyDoneError: If the voter already voted
        """
        if voter_id == voted_player_id:
            raise ForbiddenError(
                f"Player {voter_id} tried to vote for themselves in Match {match_id}",
                "❌ You cannot vote for yourself."
            )

        async def _vote(session: AsyncSession) -> Outcome:
            match = await lock_match(session, match_id)
            if not match.motm_voting_open:
                raise InvalidStateError(
                    f"MOTM voting is closed for Match {match_id}",
                    "❌ Voting is closed for this match."
                )

            eligible = await self._eligible_players(session, match_id)
            if voter_id not in eligible:
                raise ForbiddenError(
                    f"Player {voter_id} is not an approved player in Match {match_id}",
                    "❌ Only players in this match can vote."
                )
            if voted_player_id not in eligible:
                raise ForbiddenError(
                    f"Player {voted_player_id} is not an approved player in Match {match_id}",
                    "❌ You can only vote for players in this match."
                )

            votes = await self._get_votes(session, match_id)
            if any(v.voter_id == voter_id for v in votes):
                raise AlreadyDoneError(
                    f"Player {voter_id} already voted in Match {match_id}",
                    "❌ You have already voted."
                )

            vote = MotmVote(match_id=match_id, voter_id=voter_id, voted_player_id=voted_player_id)
            session.add(vote)
            await session.flush()
            votes.append(vote)

            result = MotmVoteResult(
                match_id=match_id,
                votes_cast=len(votes),
                eligible_voters=len(eligible)
            )
            self.logger.info(f"MOTM vote in Match {match_id}: {len(votes)}/{len(eligible)}")

            if len(votes) < len(eligible):
                return Outcome(result=result)

            events = await self._finalize(session, match, votes, eligible)
            result.finalized = True
            result.winner_id = match.motm_winner_id
            return Outcome(result=result, events=events)

        return await self.run_locked(match_id, _vote)

    async def get_results(self, match_id: int) -> MotmResults:
        """
        Raises:
            MatchNotFoundError: If the match does not exist
        """
        async with self.db.get_session() as session:
            match = await session.get(Match, match_id)
            if not match:
                raise MatchNotFoundError(match_id)

            votes = await self._get_votes(session, match_id)
            eligible = await self._eligible_players(session, match_id)
            tally = MotmCalculator.tally(v.voted_player_id for v in votes)

            return MotmResults(
                match_id=match_id,
                counts=tally.counts,
                leaders=tally.leaders,
                total_votes=len(votes),
                eligible_voters=len(eligible),
                winner_id=match.motm_winner_id,
                voting_open=match.motm_voting_open
            )

    async def has_voted(self, match_id: int, player_id: int) -> bool:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(MotmVote.id).where(
                    MotmVote.match_id == match_id,
                    MotmVote.voter_id == player_id
                )
            )
            return result.first() is not None

    async def _finalize(self, session: AsyncSession, match: Match,
                        votes: List[MotmVote], eligible: List[int]) -> List[MotmWinner]:
        tally = MotmCalculator.tally(v.voted_player_id for v in votes)
        winner_id = tally.winner_id

        match.motm_winner_id = winner_id
        match.motm_voting_open = False

        await self.db.apply_stat_delta(
            session, StatKind.MOTM, 1, "MOTM_AWARD", player_id=winner_id, match_id=match.id
        )
        await self.db.apply_stat_delta(
            session, StatKind.POINTS, PointsConstants.MOTM_BONUS_POINTS, "MOTM_AWARD",
            player_id=winner_id, match_id=match.id
        )

        if len(tally.leaders) > 1:
            self.logger.info(
                f"MOTM tie in Match {match.id} between {tally.leaders}, earliest first vote wins"
            )
        self.logger.info(f"MOTM for Match {match.id}: player {winner_id} with {tally.max_votes} vote(s)")

        return [
            MotmWinner(match_id=match.id, player_id=player_id,
                       winner_id=winner_id, votes=tally.max_votes)
            for player_id in eligible
        ]

    @staticmethod
    async def _eligible_players(session: AsyncSession, match_id: int) -> List[int]:
        entries = await get_roster_entries(session, match_id, status=JoinStatus.APPROVED)
        return [e.player_id for e in entries]

    @staticmethod
    async def _get_votes(session: AsyncSession, match_id: int) -> List[MotmVote]:
        """Votes in submission order"""
        result = await session.execute(
            select(MotmVote).where(MotmVote.match_id == match_id).order_by(MotmVote.id)
        )
        return list(result.scalars().all())
