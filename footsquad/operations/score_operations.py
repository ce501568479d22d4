"""
Score Operations

Two-captain score agreement. Each captain submits the result as an
"X-Y" string (side A goals first). Equal strings confirm the result and
award points; different strings count as a conflict. After the first
conflict both captains must resubmit; a second conflict ends the match as
a null result with no points.
"""

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from footsquad.config import Config
from footsquad.constants import ScoreConstants
from footsquad.database.models import (
    JoinStatus, Match, MatchStatus, StatKind, TeamSide
)
from footsquad.operations.match_lifecycle import (
    LockedMatchOperations, Outcome, lock_match, require_status, transition
)
from footsquad.operations.permissions import captain_side, load_side_teams
from footsquad.operations.roster_operations import get_roster_entries
from footsquad.services.notifications import (
    MatchEvent, RatingOpen, ScoreConfirmed, ScoreConflict, ScoreNull, ScoreRequested
)
from footsquad.utils.exceptions import ForbiddenError, InvalidInputError, MatchNotFoundError
from footsquad.utils.scoring import ScoreCalculator
from footsquad.utils.timeutil import utc_now

SCORING_STATUSES = (MatchStatus.CONFIRMED, MatchStatus.IN_PROGRESS)


class ScoreOutcome(Enum):
    WAITING = "waiting"
    CONFIRMED = "confirmed"
    CONFLICT = "conflict"
    NULL_RESULT = "null_result"


@dataclass
class ScoreSubmissionResult:
    """Result of one captain's score submission"""
    outcome: ScoreOutcome
    match_id: int
    status: MatchStatus
    conflict_count: int
    score_a: Optional[int] = None
    score_b: Optional[int] = None


@dataclass
class ScoreStatus:
    """
    Score agreement progress as one caller may see it.

    ``my_submission`` is only ever the caller's own string; the opposing
    captain's submission is reported as a flag so it cannot be copied.
    """
    match_id: int
    status: MatchStatus
    submitted_by_a: bool
    submitted_by_b: bool
    conflict_count: int
    score_a: Optional[int] = None
    score_b: Optional[int] = None
    my_side: Optional[TeamSide] = None
    my_submission: Optional[str] = None


class ScoreOperations(LockedMatchOperations):
    """Score submission and agreement for confirmed matches"""

    async def submit_score(self, match_id: int, captain_id: int,
                           score_a: int, score_b: int) -> ScoreSubmissionResult:
        """
        Submit the result for the caller's side.

        Reading both submissions and deciding the outcome happens under the
        match lock, so two captains submitting at the same moment can never
        both award points or both count a conflict.

        Args:
            match_id: Match being scored
            captain_id: Captain of side A or side B
            score_a: Goals scored by side A
            score_b: Goals scored by side B

        Returns:
            ScoreSubmissionResult with outcome waiting, confirmed, conflict or null_result

        Raises:
            InvalidInputError: If a score is negative or not an integer
            ForbiddenError: If the caller captains neither side
            InvalidStateError: If the match is not confirmed or in progress
        """
        try:
            score_a = ScoreCalculator.validate_goals(score_a)
            score_b = ScoreCalculator.validate_goals(score_b)
        except ValueError as e:
            raise InvalidInputError(str(e), "❌ Scores must be whole numbers of 0 or more.")
        submission = ScoreCalculator.format_score(score_a, score_b)

        async def _submit(session: AsyncSession) -> Outcome:
            match = await lock_match(session, match_id)
            require_status(match, SCORING_STATUSES, "submit a score for")

            side = await captain_side(session, match, captain_id)
            if side is None:
                raise ForbiddenError(
                    f"Player {captain_id} captains neither side of Match {match_id}",
                    "❌ Only the two captains can submit the score."
                )

            if side is TeamSide.A:
                match.score_submitted_by_a = submission
            else:
                match.score_submitted_by_b = submission
            if match.status == MatchStatus.CONFIRMED:
                transition(match, MatchStatus.IN_PROGRESS)

            teams = await load_side_teams(session, match)
            other = match.score_submitted_by_b if side is TeamSide.A else match.score_submitted_by_a

            if other is None:
                await session.flush()
                self.logger.info(f"Match {match_id}: side {side.value} submitted {submission}, waiting")
                opposing = teams[side.opposite]
                return Outcome(
                    result=self._result(match, ScoreOutcome.WAITING),
                    events=[ScoreRequested(
                        match_id=match_id,
                        player_id=opposing.captain_id,
                        team_id=opposing.id,
                        round=match.score_conflict_count
                    )]
                )

            if other == submission:
                events = await self._confirm(session, match, score_a, score_b, teams)
                return Outcome(result=self._result(match, ScoreOutcome.CONFIRMED), events=events)

            return self._conflict(match, teams)

        return await self.run_locked(match_id, _submit)

    async def get_score_status(self, match_id: int, caller_id: Optional[int] = None) -> ScoreStatus:
        """
        Score agreement progress for a match.

        Raises:
            MatchNotFoundError: If the match does not exist
        """
        async with self.db.get_session() as session:
            match = await session.get(Match, match_id)
            if not match:
                raise MatchNotFoundError(match_id)

            my_side = None
            if caller_id is not None:
                my_side = await captain_side(session, match, caller_id)

            my_submission = None
            if my_side is TeamSide.A:
                my_submission = match.score_submitted_by_a
            elif my_side is TeamSide.B:
                my_submission = match.score_submitted_by_b

            return ScoreStatus(
                match_id=match.id,
                status=match.status,
                submitted_by_a=match.score_submitted_by_a is not None,
                submitted_by_b=match.score_submitted_by_b is not None,
                conflict_count=match.score_conflict_count,
                score_a=match.score_a,
                score_b=match.score_b,
                my_side=my_side,
                my_submission=my_submission
            )

    async def expire_locked(self, session: AsyncSession, match: Match) -> List[MatchEvent]:
        """
        End an unresolved match as a null result (caller holds the lock).

        A confirmed match with no submissions passes through in_progress so
        the lifecycle is never skipped.
        """
        if match.status == MatchStatus.CONFIRMED:
            transition(match, MatchStatus.IN_PROGRESS)
        transition(match, MatchStatus.NULL_RESULT)
        self._clear_submissions(match)
        match.ratings_open = False
        match.motm_voting_open = False
        await session.flush()

        teams = await load_side_teams(session, match)
        self.logger.info(f"Match {match.id} expired without an agreed score: null result")
        return self._null_events(match, teams)

    # ============================================================================
    # Outcomes
    # ============================================================================

    async def _confirm(self, session: AsyncSession, match: Match, score_a: int, score_b: int,
                       teams) -> List[MatchEvent]:
        now = utc_now()
        transition(match, MatchStatus.COMPLETED)
        match.score_a = score_a
        match.score_b = score_b
        match.completed_at = now
        match.ratings_open = True
        match.motm_voting_open = True
        match.ratings_closed_at = now + timedelta(hours=Config.RATINGS_WINDOW_HOURS)
        await session.flush()

        await self._award_match_points(session, match)

        self.logger.info(f"Match {match.id} confirmed {score_a}-{score_b}, points awarded")

        events: List[MatchEvent] = []
        for team in teams.values():
            events.append(ScoreConfirmed(
                match_id=match.id, player_id=team.captain_id, team_id=team.id,
                score_a=score_a, score_b=score_b
            ))
        for team in teams.values():
            events.append(RatingOpen(match_id=match.id, player_id=team.captain_id, team_id=team.id))
        return events

    def _conflict(self, match: Match, teams) -> Outcome:
        submitted_by_a = match.score_submitted_by_a
        submitted_by_b = match.score_submitted_by_b
        match.score_conflict_count += 1
        self._clear_submissions(match)

        if match.score_conflict_count >= ScoreConstants.MAX_CONFLICTS:
            transition(match, MatchStatus.NULL_RESULT)
            self.logger.info(
                f"Match {match.id}: second conflict ({submitted_by_a} vs {submitted_by_b}), null result"
            )
            return Outcome(
                result=self._result(match, ScoreOutcome.NULL_RESULT),
                events=self._null_events(match, teams)
            )

        self.logger.info(
            f"Match {match.id}: conflict {match.score_conflict_count} "
            f"({submitted_by_a} vs {submitted_by_b}), resubmission required"
        )
        return Outcome(
            result=self._result(match, ScoreOutcome.CONFLICT),
            events=[
                ScoreConflict(
                    match_id=match.id, player_id=team.captain_id, team_id=team.id,
                    submitted_by_a=submitted_by_a, submitted_by_b=submitted_by_b,
                    conflict_count=match.score_conflict_count
                )
                for team in teams.values()
            ]
        )

    async def _award_match_points(self, session: AsyncSession, match: Match) -> None:
        """Apply win/draw/loss points to every approved player and the team totals"""
        points = ScoreCalculator.calculate_match_points(match.score_a, match.score_b)
        side_points = {TeamSide.A: points.points_a, TeamSide.B: points.points_b}
        side_won = {TeamSide.A: points.team_a_won, TeamSide.B: points.team_b_won}
        reason = "MATCH_WIN" if (points.team_a_won or points.team_b_won) else "MATCH_DRAW"

        for entry in await get_roster_entries(session, match.id, status=JoinStatus.APPROVED):
            await self.db.apply_stat_delta(
                session, StatKind.MATCHES, 1, "MATCH_PLAYED",
                player_id=entry.player_id, match_id=match.id
            )
            earned = side_points[entry.team_side]
            if earned:
                await self.db.apply_stat_delta(
                    session, StatKind.POINTS, earned, reason,
                    player_id=entry.player_id, match_id=match.id
                )

        for side in (TeamSide.A, TeamSide.B):
            team_id = match.team_id_for_side(side)
            await self.db.apply_stat_delta(
                session, StatKind.MATCHES, 1, "MATCH_PLAYED", team_id=team_id, match_id=match.id
            )
            if side_won[side]:
                await self.db.apply_stat_delta(
                    session, StatKind.WINS, 1, "MATCH_WIN", team_id=team_id, match_id=match.id
                )

    # ============================================================================
    # Helpers
    # ============================================================================

    @staticmethod
    def _clear_submissions(match: Match) -> None:
        match.score_submitted_by_a = None
        match.score_submitted_by_b = None

    @staticmethod
    def _null_events(match: Match, teams) -> List[MatchEvent]:
        return [
            ScoreNull(match_id=match.id, player_id=team.captain_id, team_id=team.id)
            for team in teams.values()
        ]

    @staticmethod
    def _result(match: Match, outcome: ScoreOutcome) -> ScoreSubmissionResult:
        return ScoreSubmissionResult(
            outcome=outcome,
            match_id=match.id,
            status=match.status,
            conflict_count=match.score_conflict_count,
            score_a=match.score_a,
            score_b=match.score_b
        )
