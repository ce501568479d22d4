"""
Rating Operations

Post-match opponent ratings. Each side's captain rates the approved
opposing roster once, as a single batch, within the ratings window. The
batch total is capped at 7 per opponent so generous ratings have to be
spread rather than handed out at the maximum to everyone.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Tuple, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from footsquad.database.models import JoinStatus, Match, Player, Rating, StatKind
from footsquad.operations.match_lifecycle import LockedMatchOperations, Outcome, lock_match
from footsquad.operations.permissions import captain_side
from footsquad.operations.roster_operations import get_roster_entries, get_roster_entry
from footsquad.utils.exceptions import (
    AlreadyDoneError, BudgetExceededError, ForbiddenError, InvalidInputError,
    InvalidStateError, NotFoundError
)
from footsquad.utils.scoring import RatingCalculator
from footsquad.utils.timeutil import utc_now

RatingBatch = Union[Mapping[int, float], Iterable[Tuple[int, float]]]


@dataclass
class RatingSubmissionResult:
    """Result of a captain's rating batch"""
    match_id: int
    rater_id: int
    rated_count: int
    total_score: float
    budget: int


@dataclass
class PlayerRatingResult:
    """Public rating of one player for one match"""
    player_id: int
    avg_rating: float
    count: int


class RatingOperations(LockedMatchOperations):
    """Rating batches, per-match results and profile averages"""

    async def submit_ratings(self, match_id: int, rater_id: int,
                             ratings: RatingBatch) -> RatingSubmissionResult:
        """
        Submit the caller's single rating batch for the opposing roster.

        Args:
            match_id: Completed match with ratings open
            rater_id: Captain of side A or side B, approved on the roster
            ratings: Rated player id to score in [1, 10]

        Returns:
            RatingSubmissionResult with the batch total and budget

        Raises:
            InvalidInputError: If the batch is empty, has duplicates or bad scores
            InvalidStateError: If ratings are closed for the match
            ForbiddenError: If the caller is not a captain or targets a non-opponent
            AlreadyDoneError: If the caller already rated this match
            BudgetExceededError: If the batch total exceeds 7 per opponent
        """
        batch = self._validate_batch(ratings)

        async def _submit(session: AsyncSession) -> Outcome:
            match = await lock_match(session, match_id)
            self._require_ratings_open(match)

            side = await captain_side(session, match, rater_id)
            rater_entry = await get_roster_entry(session, match_id, rater_id)
            if side is None or not rater_entry or rater_entry.join_status != JoinStatus.APPROVED:
                raise ForbiddenError(
                    f"Player {rater_id} is not an approved captain in Match {match_id}",
                    "❌ Only the team captains can rate opponents."
                )

            if await self._has_rated(session, match_id, rater_id):
                raise AlreadyDoneError(
                    f"Player {rater_id} already rated Match {match_id}",
                    "❌ You have already rated this match."
                )

            approved = await get_roster_entries(session, match_id, status=JoinStatus.APPROVED)
            own_side = {e.player_id for e in approved if e.team_side == side}
            opponents = {e.player_id for e in approved if e.team_side == side.opposite}

            for rated_player_id, _ in batch:
                if rated_player_id == rater_id:
                    raise ForbiddenError(
                        f"Player {rater_id} tried to rate themselves in Match {match_id}",
                        "❌ You cannot rate yourself."
                    )
                if rated_player_id in own_side:
                    raise ForbiddenError(
                        f"Player {rater_id} tried to rate teammate {rated_player_id} in Match {match_id}",
                        "❌ You cannot rate your own teammates."
                    )
                if rated_player_id not in opponents:
                    raise ForbiddenError(
                        f"Player {rated_player_id} is not an approved opponent in Match {match_id}",
                        "❌ You can only rate players from the opposing team."
                    )

            total = sum(score for _, score in batch)
            budget = RatingCalculator.rating_budget(len(opponents))
            if total > budget:
                raise BudgetExceededError(
                    f"Rating batch total {total} exceeds budget {budget} for Match {match_id}",
                    f"❌ Your ratings add up to {total:g}, the maximum is {budget} "
                    f"({len(opponents)} players x 7)."
                )

            for rated_player_id, score in batch:
                session.add(Rating(
                    match_id=match_id,
                    rater_id=rater_id,
                    rated_player_id=rated_player_id,
                    score=score
                ))
                await self.db.apply_stat_delta(
                    session, StatKind.RATING_TOTAL, score, "RATING_BATCH",
                    player_id=rated_player_id, match_id=match_id
                )
                await self.db.apply_stat_delta(
                    session, StatKind.RATING_COUNT, 1, "RATING_BATCH",
                    player_id=rated_player_id, match_id=match_id
                )

            self.logger.info(
                f"Captain {rater_id} rated {len(batch)} opponent(s) in Match {match_id} "
                f"(total {total:g}/{budget})"
            )
            return Outcome(result=RatingSubmissionResult(
                match_id=match_id,
                rater_id=rater_id,
                rated_count=len(batch),
                total_score=total,
                budget=budget
            ))

        return await self.run_locked(match_id, _submit)

    async def get_rating_results(self, match_id: int) -> List[PlayerRatingResult]:
        """
        Per-player average for one match.

        A player with five or more ratings loses the single highest and
        lowest before averaging. Averages are rounded to one decimal.
        """
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Rating).where(Rating.match_id == match_id).order_by(Rating.id)
            )
            by_player: Dict[int, List[float]] = {}
            for rating in result.scalars().all():
                by_player.setdefault(rating.rated_player_id, []).append(rating.score)

            return [
                PlayerRatingResult(
                    player_id=player_id,
                    avg_rating=RatingCalculator.trimmed_mean(scores),
                    count=len(scores)
                )
                for player_id, scores in by_player.items()
            ]

    async def has_rated(self, match_id: int, player_id: int) -> bool:
        async with self.db.get_session() as session:
            return await self._has_rated(session, match_id, player_id)

    async def get_player_average_rating(self, player_id: int) -> float:
        """
        Profile average from the running totals.

        Raises:
            NotFoundError: If the player does not exist
        """
        async with self.db.get_session() as session:
            player = await session.get(Player, player_id)
            if not player:
                raise NotFoundError(f"Player {player_id} not found", "❌ Player not found.")
            return RatingCalculator.average_rating(player.total_ratings, player.rating_count)

    def close_window_locked(self, match: Match, now=None) -> bool:
        """Close an expired ratings window (caller holds the lock); True if it closed"""
        now = now or utc_now()
        if not match.ratings_open or match.ratings_closed_at is None or match.ratings_closed_at > now:
            return False
        match.ratings_open = False
        self.logger.info(f"Ratings window closed for Match {match.id}")
        return True

    # ============================================================================
    # Helpers
    # ============================================================================

    @staticmethod
    def _validate_batch(ratings: RatingBatch) -> List[Tuple[int, float]]:
        items = list(ratings.items()) if isinstance(ratings, Mapping) else list(ratings)
        if not items:
            raise InvalidInputError("Rating batch is empty", "❌ Rate at least one player.")

        batch = []
        seen = set()
        for rated_player_id, score in items:
            if rated_player_id in seen:
                raise InvalidInputError(
                    f"Player {rated_player_id} appears twice in the rating batch",
                    "❌ Each player can only be rated once."
                )
            seen.add(rated_player_id)
            try:
                batch.append((rated_player_id, RatingCalculator.validate_score(score)))
            except ValueError as e:
                raise InvalidInputError(str(e), "❌ Ratings go from 1 to 10.")
        return batch

    @staticmethod
    def _require_ratings_open(match: Match) -> None:
        if not match.ratings_open:
            raise InvalidStateError(
                f"Ratings are not open for Match {match.id}",
                "❌ Ratings are closed for this match."
            )
        if match.ratings_closed_at is not None and match.ratings_closed_at <= utc_now():
            raise InvalidStateError(
                f"Ratings window for Match {match.id} ended at {match.ratings_closed_at}",
                "❌ The 24 hour rating window has ended."
            )

    @staticmethod
    async def _has_rated(session: AsyncSession, match_id: int, player_id: int) -> bool:
        result = await session.execute(
            select(Rating.id).where(
                Rating.match_id == match_id,
                Rating.rater_id == player_id
            ).limit(1)
        )
        return result.first() is not None
