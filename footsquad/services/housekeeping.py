"""
Housekeeping Service - periodic sweeps

Moves matches that nobody will move any more:
- pending matches whose kick-off passed without an opponent are cancelled
- confirmed or in-progress matches without an agreed score long after
  kick-off end as null results
- ratings windows past their deadline are closed

Each sweep picks candidates in one read, then re-checks and changes every
match under its own lock and transaction, so running a sweep twice or next
to regular operations is safe.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from footsquad.config import Config
from footsquad.database.database import Database
from footsquad.database.models import Match, MatchStatus
from footsquad.operations.match_lifecycle import Outcome, lock_match
from footsquad.operations.match_operations import MatchOperations
from footsquad.operations.rating_operations import RatingOperations
from footsquad.operations.score_operations import ScoreOperations
from footsquad.services.base import BaseService
from footsquad.utils.exceptions import FootsquadError
from footsquad.utils.logger import setup_logger
from footsquad.utils.timeutil import utc_now

logger = setup_logger(__name__)


@dataclass
class HousekeepingReport:
    """How many matches each sweep changed"""
    cancelled: int = 0
    null_results: int = 0
    ratings_closed: int = 0

    @property
    def total(self) -> int:
        return self.cancelled + self.null_results + self.ratings_closed


class HousekeepingService(BaseService):
    """Idempotent sweeps over stale matches"""

    def __init__(self, db: Database, match_ops: MatchOperations,
                 score_ops: ScoreOperations, rating_ops: RatingOperations):
        super().__init__(db.session_factory)
        self.db = db
        self.match_ops = match_ops
        self.score_ops = score_ops
        self.rating_ops = rating_ops

    async def run_all(self, now: Optional[datetime] = None) -> HousekeepingReport:
        """Run every sweep once"""
        now = now or utc_now()
        report = HousekeepingReport(
            cancelled=await self.expire_stale_matches(now),
            null_results=await self.expire_unresolved_scores(now),
            ratings_closed=await self.close_rating_windows(now)
        )
        if report.total:
            logger.info(
                f"Housekeeping: {report.cancelled} cancelled, {report.null_results} null result(s), "
                f"{report.ratings_closed} rating window(s) closed"
            )
        return report

    async def expire_stale_matches(self, now: Optional[datetime] = None) -> int:
        """Cancel pending matches whose kick-off passed without an opponent"""
        now = now or utc_now()

        def is_stale(match: Match) -> bool:
            return match.status == MatchStatus.PENDING and match.match_date < now

        async def _expire(session: AsyncSession, match: Match) -> Outcome:
            events = await self.match_ops.cancel_locked(session, match, "No opponent before kick-off")
            return Outcome(result=True, events=events)

        ids = await self._candidate_ids(
            Match.status == MatchStatus.PENDING,
            Match.match_date < now
        )
        return await self._sweep(ids, is_stale, _expire)

    async def expire_unresolved_scores(self, now: Optional[datetime] = None) -> int:
        """End matches without an agreed score as null results once the timeout passed"""
        now = now or utc_now()
        cutoff = now - timedelta(hours=Config.SCORE_SUBMISSION_TIMEOUT_HOURS)
        open_statuses = (MatchStatus.CONFIRMED, MatchStatus.IN_PROGRESS)

        def is_unresolved(match: Match) -> bool:
            return match.status in open_statuses and match.match_date < cutoff

        async def _expire(session: AsyncSession, match: Match) -> Outcome:
            events = await self.score_ops.expire_locked(session, match)
            return Outcome(result=True, events=events)

        ids = await self._candidate_ids(
            Match.status.in_(open_statuses),
            Match.match_date < cutoff
        )
        return await self._sweep(ids, is_unresolved, _expire)

    async def close_rating_windows(self, now: Optional[datetime] = None) -> int:
        """Close ratings windows whose deadline passed"""
        now = now or utc_now()

        def is_expired(match: Match) -> bool:
            return (match.ratings_open and match.ratings_closed_at is not None
                    and match.ratings_closed_at <= now)

        async def _close(session: AsyncSession, match: Match) -> Outcome:
            return Outcome(result=self.rating_ops.close_window_locked(match, now))

        ids = await self._candidate_ids(
            Match.ratings_open.is_(True),
            Match.ratings_closed_at <= now
        )
        return await self._sweep(ids, is_expired, _close)

    async def _candidate_ids(self, *conditions) -> List[int]:
        async def _select() -> List[int]:
            async with self.get_session() as session:
                result = await session.execute(select(Match.id).where(*conditions).order_by(Match.id))
                return list(result.scalars().all())

        return await self.execute_with_retry(_select, "housekeeping candidate query")

    async def _sweep(self, match_ids: List[int], still_applies: Callable[[Match], bool],
                     change: Callable[[AsyncSession, Match], Awaitable[Outcome]]) -> int:
        """
        Apply a change to each candidate under its lock, skipping matches
        that moved on since they were picked. A locked database is retried
        per match so earlier commits are still counted.

        Returns:
            Number of matches changed
        """
        changed = 0
        for match_id in match_ids:
            async def _work(session: AsyncSession) -> Outcome:
                match = await lock_match(session, match_id)
                if not still_applies(match):
                    return Outcome(result=False)
                return await change(session, match)

            try:
                if await self.execute_with_retry(
                    lambda: self.match_ops.run_locked(match_id, _work), f"housekeeping Match {match_id}"
                ):
                    changed += 1
            except FootsquadError as e:
                logger.error(f"Housekeeping skipped Match {match_id}: {e}", exc_info=True)
        return changed
