"""
Match lifecycle state machine.

    pending -> confirmed -> in_progress -> completed | null_result
    pending | confirmed -> cancelled

Completed, null_result and cancelled are terminal. Every status change
goes through ``transition`` so no path can skip a state.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from footsquad.database.database import Database
from footsquad.database.models import Match, MatchStatus
from footsquad.services.notifications import MatchEvent, NotificationService
from footsquad.utils.exceptions import InvalidStateError, MatchNotFoundError
from footsquad.utils.logger import setup_logger

logger = setup_logger(__name__)

ALLOWED_TRANSITIONS = {
    MatchStatus.PENDING: {MatchStatus.CONFIRMED, MatchStatus.CANCELLED},
    MatchStatus.CONFIRMED: {MatchStatus.IN_PROGRESS, MatchStatus.CANCELLED},
    MatchStatus.IN_PROGRESS: {MatchStatus.COMPLETED, MatchStatus.NULL_RESULT},
    MatchStatus.COMPLETED: set(),
    MatchStatus.NULL_RESULT: set(),
    MatchStatus.CANCELLED: set(),
}


def can_transition(current: MatchStatus, new_status: MatchStatus) -> bool:
    return new_status in ALLOWED_TRANSITIONS[current]


def transition(match: Match, new_status: MatchStatus) -> None:
    """
    Move a match to a new status.

    Raises:
        InvalidStateError: If the lifecycle does not allow the move
    """
    if not can_transition(match.status, new_status):
        raise InvalidStateError(
            f"Match {match.id} cannot go from {match.status.value} to {new_status.value}",
            f"❌ This match is {match.status.value.replace('_', ' ')}."
        )
    logger.debug(f"Match {match.id}: {match.status.value} -> {new_status.value}")
    match.status = new_status


def require_status(match: Match, allowed: Sequence[MatchStatus], action: str) -> None:
    """
    Raises:
        InvalidStateError: If the match is not in one of the allowed statuses
    """
    if match.status not in allowed:
        raise InvalidStateError(
            f"Cannot {action} Match {match.id} while {match.status.value}",
            f"❌ You cannot {action} this match while it is {match.status.value.replace('_', ' ')}."
        )


async def lock_match(session: AsyncSession, match_id: int) -> Match:
    """
    Read a match row for update.

    Raises:
        MatchNotFoundError: If the match does not exist
    """
    result = await session.execute(
        select(Match).where(Match.id == match_id).with_for_update()
    )
    match = result.scalar_one_or_none()
    if not match:
        raise MatchNotFoundError(match_id)
    return match


@dataclass
class Outcome:
    """What a locked unit of work returns: a result plus events to publish after commit"""
    result: object
    events: List[MatchEvent] = field(default_factory=list)


class LockedMatchOperations:
    """
    Base for operations classes that mutate a single match.

    ``run_locked`` holds the match lock, runs the unit of work in one
    transaction, then publishes the produced events once committed. Events
    are published while the lock is still held so notifications for one
    match are stored in transition order.
    """

    def __init__(self, db: Database, notifications: NotificationService):
        self.db = db
        self.notifications = notifications
        self.logger = setup_logger(f"{__name__}.{type(self).__name__}")

    async def run_locked(self, match_id: int,
                         work: Callable[[AsyncSession], Awaitable[Outcome]]):
        async with self.db.match_locks.hold(match_id):
            async with self.db.transaction() as session:
                outcome = await work(session)
            if outcome.events:
                await self.notifications.publish(outcome.events)
        return outcome.result
