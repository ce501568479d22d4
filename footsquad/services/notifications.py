"""
Notification fan-out for match state transitions.

Each transition produces typed events, one frozen dataclass per kind, so
consumers never re-parse loose payloads. ``NotificationService.publish``
runs after the transition has committed: it stores one notification row
per recipient, skips events whose ``dedupe_key`` was already delivered and
forwards new events to registered listeners. Delivery problems are logged
and never raised back into the operation that produced the events.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, ClassVar, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from footsquad.database.models import Notification
from footsquad.services.base import BaseService
from footsquad.utils.logger import setup_logger

logger = setup_logger(__name__)

Listener = Callable[['MatchEvent'], Awaitable[None]]


@dataclass(frozen=True)
class MatchEvent:
    """Base event: who is told about what happened to which match"""
    kind: ClassVar[str] = "match_event"
    title: ClassVar[str] = "Match update"

    match_id: int
    player_id: int
    team_id: Optional[int] = None

    @property
    def discriminator(self) -> str:
        """Distinguishes legitimate repeats of the same kind for one recipient"""
        return ""

    @property
    def dedupe_key(self) -> str:
        return f"{self.kind}:{self.match_id}:{self.player_id}:{self.discriminator}"

    @property
    def message(self) -> str:
        return self.title


@dataclass(frozen=True)
class JoinRequested(MatchEvent):
    kind: ClassVar[str] = "join_request"
    title: ClassVar[str] = "New Join Request"

    requester_id: int = 0
    attempt: int = 0

    @property
    def discriminator(self) -> str:
        return f"{self.requester_id}:{self.attempt}"

    @property
    def message(self) -> str:
        return "A player wants to join your team for this match"


@dataclass(frozen=True)
class JoinApproved(MatchEvent):
    kind: ClassVar[str] = "join_approved"
    title: ClassVar[str] = "Join Request Approved"

    attempt: int = 0

    @property
    def discriminator(self) -> str:
        return str(self.attempt)

    @property
    def message(self) -> str:
        return "You are in the match roster"


@dataclass(frozen=True)
class JoinDeclined(MatchEvent):
    kind: ClassVar[str] = "join_declined"
    title: ClassVar[str] = "Join Request Declined"

    attempt: int = 0

    @property
    def discriminator(self) -> str:
        return str(self.attempt)

    @property
    def message(self) -> str:
        return "Your request to join the match was declined"


@dataclass(frozen=True)
class ScoreRequested(MatchEvent):
    kind: ClassVar[str] = "score_request"
    title: ClassVar[str] = "Submit Match Score"

    round: int = 0

    @property
    def discriminator(self) -> str:
        return str(self.round)

    @property
    def message(self) -> str:
        return "The other captain submitted the score. Submit yours to confirm the result"


@dataclass(frozen=True)
class ScoreConfirmed(MatchEvent):
    kind: ClassVar[str] = "score_confirmed"
    title: ClassVar[str] = "Score Confirmed"

    score_a: int = 0
    score_b: int = 0

    @property
    def message(self) -> str:
        return f"Final score {self.score_a}-{self.score_b}. Points have been awarded"


@dataclass(frozen=True)
class ScoreConflict(MatchEvent):
    kind: ClassVar[str] = "score_conflict"
    title: ClassVar[str] = "Score Conflict"

    submitted_by_a: str = ""
    submitted_by_b: str = ""
    conflict_count: int = 0

    @property
    def discriminator(self) -> str:
        return str(self.conflict_count)

    @property
    def message(self) -> str:
        return (
            f"Team A submitted {self.submitted_by_a}, Team B submitted {self.submitted_by_b}. "
            "Last chance: submit the score again"
        )


@dataclass(frozen=True)
class ScoreNull(MatchEvent):
    kind: ClassVar[str] = "score_null"
    title: ClassVar[str] = "Match Result: NULL"

    @property
    def message(self) -> str:
        return "The captains could not agree on the score. No points were awarded"


@dataclass(frozen=True)
class RatingOpen(MatchEvent):
    kind: ClassVar[str] = "rating_open"
    title: ClassVar[str] = "Rate Your Opponents"

    @property
    def message(self) -> str:
        return "Ratings are open for the next 24 hours"


@dataclass(frozen=True)
class MotmWinner(MatchEvent):
    kind: ClassVar[str] = "motm_winner"
    title: ClassVar[str] = "Man of the Match"

    winner_id: int = 0
    votes: int = 0

    @property
    def message(self) -> str:
        return f"Man of the Match decided with {self.votes} vote(s)"


@dataclass(frozen=True)
class MatchInvite(MatchEvent):
    kind: ClassVar[str] = "match_invite"
    title: ClassVar[str] = "Match Invitation"

    proposal_id: int = 0

    @property
    def discriminator(self) -> str:
        return str(self.proposal_id)

    @property
    def message(self) -> str:
        return "Your team has been invited to a friendly match"


@dataclass(frozen=True)
class PlayRequest(MatchEvent):
    kind: ClassVar[str] = "play_request"
    title: ClassVar[str] = "Challenge Request"

    proposal_id: int = 0

    @property
    def discriminator(self) -> str:
        return str(self.proposal_id)

    @property
    def message(self) -> str:
        return "A team wants to play against you"


@dataclass(frozen=True)
class PlayRequestAccepted(MatchEvent):
    kind: ClassVar[str] = "play_request_accepted"
    title: ClassVar[str] = "Match Confirmed"

    proposal_id: int = 0

    @property
    def discriminator(self) -> str:
        return str(self.proposal_id)

    @property
    def message(self) -> str:
        return "The opponent is confirmed. See you on the pitch"


@dataclass(frozen=True)
class PlayRequestDeclined(MatchEvent):
    kind: ClassVar[str] = "play_request_declined"
    title: ClassVar[str] = "Request Declined"

    proposal_id: int = 0

    @property
    def discriminator(self) -> str:
        return str(self.proposal_id)

    @property
    def message(self) -> str:
        return "Your match proposal was declined"


@dataclass(frozen=True)
class MatchCancelled(MatchEvent):
    kind: ClassVar[str] = "match_cancelled"
    title: ClassVar[str] = "Match Cancelled"

    reason: str = ""

    @property
    def message(self) -> str:
        return f"The match was cancelled{': ' + self.reason if self.reason else ''}"


class NotificationService(BaseService):
    """Stores notifications and forwards events to listeners, fire-and-forget."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self._listeners: List[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        """Register an async callable invoked once per newly delivered event."""
        self._listeners.append(listener)

    async def publish(self, events: Iterable[MatchEvent]) -> int:
        """
        Deliver events after the transition that produced them committed.

        Args:
            events: Events in the order they should be delivered

        Returns:
            Number of events delivered; duplicates and failures are skipped
        """
        events = self._unique(events)
        if not events:
            return 0

        try:
            delivered = await self._store(events)
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Failed to store {len(events)} notification(s): {e}", exc_info=True)
            return 0

        for event in delivered:
            for listener in self._listeners:
                try:
                    await listener(event)
                except Exception as e:
                    logger.error(
                        f"Notification listener failed for {event.kind} on Match {event.match_id}: {e}",
                        exc_info=True
                    )

        return len(delivered)

    @staticmethod
    def _unique(events: Iterable[MatchEvent]) -> List[MatchEvent]:
        seen = set()
        unique = []
        for event in events:
            if event.dedupe_key in seen:
                continue
            seen.add(event.dedupe_key)
            unique.append(event)
        return unique

    async def _store(self, events: List[MatchEvent]) -> List[MatchEvent]:
        async with self.get_session() as session:
            result = await session.execute(
                select(Notification.dedupe_key).where(
                    Notification.dedupe_key.in_([e.dedupe_key for e in events])
                )
            )
            already_sent = set(result.scalars().all())

            fresh = [e for e in events if e.dedupe_key not in already_sent]
            for event in fresh:
                session.add(Notification(
                    player_id=event.player_id,
                    kind=event.kind,
                    title=event.title,
                    message=event.message,
                    match_id=event.match_id,
                    team_id=event.team_id,
                    dedupe_key=event.dedupe_key
                ))

            if already_sent:
                logger.debug(f"Skipped {len(already_sent)} duplicate notification(s)")
            return fresh

    async def get_player_notifications(self, player_id: int, limit: int = 50) -> List[Notification]:
        """Get a player's notifications, newest first"""
        async with self.get_session() as session:
            result = await session.execute(
                select(Notification)
                .where(Notification.player_id == player_id)
                .order_by(Notification.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
