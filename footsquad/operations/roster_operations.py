"""
Roster Operations

Join-request lifecycle for one match: a player asks to join a side, that
side's captain approves or declines. Side counts and pending lists are
always computed from the roster rows, never cached.
"""

from dataclasses import dataclass
from typing import List, Optional, Union

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from footsquad.database.models import (
    Match, MatchPlayer, MatchStatus, Player, Team, TeamSide, JoinStatus
)
from footsquad.operations.match_lifecycle import (
    LockedMatchOperations, Outcome, lock_match, require_status
)
from footsquad.operations.permissions import captain_side, is_captain_of
from footsquad.services.notifications import JoinApproved, JoinDeclined, JoinRequested
from footsquad.utils.exceptions import (
    AlreadyInMatchError, CaptainAlreadyMemberError, ForbiddenError, InvalidInputError,
    InvalidStateError, NotFoundError, SideFullError
)
from footsquad.utils.timeutil import utc_now

JOINABLE_STATUSES = (MatchStatus.PENDING, MatchStatus.CONFIRMED)

DECISIONS = {
    'approve': JoinStatus.APPROVED,
    'decline': JoinStatus.DECLINED,
}


@dataclass
class JoinRequestResult:
    """Result of a join request"""
    match_id: int
    player_id: int
    team_side: TeamSide
    join_status: JoinStatus
    reopened: bool = False


@dataclass
class JoinDecisionResult:
    """Result of a captain's decision; changed is False for an already-decided entry"""
    match_id: int
    player_id: int
    join_status: JoinStatus
    changed: bool


# ============================================================================
# Roster projections
# ============================================================================

async def get_roster_entries(session: AsyncSession, match_id: int,
                             side: Optional[TeamSide] = None,
                             status: Optional[JoinStatus] = None) -> List[MatchPlayer]:
    """Roster rows for a match in join order, optionally filtered by side and status"""
    query = select(MatchPlayer).where(MatchPlayer.match_id == match_id)
    if side is not None:
        query = query.where(MatchPlayer.team_side == side)
    if status is not None:
        query = query.where(MatchPlayer.join_status == status)
    result = await session.execute(query.order_by(MatchPlayer.id))
    return list(result.scalars().all())


async def count_approved(session: AsyncSession, match_id: int, side: TeamSide) -> int:
    result = await session.execute(
        select(func.count(MatchPlayer.id)).where(
            MatchPlayer.match_id == match_id,
            MatchPlayer.team_side == side,
            MatchPlayer.join_status == JoinStatus.APPROVED
        )
    )
    return result.scalar_one()


async def get_roster_entry(session: AsyncSession, match_id: int,
                           player_id: int) -> Optional[MatchPlayer]:
    result = await session.execute(
        select(MatchPlayer).where(
            MatchPlayer.match_id == match_id,
            MatchPlayer.player_id == player_id
        )
    )
    return result.scalar_one_or_none()


async def seat_captain(session: AsyncSession, match: Match, side: TeamSide, team: Team) -> MatchPlayer:
    """
    Seat a side's captain as an approved member.

    Used when side A is created and when side B is accepted. An existing
    entry for the captain (e.g. an earlier join request) is moved onto the
    captain's side and approved.
    """
    now = utc_now()
    entry = await get_roster_entry(session, match.id, team.captain_id)
    if entry:
        entry.team_id = team.id
        entry.team_side = side
        entry.join_status = JoinStatus.APPROVED
        entry.decided_at = now
    else:
        entry = MatchPlayer(
            match_id=match.id,
            player_id=team.captain_id,
            team_id=team.id,
            team_side=side,
            join_status=JoinStatus.APPROVED,
            decided_at=now
        )
        session.add(entry)
    await session.flush()
    return entry


def parse_side(side: Union[TeamSide, str]) -> TeamSide:
    try:
        return TeamSide(side)
    except ValueError:
        raise InvalidInputError(f"Unknown team side {side!r}", "❌ Pick team A or team B.")


class RosterOperations(LockedMatchOperations):
    """
    Join requests and captain decisions for match rosters.

    Capacity is checked under the match lock both when a request is made and
    again when it is approved, so approved entries per side never exceed
    the match format's player count.
    """

    async def request_join(self, match_id: int, player_id: int, team_id: int,
                           side: Union[TeamSide, str]) -> JoinRequestResult:
        """
        Ask to join one side of a match.

        Args:
            match_id: Match to join
            player_id: Requesting player
            team_id: Team seated on the requested side
            side: "A" or "B"

        Returns:
            JoinRequestResult with the pending entry

        Raises:
            MatchNotFoundError: If the match does not exist
            CaptainAlreadyMemberError: If the player captains a side of this match
            AlreadyInMatchError: If the player already has a pending or approved entry
            SideFullError: If the side has no free places
        """
        team_side = parse_side(side)

        async def _request(session: AsyncSession) -> Outcome:
            match = await lock_match(session, match_id)
            require_status(match, JOINABLE_STATUSES, "join")

            side_team_id = match.team_id_for_side(team_side)
            if side_team_id is None:
                raise InvalidStateError(
                    f"Match {match_id} has no team on side {team_side.value} yet",
                    "❌ This side has no team yet."
                )
            if team_id != side_team_id:
                raise InvalidInputError(
                    f"Team {team_id} is not on side {team_side.value} of Match {match_id}"
                )

            player = await session.get(Player, player_id)
            if not player:
                raise NotFoundError(f"Player {player_id} not found", "❌ Player not found.")

            if await captain_side(session, match, player_id) is not None:
                raise CaptainAlreadyMemberError(match_id, player_id)

            entry = await get_roster_entry(session, match_id, player_id)
            if entry and entry.join_status != JoinStatus.DECLINED:
                raise AlreadyInMatchError(match_id, player_id, entry.join_status.value)

            if await count_approved(session, match_id, team_side) >= match.max_players_per_team:
                raise SideFullError(match_id, team_side.value, match.max_players_per_team)

            reopened = entry is not None
            if reopened:
                entry.team_id = team_id
                entry.team_side = team_side
                entry.join_status = JoinStatus.PENDING
                entry.decided_at = None
                entry.attempts += 1
            else:
                entry = MatchPlayer(
                    match_id=match_id,
                    player_id=player_id,
                    team_id=team_id,
                    team_side=team_side,
                    join_status=JoinStatus.PENDING,
                    attempts=1
                )
                session.add(entry)
            await session.flush()

            captain = await session.get(Team, side_team_id)
            self.logger.info(
                f"Player {player_id} requested to join side {team_side.value} of Match {match_id}"
            )
            return Outcome(
                result=JoinRequestResult(
                    match_id=match_id,
                    player_id=player_id,
                    team_side=team_side,
                    join_status=JoinStatus.PENDING,
                    reopened=reopened
                ),
                events=[JoinRequested(
                    match_id=match_id,
                    player_id=captain.captain_id,
                    team_id=side_team_id,
                    requester_id=player_id,
                    attempt=entry.attempts
                )]
            )

        return await self.run_locked(match_id, _request)

    async def decide(self, match_id: int, captain_id: int, player_id: int,
                     decision: str) -> JoinDecisionResult:
        """
        Approve or decline a pending join request.

        Deciding an entry that is no longer pending changes nothing and
        sends nothing.

        Args:
            match_id: Match the request belongs to
            captain_id: Caller, must captain the team the entry targets
            player_id: Player whose request is decided
            decision: "approve" or "decline"

        Returns:
            JoinDecisionResult; changed is False for an already-decided entry

        Raises:
            ForbiddenError: If the caller does not captain the entry's team
            SideFullError: If approving would exceed the side's capacity
        """
        new_status = DECISIONS.get(decision)
        if new_status is None:
            raise InvalidInputError(f"Unknown decision {decision!r}", "❌ Choose approve or decline.")

        async def _decide(session: AsyncSession) -> Outcome:
            match = await lock_match(session, match_id)
            if match.is_terminal:
                raise InvalidStateError(
                    f"Match {match_id} is {match.status.value}, roster is closed",
                    "❌ This match is over."
                )

            entry = await get_roster_entry(session, match_id, player_id)
            if not entry:
                raise NotFoundError(
                    f"No roster entry for player {player_id} in Match {match_id}",
                    "❌ Join request not found."
                )

            team = await session.get(Team, entry.team_id)
            if not is_captain_of(captain_id, team):
                raise ForbiddenError(
                    f"Player {captain_id} does not captain Team {entry.team_id}",
                    "❌ Only the team captain can decide join requests."
                )

            if entry.join_status != JoinStatus.PENDING:
                self.logger.debug(
                    f"Join request of player {player_id} in Match {match_id} already {entry.join_status.value}"
                )
                return Outcome(result=JoinDecisionResult(
                    match_id=match_id,
                    player_id=player_id,
                    join_status=entry.join_status,
                    changed=False
                ))

            if new_status == JoinStatus.APPROVED:
                approved = await count_approved(session, match_id, entry.team_side)
                if approved >= match.max_players_per_team:
                    raise SideFullError(match_id, entry.team_side.value, match.max_players_per_team)

            entry.join_status = new_status
            entry.decided_at = utc_now()
            await session.flush()

            event_type = JoinApproved if new_status == JoinStatus.APPROVED else JoinDeclined
            self.logger.info(
                f"Captain {captain_id} {new_status.value} player {player_id} in Match {match_id}"
            )
            return Outcome(
                result=JoinDecisionResult(
                    match_id=match_id,
                    player_id=player_id,
                    join_status=new_status,
                    changed=True
                ),
                events=[event_type(
                    match_id=match_id,
                    player_id=player_id,
                    team_id=entry.team_id,
                    attempt=entry.attempts
                )]
            )

        return await self.run_locked(match_id, _decide)

    async def my_join_status(self, match_id: int, player_id: int,
                             session: Optional[AsyncSession] = None) -> Optional[JoinStatus]:
        """The player's roster status for a match, None if they never asked"""
        async def _get(session: AsyncSession) -> Optional[JoinStatus]:
            entry = await get_roster_entry(session, match_id, player_id)
            return entry.join_status if entry else None

        if session:
            return await _get(session)
        else:
            async with self.db.get_session() as db_session:
                return await _get(db_session)

    async def get_pending_requests(self, match_id: int, side: Optional[Union[TeamSide, str]] = None,
                                   session: Optional[AsyncSession] = None) -> List[MatchPlayer]:
        """Pending join requests for a match, oldest first"""
        if side is not None:
            side = parse_side(side)

        async def _get(session: AsyncSession) -> List[MatchPlayer]:
            return await get_roster_entries(session, match_id, side=side, status=JoinStatus.PENDING)

        if session:
            return await _get(session)
        else:
            async with self.db.get_session() as db_session:
                return await _get(db_session)
