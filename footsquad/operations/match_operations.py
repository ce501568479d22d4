"""
Match Operations

Match creation, opponent proposals and administrative cancellation.

A match starts with side A only. Side B is filled by exactly one opponent
acceptance, either of an invitation sent by side A's captain (friendly
matches) or of a challenge sent by another team's captain (public
matches). Accepting one proposal rejects every other pending proposal for
the match.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from footsquad.database.models import (
    Match, MatchFormat, MatchPlayer, MatchRequest, MatchStatus, MatchType,
    JoinStatus, ProposalKind, ProposalStatus, Team, TeamSide
)
from footsquad.operations.match_lifecycle import (
    LockedMatchOperations, Outcome, lock_match, require_status, transition
)
from footsquad.operations.permissions import captained_team, is_captain_of
from footsquad.operations.roster_operations import get_roster_entries, seat_captain
from footsquad.services.notifications import (
    MatchCancelled, MatchEvent, MatchInvite, PlayRequest, PlayRequestAccepted, PlayRequestDeclined
)
from footsquad.utils.exceptions import (
    AlreadyDoneError, ForbiddenError, InvalidInputError, InvalidStateError, NotFoundError
)
from footsquad.utils.timeutil import utc_now


@dataclass
class MatchDetail:
    """Read-side view of a match with both rosters and open proposals"""
    match: Match
    roster_a: List[MatchPlayer] = field(default_factory=list)
    roster_b: List[MatchPlayer] = field(default_factory=list)
    pending_requests: List[MatchPlayer] = field(default_factory=list)
    pending_proposals: List[MatchRequest] = field(default_factory=list)

    @property
    def count_a(self) -> int:
        return len(self.roster_a)

    @property
    def count_b(self) -> int:
        return len(self.roster_b)


@dataclass
class OpponentAcceptanceResult:
    """Result of an opponent acceptance"""
    match: Match
    proposal: MatchRequest
    rejected_proposal_ids: List[int] = field(default_factory=list)


class MatchOperations(LockedMatchOperations):
    """Creation, opponent assignment and cancellation of matches"""

    # ============================================================================
    # Creation
    # ============================================================================

    async def create_match(self, captain_id: int, match_type: Union[MatchType, str],
                           match_format: Union[MatchFormat, str], city: str, pitch_name: str,
                           match_date: datetime, invite_team_id: Optional[int] = None) -> Match:
        """
        Create a match with the caller's team on side A.

        Args:
            captain_id: Creating captain, seated approved on side A
            match_type: "public" or "friendly"
            match_format: "5v5", "8v8" or "11v11"
            city: City the match is played in
            pitch_name: Pitch name
            match_date: Kick-off time (naive UTC)
            invite_team_id: Friendly matches only, team to invite straight away

        Returns:
            The created Match in pending status

        Raises:
            ForbiddenError: If the caller does not captain a team
            InvalidInputError: If type, format or date are malformed
        """
        try:
            match_type = MatchType(match_type)
            match_format = MatchFormat(match_format)
        except ValueError as e:
            raise InvalidInputError(str(e), "❌ Unknown match type or format.")
        if not isinstance(match_date, datetime):
            raise InvalidInputError(f"match_date must be a datetime, got {match_date!r}")
        if invite_team_id is not None and match_type != MatchType.FRIENDLY:
            raise InvalidInputError(
                "Only friendly matches take an invited team",
                "❌ Public matches are open to challenges, not invitations."
            )

        async with self.db.transaction() as session:
            team = await captained_team(session, captain_id)
            if not team:
                raise ForbiddenError(
                    f"Player {captain_id} does not captain a team",
                    "❌ Only captains can create matches."
                )

            match = Match(
                match_type=match_type,
                status=MatchStatus.PENDING,
                match_format=match_format,
                max_players_per_team=match_format.players_per_team,
                city=city,
                pitch_name=pitch_name,
                match_date=match_date,
                team_a_id=team.id,
                created_by=captain_id,
                score_conflict_count=0
            )
            session.add(match)
            await session.flush()

            await seat_captain(session, match, TeamSide.A, team)

            events: List[MatchEvent] = []
            if invite_team_id is not None:
                _, invite = await self._add_invitation(session, match, invite_team_id)
                events.append(invite)

            self.logger.info(
                f"Captain {captain_id} created {match_type.value} {match_format.value} Match {match.id} "
                f"for Team {team.id}"
            )

        if events:
            await self.notifications.publish(events)
        return match

    # ============================================================================
    # Opponent proposals
    # ============================================================================

    async def invite_team(self, match_id: int, captain_id: int, team_id: int) -> MatchRequest:
        """
        Invite a team to a friendly match.

        Raises:
            ForbiddenError: If the caller is not side A's captain or the match is public
            InvalidStateError: If the match already has an opponent
            AlreadyDoneError: If the team already has a pending proposal
        """
        async def _invite(session: AsyncSession) -> Outcome:
            match = await lock_match(session, match_id)
            self._require_open_for_opponent(match)
            if match.match_type != MatchType.FRIENDLY:
                raise ForbiddenError(
                    f"Match {match_id} is public, invitations are for friendly matches",
                    "❌ Public matches take challenges, not invitations."
                )
            team_a = await session.get(Team, match.team_a_id)
            if not is_captain_of(captain_id, team_a):
                raise ForbiddenError(
                    f"Player {captain_id} is not the captain of side A in Match {match_id}",
                    "❌ Only the match creator's captain can invite teams."
                )

            proposal, event = await self._add_invitation(session, match, team_id)
            return Outcome(result=proposal, events=[event])

        return await self.run_locked(match_id, _invite)

    async def request_to_play(self, match_id: int, captain_id: int) -> MatchRequest:
        """
        Challenge side A of a public match on behalf of the caller's team.

        Raises:
            ForbiddenError: If the caller captains no team or the match is friendly
            InvalidInputError: If the caller's team is already side A
            AlreadyDoneError: If the team already has a pending proposal
        """
        async def _request(session: AsyncSession) -> Outcome:
            match = await lock_match(session, match_id)
            self._require_open_for_opponent(match)
            if match.match_type != MatchType.PUBLIC:
                raise ForbiddenError(
                    f"Match {match_id} is friendly and invitation-only",
                    "❌ This match is invitation-only."
                )

            team = await captained_team(session, captain_id)
            if not team:
                raise ForbiddenError(
                    f"Player {captain_id} does not captain a team",
                    "❌ Only captains can request to play."
                )
            if team.id == match.team_a_id:
                raise InvalidInputError(
                    f"Team {team.id} cannot challenge its own Match {match_id}",
                    "❌ You cannot play against your own team."
                )
            await self._require_no_pending_proposal(session, match_id, team.id)

            proposal = MatchRequest(
                match_id=match_id,
                team_id=team.id,
                kind=ProposalKind.CHALLENGE,
                status=ProposalStatus.PENDING
            )
            session.add(proposal)
            await session.flush()

            team_a = await session.get(Team, match.team_a_id)
            self.logger.info(f"Team {team.id} requested to play Match {match_id}")
            return Outcome(
                result=proposal,
                events=[PlayRequest(
                    match_id=match_id,
                    player_id=team_a.captain_id,
                    team_id=team.id,
                    proposal_id=proposal.id
                )]
            )

        return await self.run_locked(match_id, _request)

    async def accept_opponent(self, match_id: int, proposal_id: int,
                              caller_id: int) -> OpponentAcceptanceResult:
        """
        Accept one opponent proposal and confirm the match.

        Sets side B exactly once: after the first acceptance every further
        attempt fails because the match is no longer pending.

        Args:
            match_id: Match to confirm
            proposal_id: Invitation or challenge being accepted
            caller_id: Invited team's captain for an invitation,
                side A's captain for a challenge

        Returns:
            OpponentAcceptanceResult with the confirmed match

        Raises:
            InvalidStateError: If the match already has an opponent or the proposal is closed
            ForbiddenError: If the caller may not accept this proposal
        """
        async def _accept(session: AsyncSession) -> Outcome:
            match = await lock_match(session, match_id)
            self._require_open_for_opponent(match)

            proposal = await self._get_proposal(session, proposal_id, match_id)
            if proposal.status != ProposalStatus.PENDING:
                raise InvalidStateError(
                    f"Proposal {proposal_id} is already {proposal.status.value}",
                    "❌ This request has already been answered."
                )
            team_a, team_b = await self._check_proposal_authority(session, match, proposal, caller_id)

            now = utc_now()
            transition(match, MatchStatus.CONFIRMED)
            match.team_b_id = proposal.team_id
            proposal.status = ProposalStatus.ACCEPTED
            proposal.responded_at = now

            await seat_captain(session, match, TeamSide.B, team_b)

            other_side_captain = team_b.captain_id if caller_id == team_a.captain_id else team_a.captain_id
            events: List[MatchEvent] = [PlayRequestAccepted(
                match_id=match_id,
                player_id=other_side_captain,
                team_id=proposal.team_id,
                proposal_id=proposal.id
            )]

            rejected = await self._reject_pending_proposals(session, match, now)
            events.extend(await self._declined_events(session, match, rejected))
            await session.flush()

            self.logger.info(
                f"Match {match_id} confirmed: Team {match.team_a_id} vs Team {match.team_b_id} "
                f"({len(rejected)} other proposal(s) rejected)"
            )
            return Outcome(
                result=OpponentAcceptanceResult(
                    match=match,
                    proposal=proposal,
                    rejected_proposal_ids=[p.id for p in rejected]
                ),
                events=events
            )

        return await self.run_locked(match_id, _accept)

    async def decline_proposal(self, proposal_id: int, caller_id: int) -> MatchRequest:
        """
        Decline a pending proposal. Declining an already-rejected proposal is a no-op.

        Raises:
            NotFoundError: If the proposal does not exist
            ForbiddenError: If the caller may not answer this proposal
            InvalidStateError: If the proposal was already accepted
        """
        async with self.db.get_session() as session:
            proposal = await session.get(MatchRequest, proposal_id)
            if not proposal:
                raise NotFoundError(f"Proposal {proposal_id} not found", "❌ Request not found.")
            match_id = proposal.match_id

        async def _decline(session: AsyncSession) -> Outcome:
            match = await lock_match(session, match_id)
            proposal = await self._get_proposal(session, proposal_id, match_id)
            team_a, team_b = await self._check_proposal_authority(session, match, proposal, caller_id)

            if proposal.status == ProposalStatus.REJECTED:
                return Outcome(result=proposal)
            if proposal.status == ProposalStatus.ACCEPTED:
                raise InvalidStateError(
                    f"Proposal {proposal_id} was already accepted",
                    "❌ This request has already been accepted."
                )

            proposal.status = ProposalStatus.REJECTED
            proposal.responded_at = utc_now()
            await session.flush()

            other_side_captain = team_b.captain_id if caller_id == team_a.captain_id else team_a.captain_id
            self.logger.info(f"Proposal {proposal_id} for Match {match_id} declined by {caller_id}")
            return Outcome(
                result=proposal,
                events=[PlayRequestDeclined(
                    match_id=match_id,
                    player_id=other_side_captain,
                    team_id=proposal.team_id,
                    proposal_id=proposal.id
                )]
            )

        return await self.run_locked(match_id, _decline)

    # ============================================================================
    # Administrative
    # ============================================================================

    async def cancel_match(self, match_id: int, reason: Optional[str] = None) -> Match:
        """
        Cancel a pending or confirmed match.

        Args:
            match_id: Match to cancel
            reason: Optional reason stored in the admin notes

        Raises:
            InvalidStateError: If the match is in progress or terminal
        """
        async def _cancel(session: AsyncSession) -> Outcome:
            match = await lock_match(session, match_id)
            events = await self.cancel_locked(session, match, reason)
            return Outcome(result=match, events=events)

        return await self.run_locked(match_id, _cancel)

    async def cancel_locked(self, session: AsyncSession, match: Match,
                            reason: Optional[str] = None) -> List[MatchEvent]:
        """Cancel a match already locked by the caller and return the events to publish"""
        transition(match, MatchStatus.CANCELLED)
        now = utc_now()
        if reason:
            match.admin_notes = reason
        await self._reject_pending_proposals(session, match, now)

        members = await get_roster_entries(session, match.id, status=JoinStatus.APPROVED)
        await session.flush()
        self.logger.info(f"Match {match.id} cancelled{': ' + reason if reason else ''}")
        return [
            MatchCancelled(
                match_id=match.id,
                player_id=entry.player_id,
                team_id=entry.team_id,
                reason=reason or ""
            )
            for entry in members
        ]

    # ============================================================================
    # Queries
    # ============================================================================

    async def get_match_detail(self, match_id: int) -> Optional[MatchDetail]:
        """
        Get a match with both approved rosters, pending join requests and
        pending opponent proposals.

        Returns:
            MatchDetail, or None if the match does not exist
        """
        async with self.db.get_session() as session:
            match = await session.get(Match, match_id)
            if not match:
                return None

            entries = await get_roster_entries(session, match_id)
            proposals = await session.execute(
                select(MatchRequest).where(
                    MatchRequest.match_id == match_id,
                    MatchRequest.status == ProposalStatus.PENDING
                ).order_by(MatchRequest.id)
            )

            approved = [e for e in entries if e.join_status == JoinStatus.APPROVED]
            return MatchDetail(
                match=match,
                roster_a=[e for e in approved if e.team_side == TeamSide.A],
                roster_b=[e for e in approved if e.team_side == TeamSide.B],
                pending_requests=[e for e in entries if e.join_status == JoinStatus.PENDING],
                pending_proposals=list(proposals.scalars().all())
            )

    async def get_open_matches(self, city: Optional[str] = None) -> List[Match]:
        """Public matches still looking for an opponent, soonest first"""
        async with self.db.get_session() as session:
            query = select(Match).where(
                Match.match_type == MatchType.PUBLIC,
                Match.status == MatchStatus.PENDING,
                Match.match_date >= utc_now()
            )
            if city:
                query = query.where(Match.city == city)
            result = await session.execute(query.order_by(Match.match_date))
            return list(result.scalars().all())

    # ============================================================================
    # Helpers
    # ============================================================================

    def _require_open_for_opponent(self, match: Match) -> None:
        require_status(match, (MatchStatus.PENDING,), "change the opponent of")
        if match.team_b_id is not None:
            raise InvalidStateError(
                f"Match {match.id} already has an opponent",
                "❌ This match already has an opponent."
            )

    async def _add_invitation(self, session: AsyncSession, match: Match,
                              team_id: int) -> Tuple[MatchRequest, MatchInvite]:
        team = await session.get(Team, team_id)
        if not team:
            raise NotFoundError(f"Team {team_id} not found", "❌ Team not found.")
        if team.id == match.team_a_id:
            raise InvalidInputError(
                f"Team {team_id} cannot be invited to its own Match {match.id}",
                "❌ You cannot invite your own team."
            )
        await self._require_no_pending_proposal(session, match.id, team_id)

        proposal = MatchRequest(
            match_id=match.id,
            team_id=team_id,
            kind=ProposalKind.INVITATION,
            status=ProposalStatus.PENDING
        )
        session.add(proposal)
        await session.flush()

        self.logger.info(f"Team {team_id} invited to Match {match.id}")
        return proposal, MatchInvite(
            match_id=match.id,
            player_id=team.captain_id,
            team_id=team_id,
            proposal_id=proposal.id
        )

    async def _require_no_pending_proposal(self, session: AsyncSession, match_id: int, team_id: int) -> None:
        result = await session.execute(
            select(MatchRequest.id).where(
                MatchRequest.match_id == match_id,
                MatchRequest.team_id == team_id,
                MatchRequest.status == ProposalStatus.PENDING
            )
        )
        if result.first() is not None:
            raise AlreadyDoneError(
                f"Team {team_id} already has a pending proposal for Match {match_id}",
                "❌ A request for this team is already waiting."
            )

    async def _get_proposal(self, session: AsyncSession, proposal_id: int, match_id: int) -> MatchRequest:
        proposal = await session.get(MatchRequest, proposal_id)
        if not proposal or proposal.match_id != match_id:
            raise NotFoundError(
                f"Proposal {proposal_id} not found for Match {match_id}",
                "❌ Request not found."
            )
        return proposal

    async def _check_proposal_authority(self, session: AsyncSession, match: Match,
                                        proposal: MatchRequest, caller_id: int):
        """Invitations are answered by the invited captain, challenges by side A's captain"""
        team_a = await session.get(Team, match.team_a_id)
        team_b = await session.get(Team, proposal.team_id)
        answering_team = team_b if proposal.kind == ProposalKind.INVITATION else team_a
        if not is_captain_of(caller_id, answering_team):
            raise ForbiddenError(
                f"Player {caller_id} cannot answer {proposal.kind.value} {proposal.id}",
                "❌ Only the receiving captain can answer this request."
            )
        return team_a, team_b

    async def _reject_pending_proposals(self, session: AsyncSession, match: Match,
                                        now: datetime) -> List[MatchRequest]:
        result = await session.execute(
            select(MatchRequest).where(
                MatchRequest.match_id == match.id,
                MatchRequest.status == ProposalStatus.PENDING
            )
        )
        rejected = list(result.scalars().all())
        for proposal in rejected:
            proposal.status = ProposalStatus.REJECTED
            proposal.responded_at = now
        return rejected

    async def _declined_events(self, session: AsyncSession, match: Match,
                               rejected: List[MatchRequest]) -> List[MatchEvent]:
        """Tell the proposing or invited team of each auto-rejected proposal"""
        events = []
        for proposal in rejected:
            team = await session.get(Team, proposal.team_id)
            events.append(PlayRequestDeclined(
                match_id=match.id,
                player_id=team.captain_id,
                team_id=proposal.team_id,
                proposal_id=proposal.id
            ))
        return events
