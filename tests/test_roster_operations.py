"""
Tests for join requests and captain decisions.
"""

import asyncio

import pytest

from footsquad.database.models import JoinStatus, TeamSide
from footsquad.utils.exceptions import (
    AlreadyInMatchError, CaptainAlreadyMemberError, ForbiddenError, InvalidInputError,
    InvalidStateError, MatchNotFoundError, SideFullError
)


async def approved_counts(coordinator, match_id):
    detail = await coordinator.get_match(match_id)
    return detail.count_a, detail.count_b


class TestRequestJoin:
    async def test_request_creates_pending_entry_and_notifies_captain(self, coordinator, league, published):
        team = await league.make_team()
        match_id = await league.pending_match(team)
        player_id = team.player_ids[0]

        result = await coordinator.request_join(match_id, player_id, team.id, "A")

        assert result.join_status == JoinStatus.PENDING
        assert result.team_side == TeamSide.A
        assert await coordinator.my_join_status(match_id, player_id) == JoinStatus.PENDING
        assert [(e.kind, e.player_id) for e in published] == [("join_request", team.captain_id)]

        detail = await coordinator.get_match(match_id)
        assert [e.player_id for e in detail.pending_requests] == [player_id]

    async def test_missing_match(self, coordinator, league):
        team = await league.make_team()
        with pytest.raises(MatchNotFoundError):
            await coordinator.request_join(404, team.player_ids[0], team.id, "A")

    async def test_duplicate_request(self, coordinator, league):
        team = await league.make_team()
        match_id = await league.pending_match(team)
        await coordinator.request_join(match_id, team.player_ids[0], team.id, "A")

        with pytest.raises(AlreadyInMatchError):
            await coordinator.request_join(match_id, team.player_ids[0], team.id, "A")

    async def test_captain_cannot_rejoin(self, coordinator, league):
        team = await league.make_team()
        match_id = await league.pending_match(team)
        with pytest.raises(CaptainAlreadyMemberError):
            await coordinator.request_join(match_id, team.captain_id, team.id, "A")

    async def test_side_b_needs_an_opponent(self, coordinator, league):
        team = await league.make_team()
        other = await league.make_team()
        match_id = await league.pending_match(team)
        with pytest.raises(InvalidStateError):
            await coordinator.request_join(match_id, other.player_ids[0], other.id, "B")

    async def test_team_must_match_side(self, coordinator, league):
        team = await league.make_team()
        other = await league.make_team()
        match_id = await league.pending_match(team)
        with pytest.raises(InvalidInputError):
            await coordinator.request_join(match_id, other.player_ids[0], other.id, "A")

    async def test_unknown_side(self, coordinator, league):
        team = await league.make_team()
        match_id = await league.pending_match(team)
        with pytest.raises(InvalidInputError):
            await coordinator.request_join(match_id, team.player_ids[0], team.id, "C")

    async def test_full_side_rejects_requests(self, coordinator, league):
        fixture = await league.confirmed_match(players_per_side=5)
        extra = await league.db.create_player("Late Arrival")
        with pytest.raises(SideFullError):
            await coordinator.request_join(fixture.match_id, extra.id, fixture.team_a.id, "A")

    async def test_declined_player_may_ask_again(self, coordinator, league):
        team = await league.make_team()
        match_id = await league.pending_match(team)
        player_id = team.player_ids[0]

        await coordinator.request_join(match_id, player_id, team.id, "A")
        await coordinator.decide_join(match_id, team.captain_id, player_id, "decline")
        result = await coordinator.request_join(match_id, player_id, team.id, "A")

        assert result.reopened
        assert await coordinator.my_join_status(match_id, player_id) == JoinStatus.PENDING


class TestDecide:
    async def test_approve(self, coordinator, league, published):
        team = await league.make_team()
        match_id = await league.pending_match(team)
        player_id = team.player_ids[0]
        await coordinator.request_join(match_id, player_id, team.id, "A")

        result = await coordinator.decide_join(match_id, team.captain_id, player_id, "approve")

        assert result.changed
        assert result.join_status == JoinStatus.APPROVED
        assert await approved_counts(coordinator, match_id) == (2, 0)
        assert published[-1].kind == "join_approved"
        assert published[-1].player_id == player_id

    async def test_decline(self, coordinator, league, published):
        team = await league.make_team()
        match_id = await league.pending_match(team)
        player_id = team.player_ids[0]
        await coordinator.request_join(match_id, player_id, team.id, "A")

        result = await coordinator.decide_join(match_id, team.captain_id, player_id, "decline")

        assert result.join_status == JoinStatus.DECLINED
        assert published[-1].kind == "join_declined"
        assert await approved_counts(coordinator, match_id) == (1, 0)

    async def test_deciding_twice_is_a_silent_no_op(self, coordinator, league, published):
        team = await league.make_team()
        match_id = await league.pending_match(team)
        player_id = team.player_ids[0]
        await coordinator.request_join(match_id, player_id, team.id, "A")
        await coordinator.decide_join(match_id, team.captain_id, player_id, "approve")
        delivered = len(published)

        again = await coordinator.decide_join(match_id, team.captain_id, player_id, "approve")
        flipped = await coordinator.decide_join(match_id, team.captain_id, player_id, "decline")

        assert not again.changed
        assert not flipped.changed
        assert flipped.join_status == JoinStatus.APPROVED
        assert len(published) == delivered

    async def test_only_the_entry_team_captain_decides(self, coordinator, league):
        fixture = await league.confirmed_match(players_per_side=2)
        newcomer = await league.db.create_player("Newcomer")
        await league.db.add_player_to_team(newcomer.id, fixture.team_a.id)
        await coordinator.request_join(fixture.match_id, newcomer.id, fixture.team_a.id, "A")

        with pytest.raises(ForbiddenError):
            await coordinator.decide_join(
                fixture.match_id, fixture.team_b.captain_id, newcomer.id, "approve"
            )

    async def test_unknown_decision(self, coordinator, league):
        team = await league.make_team()
        match_id = await league.pending_match(team)
        with pytest.raises(InvalidInputError):
            await coordinator.decide_join(match_id, team.captain_id, team.player_ids[0], "maybe")

    async def test_approval_rechecks_capacity(self, coordinator, league):
        team = await league.make_team(players=6)
        match_id = await league.pending_match(team)

        # Six pending requests for the four free places
        for player_id in team.player_ids:
            await coordinator.request_join(match_id, player_id, team.id, "A")

        results = []
        for player_id in team.player_ids:
            try:
                results.append(await coordinator.decide_join(match_id, team.captain_id, player_id, "approve"))
            except SideFullError:
                results.append(None)

        assert sum(1 for r in results if r is not None) == 4
        assert await approved_counts(coordinator, match_id) == (5, 0)


class TestCapacityUnderConcurrency:
    async def test_concurrent_approvals_never_overfill(self, coordinator, league):
        team = await league.make_team(players=8)
        match_id = await league.pending_match(team)
        for player_id in team.player_ids:
            await coordinator.request_join(match_id, player_id, team.id, "A")

        outcomes = await asyncio.gather(
            *(coordinator.decide_join(match_id, team.captain_id, player_id, "approve")
              for player_id in team.player_ids),
            return_exceptions=True
        )

        approved = [o for o in outcomes if not isinstance(o, Exception)]
        rejected = [o for o in outcomes if isinstance(o, SideFullError)]
        assert len(approved) == 4
        assert len(rejected) == 4
        assert await approved_counts(coordinator, match_id) == (5, 0)


class TestPendingRequests:
    async def test_lists_requests_still_waiting(self, coordinator, league):
        team = await league.make_team()
        match_id = await league.pending_match(team)
        first, second, third = team.player_ids[:3]
        for player_id in (first, second, third):
            await coordinator.request_join(match_id, player_id, team.id, "A")
        await coordinator.decide_join(match_id, team.captain_id, second, "approve")

        pending = await coordinator.get_pending_requests(match_id)
        assert [e.player_id for e in pending] == [first, third]
        assert [e.player_id for e in await coordinator.get_pending_requests(match_id, "A")] == [first, third]
        assert await coordinator.get_pending_requests(match_id, TeamSide.B) == []

    async def test_unknown_side(self, coordinator, league):
        match_id = await league.pending_match()
        with pytest.raises(InvalidInputError):
            await coordinator.get_pending_requests(match_id, "C")
