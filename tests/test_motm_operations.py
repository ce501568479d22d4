"""
Tests for Man-of-the-Match voting and finalization.
"""

import pytest

from footsquad.utils.exceptions import AlreadyDoneError, ForbiddenError, InvalidStateError


async def cast(coordinator, match_id, ballots):
    results = []
    for voter, voted in ballots:
        results.append(await coordinator.vote_motm(match_id, voter, voted))
    return results


class TestFinalization:
    async def test_quorum_finalizes_with_majority_winner(self, coordinator, league, db, published):
        # 3 + 2 approved players
        fixture = await league.completed_match(2, 1, players_per_side=3, players_b=2)
        e = fixture.side_a_ids + fixture.side_b_ids
        c1, c2, c3 = e[0], e[1], e[2]

        results = await cast(coordinator, fixture.match_id, [
            (e[1], c1), (e[0], c2), (e[3], c1), (e[4], c3), (e[2], c1)
        ])

        assert [r.finalized for r in results] == [False, False, False, False, True]
        assert results[-1].winner_id == c1
        assert results[-1].votes_cast == results[-1].eligible_voters == 5

        motm = await coordinator.get_motm_results(fixture.match_id)
        assert motm.winner_id == c1
        assert motm.counts == {c1: 3, c2: 1, c3: 1}
        assert not motm.voting_open

        winner = await db.get_player(c1)
        assert winner.motm_count == 1
        # 3 for the win plus the MOTM bonus
        assert winner.total_points == 5

        notified = {ev.player_id for ev in published if ev.kind == "motm_winner"}
        assert notified == set(e)

    async def test_tie_goes_to_first_voted_candidate(self, coordinator, league):
        fixture = await league.completed_match(players_per_side=2)
        e = fixture.side_a_ids + fixture.side_b_ids
        c1, c2 = e[0], e[1]

        results = await cast(coordinator, fixture.match_id, [
            (e[1], c1), (e[0], c2), (e[2], c1), (e[3], c2)
        ])
        assert results[-1].winner_id == c1

    async def test_tie_order_follows_first_vote_not_id(self, coordinator, league):
        fixture = await league.completed_match(players_per_side=2)
        e = fixture.side_a_ids + fixture.side_b_ids
        c1, c2 = e[0], e[1]

        results = await cast(coordinator, fixture.match_id, [
            (e[0], c2), (e[1], c1), (e[2], c1), (e[3], c2)
        ])
        assert results[-1].winner_id == c2

    async def test_voting_closes_after_finalization(self, coordinator, league):
        fixture = await league.completed_match(players_per_side=1)
        a, b = fixture.team_a.captain_id, fixture.team_b.captain_id
        await cast(coordinator, fixture.match_id, [(a, b), (b, a)])

        with pytest.raises(InvalidStateError):
            await coordinator.vote_motm(fixture.match_id, a, b)


class TestVoteRules:
    async def test_self_vote_forbidden(self, coordinator, league):
        fixture = await league.completed_match()
        with pytest.raises(ForbiddenError):
            await coordinator.vote_motm(fixture.match_id, fixture.side_a_ids[1], fixture.side_a_ids[1])

    async def test_outsiders_cannot_vote_or_be_voted(self, coordinator, league):
        fixture = await league.completed_match()
        outsider = await league.db.create_player("Spectator")
        with pytest.raises(ForbiddenError):
            await coordinator.vote_motm(fixture.match_id, outsider.id, fixture.side_a_ids[0])
        with pytest.raises(ForbiddenError):
            await coordinator.vote_motm(fixture.match_id, fixture.side_a_ids[0], outsider.id)

    async def test_one_vote_per_player(self, coordinator, league):
        fixture = await league.completed_match()
        await coordinator.vote_motm(fixture.match_id, fixture.side_a_ids[1], fixture.side_b_ids[0])
        assert await coordinator.has_voted(fixture.match_id, fixture.side_a_ids[1])

        with pytest.raises(AlreadyDoneError):
            await coordinator.vote_motm(fixture.match_id, fixture.side_a_ids[1], fixture.side_b_ids[1])

        motm = await coordinator.get_motm_results(fixture.match_id)
        assert motm.total_votes == 1
        assert motm.voting_open

    async def test_voting_closed_before_completion(self, coordinator, league):
        fixture = await league.confirmed_match()
        with pytest.raises(InvalidStateError):
            await coordinator.vote_motm(fixture.match_id, fixture.side_a_ids[1], fixture.side_b_ids[0])

    async def test_null_result_never_opens_voting(self, coordinator, league):
        fixture = await league.confirmed_match()
        for _ in range(2):
            await coordinator.submit_score(fixture.match_id, fixture.team_a.captain_id, 1, 0)
            await coordinator.submit_score(fixture.match_id, fixture.team_b.captain_id, 0, 1)

        with pytest.raises(InvalidStateError):
            await coordinator.vote_motm(fixture.match_id, fixture.side_a_ids[1], fixture.side_b_ids[0])
