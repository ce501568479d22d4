"""
Tests for the periodic sweeps.
"""

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from footsquad.database.models import MatchStatus
from footsquad.utils.timeutil import utc_now


async def status_of(coordinator, match_id):
    return (await coordinator.get_match(match_id)).match.status


class TestExpireStaleMatches:
    async def test_pending_match_past_kickoff_is_cancelled(self, coordinator, league, published):
        team_a = await league.make_team()
        team_b = await league.make_team()
        match_id = await league.pending_match(team_a)
        await coordinator.request_to_play(match_id, team_b.captain_id)

        later = utc_now() + timedelta(days=2)
        assert await coordinator.housekeeping.expire_stale_matches(later) == 1
        assert await status_of(coordinator, match_id) == MatchStatus.CANCELLED

        detail = await coordinator.get_match(match_id)
        assert detail.pending_proposals == []
        assert "match_cancelled" in [e.kind for e in published]

        # Idempotent
        assert await coordinator.housekeeping.expire_stale_matches(later) == 0

    async def test_future_and_confirmed_matches_are_left_alone(self, coordinator, league):
        future_id = await league.pending_match(days_ahead=5)
        fixture = await league.confirmed_match()

        later = utc_now() + timedelta(days=2)
        assert await coordinator.housekeeping.expire_stale_matches(later) == 0
        assert await status_of(coordinator, future_id) == MatchStatus.PENDING
        assert await status_of(coordinator, fixture.match_id) == MatchStatus.CONFIRMED


class TestExpireUnresolvedScores:
    async def test_unscored_matches_become_null_results(self, coordinator, league, db):
        untouched = await league.confirmed_match()
        half_scored = await league.confirmed_match()
        await coordinator.submit_score(half_scored.match_id, half_scored.team_a.captain_id, 2, 0)
        finished = await league.completed_match()

        now = utc_now() + timedelta(days=1, hours=73)
        assert await coordinator.housekeeping.expire_unresolved_scores(now) == 2

        assert await status_of(coordinator, untouched.match_id) == MatchStatus.NULL_RESULT
        assert await status_of(coordinator, half_scored.match_id) == MatchStatus.NULL_RESULT
        assert await status_of(coordinator, finished.match_id) == MatchStatus.COMPLETED

        status = await coordinator.get_score_status(half_scored.match_id)
        assert not status.submitted_by_a
        captain = await db.get_player(half_scored.team_a.captain_id)
        assert captain.total_points == 0

        assert await coordinator.housekeeping.expire_unresolved_scores(now) == 0

    async def test_within_timeout_nothing_changes(self, coordinator, league):
        fixture = await league.confirmed_match()
        now = utc_now() + timedelta(days=1, hours=71)
        assert await coordinator.housekeeping.expire_unresolved_scores(now) == 0
        assert await status_of(coordinator, fixture.match_id) == MatchStatus.CONFIRMED


class TestCloseRatingWindows:
    async def test_window_closes_after_deadline(self, coordinator, league):
        fixture = await league.completed_match()

        assert await coordinator.housekeeping.close_rating_windows(utc_now() + timedelta(hours=1)) == 0

        later = utc_now() + timedelta(hours=25)
        assert await coordinator.housekeeping.close_rating_windows(later) == 1
        match = (await coordinator.get_match(fixture.match_id)).match
        assert not match.ratings_open
        # MOTM voting is not tied to the ratings window
        assert match.motm_voting_open

        assert await coordinator.housekeeping.close_rating_windows(later) == 0


class TestRunAll:
    async def test_report_counts_every_sweep(self, coordinator, league):
        await league.pending_match()
        await league.confirmed_match()
        await league.completed_match()

        report = await coordinator.run_housekeeping(utc_now() + timedelta(days=5))

        assert report.cancelled == 1
        assert report.null_results == 1
        assert report.ratings_closed == 1
        assert report.total == 3


class TestLockedDatabaseRetry:
    async def test_locked_match_retried_without_losing_counts(self, coordinator, league, monkeypatch):
        first_id = await league.pending_match()
        second_id = await league.pending_match()
        match_ops = coordinator.housekeeping.match_ops
        real_run_locked = match_ops.run_locked
        failures = []

        async def locked_once(match_id, work):
            if match_id == second_id and not failures:
                failures.append(match_id)
                raise OperationalError("UPDATE matches", {}, Exception("database is locked"))
            return await real_run_locked(match_id, work)

        monkeypatch.setattr(match_ops, "run_locked", locked_once)
        cancelled = await coordinator.housekeeping.expire_stale_matches(utc_now() + timedelta(days=2))

        assert cancelled == 2
        assert failures == [second_id]
        assert await status_of(coordinator, first_id) == MatchStatus.CANCELLED
        assert await status_of(coordinator, second_id) == MatchStatus.CANCELLED

    async def test_locked_database_is_retried(self, coordinator):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise OperationalError("UPDATE matches", {}, Exception("database is locked"))
            return 7

        assert await coordinator.housekeeping.execute_with_retry(flaky, "flaky sweep") == 7
        assert len(calls) == 3

    async def test_other_database_errors_are_raised(self, coordinator):
        calls = []

        async def broken():
            calls.append(1)
            raise OperationalError("SELECT", {}, Exception("no such table: matches"))

        with pytest.raises(OperationalError):
            await coordinator.housekeeping.execute_with_retry(broken, "broken sweep")
        assert len(calls) == 1
