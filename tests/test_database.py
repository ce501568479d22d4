"""
Tests for the database layer: reference data and the stat ledger.
"""

import pytest

from footsquad.config import Config
from footsquad.database.models import StatKind
from footsquad.utils.exceptions import NotFoundError


class TestReferenceData:
    async def test_create_team_makes_captain_a_member(self, db):
        captain = await db.create_player("Yassine", "Rabat")
        team = await db.create_team("Rabat United", "Rabat", captain.id)

        reloaded = await db.get_player(captain.id)
        assert team.captain_id == captain.id
        assert reloaded.team_id == team.id

    async def test_create_team_for_missing_captain(self, db):
        with pytest.raises(NotFoundError):
            await db.create_team("Ghosts", "Rabat", 12345)


class TestStatLedger:
    async def test_delta_updates_counter_and_logs_balance(self, db):
        player = await db.create_player("Anas")
        async with db.transaction() as session:
            await db.apply_stat_delta(session, StatKind.POINTS, 3, "MATCH_WIN", player_id=player.id)
            await db.apply_stat_delta(session, StatKind.POINTS, 2, "MOTM_AWARD", player_id=player.id)

        assert (await db.get_player(player.id)).total_points == 5
        history = await db.get_stat_history(player_id=player.id)
        assert [(h.change_amount, h.balance_after, h.reason) for h in history] == [
            (2, 5, "MOTM_AWARD"), (3, 3, "MATCH_WIN")
        ]

    async def test_rolled_back_transition_leaves_no_trace(self, db):
        player = await db.create_player("Omar")
        with pytest.raises(RuntimeError):
            async with db.transaction() as session:
                await db.apply_stat_delta(session, StatKind.POINTS, 3, "MATCH_WIN", player_id=player.id)
                raise RuntimeError("transition failed")

        assert (await db.get_player(player.id)).total_points == 0
        assert await db.get_stat_history(player_id=player.id) == []

    async def test_team_counters(self, db):
        captain = await db.create_player("Hamza")
        team = await db.create_team("Atlas", "Fes", captain.id)
        async with db.transaction() as session:
            await db.apply_stat_delta(session, StatKind.WINS, 1, "MATCH_WIN", team_id=team.id)

        assert (await db.get_team(team.id)).total_wins == 1

    async def test_subject_must_be_exactly_one(self, db):
        async with db.transaction() as session:
            with pytest.raises(ValueError):
                await db.apply_stat_delta(session, StatKind.POINTS, 1, "X")
            with pytest.raises(ValueError):
                await db.apply_stat_delta(session, StatKind.POINTS, 1, "X", player_id=1, team_id=1)

    async def test_team_has_no_rating_counter(self, db):
        captain = await db.create_player("Bilal")
        team = await db.create_team("Sahara", "Agadir", captain.id)
        async with db.transaction() as session:
            with pytest.raises(ValueError):
                await db.apply_stat_delta(session, StatKind.RATING_TOTAL, 5, "X", team_id=team.id)


class TestConfig:
    def test_sqlite_url_uses_async_driver(self, monkeypatch):
        monkeypatch.setattr(Config, "DATABASE_URL", "sqlite:///footsquad.db")
        assert Config.get_async_database_url() == "sqlite+aiosqlite:///footsquad.db"

    def test_validate_rejects_non_positive_windows(self, monkeypatch):
        monkeypatch.setattr(Config, "RATINGS_WINDOW_HOURS", 0)
        with pytest.raises(ValueError):
            Config.validate()
