"""
Pytest configuration and shared fixtures.

Provides:
- A file-backed SQLite database per test
- A MatchCoordinator wired to it, with every published event captured
- A League helper that builds teams and drives matches to a given status
"""

import os
import tempfile
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

import pytest

os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "footsquad-test-logs"))

from footsquad.coordinator import MatchCoordinator
from footsquad.database.database import Database
from footsquad.database.models import Player, Team
from footsquad.utils.timeutil import utc_now


# ============================================================================
# DATABASE FIXTURES
# ============================================================================

@pytest.fixture
async def db(tmp_path):
    """Fresh database in a temporary file"""
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'footsquad_test.db'}")
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def published():
    """Every event delivered to listeners, in delivery order"""
    return []


@pytest.fixture
def coordinator(db, published):
    coordinator = MatchCoordinator(db)

    async def capture(event):
        published.append(event)

    coordinator.notifications.add_listener(capture)
    return coordinator


# ============================================================================
# LEAGUE BUILDER
# ============================================================================

@dataclass
class TeamFixture:
    team: Team
    captain: Player
    players: List[Player] = field(default_factory=list)

    @property
    def id(self) -> int:
        return self.team.id

    @property
    def captain_id(self) -> int:
        return self.captain.id

    @property
    def player_ids(self) -> List[int]:
        return [p.id for p in self.players]


@dataclass
class MatchFixture:
    match_id: int
    team_a: TeamFixture
    team_b: TeamFixture

    @property
    def side_a_ids(self) -> List[int]:
        return [self.team_a.captain_id] + self.team_a.player_ids

    @property
    def side_b_ids(self) -> List[int]:
        return [self.team_b.captain_id] + self.team_b.player_ids


class League:
    """Builds teams and walks matches through the lifecycle"""

    def __init__(self, db: Database, coordinator: MatchCoordinator):
        self.db = db
        self.coordinator = coordinator
        self._team_count = 0

    async def make_team(self, players: int = 4, city: str = "Casablanca") -> TeamFixture:
        """Team with a captain plus ``players`` extra members"""
        self._team_count += 1
        name = f"Team {self._team_count}"
        captain = await self.db.create_player(f"{name} Captain", city)
        team = await self.db.create_team(name, city, captain.id)
        members = []
        for i in range(players):
            player = await self.db.create_player(f"{name} Player {i + 1}", city)
            members.append(await self.db.add_player_to_team(player.id, team.id))
        return TeamFixture(team=team, captain=captain, players=members)

    async def pending_match(self, team_a: Optional[TeamFixture] = None, match_type: str = "public",
                            match_format: str = "5v5", days_ahead: int = 1) -> int:
        team_a = team_a or await self.make_team()
        match = await self.coordinator.create_match(
            team_a.captain_id, match_type, match_format, "Casablanca", "Stade Municipal",
            utc_now() + timedelta(days=days_ahead)
        )
        return match.id

    async def confirmed_match(self, players_per_side: int = 5, match_format: str = "5v5",
                              days_ahead: int = 1, players_b: Optional[int] = None) -> MatchFixture:
        """Public match with an accepted opponent and both rosters approved"""
        team_a = await self.make_team(players_per_side - 1)
        team_b = await self.make_team((players_b or players_per_side) - 1)
        match_id = await self.pending_match(team_a, "public", match_format, days_ahead)

        proposal = await self.coordinator.request_to_play(match_id, team_b.captain_id)
        await self.coordinator.accept_opponent(match_id, proposal.id, team_a.captain_id)

        for fixture, side in ((team_a, "A"), (team_b, "B")):
            for player_id in fixture.player_ids:
                await self.coordinator.request_join(match_id, player_id, fixture.id, side)
                await self.coordinator.decide_join(match_id, fixture.captain_id, player_id, "approve")

        return MatchFixture(match_id=match_id, team_a=team_a, team_b=team_b)

    async def completed_match(self, score_a: int = 2, score_b: int = 1,
                              players_per_side: int = 5, players_b: Optional[int] = None) -> MatchFixture:
        fixture = await self.confirmed_match(players_per_side, players_b=players_b)
        await self.coordinator.submit_score(fixture.match_id, fixture.team_a.captain_id, score_a, score_b)
        await self.coordinator.submit_score(fixture.match_id, fixture.team_b.captain_id, score_a, score_b)
        return fixture


@pytest.fixture
def league(db, coordinator):
    return League(db, coordinator)
