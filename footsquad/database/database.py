from typing import Optional, List
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy import select
from contextlib import asynccontextmanager

from footsquad.config import Config
from footsquad.database.models import (
    Base, Player, Team, StatLedger, StatKind
)
from footsquad.services.match_locks import MatchLockRegistry
from footsquad.utils.exceptions import NotFoundError
from footsquad.utils.logger import setup_logger

# Counter column updated for each ledger stat
PLAYER_STAT_COLUMNS = {
    StatKind.POINTS: 'total_points',
    StatKind.MATCHES: 'total_matches',
    StatKind.RATING_TOTAL: 'total_ratings',
    StatKind.RATING_COUNT: 'rating_count',
    StatKind.MOTM: 'motm_count',
}

TEAM_STAT_COLUMNS = {
    StatKind.MATCHES: 'total_matches',
    StatKind.WINS: 'total_wins',
}

class Database:
    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url
        self.engine = None
        self.async_session = None
        # Shared by every operations class built on this database
        self.match_locks = MatchLockRegistry()

    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        database_url = self.database_url or Config.get_async_database_url()

        self.engine = create_async_engine(
            database_url,
            echo=Config.DEBUG,
            future=True
        )

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        # Create all tables
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

    @property
    def session_factory(self):
        if self.async_session is None:
            raise RuntimeError("Database.initialize() must run before sessions are requested")
        return self.async_session

    @asynccontextmanager
    async def get_session(self):
        """Get a database session"""
        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        All operations within the context are committed together on success,
        or rolled back together on failure. Exceptions must be allowed to
        propagate out of the context for rollback to occur.

        Usage:
            async with db.transaction() as session:
                match = await session.get(Match, match_id)
                ...
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")

    # ============================================================================
    # Reference data: players and teams
    # ============================================================================

    async def create_player(self, full_name: str, city: Optional[str] = None) -> Player:
        """Create a new player without a team"""
        async with self.transaction() as session:
            player = Player(full_name=full_name, city=city)
            session.add(player)
            await session.flush()
            await session.refresh(player)
            return player

    async def create_team(self, name: str, city: str, captain_id: int) -> Team:
        """Create a team and make the given player its captain"""
        async with self.transaction() as session:
            captain = await session.get(Player, captain_id)
            if not captain:
                raise NotFoundError(f"Player {captain_id} not found")

            team = Team(name=name, city=city, captain_id=captain_id)
            session.add(team)
            await session.flush()

            captain.team_id = team.id
            await session.flush()
            await session.refresh(team)

            self.logger.info(f"Created Team {team.id} '{name}' with captain {captain_id}")
            return team

    async def add_player_to_team(self, player_id: int, team_id: int) -> Player:
        """Attach a player to a team"""
        async with self.transaction() as session:
            player = await session.get(Player, player_id)
            if not player:
                raise NotFoundError(f"Player {player_id} not found")
            team = await session.get(Team, team_id)
            if not team:
                raise NotFoundError(f"Team {team_id} not found")

            player.team_id = team_id
            await session.flush()
            await session.refresh(player)
            return player

    async def get_player(self, player_id: int) -> Optional[Player]:
        """Get a player by ID"""
        async with self.get_session() as session:
            return await session.get(Player, player_id)

    async def get_team(self, team_id: int) -> Optional[Team]:
        """Get a team by ID"""
        async with self.get_session() as session:
            return await session.get(Team, team_id)

    # ============================================================================
    # Stat ledger
    # ============================================================================

    async def apply_stat_delta(self, session: AsyncSession, stat: StatKind, amount: float,
                               reason: str, player_id: Optional[int] = None,
                               team_id: Optional[int] = None,
                               match_id: Optional[int] = None) -> StatLedger:
        """
        Apply a counter change with an audit row (session-aware).

        Locks the subject row with SELECT FOR UPDATE, bumps the cached counter
        in place and appends a ledger entry. The caller owns the transaction,
        so the change commits or rolls back with the state transition that
        caused it.

        Args:
            session: Caller's transactional session
            stat: Which counter to change
            amount: Delta to apply
            reason: Short reason code, e.g. "MATCH_WIN"
            player_id: Player subject (exclusive with team_id)
            team_id: Team subject (exclusive with player_id)
            match_id: Match that triggered the change

        Returns:
            The flushed StatLedger entry
        """
        if (player_id is None) == (team_id is None):
            raise ValueError("Exactly one of player_id or team_id is required")

        if player_id is not None:
            model, subject_id, columns = Player, player_id, PLAYER_STAT_COLUMNS
        else:
            model, subject_id, columns = Team, team_id, TEAM_STAT_COLUMNS

        column = columns.get(stat)
        if column is None:
            raise ValueError(f"{model.__name__} has no {stat.value} counter")

        result = await session.execute(
            select(model).where(model.id == subject_id).with_for_update()
        )
        subject = result.scalar_one_or_none()
        if not subject:
            raise NotFoundError(f"{model.__name__} {subject_id} not found")

        new_balance = (getattr(subject, column) or 0) + amount
        setattr(subject, column, new_balance)

        ledger_entry = StatLedger(
            player_id=player_id,
            team_id=team_id,
            stat=stat,
            change_amount=amount,
            balance_after=new_balance,
            reason=reason,
            related_match_id=match_id
        )
        session.add(ledger_entry)
        await session.flush()

        return ledger_entry

    async def get_stat_history(self, player_id: Optional[int] = None, team_id: Optional[int] = None,
                               limit: int = 50) -> List[StatLedger]:
        """Get ledger entries for a player or team, newest first"""
        async with self.get_session() as session:
            query = select(StatLedger)
            if player_id is not None:
                query = query.where(StatLedger.player_id == player_id)
            if team_id is not None:
                query = query.where(StatLedger.team_id == team_id)
            result = await session.execute(
                query.order_by(StatLedger.id.desc()).limit(limit)
            )
            return list(result.scalars().all())
