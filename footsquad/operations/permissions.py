"""
Captain capability checks.

A captain is whoever ``Team.captain_id`` names; there is no separate role
table. Every authorization decision about captains goes through here.
"""

from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from footsquad.database.models import Match, Team, TeamSide


def is_captain_of(player_id: int, team: Optional[Team]) -> bool:
    """True if the player captains the given team"""
    return team is not None and team.captain_id == player_id


async def load_side_teams(session: AsyncSession, match: Match) -> Dict[TeamSide, Team]:
    """Load the teams seated on each side; side B is absent until an opponent is accepted"""
    teams = {TeamSide.A: await session.get(Team, match.team_a_id)}
    if match.team_b_id is not None:
        teams[TeamSide.B] = await session.get(Team, match.team_b_id)
    return teams


async def captain_side(session: AsyncSession, match: Match, player_id: int) -> Optional[TeamSide]:
    """
    Which side of the match the player captains, if any.

    Args:
        session: Active database session
        match: Match to check
        player_id: Player to check

    Returns:
        TeamSide.A or TeamSide.B, or None if the player captains neither side
    """
    for side, team in (await load_side_teams(session, match)).items():
        if is_captain_of(player_id, team):
            return side
    return None


async def captained_team(session: AsyncSession, player_id: int) -> Optional[Team]:
    """The team the player captains, if any"""
    result = await session.execute(
        select(Team).where(Team.captain_id == player_id).order_by(Team.id).limit(1)
    )
    return result.scalar_one_or_none()
