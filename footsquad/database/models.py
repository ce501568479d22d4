from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text, Float,
    ForeignKey, Enum as SQLEnum, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
from enum import Enum
from typing import Optional

from footsquad.constants import FormatConstants

Base = declarative_base()

class MatchType(Enum):
    PUBLIC = "public"
    FRIENDLY = "friendly"

class MatchStatus(Enum):
    """Status of a match from creation to outcome"""
    PENDING = "pending"            # Created, no opponent yet
    CONFIRMED = "confirmed"        # Opponent accepted
    IN_PROGRESS = "in_progress"    # At least one score submitted
    COMPLETED = "completed"        # Both captains agreed on the score
    NULL_RESULT = "null_result"    # Captains disagreed twice
    CANCELLED = "cancelled"        # Cancelled by admin or expired

class MatchFormat(Enum):
    FIVE_A_SIDE = "5v5"
    EIGHT_A_SIDE = "8v8"
    ELEVEN_A_SIDE = "11v11"

    @property
    def players_per_team(self) -> int:
        return FormatConstants.PLAYERS_PER_TEAM[self.value]

class TeamSide(Enum):
    A = "A"
    B = "B"

    @property
    def opposite(self) -> 'TeamSide':
        return TeamSide.B if self is TeamSide.A else TeamSide.A

class JoinStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"

class ProposalKind(Enum):
    """How an opponent was proposed for a match"""
    INVITATION = "invitation"  # Side A captain invited a team (friendly)
    CHALLENGE = "challenge"    # Another captain asked to play (public)

class ProposalStatus(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

class StatKind(Enum):
    """Counters maintained through the stat ledger"""
    POINTS = "points"
    MATCHES = "matches"
    WINS = "wins"
    RATING_TOTAL = "rating_total"
    RATING_COUNT = "rating_count"
    MOTM = "motm"

TERMINAL_STATUSES = (MatchStatus.COMPLETED, MatchStatus.NULL_RESULT, MatchStatus.CANCELLED)

class Team(Base):
    __tablename__ = 'teams'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    city = Column(String(100), nullable=False)
    captain_id = Column(Integer, nullable=False, index=True)  # players.id

    # Cached counters, only changed through the stat ledger
    total_wins = Column(Integer, default=0, nullable=False)
    total_matches = Column(Integer, default=0, nullable=False)

    # Metadata
    created_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<Team(id={self.id}, name='{self.name}', captain_id={self.captain_id})>"

class Player(Base):
    __tablename__ = 'players'

    id = Column(Integer, primary_key=True)
    full_name = Column(String(255), nullable=False)
    city = Column(String(100), nullable=True)
    team_id = Column(Integer, ForeignKey('teams.id'), nullable=True)

    # Cached counters, only changed through the stat ledger
    total_matches = Column(Integer, default=0, nullable=False)
    total_points = Column(Integer, default=0, nullable=False)
    total_ratings = Column(Float, default=0, nullable=False)
    rating_count = Column(Integer, default=0, nullable=False)
    motm_count = Column(Integer, default=0, nullable=False)

    # Metadata
    created_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<Player(id={self.id}, name='{self.full_name}', team_id={self.team_id})>"

class Match(Base):
    """
    A match between side A (the creating team) and side B (the accepted opponent).

    ``team_b_id`` is assigned exactly once, by opponent acceptance. A
    CANCELLED match keeps the team B it had when it was cancelled. Final
    scores are assigned exactly once, on the transition into COMPLETED.
    """
    __tablename__ = 'matches'

    id = Column(Integer, primary_key=True)

    # Match configuration
    match_type = Column(SQLEnum(MatchType), nullable=False)
    status = Column(SQLEnum(MatchStatus), default=MatchStatus.PENDING, nullable=False, index=True)
    match_format = Column(SQLEnum(MatchFormat), nullable=False)
    max_players_per_team = Column(Integer, nullable=False)
    city = Column(String(100), nullable=False)
    pitch_name = Column(String(255), nullable=False)
    match_date = Column(DateTime, nullable=False)

    # Sides
    team_a_id = Column(Integer, ForeignKey('teams.id'), nullable=False)
    team_b_id = Column(Integer, ForeignKey('teams.id'), nullable=True)
    created_by = Column(Integer, ForeignKey('players.id'), nullable=False)

    # Score agreement
    score_submitted_by_a = Column(String(20), nullable=True)
    score_submitted_by_b = Column(String(20), nullable=True)
    score_conflict_count = Column(Integer, default=0, nullable=False)
    score_a = Column(Integer, nullable=True)
    score_b = Column(Integer, nullable=True)

    # Post-match sub-flows
    ratings_open = Column(Boolean, default=False, nullable=False)
    ratings_closed_at = Column(DateTime, nullable=True)
    motm_voting_open = Column(Boolean, default=False, nullable=False)
    motm_winner_id = Column(Integer, ForeignKey('players.id'), nullable=True)

    # Admin and meta information
    admin_notes = Column(Text)
    created_at = Column(DateTime, default=func.now())
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    team_a = relationship("Team", foreign_keys=[team_a_id])
    team_b = relationship("Team", foreign_keys=[team_b_id])
    roster = relationship("MatchPlayer", back_populates="match", cascade="all, delete-orphan")
    proposals = relationship("MatchRequest", back_populates="match", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint('score_conflict_count >= 0 AND score_conflict_count <= 2', name='conflict_count_range'),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def team_id_for_side(self, side: TeamSide) -> Optional[int]:
        return self.team_a_id if side is TeamSide.A else self.team_b_id

    def __repr__(self):
        return f"<Match(id={self.id}, type={self.match_type.value}, status={self.status.value}, A={self.team_a_id}, B={self.team_b_id})>"

class MatchPlayer(Base):
    """
    A player's roster entry for one match.

    Side counts and pending lists are always computed from these rows.
    """
    __tablename__ = 'match_players'

    id = Column(Integer, primary_key=True)
    match_id = Column(Integer, ForeignKey('matches.id'), nullable=False, index=True)
    player_id = Column(Integer, ForeignKey('players.id'), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey('teams.id'), nullable=False)
    team_side = Column(SQLEnum(TeamSide), nullable=False)
    join_status = Column(SQLEnum(JoinStatus), default=JoinStatus.PENDING, nullable=False)
    attempts = Column(Integer, default=1, nullable=False)  # Bumped when a declined player asks again

    # Metadata
    created_at = Column(DateTime, default=func.now())
    decided_at = Column(DateTime, nullable=True)

    # Relationships
    match = relationship("Match", back_populates="roster")
    player = relationship("Player")

    __table_args__ = (
        UniqueConstraint('match_id', 'player_id', name='unique_player_per_match'),
    )

    def __repr__(self):
        return f"<MatchPlayer(match_id={self.match_id}, player_id={self.player_id}, side={self.team_side.value}, status={self.join_status.value})>"

class MatchRequest(Base):
    """An opponent proposal: an invitation from side A or a challenge from another team"""
    __tablename__ = 'match_requests'

    id = Column(Integer, primary_key=True)
    match_id = Column(Integer, ForeignKey('matches.id'), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey('teams.id'), nullable=False)
    kind = Column(SQLEnum(ProposalKind), nullable=False)
    status = Column(SQLEnum(ProposalStatus), default=ProposalStatus.PENDING, nullable=False)

    # Metadata
    created_at = Column(DateTime, default=func.now())
    responded_at = Column(DateTime, nullable=True)

    # Relationships
    match = relationship("Match", back_populates="proposals")
    team = relationship("Team")

    def __repr__(self):
        return f"<MatchRequest(id={self.id}, match_id={self.match_id}, team_id={self.team_id}, kind={self.kind.value}, status={self.status.value})>"

class Rating(Base):
    __tablename__ = 'ratings'

    id = Column(Integer, primary_key=True)
    match_id = Column(Integer, ForeignKey('matches.id'), nullable=False, index=True)
    rater_id = Column(Integer, ForeignKey('players.id'), nullable=False)
    rated_player_id = Column(Integer, ForeignKey('players.id'), nullable=False)
    score = Column(Float, nullable=False)
    created_at = Column(DateTime, default=func.now())

    __table_args__ = (
        UniqueConstraint('match_id', 'rater_id', 'rated_player_id', name='unique_rating_per_target'),
        CheckConstraint('score >= 1 AND score <= 10', name='rating_score_range'),
    )

    def __repr__(self):
        return f"<Rating(match_id={self.match_id}, rater={self.rater_id}, rated={self.rated_player_id}, score={self.score})>"

class MotmVote(Base):
    __tablename__ = 'motm_votes'

    id = Column(Integer, primary_key=True)
    match_id = Column(Integer, ForeignKey('matches.id'), nullable=False, index=True)
    voter_id = Column(Integer, ForeignKey('players.id'), nullable=False)
    voted_player_id = Column(Integer, ForeignKey('players.id'), nullable=False)
    created_at = Column(DateTime, default=func.now())

    __table_args__ = (
        UniqueConstraint('match_id', 'voter_id', name='unique_vote_per_voter'),
        CheckConstraint('voter_id != voted_player_id', name='no_self_vote'),
    )

    def __repr__(self):
        return f"<MotmVote(match_id={self.match_id}, voter={self.voter_id}, voted={self.voted_player_id})>"

class StatLedger(Base):
    """
    Append-only log of every counter change on players and teams.

    Each row records the delta, why it happened and the counter value
    after it was applied, written in the same transaction as the change.
    """
    __tablename__ = 'stat_ledger'

    id = Column(Integer, primary_key=True)
    player_id = Column(Integer, ForeignKey('players.id'), nullable=True, index=True)
    team_id = Column(Integer, ForeignKey('teams.id'), nullable=True, index=True)
    stat = Column(SQLEnum(StatKind), nullable=False)

    change_amount = Column(Float, nullable=False)
    balance_after = Column(Float, nullable=False)
    reason = Column(String(255), nullable=False)  # e.g. "MATCH_WIN", "MOTM_AWARD", "RATING_BATCH"

    related_match_id = Column(Integer, ForeignKey('matches.id'), nullable=True)

    # Metadata
    timestamp = Column(DateTime, default=func.now())

    __table_args__ = (
        CheckConstraint('(player_id IS NULL) != (team_id IS NULL)', name='ledger_single_subject'),
    )

    def __repr__(self):
        subject = f"player_id={self.player_id}" if self.player_id else f"team_id={self.team_id}"
        return f"<StatLedger({subject}, stat={self.stat.value}, amount={self.change_amount}, reason='{self.reason}')>"

class Notification(Base):
    __tablename__ = 'notifications'

    id = Column(Integer, primary_key=True)
    player_id = Column(Integer, ForeignKey('players.id'), nullable=False, index=True)
    kind = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text)
    match_id = Column(Integer, ForeignKey('matches.id'), nullable=True)
    team_id = Column(Integer, ForeignKey('teams.id'), nullable=True)
    dedupe_key = Column(String(255), nullable=False, unique=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<Notification(player_id={self.player_id}, kind='{self.kind}', match_id={self.match_id})>"
