import datetime
from typing import List, Optional

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from courtside.core.database import Base
from courtside.models.enums import MatchStatus, RoundStatus
from courtside.models.tournament import enum_column


class AmericanTournamentRound(Base):
    """One round of an American tournament; teams are formed per pairing, not per registration."""

    __tablename__ = "american_tournament_rounds"
    __table_args__ = (
        UniqueConstraint("tournament_id", "round_number", name="uq_american_round_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False, index=True)
    round_number = Column(Integer, nullable=False)
    status = enum_column(RoundStatus, default=RoundStatus.PENDING, nullable=False)
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    tournament = relationship("Tournament", back_populates="american_rounds")
    pairings = relationship(
        "AmericanTournamentPairing",
        back_populates="round",
        cascade="all, delete-orphan",
        order_by="AmericanTournamentPairing.id",
    )


class AmericanTournamentPairing(Base):
    __tablename__ = "american_tournament_pairings"

    id = Column(Integer, primary_key=True, index=True)
    round_id = Column(Integer, ForeignKey("american_tournament_rounds.id", ondelete="CASCADE"), nullable=False, index=True)
    court = Column(String(50), nullable=True)

    team_a_player1_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    team_a_player2_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    team_b_player1_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    team_b_player2_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    status = enum_column(MatchStatus, default=MatchStatus.SCHEDULED, nullable=False)
    team_a_score = Column(Integer, nullable=True)  # sets won
    team_b_score = Column(Integer, nullable=True)
    set_scores = Column(Text, nullable=True)
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    standings_applied = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)

    round = relationship("AmericanTournamentRound", back_populates="pairings")

    @property
    def team_a(self) -> List[int]:
        return [self.team_a_player1_id, self.team_a_player2_id]

    @property
    def team_b(self) -> List[int]:
        return [self.team_b_player1_id, self.team_b_player2_id]

    @property
    def player_ids(self) -> List[int]:
        return self.team_a + self.team_b

    @property
    def winner(self) -> Optional[str]:
        return pairing_winner(self.team_a_score, self.team_b_score)


def pairing_winner(team_a_score: Optional[int], team_b_score: Optional[int]) -> Optional[str]:
    """'A' or 'B' for a strictly higher score; None when unscored or level."""
    if team_a_score is None or team_b_score is None:
        return None
    if team_a_score > team_b_score:
        return "A"
    if team_b_score > team_a_score:
        return "B"
    return None


class AmericanTournamentStanding(Base):
    """Cumulative record of one player within one tournament."""

    __tablename__ = "american_tournament_standings"
    __table_args__ = (
        UniqueConstraint("tournament_id", "player_id", name="uq_standing_tournament_player"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False, index=True)
    player_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    total_points = Column(Integer, default=0, nullable=False)
    matches_won = Column(Integer, default=0, nullable=False)
    matches_lost = Column(Integer, default=0, nullable=False)
    sets_won = Column(Integer, default=0, nullable=False)
    sets_lost = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    tournament = relationship("Tournament", back_populates="standings")

    @property
    def matches_played(self) -> int:
        return self.matches_won + self.matches_lost

    @property
    def win_rate(self) -> float:
        return win_rate(self.matches_won, self.matches_lost)

    @property
    def set_difference(self) -> int:
        return self.sets_won - self.sets_lost


def win_rate(matches_won: int, matches_lost: int) -> float:
    played = matches_won + matches_lost
    if played == 0:
        return 0.0
    return round(matches_won / played * 100, 2)
