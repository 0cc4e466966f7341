import datetime
import json
from typing import List, Optional

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from courtside.core.database import Base
from courtside.models.enums import MatchStatus
from courtside.models.tournament import enum_column

FINAL_ROUND = -1
SEMIFINAL_ROUND = -2
QUARTERFINAL_ROUND = -3

NAMED_ROUNDS = {
    FINAL_ROUND: "Final",
    SEMIFINAL_ROUND: "Semifinal",
    QUARTERFINAL_ROUND: "Quarterfinal",
}


def round_name(round_number: int) -> str:
    return NAMED_ROUNDS.get(round_number, f"Round {round_number}")


def parse_set_scores(raw: Optional[str]) -> List[dict]:
    if not raw:
        return []
    return json.loads(raw)


class Match(Base):
    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False, index=True)
    # 1, 2, 3... in order; the late rounds of a single elimination bracket use
    # -3 (quarterfinal), -2 (semifinal) and -1 (final).
    round = Column(Integer, nullable=False)
    match_number = Column(Integer, nullable=False)
    court = Column(String(50), nullable=True)
    scheduled_time = Column(DateTime, nullable=True)
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)

    team1_id = Column(Integer, ForeignKey("tournament_registrations.id"), nullable=True)
    team2_id = Column(Integer, ForeignKey("tournament_registrations.id"), nullable=True)
    winner_id = Column(Integer, ForeignKey("tournament_registrations.id"), nullable=True)

    status = enum_column(MatchStatus, default=MatchStatus.SCHEDULED, nullable=False)
    team1_score = Column(Integer, nullable=True)  # sets won
    team2_score = Column(Integer, nullable=True)
    set_scores = Column(Text, nullable=True)  # JSON: [{"team1": 6, "team2": 4}, ...]
    notes = Column(String(1000), nullable=True)

    next_match_id = Column(Integer, ForeignKey("matches.id"), nullable=True)
    next_match_slot = Column(Integer, nullable=True)
    next_match_id_loser = Column(Integer, ForeignKey("matches.id"), nullable=True)
    next_match_loser_slot = Column(Integer, nullable=True)
    is_loser_bracket = Column(Boolean, default=False, nullable=False)

    standings_applied = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    tournament = relationship("Tournament", back_populates="matches", foreign_keys=[tournament_id])
    team1 = relationship("Registration", foreign_keys=[team1_id])
    team2 = relationship("Registration", foreign_keys=[team2_id])
    winner = relationship("Registration", foreign_keys=[winner_id])

    @property
    def round_name(self) -> str:
        return round_name(self.round)

    @property
    def duration_minutes(self) -> Optional[int]:
        if self.start_time is None or self.end_time is None:
            return None
        return int((self.end_time - self.start_time).total_seconds() // 60)

    @property
    def is_completed(self) -> bool:
        return self.status == MatchStatus.COMPLETED and self.winner_id is not None

    @property
    def is_ready(self) -> bool:
        return self.team1_id is not None and self.team2_id is not None

    @property
    def loser_id(self) -> Optional[int]:
        if self.winner_id is None or not self.is_ready:
            return None
        return self.team2_id if self.winner_id == self.team1_id else self.team1_id

    def slot(self, position: int) -> Optional[int]:
        return self.team1_id if position == 1 else self.team2_id

    def set_slot(self, position: int, registration_id: Optional[int]) -> None:
        if position == 1:
            self.team1_id = registration_id
        elif position == 2:
            self.team2_id = registration_id
        else:
            raise ValueError(f"Invalid slot {position!r}; expected 1 or 2.")
