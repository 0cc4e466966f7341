import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from courtside.core.database import Base
from courtside.models.enums import PaymentStatus, RegistrationStatus
from courtside.models.tournament import enum_column


class Registration(Base):
    """A player, or a fixed two-player team, entered in one tournament."""

    __tablename__ = "tournament_registrations"
    __table_args__ = (
        UniqueConstraint("tournament_id", "player1_id", name="uq_registration_tournament_player1"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False, index=True)
    team_name = Column(String(200), nullable=True)
    player1_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    player2_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    status = enum_column(RegistrationStatus, default=RegistrationStatus.PENDING, nullable=False)
    payment_status = enum_column(PaymentStatus, nullable=True)
    payment_date = Column(DateTime, nullable=True)
    check_in_date = Column(DateTime, nullable=True)
    seed_number = Column(Integer, nullable=True)
    notes = Column(String(1000), nullable=True)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    tournament = relationship("Tournament", back_populates="registrations")
    player1 = relationship("User", foreign_keys=[player1_id])
    player2 = relationship("User", foreign_keys=[player2_id])

    @property
    def is_team(self) -> bool:
        return self.player2_id is not None

    @property
    def is_ready_to_play(self) -> bool:
        return self.status == RegistrationStatus.CHECKED_IN

    @property
    def player_ids(self):
        return [pid for pid in (self.player1_id, self.player2_id) if pid is not None]

    @property
    def display_name(self) -> str:
        if self.team_name:
            return self.team_name
        return f"Registration {self.id}"
