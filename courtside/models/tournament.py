import datetime

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from courtside.core.database import Base
from courtside.models.enums import (
    TEAM_BASED_TYPES,
    TournamentFormat,
    TournamentStatus,
    TournamentType,
)


def enum_column(enum_cls, **kwargs):
    """String-backed enum column storing the member values ("Draft", "Completed", ...)."""
    return Column(
        Enum(
            enum_cls,
            native_enum=False,
            length=50,
            values_callable=lambda members: [member.value for member in members],
        ),
        **kwargs,
    )


class Tournament(Base):
    __tablename__ = "tournaments"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(String(2000), nullable=True)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    tournament_type = enum_column(TournamentType, nullable=False)
    format = enum_column(TournamentFormat, nullable=False)
    location = Column(String(300), nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)
    registration_deadline = Column(DateTime, nullable=False)
    max_participants = Column(Integer, nullable=False)
    min_participants = Column(Integer, default=2, nullable=False)
    current_participants = Column(Integer, default=0, nullable=False)
    entry_fee = Column(Numeric(10, 2), default=0, nullable=False)
    is_public = Column(Boolean, default=True, nullable=False)
    status = enum_column(TournamentStatus, default=TournamentStatus.DRAFT, nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)

    organizer = relationship("User", back_populates="organized_tournaments")
    registrations = relationship(
        "Registration", back_populates="tournament", cascade="all, delete-orphan"
    )
    matches = relationship(
        "Match",
        back_populates="tournament",
        cascade="all, delete-orphan",
        foreign_keys="Match.tournament_id",
    )
    american_rounds = relationship(
        "AmericanTournamentRound", back_populates="tournament", cascade="all, delete-orphan"
    )
    standings = relationship(
        "AmericanTournamentStanding", back_populates="tournament", cascade="all, delete-orphan"
    )

    @property
    def is_full(self) -> bool:
        return self.current_participants >= self.max_participants

    @property
    def is_registration_open(self) -> bool:
        return (
            self.status == TournamentStatus.OPEN_FOR_REGISTRATION
            and datetime.datetime.utcnow() <= self.registration_deadline
            and not self.is_full
        )

    @property
    def is_team_based(self) -> bool:
        return self.tournament_type in TEAM_BASED_TYPES

    @property
    def days_until_start(self) -> int:
        return (self.start_date - datetime.datetime.utcnow()).days
