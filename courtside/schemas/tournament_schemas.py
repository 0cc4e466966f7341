from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from courtside.models.enums import TournamentFormat, TournamentStatus, TournamentType


class TournamentBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    tournament_type: TournamentType
    format: TournamentFormat
    location: str = Field(..., min_length=1, max_length=300)
    start_date: datetime
    end_date: Optional[datetime] = None
    registration_deadline: datetime
    max_participants: int = Field(..., ge=2, le=256)
    min_participants: int = Field(2, ge=2, le=256)
    entry_fee: Decimal = Field(Decimal("0"), ge=0)
    is_public: bool = True


class TournamentCreate(TournamentBase):
    @model_validator(mode="after")
    def check_dates_and_capacity(self):
        if self.registration_deadline > self.start_date:
            raise ValueError("registration_deadline must not be after start_date")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if self.tournament_type == TournamentType.AMERICAN and self.min_participants < 4:
            self.min_participants = 4
        if self.min_participants > self.max_participants:
            raise ValueError("min_participants must not exceed max_participants")
        return self


class TournamentRead(TournamentBase):
    id: int
    organizer_id: int
    current_participants: int
    status: TournamentStatus
    is_full: bool
    is_registration_open: bool
    is_team_based: bool
    days_until_start: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TournamentStatusUpdate(BaseModel):
    status: TournamentStatus
