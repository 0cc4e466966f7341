from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from courtside.models.enums import PaymentStatus, RegistrationStatus


class RegistrationCreate(BaseModel):
    player1_id: Optional[int] = None  # defaults to the caller
    player2_id: Optional[int] = None
    team_name: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = Field(None, max_length=1000)


class RegistrationRead(BaseModel):
    id: int
    tournament_id: int
    team_name: Optional[str] = None
    player1_id: int
    player2_id: Optional[int] = None
    status: RegistrationStatus
    payment_status: Optional[PaymentStatus] = None
    payment_date: Optional[datetime] = None
    check_in_date: Optional[datetime] = None
    seed_number: Optional[int] = None
    notes: Optional[str] = None
    is_team: bool
    is_ready_to_play: bool
    display_name: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaymentUpdate(BaseModel):
    payment_status: PaymentStatus


class SeedAssignment(BaseModel):
    # Registration ids, best seed first.
    registration_ids: List[int] = Field(..., min_length=1)
