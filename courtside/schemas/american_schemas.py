from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from courtside.models.enums import MatchStatus, RoundStatus
from courtside.models.match import parse_set_scores


class PairingSetScore(BaseModel):
    team_a: int = Field(..., ge=0)
    team_b: int = Field(..., ge=0)


class RoundCreate(BaseModel):
    courts: Optional[List[str]] = None


class PairingScoreUpdate(BaseModel):
    team_a_score: int = Field(..., ge=0)
    team_b_score: int = Field(..., ge=0)
    set_scores: Optional[List[PairingSetScore]] = None
    correction: bool = False


class PairingRead(BaseModel):
    id: int
    round_id: int
    court: Optional[str] = None
    team_a_player1_id: int
    team_a_player2_id: int
    team_b_player1_id: int
    team_b_player2_id: int
    status: MatchStatus
    team_a_score: Optional[int] = None
    team_b_score: Optional[int] = None
    set_scores: List[PairingSetScore] = []
    winner: Optional[str] = None

    class Config:
        from_attributes = True

    @field_validator("set_scores", mode="before")
    @classmethod
    def decode_set_scores(cls, value):
        if value is None or isinstance(value, str):
            return parse_set_scores(value)
        return value


class RoundRead(BaseModel):
    id: int
    tournament_id: int
    round_number: int
    status: RoundStatus
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    pairings: List[PairingRead] = []

    class Config:
        from_attributes = True


class StandingRead(BaseModel):
    player_id: int
    total_points: int
    matches_won: int
    matches_lost: int
    matches_played: int
    sets_won: int
    sets_lost: int
    set_difference: int
    win_rate: float

    class Config:
        from_attributes = True
