from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from courtside.models.enums import MatchStatus
from courtside.models.match import parse_set_scores


class SetScore(BaseModel):
    team1: int = Field(..., ge=0)
    team2: int = Field(..., ge=0)


class MatchScoreUpdate(BaseModel):
    team1_score: int = Field(..., ge=0)
    team2_score: int = Field(..., ge=0)
    set_scores: Optional[List[SetScore]] = None
    notes: Optional[str] = Field(None, max_length=1000)
    correction: bool = False


class WalkoverUpdate(BaseModel):
    winner_id: int
    notes: Optional[str] = Field(None, max_length=1000)


class MatchRead(BaseModel):
    id: int
    tournament_id: int
    round: int
    round_name: str
    match_number: int
    court: Optional[str] = None
    scheduled_time: Optional[datetime] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    team1_id: Optional[int] = None
    team2_id: Optional[int] = None
    winner_id: Optional[int] = None
    status: MatchStatus
    team1_score: Optional[int] = None
    team2_score: Optional[int] = None
    set_scores: List[SetScore] = []
    notes: Optional[str] = None
    next_match_id: Optional[int] = None
    next_match_slot: Optional[int] = None
    next_match_id_loser: Optional[int] = None
    next_match_loser_slot: Optional[int] = None
    is_loser_bracket: bool
    is_completed: bool
    is_ready: bool

    class Config:
        from_attributes = True

    @field_validator("set_scores", mode="before")
    @classmethod
    def decode_set_scores(cls, value):
        if value is None or isinstance(value, str):
            return parse_set_scores(value)
        return value


class BracketRead(BaseModel):
    tournament_id: int
    matches: List[MatchRead]
    problems: List[str] = []
