from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from courtside.api.dependencies import get_current_user_id, get_db
from courtside.schemas import match_schemas
from courtside.schemas.common import ApiResponse, ok
from courtside.services import bracket_service, schedule_service

router = APIRouter()


def _read(match) -> match_schemas.MatchRead:
    return match_schemas.MatchRead.model_validate(match)


@router.post(
    "/tournaments/{tournament_id}/bracket",
    response_model=ApiResponse[List[match_schemas.MatchRead]],
    status_code=status.HTTP_201_CREATED,
)
async def generate_bracket_endpoint(
    tournament_id: int,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    matches = bracket_service.generate_bracket(db=db, tournament_id=tournament_id, current_user_id=current_user_id)
    return ok([_read(m) for m in matches], f"Bracket generated with {len(matches)} matches.")


@router.get("/tournaments/{tournament_id}/bracket", response_model=ApiResponse[match_schemas.BracketRead])
async def get_bracket_endpoint(tournament_id: int, db: Session = Depends(get_db)):
    bracket = bracket_service.get_bracket(db=db, tournament_id=tournament_id)
    data = match_schemas.BracketRead(
        tournament_id=bracket["tournament_id"],
        matches=[_read(m) for m in bracket["matches"]],
        problems=bracket["problems"],
    )
    return ok(data)


@router.post(
    "/tournaments/{tournament_id}/schedule",
    response_model=ApiResponse[List[match_schemas.MatchRead]],
    status_code=status.HTTP_201_CREATED,
)
async def generate_schedule_endpoint(
    tournament_id: int,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    matches = schedule_service.generate_schedule(db=db, tournament_id=tournament_id, current_user_id=current_user_id)
    return ok([_read(m) for m in matches], f"Scheduled {len(matches)} matches.")


@router.post("/matches/{match_id}/score", response_model=ApiResponse[match_schemas.MatchRead])
async def record_score_endpoint(
    match_id: int,
    score_in: match_schemas.MatchScoreUpdate,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    match = bracket_service.record_match_score(db=db, match_id=match_id, score=score_in, current_user_id=current_user_id)
    return ok(_read(match), "Result recorded.")


@router.post("/matches/{match_id}/walkover", response_model=ApiResponse[match_schemas.MatchRead])
async def walkover_endpoint(
    match_id: int,
    walkover_in: match_schemas.WalkoverUpdate,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    match = bracket_service.walkover(db=db, match_id=match_id, payload=walkover_in, current_user_id=current_user_id)
    return ok(_read(match), "Walkover recorded.")
