from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from courtside.api.dependencies import get_current_user_id, get_db
from courtside.schemas import american_schemas
from courtside.schemas.common import ApiResponse, ok
from courtside.services import rotation_service, standings_service, tournament_service

router = APIRouter()


@router.post(
    "/tournaments/{tournament_id}/american/rounds",
    response_model=ApiResponse[american_schemas.RoundRead],
    status_code=status.HTTP_201_CREATED,
)
async def create_round_endpoint(
    tournament_id: int,
    round_in: Optional[american_schemas.RoundCreate] = None,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    courts = round_in.courts if round_in is not None else None
    new_round = rotation_service.create_next_round(
        db=db, tournament_id=tournament_id, current_user_id=current_user_id, courts=courts
    )
    return ok(american_schemas.RoundRead.model_validate(new_round), f"Round {new_round.round_number} created.")


@router.get("/tournaments/{tournament_id}/american/rounds", response_model=ApiResponse[List[american_schemas.RoundRead]])
async def list_rounds_endpoint(tournament_id: int, db: Session = Depends(get_db)):
    tournament_service.get_tournament(db=db, tournament_id=tournament_id)
    rounds = rotation_service.list_rounds(db=db, tournament_id=tournament_id)
    return ok([american_schemas.RoundRead.model_validate(r) for r in rounds])


@router.post("/american/pairings/{pairing_id}/score", response_model=ApiResponse[american_schemas.PairingRead])
async def record_pairing_score_endpoint(
    pairing_id: int,
    score_in: american_schemas.PairingScoreUpdate,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    pairing = rotation_service.record_pairing_score(
        db=db, pairing_id=pairing_id, score=score_in, current_user_id=current_user_id
    )
    return ok(american_schemas.PairingRead.model_validate(pairing), "Result recorded.")


@router.get("/tournaments/{tournament_id}/standings", response_model=ApiResponse[List[american_schemas.StandingRead]])
async def list_standings_endpoint(tournament_id: int, db: Session = Depends(get_db)):
    tournament_service.get_tournament(db=db, tournament_id=tournament_id)
    rows = standings_service.list_standings(db=db, tournament_id=tournament_id)
    return ok([american_schemas.StandingRead.model_validate(row) for row in rows])


@router.post("/tournaments/{tournament_id}/standings/rebuild", response_model=ApiResponse[List[american_schemas.StandingRead]])
async def rebuild_standings_endpoint(
    tournament_id: int,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    rows = standings_service.rebuild_standings(db=db, tournament_id=tournament_id, current_user_id=current_user_id)
    return ok([american_schemas.StandingRead.model_validate(row) for row in rows], "Standings rebuilt.")
