from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from courtside.api.dependencies import get_current_user_id, get_db
from courtside.models.enums import TournamentStatus
from courtside.schemas import tournament_schemas
from courtside.schemas.common import ApiResponse, ok
from courtside.services import tournament_service

router = APIRouter()


@router.post(
    "/tournaments",
    response_model=ApiResponse[tournament_schemas.TournamentRead],
    status_code=status.HTTP_201_CREATED,
)
async def create_tournament_endpoint(
    tournament_in: tournament_schemas.TournamentCreate,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    tournament = tournament_service.create_tournament(db=db, tournament=tournament_in, organizer_id=current_user_id)
    return ok(tournament_schemas.TournamentRead.model_validate(tournament), "Tournament created.")


@router.get("/tournaments", response_model=ApiResponse[List[tournament_schemas.TournamentRead]])
async def list_tournaments_endpoint(
    status_filter: Optional[TournamentStatus] = Query(None, alias="status"),
    organizer_id: Optional[int] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    tournaments = tournament_service.list_tournaments(
        db=db, status=status_filter, organizer_id=organizer_id, skip=skip, limit=limit
    )
    return ok([tournament_schemas.TournamentRead.model_validate(t) for t in tournaments])


@router.get("/tournaments/{tournament_id}", response_model=ApiResponse[tournament_schemas.TournamentRead])
async def get_tournament_endpoint(tournament_id: int, db: Session = Depends(get_db)):
    tournament = tournament_service.get_tournament(db=db, tournament_id=tournament_id)
    return ok(tournament_schemas.TournamentRead.model_validate(tournament))


@router.patch("/tournaments/{tournament_id}/status", response_model=ApiResponse[tournament_schemas.TournamentRead])
async def change_tournament_status_endpoint(
    tournament_id: int,
    status_in: tournament_schemas.TournamentStatusUpdate,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    tournament = tournament_service.change_status(
        db=db, tournament_id=tournament_id, target=status_in.status, current_user_id=current_user_id
    )
    return ok(tournament_schemas.TournamentRead.model_validate(tournament), f"Tournament is now {tournament.status.value}.")
