from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from courtside.api.dependencies import get_current_user_id, get_db
from courtside.schemas import registration_schemas
from courtside.schemas.common import ApiResponse, ok
from courtside.services import registration_service, tournament_service

router = APIRouter()

RegistrationResponse = ApiResponse[registration_schemas.RegistrationRead]


def _read(registration) -> registration_schemas.RegistrationRead:
    return registration_schemas.RegistrationRead.model_validate(registration)


@router.post(
    "/tournaments/{tournament_id}/registrations",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register_endpoint(
    tournament_id: int,
    registration_in: registration_schemas.RegistrationCreate,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    registration = registration_service.register(
        db=db, tournament_id=tournament_id, registration_in=registration_in, current_user_id=current_user_id
    )
    return ok(_read(registration), "Registration received.")


@router.get(
    "/tournaments/{tournament_id}/registrations",
    response_model=ApiResponse[List[registration_schemas.RegistrationRead]],
)
async def list_registrations_endpoint(tournament_id: int, db: Session = Depends(get_db)):
    tournament_service.get_tournament(db=db, tournament_id=tournament_id)
    registrations = registration_service.list_registrations(db=db, tournament_id=tournament_id)
    return ok([_read(r) for r in registrations])


@router.post("/registrations/{registration_id}/confirm", response_model=RegistrationResponse)
async def confirm_registration_endpoint(
    registration_id: int,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    registration = registration_service.confirm(db=db, registration_id=registration_id, current_user_id=current_user_id)
    return ok(_read(registration), "Registration confirmed.")


@router.post("/registrations/{registration_id}/payment", response_model=RegistrationResponse)
async def record_payment_endpoint(
    registration_id: int,
    payment_in: registration_schemas.PaymentUpdate,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    registration = registration_service.record_payment(
        db=db,
        registration_id=registration_id,
        payment_status=payment_in.payment_status,
        current_user_id=current_user_id,
    )
    return ok(_read(registration), "Payment recorded.")


@router.post("/registrations/{registration_id}/check-in", response_model=RegistrationResponse)
async def check_in_endpoint(
    registration_id: int,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    registration = registration_service.check_in(db=db, registration_id=registration_id, current_user_id=current_user_id)
    return ok(_read(registration), "Checked in.")


@router.post("/registrations/{registration_id}/cancel", response_model=RegistrationResponse)
async def cancel_registration_endpoint(
    registration_id: int,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    registration = registration_service.cancel(db=db, registration_id=registration_id, current_user_id=current_user_id)
    return ok(_read(registration), "Registration cancelled.")


@router.put(
    "/tournaments/{tournament_id}/seeds",
    response_model=ApiResponse[List[registration_schemas.RegistrationRead]],
)
async def assign_seeds_endpoint(
    tournament_id: int,
    seeds_in: registration_schemas.SeedAssignment,
    db: Session = Depends(get_db),
    current_user_id: int = Depends(get_current_user_id),
):
    entries = registration_service.assign_seeds(
        db=db,
        tournament_id=tournament_id,
        registration_ids=seeds_in.registration_ids,
        current_user_id=current_user_id,
    )
    return ok([_read(r) for r in entries], "Seeds assigned.")
