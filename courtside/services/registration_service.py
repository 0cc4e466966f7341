"""
Registration ledger: who is entered in a tournament, in which order they are
seeded, and how many places are taken.

``current_participants`` is only touched while the tournament guard is held.
"""
import datetime
from typing import List

import structlog
from sqlalchemy import or_
from sqlalchemy.orm import Session

from courtside.core.database import atomic
from courtside.core.errors import ConflictError, NotFoundError, ValidationError
from courtside.core.locks import tournament_guard
from courtside.models.enums import (
    ACTIVE_REGISTRATION_STATUSES,
    FIXED_TEAM_TYPES,
    PaymentStatus,
    RegistrationStatus,
    TournamentStatus,
    can_transition_registration,
)
from courtside.models.registration import Registration
from courtside.models.user import User
from courtside.schemas import registration_schemas
from courtside.services.tournament_service import ensure_organizer, get_tournament_for_update

logger = structlog.get_logger(__name__)


def get_registration(db: Session, registration_id: int, for_update: bool = False) -> Registration:
    query = db.query(Registration).filter(Registration.id == registration_id)
    if for_update:
        query = query.with_for_update().populate_existing()
    registration = query.first()
    if registration is None:
        raise NotFoundError(f"Registration {registration_id} not found.")
    return registration


def list_registrations(db: Session, tournament_id: int) -> List[Registration]:
    return (
        db.query(Registration)
        .filter(Registration.tournament_id == tournament_id)
        .order_by(Registration.created_at, Registration.id)
        .all()
    )


def _ensure_user(db: Session, user_id: int) -> None:
    if db.query(User.id).filter(User.id == user_id).first() is None:
        raise NotFoundError(f"Player {user_id} not found.")


def register(
    db: Session,
    tournament_id: int,
    registration_in: registration_schemas.RegistrationCreate,
    current_user_id: int,
) -> Registration:
    player1_id = registration_in.player1_id or current_user_id
    player2_id = registration_in.player2_id

    with tournament_guard(tournament_id), atomic(db):
        tournament = get_tournament_for_update(db, tournament_id)
        if not tournament.is_registration_open:
            if tournament.is_full:
                raise ConflictError("Tournament is full.")
            raise ValidationError("Registration is not open for this tournament.")

        if tournament.tournament_type in FIXED_TEAM_TYPES:
            if player2_id is None:
                raise ValidationError(f"{tournament.tournament_type.value} registrations need a partner (player2_id).")
            if player2_id == player1_id:
                raise ValidationError("A player cannot partner themselves.")
        elif player2_id is not None:
            raise ValidationError(f"{tournament.tournament_type.value} registrations take a single player.")

        for player_id in filter(None, (player1_id, player2_id)):
            _ensure_user(db, player_id)
            existing = (
                db.query(Registration)
                .filter(
                    Registration.tournament_id == tournament_id,
                    Registration.status != RegistrationStatus.CANCELLED,
                    or_(Registration.player1_id == player_id, Registration.player2_id == player_id),
                )
                .first()
            )
            if existing is not None:
                raise ConflictError(f"Player {player_id} is already registered in this tournament.")

        # A cancelled entry is revived rather than duplicated: (tournament, player1) is unique.
        registration = (
            db.query(Registration)
            .filter(Registration.tournament_id == tournament_id, Registration.player1_id == player1_id)
            .first()
        )
        if registration is None:
            registration = Registration(tournament_id=tournament_id, player1_id=player1_id)
            db.add(registration)
        registration.player2_id = player2_id
        registration.team_name = registration_in.team_name
        registration.notes = registration_in.notes
        registration.status = RegistrationStatus.PENDING
        registration.payment_status = PaymentStatus.PENDING if tournament.entry_fee else None
        registration.payment_date = None
        registration.check_in_date = None
        registration.seed_number = None

        tournament.current_participants += 1
        db.flush()

    logger.info(
        "registration_created",
        tournament_id=tournament_id,
        registration_id=registration.id,
        player1_id=player1_id,
        player2_id=player2_id,
    )
    return registration


def _transition(db: Session, registration_id: int, target: RegistrationStatus, current_user_id: int) -> Registration:
    registration = get_registration(db, registration_id)
    tournament_id = registration.tournament_id

    with tournament_guard(tournament_id), atomic(db):
        tournament = get_tournament_for_update(db, tournament_id)
        registration = get_registration(db, registration_id, for_update=True)
        if current_user_id not in registration.player_ids:
            ensure_organizer(tournament, current_user_id)
        if target == RegistrationStatus.CONFIRMED:
            ensure_organizer(tournament, current_user_id)

        current = registration.status
        if not can_transition_registration(current, target):
            raise ValidationError(f"Cannot move registration from {current.value} to {target.value}.")
        if target == RegistrationStatus.CANCELLED and tournament.status in (
            TournamentStatus.IN_PROGRESS,
            TournamentStatus.COMPLETED,
        ):
            raise ConflictError("Registrations cannot be cancelled once play has started.")

        registration.status = target
        if target == RegistrationStatus.CHECKED_IN:
            registration.check_in_date = datetime.datetime.utcnow()
        elif target == RegistrationStatus.CANCELLED:
            registration.seed_number = None
            tournament.current_participants = max(0, tournament.current_participants - 1)

    logger.info(
        "registration_status_changed",
        tournament_id=tournament_id,
        registration_id=registration_id,
        from_status=current.value,
        to_status=target.value,
    )
    return registration


def confirm(db: Session, registration_id: int, current_user_id: int) -> Registration:
    return _transition(db, registration_id, RegistrationStatus.CONFIRMED, current_user_id)


def check_in(db: Session, registration_id: int, current_user_id: int) -> Registration:
    return _transition(db, registration_id, RegistrationStatus.CHECKED_IN, current_user_id)


def cancel(db: Session, registration_id: int, current_user_id: int) -> Registration:
    return _transition(db, registration_id, RegistrationStatus.CANCELLED, current_user_id)


def record_payment(
    db: Session, registration_id: int, payment_status: PaymentStatus, current_user_id: int
) -> Registration:
    registration = get_registration(db, registration_id)
    with tournament_guard(registration.tournament_id), atomic(db):
        tournament = get_tournament_for_update(db, registration.tournament_id)
        ensure_organizer(tournament, current_user_id)
        registration = get_registration(db, registration_id, for_update=True)
        if registration.status == RegistrationStatus.CANCELLED and payment_status == PaymentStatus.PAID:
            raise ValidationError("Cannot record a payment for a cancelled registration.")
        registration.payment_status = payment_status
        registration.payment_date = datetime.datetime.utcnow() if payment_status == PaymentStatus.PAID else None
    logger.info("registration_payment_recorded", registration_id=registration_id, payment_status=payment_status.value)
    return registration


def assign_seeds(db: Session, tournament_id: int, registration_ids: List[int], current_user_id: int) -> List[Registration]:
    """Seeds the given registrations 1..n in order; every other active entry loses its seed."""
    if len(set(registration_ids)) != len(registration_ids):
        raise ValidationError("Seed list contains duplicate registrations.")

    with tournament_guard(tournament_id), atomic(db):
        tournament = get_tournament_for_update(db, tournament_id)
        ensure_organizer(tournament, current_user_id)
        if tournament.status in (TournamentStatus.IN_PROGRESS, TournamentStatus.COMPLETED, TournamentStatus.CANCELLED):
            raise ConflictError("Seeds are fixed once play has started.")

        active = {registration.id: registration for registration in _active_registrations(db, tournament_id)}
        unknown = [rid for rid in registration_ids if rid not in active]
        if unknown:
            raise ValidationError(
                "Only confirmed registrations of this tournament can be seeded.",
                errors=[f"Registration {rid} is not an active entry." for rid in unknown],
            )
        for registration in active.values():
            registration.seed_number = None
        for seed, registration_id in enumerate(registration_ids, start=1):
            active[registration_id].seed_number = seed

    logger.info("seeds_assigned", tournament_id=tournament_id, seeded=len(registration_ids))
    return seeded_entries(db, tournament_id)


def _active_registrations(db: Session, tournament_id: int) -> List[Registration]:
    return (
        db.query(Registration)
        .filter(
            Registration.tournament_id == tournament_id,
            Registration.status.in_(list(ACTIVE_REGISTRATION_STATUSES)),
        )
        .all()
    )


def seeded_entries(db: Session, tournament_id: int) -> List[Registration]:
    """Confirmed and checked-in entries, by seed (unseeded last) then by registration order."""
    registrations = _active_registrations(db, tournament_id)
    return sorted(
        registrations,
        key=lambda r: (r.seed_number is None, r.seed_number or 0, r.created_at or datetime.datetime.min, r.id),
    )
