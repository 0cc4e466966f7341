from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from courtside.core.database import atomic
from courtside.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from courtside.core.locks import tournament_guard
from courtside.models.enums import TOURNAMENT_TRANSITIONS, TournamentStatus, can_transition
from courtside.models.tournament import Tournament
from courtside.schemas import tournament_schemas

logger = structlog.get_logger(__name__)


def create_tournament(db: Session, tournament: tournament_schemas.TournamentCreate, organizer_id: int) -> Tournament:
    db_tournament = Tournament(
        **tournament.model_dump(),
        organizer_id=organizer_id,
        current_participants=0,
        status=TournamentStatus.DRAFT,
    )
    with atomic(db):
        db.add(db_tournament)
    db.refresh(db_tournament)
    logger.info("tournament_created", tournament_id=db_tournament.id, organizer_id=organizer_id)
    return db_tournament


def get_tournament(db: Session, tournament_id: int) -> Tournament:
    tournament = db.query(Tournament).filter(Tournament.id == tournament_id).first()
    if tournament is None:
        raise NotFoundError(f"Tournament {tournament_id} not found.")
    return tournament


def get_tournament_for_update(db: Session, tournament_id: int) -> Tournament:
    """Loads the tournament row with a row lock where the database supports SELECT ... FOR UPDATE."""
    tournament = (
        db.query(Tournament)
        .filter(Tournament.id == tournament_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if tournament is None:
        raise NotFoundError(f"Tournament {tournament_id} not found.")
    return tournament


def list_tournaments(
    db: Session,
    status: Optional[TournamentStatus] = None,
    organizer_id: Optional[int] = None,
    skip: int = 0,
    limit: int = 100,
) -> List[Tournament]:
    query = db.query(Tournament)
    if status is not None:
        query = query.filter(Tournament.status == status)
    if organizer_id is not None:
        query = query.filter(Tournament.organizer_id == organizer_id)
    else:
        query = query.filter(Tournament.is_public.is_(True))
    return query.order_by(Tournament.start_date, Tournament.id).offset(skip).limit(limit).all()


def ensure_organizer(tournament: Tournament, user_id: int) -> None:
    if tournament.organizer_id != user_id:
        raise PermissionDeniedError("Only the tournament organizer can perform this operation.")


def change_status(db: Session, tournament_id: int, target: TournamentStatus, current_user_id: int) -> Tournament:
    with tournament_guard(tournament_id), atomic(db):
        tournament = get_tournament_for_update(db, tournament_id)
        ensure_organizer(tournament, current_user_id)
        current = tournament.status
        if current == target:
            return tournament
        if not can_transition(current, target):
            raise ValidationError(
                f"Cannot move tournament from {current.value} to {target.value}.",
                errors=[f"Allowed: {', '.join(sorted(s.value for s in TOURNAMENT_TRANSITIONS[current])) or 'none'}"],
            )
        tournament.status = target
    logger.info(
        "tournament_status_changed",
        tournament_id=tournament_id,
        from_status=current.value,
        to_status=target.value,
    )
    return tournament
