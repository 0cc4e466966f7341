import datetime

import pytest
from pydantic import ValidationError as SchemaValidationError

from courtside.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from courtside.models.enums import TournamentFormat, TournamentStatus, TournamentType
from courtside.schemas.tournament_schemas import TournamentCreate
from courtside.services import tournament_service


def tournament_payload(**overrides):
    now = datetime.datetime.utcnow()
    data = dict(
        name="Copacabana Open",
        tournament_type=TournamentType.SINGLES,
        format=TournamentFormat.SINGLE_ELIMINATION,
        location="Rio de Janeiro",
        start_date=now + datetime.timedelta(days=10),
        registration_deadline=now + datetime.timedelta(days=5),
        max_participants=16,
    )
    data.update(overrides)
    return TournamentCreate(**data)


class TestTournamentService:

    def test_create_tournament(self, db, organizer):
        tournament = tournament_service.create_tournament(db, tournament_payload(), organizer.id)

        assert tournament.id is not None
        assert tournament.status == TournamentStatus.DRAFT
        assert tournament.organizer_id == organizer.id
        assert tournament.current_participants == 0
        assert not tournament.is_full
        assert not tournament.is_registration_open
        assert tournament.days_until_start in (9, 10)

    def test_american_needs_four_players(self):
        payload = tournament_payload(tournament_type=TournamentType.AMERICAN)
        assert payload.min_participants == 4

    def test_american_needs_room_for_four_players(self):
        with pytest.raises(SchemaValidationError):
            tournament_payload(tournament_type=TournamentType.AMERICAN, max_participants=3)

    def test_deadline_after_start_is_rejected(self):
        now = datetime.datetime.utcnow()
        with pytest.raises(SchemaValidationError):
            tournament_payload(registration_deadline=now + datetime.timedelta(days=20))

    def test_capacity_bounds(self):
        with pytest.raises(SchemaValidationError):
            tournament_payload(max_participants=257)
        with pytest.raises(SchemaValidationError):
            tournament_payload(max_participants=1)

    def test_get_missing_tournament(self, db):
        with pytest.raises(NotFoundError):
            tournament_service.get_tournament(db, 404)

    def test_lifecycle(self, db, organizer):
        tournament = tournament_service.create_tournament(db, tournament_payload(), organizer.id)

        for target in (
            TournamentStatus.OPEN_FOR_REGISTRATION,
            TournamentStatus.REGISTRATION_CLOSED,
            TournamentStatus.IN_PROGRESS,
            TournamentStatus.COMPLETED,
        ):
            tournament = tournament_service.change_status(db, tournament.id, target, organizer.id)
            assert tournament.status == target

    def test_open_tournament_accepts_registrations(self, db, organizer):
        tournament = tournament_service.create_tournament(db, tournament_payload(), organizer.id)
        tournament = tournament_service.change_status(
            db, tournament.id, TournamentStatus.OPEN_FOR_REGISTRATION, organizer.id
        )
        assert tournament.is_registration_open

    def test_invalid_transition(self, db, organizer):
        tournament = tournament_service.create_tournament(db, tournament_payload(), organizer.id)

        with pytest.raises(ValidationError):
            tournament_service.change_status(db, tournament.id, TournamentStatus.COMPLETED, organizer.id)

    def test_completed_is_terminal(self, db, organizer, make_tournament):
        tournament = make_tournament(status=TournamentStatus.COMPLETED)

        with pytest.raises(ValidationError):
            tournament_service.change_status(db, tournament.id, TournamentStatus.CANCELLED, organizer.id)

    def test_only_organizer_changes_status(self, db, organizer, make_user):
        tournament = tournament_service.create_tournament(db, tournament_payload(), organizer.id)
        stranger = make_user("Stranger")

        with pytest.raises(PermissionDeniedError):
            tournament_service.change_status(db, tournament.id, TournamentStatus.CANCELLED, stranger.id)

    def test_list_filters_by_status(self, db, organizer, make_tournament):
        make_tournament(status=TournamentStatus.DRAFT)
        open_one = make_tournament(status=TournamentStatus.OPEN_FOR_REGISTRATION)

        listed = tournament_service.list_tournaments(db, status=TournamentStatus.OPEN_FOR_REGISTRATION)

        assert [t.id for t in listed] == [open_one.id]
