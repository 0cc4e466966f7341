import datetime
from contextlib import contextmanager

import pytest

from courtside.core.errors import ConflictError, PermissionDeniedError, ValidationError
from courtside.models.enums import (
    PaymentStatus,
    RegistrationStatus,
    TournamentStatus,
    TournamentType,
)
from courtside.models.tournament import Tournament
from courtside.schemas.registration_schemas import RegistrationCreate
from courtside.services import registration_service


@pytest.fixture
def open_tournament(make_tournament):
    def _make(**kwargs):
        kwargs.setdefault("status", TournamentStatus.OPEN_FOR_REGISTRATION)
        return make_tournament(**kwargs)

    return _make


def participants(db, tournament_id):
    return db.get(Tournament, tournament_id).current_participants


class TestRegister:

    def test_register_counts_participant(self, db, make_user, open_tournament):
        tournament = open_tournament()
        player = make_user()

        registration = registration_service.register(db, tournament.id, RegistrationCreate(), player.id)

        assert registration.player1_id == player.id
        assert registration.status == RegistrationStatus.PENDING
        assert participants(db, tournament.id) == 1

    def test_duplicate_registration_is_a_conflict(self, db, make_user, open_tournament):
        tournament = open_tournament()
        player = make_user()
        registration_service.register(db, tournament.id, RegistrationCreate(), player.id)

        with pytest.raises(ConflictError):
            registration_service.register(db, tournament.id, RegistrationCreate(), player.id)
        assert participants(db, tournament.id) == 1

    def test_doubles_needs_partner(self, db, make_user, open_tournament):
        tournament = open_tournament(tournament_type=TournamentType.DOUBLES)
        player = make_user()

        with pytest.raises(ValidationError):
            registration_service.register(db, tournament.id, RegistrationCreate(), player.id)

        partner = make_user()
        registration = registration_service.register(
            db, tournament.id, RegistrationCreate(player2_id=partner.id, team_name="Sand Sharks"), player.id
        )
        assert registration.is_team
        assert registration.display_name == "Sand Sharks"

    def test_partner_already_entered_is_a_conflict(self, db, make_user, open_tournament):
        tournament = open_tournament(tournament_type=TournamentType.MIXED_DOUBLES)
        first, second, third = make_user(), make_user(), make_user()
        registration_service.register(db, tournament.id, RegistrationCreate(player2_id=second.id), first.id)

        with pytest.raises(ConflictError):
            registration_service.register(db, tournament.id, RegistrationCreate(player2_id=second.id), third.id)

    def test_singles_rejects_partner(self, db, make_user, open_tournament):
        tournament = open_tournament()
        player, partner = make_user(), make_user()

        with pytest.raises(ValidationError):
            registration_service.register(db, tournament.id, RegistrationCreate(player2_id=partner.id), player.id)

    def test_closed_registration(self, db, make_user, make_tournament):
        tournament = make_tournament(status=TournamentStatus.DRAFT)

        with pytest.raises(ValidationError):
            registration_service.register(db, tournament.id, RegistrationCreate(), make_user().id)

    def test_deadline_passed(self, db, make_user, open_tournament):
        tournament = open_tournament()
        tournament.registration_deadline = datetime.datetime.utcnow() - datetime.timedelta(hours=1)
        db.commit()

        with pytest.raises(ValidationError):
            registration_service.register(db, tournament.id, RegistrationCreate(), make_user().id)

    def test_full_tournament(self, db, make_user, open_tournament):
        tournament = open_tournament(max_participants=2)
        registration_service.register(db, tournament.id, RegistrationCreate(), make_user().id)
        registration_service.register(db, tournament.id, RegistrationCreate(), make_user().id)

        with pytest.raises(ConflictError):
            registration_service.register(db, tournament.id, RegistrationCreate(), make_user().id)


class TestLifecycle:

    def test_confirm_check_in_cancel(self, db, organizer, make_user, open_tournament):
        tournament = open_tournament()
        player = make_user()
        registration = registration_service.register(db, tournament.id, RegistrationCreate(), player.id)

        registration_service.confirm(db, registration.id, organizer.id)
        checked_in = registration_service.check_in(db, registration.id, player.id)
        assert checked_in.is_ready_to_play
        assert checked_in.check_in_date is not None

        cancelled = registration_service.cancel(db, registration.id, player.id)
        assert cancelled.status == RegistrationStatus.CANCELLED
        assert participants(db, tournament.id) == 0

    def test_only_organizer_confirms(self, db, make_user, open_tournament):
        tournament = open_tournament()
        player = make_user()
        registration = registration_service.register(db, tournament.id, RegistrationCreate(), player.id)

        with pytest.raises(PermissionDeniedError):
            registration_service.confirm(db, registration.id, player.id)

    def test_invalid_transition(self, db, organizer, make_user, open_tournament):
        tournament = open_tournament()
        player = make_user()
        registration = registration_service.register(db, tournament.id, RegistrationCreate(), player.id)

        with pytest.raises(ValidationError):
            registration_service.check_in(db, registration.id, player.id)

    def test_cancelled_player_can_register_again(self, db, make_user, open_tournament):
        tournament = open_tournament()
        player = make_user()
        registration = registration_service.register(db, tournament.id, RegistrationCreate(), player.id)
        registration_service.cancel(db, registration.id, player.id)

        again = registration_service.register(db, tournament.id, RegistrationCreate(), player.id)

        assert again.id == registration.id
        assert again.status == RegistrationStatus.PENDING
        assert participants(db, tournament.id) == 1

    def test_cancel_sees_a_cancel_committed_by_another_session(
        self, db, session_factory, make_user, open_tournament, monkeypatch
    ):
        tournament = open_tournament()
        player = make_user()
        registration = registration_service.register(db, tournament.id, RegistrationCreate(), player.id)
        registration_id, player_id = registration.id, player.id
        real_guard = registration_service.tournament_guard
        rival_done = []

        @contextmanager
        def guard_after_rival_cancels(tournament_id):
            if not rival_done:
                rival_done.append(True)
                other = session_factory()
                try:
                    registration_service.cancel(other, registration_id, player_id)
                finally:
                    other.close()
            with real_guard(tournament_id):
                yield

        monkeypatch.setattr(registration_service, "tournament_guard", guard_after_rival_cancels)

        with pytest.raises(ValidationError):
            registration_service.cancel(db, registration_id, player_id)
        assert participants(db, tournament.id) == 0

    def test_record_payment(self, db, organizer, make_user, open_tournament):
        tournament = open_tournament()
        registration = registration_service.register(db, tournament.id, RegistrationCreate(), make_user().id)

        paid = registration_service.record_payment(db, registration.id, PaymentStatus.PAID, organizer.id)

        assert paid.payment_status == PaymentStatus.PAID
        assert paid.payment_date is not None


class TestSeeding:

    def test_seeded_entries_order(self, db, make_tournament, enter_players):
        tournament = make_tournament()
        first, second, third = enter_players(tournament, 3)
        third.seed_number = None
        first.seed_number = 2
        second.seed_number = 1
        db.commit()

        ordered = registration_service.seeded_entries(db, tournament.id)

        assert [r.id for r in ordered] == [second.id, first.id, third.id]

    def test_seeded_entries_skip_inactive(self, db, make_tournament, enter_players):
        tournament = make_tournament()
        active = enter_players(tournament, 2)
        enter_players(tournament, 1, status=RegistrationStatus.PENDING)

        assert [r.id for r in registration_service.seeded_entries(db, tournament.id)] == [r.id for r in active]

    def test_assign_seeds(self, db, organizer, make_tournament, enter_players):
        tournament = make_tournament()
        first, second, third = enter_players(tournament, 3)

        ordered = registration_service.assign_seeds(db, tournament.id, [third.id, first.id], organizer.id)

        assert [r.id for r in ordered] == [third.id, first.id, second.id]
        assert [r.seed_number for r in ordered] == [1, 2, None]

    def test_assign_seeds_rejects_unknown_registration(self, db, organizer, make_tournament, enter_players):
        tournament = make_tournament()
        enter_players(tournament, 2)

        with pytest.raises(ValidationError):
            registration_service.assign_seeds(db, tournament.id, [9999], organizer.id)
