import datetime
import itertools

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from courtside.api.dependencies import get_current_user_id, get_db
from courtside.main import app
from courtside.models import Base, Registration, Tournament, User
from courtside.models.enums import (
    RegistrationStatus,
    TournamentFormat,
    TournamentStatus,
    TournamentType,
)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make(name=None):
        n = next(counter)
        user = User(name=name or f"Player {n}", email=f"player{n}@example.com", ranking=0)
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def organizer(make_user):
    return make_user("Organizer")


@pytest.fixture
def make_tournament(db, organizer):
    def _make(
        tournament_type=TournamentType.SINGLES,
        format=TournamentFormat.SINGLE_ELIMINATION,
        status=TournamentStatus.REGISTRATION_CLOSED,
        max_participants=64,
        min_participants=2,
    ):
        now = datetime.datetime.utcnow()
        tournament = Tournament(
            name="Beach Open",
            organizer_id=organizer.id,
            tournament_type=tournament_type,
            format=format,
            location="Copacabana",
            start_date=now + datetime.timedelta(days=14),
            registration_deadline=now + datetime.timedelta(days=7),
            max_participants=max_participants,
            min_participants=min_participants,
            current_participants=0,
            entry_fee=0,
            is_public=True,
            status=status,
        )
        db.add(tournament)
        db.commit()
        return tournament

    return _make


@pytest.fixture
def enter_players(db, make_user):
    """Adds registrations seeded in the order they are created."""

    def _enter(tournament, count, doubles=False, status=RegistrationStatus.CONFIRMED):
        registrations = []
        for index in range(count):
            player1 = make_user()
            player2 = make_user() if doubles else None
            registration = Registration(
                tournament_id=tournament.id,
                player1_id=player1.id,
                player2_id=player2.id if player2 else None,
                status=status,
                seed_number=index + 1,
            )
            db.add(registration)
            registrations.append(registration)
        tournament.current_participants += count
        db.commit()
        return registrations

    return _enter


@pytest.fixture
def client(session_factory, organizer):
    organizer_id = organizer.id

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user_id] = lambda: organizer_id
    yield TestClient(app)
    app.dependency_overrides.clear()
