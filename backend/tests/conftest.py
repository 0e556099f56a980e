from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from courtside.database import get_session
from courtside.main import app

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. Use sqlite:///:memory: with StaticPool so ALL sessions share same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. All models MUST be imported before create_all() (see session_fixture)
# 4. App dependency overridden to use test_engine (see client_fixture)
# 5. Tables are dropped after every test so counts never leak between tests
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on a fresh schema"""
    # Import all models to ensure they're registered BEFORE create_all
    from courtside.models.bracket import Bracket  # noqa: F401
    from courtside.models.match import Match  # noqa: F401
    from courtside.models.schedule import Schedule  # noqa: F401
    from courtside.models.team import Team  # noqa: F401
    from courtside.models.time_slot import TimeSlot  # noqa: F401
    from courtside.models.tournament import Tournament  # noqa: F401

    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session

    Override MUST be set BEFORE TestClient() and stay in place for the
    entire duration so the app never uses its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def make_tournament(session: Session):
    """Factory: a tournament with `team_count` seeded teams (seed 1..n)."""
    from courtside.models.team import Team
    from courtside.models.tournament import Tournament

    def _make(team_count: int = 4, **overrides):
        fields = dict(
            name="Test Open",
            start_date=date(2030, 6, 1),
            end_date=date(2030, 6, 1),
            daily_start_time="18:00",
            daily_end_time="22:00",
            timezone="UTC",
            match_duration=60,
            available_courts=["Court 1", "Court 2"],
        )
        fields.update(overrides)
        tournament = Tournament(**fields)
        session.add(tournament)
        session.commit()
        session.refresh(tournament)

        for seed in range(1, team_count + 1):
            session.add(Team(tournament_id=tournament.id, name=f"Team {seed}", seed=seed))
        session.commit()
        session.refresh(tournament)
        return tournament

    return _make
