import os
from datetime import datetime, timedelta, timezone

# db.session builds its engine at import time; point it at SQLite before anything imports it
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import models  # noqa: F401  (registers every table on SQLModel.metadata)
from db.seed import seed_default_zones
from models.location import Actor, LocationSample


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingDispatcher:
    def __init__(self):
        self.alerts = []
        self.resolutions = []

    def alert_created(self, alert) -> None:
        self.alerts.append(alert.id)

    def approval_resolved(self, approval) -> None:
        self.resolutions.append((approval.id, approval.status.value))


# Main factory zone coordinates
MAIN_LAT, MAIN_LNG = 27.7172, 85.3240


def sample_at(lat: float, lng: float, accuracy: float = 10.0) -> LocationSample:
    return LocationSample(latitude=lat, longitude=lng, accuracy_meters=accuracy)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def file_engine(tmp_path):
    # Real file so concurrent sessions get separate connections and SQLite locking
    engine = create_engine(
        f"sqlite:///{tmp_path / 'location.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def seeded_session(session):
    seed_default_zones(session)
    return session


@pytest.fixture
def clock():
    return FrozenClock(datetime(2025, 6, 7, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def operator():
    return Actor(actor_id="op-1", actor_name="Sita Operator", actor_role="operator")


@pytest.fixture
def supervisor():
    return Actor(actor_id="sup-1", actor_name="Ram Supervisor", actor_role="supervisor")
