import math
import os
from datetime import datetime, timedelta, timezone

# Set required env vars BEFORE app imports to satisfy pydantic-settings Fail Fast
os.environ["DATABASE_URL"] = "sqlite:///./dummy.db"
os.environ.setdefault("TIMEZONE", "UTC")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from cleancity.core.cache import LeaderboardCache
from cleancity.core.config import settings
from cleancity.core.context import EngineContext
from cleancity.models import Base, Citizen, ReportStatus, WasteReport
from cleancity.services.notifications import StatusEventPublisher
from cleancity.services.workers import register_worker

METERS_PER_DEGREE_LAT = 6371000 * math.pi / 180.0

BASE_LAT = 12.9716
BASE_LNG = 77.5946


class FakeClock:
    def __init__(self, now: datetime):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


def north_of(lat: float, meters: float) -> float:
    """Latitude `meters` due north of `lat` along the same meridian."""
    return lat + meters / METERS_PER_DEGREE_LAT


@pytest.fixture
def session_factory(tmp_path):
    db_path = tmp_path / "test.db"
    test_engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    # CREATE TABLES (Safe here, strictly targeting the test SQLite environment)
    Base.metadata.create_all(bind=test_engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def events():
    return []


@pytest.fixture
def publisher(events):
    pub = StatusEventPublisher()
    pub.subscribe(events.append)
    return pub


@pytest.fixture
def cache():
    return LeaderboardCache(settings.LEADERBOARD_CACHE_TTL_SECONDS)


@pytest.fixture
def make_ctx(clock, publisher, cache):
    def factory(session):
        return EngineContext(db=session, settings=settings, events=publisher, leaderboard_cache=cache, clock=clock)
    return factory


@pytest.fixture
def ctx(db, make_ctx):
    return make_ctx(db)


@pytest.fixture
def worker(ctx):
    return register_worker(ctx, "Ravi", ["Indiranagar"])


@pytest.fixture
def add_report(db, clock):
    """Inserts a report row directly, bypassing the abuse gate."""
    def factory(device_id="seed-device", created_at=None, latitude=BASE_LAT, longitude=BASE_LNG,
                status=ReportStatus.OPEN, **fields):
        if db.get(Citizen, device_id) is None:
            db.add(Citizen(device_id=device_id, total_points=0, reports_count=0))
        report = WasteReport(
            device_id=device_id,
            latitude=latitude,
            longitude=longitude,
            status=status,
            created_at=created_at or clock(),
            **fields,
        )
        db.add(report)
        db.commit()
        return report
    return factory


@pytest.fixture
def origin():
    return BASE_LAT, BASE_LNG


@pytest.fixture(name="north_of")
def north_of_fixture():
    return north_of
