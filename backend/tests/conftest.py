# backend/tests/conftest.py
"""
Pytest configuration for the Nakksha backend.

Every test gets a fresh in-memory SQLite database. Redis is disabled so the
cache service runs on its in-memory fallback and the pattern lock fails open.
"""

import os
import threading

# Set test configuration BEFORE any nakksha imports!
os.environ["ENVIRONMENT"] = "test"
os.environ["REDIS_URL"] = ""
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DEFAULT_TIMEZONE"] = "UTC"

from datetime import date, timedelta
from typing import Any, Callable, Iterator, List, Optional, Sequence
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from nakksha.core.slot_times import day_of_week
from nakksha.core.timezone_utils import get_today
from nakksha.core.ulid_helper import generate_ulid
from nakksha.database import Base, create_database_engine, get_db
from nakksha.main import fastapi_app as app
from nakksha.models import AvailabilitySlot, Consultant, WeeklyAvailabilityPattern
from nakksha.services.cache_service import CacheService


@pytest.fixture
def engine() -> Iterator[Engine]:
    test_engine = create_database_engine("sqlite://")
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


@pytest.fixture
def db(session_factory: sessionmaker) -> Iterator[Session]:
    """Create a new database session for each test."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def client(db: Session) -> Iterator[TestClient]:
    """Create a test client with the test database."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    test_client = TestClient(app)

    yield test_client

    app.dependency_overrides.clear()
    test_client.close()


@pytest.fixture
def cache() -> CacheService:
    """Cache service running on the in-memory fallback."""
    return CacheService(redis_client=None)


@pytest.fixture
def mock_cache() -> Mock:
    mock = Mock()
    mock.get = Mock(return_value=None)
    mock.set = Mock(return_value=True)
    mock.delete = Mock(return_value=True)
    mock.delete_pattern = Mock(return_value=0)
    return mock


@pytest.fixture
def today() -> date:
    return get_today("UTC")


def _make_consultant(db: Session, slug: str, first_name: str, last_name: str) -> Consultant:
    consultant = Consultant(
        id=generate_ulid(),
        slug=slug,
        first_name=first_name,
        last_name=last_name,
        timezone="UTC",
    )
    db.add(consultant)
    db.commit()
    return consultant


@pytest.fixture
def consultant(db: Session) -> Consultant:
    return _make_consultant(db, "priya-sharma", "Priya", "Sharma")


@pytest.fixture
def other_consultant(db: Session) -> Consultant:
    return _make_consultant(db, "arjun-mehta", "Arjun", "Mehta")


@pytest.fixture
def consultant_headers(consultant: Consultant) -> dict:
    return {"X-Consultant-ID": consultant.id}


def _next_weekday(start: date, weekday: int) -> date:
    """First date on or after ``start`` whose Sunday-based weekday is ``weekday``."""
    offset = (weekday - day_of_week(start)) % 7
    return start + timedelta(days=offset)


@pytest.fixture
def next_weekday() -> Callable[[date, int], date]:
    return _next_weekday


@pytest.fixture
def add_pattern(db: Session) -> Callable[..., WeeklyAvailabilityPattern]:
    def _add(
        consultant: Consultant,
        day: int,
        start_time: str,
        end_time: str,
        session_type: str = "PERSONAL",
        is_active: bool = True,
    ) -> WeeklyAvailabilityPattern:
        pattern = WeeklyAvailabilityPattern(
            id=generate_ulid(),
            consultant_id=consultant.id,
            session_type=session_type,
            day_of_week=day,
            start_time=start_time,
            end_time=end_time,
            is_active=is_active,
            timezone="UTC",
        )
        db.add(pattern)
        db.commit()
        return pattern

    return _add


@pytest.fixture
def add_slot(db: Session) -> Callable[..., AvailabilitySlot]:
    def _add(
        consultant: Consultant,
        slot_date: date,
        start_time: str = "14:00",
        end_time: str = "15:00",
        session_type: str = "PERSONAL",
        is_booked: bool = False,
        is_blocked: bool = False,
        session_id: Optional[str] = None,
        blocked_reason: Optional[str] = None,
    ) -> AvailabilitySlot:
        slot = AvailabilitySlot(
            id=generate_ulid(),
            consultant_id=consultant.id,
            session_type=session_type,
            date=slot_date,
            day_of_week=day_of_week(slot_date),
            start_time=start_time,
            end_time=end_time,
            is_booked=is_booked,
            is_blocked=is_blocked,
            session_id=session_id,
            blocked_reason=blocked_reason,
        )
        db.add(slot)
        db.commit()
        return slot

    return _add


@pytest.fixture
def slots_of(db: Session) -> Callable[[Consultant], List[AvailabilitySlot]]:
    """Fresh read of every slot of a consultant in (date, start) order."""

    def _slots(consultant: Consultant) -> List[AvailabilitySlot]:
        db.expire_all()
        return (
            db.query(AvailabilitySlot)
            .filter(AvailabilitySlot.consultant_id == consultant.id)
            .order_by(AvailabilitySlot.date, AvailabilitySlot.start_time)
            .all()
        )

    return _slots


@pytest.fixture
def file_session_factory(tmp_path) -> Iterator[sessionmaker]:
    """
    Sessions on a file-backed SQLite database where every transaction starts
    with BEGIN IMMEDIATE.

    Each session gets its own connection and a second writer waits on the
    busy timeout until the first commits, which is how concurrent callers
    are serialized in the race tests.
    """
    file_engine = create_database_engine(f"sqlite:///{tmp_path / 'race.db'}")

    @event.listens_for(file_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(file_engine, "begin")
    def _begin_immediate(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(bind=file_engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=file_engine, expire_on_commit=False)
    file_engine.dispose()


@pytest.fixture
def run_concurrently() -> Callable[[Sequence[Callable[[], Any]]], List[Any]]:
    """
    Start every callable at the same moment on its own thread.

    Returns one entry per callable in order: its return value, or the
    exception it raised.
    """

    def _run(calls: Sequence[Callable[[], Any]]) -> List[Any]:
        barrier = threading.Barrier(len(calls))
        results: List[Any] = [None] * len(calls)

        def _worker(index: int, call: Callable[[], Any]) -> None:
            barrier.wait()
            try:
                results[index] = call()
            except Exception as exc:
                results[index] = exc

        threads = [threading.Thread(target=_worker, args=(i, c)) for i, c in enumerate(calls)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)
        return results

    return _run
