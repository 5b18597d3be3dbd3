"""
Pytest configuration for consultation tests.

Environment is set BEFORE any peer_consult import so settings and the global
engine pick up test values. Every test gets its own file-backed SQLite database.
"""

import os
import threading

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_peer_consult.db")
os.environ["NOTIFICATION_BACKEND"] = "log"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from peer_consult.database import Base, build_engine, get_db
from peer_consult.dependencies import get_notification_dispatcher
from peer_consult.main import app
from peer_consult.models import DoctorScore, Patient, User
from peer_consult.services.consultation_service import ConsultationCoordinator
from peer_consult.services.notification_dispatcher import NotificationDispatcher
from peer_consult.utils.security import create_access_token


class RecordingDispatcher(NotificationDispatcher):
    """Keeps every dispatched event for assertions"""

    def __init__(self):
        self.events = []
        self._lock = threading.Lock()

    def dispatch(self, event):
        with self._lock:
            self.events.append(event)

    def of_type(self, event_type):
        return [e for e in self.events if e.event_type == event_type]


class FailingDispatcher(NotificationDispatcher):
    """Simulates a broken delivery transport"""

    def __init__(self):
        self.attempts = 0

    def dispatch(self, event):
        self.attempts += 1
        raise RuntimeError("push gateway unavailable")


@pytest.fixture(scope="function")
def engine(tmp_path):
    test_engine = build_engine(f"sqlite:///{tmp_path / 'consult.db'}")
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """Create a fresh database session for each test"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def coordinator(db_session, dispatcher):
    return ConsultationCoordinator(db_session, dispatcher)


def make_doctor(db, doctor_id, first_name, last_name, role="doctor", **fields):
    doctor = User(
        id=doctor_id,
        email=fields.pop("email", f"{doctor_id.lower()}@clinic.test"),
        role=role,
        first_name=first_name,
        last_name=last_name,
        **fields
    )
    db.add(doctor)
    db.commit()
    return doctor


@pytest.fixture
def doctors(db_session):
    """Requester D1, peers D2-D4, and patient 10 owned by D1"""
    result = {
        "D1": make_doctor(db_session, "D1", "Sara", "Haddad", workplace="City Hospital",
                          verification_status="Verified"),
        "D2": make_doctor(db_session, "D2", "Omar", "Nasser", workplace="North Clinic"),
        "D3": make_doctor(db_session, "D3", "Lina", "Khoury", workplace="South Clinic",
                          verification_status="Verified"),
        "D4": make_doctor(db_session, "D4", "Karim", "Saleh"),
    }
    db_session.add(Patient(id=10, doctor_id="D1", name="Jane Roe", hospital="City Hospital",
                           submit_status=True, outcome_status=False))
    db_session.commit()
    return result


@pytest.fixture
def add_score(db_session):
    def _add(doctor_id, score):
        db_session.add(DoctorScore(doctor_id=doctor_id, score=score))
        db_session.commit()
    return _add


@pytest.fixture
def add_patients(db_session):
    def _add(doctor_id, count):
        for i in range(count):
            db_session.add(Patient(doctor_id=doctor_id, name=f"{doctor_id} patient {i}"))
        db_session.commit()
    return _add


@pytest.fixture(scope="function")
def client(db_session, dispatcher):
    """Create test client with overridden database and dispatcher"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth_headers(user_id):
    token = create_access_token({"sub": user_id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers():
    return auth_headers


@pytest.fixture
def new_doctor(db_session):
    def _new(doctor_id, first_name, last_name, role="doctor", **fields):
        return make_doctor(db_session, doctor_id, first_name, last_name, role=role, **fields)
    return _new


@pytest.fixture
def failing_dispatcher():
    return FailingDispatcher()
