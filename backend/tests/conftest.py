import os
import tempfile

# Settings are read at import time; point them at a scratch database first
_SCRATCH = tempfile.mkdtemp(prefix="eventcheckin-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_SCRATCH, 'app.db')}"
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_FILE"] = ""
os.environ["SEND_EMAILS"] = "false"
os.environ["CHECKIN_RETRY_BACKOFF_SECONDS"] = "0.01"
os.environ.pop("ADMIN_EMAIL", None)
os.environ.pop("ADMIN_PASSWORD", None)

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from eventcheckin.core.permissions import Role
from eventcheckin.core.security import create_access_token, hash_password
from eventcheckin.db.base import Base, utcnow
from eventcheckin.db.session import build_engine, get_db
from eventcheckin.main import app
from eventcheckin.models.attendee import Attendee
from eventcheckin.models.registration_token import RegistrationToken
from eventcheckin.models.staff import StaffUser

STAFF_PASSWORD = "correct-horse-battery"


@pytest.fixture
def engine(tmp_path):
    # File-backed so worker threads share one database
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
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
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_attendee(db):
    counter = {"n": 0}

    def _make(name=None, email=None, qr_token=None, registration_type="pre_registered"):
        counter["n"] += 1
        n = counter["n"]
        attendee = Attendee(
            name=name or f"Attendee {n}",
            email=email or f"attendee{n}@example.com",
            qr_token=qr_token or f"Q{n:05d}",
            registration_type=registration_type,
            checked_in=False,
        )
        db.add(attendee)
        db.commit()
        db.refresh(attendee)
        return attendee

    return _make


@pytest.fixture
def make_token(db):
    def _make(token="ABC123", max_uses=1, current_uses=0, hours=1, is_active=True):
        reg_token = RegistrationToken(
            token=token,
            created_by="admin@example.com",
            expires_at=utcnow() + timedelta(hours=hours),
            max_uses=max_uses,
            current_uses=current_uses,
            is_active=is_active,
        )
        db.add(reg_token)
        db.commit()
        db.refresh(reg_token)
        return reg_token

    return _make


@pytest.fixture
def make_staff(db):
    def _make(role=Role.USER, email=None, password=STAFF_PASSWORD):
        user = StaffUser(
            email=email or f"{role.value}@example.com",
            full_name=role.value.replace("_", " ").title(),
            hashed_password=hash_password(password),
            role=role,
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers(make_staff):
    """Bearer headers for a freshly created staff member of ``role``"""

    def _headers(role=Role.USER):
        user = make_staff(role)
        token = create_access_token({"sub": user.email, "user_id": user.id, "role": user.role.value})
        return {"Authorization": f"Bearer {token}"}

    return _headers
