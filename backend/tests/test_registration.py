import re
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from eventcheckin.core.config import settings
from eventcheckin.core.exceptions import (
    CheckInServiceError,
    DuplicateEmail,
    InvalidToken,
    RateLimited,
    TokenExpiredOrExhausted,
    ValidationError,
)
from eventcheckin.db.base import utcnow
from eventcheckin.models.activity_log import ActivityLog
from eventcheckin.models.attendee import Attendee
from eventcheckin.models.registration_token import RegistrationToken
from eventcheckin.services.registration import (
    check_rate_limit,
    create_registration_token,
    deactivate_expired_tokens,
    deactivate_registration_token,
    delete_registration_token,
    list_registration_tokens,
    register_walk_in,
)

QR_PATTERN = re.compile(r"^[A-Z0-9]{4,6}$")


def _register(db, token="ABC123", name="Walk In", email="walkin@example.com", ip="10.0.0.1", **kwargs):
    return register_walk_in(db, token=token, name=name, email=email, client_ip=ip, **kwargs)


def test_single_use_token_registers_once(db, make_token):
    reg_token = make_token("ABC123", max_uses=1)

    attendee = _register(db, email="first@example.com")
    assert QR_PATTERN.match(attendee.qr_token)
    assert attendee.registration_type == "walk_in"
    assert attendee.checked_in is False

    db.refresh(reg_token)
    assert reg_token.current_uses == 1
    assert reg_token.used_by_email == "first@example.com"

    with pytest.raises(TokenExpiredOrExhausted) as exc:
        _register(db, email="second@example.com", ip="10.0.0.2")
    assert exc.value.reason == "exhausted"

    db.refresh(reg_token)
    assert reg_token.current_uses == 1
    assert db.query(Attendee).count() == 1


def test_fields_are_trimmed_and_truncated(db, make_token):
    make_token("ABC123")
    attendee = _register(
        db,
        name="  " + "N" * 150 + "  ",
        email="  Mixed.Case@Example.COM ",
        phone="+1 555 0100 0000 0000 0000",
        company="   ",
    )

    assert attendee.name == "N" * 100
    assert attendee.email == "mixed.case@example.com"
    assert len(attendee.phone) == 20
    assert attendee.company is None


def test_duplicate_email_does_not_consume_token(db, make_token, make_attendee):
    make_attendee(email="taken@example.com")
    reg_token = make_token("ABC123", max_uses=3)

    with pytest.raises(DuplicateEmail) as exc:
        _register(db, email="TAKEN@example.com")
    assert exc.value.message == "Email already registered"

    db.refresh(reg_token)
    assert reg_token.current_uses == 0


def test_unknown_token(db):
    with pytest.raises(InvalidToken):
        _register(db, token="NOSUCHTOKEN")


def test_expired_token(db, make_token):
    reg_token = make_token("ABC123", hours=1)
    later = utcnow() + timedelta(hours=2)

    with pytest.raises(TokenExpiredOrExhausted) as exc:
        _register(db, now=later)
    assert exc.value.reason == "expired"

    db.refresh(reg_token)
    assert reg_token.current_uses == 0


def test_inactive_token(db, make_token):
    make_token("ABC123", is_active=False)
    with pytest.raises(TokenExpiredOrExhausted) as exc:
        _register(db)
    assert exc.value.reason == "inactive"


def test_token_checked_before_fields(db, make_token):
    # A bad token wins over a bad email
    with pytest.raises(InvalidToken):
        _register(db, token="MISSING", email="not-an-email")

    make_token("ABC123")
    with pytest.raises(ValidationError) as exc:
        _register(db, email="not-an-email")
    assert exc.value.field_name == "email"

    with pytest.raises(ValidationError) as exc:
        _register(db, name="   ", ip="10.0.0.9")
    assert exc.value.field_name == "name"


def test_multi_use_token(db, make_token):
    reg_token = make_token("GROUP1", max_uses=3)
    for n in range(3):
        _register(db, token="GROUP1", email=f"guest{n}@example.com", ip=f"10.0.1.{n}")

    db.refresh(reg_token)
    assert reg_token.current_uses == 3
    assert reg_token.remaining_uses == 0

    with pytest.raises(TokenExpiredOrExhausted):
        _register(db, token="GROUP1", email="guest9@example.com", ip="10.0.1.9")


def test_registration_is_logged(db, make_token):
    make_token("ABC123")
    attendee = _register(db)

    entry = db.query(ActivityLog).filter_by(type="registration").one()
    assert entry.status == "success"
    assert entry.user_email == attendee.email
    assert entry.extra["qr_token"] == attendee.qr_token


def test_rate_limit_per_address(db):
    for n in range(1, settings.REGISTRATION_RATE_LIMIT + 1):
        assert check_rate_limit(db, "192.0.2.1") == n

    with pytest.raises(RateLimited) as exc:
        check_rate_limit(db, "192.0.2.1")
    assert 0 < exc.value.retry_after <= settings.REGISTRATION_RATE_WINDOW_SECONDS

    # Other addresses are unaffected
    assert check_rate_limit(db, "192.0.2.2") == 1


def test_rate_limit_window_resets(db):
    start = utcnow()
    for _ in range(settings.REGISTRATION_RATE_LIMIT):
        check_rate_limit(db, "192.0.2.3", now=start)

    later = start + timedelta(seconds=settings.REGISTRATION_RATE_WINDOW_SECONDS + 1)
    assert check_rate_limit(db, "192.0.2.3", now=later) == 1


def test_rate_limit_applies_before_token_checks(db):
    for _ in range(settings.REGISTRATION_RATE_LIMIT):
        with pytest.raises(InvalidToken):
            _register(db, token="GUESS", ip="198.51.100.7")

    with pytest.raises(RateLimited):
        _register(db, token="GUESS", ip="198.51.100.7")


def test_concurrent_registrations_share_last_use(session_factory, make_token):
    make_token("LAST01", max_uses=1)

    def attempt(n):
        session = session_factory()
        try:
            _register(session, token="LAST01", email=f"racer{n}@example.com", ip=f"203.0.113.{n}")
            return "ok"
        except CheckInServiceError as e:
            return e.error_code
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=4) as pool:
        outcomes = list(pool.map(attempt, range(4)))

    assert outcomes.count("ok") == 1
    assert outcomes.count("TOKEN_EXPIRED_OR_EXHAUSTED") == 3

    session = session_factory()
    try:
        assert session.query(Attendee).count() == 1
        assert session.query(RegistrationToken).filter_by(token="LAST01").one().current_uses == 1
    finally:
        session.close()


def test_create_registration_token(db):
    reg_token = create_registration_token(db, created_by="admin@example.com", max_uses=5, notes="Front desk")

    assert re.match(r"^[A-Z0-9]{12}$", reg_token.token)
    assert reg_token.max_uses == 5
    assert reg_token.current_uses == 0
    assert reg_token.is_active is True
    assert list_registration_tokens(db)[0].id == reg_token.id


def test_create_registration_token_rejects_bad_limits(db):
    with pytest.raises(ValidationError):
        create_registration_token(db, max_uses=0)
    with pytest.raises(ValidationError):
        create_registration_token(db, expires_in_hours=0)


def test_deactivate_and_delete_token(db, make_token):
    reg_token = make_token("ABC123")

    assert deactivate_registration_token(db, reg_token.id).is_active is False
    with pytest.raises(TokenExpiredOrExhausted):
        _register(db)

    assert delete_registration_token(db, reg_token.id) is True
    assert delete_registration_token(db, reg_token.id) is False
    assert deactivate_registration_token(db, 999) is None


def test_deactivate_expired_tokens(db, make_token):
    make_token("FRESH1", hours=5)
    make_token("STALE1", hours=1)

    assert deactivate_expired_tokens(db, now=utcnow() + timedelta(hours=2)) == 1
    states = {t.token: t.is_active for t in db.query(RegistrationToken)}
    assert states == {"FRESH1": True, "STALE1": False}
