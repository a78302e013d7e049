from concurrent.futures import ThreadPoolExecutor

import pytest

from eventcheckin.core.exceptions import InvalidToken, ValidationError
from eventcheckin.models.activity_log import ActivityLog
from eventcheckin.models.attendee import Attendee
from eventcheckin.models.checkin import CheckInInstance
from eventcheckin.services.checkin import (
    check_in,
    display_label,
    guest_type_for,
    list_instances,
    repair_checkin_flags,
)


@pytest.mark.parametrize(
    "ordinal, expected",
    [(1, "original"), (2, "plus_one"), (3, "plus_two"), (4, "plus_3"), (5, "plus_4"), (12, "plus_11")],
)
def test_guest_type_for(ordinal, expected):
    assert guest_type_for(ordinal) == expected


def test_guest_type_for_rejects_zero():
    with pytest.raises(ValueError):
        guest_type_for(0)


def test_display_label():
    assert display_label("original") == "Original Guest"
    assert display_label("plus_one") == "Plus One Guest"
    assert display_label("plus_3") == "Plus 3 Guest"


def test_sequential_scans_count_up(db, make_attendee):
    attendee = make_attendee(name="Ana", qr_token="Q1")

    results = [check_in(db, "Q1", scanned_by="door@example.com") for _ in range(3)]

    assert [r.ordinal for r in results] == [1, 2, 3]
    assert [r.guest_type for r in results] == ["original", "plus_one", "plus_two"]
    assert all(r.attendee_name == "Ana" for r in results)
    assert results[0].is_first_checkin and not results[1].is_first_checkin

    instances = db.query(CheckInInstance).filter_by(qr_token="Q1").order_by(CheckInInstance.ordinal).all()
    assert [i.ordinal for i in instances] == [1, 2, 3]
    assert all(i.attendee_id == attendee.id for i in instances)
    assert instances[0].checked_in_by == "door@example.com"


def test_first_scan_sets_flag_once(db, make_attendee):
    attendee = make_attendee(qr_token="FLAG01")
    assert attendee.checked_in is False

    first = check_in(db, "FLAG01")
    db.refresh(attendee)
    first_time = attendee.first_checked_in_at
    assert attendee.checked_in is True
    assert first_time is not None

    check_in(db, "FLAG01")
    db.refresh(attendee)
    assert attendee.checked_in is True
    assert attendee.first_checked_in_at == first_time
    assert first.ordinal == 1


def test_scan_input_is_trimmed(db, make_attendee):
    make_attendee(qr_token="TRIM01")
    assert check_in(db, "  TRIM01\n").ordinal == 1


def test_empty_scan_is_validation_error(db):
    with pytest.raises(ValidationError):
        check_in(db, "   ")


def test_unknown_token_writes_nothing(db, make_attendee):
    attendee = make_attendee(qr_token="KNOWN1")

    with pytest.raises(InvalidToken):
        check_in(db, "NOPE99")

    assert db.query(CheckInInstance).count() == 0
    db.refresh(attendee)
    assert attendee.checked_in is False

    failed = db.query(ActivityLog).filter_by(type="checkin", status="error").all()
    assert len(failed) == 1
    assert failed[0].extra["qr_token"] == "NOPE99"


def test_successful_scan_is_logged(db, make_attendee):
    make_attendee(qr_token="LOG001")
    check_in(db, "LOG001")
    check_in(db, "LOG001")

    entries = db.query(ActivityLog).filter_by(type="checkin", status="success").all()
    assert sorted(e.extra["ordinal"] for e in entries) == [1, 2]
    assert {e.extra["guest_type"] for e in entries} == {"original", "plus_one"}


def test_concurrent_scans_get_distinct_ordinals(session_factory, make_attendee):
    make_attendee(qr_token="RACE01")
    workers = 8

    def scan(_):
        session = session_factory()
        try:
            return check_in(session, "RACE01").ordinal
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=workers) as pool:
        ordinals = list(pool.map(scan, range(workers)))

    assert sorted(ordinals) == list(range(1, workers + 1))

    session = session_factory()
    try:
        stored = [i.ordinal for i in session.query(CheckInInstance).filter_by(qr_token="RACE01")]
        assert sorted(stored) == list(range(1, workers + 1))
        firsts = session.query(CheckInInstance).filter_by(qr_token="RACE01", guest_type="original").count()
        assert firsts == 1
        assert session.query(Attendee).filter_by(qr_token="RACE01").one().checked_in is True
    finally:
        session.close()


def test_concurrent_scans_of_different_tokens(session_factory, make_attendee):
    tokens = [make_attendee().qr_token for _ in range(3)]
    scans = tokens * 3

    def scan(token):
        session = session_factory()
        try:
            return token, check_in(session, token).ordinal
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=6) as pool:
        results = list(pool.map(scan, scans))

    for token in tokens:
        assert sorted(o for t, o in results if t == token) == [1, 2, 3]


def test_list_instances_filters_by_token(db, make_attendee):
    make_attendee(qr_token="AAA111")
    make_attendee(qr_token="BBB222")
    check_in(db, "AAA111")
    check_in(db, "AAA111")
    check_in(db, "BBB222")

    assert len(list_instances(db)) == 3
    assert {i.ordinal for i in list_instances(db, qr_token="AAA111")} == {1, 2}


def test_repair_restores_flags(db, make_attendee):
    scanned = make_attendee(qr_token="REP001")
    untouched = make_attendee(qr_token="REP002")
    check_in(db, "REP001")

    # Corrupt both flags
    db.query(Attendee).filter_by(id=scanned.id).update({"checked_in": False, "first_checked_in_at": None})
    db.query(Attendee).filter_by(id=untouched.id).update({"checked_in": True})
    db.commit()

    assert repair_checkin_flags(db) == 2

    db.refresh(scanned)
    db.refresh(untouched)
    assert scanned.checked_in is True and scanned.first_checked_in_at is not None
    assert untouched.checked_in is False and untouched.first_checked_in_at is None

    assert repair_checkin_flags(db) == 0
