"""
Event statistics and CSV exports.

Counts come straight from the check-in instances, so plus guests are
reported per guest type and the attendee flags are only used for the
checked-in / pending split.
"""
import csv
import io
import logging
from typing import Dict

from sqlalchemy import func
from sqlalchemy.orm import Session

from eventcheckin.db.base import as_utc
from eventcheckin.models.attendee import Attendee
from eventcheckin.models.checkin import CheckInInstance

logger = logging.getLogger(__name__)

ATTENDEE_COLUMNS = [
    "Name", "Email", "Phone", "Company", "Registration Type", "Status", "QR Code", "First Check-in",
]
CHECKIN_COLUMNS = [
    "Attendee", "Email", "QR Code", "Check-in #", "Guest Type", "Checked In At", "Checked In By",
]

def summary(db: Session) -> Dict:
    total = db.query(func.count(Attendee.id)).scalar() or 0
    checked_in = db.query(func.count(Attendee.id)).filter(Attendee.checked_in.is_(True)).scalar() or 0

    by_registration = dict(
        db.query(Attendee.registration_type, func.count(Attendee.id))
        .group_by(Attendee.registration_type)
        .all()
    )

    by_guest_type = dict(
        db.query(CheckInInstance.guest_type, func.count(CheckInInstance.id))
        .group_by(CheckInInstance.guest_type)
        .all()
    )
    original_guests = by_guest_type.pop("original", 0)
    total_scans = original_guests + sum(by_guest_type.values())

    tokens_with_plus_guests = (
        db.query(func.count(func.distinct(CheckInInstance.qr_token)))
        .filter(CheckInInstance.ordinal > 1)
        .scalar()
        or 0
    )

    return {
        "total_attendees": total,
        "checked_in": checked_in,
        "pending": total - checked_in,
        "checkin_rate": round(checked_in / total * 100) if total else 0,
        "pre_registered": by_registration.get("pre_registered", 0),
        "walk_in": by_registration.get("walk_in", 0),
        "total_scans": total_scans,
        "original_guests": original_guests,
        "plus_guests_by_type": by_guest_type,
        "total_plus_guests": sum(by_guest_type.values()),
        "tokens_with_plus_guests": tokens_with_plus_guests,
    }

def _iso(value) -> str:
    return as_utc(value).isoformat() if value else ""

def attendees_csv(db: Session) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(ATTENDEE_COLUMNS)

    count = 0
    for a in db.query(Attendee).order_by(Attendee.name, Attendee.id).yield_per(500):
        writer.writerow([
            a.name,
            a.email,
            a.phone or "",
            a.company or "",
            a.registration_type,
            "Checked In" if a.checked_in else "Pending",
            a.qr_token,
            _iso(a.first_checked_in_at),
        ])
        count += 1

    logger.info(f"Exported {count} attendee row(s)")
    return buf.getvalue()

def checkins_csv(db: Session) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CHECKIN_COLUMNS)

    rows = (
        db.query(CheckInInstance, Attendee.name, Attendee.email)
        .join(Attendee, Attendee.id == CheckInInstance.attendee_id)
        .order_by(CheckInInstance.checked_in_at, CheckInInstance.id)
        .all()
    )
    for instance, name, email in rows:
        writer.writerow([
            name,
            email,
            instance.qr_token,
            instance.ordinal,
            instance.guest_type,
            _iso(instance.checked_in_at),
            instance.checked_in_by or "",
        ])

    logger.info(f"Exported {len(rows)} check-in row(s)")
    return buf.getvalue()
