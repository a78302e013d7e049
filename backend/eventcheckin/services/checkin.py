"""
Check-in counter and guest-sequence resolver.

Every scan of a QR token becomes a ``CheckInInstance`` with a 1-based
ordinal among the scans of that token. The first scan is the original
guest, later ones are plus guests. Ordinals are assigned inside one
transaction per scan; the attendee row is locked where the database
supports it, and the ``(qr_token, ordinal)`` unique constraint turns any
remaining race into an ``IntegrityError`` that is retried with a fresh
count.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from eventcheckin.core.config import settings
from eventcheckin.core.exceptions import InvalidToken, TransientStoreError, ValidationError
from eventcheckin.db.base import as_utc, utcnow
from eventcheckin.models.attendee import Attendee
from eventcheckin.models.checkin import CheckInInstance
from eventcheckin.services.activity import log_activity

logger = logging.getLogger(__name__)

GUEST_TYPES = {
    1: "original",
    2: "plus_one",
    3: "plus_two",
}

def guest_type_for(ordinal: int) -> str:
    """Label for the n-th scan of a token; unbounded past plus_two"""
    if ordinal < 1:
        raise ValueError(f"Ordinal must be >= 1, got {ordinal}")
    return GUEST_TYPES.get(ordinal, f"plus_{ordinal - 1}")

def display_label(guest_type: str) -> str:
    """'plus_one' -> 'Plus One Guest', 'plus_3' -> 'Plus 3 Guest'"""
    return f"{guest_type.replace('_', ' ').title()} Guest"


@dataclass
class CheckInResult:
    ordinal: int
    guest_type: str
    attendee_name: str
    attendee_id: int
    qr_token: str
    checked_in_at: datetime

    @property
    def guest_label(self) -> str:
        return display_label(self.guest_type)

    @property
    def is_first_checkin(self) -> bool:
        return self.ordinal == 1


def _record_scan(db: Session, qr_token: str, scanned_by: Optional[str]) -> CheckInResult:
    """One attempt: read the current count, insert the next ordinal, commit."""
    attendee = (
        db.query(Attendee)
        .filter(Attendee.qr_token == qr_token)
        .with_for_update()
        .first()
    )
    if attendee is None:
        raise InvalidToken(qr_token)

    prior = (
        db.query(func.coalesce(func.max(CheckInInstance.ordinal), 0))
        .filter(CheckInInstance.qr_token == qr_token)
        .scalar()
    )
    ordinal = prior + 1
    guest_type = guest_type_for(ordinal)
    now = utcnow()

    db.add(CheckInInstance(
        attendee_id=attendee.id,
        qr_token=qr_token,
        ordinal=ordinal,
        guest_type=guest_type,
        checked_in_at=now,
        checked_in_by=scanned_by,
    ))

    # Only the original guest flips the attendee's primary flag
    if ordinal == 1:
        attendee.checked_in = True
        attendee.first_checked_in_at = now

    result = CheckInResult(
        ordinal=ordinal,
        guest_type=guest_type,
        attendee_name=attendee.name,
        attendee_id=attendee.id,
        qr_token=qr_token,
        checked_in_at=now,
    )

    log_activity(
        db,
        type="checkin",
        action="qr_scan",
        status="success",
        user_name=attendee.name,
        user_email=attendee.email,
        details=f"{result.guest_label} checked in (check-in #{ordinal})",
        metadata={
            "qr_token": qr_token,
            "ordinal": ordinal,
            "guest_type": guest_type,
            "scanned_by": scanned_by,
        },
        commit=False,
    )
    db.commit()
    return result

def check_in(
    db: Session,
    qr_token: str,
    scanned_by: Optional[str] = None,
    max_attempts: Optional[int] = None,
) -> CheckInResult:
    """
    Record a scan of ``qr_token``.

    Raises ``InvalidToken`` for an unknown token (nothing is written apart
    from an error entry in the activity log), ``ValidationError`` for an
    empty scan, and ``TransientStoreError`` once the bounded retries are
    used up.
    """
    token = (qr_token or "").strip()
    if not token:
        raise ValidationError("qr_token", "QR code is required")

    attempts = max_attempts or settings.CHECKIN_MAX_ATTEMPTS
    last_error = None

    for attempt in range(1, attempts + 1):
        try:
            result = _record_scan(db, token, scanned_by)
        except InvalidToken:
            db.rollback()
            logger.warning(f"Check-in rejected: unknown QR code '{token}' (scanned by {scanned_by})")
            log_activity(
                db,
                type="checkin",
                action="qr_scan",
                status="error",
                details="Invalid QR code",
                metadata={"qr_token": token, "scanned_by": scanned_by},
            )
            raise
        except IntegrityError as e:
            # Another scan of the same token took this ordinal first
            db.rollback()
            last_error = e
            logger.info(f"Ordinal conflict for '{token}', retrying ({attempt}/{attempts})")
            continue
        except OperationalError as e:
            db.rollback()
            last_error = e
            logger.warning(f"Store error during check-in of '{token}' ({attempt}/{attempts}): {e}")
            time.sleep(settings.CHECKIN_RETRY_BACKOFF_SECONDS * attempt)
            continue

        logger.info(
            f"Checked in {result.attendee_name} ({token}) as #{result.ordinal} {result.guest_type}"
        )
        return result

    logger.error(f"Check-in of '{token}' failed after {attempts} attempts: {last_error}")
    raise TransientStoreError("check-in", str(last_error))

def list_instances(
    db: Session,
    qr_token: Optional[str] = None,
    skip: int = 0,
    limit: int = 500,
) -> List[CheckInInstance]:
    query = db.query(CheckInInstance)
    if qr_token:
        query = query.filter(CheckInInstance.qr_token == qr_token.strip())
    return (
        query.order_by(CheckInInstance.checked_in_at.desc(), CheckInInstance.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )

def repair_checkin_flags(db: Session) -> int:
    """
    Recompute every attendee's check-in flag from its check-in instances.

    An attendee is checked in iff an instance with ordinal 1 exists for its
    token, and ``first_checked_in_at`` is that instance's timestamp. Returns
    the number of attendees corrected.
    """
    first_scans = dict(
        db.query(CheckInInstance.qr_token, CheckInInstance.checked_in_at)
        .filter(CheckInInstance.ordinal == 1)
        .all()
    )

    fixed = 0
    for attendee in db.query(Attendee).all():
        first = first_scans.get(attendee.qr_token)
        expected = first is not None
        if attendee.checked_in != expected or as_utc(attendee.first_checked_in_at) != as_utc(first):
            attendee.checked_in = expected
            attendee.first_checked_in_at = first
            fixed += 1

    if fixed:
        logger.warning(f"Repaired check-in flags on {fixed} attendee(s)")
        log_activity(
            db,
            type="system",
            action="repair_checkin_flags",
            status="success",
            details=f"Corrected {fixed} attendee check-in flag(s)",
            metadata={"fixed": fixed},
            commit=False,
        )
    db.commit()
    return fixed
