import csv
import io
import logging
from typing import Dict, List, Optional

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from eventcheckin.core.exceptions import DuplicateEmail, TransientStoreError, ValidationError
from eventcheckin.core.security import generate_qr_token
from eventcheckin.models.attendee import Attendee
from eventcheckin.models.checkin import CheckInInstance
from eventcheckin.services.activity import log_activity

logger = logging.getLogger(__name__)

NAME_MAX = 100
EMAIL_MAX = 255
PHONE_MAX = 20
COMPANY_MAX = 100

QR_TOKEN_ATTEMPTS = 20

def _clean(value: Optional[str], max_length: int) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()[:max_length]
    return value or None

def clean_contact_fields(
    name: Optional[str],
    email: Optional[str],
    phone: Optional[str] = None,
    company: Optional[str] = None,
) -> Dict[str, Optional[str]]:
    """Trim, truncate and validate attendee contact fields. Email is lower-cased."""
    clean_name = _clean(name, NAME_MAX)
    if not clean_name:
        raise ValidationError("name", "Name is required")

    raw_email = (email or "").strip().lower()
    if not raw_email:
        raise ValidationError("email", "Email is required")
    if len(raw_email) > EMAIL_MAX:
        raise ValidationError("email", f"must be at most {EMAIL_MAX} characters")
    try:
        validate_email(raw_email, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError("email", str(e))

    return {
        "name": clean_name,
        "email": raw_email,
        "phone": _clean(phone, PHONE_MAX),
        "company": _clean(company, COMPANY_MAX),
    }

def email_exists(db: Session, email: str) -> bool:
    return db.query(Attendee.id).filter(func.lower(Attendee.email) == email.strip().lower()).first() is not None

def generate_unique_qr_token(db: Session) -> str:
    """Draw QR codes until one is not taken by an existing attendee"""
    for _ in range(QR_TOKEN_ATTEMPTS):
        token = generate_qr_token()
        if db.query(Attendee.id).filter(Attendee.qr_token == token).first() is None:
            return token
    raise TransientStoreError("qr_token", "could not generate a unique QR code")

def create_attendee(
    db: Session,
    name: str,
    email: str,
    phone: Optional[str] = None,
    company: Optional[str] = None,
    created_by: Optional[str] = None,
) -> Attendee:
    """Add a pre-registered attendee with a fresh QR code"""
    fields = clean_contact_fields(name, email, phone, company)
    if email_exists(db, fields["email"]):
        raise DuplicateEmail(fields["email"])

    attendee = Attendee(
        **fields,
        qr_token=generate_unique_qr_token(db),
        registration_type="pre_registered",
        checked_in=False,
    )
    db.add(attendee)
    log_activity(
        db,
        type="qr_generated",
        action="create_attendee",
        status="success",
        user_name=attendee.name,
        user_email=attendee.email,
        details=f"Attendee added by {created_by}" if created_by else "Attendee added",
        metadata={"qr_token": attendee.qr_token, "created_by": created_by},
        commit=False,
    )
    db.commit()
    db.refresh(attendee)
    logger.info(f"[Admin] Attendee created: {attendee.email} qr={attendee.qr_token}")
    return attendee

def import_attendees_csv(db: Session, content: str, created_by: Optional[str] = None) -> dict:
    """
    Bulk import pre-registered attendees.
    Required CSV header: 'email'. Optional: 'name', 'phone', 'company'.

    Rows whose email already exists (in the store or earlier in the file)
    are skipped; rows that fail validation are reported with their line
    number. Everything else is committed in one transaction.
    """
    reader = csv.DictReader(io.StringIO(content))
    headers = [h.lower().strip() for h in reader.fieldnames or []]
    if "email" not in headers:
        raise ValidationError("file", f"CSV is missing required 'email' column. Found: {headers}")

    created: List[Attendee] = []
    skipped_emails: List[str] = []
    errors: List[dict] = []
    seen = set()

    # Line 1 is the header row
    for line_no, row in enumerate(reader, start=2):
        clean_row = {k.lower().strip(): (v or "").strip() for k, v in row.items() if k}

        email = clean_row.get("email", "").lower()
        if not email:
            continue

        if email in seen or email_exists(db, email):
            skipped_emails.append(email)
            continue

        try:
            fields = clean_contact_fields(
                clean_row.get("name") or "Unknown",
                email,
                clean_row.get("phone"),
                clean_row.get("company"),
            )
        except ValidationError as e:
            errors.append({"line": line_no, "email": email, "error": e.message})
            continue

        seen.add(email)
        token = generate_unique_qr_token(db)
        while token in {a.qr_token for a in created}:
            token = generate_unique_qr_token(db)

        attendee = Attendee(**fields, qr_token=token, registration_type="pre_registered", checked_in=False)
        db.add(attendee)
        created.append(attendee)

    if created:
        log_activity(
            db,
            type="qr_generated",
            action="csv_import",
            status="success",
            details=f"Imported {len(created)} attendee(s), skipped {len(skipped_emails)}",
            metadata={"created": len(created), "skipped": len(skipped_emails), "errors": len(errors), "created_by": created_by},
            commit=False,
        )
    db.commit()

    logger.info(f"[Admin] Batch import: {len(created)} created, {len(skipped_emails)} skipped, {len(errors)} invalid")
    return {
        "total_processed": len(created) + len(skipped_emails) + len(errors),
        "success_count": len(created),
        "skipped_emails": skipped_emails,
        "errors": errors,
    }

def list_attendees(
    db: Session,
    search: Optional[str] = None,
    checked_in: Optional[bool] = None,
    registration_type: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
) -> List[Attendee]:
    """
    Attendees, newest first.
    ``search`` matches name, email, company or QR code, case-insensitively.
    """
    query = db.query(Attendee)

    if search:
        search_fmt = f"%{search.strip()}%"
        query = query.filter(
            Attendee.name.ilike(search_fmt)
            | Attendee.email.ilike(search_fmt)
            | Attendee.company.ilike(search_fmt)
            | Attendee.qr_token.ilike(search_fmt)
        )
    if checked_in is not None:
        query = query.filter(Attendee.checked_in.is_(checked_in))
    if registration_type:
        query = query.filter(Attendee.registration_type == registration_type)

    return query.order_by(Attendee.created_at.desc(), Attendee.id.desc()).offset(skip).limit(limit).all()

def get_attendee(db: Session, attendee_id: int) -> Optional[Attendee]:
    return (
        db.query(Attendee)
        .options(selectinload(Attendee.checkins))
        .filter(Attendee.id == attendee_id)
        .first()
    )

def get_attendee_by_qr(db: Session, qr_token: str) -> Optional[Attendee]:
    return db.query(Attendee).filter(Attendee.qr_token == (qr_token or "").strip()).first()

def delete_attendees(db: Session, attendee_ids: List[int], deleted_by: Optional[str] = None) -> int:
    """
    Hard delete attendees together with their check-in instances.
    Returns the number of attendees removed; unknown ids are ignored.
    """
    ids = sorted(set(attendee_ids))
    if not ids:
        return 0

    attendees = db.query(Attendee).filter(Attendee.id.in_(ids)).all()
    if not attendees:
        return 0

    found = [a.id for a in attendees]
    emails = [a.email for a in attendees]

    # Instances go first; SQLite does not enforce ON DELETE CASCADE by default
    db.query(CheckInInstance).filter(CheckInInstance.attendee_id.in_(found)).delete(synchronize_session=False)
    db.query(Attendee).filter(Attendee.id.in_(found)).delete(synchronize_session=False)

    log_activity(
        db,
        type="system",
        action="delete_attendees",
        status="success",
        details=f"Deleted {len(found)} attendee(s)",
        metadata={"emails": emails, "deleted_by": deleted_by},
        commit=False,
    )
    db.commit()
    db.expire_all()

    logger.info(f"[Admin] Deleted {len(found)} attendee(s) by {deleted_by}: {emails}")
    return len(found)
