"""
Walk-in self-registration gated by admin-issued registration tokens.

A submission passes, in order: the per-address rate limit, token
existence, the token's active flag, its expiry, its use count, field
validation and the duplicate-email check. The attendee insert and the
token consumption share one transaction, so a failed insert never
consumes a use and a lost race for the last use never leaves an attendee
behind.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eventcheckin.core.config import settings
from eventcheckin.core.exceptions import (
    DuplicateEmail,
    InvalidToken,
    RateLimited,
    TokenExpiredOrExhausted,
    TransientStoreError,
    ValidationError,
)
from eventcheckin.core.security import generate_registration_token
from eventcheckin.db.base import as_utc, utcnow
from eventcheckin.models.attendee import Attendee
from eventcheckin.models.registration_token import RegistrationRateLimit, RegistrationToken
from eventcheckin.services.activity import log_activity
from eventcheckin.services.attendees import clean_contact_fields, email_exists, generate_unique_qr_token

logger = logging.getLogger(__name__)

INSERT_ATTEMPTS = 3

def check_rate_limit(db: Session, client_ip: str, now: Optional[datetime] = None) -> int:
    """
    Count one registration attempt from ``client_ip``.

    Fixed window: the first attempt opens a window of
    REGISTRATION_RATE_WINDOW_SECONDS; once REGISTRATION_RATE_LIMIT attempts
    have been counted in it, further attempts raise ``RateLimited`` until
    the window ends. Returns the attempt count in the current window.
    """
    now = now or utcnow()
    client_ip = client_ip or "unknown"
    window = timedelta(seconds=settings.REGISTRATION_RATE_WINDOW_SECONDS)

    entry = (
        db.query(RegistrationRateLimit)
        .filter(RegistrationRateLimit.client_ip == client_ip)
        .with_for_update()
        .first()
    )

    if entry is None:
        entry = RegistrationRateLimit(client_ip=client_ip, attempt_count=1, window_start=now, last_attempt=now)
        db.add(entry)
    elif now >= as_utc(entry.window_start) + window:
        entry.attempt_count = 1
        entry.window_start = now
        entry.last_attempt = now
    elif entry.attempt_count >= settings.REGISTRATION_RATE_LIMIT:
        retry_after = int((as_utc(entry.window_start) + window - now).total_seconds())
        entry.last_attempt = now
        db.commit()
        logger.warning(f"Registration rate limit hit for {client_ip}")
        raise RateLimited(client_ip, retry_after)
    else:
        entry.attempt_count += 1
        entry.last_attempt = now

    count = entry.attempt_count
    try:
        db.commit()
    except IntegrityError:
        # Another request created the row for this address first
        db.rollback()
        return check_rate_limit(db, client_ip, now)
    return count

def ensure_token_usable(reg_token: RegistrationToken, now: Optional[datetime] = None) -> None:
    """Raise ``TokenExpiredOrExhausted`` unless the token can take one more registration"""
    now = now or utcnow()
    if not reg_token.is_active:
        raise TokenExpiredOrExhausted("inactive")
    if now >= as_utc(reg_token.expires_at):
        raise TokenExpiredOrExhausted("expired")
    if reg_token.current_uses >= reg_token.max_uses:
        raise TokenExpiredOrExhausted("exhausted")

def _consume_token(db: Session, reg_token: RegistrationToken, email: str, now: datetime) -> bool:
    """Conditional increment; False when another registration got there first"""
    result = db.execute(
        update(RegistrationToken)
        .where(
            RegistrationToken.id == reg_token.id,
            RegistrationToken.is_active.is_(True),
            RegistrationToken.current_uses < RegistrationToken.max_uses,
            RegistrationToken.expires_at > now,
        )
        .values(
            current_uses=RegistrationToken.current_uses + 1,
            used_at=now,
            used_by_email=email,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1

def register_walk_in(
    db: Session,
    token: str,
    name: str,
    email: str,
    client_ip: str,
    phone: Optional[str] = None,
    company: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Attendee:
    """Self-register a walk-in attendee with a registration token and return the new attendee"""
    now = now or utcnow()

    check_rate_limit(db, client_ip, now)

    token_value = (token or "").strip()
    reg_token = None
    if token_value:
        reg_token = db.query(RegistrationToken).filter(RegistrationToken.token == token_value).first()
    if reg_token is None:
        logger.warning(f"Registration with unknown token '{token_value}' from {client_ip}")
        raise InvalidToken(token_value, kind="Registration token")

    try:
        ensure_token_usable(reg_token, now)
    except TokenExpiredOrExhausted as e:
        logger.warning(f"Registration with unusable token {reg_token.token} ({e.reason}) from {client_ip}")
        raise

    fields = clean_contact_fields(name, email, phone, company)

    if email_exists(db, fields["email"]):
        logger.warning(f"Walk-in registration rejected: {fields['email']} already registered")
        raise DuplicateEmail(fields["email"])

    for attempt in range(1, INSERT_ATTEMPTS + 1):
        attendee = Attendee(
            **fields,
            qr_token=generate_unique_qr_token(db),
            registration_type="walk_in",
            checked_in=False,
        )
        try:
            db.add(attendee)
            db.flush()

            if not _consume_token(db, reg_token, fields["email"], now):
                db.rollback()
                db.refresh(reg_token)
                ensure_token_usable(reg_token, now)
                raise TokenExpiredOrExhausted("exhausted")

            log_activity(
                db,
                type="registration",
                action="self_register",
                status="success",
                user_name=fields["name"],
                user_email=fields["email"],
                details="Walk-in registration via registration token",
                metadata={
                    "registration_type": "walk_in",
                    "qr_token": attendee.qr_token,
                    "registration_token": reg_token.token,
                    "client_ip": client_ip,
                },
                commit=False,
            )
            db.commit()
        except IntegrityError as e:
            db.rollback()
            if email_exists(db, fields["email"]):
                raise DuplicateEmail(fields["email"])
            # QR token collision with a concurrent insert; draw a new one
            logger.info(f"Walk-in insert conflict, retrying ({attempt}/{INSERT_ATTEMPTS}): {e.orig}")
            continue

        db.refresh(attendee)
        logger.info(f"Walk-in registered: {attendee.name} ({attendee.email}) qr={attendee.qr_token}")
        return attendee

    raise TransientStoreError("registration", "could not allocate a unique QR code")

# ------------------------------------------------------------------------------
# Token administration
# ------------------------------------------------------------------------------

def create_registration_token(
    db: Session,
    created_by: Optional[str] = None,
    expires_in_hours: Optional[int] = None,
    max_uses: int = 1,
    notes: Optional[str] = None,
    token: Optional[str] = None,
) -> RegistrationToken:
    hours = expires_in_hours if expires_in_hours is not None else settings.REGISTRATION_TOKEN_DEFAULT_HOURS
    if hours <= 0:
        raise ValidationError("expires_in_hours", "must be positive")
    if max_uses < 1:
        raise ValidationError("max_uses", "must be at least 1")

    if token:
        token = token.strip().upper()
        if db.query(RegistrationToken.id).filter(RegistrationToken.token == token).first():
            raise ValidationError("token", f"'{token}' already exists")
    else:
        token = generate_registration_token()
        while db.query(RegistrationToken.id).filter(RegistrationToken.token == token).first():
            token = generate_registration_token()

    reg_token = RegistrationToken(
        token=token,
        created_by=created_by,
        expires_at=utcnow() + timedelta(hours=hours),
        max_uses=max_uses,
        current_uses=0,
        is_active=True,
        notes=notes or None,
    )
    db.add(reg_token)
    db.commit()
    db.refresh(reg_token)
    logger.info(f"Registration token {reg_token.token} created by {created_by} ({max_uses} use(s), {hours}h)")
    return reg_token

def list_registration_tokens(db: Session) -> List[RegistrationToken]:
    return db.query(RegistrationToken).order_by(RegistrationToken.created_at.desc(), RegistrationToken.id.desc()).all()

def get_registration_token(db: Session, token_id: int) -> Optional[RegistrationToken]:
    return db.query(RegistrationToken).filter(RegistrationToken.id == token_id).first()

def deactivate_registration_token(db: Session, token_id: int) -> Optional[RegistrationToken]:
    reg_token = get_registration_token(db, token_id)
    if reg_token is None:
        return None
    reg_token.is_active = False
    db.commit()
    db.refresh(reg_token)
    logger.info(f"Registration token {reg_token.token} deactivated")
    return reg_token

def delete_registration_token(db: Session, token_id: int) -> bool:
    reg_token = get_registration_token(db, token_id)
    if reg_token is None:
        return False
    value = reg_token.token
    db.delete(reg_token)
    db.commit()
    logger.info(f"Registration token {value} deleted")
    return True

def deactivate_expired_tokens(db: Session, now: Optional[datetime] = None) -> int:
    """Maintenance pass: switch off tokens past their expiry. Returns the count."""
    now = now or utcnow()
    result = db.execute(
        update(RegistrationToken)
        .where(RegistrationToken.expires_at < now, RegistrationToken.is_active.is_(True))
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount:
        logger.info(f"Deactivated {result.rowcount} expired registration token(s)")
    return result.rowcount

def registration_url(reg_token: RegistrationToken) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/register?token={reg_token.token}"
