"""
Staff accounts, invitations and roles.

Sign-up is closed: an account can only be created against a pending
invitation, except for the very first account, which becomes the super
admin.
"""
import logging
from datetime import timedelta
from typing import List, Optional
from urllib.parse import quote

from sqlalchemy import func
from sqlalchemy.orm import Session

from eventcheckin.core.config import settings
from eventcheckin.core.exceptions import DuplicateEmail, PermissionDenied, ValidationError
from eventcheckin.core.permissions import Role
from eventcheckin.core.security import hash_password, verify_password
from eventcheckin.db.base import as_utc, utcnow
from eventcheckin.models.staff import StaffInvitation, StaffUser

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

def _normalise_email(email: str) -> str:
    return (email or "").strip().lower()

def get_staff_by_email(db: Session, email: str) -> Optional[StaffUser]:
    return db.query(StaffUser).filter(func.lower(StaffUser.email) == _normalise_email(email)).first()

def _super_admin_count(db: Session) -> int:
    return db.query(func.count(StaffUser.id)).filter(StaffUser.role == Role.SUPER_ADMIN).scalar() or 0

def _pending_invitation(db: Session, email: str) -> Optional[StaffInvitation]:
    invitation = (
        db.query(StaffInvitation)
        .filter(func.lower(StaffInvitation.email) == email, StaffInvitation.status == "pending")
        .first()
    )
    if invitation and invitation.expires_at and as_utc(invitation.expires_at) <= utcnow():
        return None
    return invitation

def signup(db: Session, email: str, password: str, full_name: Optional[str] = None) -> StaffUser:
    email = _normalise_email(email)
    if not email:
        raise ValidationError("email", "Email is required")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError("password", f"must be at least {MIN_PASSWORD_LENGTH} characters")
    if get_staff_by_email(db, email):
        raise DuplicateEmail(email)

    invitation = _pending_invitation(db, email)
    if invitation is not None:
        role = invitation.role
        invitation.status = "used"
        invitation.used_at = utcnow()
    elif _super_admin_count(db) == 0:
        role = Role.SUPER_ADMIN
    else:
        logger.warning(f"Sign-up refused for {email}: no pending invitation")
        raise PermissionDenied("Sign-up requires an invitation")

    user = StaffUser(
        email=email,
        full_name=(full_name or "").strip() or None,
        hashed_password=hash_password(password),
        role=role,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    if invitation is None:
        # Two first sign-ups can both have seen no super admin; the lowest id keeps the role
        first = db.query(StaffUser.id).filter(StaffUser.role == Role.SUPER_ADMIN).order_by(StaffUser.id).first()
        if first is not None and first.id != user.id:
            db.delete(user)
            db.commit()
            logger.warning(f"Sign-up for {email} lost the first-account race")
            raise PermissionDenied("Sign-up requires an invitation")

    logger.info(f"Staff account created: {email} ({role.value})")
    return user

def authenticate(db: Session, email: str, password: str) -> Optional[StaffUser]:
    user = get_staff_by_email(db, email)
    if user is None or not user.is_active or not verify_password(password, user.hashed_password):
        logger.warning(f"Failed login for {_normalise_email(email)}")
        return None

    user.last_login = utcnow()
    db.commit()
    db.refresh(user)
    return user

def ensure_bootstrap_admin(db: Session) -> Optional[StaffUser]:
    """Create (or promote) the configured ADMIN_EMAIL account as super admin"""
    if not settings.ADMIN_EMAIL or not settings.ADMIN_PASSWORD:
        return None

    user = get_staff_by_email(db, settings.ADMIN_EMAIL)
    if user is None:
        user = StaffUser(
            email=_normalise_email(settings.ADMIN_EMAIL),
            full_name="Admin",
            hashed_password=hash_password(settings.ADMIN_PASSWORD),
            role=Role.SUPER_ADMIN,
            is_active=True,
        )
        db.add(user)
        logger.info(f"Bootstrap super admin created: {user.email}")
    elif user.role != Role.SUPER_ADMIN:
        user.role = Role.SUPER_ADMIN
        logger.info(f"Bootstrap admin {user.email} promoted to super admin")

    db.commit()
    db.refresh(user)
    return user

def list_staff(db: Session) -> List[StaffUser]:
    return db.query(StaffUser).order_by(StaffUser.created_at, StaffUser.id).all()

def change_role(db: Session, user_id: int, role: Role, changed_by: Optional[str] = None) -> Optional[StaffUser]:
    user = db.query(StaffUser).filter(StaffUser.id == user_id).first()
    if user is None:
        return None

    role = Role(role)
    if user.role == Role.SUPER_ADMIN and role != Role.SUPER_ADMIN and _super_admin_count(db) <= 1:
        raise ValidationError("role", "cannot demote the last super admin")

    previous = user.role
    user.role = role
    db.commit()
    db.refresh(user)
    logger.info(f"Role of {user.email} changed {previous.value} -> {role.value} by {changed_by}")
    return user

# ------------------------------------------------------------------------------
# Invitations
# ------------------------------------------------------------------------------

def invite_staff(db: Session, email: str, role: Role = Role.USER, invited_by: Optional[str] = None) -> StaffInvitation:
    """Create or renew a pending invitation for ``email``"""
    email = _normalise_email(email)
    if not email:
        raise ValidationError("email", "Email is required")
    if get_staff_by_email(db, email):
        raise DuplicateEmail(email)

    now = utcnow()
    invitation = db.query(StaffInvitation).filter(func.lower(StaffInvitation.email) == email).first()
    if invitation is None:
        invitation = StaffInvitation(email=email)
        db.add(invitation)

    invitation.role = Role(role)
    invitation.invited_by = invited_by
    invitation.invited_at = now
    invitation.expires_at = now + timedelta(days=settings.STAFF_INVITATION_EXPIRE_DAYS)
    invitation.used_at = None
    invitation.status = "pending"

    db.commit()
    db.refresh(invitation)
    logger.info(f"Staff invitation for {email} ({invitation.role.value}) by {invited_by}")
    return invitation

def list_invitations(db: Session, status: Optional[str] = None) -> List[StaffInvitation]:
    query = db.query(StaffInvitation)
    if status:
        query = query.filter(StaffInvitation.status == status)
    return query.order_by(StaffInvitation.invited_at.desc(), StaffInvitation.id.desc()).all()

def revoke_invitation(db: Session, invitation_id: int) -> Optional[StaffInvitation]:
    invitation = db.query(StaffInvitation).filter(StaffInvitation.id == invitation_id).first()
    if invitation is None:
        return None
    if invitation.status == "pending":
        invitation.status = "revoked"
        db.commit()
        db.refresh(invitation)
        logger.info(f"Staff invitation for {invitation.email} revoked")
    return invitation

def signup_url(invitation: StaffInvitation) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/signup?email={quote(invitation.email)}"

def can_grant(granter: Role, role: Role) -> bool:
    """Admins may hand out user and admin; super admin needs a super admin"""
    return Role(role) != Role.SUPER_ADMIN or Role(granter) == Role.SUPER_ADMIN
