from sqlalchemy import Column, String, Boolean, DateTime, Enum

from eventcheckin.core.permissions import Role
from eventcheckin.db.base import Base, BaseModel, utcnow

class StaffUser(Base, BaseModel):
    """Event staff who can sign in to scan and manage attendees"""

    __tablename__ = "staff_users"

    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    hashed_password = Column(String(255), nullable=False)
    role = Column(Enum(Role, values_callable=lambda roles: [r.value for r in roles]), default=Role.USER, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<StaffUser {self.email} ({self.role.value})>"


class StaffInvitation(Base, BaseModel):
    __tablename__ = "staff_invitations"

    email = Column(String(255), unique=True, nullable=False, index=True)
    role = Column(Enum(Role, values_callable=lambda roles: [r.value for r in roles]), default=Role.USER, nullable=False)
    invited_by = Column(String(255), nullable=True)
    invited_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    used_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), default="pending", nullable=False)  # pending, used, revoked
