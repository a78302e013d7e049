from sqlalchemy import Column, String, Boolean, Integer, DateTime, Text, CheckConstraint

from eventcheckin.db.base import Base, BaseModel, utcnow

class RegistrationToken(Base, BaseModel):
    """Admin-issued, expiring, use-limited code gating walk-in self-registration"""

    __tablename__ = "registration_tokens"
    __table_args__ = (
        CheckConstraint("max_uses >= 1", name="registration_tokens_max_uses_positive"),
        CheckConstraint("current_uses >= 0", name="registration_tokens_current_uses_nonnegative"),
    )

    token = Column(String(64), unique=True, nullable=False, index=True)
    created_by = Column(String(255), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    max_uses = Column(Integer, default=1, nullable=False)
    current_uses = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    used_by_email = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    @property
    def remaining_uses(self) -> int:
        return max(self.max_uses - self.current_uses, 0)

    def __repr__(self):
        return f"<RegistrationToken {self.token} {self.current_uses}/{self.max_uses}>"


class RegistrationRateLimit(Base, BaseModel):
    """Fixed-window attempt counter per client address"""

    __tablename__ = "registration_rate_limits"

    client_ip = Column(String(64), unique=True, nullable=False, index=True)
    attempt_count = Column(Integer, default=1, nullable=False)
    window_start = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    last_attempt = Column(DateTime(timezone=True), default=utcnow, nullable=False)
