from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship

from eventcheckin.db.base import Base, BaseModel, utcnow

class CheckInInstance(Base, BaseModel):
    """One scan of a QR token. Written once, never updated."""

    __tablename__ = "checkin_instances"
    __table_args__ = (
        # Two writers racing for the same ordinal: the loser gets an IntegrityError and retries
        UniqueConstraint("qr_token", "ordinal", name="uq_checkin_instances_qr_token_ordinal"),
        CheckConstraint("ordinal >= 1", name="checkin_instances_ordinal_positive"),
    )

    attendee_id = Column(Integer, ForeignKey("attendees.id", ondelete="CASCADE"), nullable=False, index=True)
    qr_token = Column(String(32), nullable=False, index=True)
    ordinal = Column(Integer, nullable=False)
    guest_type = Column(String(32), nullable=False)
    checked_in_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    checked_in_by = Column(String(255), nullable=True)

    attendee = relationship("Attendee", back_populates="checkins")

    def __repr__(self):
        return f"<CheckInInstance {self.qr_token} #{self.ordinal} ({self.guest_type})>"
