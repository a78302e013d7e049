from sqlalchemy import Column, String, Boolean, DateTime, CheckConstraint
from sqlalchemy.orm import relationship

from eventcheckin.db.base import Base, BaseModel

REGISTRATION_TYPES = ("pre_registered", "walk_in")

class Attendee(Base, BaseModel):
    __tablename__ = "attendees"
    __table_args__ = (
        CheckConstraint(
            "registration_type IN ('pre_registered', 'walk_in')",
            name="attendees_registration_type_check",
        ),
    )

    # Contact fields
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(20), nullable=True)
    company = Column(String(100), nullable=True)

    # Registration
    qr_token = Column(String(32), unique=True, nullable=False, index=True)
    registration_type = Column(String(20), default="pre_registered", nullable=False, index=True)

    # Check-in state, derived from the ordinal-1 check-in instance
    checked_in = Column(Boolean, default=False, nullable=False)
    first_checked_in_at = Column(DateTime(timezone=True), nullable=True)

    checkins = relationship(
        "CheckInInstance",
        back_populates="attendee",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="CheckInInstance.ordinal",
    )

    def __repr__(self):
        return f"<Attendee {self.name} ({self.email}) qr={self.qr_token}>"
