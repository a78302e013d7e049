from sqlalchemy import Column, String, DateTime, Text, JSON, CheckConstraint

from eventcheckin.db.base import Base, BaseModel, utcnow

ACTIVITY_TYPES = ("checkin", "registration", "qr_generated", "email_sent", "system")
ACTIVITY_STATUSES = ("success", "error", "pending")

class ActivityLog(Base, BaseModel):
    __tablename__ = "activity_logs"
    __table_args__ = (
        CheckConstraint(
            "type IN ('checkin', 'registration', 'qr_generated', 'email_sent', 'system')",
            name="activity_logs_type_check",
        ),
        CheckConstraint("status IN ('success', 'error', 'pending')", name="activity_logs_status_check"),
    )

    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    type = Column(String(20), nullable=False, index=True)
    action = Column(String(100), nullable=False)
    user_name = Column(String(255), nullable=True)
    user_email = Column(String(255), nullable=True)
    details = Column(Text, nullable=True)
    status = Column(String(10), nullable=False, index=True)
    # "metadata" is reserved on declarative classes
    extra = Column("metadata", JSON, default=dict, nullable=False)
