import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from eventcheckin.models.activity_log import ActivityLog, ACTIVITY_TYPES, ACTIVITY_STATUSES

logger = logging.getLogger(__name__)

def log_activity(
    db: Session,
    type: str,
    action: str,
    status: str,
    user_name: Optional[str] = None,
    user_email: Optional[str] = None,
    details: Optional[str] = None,
    metadata: Optional[dict] = None,
    commit: bool = True,
) -> ActivityLog:
    """
    Append an entry to the activity log.

    With ``commit=False`` the entry joins the caller's transaction and is
    written (or discarded) with it.
    """
    if type not in ACTIVITY_TYPES:
        raise ValueError(f"Unknown activity type: {type}")
    if status not in ACTIVITY_STATUSES:
        raise ValueError(f"Unknown activity status: {status}")

    entry = ActivityLog(
        type=type,
        action=action,
        status=status,
        user_name=user_name,
        user_email=user_email,
        details=details,
        extra=metadata or {},
    )
    db.add(entry)
    if commit:
        db.commit()
    return entry

def list_activity(
    db: Session,
    type: Optional[str] = None,
    status: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
) -> List[ActivityLog]:
    query = db.query(ActivityLog)
    if type:
        query = query.filter(ActivityLog.type == type)
    if status:
        query = query.filter(ActivityLog.status == status)
    return query.order_by(ActivityLog.timestamp.desc(), ActivityLog.id.desc()).offset(skip).limit(limit).all()
