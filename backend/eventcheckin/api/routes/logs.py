from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from eventcheckin.core.deps import require_permission
from eventcheckin.core.permissions import Action
from eventcheckin.db.session import get_db
from eventcheckin.models.staff import StaffUser
from eventcheckin.schemas import ActivityLogResponse
from eventcheckin.services.activity import list_activity

router = APIRouter()

@router.get("/logs", response_model=List[ActivityLogResponse])
def get_activity_logs(
    type: Optional[str] = None,
    status: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.VIEW_LOGS)),
):
    """Activity log, newest first. Optional: ?type=checkin&status=error"""
    return list_activity(db, type=type, status=status, skip=skip, limit=limit)
