from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from eventcheckin.core.deps import require_permission
from eventcheckin.core.permissions import Action
from eventcheckin.db.session import get_db
from eventcheckin.models.staff import StaffUser
from eventcheckin.schemas import CheckInRequest, CheckInResponse, CheckInInstanceResponse
from eventcheckin.services import checkin as checkin_service

router = APIRouter()
logger = logging.getLogger(__name__)

@router.post("/checkin", response_model=CheckInResponse)
def check_in(
    payload: CheckInRequest,
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.SCAN)),
):
    """
    Record one scan of a decoded QR code.
    The first scan checks the attendee in; every later scan is a plus guest.
    """
    result = checkin_service.check_in(db, payload.qr_token, scanned_by=current_user.email)

    return CheckInResponse(
        ordinal=result.ordinal,
        guest_type=result.guest_type,
        guest_label=result.guest_label,
        attendee_name=result.attendee_name,
        attendee_id=result.attendee_id,
        qr_token=result.qr_token,
        checked_in_at=result.checked_in_at,
    )

@router.get("/checkin/instances", response_model=List[CheckInInstanceResponse])
def list_checkin_instances(
    qr_token: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(500, ge=1, le=5000),
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.VIEW_ATTENDEES)),
):
    """Check-in instances, newest first. Optional: ?qr_token=ABC123"""
    return checkin_service.list_instances(db, qr_token=qr_token, skip=skip, limit=limit)
