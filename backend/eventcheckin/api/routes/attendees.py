import logging
from typing import List, Optional

from fastapi import APIRouter, UploadFile, File, Depends, HTTPException, Query, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from eventcheckin.core.deps import require_permission
from eventcheckin.core.permissions import Action
from eventcheckin.db.session import get_db
from eventcheckin.models.staff import StaffUser
from eventcheckin.schemas import (
    AttendeeCreate,
    AttendeeDetailResponse,
    AttendeeResponse,
    BatchUploadResponse,
    BulkDeleteRequest,
    BulkDeleteResponse,
    SendQREmailRequest,
    SendQREmailResponse,
)
from eventcheckin.services import attendees as attendee_service
from eventcheckin.services.mailer import send_qr_email
from eventcheckin.services.qr_code import render_qr_png

router = APIRouter()
logger = logging.getLogger(__name__)

def _get_or_404(db: Session, attendee_id: int):
    attendee = attendee_service.get_attendee(db, attendee_id)
    if not attendee:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Attendee with ID {attendee_id} not found"
        )
    return attendee

# ==============================================================================
# 1. LIST ATTENDEES (With Search & Pagination)
# ==============================================================================
@router.get("/attendees", response_model=List[AttendeeResponse])
def get_attendees(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    search: Optional[str] = None,
    checked_in: Optional[bool] = None,
    registration_type: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.VIEW_ATTENDEES)),
):
    """
    Get all attendees with pagination.
    Optional: ?search=john to filter by name, email, company or QR code.
    """
    return attendee_service.list_attendees(
        db,
        search=search,
        checked_in=checked_in,
        registration_type=registration_type,
        skip=skip,
        limit=limit,
    )

@router.post("/attendees", response_model=AttendeeResponse, status_code=status.HTTP_201_CREATED)
def create_attendee(
    payload: AttendeeCreate,
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.ADD_ATTENDEES)),
):
    return attendee_service.create_attendee(
        db,
        name=payload.name,
        email=payload.email,
        phone=payload.phone,
        company=payload.company,
        created_by=current_user.email,
    )

@router.get("/attendees/{attendee_id}", response_model=AttendeeDetailResponse)
def get_attendee(
    attendee_id: int,
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.VIEW_ATTENDEES)),
):
    """One attendee with every check-in of its QR code"""
    return _get_or_404(db, attendee_id)

# ==============================================================================
# 2. QR CODE (PNG + email)
# ==============================================================================
@router.get("/attendees/{attendee_id}/qr.png")
def get_attendee_qr(
    attendee_id: int,
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.VIEW_ATTENDEES)),
):
    attendee = _get_or_404(db, attendee_id)
    png = render_qr_png(attendee.qr_token)
    return Response(
        content=png,
        media_type="image/png",
        headers={"Content-Disposition": f'inline; filename="qr-{attendee.qr_token}.png"'},
    )

@router.post("/attendees/{attendee_id}/send-qr", response_model=SendQREmailResponse)
def send_attendee_qr(
    attendee_id: int,
    payload: Optional[SendQREmailRequest] = None,
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.SEND_QR)),
):
    """Email the QR code; the body optionally overrides the wording"""
    attendee = _get_or_404(db, attendee_id)
    template = payload.model_dump(exclude={"custom_message"}, exclude_none=True) if payload else None
    custom_message = payload.custom_message if payload else None

    if send_qr_email(db, attendee, sent_by=current_user.email, template=template, custom_message=custom_message):
        return {"success": True, "message": f"QR code sent to {attendee.email}"}

    raise HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=f"Failed to send QR code to {attendee.email}"
    )

# ==============================================================================
# 3. DELETE ATTENDEES (attendee rows + their check-in instances)
# ==============================================================================
@router.post("/attendees/bulk-delete", response_model=BulkDeleteResponse)
def bulk_delete_attendees(
    payload: BulkDeleteRequest,
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.DELETE_ATTENDEES)),
):
    deleted = attendee_service.delete_attendees(db, payload.attendee_ids, deleted_by=current_user.email)
    return {"deleted": deleted}

@router.delete("/attendees/{attendee_id}", response_model=BulkDeleteResponse)
def delete_attendee(
    attendee_id: int,
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.DELETE_ATTENDEES)),
):
    deleted = attendee_service.delete_attendees(db, [attendee_id], deleted_by=current_user.email)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Attendee with ID {attendee_id} not found"
        )
    return {"deleted": deleted}

# ==============================================================================
# 4. BATCH CSV UPLOAD
# ==============================================================================
@router.post("/attendees/upload-csv", response_model=BatchUploadResponse)
def upload_csv(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.ADD_ATTENDEES)),
):
    """
    Bulk import attendees.
    Required CSV Header: 'email'
    Optional CSV Headers: 'name', 'phone', 'company'
    """
    if not (file.filename or "").lower().endswith(".csv"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid file format. Please upload a .csv file."
        )

    try:
        # utf-8-sig drops the BOM spreadsheet exports add
        content = file.file.read().decode("utf-8-sig")
    except UnicodeDecodeError as e:
        logger.error(f"CSV Reading Error: {e}")
        raise HTTPException(status_code=400, detail="Could not read or decode CSV file.")

    return attendee_service.import_attendees_csv(db, content, created_by=current_user.email)
