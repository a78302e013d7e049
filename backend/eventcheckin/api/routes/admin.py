from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from eventcheckin.core.deps import require_permission
from eventcheckin.core.permissions import Action
from eventcheckin.db.session import get_db
from eventcheckin.models.staff import StaffUser
from eventcheckin.schemas import InvitationCreate, InvitationResponse, RepairResponse, RoleUpdate, StaffResponse
from eventcheckin.services import staff as staff_service
from eventcheckin.services.checkin import repair_checkin_flags
from eventcheckin.services.mailer import send_staff_invitation_email

router = APIRouter()
logger = logging.getLogger(__name__)

# ==============================================================================
# STAFF INVITATIONS
# ==============================================================================
@router.post("/invitations", response_model=InvitationResponse, status_code=status.HTTP_201_CREATED)
def invite_staff(
    payload: InvitationCreate,
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.INVITE_STAFF)),
):
    # Only super admins hand out roles above their own tier
    if not staff_service.can_grant(current_user.role, payload.role):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Role '{current_user.role.value}' may not invite '{payload.role.value}'"
        )

    invitation = staff_service.invite_staff(db, payload.email, payload.role, invited_by=current_user.email)
    if not send_staff_invitation_email(invitation, staff_service.signup_url(invitation)):
        logger.warning(f"Invitation for {invitation.email} saved but the email was not sent")
    return invitation

@router.get("/invitations", response_model=List[InvitationResponse])
def list_invitations(
    status_filter: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.INVITE_STAFF)),
):
    return staff_service.list_invitations(db, status=status_filter)

@router.post("/invitations/{invitation_id}/revoke", response_model=InvitationResponse)
def revoke_invitation(
    invitation_id: int,
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.INVITE_STAFF)),
):
    invitation = staff_service.revoke_invitation(db, invitation_id)
    if invitation is None:
        raise HTTPException(status_code=404, detail=f"Invitation {invitation_id} not found")
    return invitation

# ==============================================================================
# STAFF ROLES
# ==============================================================================
@router.get("/staff", response_model=List[StaffResponse])
def list_staff(
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.INVITE_STAFF)),
):
    return staff_service.list_staff(db)

@router.put("/staff/{user_id}/role", response_model=StaffResponse)
def change_staff_role(
    user_id: int,
    payload: RoleUpdate,
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.MANAGE_ROLES)),
):
    user = staff_service.change_role(db, user_id, payload.role, changed_by=current_user.email)
    if user is None:
        raise HTTPException(status_code=404, detail=f"Staff member {user_id} not found")
    return user

# ==============================================================================
# MAINTENANCE
# ==============================================================================
@router.post("/repair-checkins", response_model=RepairResponse)
def repair_checkins(
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.REPAIR_CHECKINS)),
):
    """Recompute every attendee's checked-in flag from its check-in instances"""
    fixed = repair_checkin_flags(db)
    logger.info(f"[Admin] Check-in repair run by {current_user.email}: {fixed} fixed")
    return {"fixed": fixed}
