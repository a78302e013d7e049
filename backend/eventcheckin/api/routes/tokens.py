from typing import List
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from eventcheckin.core.deps import require_permission
from eventcheckin.core.permissions import Action
from eventcheckin.db.session import get_db
from eventcheckin.models.registration_token import RegistrationToken
from eventcheckin.models.staff import StaffUser
from eventcheckin.schemas import RegistrationTokenCreate, RegistrationTokenResponse
from eventcheckin.services import registration as registration_service
from eventcheckin.services.qr_code import render_qr_png

router = APIRouter()
logger = logging.getLogger(__name__)

def _to_response(reg_token: RegistrationToken) -> RegistrationTokenResponse:
    response = RegistrationTokenResponse.model_validate(reg_token)
    response.registration_url = registration_service.registration_url(reg_token)
    return response

def _not_found(token_id: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Registration token {token_id} not found"
    )

@router.post("/registration-tokens", response_model=RegistrationTokenResponse, status_code=status.HTTP_201_CREATED)
def create_registration_token(
    payload: RegistrationTokenCreate,
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.MANAGE_TOKENS)),
):
    """
    Issue a registration token for walk-in self-registration.
    The returned URL is what the registration poster QR code encodes.
    """
    reg_token = registration_service.create_registration_token(
        db,
        created_by=current_user.email,
        expires_in_hours=payload.expires_in_hours,
        max_uses=payload.max_uses,
        notes=payload.notes,
        token=payload.token,
    )
    return _to_response(reg_token)

@router.get("/registration-tokens", response_model=List[RegistrationTokenResponse])
def list_registration_tokens(
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.MANAGE_TOKENS)),
):
    return [_to_response(t) for t in registration_service.list_registration_tokens(db)]

@router.get("/registration-tokens/{token_id}/qr.png")
def registration_token_qr(
    token_id: int,
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.MANAGE_TOKENS)),
):
    """QR code pointing at the self-registration page for this token"""
    reg_token = registration_service.get_registration_token(db, token_id)
    if reg_token is None:
        raise _not_found(token_id)

    png = render_qr_png(registration_service.registration_url(reg_token))
    return Response(content=png, media_type="image/png")

@router.post("/registration-tokens/{token_id}/deactivate", response_model=RegistrationTokenResponse)
def deactivate_registration_token(
    token_id: int,
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.MANAGE_TOKENS)),
):
    reg_token = registration_service.deactivate_registration_token(db, token_id)
    if reg_token is None:
        raise _not_found(token_id)
    return _to_response(reg_token)

@router.delete("/registration-tokens/{token_id}")
def delete_registration_token(
    token_id: int,
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.MANAGE_TOKENS)),
):
    if not registration_service.delete_registration_token(db, token_id):
        raise _not_found(token_id)
    return {"status": "success", "message": f"Registration token {token_id} deleted"}

@router.post("/registration-tokens/deactivate-expired")
def deactivate_expired_tokens(
    db: Session = Depends(get_db),
    current_user: StaffUser = Depends(require_permission(Action.MANAGE_TOKENS)),
):
    """Maintenance: switch off every token past its expiry"""
    return {"deactivated": registration_service.deactivate_expired_tokens(db)}
