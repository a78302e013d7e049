from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
import logging

from eventcheckin.db.session import get_db
from eventcheckin.schemas import RegisterRequest, RegisterResponse
from eventcheckin.services.registration import register_walk_in

router = APIRouter()
logger = logging.getLogger(__name__)

def client_ip(request: Request) -> str:
    """Client address, honouring the reverse proxy headers"""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host
    return "unknown"

@router.post("/register", response_model=RegisterResponse, status_code=201)
def register(
    payload: RegisterRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Public walk-in self-registration.
    Requires a valid registration token; returns the attendee's QR code.
    """
    attendee = register_walk_in(
        db,
        token=payload.token,
        name=payload.name,
        email=payload.email,
        client_ip=client_ip(request),
        phone=payload.phone,
        company=payload.company,
    )

    return RegisterResponse(
        success=True,
        qr_token=attendee.qr_token,
        message=f"Welcome {attendee.name}, registration complete!",
    )
