from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session
import logging

from eventcheckin.core.config import settings
from eventcheckin.core.deps import get_current_user
from eventcheckin.core.permissions import allowed_actions
from eventcheckin.core.security import create_access_token
from eventcheckin.db.session import get_db
from eventcheckin.models.staff import StaffUser
from eventcheckin.schemas import LoginRequest, LoginResponse, MeResponse, SignupRequest, StaffResponse
from eventcheckin.services import staff as staff_service

router = APIRouter()
logger = logging.getLogger(__name__)

def _issue_session(user: StaffUser, response: Response) -> dict:
    access_token = create_access_token(
        data={
            "sub": user.email,
            "user_id": user.id,
            "role": user.role.value,
        }
    )

    # HttpOnly cookie for browser clients
    response.set_cookie(
        key="access_token",
        value=access_token,
        httponly=True,
        secure=settings.ENVIRONMENT == "production",
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        path="/"
    )

    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user": user,
    }

@router.post("/signup", response_model=LoginResponse, status_code=status.HTTP_201_CREATED)
def signup(
    signup_data: SignupRequest,
    response: Response,
    db: Session = Depends(get_db)
):
    """
    Create a staff account.
    Needs a pending invitation, unless no super admin exists yet.
    """
    user = staff_service.signup(db, signup_data.email, signup_data.password, signup_data.full_name)
    return _issue_session(user, response)

@router.post("/login", response_model=LoginResponse)
def login(
    login_data: LoginRequest,
    response: Response,
    db: Session = Depends(get_db)
):
    user = staff_service.authenticate(db, login_data.email, login_data.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )

    logger.info(f"Staff login: {user.email} ({user.role.value})")
    return _issue_session(user, response)

@router.post("/logout")
def logout(response: Response):
    response.delete_cookie("access_token", path="/")
    return {"status": "success"}

@router.get("/me", response_model=MeResponse)
def get_current_user_info(current_user: StaffUser = Depends(get_current_user)):
    """Get current authenticated staff member and what they may do"""
    return MeResponse(
        **StaffResponse.model_validate(current_user).model_dump(),
        permissions=sorted(a.value for a in allowed_actions(current_user.role)),
    )
