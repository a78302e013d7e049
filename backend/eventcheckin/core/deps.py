from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from eventcheckin.core.permissions import Action, has_permission
from eventcheckin.core.security import decode_token
from eventcheckin.db.session import get_db
from eventcheckin.models.staff import StaffUser

# Clients send "Bearer <token>"; browsers fall back to the access_token cookie
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> StaffUser:
    """
    Validates the JWT token and loads the staff member it names.
    If invalid, raises 401 Unauthorized.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token = token or request.cookies.get("access_token")
    if not token:
        raise credentials_exception

    payload = decode_token(token)
    if payload is None or payload.get("sub") is None:
        raise credentials_exception

    user = db.query(StaffUser).filter(StaffUser.email == payload["sub"]).first()
    if user is None or not user.is_active:
        raise credentials_exception

    return user

def require_permission(action: Action):
    """Dependency factory: the current staff member must be allowed ``action``"""

    def checker(current_user: StaffUser = Depends(get_current_user)) -> StaffUser:
        if not has_permission(current_user.role, action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{current_user.role.value}' may not perform '{action.value}'",
            )
        return current_user

    return checker
