from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError
from passlib.context import CryptContext

from eventcheckin.core.config import settings
from eventcheckin.utils.crypto import generate_code

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def generate_qr_token() -> str:
    """Generate a short attendee QR code (not checked for uniqueness here)"""
    return generate_code(settings.QR_TOKEN_LENGTH)

def generate_registration_token() -> str:
    """Generate a self-registration token"""
    return generate_code(settings.REGISTRATION_TOKEN_LENGTH)

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(password: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(password, hashed)
    except ValueError:
        # Not a hash this context recognises
        return False

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token for a staff session"""
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    return jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )

def decode_token(token: str) -> Optional[dict]:
    """Verify JWT access token, returning its payload or None"""
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
    except JWTError:
        return None
