import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from passlib.context import CryptContext
from sqlalchemy.orm import Session

import config
from database import get_db
from errors import AuthenticationError
from models import User

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=config.BCRYPT_ROUNDS)


def get_password_hash(password: str):
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]):
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


# Token creation
def create_access_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": str(user.id), "email": user.email, "exp": expire}
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Check signature and expiry; returns the claims."""
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError as exc:
        logger.info("Rejected token: %s", exc)
        raise AuthenticationError() from exc
    if not payload.get("sub"):
        raise AuthenticationError("Invalid token format")
    return payload


# Get current user
def get_current_user(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    if not token:
        raise AuthenticationError("Authentication token required")
    payload = decode_access_token(token)
    try:
        user_id = int(payload["sub"])
    except ValueError:
        raise AuthenticationError("Invalid token format")

    user = db.get(User, user_id)
    if user is None:
        raise AuthenticationError()
    return user
