from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from config import Settings, get_settings
from errors import Unauthorized

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
# auto_error off so a missing header reports through Unauthorized like a bad token
bearer_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def create_access_token(user_id: int, settings: Settings, expires_minutes: Optional[int] = None) -> str:
    minutes = expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    to_encode = {"sub": str(user_id), "exp": expire}
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> int:
    """Return the user id carried by a valid token."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        sub = payload.get("sub")
        if sub is None:
            raise Unauthorized("Unauthorized")
        return int(sub)
    except (JWTError, ValueError):
        raise Unauthorized("Unauthorized")


def get_current_user_id(
    request: Request,
    token: Optional[str] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> int:
    if not token:
        raise Unauthorized("Unauthorized")
    user_id = decode_access_token(token, settings)
    request.state.user_id = user_id
    return user_id
