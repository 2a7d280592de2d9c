from datetime import datetime, timedelta
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from revnet.core.config import settings
from revnet.core.errors import UnauthenticatedException
from revnet.websockets.session_registry import Identity

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token", auto_error=False)


def create_access_token(data: dict, expires_delta: timedelta = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[dict]:
    """Return the token claims, or None if the token is invalid or expired"""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None


def identity_from_claims(payload: Optional[dict]) -> Optional[Identity]:
    if not payload:
        return None
    user_id = payload.get("sub")
    if not user_id:
        return None
    return Identity(user_id=str(user_id), username=str(payload.get("username") or user_id))


class JWTAuthVerifier:
    """Resolves bearer JWTs signed with the configured secret"""

    async def verify(self, token: str) -> Identity:
        identity = identity_from_claims(decode_access_token(token))
        if identity is None:
            raise UnauthenticatedException("Invalid or expired token")
        return identity


async def get_current_identity(token: Annotated[Optional[str], Depends(oauth2_scheme)]) -> Identity:
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    identity = identity_from_claims(decode_access_token(token))
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity
