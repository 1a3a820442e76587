"""
Bearer token handling.

Tokens are issued by the identity provider; this service only verifies them
and reads the `sub`, `name` and `role` claims.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt

from boardvote.core.config import settings


@dataclass(frozen=True)
class Actor:
    """Whoever performs an operation."""
    user_id: str
    name: Optional[str] = None
    role: Optional[str] = None

    @property
    def is_vote_manager(self) -> bool:
        return self.role in settings.VOTE_MANAGER_ROLES


def create_access_token(
    subject: str,
    name: Optional[str] = None,
    role: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT access token (used by tests and local tooling)."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {"sub": str(subject), "exp": expire, "type": "access"}
    if name is not None:
        to_encode["name"] = name
    if role is not None:
        to_encode["role"] = role
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode and verify a JWT token. Returns None when invalid or expired."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None


def actor_from_token(token: str) -> Optional[Actor]:
    payload = decode_token(token)
    if payload is None or payload.get("type", "access") != "access":
        return None
    user_id = payload.get("sub")
    if not user_id:
        return None
    return Actor(user_id=str(user_id), name=payload.get("name"), role=payload.get("role"))
