from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import ACCESS_TOKEN_EXPIRE_MINUTES, JWT_ALG, JWT_SECRET

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    clinic_id: str | None
    role: str | None

    def matches(self, user: Any) -> bool:
        """False once the user has moved clinic or changed role since the token was issued."""
        return self.clinic_id == user.clinic_id and self.role == user.role


def create_access_token(user_id: str, clinic_id: str, role: str, expires_minutes: int | None = None) -> str:
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES if expires_minutes is None else expires_minutes)
    payload: dict[str, Any] = {
        "sub": user_id,
        "clinic_id": clinic_id,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def read_token(token: str) -> TokenClaims | None:
    """Claims of a valid, unexpired token; None for anything else."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except JWTError:
        return None
    user_id = payload.get("sub")
    if not user_id:
        return None
    return TokenClaims(user_id=user_id, clinic_id=payload.get("clinic_id"), role=payload.get("role"))
