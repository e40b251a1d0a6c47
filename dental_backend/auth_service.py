from __future__ import annotations

import logging

from sqlalchemy import select

from dental_backend.access_control import ROLES, SECTION_MAP
from dental_backend.auth_models import User
from dental_backend.auth_security import hash_password, verify_password
from dental_backend.db import db_session
from dental_backend.models import Clinic

logger = logging.getLogger(__name__)


def create_user(
    clinic_id: str,
    username: str,
    password: str,
    role: str = "receptionist",
    full_name: str | None = None,
    allowed_sections: list[str] | None = None,
    limits: dict[str, int | float] | None = None,
) -> str:
    username = username.strip().lower()
    if not username or not password:
        raise ValueError("Username and password are required.")
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}. Valid roles: {', '.join(ROLES)}")
    unknown = [k for k in (allowed_sections or []) if k not in SECTION_MAP]
    if unknown:
        raise ValueError(f"Unknown sections: {', '.join(unknown)}")

    with db_session() as s:
        if s.get(Clinic, clinic_id) is None:
            raise ValueError("Clinic not found.")
        exists = s.execute(select(User).where(User.username == username)).scalar_one_or_none()
        if exists:
            raise ValueError("Username already registered.")

        u = User(
            clinic_id=clinic_id,
            username=username,
            password_hash=hash_password(password),
            role=role,
            full_name=full_name,
            allowed_sections=allowed_sections or None,
            limits=limits or None,
            is_active=True,
        )
        s.add(u)
        s.flush()
        logger.info("Created user %s (%s) in clinic %s", username, role, clinic_id)
        return u.id


def authenticate(username: str, password: str) -> User | None:
    username = username.strip().lower()
    with db_session() as s:
        u = s.execute(select(User).where(User.username == username)).scalar_one_or_none()
        if not u or not u.is_active:
            return None
        if not verify_password(password, u.password_hash):
            logger.warning("Failed login for %s", username)
            return None
        return u


def get_user_by_id(user_id: str) -> User | None:
    with db_session() as s:
        return s.get(User, user_id)


def set_user_active(username: str, active: bool) -> bool:
    """Soft switch: users are never deleted (appointments reference them)."""
    username = username.strip().lower()
    with db_session() as s:
        u = s.execute(select(User).where(User.username == username)).scalar_one_or_none()
        if u is None:
            return False
        u.is_active = active
        logger.info("User %s %s", username, "activated" if active else "deactivated")
        return True
