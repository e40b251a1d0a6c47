"""
Per-user access helpers layered on top of the role rules.

A user may carry:
- allowed_sections: list of section keys (None or empty = no restriction)
- limits: {"patients": 200, "appointments_per_month": 400, ...}

Works with anything exposing ``role``, ``allowed_sections`` and ``limits``
(the ORM User, or a test double).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from .access_control import FALLBACK_PATH, SECTIONS, can_access, first_allowed_path, section_for_path


@dataclass(frozen=True)
class LimitType:
    key: str
    label: str
    description: str


LIMIT_TYPES: tuple[LimitType, ...] = (
    LimitType("patients", "Max Patients", "Maximum number of patients this user can manage"),
    LimitType(
        "appointments_per_month",
        "Appointments Per Month",
        "Maximum appointments this user can create per month",
    ),
)


def _restrictions(user: Any) -> list[str] | None:
    allowed = getattr(user, "allowed_sections", None)
    return list(allowed) if allowed else None


def can_access_section(user: Any, section_key: str) -> bool:
    if user is None:
        return False
    allowed = _restrictions(user)
    if allowed is None:
        return True
    return section_key in allowed


def _is_fallback(path: str) -> bool:
    return path == FALLBACK_PATH or path.startswith(FALLBACK_PATH + "/")


def can_access_path(user: Any, path: str) -> bool:
    """
    Role rule first, then the user's own section list (unknown path = deny).
    The fallback page ignores the section list so every user has somewhere to land.
    """
    if user is None:
        return False
    if not can_access(user.role, path):
        return False
    if _is_fallback(path):
        return True
    allowed = _restrictions(user)
    if allowed is None:
        return True
    section = section_for_path(path)
    if section is None:
        return False
    return section.key in allowed


def first_allowed_path_for(user: Any) -> str:
    if user is None:
        return first_allowed_path(None)
    for section in SECTIONS:
        if can_access_path(user, section.path):
            return section.path
    role_path = first_allowed_path(user.role)
    if can_access_path(user, role_path):
        return role_path
    return FALLBACK_PATH


def filter_allowed_sections(user: Any, section_keys: Iterable[str]) -> list[str]:
    if user is None:
        return []
    allowed = _restrictions(user)
    if allowed is None:
        return list(section_keys)
    return [k for k in section_keys if k in allowed]


def restricted_sections(user: Any, section_keys: Iterable[str]) -> list[str]:
    keys = list(section_keys)
    if user is None:
        return keys
    allowed = _restrictions(user)
    if allowed is None:
        return []
    return [k for k in keys if k not in allowed]


def get_limit(user: Any, limit_key: str) -> int | float | None:
    """None means unlimited."""
    limits = getattr(user, "limits", None) if user is not None else None
    if not limits:
        return None
    value = limits.get(limit_key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def is_limit_reached(user: Any, limit_key: str, current_count: int) -> bool:
    limit = get_limit(user, limit_key)
    if limit is None:
        return False
    return current_count >= limit


def can_invite_users(user: Any) -> bool:
    if user is None:
        return False
    return user.role in ("clinic_admin", "super_admin")
