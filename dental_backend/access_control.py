"""
Access control configuration.

Single source of truth for application sections, their paths and the roles
allowed into them. Used by the API section guard, the landing redirect and
the admin UI.

SECTION_RULES is scanned in order and the first matching prefix wins, so
more specific prefixes must come before the section that contains them.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from types import MappingProxyType


class Role(enum.Enum):
    SUPER_ADMIN = "super_admin"
    CLINIC_ADMIN = "clinic_admin"
    RECEPTIONIST = "receptionist"
    DENTIST = "dentist"
    ACCOUNTANT = "accountant"
    HYGIENIST = "hygienist"


ROLES: tuple[str, ...] = tuple(r.value for r in Role)


@dataclass(frozen=True)
class Section:
    key: str
    label: str
    path: str
    description: str = ""


@dataclass(frozen=True)
class AccessRule:
    path_prefix: str
    roles: frozenset[str] | None  # None = any authenticated role

    def matches(self, path: str) -> bool:
        return path == self.path_prefix or path.startswith(self.path_prefix + "/")

    def admits(self, role: str) -> bool:
        return self.roles is None or role in self.roles


SECTIONS: tuple[Section, ...] = (
    Section("dashboard", "Dashboard", "/dashboard", "Overview and key metrics"),
    Section("calendar", "Calendar", "/calendar", "Appointments and scheduling"),
    Section("patients", "Patients", "/patients", "Patient records and information"),
    Section("treatments", "Treatments", "/treatments", "Treatment records and procedures"),
    Section("clinical-referrals", "Clinical Referrals", "/clinical-referrals", "Send and receive referrals"),
    Section("invoices", "Invoices", "/invoices", "Billing and invoices"),
    Section("insurance-claims", "Insurance Claims", "/insurance-claims", "Insurance claim management"),
    Section("payments", "Payments", "/payments", "Payment processing and history"),
    Section("messages", "Messages", "/messages", "Internal messaging"),
    Section("reports", "Reports", "/reports", "Analytics and reports"),
    Section("staff", "Staff", "/staff", "Team member management"),
    Section("team-planner", "Team Planner", "/team-planner", "Schedule and resource planning"),
    Section("settings", "Settings", "/settings", "Application settings"),
)

SECTION_MAP = MappingProxyType({s.key: s for s in SECTIONS})

FALLBACK_PATH = "/profile"

_ADMINS = frozenset({Role.SUPER_ADMIN.value, Role.CLINIC_ADMIN.value})
_CLINICAL = _ADMINS | {Role.DENTIST.value, Role.HYGIENIST.value}
_FRONT_DESK = _ADMINS | {Role.RECEPTIONIST.value}
_BILLING = _FRONT_DESK | {Role.ACCOUNTANT.value}
_ALL_STAFF = frozenset(ROLES)

SECTION_RULES: tuple[AccessRule, ...] = (
    AccessRule("/dashboard/activity", _ADMINS),
    AccessRule("/dashboard", _ALL_STAFF),
    AccessRule("/calendar", _FRONT_DESK | _CLINICAL),
    AccessRule("/patients", _FRONT_DESK | _CLINICAL),
    AccessRule("/treatments", _CLINICAL),
    AccessRule("/clinical-referrals", _ADMINS | {Role.DENTIST.value}),
    AccessRule("/insurance", _BILLING | {Role.DENTIST.value}),
    AccessRule("/invoices", _BILLING),
    AccessRule("/insurance-claims", _BILLING),
    AccessRule("/payments", _BILLING),
    AccessRule("/messages", _ALL_STAFF),
    AccessRule("/reports", _ADMINS | {Role.ACCOUNTANT.value}),
    AccessRule("/staff", _ADMINS),
    AccessRule("/team-planner", _FRONT_DESK),
    AccessRule("/settings/workflow", _ADMINS),
    AccessRule("/settings/billing", _ADMINS),
    AccessRule("/settings", _ADMINS),
    AccessRule("/system-status", frozenset({Role.SUPER_ADMIN.value})),
    AccessRule("/help-center", None),
    AccessRule(FALLBACK_PATH, None),
)


def _role_value(role: Role | str | None) -> str:
    if isinstance(role, Role):
        return role.value
    return role or ""


def matching_rule(path: str) -> AccessRule | None:
    for rule in SECTION_RULES:
        if rule.matches(path):
            return rule
    return None


def can_access(role: Role | str | None, path: str) -> bool:
    """First matching rule decides; no matching rule (or no role) means deny."""
    role_value = _role_value(role)
    if not role_value:
        return False
    rule = matching_rule(path)
    if rule is None:
        return False
    return rule.admits(role_value)


def first_allowed_path(role: Role | str | None) -> str:
    """Landing / denied-redirect target for a role."""
    role_value = _role_value(role)
    if role_value:
        for rule in SECTION_RULES:
            if rule.admits(role_value):
                return rule.path_prefix
    return FALLBACK_PATH


def section_for_path(path: str) -> Section | None:
    for section in SECTIONS:
        if path == section.path or path.startswith(section.path + "/"):
            return section
    return None


def section_by_key(key: str) -> Section | None:
    return SECTION_MAP.get(key)
