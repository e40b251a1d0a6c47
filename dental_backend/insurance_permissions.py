"""
Insurance module role-based permissions.

Admin -> clinic_admin/super_admin, front desk -> receptionist,
dentist -> dentist, billing -> accountant.
"""
from __future__ import annotations

from types import MappingProxyType

INSURANCE_ROLES = MappingProxyType(
    {
        "create_edit_insurance": frozenset({"super_admin", "clinic_admin", "receptionist"}),
        "verify_eligibility": frozenset({"super_admin", "clinic_admin", "receptionist"}),
        "submit_claim": frozenset({"super_admin", "clinic_admin", "accountant", "receptionist"}),
        "process_era": frozenset({"super_admin", "clinic_admin", "accountant"}),
        "view_eligibility": frozenset({"super_admin", "clinic_admin", "receptionist", "dentist", "accountant"}),
        "view_estimator": frozenset({"super_admin", "clinic_admin", "receptionist", "dentist"}),
    }
)


def has_capability(capability: str, role: str | None) -> bool:
    return bool(role) and role in INSURANCE_ROLES[capability]


def can_create_edit_insurance(role: str | None) -> bool:
    return has_capability("create_edit_insurance", role)


def can_verify_eligibility(role: str | None) -> bool:
    return has_capability("verify_eligibility", role)


def can_submit_claim(role: str | None) -> bool:
    return has_capability("submit_claim", role)


def can_process_remittance(role: str | None) -> bool:
    return has_capability("process_era", role)


def can_view_eligibility(role: str | None) -> bool:
    return has_capability("view_eligibility", role)


def can_view_estimator(role: str | None) -> bool:
    return has_capability("view_estimator", role)
