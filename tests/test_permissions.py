from types import SimpleNamespace

import pytest

from dental_backend.access_control import ROLES
from dental_backend.permissions import (
    LIMIT_TYPES,
    can_access_path,
    can_access_section,
    can_invite_users,
    filter_allowed_sections,
    first_allowed_path_for,
    get_limit,
    is_limit_reached,
    restricted_sections,
)


def _user(role="receptionist", allowed_sections=None, limits=None):
    return SimpleNamespace(role=role, allowed_sections=allowed_sections, limits=limits)


def test_no_restrictions_means_role_rules_only():
    u = _user()
    assert can_access_section(u, "payments")
    assert can_access_path(u, "/calendar")
    assert not can_access_path(u, "/treatments")


def test_section_list_narrows_role_access():
    u = _user(allowed_sections=["calendar"])
    assert can_access_path(u, "/calendar/week")
    assert not can_access_path(u, "/patients")
    assert not can_access_section(u, "patients")


def test_section_list_cannot_widen_role_access():
    u = _user(role="receptionist", allowed_sections=["treatments"])
    assert not can_access_path(u, "/treatments")


def test_restricted_user_is_denied_paths_outside_sections():
    u = _user(allowed_sections=["calendar"])
    assert not can_access_path(u, "/help-center")
    assert not can_access_path(u, "/nowhere")


def test_profile_ignores_section_list():
    u = _user(allowed_sections=["calendar"])
    assert can_access_path(u, "/profile")
    assert can_access_path(u, "/profile/security")


def test_landing_without_any_usable_section_is_profile():
    # dentists cannot open reports, so the list leaves them nothing
    u = _user(role="dentist", allowed_sections=["reports"])
    assert first_allowed_path_for(u) == "/profile"


@pytest.mark.parametrize("role", ROLES)
@pytest.mark.parametrize("sections", [None, ["reports"], ["treatments"], ["staff", "payments"], ["unknown"]])
def test_landing_is_always_reachable(role, sections):
    u = _user(role=role, allowed_sections=sections)
    assert can_access_path(u, first_allowed_path_for(u))


def test_empty_section_list_is_no_restriction():
    assert can_access_section(_user(allowed_sections=[]), "reports")


def test_first_allowed_path_respects_sections():
    assert first_allowed_path_for(_user(allowed_sections=["patients"])) == "/patients"
    assert first_allowed_path_for(_user(role="accountant")) == "/dashboard"
    assert first_allowed_path_for(None) == "/profile"


def test_filter_and_restricted_sections():
    u = _user(allowed_sections=["calendar", "patients"])
    keys = ["dashboard", "calendar", "patients"]
    assert filter_allowed_sections(u, keys) == ["calendar", "patients"]
    assert restricted_sections(u, keys) == ["dashboard"]
    assert restricted_sections(_user(), keys) == []
    assert filter_allowed_sections(None, keys) == []


def test_limits():
    u = _user(limits={"patients": 2, "appointments_per_month": "lots", "flag": True})
    assert get_limit(u, "patients") == 2
    assert get_limit(u, "appointments_per_month") is None
    assert get_limit(u, "flag") is None
    assert get_limit(_user(), "patients") is None
    assert not is_limit_reached(u, "patients", 1)
    assert is_limit_reached(u, "patients", 2)
    assert not is_limit_reached(_user(), "patients", 10_000)


def test_fractional_limit_is_compared_as_is():
    u = _user(limits={"patients": 2.5})
    assert get_limit(u, "patients") == 2.5
    assert not is_limit_reached(u, "patients", 2)
    assert is_limit_reached(u, "patients", 3)


def test_limit_types_are_known():
    assert {lt.key for lt in LIMIT_TYPES} == {"patients", "appointments_per_month"}


def test_only_admins_invite():
    assert can_invite_users(_user(role="clinic_admin"))
    assert can_invite_users(_user(role="super_admin"))
    assert not can_invite_users(_user(role="dentist"))
    assert not can_invite_users(None)
