import pytest

from dental_backend.access_control import (
    FALLBACK_PATH,
    ROLES,
    SECTION_MAP,
    SECTION_RULES,
    can_access,
    first_allowed_path,
    matching_rule,
    section_by_key,
    section_for_path,
)


@pytest.mark.parametrize("role", ROLES)
def test_first_allowed_path_is_reachable(role):
    path = first_allowed_path(role)
    assert can_access(role, path)


def test_unknown_or_missing_role_falls_back():
    assert first_allowed_path(None) == FALLBACK_PATH
    assert first_allowed_path("") == FALLBACK_PATH
    assert can_access("", "/dashboard") is False
    assert can_access(None, "/profile") is False


def test_first_match_wins_for_nested_prefix():
    assert can_access("clinic_admin", "/dashboard/activity")
    assert not can_access("dentist", "/dashboard/activity")
    assert can_access("dentist", "/dashboard")
    assert can_access("dentist", "/dashboard/today")


def test_prefix_matching_is_segment_aware():
    # /insurance must not swallow /insurance-claims
    assert matching_rule("/insurance-claims").path_prefix == "/insurance-claims"
    assert can_access("dentist", "/insurance")
    assert not can_access("dentist", "/insurance-claims")
    assert matching_rule("/patientsx") is None


def test_unmatched_path_is_denied():
    assert not can_access("super_admin", "/nowhere")


def test_role_examples():
    assert can_access("receptionist", "/calendar")
    assert can_access("hygienist", "/treatments")
    assert not can_access("receptionist", "/treatments")
    assert can_access("accountant", "/payments")
    assert not can_access("dentist", "/payments")
    assert can_access("accountant", "/reports")
    assert can_access("super_admin", "/system-status")
    assert not can_access("clinic_admin", "/system-status")
    assert can_access("clinic_admin", "/settings/billing")
    assert not can_access("receptionist", "/settings/workflow")


def test_everyone_reaches_profile_and_help():
    for role in ROLES:
        assert can_access(role, FALLBACK_PATH)
        assert can_access(role, "/help-center/articles")


def test_deterministic():
    results = {can_access("dentist", "/treatments/123") for _ in range(20)}
    assert results == {True}


def test_rules_are_an_ordered_sequence():
    assert isinstance(SECTION_RULES, tuple)
    prefixes = [r.path_prefix for r in SECTION_RULES]
    assert prefixes.index("/dashboard/activity") < prefixes.index("/dashboard")
    assert prefixes.index("/settings/billing") < prefixes.index("/settings")


def test_section_lookup():
    assert section_for_path("/patients/42").key == "patients"
    assert section_for_path("/profile") is None
    assert section_by_key("staff").path == "/staff"
    assert section_by_key("nope") is None
    with pytest.raises(TypeError):
        SECTION_MAP["new"] = None
