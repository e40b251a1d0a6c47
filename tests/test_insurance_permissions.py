import pytest

from dental_backend.insurance_permissions import (
    INSURANCE_ROLES,
    can_create_edit_insurance,
    can_process_remittance,
    can_submit_claim,
    can_verify_eligibility,
    can_view_eligibility,
    can_view_estimator,
    has_capability,
)


def test_front_desk_capabilities():
    assert can_create_edit_insurance("receptionist")
    assert can_verify_eligibility("receptionist")
    assert can_submit_claim("receptionist")
    assert not can_process_remittance("receptionist")


def test_billing_capabilities():
    assert can_submit_claim("accountant")
    assert can_process_remittance("accountant")
    assert can_view_eligibility("accountant")
    assert not can_view_estimator("accountant")
    assert not can_create_edit_insurance("accountant")


def test_dentist_is_read_only():
    assert can_view_estimator("dentist")
    assert can_view_eligibility("dentist")
    assert not can_submit_claim("dentist")
    assert not can_verify_eligibility("dentist")


@pytest.mark.parametrize("capability", sorted(INSURANCE_ROLES))
def test_admins_have_every_capability(capability):
    assert has_capability(capability, "super_admin")
    assert has_capability(capability, "clinic_admin")


@pytest.mark.parametrize("role", [None, "", "hygienist", "janitor"])
def test_unknown_roles_have_nothing(role):
    assert not any(has_capability(c, role) for c in INSURANCE_ROLES)
