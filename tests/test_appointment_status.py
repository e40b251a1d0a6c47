import pytest

from dental_backend.appointment_status import (
    APPOINTMENT_TRANSITIONS,
    ENTRY_STATUSES,
    TERMINAL_STATUSES,
    VALID_STATUSES,
    AppointmentStatus,
    InvalidStatus,
    InvalidTransition,
    label_for,
    validate_status,
    validate_transition,
)


def test_nine_statuses():
    assert len(VALID_STATUSES) == 9
    assert "no_show" in VALID_STATUSES


def test_validate_status_accepts_known_value():
    assert validate_status("scheduled") is AppointmentStatus.SCHEDULED
    assert validate_status(AppointmentStatus.COMPLETED) is AppointmentStatus.COMPLETED


@pytest.mark.parametrize("candidate", ["bogus", "Scheduled", " scheduled", "", None, 3])
def test_validate_status_rejects_everything_else(candidate):
    with pytest.raises(InvalidStatus) as exc:
        validate_status(candidate)
    assert exc.value.candidate == candidate
    assert exc.value.allowed == VALID_STATUSES
    assert "Valid status required" in str(exc.value)


def test_labels():
    assert label_for("no_show") == "No-Show"
    assert label_for("cancelled") == "Canceled"
    assert label_for(AppointmentStatus.CHECKED_IN) == "Checked In"
    assert label_for("unknown_value") == "unknown_value"
    assert label_for(None) == "Scheduled"


def test_every_status_has_a_label():
    for value in VALID_STATUSES:
        assert label_for(value) != value


def test_membership_only_allows_any_known_status():
    # completed -> pending is accepted when not strict
    assert validate_transition("completed", "pending") is AppointmentStatus.PENDING
    with pytest.raises(InvalidStatus):
        validate_transition("pending", "bogus")


def test_strict_mode_enforces_graph():
    assert validate_transition("pending", "confirmed", strict=True) is AppointmentStatus.CONFIRMED
    assert validate_transition("checked_in", "no_show", strict=True) is AppointmentStatus.NO_SHOW
    with pytest.raises(InvalidTransition):
        validate_transition("completed", "pending", strict=True)
    with pytest.raises(InvalidTransition):
        validate_transition("in_treatment", "scheduled", strict=True)


def test_strict_mode_allows_same_status():
    assert validate_transition("confirmed", "confirmed", strict=True) is AppointmentStatus.CONFIRMED


def test_terminal_statuses_have_no_exits():
    for status in TERMINAL_STATUSES:
        assert APPOINTMENT_TRANSITIONS[status] == frozenset()


def test_entry_statuses():
    assert ENTRY_STATUSES == {AppointmentStatus.PENDING, AppointmentStatus.SCHEDULED}
