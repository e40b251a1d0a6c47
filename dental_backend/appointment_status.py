"""
Appointment status vocabulary shared by calendar, patient profile and API.

Writers only check membership: any recognised status may replace any other.
The chronological graph is available for clinics that want it enforced
(see ``validate_transition(..., strict=True)``).
"""
from __future__ import annotations

import enum
from types import MappingProxyType


class AppointmentStatus(enum.Enum):
    PENDING = "pending"
    UNCONFIRMED = "unconfirmed"
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    IN_TREATMENT = "in_treatment"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


VALID_STATUSES: tuple[str, ...] = tuple(s.value for s in AppointmentStatus)

# Both are valid starting points depending on how the appointment was created
ENTRY_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.SCHEDULED})

TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
)

STATUS_LABELS = MappingProxyType(
    {
        "pending": "Pending",
        "unconfirmed": "Unconfirmed",
        "scheduled": "Scheduled",
        "confirmed": "Confirmed",
        "checked_in": "Checked In",
        "in_treatment": "In Treatment",
        "completed": "Completed",
        "cancelled": "Canceled",
        "no_show": "No-Show",
    }
)

_MAIN_FLOW = (
    AppointmentStatus.PENDING,
    AppointmentStatus.UNCONFIRMED,
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.CHECKED_IN,
    AppointmentStatus.IN_TREATMENT,
    AppointmentStatus.COMPLETED,
)


def _build_transitions() -> MappingProxyType:
    graph: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {}
    for i, status in enumerate(_MAIN_FLOW):
        if status in TERMINAL_STATUSES:
            graph[status] = frozenset()
            continue
        # forward along the main flow (steps may be skipped), plus the side exits
        forward = set(_MAIN_FLOW[i + 1:])
        forward |= {AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
        graph[status] = frozenset(forward)
    graph[AppointmentStatus.CANCELLED] = frozenset()
    graph[AppointmentStatus.NO_SHOW] = frozenset()
    return MappingProxyType(graph)


APPOINTMENT_TRANSITIONS = _build_transitions()


class InvalidStatus(ValueError):
    """The candidate is not one of the recognised appointment statuses."""

    def __init__(self, candidate: object) -> None:
        self.candidate = candidate
        self.allowed = VALID_STATUSES
        super().__init__(f"Valid status required: {', '.join(VALID_STATUSES)} (got {candidate!r})")


class InvalidTransition(ValueError):
    def __init__(self, current: AppointmentStatus, candidate: AppointmentStatus) -> None:
        self.current = current
        self.candidate = candidate
        super().__init__(f"Status change not allowed: {current.value} -> {candidate.value}")


def validate_status(candidate: object) -> AppointmentStatus:
    """Exact, case-sensitive lookup; raises InvalidStatus for anything else."""
    if isinstance(candidate, AppointmentStatus):
        return candidate
    if isinstance(candidate, str):
        try:
            return AppointmentStatus(candidate)
        except ValueError:
            pass
    raise InvalidStatus(candidate)


def label_for(status: AppointmentStatus | str | None) -> str:
    if not status:
        return STATUS_LABELS["scheduled"]
    if isinstance(status, AppointmentStatus):
        status = status.value
    return STATUS_LABELS.get(status, status)


def is_transition_allowed(current: AppointmentStatus, candidate: AppointmentStatus) -> bool:
    if current == candidate:
        return True
    return candidate in APPOINTMENT_TRANSITIONS[current]


def validate_transition(
    current: AppointmentStatus | str,
    candidate: object,
    strict: bool = False,
) -> AppointmentStatus:
    """
    Validate a requested status change.

    strict=False: membership only (the candidate must be a known status).
    strict=True: the edge must also exist in APPOINTMENT_TRANSITIONS.
    """
    new_status = validate_status(candidate)
    if strict:
        old_status = validate_status(current)
        if not is_transition_allowed(old_status, new_status):
            raise InvalidTransition(old_status, new_status)
    return new_status
