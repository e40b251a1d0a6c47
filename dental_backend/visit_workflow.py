"""
Patient visit flow engine.

Unlike appointment status, the in-clinic visit is a strict graph: hygiene
path and exam-only path both converge at READY_FOR_EXAM, then billing.
Checked in this order: graph edge, role, step requirements.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping


class VisitState(enum.Enum):
    SCHEDULED = "SCHEDULED"
    CHECKED_IN = "CHECKED_IN"
    READY_FOR_HYGIENE = "READY_FOR_HYGIENE"
    HYGIENE_IN_PROGRESS = "HYGIENE_IN_PROGRESS"
    HYGIENE_COMPLETED = "HYGIENE_COMPLETED"
    READY_FOR_EXAM = "READY_FOR_EXAM"
    EXAM_IN_PROGRESS = "EXAM_IN_PROGRESS"
    TREATMENT_PLANNED = "TREATMENT_PLANNED"
    READY_FOR_BILLING = "READY_FOR_BILLING"
    BILLED = "BILLED"
    PAYMENT_COMPLETED = "PAYMENT_COMPLETED"
    VISIT_COMPLETED = "VISIT_COMPLETED"
    CANCELLED = "CANCELLED"


class TransitionRole(enum.Enum):
    FRONT_DESK = "FRONT_DESK"
    HYGIENIST = "HYGIENIST"
    DENTIST = "DENTIST"
    ADMIN = "ADMIN"


V = VisitState

ALLOWED_TRANSITIONS = MappingProxyType(
    {
        V.SCHEDULED: (V.CHECKED_IN, V.CANCELLED),
        V.CHECKED_IN: (V.READY_FOR_HYGIENE, V.READY_FOR_EXAM),
        V.READY_FOR_HYGIENE: (V.HYGIENE_IN_PROGRESS,),
        V.HYGIENE_IN_PROGRESS: (V.HYGIENE_COMPLETED,),
        V.HYGIENE_COMPLETED: (V.READY_FOR_EXAM,),
        V.READY_FOR_EXAM: (V.EXAM_IN_PROGRESS,),
        V.EXAM_IN_PROGRESS: (V.TREATMENT_PLANNED,),
        V.TREATMENT_PLANNED: (V.READY_FOR_BILLING,),
        V.READY_FOR_BILLING: (V.BILLED,),
        V.BILLED: (V.PAYMENT_COMPLETED,),
        V.PAYMENT_COMPLETED: (V.VISIT_COMPLETED,),
        V.VISIT_COMPLETED: (),
        V.CANCELLED: (),
    }
)

# Flags that must be true before entering a step
STEP_REQUIREMENTS = MappingProxyType(
    {
        V.READY_FOR_EXAM: ("insuranceVerified", "medicalHistorySigned", "consentSigned", "roomAssigned"),
        V.TREATMENT_PLANNED: ("clinicalNotesCompleted",),
        V.READY_FOR_BILLING: ("treatmentPlanSaved",),
    }
)

ANY_STATE = None

ROLE_TRANSITION_PERMISSIONS = MappingProxyType(
    {
        TransitionRole.FRONT_DESK: frozenset(
            {
                V.CHECKED_IN,
                V.READY_FOR_HYGIENE,
                V.READY_FOR_EXAM,
                V.READY_FOR_BILLING,
                V.BILLED,
                V.PAYMENT_COMPLETED,
                V.VISIT_COMPLETED,
            }
        ),
        TransitionRole.HYGIENIST: frozenset({V.HYGIENE_IN_PROGRESS, V.HYGIENE_COMPLETED, V.READY_FOR_EXAM}),
        TransitionRole.DENTIST: frozenset({V.EXAM_IN_PROGRESS, V.TREATMENT_PLANNED}),
        TransitionRole.ADMIN: ANY_STATE,
    }
)

VISIT_PROGRESS_STEPS: tuple[VisitState, ...] = (
    V.CHECKED_IN,
    V.READY_FOR_HYGIENE,
    V.HYGIENE_IN_PROGRESS,
    V.HYGIENE_COMPLETED,
    V.READY_FOR_EXAM,
    V.EXAM_IN_PROGRESS,
    V.TREATMENT_PLANNED,
    V.READY_FOR_BILLING,
    V.BILLED,
    V.PAYMENT_COMPLETED,
    V.VISIT_COMPLETED,
)

VISIT_STATE_LABELS = MappingProxyType(
    {
        V.SCHEDULED: "Scheduled",
        V.CHECKED_IN: "Checked in",
        V.READY_FOR_HYGIENE: "Ready for hygiene",
        V.HYGIENE_IN_PROGRESS: "Hygiene in progress",
        V.HYGIENE_COMPLETED: "Hygiene completed",
        V.READY_FOR_EXAM: "Ready for exam",
        V.EXAM_IN_PROGRESS: "Exam in progress",
        V.TREATMENT_PLANNED: "Treatment planned",
        V.READY_FOR_BILLING: "Ready for billing",
        V.BILLED: "Billed",
        V.PAYMENT_COMPLETED: "Payment completed",
        V.VISIT_COMPLETED: "Visit completed",
        V.CANCELLED: "Cancelled",
    }
)

# Key in visit.timestamps for each state (camelCase, serialised as JSON)
STATE_TIMESTAMP_KEYS = MappingProxyType(
    {
        V.SCHEDULED: "scheduled",
        V.CHECKED_IN: "checkedIn",
        V.READY_FOR_HYGIENE: "readyForHygiene",
        V.HYGIENE_IN_PROGRESS: "hygieneInProgress",
        V.HYGIENE_COMPLETED: "hygieneCompleted",
        V.READY_FOR_EXAM: "readyForExam",
        V.EXAM_IN_PROGRESS: "examInProgress",
        V.TREATMENT_PLANNED: "treatmentPlanned",
        V.READY_FOR_BILLING: "readyForBilling",
        V.BILLED: "billed",
        V.PAYMENT_COMPLETED: "paymentCompleted",
        V.VISIT_COMPLETED: "visitCompleted",
        V.CANCELLED: "cancelled",
    }
)


@dataclass(frozen=True)
class TransitionResult:
    allowed: bool
    reason: str | None = None


def transition_role_for(user_role: str | None) -> TransitionRole | None:
    if not user_role:
        return None
    r = user_role.lower()
    if r in ("super_admin", "clinic_admin"):
        return TransitionRole.ADMIN
    if r in ("receptionist", "accountant"):
        return TransitionRole.FRONT_DESK
    if r == "hygienist":
        return TransitionRole.HYGIENIST
    if r == "dentist":
        return TransitionRole.DENTIST
    return None


def _parse_state(value: VisitState | str) -> VisitState | None:
    if isinstance(value, VisitState):
        return value
    try:
        return VisitState(value)
    except ValueError:
        return None


def can_transition(
    current_state: VisitState | str,
    next_state: VisitState | str,
    flags: Mapping[str, bool] | None = None,
    room: str | None = None,
    user_role: str | None = None,
) -> TransitionResult:
    """Backend validation before updating a visit: graph, role, step requirements."""
    current = _parse_state(current_state)
    nxt = _parse_state(next_state)
    if current is None or nxt is None or nxt not in ALLOWED_TRANSITIONS[current]:
        return TransitionResult(False, "Invalid state transition")

    role = transition_role_for(user_role)
    if role is None:
        return TransitionResult(False, "Role not permitted")

    permitted = ROLE_TRANSITION_PERMISSIONS[role]
    if permitted is not ANY_STATE and nxt not in permitted:
        return TransitionResult(False, "Role not permitted for this step")

    flags = flags or {}
    for field in STEP_REQUIREMENTS.get(nxt, ()):
        if field == "roomAssigned":
            if not (room or "").strip():
                return TransitionResult(False, "Missing required field: roomAssigned (room must be set)")
        elif not flags.get(field):
            return TransitionResult(False, f"Missing required field: {field}")

    return TransitionResult(True)
