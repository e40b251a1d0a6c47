from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from .appointment_status import (
    ENTRY_STATUSES,
    TERMINAL_STATUSES,
    AppointmentStatus,
    InvalidTransition,
    label_for,
    validate_status,
    validate_transition,
)
from .auth_models import User
from .config import STRICT_APPOINTMENT_TRANSITIONS
from .db import Base, clinic_row, db_session, engine
from .insurance_estimator import (
    DEFAULT_COVERAGE_PERCENTAGE,
    UNLIMITED_ANNUAL_MAX,
    EstimatorOutput,
    estimate,
)
from .models import (
    Appointment,
    AuditLog,
    ClaimStatus,
    Clinic,
    InsuranceClaim,
    InsurancePolicy,
    Notification,
    NotificationType,
    Patient,
    ReferralIntake,
    Visit,
)
from .permissions import is_limit_reached
from .visit_workflow import STATE_TIMESTAMP_KEYS, VISIT_STATE_LABELS, VisitState, can_transition

logger = logging.getLogger(__name__)


# =========================
# Bootstrap DB
# =========================
def init_db() -> None:
    """Create the tables if they do not exist."""
    Base.metadata.create_all(bind=engine)


# =========================
# Helpers / DTO / errors
# =========================
@dataclass(frozen=True)
class BookingResult:
    ok: bool
    appointment_id: str | None
    message: str


class LimitReached(ValueError):
    def __init__(self, limit_key: str, limit: int | None = None) -> None:
        self.limit_key = limit_key
        super().__init__(f"Limit reached for {limit_key}" + (f" ({limit})" if limit is not None else ""))


class VisitTransitionDenied(ValueError):
    pass


# Statuses that free the chair
_INACTIVE_STATUSES = (AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW)

# Visit steps mirrored onto the appointment status
VISIT_TO_APPOINTMENT_STATUS = {
    VisitState.CHECKED_IN: AppointmentStatus.CHECKED_IN,
    VisitState.EXAM_IN_PROGRESS: AppointmentStatus.IN_TREATMENT,
    VisitState.VISIT_COMPLETED: AppointmentStatus.COMPLETED,
    VisitState.CANCELLED: AppointmentStatus.CANCELLED,
}

# Visit steps that notify the front desk / admins
_VISIT_NOTIFY_STATES = {VisitState.READY_FOR_BILLING, VisitState.BILLED, VisitState.VISIT_COMPLETED}


def _money(value: Decimal | float | None) -> float | None:
    return None if value is None else float(value)


def _notify(
    s: Session,
    clinic_id: str,
    kind: NotificationType,
    message: str,
    appointment_id: str | None = None,
) -> None:
    s.add(Notification(clinic_id=clinic_id, type=kind, message=message, appointment_id=appointment_id))


def _audit(
    s: Session,
    clinic_id: str,
    action: str,
    record_type: str | None = None,
    record_id: str | None = None,
    user_id: str | None = None,
    ip_address: str | None = None,
    before: str | None = None,
    after: str | None = None,
) -> None:
    s.add(
        AuditLog(
            clinic_id=clinic_id,
            user_id=user_id,
            action=action,
            record_type=record_type,
            record_id=record_id,
            ip_address=ip_address,
            before_value=before,
            after_value=after,
        )
    )


def _appointment_flat(a: Appointment) -> dict[str, Any]:
    return {
        "id": a.id,
        "patient_id": a.patient_id,
        "dentist_id": a.dentist_id,
        "starts_at": a.starts_at.isoformat(),
        "ends_at": a.ends_at.isoformat(),
        "room": a.room,
        "status": a.status.value,
        "status_label": label_for(a.status),
        "checked_in_at": a.checked_in_at.isoformat() if a.checked_in_at else None,
        "notes": a.notes,
    }


def _visit_flat(v: Visit) -> dict[str, Any]:
    return {
        "id": v.id,
        "appointment_id": v.appointment_id,
        "state": v.state.value,
        "state_label": VISIT_STATE_LABELS[v.state],
        "flags": dict(v.flags or {}),
        "timestamps": dict(v.timestamps or {}),
        "room": v.room,
    }


def _claim_flat(c: InsuranceClaim) -> dict[str, Any]:
    return {
        "id": c.id,
        "policy_id": c.policy_id,
        "appointment_id": c.appointment_id,
        "procedure_code": c.procedure_code,
        "procedure_fee": _money(c.procedure_fee),
        "insurance_estimate": _money(c.insurance_estimate),
        "patient_portion": _money(c.patient_portion),
        "capped_by_annual_max": c.capped_by_annual_max,
        "status": c.status.value,
        "submitted_at": c.submitted_at.isoformat() if c.submitted_at else None,
        "paid_amount": _money(c.paid_amount),
    }


# =========================
# Clinics / patients
# =========================
def create_clinic(name: str, require_consent_in_visit_flow: bool = True) -> str:
    name = name.strip()
    if not name:
        raise ValueError("Clinic name is required.")
    with db_session() as s:
        c = Clinic(name=name, require_consent_in_visit_flow=require_consent_in_visit_flow)
        s.add(c)
        s.flush()
        logger.info("Created clinic %s (%s)", name, c.id)
        return c.id


def create_patient(
    clinic_id: str,
    first_name: str,
    last_name: str,
    email: str | None = None,
    phone: str | None = None,
    date_of_birth: date | None = None,
    created_by: User | None = None,
) -> str:
    if not first_name.strip() or not last_name.strip():
        raise ValueError("First and last name are required.")
    with db_session() as s:
        if created_by is not None:
            count = s.scalar(select(func.count(Patient.id)).where(Patient.clinic_id == clinic_id)) or 0
            if is_limit_reached(created_by, "patients", count):
                raise LimitReached("patients", count)

        p = Patient(
            clinic_id=clinic_id,
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            email=email,
            phone=phone,
            date_of_birth=date_of_birth,
        )
        s.add(p)
        s.flush()
        return p.id


def list_clinics_flat() -> list[dict]:
    with db_session() as s:
        rows = s.execute(select(Clinic.id, Clinic.name).order_by(Clinic.name)).all()
        return [{"id": r.id, "name": r.name} for r in rows]


def list_patients_flat(clinic_id: str) -> list[dict]:
    with db_session() as s:
        rows = s.execute(
            select(Patient.id, Patient.first_name, Patient.last_name, Patient.email)
            .where(Patient.clinic_id == clinic_id)
            .order_by(Patient.last_name, Patient.first_name)
        ).all()
        return [
            {"id": r.id, "first_name": r.first_name, "last_name": r.last_name, "email": r.email}
            for r in rows
        ]


def list_staff_flat(clinic_id: str) -> list[dict]:
    with db_session() as s:
        rows = s.execute(
            select(User.id, User.username, User.full_name, User.role)
            .where(User.clinic_id == clinic_id, User.is_active.is_(True))
            .order_by(User.username)
        ).all()
        return [{"id": r.id, "username": r.username, "full_name": r.full_name, "role": r.role} for r in rows]


# =========================
# Scheduling
# =========================
def _slot_free(s: Session, clinic_id: str, dentist_id: str, start: datetime, end: datetime) -> bool:
    """No overlap [start, end) with the dentist's active appointments."""
    overlap = (
        select(Appointment.id)
        .where(
            and_(
                Appointment.clinic_id == clinic_id,
                Appointment.dentist_id == dentist_id,
                Appointment.status.not_in(_INACTIVE_STATUSES),
                Appointment.starts_at < end,
                Appointment.ends_at > start,
            )
        )
        .limit(1)
    )
    return s.execute(overlap).first() is None


def _month_bounds(day: datetime) -> tuple[datetime, datetime]:
    first = datetime(day.year, day.month, 1)
    if day.month == 12:
        return first, datetime(day.year + 1, 1, 1)
    return first, datetime(day.year, day.month + 1, 1)


def book_appointment(
    clinic_id: str,
    patient_id: str,
    dentist_id: str,
    start: datetime,
    duration_minutes: int = 30,
    room: str | None = None,
    notes: str | None = None,
    initial_status: str = AppointmentStatus.PENDING.value,
    booked_by: User | None = None,
) -> BookingResult:
    """
    Use case: book an appointment.
    - initial status must be an entry status (pending or scheduled)
    - patient and dentist must belong to the clinic
    - checks the booking user's monthly limit and the dentist's availability
    - queues a confirmation notification
    """
    status = validate_status(initial_status)
    if status not in ENTRY_STATUSES:
        raise ValueError(f"New appointments start as pending or scheduled, not {status.value}.")
    if duration_minutes <= 0:
        raise ValueError("Duration must be positive.")

    with db_session() as s:
        if clinic_row(s, Patient, clinic_id, patient_id) is None:
            return BookingResult(False, None, "Patient not found.")
        if clinic_row(s, User, clinic_id, dentist_id) is None:
            return BookingResult(False, None, "Dentist not found.")

        if booked_by is not None:
            month_start, month_end = _month_bounds(start)
            count = s.scalar(
                select(func.count(Appointment.id)).where(
                    Appointment.clinic_id == clinic_id,
                    Appointment.starts_at >= month_start,
                    Appointment.starts_at < month_end,
                )
            ) or 0
            if is_limit_reached(booked_by, "appointments_per_month", count):
                raise LimitReached("appointments_per_month", count)

        end = start + timedelta(minutes=duration_minutes)
        if not _slot_free(s, clinic_id, dentist_id, start, end):
            return BookingResult(False, None, "Slot not available (dentist already booked).")

        app = Appointment(
            clinic_id=clinic_id,
            patient_id=patient_id,
            dentist_id=dentist_id,
            starts_at=start,
            ends_at=end,
            room=room,
            status=status,
            notes=notes,
        )
        s.add(app)
        s.flush()

        _notify(
            s,
            clinic_id,
            NotificationType.CONFIRMATION,
            f"Appointment booked for {start.strftime('%d/%m/%Y %H:%M')} ({label_for(status)}).",
            appointment_id=app.id,
        )
        logger.info("Booked appointment %s for patient %s", app.id, patient_id)
        return BookingResult(True, app.id, "Appointment booked.")


def update_appointment_status(
    clinic_id: str,
    appointment_id: str,
    status: str,
    strict: bool | None = None,
    user_id: str | None = None,
    ip_address: str | None = None,
) -> dict[str, Any] | None:
    """
    Use case: change an appointment's status.
    Raises InvalidStatus for unknown values (and InvalidTransition in strict mode).
    Returns None when the appointment does not exist in this clinic.
    Every change is written to the audit log.
    """
    new_status = validate_status(status)
    if strict is None:
        strict = STRICT_APPOINTMENT_TRANSITIONS

    with db_session() as s:
        app = clinic_row(s, Appointment, clinic_id, appointment_id)
        if app is None:
            return None

        old_status = app.status
        validate_transition(old_status, new_status, strict=strict)
        app.status = new_status
        if new_status == AppointmentStatus.CHECKED_IN and app.checked_in_at is None:
            app.checked_in_at = datetime.utcnow()

        kind = (
            NotificationType.CANCELLATION
            if new_status == AppointmentStatus.CANCELLED
            else NotificationType.STATUS_CHANGE
        )
        _notify(
            s,
            clinic_id,
            kind,
            f"Appointment on {app.starts_at.strftime('%d/%m/%Y %H:%M')}: {label_for(new_status)}.",
            appointment_id=app.id,
        )
        _audit(
            s,
            clinic_id,
            f"appointment_status_change: {old_status.value} -> {new_status.value}",
            "appointment",
            app.id,
            user_id=user_id,
            ip_address=ip_address,
            before=old_status.value,
            after=new_status.value,
        )
        logger.info("Appointment %s: %s -> %s", app.id, old_status.value, new_status.value)
        s.flush()
        return _appointment_flat(app)


def daily_schedule_flat(clinic_id: str, day: date, dentist_id: str | None = None) -> list[dict]:
    """Day view without cancelled appointments, as plain dicts."""
    start_day = datetime.combine(day, datetime.min.time())
    end_day = start_day + timedelta(days=1)

    with db_session() as s:
        q = select(Appointment).where(
            and_(
                Appointment.clinic_id == clinic_id,
                Appointment.starts_at >= start_day,
                Appointment.starts_at < end_day,
                Appointment.status != AppointmentStatus.CANCELLED,
            )
        )
        if dentist_id:
            q = q.where(Appointment.dentist_id == dentist_id)
        return [_appointment_flat(a) for a in s.scalars(q.order_by(Appointment.starts_at.asc()))]


# =========================
# Visit flow
# =========================
def transition_visit(
    clinic_id: str,
    appointment_id: str,
    next_state: str,
    user_role: str | None,
    flags: dict[str, bool] | None = None,
    room: str | None = None,
    strict: bool | None = None,
    user_id: str | None = None,
    ip_address: str | None = None,
) -> dict[str, Any] | None:
    """
    Use case: move the in-clinic visit one step.
    The visit is created (SCHEDULED) on the first transition.
    Raises VisitTransitionDenied with the reason when the step is not allowed,
    including when the appointment status it maps to is not reachable:
    a completed, cancelled or no-show appointment only accepts the visit step
    that maps to its own status.
    """
    if strict is None:
        strict = STRICT_APPOINTMENT_TRANSITIONS

    with db_session() as s:
        app = clinic_row(s, Appointment, clinic_id, appointment_id)
        if app is None:
            return None
        clinic = s.get(Clinic, clinic_id)

        visit = app.visit
        if visit is None:
            visit = Visit(
                clinic_id=clinic_id,
                appointment_id=app.id,
                state=VisitState.SCHEDULED,
                flags={},
                timestamps={},
                room=app.room,
            )
            s.add(visit)

        merged_flags = {**(visit.flags or {}), **(flags or {})}
        if clinic is not None and not clinic.require_consent_in_visit_flow:
            merged_flags["consentSigned"] = True
        effective_room = room if room is not None else visit.room

        result = can_transition(visit.state, next_state, merged_flags, effective_room, user_role)
        if not result.allowed:
            logger.warning(
                "Visit transition denied for appointment %s: %s -> %s (%s)",
                app.id, visit.state.value, next_state, result.reason,
            )
            raise VisitTransitionDenied(result.reason or "Transition not allowed")

        new_state = VisitState(next_state)
        mirrored = VISIT_TO_APPOINTMENT_STATUS.get(new_state)
        if app.status in TERMINAL_STATUSES and mirrored != app.status:
            raise VisitTransitionDenied(f"Appointment is {label_for(app.status).lower()}")
        if mirrored is not None:
            try:
                validate_transition(app.status, mirrored, strict=strict)
            except InvalidTransition as e:
                raise VisitTransitionDenied(str(e)) from e

        now = datetime.utcnow()
        # new dicts so the JSON columns are flagged dirty
        visit.timestamps = {**(visit.timestamps or {}), STATE_TIMESTAMP_KEYS[new_state]: now.isoformat()}
        visit.flags = merged_flags
        visit.room = effective_room
        previous = visit.state
        visit.state = new_state

        if mirrored is not None:
            app.status = mirrored
            if mirrored == AppointmentStatus.CHECKED_IN and app.checked_in_at is None:
                app.checked_in_at = now
        if new_state in _VISIT_NOTIFY_STATES:
            _notify(
                s,
                clinic_id,
                NotificationType.VISIT_UPDATE,
                f"Visit {VISIT_STATE_LABELS[new_state].lower()}.",
                appointment_id=app.id,
            )

        s.flush()
        _audit(
            s,
            clinic_id,
            f"visit_status_change: {previous.value} -> {new_state.value}",
            "visit",
            visit.id,
            user_id=user_id,
            ip_address=ip_address,
            before=previous.value,
            after=new_state.value,
        )
        logger.info("Visit %s: %s -> %s", visit.id, previous.value, new_state.value)
        return {"visit": _visit_flat(visit), "appointment": _appointment_flat(app)}


# =========================
# Insurance
# =========================
def create_policy(
    clinic_id: str,
    patient_id: str,
    carrier_name: str,
    member_id: str | None = None,
    coverage_percentage: float | None = None,
    deductible_remaining: float | None = None,
    annual_max_remaining: float | None = None,
) -> str | None:
    with db_session() as s:
        if clinic_row(s, Patient, clinic_id, patient_id) is None:
            return None
        policy = InsurancePolicy(
            clinic_id=clinic_id,
            patient_id=patient_id,
            carrier_name=carrier_name.strip(),
            member_id=member_id,
            coverage_percentage=coverage_percentage,
            deductible_remaining=deductible_remaining,
            annual_max_remaining=annual_max_remaining,
        )
        s.add(policy)
        s.flush()
        return policy.id


def verify_eligibility(
    clinic_id: str,
    policy_id: str,
    user_id: str | None = None,
    ip_address: str | None = None,
) -> dict[str, Any] | None:
    """
    Stub clearinghouse: snapshots the policy's own benefit values.
    A real integration would replace the snapshot source, not the storage.
    """
    with db_session() as s:
        policy = clinic_row(s, InsurancePolicy, clinic_id, policy_id)
        if policy is None:
            return None
        now = datetime.utcnow()
        snapshot = {
            "status": "active",
            "carrier_name": policy.carrier_name,
            "coverage_percentage": _money(policy.coverage_percentage),
            "deductible_remaining": _money(policy.deductible_remaining),
            "annual_max_remaining": _money(policy.annual_max_remaining),
            "verified_at": now.isoformat(),
        }
        policy.eligibility_snapshot = snapshot
        policy.eligibility_verified_at = now
        _audit(
            s,
            clinic_id,
            "eligibility_verified",
            "insurance_policy",
            policy.id,
            user_id=user_id,
            ip_address=ip_address,
            after=snapshot["status"],
        )
        logger.info("Eligibility verified for policy %s", policy.id)
        return snapshot


def _policy_terms(policy: InsurancePolicy) -> dict[str, float | None]:
    """Policy columns, overridden by the last eligibility snapshot where it has a value."""
    terms = {
        "coverage_percentage": _money(policy.coverage_percentage),
        "deductible_remaining": _money(policy.deductible_remaining),
        "annual_max_remaining": _money(policy.annual_max_remaining),
    }
    for key, value in (policy.eligibility_snapshot or {}).items():
        if key in terms and value is not None:
            terms[key] = value
    return terms


def _estimate_with_policy(
    policy: InsurancePolicy | None,
    procedure_fee: Any,
    coverage_percentage: Any = None,
    deductible_remaining: Any = None,
    annual_max_remaining: Any = None,
) -> EstimatorOutput:
    terms = _policy_terms(policy) if policy is not None else {}
    if coverage_percentage is None:
        coverage_percentage = terms.get("coverage_percentage")
    if deductible_remaining is None:
        deductible_remaining = terms.get("deductible_remaining")
    if annual_max_remaining is None:
        annual_max_remaining = terms.get("annual_max_remaining")

    return estimate(
        procedure_fee,
        DEFAULT_COVERAGE_PERCENTAGE if coverage_percentage is None else coverage_percentage,
        0 if deductible_remaining is None else deductible_remaining,
        UNLIMITED_ANNUAL_MAX if annual_max_remaining is None else annual_max_remaining,
    )


def estimate_for_policy(
    clinic_id: str,
    procedure_fee: Any,
    policy_id: str | None = None,
    coverage_percentage: Any = None,
    deductible_remaining: Any = None,
    annual_max_remaining: Any = None,
) -> EstimatorOutput | None:
    """
    Use case: patient/insurer split for a procedure.
    Explicit values win over the policy (snapshot first, then columns);
    missing coverage defaults to 80%, missing annual max means no cap.
    Returns None when policy_id is given but not found in the clinic.
    """
    with db_session() as s:
        policy = None
        if policy_id:
            policy = clinic_row(s, InsurancePolicy, clinic_id, policy_id)
            if policy is None:
                return None
        return _estimate_with_policy(
            policy, procedure_fee, coverage_percentage, deductible_remaining, annual_max_remaining
        )


def submit_claim(
    clinic_id: str,
    policy_id: str,
    procedure_fee: float,
    procedure_code: str | None = None,
    appointment_id: str | None = None,
    user_id: str | None = None,
    ip_address: str | None = None,
) -> dict[str, Any] | None:
    if procedure_fee is None or procedure_fee < 0:
        raise ValueError("Procedure fee must be a non-negative amount.")
    with db_session() as s:
        policy = clinic_row(s, InsurancePolicy, clinic_id, policy_id)
        if policy is None:
            return None
        if appointment_id and clinic_row(s, Appointment, clinic_id, appointment_id) is None:
            return None

        result = _estimate_with_policy(policy, procedure_fee)
        claim = InsuranceClaim(
            clinic_id=clinic_id,
            policy_id=policy.id,
            appointment_id=appointment_id,
            procedure_code=procedure_code,
            procedure_fee=procedure_fee,
            insurance_estimate=result.insurance_estimate,
            patient_portion=result.patient_portion,
            capped_by_annual_max=result.capped_by_annual_max,
            status=ClaimStatus.SUBMITTED,
            submitted_at=datetime.utcnow(),
        )
        s.add(claim)
        s.flush()
        _notify(
            s,
            clinic_id,
            NotificationType.CLAIM_SUBMITTED,
            f"Claim submitted to {policy.carrier_name}: estimate {result.insurance_estimate:.2f}.",
            appointment_id=appointment_id,
        )
        _audit(
            s,
            clinic_id,
            "claim_submitted",
            "insurance_claim",
            claim.id,
            user_id=user_id,
            ip_address=ip_address,
            after=f"{ClaimStatus.SUBMITTED.value}: estimate {result.insurance_estimate:.2f}",
        )
        logger.info("Submitted claim %s on policy %s", claim.id, policy.id)
        return _claim_flat(claim)


def process_remittance(
    clinic_id: str,
    claim_id: str,
    paid_amount: float,
    user_id: str | None = None,
    ip_address: str | None = None,
) -> dict[str, Any] | None:
    """
    Use case: post the payer's remittance (ERA) for a submitted claim.
    paid_amount 0 marks the claim denied; a payment draws down the annual maximum.
    """
    if paid_amount is None or paid_amount < 0:
        raise ValueError("Paid amount must be a non-negative amount.")
    with db_session() as s:
        claim = clinic_row(s, InsuranceClaim, clinic_id, claim_id)
        if claim is None:
            return None
        if claim.status != ClaimStatus.SUBMITTED:
            raise ValueError(f"Claim is {claim.status.value}, only submitted claims accept a remittance.")

        claim.paid_amount = paid_amount
        claim.adjudicated_at = datetime.utcnow()
        claim.status = ClaimStatus.PAID if paid_amount > 0 else ClaimStatus.DENIED

        policy = claim.policy
        if paid_amount > 0 and policy.annual_max_remaining is not None:
            remaining = max(Decimal("0"), Decimal(policy.annual_max_remaining) - Decimal(str(paid_amount)))
            policy.annual_max_remaining = remaining
            if policy.eligibility_snapshot and policy.eligibility_snapshot.get("annual_max_remaining") is not None:
                policy.eligibility_snapshot = {**policy.eligibility_snapshot, "annual_max_remaining": float(remaining)}

        s.flush()
        _audit(
            s,
            clinic_id,
            "era_processed",
            "insurance_claim",
            claim.id,
            user_id=user_id,
            ip_address=ip_address,
            before=ClaimStatus.SUBMITTED.value,
            after=f"{claim.status.value}: paid {paid_amount:.2f}",
        )
        logger.info("Remittance on claim %s: %s (%s)", claim.id, paid_amount, claim.status.value)
        return _claim_flat(claim)


def list_claims_flat(clinic_id: str) -> list[dict]:
    with db_session() as s:
        q = select(InsuranceClaim).where(InsuranceClaim.clinic_id == clinic_id).order_by(
            InsuranceClaim.created_at.desc()
        )
        return [_claim_flat(c) for c in s.scalars(q)]


# =========================
# Public referral intake
# =========================
def submit_referral_intake(
    clinic_id: str,
    specialist_name: str,
    specialty: str,
    email: str | None = None,
    phone: str | None = None,
    notes: str | None = None,
    client_address: str | None = None,
) -> int:
    if not specialist_name.strip() or not specialty.strip():
        raise ValueError("Specialist name and specialty are required.")
    with db_session() as s:
        if s.get(Clinic, clinic_id) is None:
            raise ValueError("Clinic not found.")
        intake = ReferralIntake(
            clinic_id=clinic_id,
            specialist_name=specialist_name.strip(),
            specialty=specialty.strip(),
            email=email,
            phone=phone,
            notes=notes,
            client_address=client_address,
        )
        s.add(intake)
        s.flush()
        _notify(
            s,
            clinic_id,
            NotificationType.REFERRAL_INTAKE,
            f"New specialist intake: {intake.specialist_name} ({intake.specialty}).",
        )
        return intake.id


# =========================
# Notifications (external sink)
# =========================
def pending_notifications(clinic_id: str | None = None, limit: int = 50) -> list[Notification]:
    """Notifications not yet 'sent' (sent_at is NULL), oldest first."""
    with db_session() as s:
        q = select(Notification).where(Notification.sent_at.is_(None))
        if clinic_id:
            q = q.where(Notification.clinic_id == clinic_id)
        q = q.order_by(Notification.created_at.asc(), Notification.id.asc()).limit(limit)
        return list(s.scalars(q))


def pending_notifications_flat(clinic_id: str, limit: int = 50) -> list[dict]:
    return [
        {
            "id": n.id,
            "type": n.type.value,
            "message": n.message,
            "created_at": n.created_at.isoformat(),
            "appointment_id": n.appointment_id,
        }
        for n in pending_notifications(clinic_id, limit=limit)
    ]


def mark_notification_sent(notification_id: int, clinic_id: str | None = None) -> bool:
    with db_session() as s:
        n = s.get(Notification, notification_id)
        if not n or n.sent_at is not None:
            return False
        if clinic_id and n.clinic_id != clinic_id:
            return False
        n.sent_at = datetime.utcnow()
        return True


# =========================
# Audit log
# =========================
def list_audit_flat(clinic_id: str, record_id: str | None = None, limit: int = 100) -> list[dict]:
    """Newest first; optionally the trail of a single record."""
    with db_session() as s:
        q = select(AuditLog).where(AuditLog.clinic_id == clinic_id)
        if record_id:
            q = q.where(AuditLog.record_id == record_id)
        q = q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)
        return [
            {
                "id": a.id,
                "user_id": a.user_id,
                "action": a.action,
                "record_type": a.record_type,
                "record_id": a.record_id,
                "ip_address": a.ip_address,
                "before_value": a.before_value,
                "after_value": a.after_value,
                "created_at": a.created_at.isoformat(),
            }
            for a in s.scalars(q)
        ]
