from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Callable

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from pydantic import BaseModel, Field

from dental_backend.access_control import SECTIONS
from dental_backend.appointment_status import InvalidStatus, InvalidTransition
from dental_backend.auth_models import User
from dental_backend.auth_security import create_access_token, read_token
from dental_backend.auth_service import authenticate, create_user, get_user_by_id
from dental_backend.config import configure_logging
from dental_backend.insurance_permissions import (
    can_create_edit_insurance,
    can_process_remittance,
    can_submit_claim,
    can_verify_eligibility,
    can_view_estimator,
)
from dental_backend.permissions import can_access_path, can_invite_users, first_allowed_path_for
from dental_backend.rate_limit import intake_rate_limiter
from dental_backend.seed import seed_base
from dental_backend.services import (
    LimitReached,
    VisitTransitionDenied,
    book_appointment,
    create_patient,
    create_policy,
    daily_schedule_flat,
    estimate_for_policy,
    init_db,
    list_audit_flat,
    list_claims_flat,
    list_patients_flat,
    list_staff_flat,
    mark_notification_sent,
    pending_notifications_flat,
    process_remittance,
    submit_claim,
    submit_referral_intake,
    transition_visit,
    update_appointment_status,
    verify_eligibility,
)

logger = logging.getLogger(__name__)

# OAuth2 Bearer (Authorization: Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

app = FastAPI(title="Dental Practice API", version="1.0.0")


# Startup

@app.on_event("startup")
def startup() -> None:
    configure_logging()
    init_db()
    seed_base()


# Auth schemas

class RegisterIn(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=8)
    role: str = "receptionist"
    full_name: str | None = None
    allowed_sections: list[str] | None = None
    limits: dict[str, int | float] | None = None


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MeOut(BaseModel):
    id: str
    clinic_id: str
    username: str
    full_name: str | None
    role: str
    allowed_sections: list[str] | None
    limits: dict[str, int | float] | None


# Domain schemas

class PatientCreateIn(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str | None = None
    phone: str | None = None
    date_of_birth: date | None = None


class AppointmentCreateIn(BaseModel):
    patient_id: str
    dentist_id: str
    start: datetime
    duration_minutes: int = Field(30, gt=0)
    room: str | None = None
    notes: str | None = None
    status: str = "pending"


class StatusIn(BaseModel):
    status: str


class VisitTransitionIn(BaseModel):
    next_state: str
    flags: dict[str, bool] | None = None
    room: str | None = None


class PolicyCreateIn(BaseModel):
    patient_id: str
    carrier_name: str = Field(..., min_length=1)
    member_id: str | None = None
    coverage_percentage: float | None = None
    deductible_remaining: float | None = None
    annual_max_remaining: float | None = None


class EstimateIn(BaseModel):
    procedure_fee: float = Field(..., allow_inf_nan=False)
    policy_id: str | None = None
    coverage_percentage: float | None = Field(None, allow_inf_nan=False)
    deductible_remaining: float | None = Field(None, allow_inf_nan=False)
    annual_max_remaining: float | None = Field(None, allow_inf_nan=False)


class ClaimCreateIn(BaseModel):
    policy_id: str
    procedure_fee: float = Field(..., ge=0, allow_inf_nan=False)
    procedure_code: str | None = None
    appointment_id: str | None = None


class RemittanceIn(BaseModel):
    paid_amount: float = Field(..., ge=0, allow_inf_nan=False)


class ReferralIntakeIn(BaseModel):
    clinic_id: str
    specialist_name: str = Field(..., min_length=1)
    specialty: str = Field(..., min_length=1)
    email: str | None = None
    phone: str | None = None
    notes: str | None = None


# Auth dependencies

def get_current_user(token: str = Depends(oauth2_scheme)) -> User:
    token = token.strip().strip('"').strip("'")

    claims = read_token(token)
    if claims is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    u = get_user_by_id(claims.user_id)
    if not u or not u.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user")
    if not claims.matches(u):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token out of date, log in again")
    return u


def _forbidden(user: User, reason: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"message": reason, "redirect": first_allowed_path_for(user)},
    )


def require_section(path: str) -> Callable[..., User]:
    """Dependency: the user's role and section list must admit `path`."""

    def guard(user: User = Depends(get_current_user)) -> User:
        if not can_access_path(user, path):
            logger.warning("Access denied: %s (%s) -> %s", user.username, user.role, path)
            raise _forbidden(user, "Access denied")
        return user

    return guard


def require_capability(check: Callable[[str | None], bool], name: str) -> Callable[[User], None]:
    def ensure(user: User) -> None:
        if not check(user.role):
            logger.warning("Capability %s denied for %s (%s)", name, user.username, user.role)
            raise _forbidden(user, f"Role not permitted to {name}")

    return ensure


ensure_insurance_editor = require_capability(can_create_edit_insurance, "edit insurance")
ensure_eligibility_verifier = require_capability(can_verify_eligibility, "verify eligibility")
ensure_estimator_viewer = require_capability(can_view_estimator, "view the estimator")
ensure_claim_submitter = require_capability(can_submit_claim, "submit claims")
ensure_remittance_processor = require_capability(can_process_remittance, "process remittances")


def _bad_request(e: ValueError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _not_found(what: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{what} not found")


def _client_address(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


# AUTH endpoints

@app.post("/api/auth/login", response_model=TokenOut)
def login(form: OAuth2PasswordRequestForm = Depends()) -> TokenOut:
    u = authenticate(form.username, form.password)
    if not u:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    token = create_access_token(u.id, u.clinic_id, u.role)
    return TokenOut(access_token=token)


@app.post("/api/auth/register", response_model=dict)
def register(payload: RegisterIn, user: User = Depends(get_current_user)) -> dict[str, Any]:
    """Admins invite staff into their own clinic."""
    if not can_invite_users(user):
        raise _forbidden(user, "Only admins can invite users")
    try:
        user_id = create_user(
            user.clinic_id,
            payload.username,
            payload.password,
            role=payload.role,
            full_name=payload.full_name,
            allowed_sections=payload.allowed_sections,
            limits=payload.limits,
        )
        return {"ok": True, "user_id": user_id}
    except ValueError as e:
        raise _bad_request(e)


@app.get("/api/me", response_model=MeOut)
def me(user: User = Depends(get_current_user)) -> MeOut:
    return MeOut(
        id=user.id,
        clinic_id=user.clinic_id,
        username=user.username,
        full_name=user.full_name,
        role=user.role,
        allowed_sections=user.allowed_sections,
        limits=user.limits,
    )


@app.get("/api/me/landing")
def me_landing(user: User = Depends(get_current_user)) -> dict[str, str]:
    return {"path": first_allowed_path_for(user)}


@app.get("/api/me/sections")
def me_sections(user: User = Depends(get_current_user)) -> list[dict]:
    """Navigation entries with the user's access to each."""
    return [
        {"key": s.key, "label": s.label, "path": s.path, "allowed": can_access_path(user, s.path)}
        for s in SECTIONS
    ]


@app.get("/api/access/check")
def access_check(path: str = Query(..., min_length=1), user: User = Depends(get_current_user)) -> dict[str, Any]:
    allowed = can_access_path(user, path)
    return {"path": path, "allowed": allowed, "redirect": None if allowed else first_allowed_path_for(user)}


# PUBLIC endpoints (no JWT)

@app.post("/api/public/referral-intake", status_code=status.HTTP_201_CREATED)
def public_referral_intake(payload: ReferralIntakeIn, request: Request) -> dict[str, Any]:
    """
    Specialist intake form without login:
    - rate limited per caller address
    - queues a notification for the clinic
    """
    address = _client_address(request)
    decision = intake_rate_limiter.check(address)
    if not decision.allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many submissions, try again later",
            headers={"Retry-After": str(decision.retry_after)},
        )
    try:
        intake_id = submit_referral_intake(
            payload.clinic_id,
            payload.specialist_name,
            payload.specialty,
            email=payload.email,
            phone=payload.phone,
            notes=payload.notes,
            client_address=address,
        )
    except ValueError as e:
        raise _bad_request(e)
    return {"ok": True, "intake_id": intake_id}


# PROTECTED endpoints (JWT)

@app.get("/api/staff")
def api_staff(user: User = Depends(require_section("/staff"))) -> list[dict]:
    return list_staff_flat(user.clinic_id)


@app.get("/api/patients")
def api_patients(user: User = Depends(require_section("/patients"))) -> list[dict]:
    return list_patients_flat(user.clinic_id)


@app.post("/api/patients", status_code=status.HTTP_201_CREATED)
def api_create_patient(payload: PatientCreateIn, user: User = Depends(require_section("/patients"))) -> dict[str, Any]:
    try:
        pid = create_patient(
            user.clinic_id,
            payload.first_name,
            payload.last_name,
            email=payload.email,
            phone=payload.phone,
            date_of_birth=payload.date_of_birth,
            created_by=user,
        )
    except LimitReached as e:
        raise _forbidden(user, str(e))
    except ValueError as e:
        raise _bad_request(e)
    return {"ok": True, "patient_id": pid}


@app.post("/api/appointments")
def api_create_appointment(
    payload: AppointmentCreateIn, user: User = Depends(require_section("/calendar"))
) -> dict[str, Any]:
    try:
        result = book_appointment(
            user.clinic_id,
            patient_id=payload.patient_id,
            dentist_id=payload.dentist_id,
            start=payload.start,
            duration_minutes=payload.duration_minutes,
            room=payload.room,
            notes=payload.notes,
            initial_status=payload.status,
            booked_by=user,
        )
    except LimitReached as e:
        raise _forbidden(user, str(e))
    except InvalidStatus as e:
        raise HTTPException(status_code=400, detail={"message": str(e), "allowed": list(e.allowed)})
    except ValueError as e:
        raise _bad_request(e)

    return {"ok": result.ok, "message": result.message, "appointment_id": result.appointment_id}


@app.patch("/api/appointments/{appointment_id}/status")
def api_update_appointment_status(
    appointment_id: str,
    payload: StatusIn,
    request: Request,
    user: User = Depends(require_section("/calendar")),
) -> dict[str, Any]:
    try:
        updated = update_appointment_status(
            user.clinic_id,
            appointment_id,
            payload.status,
            user_id=user.id,
            ip_address=_client_address(request),
        )
    except InvalidStatus as e:
        raise HTTPException(status_code=400, detail={"message": str(e), "allowed": list(e.allowed)})
    except InvalidTransition as e:
        raise _bad_request(e)
    if updated is None:
        raise _not_found("Appointment")
    return updated


@app.get("/api/schedule")
def api_schedule(
    day: date = Query(...),
    dentist_id: str | None = Query(None),
    user: User = Depends(require_section("/calendar")),
) -> list[dict]:
    return daily_schedule_flat(user.clinic_id, day, dentist_id)


@app.post("/api/appointments/{appointment_id}/visit/transition")
def api_visit_transition(
    appointment_id: str,
    payload: VisitTransitionIn,
    request: Request,
    user: User = Depends(require_section("/calendar")),
) -> dict[str, Any]:
    try:
        result = transition_visit(
            user.clinic_id,
            appointment_id,
            payload.next_state,
            user.role,
            flags=payload.flags,
            room=payload.room,
            user_id=user.id,
            ip_address=_client_address(request),
        )
    except VisitTransitionDenied as e:
        raise _bad_request(e)
    if result is None:
        raise _not_found("Appointment")
    return result


# Insurance

@app.post("/api/insurance/policies", status_code=status.HTTP_201_CREATED)
def api_create_policy(payload: PolicyCreateIn, user: User = Depends(require_section("/insurance"))) -> dict[str, Any]:
    ensure_insurance_editor(user)
    policy_id = create_policy(
        user.clinic_id,
        payload.patient_id,
        payload.carrier_name,
        member_id=payload.member_id,
        coverage_percentage=payload.coverage_percentage,
        deductible_remaining=payload.deductible_remaining,
        annual_max_remaining=payload.annual_max_remaining,
    )
    if policy_id is None:
        raise _not_found("Patient")
    return {"ok": True, "policy_id": policy_id}


@app.post("/api/insurance/policies/{policy_id}/verify")
def api_verify_eligibility(
    policy_id: str, request: Request, user: User = Depends(require_section("/insurance"))
) -> dict[str, Any]:
    ensure_eligibility_verifier(user)
    snapshot = verify_eligibility(user.clinic_id, policy_id, user_id=user.id, ip_address=_client_address(request))
    if snapshot is None:
        raise _not_found("Policy")
    return snapshot


@app.post("/api/insurance/estimate")
def api_estimate(payload: EstimateIn, user: User = Depends(require_section("/insurance"))) -> dict[str, Any]:
    ensure_estimator_viewer(user)
    result = estimate_for_policy(
        user.clinic_id,
        payload.procedure_fee,
        policy_id=payload.policy_id,
        coverage_percentage=payload.coverage_percentage,
        deductible_remaining=payload.deductible_remaining,
        annual_max_remaining=payload.annual_max_remaining,
    )
    if result is None:
        raise _not_found("Policy")
    return result.as_dict()


@app.get("/api/insurance/claims")
def api_claims(user: User = Depends(require_section("/insurance-claims"))) -> list[dict]:
    return list_claims_flat(user.clinic_id)


@app.post("/api/insurance/claims", status_code=status.HTTP_201_CREATED)
def api_submit_claim(
    payload: ClaimCreateIn, request: Request, user: User = Depends(require_section("/insurance-claims"))
) -> dict[str, Any]:
    ensure_claim_submitter(user)
    try:
        claim = submit_claim(
            user.clinic_id,
            payload.policy_id,
            payload.procedure_fee,
            procedure_code=payload.procedure_code,
            appointment_id=payload.appointment_id,
            user_id=user.id,
            ip_address=_client_address(request),
        )
    except ValueError as e:
        raise _bad_request(e)
    if claim is None:
        raise _not_found("Policy or appointment")
    return claim


@app.post("/api/insurance/claims/{claim_id}/remittance")
def api_remittance(
    claim_id: str,
    payload: RemittanceIn,
    request: Request,
    user: User = Depends(require_section("/insurance-claims")),
) -> dict[str, Any]:
    ensure_remittance_processor(user)
    try:
        claim = process_remittance(
            user.clinic_id,
            claim_id,
            payload.paid_amount,
            user_id=user.id,
            ip_address=_client_address(request),
        )
    except ValueError as e:
        raise _bad_request(e)
    if claim is None:
        raise _not_found("Claim")
    return claim


# Notifications

@app.get("/api/notifications/pending")
def api_pending_notifications(
    limit: int = Query(50, gt=0, le=500), user: User = Depends(require_section("/messages"))
) -> list[dict]:
    return pending_notifications_flat(user.clinic_id, limit=limit)


@app.post("/api/notifications/{notification_id}/sent")
def api_mark_sent(notification_id: int, user: User = Depends(require_section("/messages"))) -> dict[str, Any]:
    if not mark_notification_sent(notification_id, clinic_id=user.clinic_id):
        raise _not_found("Pending notification")
    return {"ok": True}


# Audit log

@app.get("/api/audit")
def api_audit(
    record_id: str | None = Query(None),
    limit: int = Query(100, gt=0, le=500),
    user: User = Depends(require_section("/dashboard/activity")),
) -> list[dict]:
    return list_audit_flat(user.clinic_id, record_id=record_id, limit=limit)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("dental_backend.api_main:app", host="127.0.0.1", port=8000, reload=False)
