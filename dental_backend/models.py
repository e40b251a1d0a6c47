from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .appointment_status import AppointmentStatus
from .auth_models import User, new_uuid
from .db import Base
from .visit_workflow import VisitState


class ClaimStatus(enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    PAID = "paid"
    DENIED = "denied"


class NotificationType(enum.Enum):
    CONFIRMATION = "CONFIRMATION"
    STATUS_CHANGE = "STATUS_CHANGE"
    CANCELLATION = "CANCELLATION"
    CLAIM_SUBMITTED = "CLAIM_SUBMITTED"
    REFERRAL_INTAKE = "REFERRAL_INTAKE"
    VISIT_UPDATE = "VISIT_UPDATE"


class Clinic(Base):
    """Tenant: every other row belongs to exactly one clinic."""
    __tablename__ = "clinics"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(160), nullable=False, unique=True)
    require_consent_in_visit_flow: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"Clinic({self.name})"


class Patient(Base):
    __tablename__ = "patients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinics.id"), nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(80), nullable=False)
    last_name: Mapped[str] = mapped_column(String(80), nullable=False)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    email: Mapped[str | None] = mapped_column(String(120), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    appointments: Mapped[list["Appointment"]] = relationship(back_populates="patient", cascade="all, delete-orphan")
    policies: Mapped[list["InsurancePolicy"]] = relationship(back_populates="patient", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"Patient({self.first_name} {self.last_name})"


class Appointment(Base):
    __tablename__ = "appointments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinics.id"), nullable=False, index=True)
    patient_id: Mapped[str] = mapped_column(ForeignKey("patients.id"), nullable=False)
    dentist_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)

    starts_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    room: Mapped[str | None] = mapped_column(String(40), nullable=True)

    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus), default=AppointmentStatus.PENDING, nullable=False
    )
    checked_in_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    patient: Mapped["Patient"] = relationship(back_populates="appointments")
    dentist: Mapped["User"] = relationship()
    visit: Mapped["Visit"] = relationship(back_populates="appointment", cascade="all, delete-orphan")
    notifications: Mapped[list["Notification"]] = relationship(
        back_populates="appointment", cascade="all, delete-orphan"
    )


class Visit(Base):
    """In-clinic progress of an appointment (see visit_workflow)."""
    __tablename__ = "visits"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinics.id"), nullable=False, index=True)
    appointment_id: Mapped[str] = mapped_column(ForeignKey("appointments.id"), nullable=False, unique=True)

    state: Mapped[VisitState] = mapped_column(Enum(VisitState), default=VisitState.SCHEDULED, nullable=False)
    flags: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    timestamps: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    room: Mapped[str | None] = mapped_column(String(40), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    appointment: Mapped["Appointment"] = relationship(back_populates="visit")


class InsurancePolicy(Base):
    __tablename__ = "insurance_policies"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinics.id"), nullable=False, index=True)
    patient_id: Mapped[str] = mapped_column(ForeignKey("patients.id"), nullable=False)

    carrier_name: Mapped[str] = mapped_column(String(160), nullable=False)
    member_id: Mapped[str | None] = mapped_column(String(60), nullable=True)
    coverage_percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)  # 80.00 = 80%
    deductible_remaining: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    annual_max_remaining: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)  # NULL = no cap

    # Last eligibility response (values here win over the policy columns when estimating)
    eligibility_snapshot: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    eligibility_verified_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    patient: Mapped["Patient"] = relationship(back_populates="policies")
    claims: Mapped[list["InsuranceClaim"]] = relationship(back_populates="policy", cascade="all, delete-orphan")


class InsuranceClaim(Base):
    __tablename__ = "insurance_claims"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinics.id"), nullable=False, index=True)
    policy_id: Mapped[str] = mapped_column(ForeignKey("insurance_policies.id"), nullable=False)
    appointment_id: Mapped[str | None] = mapped_column(ForeignKey("appointments.id"), nullable=True)

    procedure_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    procedure_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    insurance_estimate: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    patient_portion: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    capped_by_annual_max: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    status: Mapped[ClaimStatus] = mapped_column(Enum(ClaimStatus), default=ClaimStatus.DRAFT, nullable=False)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    paid_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    adjudicated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    policy: Mapped["InsurancePolicy"] = relationship(back_populates="claims")


class ReferralIntake(Base):
    """Submitted from the public specialist intake form (no login)."""
    __tablename__ = "referral_intakes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinics.id"), nullable=False, index=True)
    specialist_name: Mapped[str] = mapped_column(String(160), nullable=False)
    specialty: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str | None] = mapped_column(String(120), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    client_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class Notification(Base):
    """Outbox drained by the external notification sink (see cli notifications)."""
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinics.id"), nullable=False, index=True)
    type: Mapped[NotificationType] = mapped_column(Enum(NotificationType), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # optional: notification about an appointment
    appointment_id: Mapped[str | None] = mapped_column(ForeignKey("appointments.id"), nullable=True)

    appointment: Mapped["Appointment"] = relationship(back_populates="notifications")


class AuditLog(Base):
    """Append-only record of who changed what (status changes, claims, remittances)."""
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    clinic_id: Mapped[str] = mapped_column(ForeignKey("clinics.id"), nullable=False, index=True)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    action: Mapped[str] = mapped_column(String(200), nullable=False)

    record_type: Mapped[str | None] = mapped_column(String(40), nullable=True)
    record_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    before_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    after_value: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
