from __future__ import annotations

import logging

from sqlalchemy import select

from .auth_models import User
from .auth_security import hash_password
from .db import db_session
from .models import Clinic, InsurancePolicy, Patient

logger = logging.getLogger(__name__)

DEMO_CLINIC = "Bright Smile Dental"
DEMO_PASSWORD = "demo1234"

# username, role, full name
DEMO_STAFF = (
    ("superadmin", "super_admin", "Sam Admin"),
    ("clinicadmin", "clinic_admin", "Casey Manager"),
    ("frontdesk", "receptionist", "Robin Front"),
    ("drsmith", "dentist", "Dr. Alex Smith"),
    ("hygienist", "hygienist", "Jordan Clean"),
    ("accountant", "accountant", "Taylor Books"),
)


def seed_base() -> None:
    """
    Minimal demo data (idempotent):
    - one clinic
    - one user per role (password DEMO_PASSWORD)
    - one patient with an insurance policy
    """
    with db_session() as s:
        clinic = s.execute(select(Clinic).where(Clinic.name == DEMO_CLINIC)).scalar_one_or_none()
        if clinic is None:
            clinic = Clinic(name=DEMO_CLINIC, require_consent_in_visit_flow=True)
            s.add(clinic)
            s.flush()
            logger.info("Seeded clinic %s", DEMO_CLINIC)

        for username, role, full_name in DEMO_STAFF:
            if s.execute(select(User).where(User.username == username)).scalar_one_or_none() is None:
                s.add(
                    User(
                        clinic_id=clinic.id,
                        username=username,
                        password_hash=hash_password(DEMO_PASSWORD),
                        role=role,
                        full_name=full_name,
                    )
                )

        patient = s.execute(
            select(Patient).where(
                Patient.clinic_id == clinic.id, Patient.first_name == "Maria", Patient.last_name == "Lopez"
            )
        ).scalar_one_or_none()
        if patient is None:
            patient = Patient(clinic_id=clinic.id, first_name="Maria", last_name="Lopez", email="maria@example.com")
            s.add(patient)
            s.flush()
            s.add(
                InsurancePolicy(
                    clinic_id=clinic.id,
                    patient_id=patient.id,
                    carrier_name="Delta Dental",
                    member_id="DD-0001",
                    coverage_percentage=80,
                    deductible_remaining=50,
                    annual_max_remaining=1500,
                )
            )
