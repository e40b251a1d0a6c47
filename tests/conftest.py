import os
import tempfile
import uuid

# Point the app at a throwaway SQLite file before the package reads its config
_TMP_DIR = tempfile.mkdtemp(prefix="dental_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.sqlite')}"
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("STRICT_APPOINTMENT_TRANSITIONS", "false")

import pytest  # noqa: E402

from dental_backend.auth_service import create_user  # noqa: E402
from dental_backend.rate_limit import intake_rate_limiter  # noqa: E402
from dental_backend.services import create_clinic, create_patient, init_db  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _schema():
    init_db()


@pytest.fixture(autouse=True)
def _fresh_rate_limiter():
    intake_rate_limiter.reset()
    yield
    intake_rate_limiter.reset()


@pytest.fixture
def clinic_id():
    return create_clinic(f"Clinic {uuid.uuid4().hex[:8]}")


@pytest.fixture
def dentist_id(clinic_id):
    return create_user(clinic_id, f"dentist_{uuid.uuid4().hex[:8]}", "secret123", role="dentist")


@pytest.fixture
def patient_id(clinic_id):
    return create_patient(clinic_id, "Ana", "Silva", email="ana@example.com")
