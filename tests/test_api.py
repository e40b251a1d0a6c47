import uuid

import pytest
from fastapi.testclient import TestClient

from dental_backend.api_main import app
from dental_backend.auth_security import create_access_token
from dental_backend.config import INTAKE_RATE_LIMIT_MAX
from dental_backend.seed import DEMO_PASSWORD


@pytest.fixture(scope="module")
def client():
    with TestClient(app) as c:
        yield c


def _login(client, username, password=DEMO_PASSWORD):
    resp = client.post("/api/auth/login", data={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def _dentist_id(client):
    staff = client.get("/api/staff", headers=_login(client, "clinicadmin")).json()
    return next(u["id"] for u in staff if u["username"] == "drsmith")


def _new_patient(client, headers):
    resp = client.post("/api/patients", json={"first_name": "Test", "last_name": uuid.uuid4().hex[:6]}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["patient_id"]


def test_login_rejects_bad_password(client):
    resp = client.post("/api/auth/login", data={"username": "frontdesk", "password": "wrong"})
    assert resp.status_code == 401


def test_protected_routes_need_a_token(client):
    assert client.get("/api/me").status_code == 401
    assert client.get("/api/me", headers={"Authorization": "Bearer garbage"}).status_code == 401


def test_token_must_match_current_role_and_clinic(client):
    me = client.get("/api/me", headers=_login(client, "frontdesk")).json()

    def bearer(token):
        return {"Authorization": f"Bearer {token}"}

    current = create_access_token(me["id"], me["clinic_id"], me["role"])
    assert client.get("/api/me", headers=bearer(current)).status_code == 200

    promoted = create_access_token(me["id"], me["clinic_id"], "clinic_admin")
    resp = client.get("/api/staff", headers=bearer(promoted))
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token out of date, log in again"

    moved = create_access_token(me["id"], "another-clinic", me["role"])
    assert client.get("/api/me", headers=bearer(moved)).status_code == 401

    expired = create_access_token(me["id"], me["clinic_id"], me["role"], expires_minutes=-1)
    assert client.get("/api/me", headers=bearer(expired)).status_code == 401


def test_me_and_landing(client):
    headers = _login(client, "frontdesk")
    me = client.get("/api/me", headers=headers).json()
    assert me["role"] == "receptionist"
    assert me["allowed_sections"] is None
    assert client.get("/api/me/landing", headers=headers).json() == {"path": "/dashboard"}


def test_access_check(client):
    headers = _login(client, "drsmith")
    ok = client.get("/api/access/check", params={"path": "/treatments/7"}, headers=headers).json()
    assert ok == {"path": "/treatments/7", "allowed": True, "redirect": None}
    denied = client.get("/api/access/check", params={"path": "/payments"}, headers=headers).json()
    assert denied["allowed"] is False
    assert denied["redirect"] == "/dashboard"


def test_sections_listing(client):
    sections = client.get("/api/me/sections", headers=_login(client, "accountant")).json()
    allowed = {s["key"] for s in sections if s["allowed"]}
    assert "payments" in allowed
    assert "treatments" not in allowed


def test_section_guard_returns_redirect(client):
    resp = client.get("/api/staff", headers=_login(client, "hygienist"))
    assert resp.status_code == 403
    assert resp.json()["detail"]["redirect"] == "/dashboard"


def test_register_is_admin_only(client):
    payload = {"username": "newhire", "password": "secret123", "role": "receptionist"}
    assert client.post("/api/auth/register", json=payload, headers=_login(client, "drsmith")).status_code == 403


def test_registered_user_with_section_list(client):
    admin = _login(client, "clinicadmin")
    payload = {
        "username": "calendar_only",
        "password": "secret123",
        "role": "receptionist",
        "allowed_sections": ["calendar"],
    }
    resp = client.post("/api/auth/register", json=payload, headers=admin)
    assert resp.status_code == 200, resp.text

    headers = _login(client, "calendar_only", "secret123")
    assert client.get("/api/me/landing", headers=headers).json() == {"path": "/calendar"}
    assert client.get("/api/patients", headers=headers).status_code == 403

    dup = client.post("/api/auth/register", json=payload, headers=admin)
    assert dup.status_code == 400


def test_register_rejects_unknown_role(client):
    payload = {"username": "weird", "password": "secret123", "role": "janitor"}
    resp = client.post("/api/auth/register", json=payload, headers=_login(client, "clinicadmin"))
    assert resp.status_code == 400


def test_patients(client):
    headers = _login(client, "frontdesk")
    patient_id = _new_patient(client, headers)
    ids = {p["id"] for p in client.get("/api/patients", headers=headers).json()}
    assert patient_id in ids


def test_appointment_status_endpoint(client):
    headers = _login(client, "frontdesk")
    patient_id = _new_patient(client, headers)
    booking = client.post(
        "/api/appointments",
        json={"patient_id": patient_id, "dentist_id": _dentist_id(client), "start": "2031-03-03T09:00:00"},
        headers=headers,
    ).json()
    assert booking["ok"] is True
    app_id = booking["appointment_id"]

    bad = client.patch(f"/api/appointments/{app_id}/status", json={"status": "bogus"}, headers=headers)
    assert bad.status_code == 400
    assert "no_show" in bad.json()["detail"]["allowed"]

    ok = client.patch(f"/api/appointments/{app_id}/status", json={"status": "confirmed"}, headers=headers)
    assert ok.status_code == 200
    assert ok.json()["status_label"] == "Confirmed"

    missing = client.patch("/api/appointments/nope/status", json={"status": "confirmed"}, headers=headers)
    assert missing.status_code == 404

    day = client.get("/api/schedule", params={"day": "2031-03-03"}, headers=headers).json()
    assert [a["id"] for a in day] == [app_id]


def test_visit_transition_endpoint(client):
    headers = _login(client, "frontdesk")
    patient_id = _new_patient(client, headers)
    app_id = client.post(
        "/api/appointments",
        json={"patient_id": patient_id, "dentist_id": _dentist_id(client), "start": "2031-03-04T09:00:00"},
        headers=headers,
    ).json()["appointment_id"]

    url = f"/api/appointments/{app_id}/visit/transition"
    resp = client.post(url, json={"next_state": "CHECKED_IN"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["appointment"]["status"] == "checked_in"

    denied = client.post(url, json={"next_state": "EXAM_IN_PROGRESS"}, headers=_login(client, "drsmith"))
    assert denied.status_code == 400
    assert denied.json()["detail"] == "Invalid state transition"


def test_visit_transition_cannot_reopen_cancelled_appointment(client):
    headers = _login(client, "frontdesk")
    patient_id = _new_patient(client, headers)
    app_id = client.post(
        "/api/appointments",
        json={"patient_id": patient_id, "dentist_id": _dentist_id(client), "start": "2031-03-05T09:00:00"},
        headers=headers,
    ).json()["appointment_id"]
    client.patch(f"/api/appointments/{app_id}/status", json={"status": "cancelled"}, headers=headers)

    resp = client.post(f"/api/appointments/{app_id}/visit/transition", json={"next_state": "CHECKED_IN"}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Appointment is canceled"


def test_audit_trail_records_caller(client):
    headers = _login(client, "frontdesk")
    patient_id = _new_patient(client, headers)
    app_id = client.post(
        "/api/appointments",
        json={"patient_id": patient_id, "dentist_id": _dentist_id(client), "start": "2031-03-06T09:00:00"},
        headers=headers,
    ).json()["appointment_id"]
    client.patch(
        f"/api/appointments/{app_id}/status",
        json={"status": "confirmed"},
        headers={**headers, "X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
    )
    client.patch(
        f"/api/appointments/{app_id}/status",
        json={"status": "checked_in"},
        headers={**headers, "X-Real-IP": "198.51.100.2"},
    )

    assert client.get("/api/audit", headers=headers).status_code == 403

    admin = _login(client, "clinicadmin")
    entries = client.get("/api/audit", params={"record_id": app_id}, headers=admin).json()
    assert [e["action"] for e in entries] == [
        "appointment_status_change: confirmed -> checked_in",
        "appointment_status_change: pending -> confirmed",
    ]
    assert [e["ip_address"] for e in entries] == ["198.51.100.2", "203.0.113.7"]
    me = client.get("/api/me", headers=headers).json()
    assert {e["user_id"] for e in entries} == {me["id"]}


def test_estimate_permissions(client):
    body = {"procedure_fee": 100, "coverage_percentage": 80, "deductible_remaining": 50, "annual_max_remaining": 1000}
    resp = client.post("/api/insurance/estimate", json=body, headers=_login(client, "drsmith"))
    assert resp.status_code == 200
    assert resp.json()["insurance_estimate"] == 40.0
    assert resp.json()["patient_portion"] == 60.0

    # accountant reaches /insurance but lacks the estimator capability
    assert client.post("/api/insurance/estimate", json=body, headers=_login(client, "accountant")).status_code == 403
    # hygienist is stopped by the section rule
    assert client.post("/api/insurance/estimate", json=body, headers=_login(client, "hygienist")).status_code == 403


def test_estimate_without_annual_max_is_json_safe(client):
    resp = client.post("/api/insurance/estimate", json={"procedure_fee": 250}, headers=_login(client, "drsmith"))
    assert resp.status_code == 200
    assert resp.json()["insurance_estimate"] == 200.0
    assert resp.json()["capped_by_annual_max"] is False


def test_claim_lifecycle(client):
    front = _login(client, "frontdesk")
    patient_id = _new_patient(client, front)
    policy = client.post(
        "/api/insurance/policies",
        json={"patient_id": patient_id, "carrier_name": "Delta", "coverage_percentage": 80, "annual_max_remaining": 500},
        headers=front,
    )
    assert policy.status_code == 201
    policy_id = policy.json()["policy_id"]

    snapshot = client.post(f"/api/insurance/policies/{policy_id}/verify", headers=front).json()
    assert snapshot["status"] == "active"

    claim = client.post("/api/insurance/claims", json={"policy_id": policy_id, "procedure_fee": 300}, headers=front)
    assert claim.status_code == 201
    claim_id = claim.json()["id"]
    assert claim.json()["insurance_estimate"] == 240.0

    url = f"/api/insurance/claims/{claim_id}/remittance"
    assert client.post(url, json={"paid_amount": 240}, headers=front).status_code == 403
    paid = client.post(url, json={"paid_amount": 240}, headers=_login(client, "accountant"))
    assert paid.status_code == 200
    assert paid.json()["status"] == "paid"

    again = client.post(url, json={"paid_amount": 1}, headers=_login(client, "accountant"))
    assert again.status_code == 400


def test_dentist_cannot_create_policy(client):
    resp = client.post(
        "/api/insurance/policies",
        json={"patient_id": "x", "carrier_name": "Delta"},
        headers=_login(client, "drsmith"),
    )
    assert resp.status_code == 403


def test_public_intake_is_rate_limited(client):
    clinic_id = client.get("/api/me", headers=_login(client, "frontdesk")).json()["clinic_id"]
    body = {"clinic_id": clinic_id, "specialist_name": "Dr. Ortho", "specialty": "Orthodontics"}
    caller = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}

    for _ in range(INTAKE_RATE_LIMIT_MAX):
        assert client.post("/api/public/referral-intake", json=body, headers=caller).status_code == 201

    blocked = client.post("/api/public/referral-intake", json=body, headers=caller)
    assert blocked.status_code == 429
    assert int(blocked.headers["Retry-After"]) >= 1

    other_caller = {"X-Forwarded-For": "198.51.100.2"}
    assert client.post("/api/public/referral-intake", json=body, headers=other_caller).status_code == 201


def test_public_intake_unknown_clinic(client):
    body = {"clinic_id": "missing", "specialist_name": "Dr. Ortho", "specialty": "Orthodontics"}
    assert client.post("/api/public/referral-intake", json=body).status_code == 400


def test_notifications(client):
    headers = _login(client, "frontdesk")
    pending = client.get("/api/notifications/pending", headers=headers).json()
    assert pending
    first = pending[0]["id"]
    assert client.post(f"/api/notifications/{first}/sent", headers=headers).status_code == 200
    assert client.post(f"/api/notifications/{first}/sent", headers=headers).status_code == 404
