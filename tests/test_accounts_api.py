"""API tests for registration, login and patient accounts."""

from conftest import DEFAULT_PASSWORD, make_admin, register_patient
from services.patient_service import get_user_by_email


class TestRegister:
    def test_creates_account(self, client):
        response = client.post(
            "/api/v1/auth/register",
            json={"name": "Grace Hopper", "email": "Grace@Example.com", "password": "Passw0rdX"},
        )
        assert response.status_code == 201
        user = response.json()["user"]
        assert user["email"] == "grace@example.com"
        assert user["patient_id"].startswith("ZNR-")
        assert len(user["patient_id"]) == 13
        assert user["onboarding_done"] is False
        assert user["role"] == "PATIENT"
        assert "hashed_password" not in user

    def test_patients_alias(self, client):
        response = client.post(
            "/api/v1/patients",
            json={"name": "Grace Hopper", "email": "grace@example.com", "password": "Passw0rdX"},
        )
        assert response.status_code == 201

    def test_duplicate_email_conflicts(self, client, patient):
        response = client.post(
            "/api/v1/auth/register",
            json={"name": "Someone", "email": patient.email.upper(), "password": "Passw0rdX"},
        )
        assert response.status_code == 409
        assert response.json()["error"] == "HTTP_409"

    def test_weak_password_rejected(self, client):
        response = client.post(
            "/api/v1/auth/register",
            json={"name": "Weak", "email": "weak@example.com", "password": "alllowercase1"},
        )
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert "password" in body["message"]

    def test_short_name_rejected(self, client):
        response = client.post(
            "/api/v1/auth/register",
            json={"name": " A ", "email": "a@example.com", "password": "Passw0rdX"},
        )
        assert response.status_code == 400
        assert "name" in response.json()["message"]

    def test_invalid_email_rejected(self, client):
        response = client.post(
            "/api/v1/auth/register",
            json={"name": "Anna", "email": "not-an-email", "password": "Passw0rdX"},
        )
        assert response.status_code == 400

    def test_records_client_ip(self, client):
        client.post(
            "/api/v1/auth/register",
            json={"name": "Ip Test", "email": "ip@example.com", "password": "Passw0rdX"},
            headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
        )
        session = client.app.state.database.session()
        try:
            assert get_user_by_email(session, "ip@example.com").ip_address == "203.0.113.7"
        finally:
            session.close()


class TestLogin:
    def test_returns_token(self, client, patient):
        response = client.post(
            "/api/v1/auth/login", json={"email": patient.email, "password": DEFAULT_PASSWORD}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["access_token"]
        assert body["user"]["id"] == patient.id

    def test_wrong_password(self, client, patient):
        response = client.post(
            "/api/v1/auth/login", json={"email": patient.email, "password": "Wrong1234"}
        )
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid credentials"

    def test_unknown_email(self, client):
        response = client.post(
            "/api/v1/auth/login", json={"email": "nobody@example.com", "password": "Wrong1234"}
        )
        assert response.status_code == 401

    def test_invalid_token(self, client):
        response = client.get(
            "/api/v1/medical-profile", headers={"Authorization": "Bearer not-a-token"}
        )
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_track_ip(self, client, patient):
        response = client.post(
            "/api/v1/auth/track-ip", headers={**patient.headers, "X-Real-IP": "198.51.100.4"}
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "ip": "198.51.100.4"}


class TestPatients:
    def test_get_self(self, client, patient):
        response = client.get(f"/api/v1/patients/{patient.id}", headers=patient.headers)
        assert response.status_code == 200
        detail = response.json()["patient"]
        assert detail["email"] == patient.email
        assert detail["medical_profile"] is None
        assert detail["onboarding_responses"] == []

    def test_other_patient_forbidden(self, client, patient):
        other = register_patient(client, email="other@example.com")
        response = client.get(f"/api/v1/patients/{other.id}", headers=patient.headers)
        assert response.status_code == 403

    def test_admin_can_read_any_patient(self, client, patient):
        admin = register_patient(client, email="admin@example.com")
        make_admin(client, admin.id)

        response = client.get(f"/api/v1/patients/{patient.id}", headers=admin.headers)
        assert response.status_code == 200

    def test_admin_unknown_patient(self, client):
        admin = register_patient(client, email="admin@example.com")
        make_admin(client, admin.id)

        response = client.get("/api/v1/patients/missing", headers=admin.headers)
        assert response.status_code == 404
        assert response.json()["message"] == "Patient not found"

    def test_update_name(self, client, patient):
        response = client.patch(
            f"/api/v1/patients/{patient.id}", json={"name": "Ada King"}, headers=patient.headers
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Profile updated"
        assert response.json()["patient"]["name"] == "Ada King"

    def test_change_password(self, client, patient):
        response = client.patch(
            f"/api/v1/patients/{patient.id}",
            json={"current_password": DEFAULT_PASSWORD, "new_password": "NewSecret456"},
            headers=patient.headers,
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Password updated"

        login = client.post(
            "/api/v1/auth/login", json={"email": patient.email, "password": "NewSecret456"}
        )
        assert login.status_code == 200

    def test_change_password_wrong_current(self, client, patient):
        response = client.patch(
            f"/api/v1/patients/{patient.id}",
            json={"current_password": "Wrong1234", "new_password": "NewSecret456"},
            headers=patient.headers,
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Current password is incorrect"

    def test_change_password_weak_new(self, client, patient):
        response = client.patch(
            f"/api/v1/patients/{patient.id}",
            json={"current_password": DEFAULT_PASSWORD, "new_password": "weak"},
            headers=patient.headers,
        )
        assert response.status_code == 400

    def test_update_other_patient_forbidden(self, client, patient):
        other = register_patient(client, email="other@example.com")
        response = client.patch(
            f"/api/v1/patients/{other.id}", json={"name": "Hacker"}, headers=patient.headers
        )
        assert response.status_code == 403

    def test_delete_account_cascades(self, client, patient):
        client.post(
            "/api/v1/side-effects",
            json={"symptom": "Nausea", "severity": 4},
            headers=patient.headers,
        )
        response = client.delete(f"/api/v1/patients/{patient.id}", headers=patient.headers)
        assert response.status_code == 204

        # Token now points at a deleted user
        after = client.get("/api/v1/side-effects", headers=patient.headers)
        assert after.status_code == 401


class TestAdmin:
    def test_skip_onboarding(self, client, patient):
        response = client.post("/api/v1/admin/skip-onboarding", headers=patient.headers)
        assert response.status_code == 200

        detail = client.get(f"/api/v1/patients/{patient.id}", headers=patient.headers).json()
        assert detail["patient"]["onboarding_done"] is True
        assert detail["patient"]["medical_profile"]["cancer_type"] == "Not specified"

    def test_skip_onboarding_keeps_existing_profile(self, client, patient):
        client.put(
            "/api/v1/medical-profile", json={"cancer_type": "lung"}, headers=patient.headers
        )
        client.post("/api/v1/admin/skip-onboarding", headers=patient.headers)

        profile = client.get("/api/v1/medical-profile", headers=patient.headers).json()
        assert profile["cancer_type"] == "lung"

    def test_seed_questions_requires_admin(self, client, patient):
        response = client.post("/api/v1/admin/seed-questions", headers=patient.headers)
        assert response.status_code == 403

    def test_seed_questions(self, client, patient):
        make_admin(client, patient.id)
        response = client.post("/api/v1/admin/seed-questions", headers=patient.headers)
        assert response.status_code == 200
        assert response.json()["count"] == 3
