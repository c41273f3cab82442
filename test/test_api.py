"""
HTTP API: authentication, users, materials, deliveries, audit and settings
"""
import csv
import io
import json

import pytest

from auth.security import create_download_token
from database.models import UserRole, DeliveryStatus
from services import delivery_service

from conftest import DEFAULT_PASSWORD


@pytest.fixture
def admin(account_factory):
    return account_factory(role=UserRole.ADMIN, username="admin", first_name="System", last_name="Administrator")


@pytest.fixture
def teacher(account_factory):
    return account_factory(role=UserRole.TEACHER, username="prof.smith", first_name="John", last_name="Smith")


@pytest.fixture
def student(account_factory):
    return account_factory(username="john.doe", email="john.doe@studyq.edu")


def _actions(audit_store):
    return [e.action for e in audit_store.list()]


# Authentication

@pytest.mark.asyncio
async def test_login_returns_session_and_records_event(client, services, teacher):
    response = await client.post("/api/auth/login", json={"username": "prof.smith", "password": DEFAULT_PASSWORD})

    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["access_token"]
    assert data["mustChangePassword"] is False
    assert data["user"]["id"] == teacher.id
    assert "passwordHash" not in data["user"]
    assert _actions(services.audit_store) == ["LOGIN"]

    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert me.json()["username"] == "prof.smith"


@pytest.mark.asyncio
async def test_failed_login_is_audited_as_anonymous(client, services, teacher):
    response = await client.post("/api/auth/login", json={"username": "prof.smith", "password": "wrong"})

    assert response.status_code == 401
    event = services.audit_store.list()[0]
    assert event.action == "LOGIN_FAILED"
    assert event.userId == "anonymous"
    assert "prof.smith" in event.details


@pytest.mark.asyncio
async def test_fifth_failure_locks_the_account(client, teacher):
    for _ in range(5):
        await client.post("/api/auth/login", json={"username": "prof.smith", "password": "wrong"})

    response = await client.post("/api/auth/login", json={"username": "prof.smith", "password": DEFAULT_PASSWORD})

    assert response.status_code == 423


@pytest.mark.asyncio
async def test_inactive_account_cannot_login(client, services, teacher):
    services.credential_store.save(teacher.model_copy(update={"isActive": False}))

    response = await client.post("/api/auth/login", json={"username": "prof.smith", "password": DEFAULT_PASSWORD})

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_me_requires_a_valid_token(client):
    missing = await client.get("/api/auth/me")
    invalid = await client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})

    assert missing.status_code in (401, 403)
    assert invalid.status_code == 401


@pytest.mark.asyncio
async def test_change_password(client, services, teacher, auth_headers):
    mismatch = await client.post(
        "/api/auth/change-password",
        json={"currentPassword": DEFAULT_PASSWORD, "newPassword": "N3w-Passw0rd", "confirmPassword": "other"},
        headers=auth_headers(teacher)
    )
    assert mismatch.status_code == 400

    response = await client.post(
        "/api/auth/change-password",
        json={"currentPassword": DEFAULT_PASSWORD, "newPassword": "N3w-Passw0rd", "confirmPassword": "N3w-Passw0rd"},
        headers=auth_headers(teacher)
    )
    assert response.status_code == 200
    assert "PASSWORD_CHANGE" in _actions(services.audit_store)

    login = await client.post("/api/auth/login", json={"username": "prof.smith", "password": "N3w-Passw0rd"})
    assert login.status_code == 200


@pytest.mark.asyncio
async def test_validate_password_endpoint(client):
    response = await client.post("/api/auth/validate-password", json={"password": "abc"})

    data = response.json()
    assert data["isValid"] is False
    assert len(data["violations"]) == 4


# Users

@pytest.mark.asyncio
async def test_admin_creates_student_and_credentials_are_emailed(client, services, admin, auth_headers, email_sender):
    response = await client.post("/api/users", json={
        "firstName": "Asha", "lastName": "Rao", "email": "asha.rao@studyq.edu", "role": "student",
        "academicYear": 2024, "currentSemester": 2, "whatsappNumber": "98765 43210"
    }, headers=auth_headers(admin))

    assert response.status_code == 201
    data = response.json()
    assert data["credentialsSent"] is True
    assert "temporaryPassword" not in data
    assert data["user"]["username"] == "asha.rao"
    assert data["user"]["whatsappNumber"] == "+919876543210"
    assert data["user"]["mustChangePassword"] is True
    assert email_sender.calls[0]["to"] == "asha.rao@studyq.edu"
    assert "USER_CREATE" in _actions(services.audit_store)


@pytest.mark.asyncio
async def test_failed_credentials_email_returns_password_once(client, services, admin, auth_headers, email_sender):
    email_sender.success = False

    response = await client.post("/api/users", json={
        "firstName": "Ravi", "lastName": "Kumar", "email": "ravi@studyq.edu", "role": "teacher"
    }, headers=auth_headers(admin))

    data = response.json()
    assert data["credentialsSent"] is False
    login = await client.post(
        "/api/auth/login", json={"username": "ravi.kumar", "password": data["temporaryPassword"]}
    )
    assert login.status_code == 200
    assert login.json()["mustChangePassword"] is True


@pytest.mark.asyncio
async def test_create_user_validation(client, admin, auth_headers):
    bad_role = await client.post("/api/users", json={
        "firstName": "A", "lastName": "B", "email": "ab@studyq.edu", "role": "owner"
    }, headers=auth_headers(admin))
    no_semester = await client.post("/api/users", json={
        "firstName": "A", "lastName": "B", "email": "ab@studyq.edu", "role": "student"
    }, headers=auth_headers(admin))
    bad_phone = await client.post("/api/users", json={
        "firstName": "A", "lastName": "B", "email": "ab@studyq.edu", "role": "student",
        "academicYear": 2024, "currentSemester": 1, "whatsappNumber": "12345"
    }, headers=auth_headers(admin))

    assert bad_role.status_code == 400
    assert no_semester.status_code == 400
    assert bad_phone.status_code == 400


@pytest.mark.asyncio
async def test_user_management_is_admin_only(client, teacher, auth_headers):
    response = await client.get("/api/users", headers=auth_headers(teacher))

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_list_update_and_delete_users(client, services, admin, teacher, student, auth_headers):
    listed = await client.get("/api/users", params={"role": "student"}, headers=auth_headers(admin))
    assert [u["id"] for u in listed.json()["data"]] == [student.id]

    updated = await client.put(
        f"/api/users/{student.id}", json={"currentSemester": 5}, headers=auth_headers(admin)
    )
    assert updated.json()["currentSemester"] == 5

    duplicate = await client.put(
        f"/api/users/{student.id}", json={"email": teacher.email}, headers=auth_headers(admin)
    )
    assert duplicate.status_code == 400

    own = await client.delete(f"/api/users/{admin.id}", headers=auth_headers(admin))
    assert own.status_code == 400

    deleted = await client.delete(f"/api/users/{student.id}", headers=auth_headers(admin))
    assert deleted.status_code == 200
    assert services.credential_store.get(student.id) is None
    assert {"USER_UPDATE", "USER_DELETE"} <= set(_actions(services.audit_store))


@pytest.mark.asyncio
async def test_deactivated_user_loses_access(client, admin, student, auth_headers):
    response = await client.patch(
        f"/api/users/{student.id}/status", json={"isActive": False}, headers=auth_headers(admin)
    )
    assert response.json()["isActive"] is False

    me = await client.get("/api/auth/me", headers=auth_headers(student))
    assert me.status_code == 403


@pytest.mark.asyncio
async def test_reset_password(client, admin, student, auth_headers, email_sender):
    response = await client.post(f"/api/users/{student.id}/reset-password", headers=auth_headers(admin))

    assert response.json() == {"success": True, "credentialsSent": True}
    assert email_sender.calls[0]["subject"] == "StudyQ - Password Reset"
    old = await client.post("/api/auth/login", json={"username": "john.doe", "password": DEFAULT_PASSWORD})
    assert old.status_code == 401


@pytest.mark.asyncio
async def test_user_stats(client, admin, teacher, student, auth_headers):
    response = await client.get("/api/users/stats", headers=auth_headers(admin))

    assert response.json() == {"admin": 1, "teacher": 1, "student": 1, "active": 3, "total": 3}


# Materials

@pytest.mark.asyncio
async def test_upload_and_download_material(client, services, teacher, student, auth_headers):
    response = await client.post(
        "/api/materials",
        data={"title": "Graphs", "subject": "Computer Science", "semester": "2",
              "academicYear": "2024", "tags": "bfs, dfs ,"},
        files={"file": ("graphs notes.pdf", b"%PDF-1.4 graphs", "application/pdf")},
        headers=auth_headers(teacher)
    )

    assert response.status_code == 201
    material = response.json()
    assert material["fileName"] == "graphs_notes.pdf"
    assert material["fileSize"] == len(b"%PDF-1.4 graphs")
    assert material["tags"] == ["bfs", "dfs"]
    assert material["uploadedByName"] == "John Smith"

    download = await client.get(f"/api/materials/{material['id']}/download", headers=auth_headers(student))
    assert download.status_code == 200
    assert download.content == b"%PDF-1.4 graphs"
    assert 'filename="graphs_notes.pdf"' in download.headers["content-disposition"]
    assert services.material_store.get(material["id"]).downloadCount == 1
    assert _actions(services.audit_store)[:2] == ["MATERIAL_DOWNLOAD", "MATERIAL_UPLOAD"]


@pytest.mark.asyncio
async def test_upload_rejects_bad_files(client, teacher, student, auth_headers):
    form = {"title": "X", "subject": "Y", "semester": "1", "academicYear": "2024"}

    wrong_type = await client.post(
        "/api/materials", data=form, files={"file": ("run.exe", b"MZ", "application/octet-stream")},
        headers=auth_headers(teacher)
    )
    empty = await client.post(
        "/api/materials", data=form, files={"file": ("empty.pdf", b"", "application/pdf")},
        headers=auth_headers(teacher)
    )
    by_student = await client.post(
        "/api/materials", data=form, files={"file": ("notes.pdf", b"x", "application/pdf")},
        headers=auth_headers(student)
    )

    assert wrong_type.status_code == 400
    assert empty.status_code == 400
    assert by_student.status_code == 403


@pytest.mark.asyncio
async def test_material_listing_depends_on_role(client, admin, teacher, student, material_factory, auth_headers):
    own = material_factory(uploaded_by=teacher.id, semester=2)
    other = material_factory(uploaded_by="teacher-999", semester=5)

    as_admin = await client.get("/api/materials", headers=auth_headers(admin))
    as_teacher = await client.get("/api/materials", headers=auth_headers(teacher))
    as_student = await client.get("/api/materials", headers=auth_headers(student))

    assert {m["id"] for m in as_admin.json()["data"]} == {own.id, other.id}
    assert [m["id"] for m in as_teacher.json()["data"]] == [own.id]
    assert [m["id"] for m in as_student.json()["data"]] == [own.id]


@pytest.mark.asyncio
async def test_student_cannot_open_future_semester(client, student, material_factory, auth_headers):
    future = material_factory(semester=6)

    response = await client.get(f"/api/materials/{future.id}", headers=auth_headers(student))

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_teacher_cannot_edit_others_material(client, teacher, material_factory, auth_headers):
    material = material_factory(uploaded_by="teacher-999")

    response = await client.put(
        f"/api/materials/{material.id}", json={"title": "Mine now"}, headers=auth_headers(teacher)
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_download_with_signed_link(client, services, student, material_factory):
    material = material_factory()
    services.material_store.save_file(material.id, "aGVsbG8=")
    token = create_download_token(material.id, student.id)

    ok = await client.get(f"/api/materials/{material.id}/download", params={"token": token})
    forged = await client.get(f"/api/materials/{material.id}/download", params={"token": "forged"})
    anonymous = await client.get(f"/api/materials/{material.id}/download")

    assert ok.status_code == 200
    assert ok.content == b"hello"
    assert services.audit_store.list()[0].userId == student.id
    assert forged.status_code == 403
    assert anonymous.status_code == 401


@pytest.mark.asyncio
async def test_download_without_file_content(client, admin, material_factory, auth_headers):
    material = material_factory()

    response = await client.get(f"/api/materials/{material.id}/download", headers=auth_headers(admin))

    assert response.status_code == 404
    assert response.json()["detail"] == "File content not available"


# Deliveries

@pytest.mark.asyncio
async def test_student_requests_delivery(client, services, student, material_factory, auth_headers,
                                         email_sender, whatsapp_sender):
    material = material_factory(semester=2)
    whatsapp_sender.success = False

    response = await client.post("/api/deliveries", json={
        "materialId": material.id, "deliveryMethod": "both"
    }, headers=auth_headers(student))

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["message"] == delivery_service.EMAIL_ONLY_MESSAGE
    assert data["log"]["status"] == DeliveryStatus.SENT.value
    assert email_sender.calls[0]["to"] == "john.doe@studyq.edu"
    assert "MATERIAL_DELIVERY" in _actions(services.audit_store)

    history = await client.get("/api/deliveries", headers=auth_headers(student))
    assert history.json()["total"] == 1


@pytest.mark.asyncio
async def test_delivery_normalizes_whatsapp_override(client, student, material_factory, auth_headers, whatsapp_sender):
    material = material_factory()

    response = await client.post("/api/deliveries", json={
        "materialId": material.id, "deliveryMethod": "whatsapp", "whatsappNumber": "9123456789"
    }, headers=auth_headers(student))

    assert response.json()["success"] is True
    assert whatsapp_sender.calls[0]["to"] == "+919123456789"


@pytest.mark.asyncio
async def test_delivery_input_errors(client, services, student, material_factory, auth_headers):
    material = material_factory()
    hidden = material_factory(semester=8)

    bad_email = await client.post("/api/deliveries", json={
        "materialId": material.id, "deliveryMethod": "email", "email": "not-an-email"
    }, headers=auth_headers(student))
    bad_phone = await client.post("/api/deliveries", json={
        "materialId": material.id, "deliveryMethod": "whatsapp", "whatsappNumber": "12345"
    }, headers=auth_headers(student))
    missing = await client.post("/api/deliveries", json={
        "materialId": "MAT-missing", "deliveryMethod": "email"
    }, headers=auth_headers(student))
    not_visible = await client.post("/api/deliveries", json={
        "materialId": hidden.id, "deliveryMethod": "email"
    }, headers=auth_headers(student))

    assert bad_email.status_code == 400
    assert bad_phone.status_code == 400
    assert missing.status_code == 404
    assert not_visible.status_code == 403
    assert services.delivery_log_store.count() == 0


@pytest.mark.asyncio
async def test_teacher_sees_deliveries_of_own_materials(client, services, teacher, student, material_factory,
                                                        auth_headers):
    own = material_factory(uploaded_by=teacher.id)
    other = material_factory(uploaded_by="teacher-999")
    for material in (own, other):
        await client.post("/api/deliveries", json={
            "materialId": material.id, "deliveryMethod": "email"
        }, headers=auth_headers(student))

    response = await client.get("/api/deliveries", headers=auth_headers(teacher))

    assert [log["materialId"] for log in response.json()["data"]] == [own.id]


# Audit

@pytest.mark.asyncio
async def test_audit_list_filters_and_export(client, admin, teacher, auth_headers):
    await client.post("/api/auth/login", json={"username": "prof.smith", "password": DEFAULT_PASSWORD})
    await client.post("/api/auth/login", json={"username": "prof.smith", "password": "wrong"})

    failed = await client.get("/api/audit", params={"action": "login_failed"}, headers=auth_headers(admin))
    assert failed.json()["total"] == 1

    by_user = await client.get("/api/audit", params={"user": teacher.id}, headers=auth_headers(admin))
    assert [e["action"] for e in by_user.json()["data"]] == ["LOGIN"]

    exported = await client.get("/api/audit/export", params={"format": "csv"}, headers=auth_headers(admin))
    rows = list(csv.reader(io.StringIO(exported.text)))
    assert rows[0][:3] == ["id", "timestamp", "userId"]
    assert len(rows) == 3

    as_json = await client.get("/api/audit/export", params={"format": "json"}, headers=auth_headers(admin))
    assert [e["action"] for e in json.loads(as_json.content)] == ["LOGIN_FAILED", "LOGIN"]

    bad_format = await client.get("/api/audit/export", params={"format": "xml"}, headers=auth_headers(admin))
    assert bad_format.status_code == 422


@pytest.mark.asyncio
async def test_audit_rejects_bad_dates(client, admin, auth_headers):
    response = await client.get("/api/audit", params={"from": "yesterday"}, headers=auth_headers(admin))

    assert response.status_code == 400


# Settings

@pytest.mark.asyncio
async def test_settings_and_provider_tests(client, admin, auth_headers, email_sender, whatsapp_sender):
    settings = await client.get("/api/settings", headers=auth_headers(admin))
    assert settings.json()["security"]["maxLoginAttempts"] == 5
    assert settings.json()["security"]["lockoutDuration"] == 15

    email = await client.post("/api/settings/test-email", json={"to": "ops@studyq.edu"}, headers=auth_headers(admin))
    assert email.json()["success"] is True
    assert email_sender.calls[0]["to"] == "ops@studyq.edu"

    whatsapp = await client.post(
        "/api/settings/test-whatsapp", json={"to": "9876543210"}, headers=auth_headers(admin)
    )
    assert whatsapp.json()["success"] is True
    assert whatsapp_sender.calls[0]["to"] == "+919876543210"

    invalid = await client.post("/api/settings/test-email", json={"to": "nope"}, headers=auth_headers(admin))
    assert invalid.status_code == 400


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    data = response.json()
    assert data["checks"]["stores"]["initialized"] is True
    assert data["checks"]["email"]["configured"] is True
