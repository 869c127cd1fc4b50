"""End-to-end checks through the FastAPI app with an in-memory object store."""
from __future__ import annotations

from conftest import PASSWORD, bearer


def test_healthz_and_security_headers(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_download_requires_authentication(client, make_resource):
    resource = make_resource()
    response = client.post(f"/resources/{resource.id}/download")
    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "error": {"kind": "unauthenticated", "message": "Authentication required. Please log in."},
    }


def test_download_unknown_resource_is_404(client, make_user):
    user = make_user()
    response = client.post("/resources/9999/download", headers=bearer(user.id, "user", "user"))
    assert response.status_code == 404
    assert response.json()["error"]["kind"] == "not_found"


def test_premium_download_without_subscription_is_403(client, repo, make_user, make_resource):
    user = make_user()
    resource = make_resource(paid="premium")

    response = client.post(f"/resources/{resource.id}/download", headers=bearer(user.id, "user", "user"))

    assert response.status_code == 403
    body = response.json()
    assert body["error"]["kind"] == "no_active_subscription"
    assert "url" not in body
    assert repo.get_resource(resource.id).download_count == 0


def test_premium_download_with_subscription_returns_url(client, repo, make_user, make_resource, make_subscription):
    user = make_user()
    make_subscription(user_id=user.id)
    resource = make_resource(paid="premium")

    response = client.post(f"/resources/{resource.id}/download", headers=bearer(user.id, "user", "user"))

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["resource_id"] == resource.id
    assert body["url"].startswith("https://storage.test/")
    assert body["expires_at"]
    assert repo.get_resource(resource.id).download_count == 1


def test_provider_failure_is_502_without_details(client, storage, make_user, make_resource):
    user = make_user()
    resource = make_resource()
    storage.fail = True

    response = client.post(f"/resources/{resource.id}/download", headers=bearer(user.id, "user", "user"))

    assert response.status_code == 502
    assert response.json()["error"] == {"kind": "upstream_failure", "message": "Download failed"}


def test_login_cookie_flow_refresh_and_logout(client, make_user):
    make_user()
    response = client.post("/auth/login/user", json={"email": "reader@example.com", "password": PASSWORD})
    assert response.status_code == 200
    assert "access_token" in response.cookies
    assert "refresh_token" in response.cookies

    me = client.get("/auth/me")
    assert me.status_code == 200
    assert me.json()["actor_type"] == "user"

    refreshed = client.post("/auth/refresh")
    assert refreshed.status_code == 200

    assert client.post("/auth/logout").status_code == 200
    assert client.post("/auth/refresh").status_code == 401


def test_login_with_bad_credentials(client, make_user):
    make_user()
    response = client.post("/auth/login/user", json={"email": "reader@example.com", "password": "wrong"})
    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Invalid email or password"


def test_validation_errors_use_the_error_envelope(client):
    response = client.post("/auth/register", json={"name": "X", "email": "bad", "password": "1"})
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["kind"] == "validation"
    assert "email" in error["fields"]


def test_public_catalog_lists_only_published(client, make_resource):
    make_resource(title="Visible")
    make_resource(title="Hidden", status="unpublished")

    response = client.get("/resources", params={"limit": 5})

    body = response.json()
    assert body["total"] == 1
    assert body["totalPages"] == 1
    assert body["data"][0]["title"] == "Visible"
    assert body["data"][0]["category_name"] == "Science"
    assert "file_key" not in body["data"][0]


def test_admin_routes_require_admin(client, make_user, make_admin):
    user = make_user()
    assert client.get("/admin/dashboard").status_code == 401
    assert client.get("/admin/dashboard", headers=bearer(user.id, "user", "user")).status_code == 403

    staff = make_admin("staff@example.com", role="staff")
    assert client.get("/admin/dashboard", headers=bearer(staff.id, "admin", "staff")).status_code == 200
    assert client.get("/admin/admins", headers=bearer(staff.id, "admin", "staff")).status_code == 403


def test_admin_upload_and_delete_resource(client, repo, storage, make_admin):
    admin = make_admin()
    headers = bearer(admin.id, "admin", "admin")
    category = repo.create_category(name="Law")
    author = repo.create_author(name="Grotius")

    response = client.post(
        "/admin/resources",
        headers=headers,
        data={"title": "On the Law of War", "category_id": str(category.id), "author_ids": str(author.id), "paid": "premium"},
        files={"file": ("law.pdf", b"%PDF-1.4 law", "application/pdf")},
    )
    assert response.status_code == 201, response.text
    created = response.json()["data"]
    assert created["paid"] == "premium"
    key = repo.get_resource(created["id"]).file_key
    assert storage.exists(key)

    detail = client.get(f"/admin/resources/{created['id']}", headers=headers).json()
    assert detail["preview_url"].startswith("https://storage.test/")

    assert client.delete(f"/admin/resources/{created['id']}", headers=headers).status_code == 200
    assert not storage.exists(key)


def test_admin_upload_rejects_bad_format(client, repo, storage, make_admin):
    admin = make_admin()
    category = repo.create_category(name="Law")
    author = repo.create_author(name="Grotius")

    response = client.post(
        "/admin/resources",
        headers=bearer(admin.id, "admin", "admin"),
        data={"title": "Script", "category_id": str(category.id), "author_ids": str(author.id)},
        files={"file": ("run.sh", b"#!/bin/sh", "text/x-shellscript")},
    )

    assert response.status_code == 400
    assert response.json()["error"]["fields"] == {"file": "format"}
    assert not [call for call in storage.calls if call[0] == "put"]


def test_admin_cannot_delete_self(client, make_admin):
    admin = make_admin()
    response = client.delete(f"/admin/admins/{admin.id}", headers=bearer(admin.id, "admin", "admin"))
    assert response.status_code == 403


def test_institution_portal(client, make_institution, make_user, make_subscription):
    inst = make_institution()
    make_user("student@uni.example", role="student", institution_id=inst.id)
    make_subscription(institution_id=inst.id)
    headers = bearer(inst.id, "institution")

    students = client.get("/institution/students", headers=headers).json()
    assert students["total"] == 1

    status = client.get("/me/subscription", headers=headers).json()["data"]
    assert status["has_access"] is True
    assert status["subscription"]["is_active"] is True


def test_student_sees_institution_access(client, make_institution, make_user, make_subscription):
    inst = make_institution()
    student = make_user("student@uni.example", role="student", institution_id=inst.id)
    make_subscription(institution_id=inst.id)

    status = client.get("/me/subscription", headers=bearer(student.id, "user", "student")).json()["data"]
    assert status["billing_owner_type"] == "institution"
    assert status["billing_owner_id"] == inst.id
    assert status["has_access"] is True
