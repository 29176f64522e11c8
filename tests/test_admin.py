from datetime import date, timedelta

from app.notaris.db import session_scope
from app.notaris.models import AuditEvent, User


def test_admin_never_sees_super_admins(client, login, seed):
    headers = login("admin@example.com")
    r = client.get("/api/admin/users")
    assert r.status_code == 200
    ids = {u["id"] for u in r.json["data"]}
    assert seed.superadmin not in ids
    assert r.json["meta"]["total"] == 5

    assert client.get(f"/api/admin/users/{seed.superadmin}").status_code == 403
    assert client.put(f"/api/admin/users/{seed.superadmin}", json={"name": "x"}, headers=headers).status_code == 403
    assert client.delete(f"/api/admin/users/{seed.superadmin}", headers=headers).status_code == 403

    r = client.get("/api/admin/users?search=klien")
    assert {u["id"] for u in r.json["data"]} == {seed.client, seed.other}
    r = client.get("/api/admin/users?role=staff")
    assert {u["id"] for u in r.json["data"]} == {seed.staff, seed.staff2}

    login("super@example.com")
    r = client.get("/api/admin/users")
    assert r.json["meta"]["total"] == 6


def test_create_user(client, login, seed):
    headers = login("admin@example.com")
    r = client.post("/api/admin/users", json={}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Name is required."
    assert len(r.json["errors"]) == 4

    r = client.post(
        "/api/admin/users",
        json={"name": "Root", "email": "root@example.com", "password": "password-123", "role": "SUPER_ADMIN"},
        headers=headers,
    )
    assert r.status_code == 403

    r = client.post(
        "/api/admin/users",
        json={"name": "Fajar", "email": "Fajar@Example.com", "password": "password-123", "role": "staff", "position": "Paralegal"},
        headers=headers,
    )
    assert r.status_code == 201, r.json
    user = r.json["user"]
    assert user["email"] == "fajar@example.com"
    assert user["role"] == "STAFF"
    assert user["staff"]["position"] == "Paralegal"
    assert user["client"] is None

    r = client.post(
        "/api/admin/users",
        json={"name": "Fajar 2", "email": "fajar@example.com", "password": "password-123", "role": "CLIENT"},
        headers=headers,
    )
    assert r.json["error"] == "An account with this email already exists."


def test_role_change_creates_missing_profile(client, login, seed):
    headers = login("admin@example.com")
    r = client.put(f"/api/admin/users/{seed.other}", json={"role": "STAFF", "position": "Magang"}, headers=headers)
    assert r.status_code == 200, r.json
    assert r.json["user"]["role"] == "STAFF"
    assert r.json["user"]["staff"]["position"] == "Magang"

    r = client.put(f"/api/admin/users/{seed.other}", json={"role": "SUPER_ADMIN"}, headers=headers)
    assert r.status_code == 403

    r = client.put(f"/api/admin/users/{seed.other}", json={"email": "not-an-email"}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Invalid email format."


def test_admins_cannot_lock_themselves_out(client, login, seed):
    headers = login("admin@example.com")
    r = client.put(f"/api/admin/users/{seed.admin}", json={"is_active": False}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "You cannot deactivate your own account."

    r = client.put(f"/api/admin/users/{seed.admin}", json={"role": "STAFF"}, headers=headers)
    assert r.status_code == 403
    assert r.json["error"] == "You cannot change your own role."

    r = client.delete(f"/api/admin/users/{seed.admin}", headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "You cannot delete your own account."


def test_delete_user_is_soft(app, client, login, seed):
    headers = login("admin@example.com")
    r = client.delete(f"/api/admin/users/{seed.staff2}", headers=headers)
    assert r.status_code == 200
    assert client.get(f"/api/admin/users/{seed.staff2}").status_code == 404

    with session_scope(app) as s:
        u = s.get(User, seed.staff2)
        assert u.deleted_at is not None
        assert u.is_active is False
        assert s.query(AuditEvent).filter(AuditEvent.action == "user.delete", AuditEvent.entity_id == str(seed.staff2)).count() == 1

    client.post("/api/auth/logout")
    r = client.post("/api/auth/login", json={"email": "staff2@example.com", "password": "password-123"})
    assert r.status_code == 401


def test_super_admin_can_remove_another_super_admin(client, login, seed):
    headers = login("super@example.com")
    r = client.post(
        "/api/admin/users",
        json={"name": "Root Dua", "email": "root2@example.com", "password": "password-123", "role": "SUPER_ADMIN"},
        headers=headers,
    )
    assert r.status_code == 201
    r = client.delete(f"/api/admin/users/{r.json['user']['id']}", headers=headers)
    assert r.status_code == 200


def test_branches_crud(client, login, seed):
    headers = login("admin@example.com")
    r = client.post("/api/admin/branches", json={"address": "Jl. Sudirman"}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Name is required."

    r = client.post("/api/admin/branches", json={"name": "Cabang Bandung", "phone": "022-123"}, headers=headers)
    assert r.status_code == 201
    branch_id = r.json["branch"]["id"]

    r = client.put(f"/api/admin/branches/{branch_id}", json={"is_active": False}, headers=headers)
    assert r.json["branch"]["is_active"] is False
    assert r.json["branch"]["phone"] == "022-123"

    r = client.get("/api/admin/branches")
    assert [b["name"] for b in r.json["branches"]] == ["Cabang Bandung"]

    assert client.delete(f"/api/admin/branches/{branch_id}", headers=headers).status_code == 200
    assert client.delete(f"/api/admin/branches/{branch_id}", headers=headers).status_code == 404

    login("staff@example.com")
    assert client.get("/api/admin/branches").status_code == 403


def test_audit_log_filters(client, login, seed):
    headers = login("admin@example.com")
    r = client.post("/api/admin/branches", json={"name": "Cabang Depok"}, headers=headers)
    client.put(f"/api/admin/branches/{r.json['branch']['id']}", json={"name": "Cabang Depok Baru"}, headers=headers)

    r = client.get("/api/admin/audit-logs?action=branch.")
    assert r.status_code == 200
    assert [e["action"] for e in r.json["data"]] == ["branch.update", "branch.create"]
    assert r.json["data"][1]["metadata"] == {"name": "Cabang Depok"}
    assert r.json["data"][0]["actor_user_email"] == "admin@example.com"

    r = client.get(f"/api/admin/audit-logs?entity_type=Branch&user_id={seed.admin}")
    assert r.json["meta"]["total"] == 2

    yesterday = (date.today() - timedelta(days=1)).isoformat()
    tomorrow = (date.today() + timedelta(days=1)).isoformat()
    r = client.get(f"/api/admin/audit-logs?action=branch.&from={yesterday}&to={tomorrow}")
    assert r.json["meta"]["total"] == 2
    r = client.get("/api/admin/audit-logs?action=branch.&to=2000-01-01")
    assert r.json["meta"]["total"] == 0

    r = client.get("/api/admin/audit-logs?from=01-01-2026")
    assert r.status_code == 400
    assert r.json["error"] == "from must be YYYY-MM-DD"


def test_site_settings(client, login, seed):
    headers = login("admin@example.com")
    r = client.put("/api/admin/settings", json={"settings": [{"key": "office_name", "value": "Kantor Notaris Sejahtera", "is_public": True}]}, headers=headers)
    assert r.status_code == 200
    assert r.json["keys"] == ["office_name"]

    r = client.get("/api/admin/settings")
    assert r.json["settings"][0]["key"] == "office_name"
    assert r.json["settings"][0]["value"] == "Kantor Notaris Sejahtera"
    assert r.json["settings"][0]["is_public"] is True

    r = client.put("/api/admin/settings", json={"settings": [{"key": "feature_flags", "value": "{}"}]}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Setting 'feature_flags' is managed by its own endpoint."

    r = client.put("/api/admin/settings", json={"settings": []}, headers=headers)
    assert r.status_code == 400

    r = client.put("/api/admin/settings", json={"settings": [{"value": "x"}]}, headers=headers)
    assert r.json["error"] == "Each setting needs a key."
