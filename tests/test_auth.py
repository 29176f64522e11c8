from app.notaris import auth
from app.notaris.db import session_scope
from app.notaris.models import AuditEvent, License, User


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True

    r = client.get("/healthz")
    assert r.status_code == 200


def test_login_and_me(client, login):
    r = client.get("/api/auth/me")
    assert r.status_code == 401
    assert r.json["error"] == "Unauthorized"

    login("client@example.com")
    r = client.get("/api/auth/me")
    assert r.status_code == 200
    assert r.json["user"]["email"] == "client@example.com"
    assert r.json["user"]["role"] == "CLIENT"
    assert r.json["user"]["client"]["company_name"] == "PT Maju"


def test_login_rejects_bad_password_and_audits(client):
    r = client.post("/api/auth/login", json={"email": "client@example.com", "password": "wrong"})
    assert r.status_code == 401
    assert r.json["error"] == "Invalid credentials."

    with session_scope(client.application) as s:
        actions = [e.action for e in s.query(AuditEvent).all()]
        assert "auth.login_failed" in actions


def test_login_rate_limited_after_five_attempts(client):
    for _ in range(5):
        r = client.post("/api/auth/login", json={"email": "client@example.com", "password": "wrong"})
        assert r.status_code == 401
    r = client.post("/api/auth/login", json={"email": "client@example.com", "password": "password-123"})
    assert r.status_code == 429


def test_login_blocked_without_active_license_except_super_admin(client):
    with session_scope(client.application) as s:
        s.query(License).update({License.is_active: False})

    r = client.post("/api/auth/login", json={"email": "staff@example.com", "password": "password-123"})
    assert r.status_code == 403

    r = client.post("/api/auth/login", json={"email": "super@example.com", "password": "password-123"})
    assert r.status_code == 200


def test_inactive_user_cannot_login(client):
    with session_scope(client.application) as s:
        s.query(User).filter(User.email == "other@example.com").update({User.is_active: False})
    r = client.post("/api/auth/login", json={"email": "other@example.com", "password": "password-123"})
    assert r.status_code == 401


def test_mutation_without_csrf_token_is_rejected(client, login):
    headers = login("client@example.com")
    r = client.patch("/api/profile", json={"name": "Dewi Baru"})
    assert r.status_code == 400
    assert "CSRF" in r.json["error"]

    r = client.patch("/api/profile", json={"name": "Dewi Baru"}, headers=headers)
    assert r.status_code == 200
    assert r.json["user"]["name"] == "Dewi Baru"
    assert r.json["changed"] == ["name"]


def test_csrf_endpoint_returns_session_token(client, login):
    headers = login("client@example.com")
    r = client.get("/api/auth/csrf")
    assert r.json["csrf_token"] == headers["X-CSRF-Token"]


def test_logout_clears_session(client, login):
    login("client@example.com")
    r = client.post("/api/auth/logout")
    assert r.status_code == 200
    assert client.get("/api/auth/me").status_code == 401


def test_register_creates_client_with_profile(client):
    r = client.post("/api/auth/register", json={"name": "Fajar", "email": "Fajar@Example.com", "password": "secret1"})
    assert r.status_code == 201
    assert r.json["user"]["email"] == "fajar@example.com"
    assert r.json["user"]["role"] == "CLIENT"
    assert r.json["user"]["client"]["client_number"].startswith("CLT")

    r = client.post("/api/auth/register", json={"name": "Fajar", "email": "fajar@example.com", "password": "secret1"})
    assert r.status_code == 400

    r = client.post("/api/auth/register", json={"name": "", "email": "x@example.com", "password": "1"})
    assert r.status_code == 400
    assert r.json["errors"] == ["Name is required.", "Password must be at least 6 characters."]


def test_password_reset_flow(client, monkeypatch):
    sent = {}

    def fake_send(to, name, url):
        sent["to"] = to
        sent["url"] = url
        return True, "sent"

    monkeypatch.setattr(auth, "send_password_reset_email", fake_send)

    r = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
    assert r.status_code == 200
    assert r.json["message"] == auth.FORGOT_PASSWORD_MESSAGE
    assert sent == {}

    r = client.post("/api/auth/forgot-password", json={"email": "client@example.com"})
    assert r.status_code == 200
    assert r.json["message"] == auth.FORGOT_PASSWORD_MESSAGE
    assert sent["to"] == "client@example.com"
    token = sent["url"].split("token=", 1)[1]

    r = client.post("/api/auth/reset-password", json={"token": token, "password": "short"})
    assert r.status_code == 400

    r = client.post("/api/auth/reset-password", json={"token": token, "password": "brand-new-password"})
    assert r.status_code == 200

    # tokens are single use
    r = client.post("/api/auth/reset-password", json={"token": token, "password": "another-password"})
    assert r.status_code == 400

    r = client.post("/api/auth/login", json={"email": "client@example.com", "password": "brand-new-password"})
    assert r.status_code == 200


def test_setup_is_closed_once_super_admin_exists(client):
    r = client.get("/api/auth/setup")
    assert r.json["has_admin"] is True
    r = client.post("/api/auth/setup", json={"name": "X", "email": "x@example.com", "password": "long-enough"})
    assert r.status_code == 403


def test_setup_creates_first_super_admin(app):
    c = app.test_client()
    r = c.get("/api/auth/setup")
    assert r.json["has_admin"] is False
    r = c.post("/api/auth/setup", json={"name": "Owner", "email": "owner@example.com", "password": "long-enough"})
    assert r.status_code == 201
    assert r.json["user"]["role"] == "SUPER_ADMIN"


def test_unknown_api_route_returns_json_404(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert "error" in r.json


def test_unmigrated_database_reports_schema_out_of_date(tmp_path, monkeypatch):
    from app.notaris import create_app

    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'empty.db'}")
    monkeypatch.setenv("ENV", "test")
    app = create_app()
    r = app.test_client().get("/api/license-status")
    assert r.status_code == 500
    assert r.json["error"] == "schema out of date"
    assert "users" in r.json["missing"]
