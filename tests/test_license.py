from datetime import datetime, timedelta
from types import SimpleNamespace

from app.notaris.db import session_scope
from app.notaris.models import AuditEvent, License
from app.notaris.modules.license import service as license_service
from app.notaris.modules.license.client import (
    LicenseServerClient,
    LicenseServerError,
    generate_license_key,
    mask_key,
    validate_key_format,
)


def test_key_helpers():
    key = generate_license_key()
    assert validate_key_format(key)
    assert not validate_key_format("NTRS-0000-AAAA-BBBB-CCCC")
    assert not validate_key_format("ABCD-AAAA-BBBB-CCCC-DDDD")
    assert mask_key("NTRS-ABCD-EFGH-JKLM-NPQR") == "NTRS-ABCD-****-****-NPQR"
    assert mask_key("bogus") == "****"


def test_public_license_status(client):
    r = client.get("/api/license-status")
    assert r.status_code == 200
    assert r.json == {"has_active_license": True, "package_type": "complete", "is_expired": False}


def test_license_admin_is_super_admin_only(client, login):
    login("admin@example.com")
    assert client.get("/api/admin/license").status_code == 403

    login("super@example.com")
    r = client.get("/api/admin/license")
    assert r.status_code == 200
    assert r.json["license"]["license_key"] == "NTRS-TEST-****-****-TEST"
    assert r.json["current_domain"] == "notaris.test"


def test_activate_rejects_malformed_key(client, login):
    headers = login("super@example.com")
    r = client.post("/api/admin/license", json={"license_key": "not-a-key"}, headers=headers)
    assert r.status_code == 400
    assert "format" in r.json["error"]


def test_activate_applies_package_flags(client, login, monkeypatch):
    calls = []

    def fake_post(self, path, body):
        calls.append((path, body))
        return {
            "success": True,
            "license": {
                "packageType": "no_ai",
                "domain": "notaris.test",
                "holderName": "Notaris Dewi",
                "officeName": "Kantor Notaris Dewi",
                "expiresAt": "2099-01-01T00:00:00",
            },
        }

    monkeypatch.setattr(LicenseServerClient, "post_json", fake_post)
    headers = login("super@example.com")
    key = "NTRS-ABCD-EFGH-JKLM-NPQR"
    r = client.post("/api/admin/license", json={"license_key": key.lower()}, headers=headers)
    assert r.status_code == 200, r.json
    assert r.json["license"]["package_type"] == "no_ai"
    assert calls[0][0] == "/api/licenses/activate"
    assert calls[0][1]["licenseKey"] == key
    assert calls[0][1]["domain"] == "notaris.test"

    with session_scope(client.application) as s:
        active = s.query(License).filter(License.is_active.is_(True)).all()
        assert [lic.license_key for lic in active] == [key]

    r = client.get("/api/feature-flags")
    assert r.json["flags"]["active_package"] == "no_ai"
    assert "ai_chatbot" not in r.json["flags"]["enabled_features"]["CLIENT"]
    assert "documents" in r.json["flags"]["enabled_features"]["CLIENT"]


def test_activate_reports_unreachable_server(client, login, monkeypatch):
    def boom(self, path, body):
        raise LicenseServerError("down")

    monkeypatch.setattr(LicenseServerClient, "post_json", boom)
    headers = login("super@example.com")
    r = client.post("/api/admin/license", json={"license_key": "NTRS-ABCD-EFGH-JKLM-NPQR"}, headers=headers)
    assert r.status_code == 400
    assert "license server" in r.json["error"]


def test_verify_keeps_license_during_outage(client, login, monkeypatch):
    def boom(self, path, body):
        raise LicenseServerError("down")

    monkeypatch.setattr(LicenseServerClient, "post_json", boom)
    headers = login("super@example.com")
    r = client.post("/api/admin/license/verify", headers=headers)
    assert r.status_code == 200
    assert r.json["valid"] is True
    assert "offline" in r.json["error"]


def test_verify_rejection_deactivates(client, login, monkeypatch):
    monkeypatch.setattr(LicenseServerClient, "post_json", lambda self, path, body: {"valid": False, "error": "Revoked"})
    headers = login("super@example.com")
    r = client.post("/api/admin/license/verify", headers=headers)
    assert r.json["valid"] is False
    assert r.json["error"] == "Revoked"
    assert client.get("/api/license-status").json["has_active_license"] is False


def test_deactivate(client, login):
    headers = login("super@example.com")
    r = client.delete("/api/admin/license", headers=headers)
    assert r.status_code == 200
    assert r.json["deactivated"] == 1
    assert client.get("/api/license-status").json["has_active_license"] is False


def _expire_license(app):
    with session_scope(app) as s:
        lic = s.query(License).filter(License.is_active.is_(True)).one()
        lic.expires_at = datetime.utcnow() - timedelta(days=1)


def test_verify_expired_license_deactivates_without_server_call(app, client, login, monkeypatch):
    def unexpected(self, path, body):
        raise AssertionError(f"license server called: {path}")

    monkeypatch.setattr(LicenseServerClient, "post_json", unexpected)
    _expire_license(app)
    headers = login("super@example.com")
    r = client.post("/api/admin/license/verify", headers=headers)
    assert r.status_code == 200
    assert r.json == {"valid": False, "error": "License expired"}
    with session_scope(app) as s:
        assert s.query(License).filter(License.is_active.is_(True)).count() == 0


def test_login_blocked_when_license_expired(app, client, login):
    _expire_license(app)
    r = client.post("/api/auth/login", json={"email": "staff@example.com", "password": "password-123"})
    assert r.status_code == 403
    assert r.json["error"] == "No active license. Contact the office administrator."
    assert client.get("/api/auth/me").status_code == 401

    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "auth.login_blocked").count() == 1

    # super admins can still sign in to fix the license
    login("super@example.com")


def test_license_status_cache(app, client, login, monkeypatch):
    clock = [1000.0]
    monkeypatch.setattr(license_service, "time", SimpleNamespace(monotonic=lambda: clock[0]))

    assert client.get("/api/license-status").json["has_active_license"] is True
    with session_scope(app) as s:
        s.query(License).update({License.is_active: False})
    assert client.get("/api/license-status").json["has_active_license"] is True

    clock[0] += license_service.STATUS_CACHE_TTL + 1
    assert client.get("/api/license-status").json["has_active_license"] is False

    monkeypatch.setattr(
        LicenseServerClient,
        "post_json",
        lambda self, path, body: {"success": True, "license": {"packageType": "complete", "expiresAt": "2099-01-01T00:00:00"}},
    )
    headers = login("super@example.com")
    r = client.post("/api/admin/license", json={"license_key": "NTRS-ABCD-EFGH-JKLM-NPQR"}, headers=headers)
    assert r.status_code == 200, r.json
    # activation drops the cached status without waiting for the TTL
    assert client.get("/api/license-status").json["has_active_license"] is True

    client.delete("/api/admin/license", headers=headers)
    assert client.get("/api/license-status").json["has_active_license"] is False
