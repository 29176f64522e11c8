from app.notaris.db import session_scope
from app.notaris.modules.feature_flags.definitions import features_for_package
from app.notaris.modules.feature_flags.service import is_feature_enabled, save_flags


def test_package_presets():
    complete = features_for_package("complete")
    no_ai = features_for_package("no_ai")
    limited = features_for_package("limited_ai")

    assert "ai_chatbot" in complete["CLIENT"]
    assert "ai_chatbot" not in limited["CLIENT"]
    assert "ai_summarize" in limited["CLIENT"]
    assert not any(k.startswith("ai_") for k in no_ai["ADMIN"])
    # admin-only features never leak to other roles
    assert "user_management" in complete["ADMIN"]
    assert "user_management" not in complete["STAFF"]
    assert "repertorium" not in complete["CLIENT"]


def test_super_admin_bypasses_flags(app, seed):
    with session_scope(app) as s:
        save_flags(s, package=None, enabled_features={"ADMIN": [], "STAFF": [], "CLIENT": []})
    with session_scope(app) as s:
        assert is_feature_enabled(s, "SUPER_ADMIN", "billing") is True
        assert is_feature_enabled(s, "ADMIN", "billing") is False


def test_custom_flags_drop_unknown_and_inapplicable_keys(client, login):
    headers = login("super@example.com")
    r = client.put(
        "/api/feature-flags",
        json={"package": "custom", "enabled_features": {"CLIENT": ["documents", "repertorium", "nope"], "STAFF": ["documents"]}},
        headers=headers,
    )
    assert r.status_code == 200
    flags = r.json["flags"]
    assert flags["active_package"] == "custom"
    assert flags["enabled_features"]["CLIENT"] == ["documents"]
    assert flags["enabled_features"]["ADMIN"] == []


def test_disabled_feature_returns_403(client, login):
    headers = login("super@example.com")
    r = client.put("/api/feature-flags", json={"enabled_features": {"CLIENT": ["dashboard"]}}, headers=headers)
    assert r.status_code == 200

    login("client@example.com")
    r = client.get("/api/documents")
    assert r.status_code == 403
    assert r.json["error"] == "Feature is not available in your license package"

    r = client.get("/api/feature-flags")
    assert r.json["my_features"] == ["dashboard"]


def test_flag_update_validation_and_role_gate(client, login):
    headers = login("admin@example.com")
    r = client.put("/api/feature-flags", json={"package": "no_ai"}, headers=headers)
    assert r.status_code == 403

    headers = login("super@example.com")
    r = client.put("/api/feature-flags", json={}, headers=headers)
    assert r.status_code == 400
    r = client.put("/api/feature-flags", json={"package": "platinum"}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"].startswith("Unknown package")
