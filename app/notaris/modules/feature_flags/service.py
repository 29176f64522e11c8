from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.notaris.audit import record_event
from app.notaris.constants import FLAGGED_ROLES, ROLE_SUPER_ADMIN, SETTING_FEATURE_FLAGS
from app.notaris.modules.feature_flags.definitions import (
    DEFAULT_PACKAGE,
    FEATURES_BY_KEY,
    PACKAGES,
    features_for_package,
)
from app.notaris.site_settings import get_json_setting, set_json_setting

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.notaris.models import User


def default_flags() -> dict[str, Any]:
    return {
        "active_package": DEFAULT_PACKAGE,
        "enabled_features": features_for_package(DEFAULT_PACKAGE),
        "updated_at": None,
    }


def _sanitize(enabled: dict[str, Any]) -> dict[str, list[str]]:
    """Drop unknown keys and keys that do not apply to the role."""
    out: dict[str, list[str]] = {}
    for role in FLAGGED_ROLES:
        keys = enabled.get(role) or []
        if not isinstance(keys, list):
            keys = []
        seen: list[str] = []
        for key in keys:
            f = FEATURES_BY_KEY.get(str(key))
            if f and role in f.applicable_roles and f.key not in seen:
                seen.append(f.key)
        out[role] = seen
    return out


def get_flags(s: "Session") -> dict[str, Any]:
    data = get_json_setting(s, SETTING_FEATURE_FLAGS)
    if not isinstance(data, dict):
        return default_flags()
    enabled = data.get("enabled_features")
    return {
        "active_package": data.get("active_package") or "custom",
        "enabled_features": _sanitize(enabled if isinstance(enabled, dict) else {}),
        "updated_at": data.get("updated_at"),
    }


def enabled_features_for_role(s: "Session", role: str) -> list[str]:
    if role == ROLE_SUPER_ADMIN:
        return list(FEATURES_BY_KEY)
    return get_flags(s)["enabled_features"].get(role, [])


def is_feature_enabled(s: "Session", role: str, key: str) -> bool:
    if role == ROLE_SUPER_ADMIN:
        return True
    return key in enabled_features_for_role(s, role)


def save_flags(s: "Session", *, package: str | None, enabled_features: dict[str, Any] | None) -> dict[str, Any]:
    if package and package != "custom":
        enabled = features_for_package(package)
        active = package
    else:
        enabled = _sanitize(enabled_features or {})
        active = "custom"
    data = {
        "active_package": active,
        "enabled_features": enabled,
        "updated_at": datetime.utcnow().isoformat(),
    }
    set_json_setting(s, SETTING_FEATURE_FLAGS, data)
    return data


def apply_package(s: "Session", package: str, custom: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Apply a license package preset; custom per-role overrides from the
    license server win over the preset.
    """
    if not custom:
        return save_flags(s, package=package if package in PACKAGES else DEFAULT_PACKAGE, enabled_features=None)
    data = {
        "active_package": package if package in PACKAGES else "custom",
        "enabled_features": _sanitize(custom),
        "updated_at": datetime.utcnow().isoformat(),
    }
    set_json_setting(s, SETTING_FEATURE_FLAGS, data)
    return data


def validate_flags_payload(payload: dict) -> list[str]:
    errors = []
    package = (payload.get("package") or "").strip()
    enabled = payload.get("enabled_features")
    if not package and enabled is None:
        errors.append("package or enabled_features is required.")
    if package and package != "custom" and package not in PACKAGES:
        errors.append(f"Unknown package. Must be one of: {', '.join(PACKAGES)}")
    if enabled is not None and not isinstance(enabled, dict):
        errors.append("enabled_features must be an object keyed by role.")
    return errors


def update_flags(s: "Session", payload: dict, user: "User") -> dict[str, Any]:
    package = (payload.get("package") or "").strip() or None
    before = get_flags(s)
    data = save_flags(s, package=package, enabled_features=payload.get("enabled_features"))
    record_event(
        s,
        actor=user,
        action="feature_flags.update",
        entity_type="SiteSetting",
        entity_id=SETTING_FEATURE_FLAGS,
        metadata={"old_package": before["active_package"], "new_package": data["active_package"]},
    )
    return data
