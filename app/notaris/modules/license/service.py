from __future__ import annotations

import json
import logging
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app.notaris.audit import record_event
from app.notaris.modules.feature_flags.service import apply_package
from app.notaris.modules.license.client import (
    LicenseServerClient,
    domain_from_url,
    mask_key,
    server_hash,
    validate_key_format,
)
from app.notaris.modules.license.models import License
from app.notaris.utils import iso, parse_datetime

if TYPE_CHECKING:
    from flask import Flask
    from sqlalchemy.orm import Session
    from app.notaris.models import User

logger = logging.getLogger(__name__)

STATUS_CACHE_TTL = 60  # seconds
_CACHE_KEY = "license_status_cache"


class LicenseError(ValueError):
    """Activation/verification failure with a user-facing message."""


def license_secret(config: dict) -> str:
    return (config.get("LICENSE_SECRET") or "").strip() or (config.get("SECRET_KEY") or "").strip() or "default-secret"


def current_domain(config: dict | None = None) -> str:
    cfg = config if config is not None else current_app.config
    return domain_from_url(cfg.get("APP_URL"))


def license_client_from_config(config: dict) -> LicenseServerClient:
    return LicenseServerClient(
        base_url=(config.get("LICENSE_SERVER_URL") or "https://license.notaris-system.com").strip(),
        domain=current_domain(config),
        secret=license_secret(config),
    )


def active_license(s: "Session") -> License | None:
    return (
        s.query(License)
        .filter(License.is_active.is_(True))
        .order_by(License.activated_at.desc())
        .first()
    )


def serialize_license(lic: License) -> dict[str, Any]:
    return {
        "id": lic.id,
        "license_key": mask_key(lic.license_key),
        "package_type": lic.package_type,
        "domain": lic.domain,
        "holder_name": lic.holder_name,
        "office_name": lic.office_name,
        "activated_at": iso(lic.activated_at),
        "expires_at": iso(lic.expires_at),
        "last_verified_at": iso(lic.last_verified_at),
        "is_active": lic.is_active,
        "is_expired": lic.is_expired,
    }


# -- status cache ----------------------------------------------------------


def invalidate_license_cache(app: "Flask | None" = None) -> None:
    (app or current_app).extensions.pop(_CACHE_KEY, None)


def get_license_status(s: "Session", app: "Flask | None" = None) -> dict[str, Any]:
    """
    Cached license summary. Any DB failure reads as "no license" so login
    gating fails closed for non-super-admins.
    """
    app = app or current_app
    cached = app.extensions.get(_CACHE_KEY)
    now = time.monotonic()
    if cached and now - cached["at"] < STATUS_CACHE_TTL:
        return cached["value"]

    try:
        lic = active_license(s)
    except SQLAlchemyError as e:
        logger.error("License status lookup failed: %s", e)
        s.rollback()
        return {"has_active_license": False, "package_type": None, "expires_at": None, "is_expired": False}

    if lic is None:
        value = {"has_active_license": False, "package_type": None, "expires_at": None, "is_expired": False}
    else:
        value = {
            "has_active_license": not lic.is_expired,
            "package_type": lic.package_type,
            "expires_at": iso(lic.expires_at),
            "is_expired": lic.is_expired,
        }
    app.extensions[_CACHE_KEY] = {"at": now, "value": value}
    return value


# -- activation ------------------------------------------------------------


def activate_license(s: "Session", raw_key: str, user: "User", client: LicenseServerClient | None = None) -> License:
    key = (raw_key or "").strip().upper()
    if not key:
        raise LicenseError("License key is required")
    if not validate_key_format(key):
        raise LicenseError("Invalid license key format (expected NTRS-XXXX-XXXX-XXXX-XXXX)")

    existing = s.query(License).filter(License.license_key == key).one_or_none()
    if existing is not None and existing.is_active:
        raise LicenseError("This license key is already active")

    client = client or license_client_from_config(current_app.config)
    result = client.activate(key)
    info = result.get("license") if isinstance(result.get("license"), dict) else None
    if not result.get("success") or info is None:
        raise LicenseError(result.get("error") or "Activation failed")

    now = datetime.utcnow()
    s.query(License).filter(License.is_active.is_(True)).update({License.is_active: False, License.updated_at: now})

    features = info.get("features") if isinstance(info.get("features"), dict) else None
    lic = existing or License(license_key=key)
    lic.package_type = info.get("packageType") or "complete"
    lic.domain = info.get("domain") or client.domain
    lic.holder_name = info.get("holderName")
    lic.office_name = info.get("officeName")
    lic.expires_at = parse_datetime(info.get("expiresAt"))
    lic.server_hash = server_hash(client.domain, client.secret)
    lic.is_active = True
    lic.activated_at = now
    lic.last_verified_at = now
    lic.updated_at = now
    lic.metadata_json = json.dumps({"custom_features": features}) if features else None
    if existing is None:
        s.add(lic)
    s.flush()

    apply_package(s, lic.package_type, features)
    record_event(
        s,
        actor=user,
        action="license.activate",
        entity_type="License",
        entity_id=lic.id,
        metadata={"license_key": mask_key(key), "package_type": lic.package_type, "domain": lic.domain},
    )
    return lic


def deactivate_licenses(s: "Session", user: "User") -> int:
    now = datetime.utcnow()
    n = s.query(License).filter(License.is_active.is_(True)).update({License.is_active: False, License.updated_at: now})
    record_event(s, actor=user, action="license.deactivate", entity_type="License", metadata={"deactivated": n})
    return n


def verify_active_license(s: "Session", client: LicenseServerClient | None = None) -> dict[str, Any]:
    lic = active_license(s)
    if lic is None:
        return {"valid": False, "error": "No active license"}

    now = datetime.utcnow()
    if lic.is_expired:
        lic.is_active = False
        lic.updated_at = now
        return {"valid": False, "error": "License expired"}

    client = client or license_client_from_config(current_app.config)
    result = client.verify(lic.license_key)
    valid = bool(result.get("valid"))
    lic.last_verified_at = now
    lic.is_active = valid
    lic.updated_at = now
    if valid and result.get("packageType"):
        lic.package_type = result["packageType"]
    if "expiresAt" in result:
        lic.expires_at = parse_datetime(result.get("expiresAt"))
    out: dict[str, Any] = {"valid": valid, "package_type": lic.package_type, "expires_at": iso(lic.expires_at)}
    if result.get("error"):
        out["error"] = result["error"]
    return out
