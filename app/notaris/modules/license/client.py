from __future__ import annotations

import hashlib
import json
import logging
import secrets
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

KEY_PREFIX = "NTRS"
# no I, O, 0, 1
KEY_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


class LicenseServerError(RuntimeError):
    pass


def server_hash(domain: str, secret: str) -> str:
    return hashlib.sha256(f"{domain}:{secret}".encode("utf-8")).hexdigest()[:32]


def domain_from_url(app_url: str | None) -> str:
    raw = (app_url or "").strip()
    if not raw:
        return "localhost"
    host = urllib.parse.urlparse(raw).hostname
    return host or raw


def generate_license_key() -> str:
    segments = ["".join(secrets.choice(KEY_ALPHABET) for _ in range(4)) for _ in range(4)]
    return "-".join([KEY_PREFIX, *segments])


def validate_key_format(key: str) -> bool:
    parts = (key or "").split("-")
    if len(parts) != 5 or parts[0] != KEY_PREFIX:
        return False
    return all(len(p) == 4 and all(c in KEY_ALPHABET for c in p) for p in parts[1:])


def mask_key(key: str) -> str:
    """NTRS-ABCD-EFGH-JKLM-NPQR -> NTRS-ABCD-****-****-NPQR"""
    parts = (key or "").split("-")
    if len(parts) != 5:
        return "****"
    return "-".join([parts[0], parts[1], "****", "****", parts[4]])


@dataclass(frozen=True)
class LicenseServerClient:
    base_url: str
    domain: str
    secret: str
    timeout_seconds: int = 15

    def _payload(self, license_key: str) -> dict[str, str]:
        return {
            "licenseKey": license_key,
            "domain": self.domain,
            "serverHash": server_hash(self.domain, self.secret),
        }

    def post_json(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        url = self.base_url.rstrip("/") + path
        req = urllib.request.Request(url, data=json.dumps(body).encode("utf-8"), method="POST")
        req.add_header("Content-Type", "application/json")
        req.add_header("Accept", "application/json")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            # the license server reports rejections as 4xx with a JSON body
            raw = e.read()
            if not raw:
                raise LicenseServerError(f"HTTP {e.code} from license server") from e
        except (urllib.error.URLError, OSError) as e:
            raise LicenseServerError(f"License server unreachable: {e}") from e
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise LicenseServerError(f"Invalid JSON from license server ({path})") from e
        if not isinstance(data, dict):
            raise LicenseServerError(f"Unexpected response from license server ({path})")
        return data

    def activate(self, license_key: str) -> dict[str, Any]:
        """
        Bind the key to this domain. Network failures come back as
        success=False so the admin sees a readable error.
        """
        try:
            return self.post_json("/api/licenses/activate", self._payload(license_key))
        except LicenseServerError as e:
            logger.warning("License activation failed: %s", e)
            return {"success": False, "error": "Could not reach the license server. Check the internet connection."}

    def verify(self, license_key: str) -> dict[str, Any]:
        """
        Re-check the key. Network failures are treated as valid (offline grace).
        """
        try:
            return self.post_json("/api/licenses/verify", self._payload(license_key))
        except LicenseServerError as e:
            logger.warning("License verification failed, allowing offline grace: %s", e)
            return {"valid": True, "error": "License server unreachable (offline mode)"}
