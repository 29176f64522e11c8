from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from app.notaris.constants import SETTING_AI_PROVIDER
from app.notaris.site_settings import get_json_setting, set_json_setting

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_ID = "gemini"
DEFAULT_MODEL_ID = "gemini-2.5-flash"
MASK_CHAR = "•"


class AIProviderError(RuntimeError):
    pass


class AINotConfigured(AIProviderError):
    pass


def _model(model_id: str, name: str, max_tokens: int, context_window: int) -> dict[str, Any]:
    return {"id": model_id, "name": name, "max_tokens": max_tokens, "context_window": context_window}


AI_PROVIDERS: dict[str, dict[str, Any]] = {
    "openai": {
        "id": "openai",
        "name": "OpenAI",
        "base_url": "https://api.openai.com",
        "completion_path": "/v1/chat/completions",
        "auth_header": "Authorization",
        "auth_prefix": "Bearer ",
        "models": [
            _model("gpt-5.2", "GPT-5.2", 16384, 400000),
            _model("gpt-5.1", "GPT-5.1", 16384, 400000),
            _model("gpt-5", "GPT-5", 16384, 400000),
            _model("gpt-4o", "GPT-4o", 16384, 128000),
            _model("gpt-4o-mini", "GPT-4o Mini", 16384, 128000),
        ],
    },
    "gemini": {
        "id": "gemini",
        "name": "Google Gemini",
        "base_url": "https://generativelanguage.googleapis.com",
        "completion_path": "/v1beta/openai/chat/completions",
        "auth_header": "Authorization",
        "auth_prefix": "Bearer ",
        "models": [
            _model("gemini-3-flash", "Gemini 3 Flash", 65536, 1048576),
            _model("gemini-3-pro", "Gemini 3 Pro", 65536, 1048576),
            _model("gemini-2.5-flash", "Gemini 2.5 Flash", 65536, 1048576),
            _model("gemini-2.5-pro", "Gemini 2.5 Pro", 65536, 1048576),
            _model("gemini-2.5-flash-lite", "Gemini 2.5 Flash Lite", 65536, 1048576),
        ],
    },
    "deepseek": {
        "id": "deepseek",
        "name": "DeepSeek",
        "base_url": "https://api.deepseek.com",
        "completion_path": "/chat/completions",
        "auth_header": "Authorization",
        "auth_prefix": "Bearer ",
        "models": [
            _model("deepseek-chat", "DeepSeek Chat (V3)", 8192, 64000),
            _model("deepseek-reasoner", "DeepSeek Reasoner (R1)", 8192, 64000),
        ],
    },
}


def get_provider(provider_id: str | None) -> dict[str, Any] | None:
    return AI_PROVIDERS.get(provider_id or "")


def get_model(provider_id: str | None, model_id: str | None) -> dict[str, Any] | None:
    provider = get_provider(provider_id)
    if provider is None:
        return None
    return next((m for m in provider["models"] if m["id"] == model_id), None)


def mask_api_key(key: str | None) -> str:
    if not key:
        return ""
    if len(key) <= 4:
        return MASK_CHAR * len(key)
    return MASK_CHAR * (len(key) - 4) + key[-4:]


def default_ai_settings() -> dict[str, Any]:
    return {
        "active_provider_id": DEFAULT_PROVIDER_ID,
        "active_model_id": DEFAULT_MODEL_ID,
        "providers": {pid: {"api_key": "", "is_configured": False} for pid in AI_PROVIDERS},
    }


def get_ai_settings(s: Session) -> dict[str, Any]:
    stored = get_json_setting(s, SETTING_AI_PROVIDER)
    settings = default_ai_settings()
    if not isinstance(stored, dict):
        return settings
    settings["active_provider_id"] = stored.get("active_provider_id") or DEFAULT_PROVIDER_ID
    settings["active_model_id"] = stored.get("active_model_id") or DEFAULT_MODEL_ID
    for pid, cfg in (stored.get("providers") or {}).items():
        if pid in AI_PROVIDERS and isinstance(cfg, dict):
            key = cfg.get("api_key") or ""
            settings["providers"][pid] = {"api_key": key, "is_configured": bool(key)}
    return settings


def save_ai_settings(s: Session, settings: dict[str, Any]) -> None:
    set_json_setting(s, SETTING_AI_PROVIDER, settings)


def public_ai_settings(settings: dict[str, Any]) -> dict[str, Any]:
    return {
        "active_provider_id": settings["active_provider_id"],
        "active_model_id": settings["active_model_id"],
        "providers": {
            pid: {"api_key": mask_api_key(cfg.get("api_key")), "is_configured": bool(cfg.get("api_key"))}
            for pid, cfg in settings["providers"].items()
        },
    }


def apply_ai_settings_update(settings: dict[str, Any], payload: dict[str, Any]) -> list[str]:
    """
    Mutates settings in place. Masked keys echoed back by the admin form are ignored.
    """
    errors = []
    provider_id = payload.get("active_provider_id") or settings["active_provider_id"]
    model_id = payload.get("active_model_id") or settings["active_model_id"]
    if get_provider(provider_id) is None:
        errors.append(f"Unknown provider: {provider_id}")
    elif get_model(provider_id, model_id) is None:
        errors.append(f"Unknown model for {provider_id}: {model_id}")
    else:
        settings["active_provider_id"] = provider_id
        settings["active_model_id"] = model_id

    updates = payload.get("providers") or {}
    if not isinstance(updates, dict):
        errors.append("providers must be an object.")
        return errors
    for pid, cfg in updates.items():
        if pid not in AI_PROVIDERS:
            errors.append(f"Unknown provider: {pid}")
            continue
        if not isinstance(cfg, dict) or "api_key" not in cfg:
            continue
        key = (cfg.get("api_key") or "").strip()
        if MASK_CHAR in key:
            continue
        settings["providers"][pid] = {"api_key": key, "is_configured": bool(key)}
    return errors


@dataclass(frozen=True)
class ChatCompletionClient:
    """
    OpenAI-compatible chat completion endpoint. All three providers speak the
    same wire format; only the base URL and path differ.
    """

    provider_id: str
    model_id: str
    api_key: str
    timeout_seconds: int = 60

    @classmethod
    def from_settings(cls, settings: dict[str, Any], *, timeout_seconds: int = 60) -> "ChatCompletionClient":
        provider_id = settings.get("active_provider_id")
        model_id = settings.get("active_model_id")
        if get_model(provider_id, model_id) is None:
            raise AINotConfigured("AI provider is not configured.")
        api_key = (settings.get("providers", {}).get(provider_id) or {}).get("api_key")
        if not api_key:
            raise AINotConfigured("AI API key is not configured.")
        return cls(provider_id=provider_id, model_id=model_id, api_key=api_key, timeout_seconds=timeout_seconds)

    @property
    def url(self) -> str:
        provider = AI_PROVIDERS[self.provider_id]
        return provider["base_url"].rstrip("/") + provider["completion_path"]

    def post_json(self, body: dict[str, Any]) -> dict[str, Any]:
        provider = AI_PROVIDERS[self.provider_id]
        req = urllib.request.Request(self.url, data=json.dumps(body).encode("utf-8"), method="POST")
        req.add_header("Content-Type", "application/json")
        req.add_header(provider["auth_header"], provider["auth_prefix"] + self.api_key)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            detail = e.read().decode("utf-8", errors="replace")[:500]
            logger.error("AI provider %s returned HTTP %s: %s", self.provider_id, e.code, detail)
            raise AIProviderError(f"AI API error: {e.code} - {detail}") from e
        except (urllib.error.URLError, OSError) as e:
            logger.warning("AI provider %s unreachable: %s", self.provider_id, e)
            raise AIProviderError(f"AI provider unreachable: {e}") from e
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise AIProviderError("Invalid JSON from AI provider") from e
        if not isinstance(data, dict):
            raise AIProviderError("Unexpected response from AI provider")
        return data

    def complete(self, messages: list[dict[str, str]], *, max_tokens: int = 800, temperature: float = 0.7) -> dict[str, Any]:
        """Returns the raw response; see reply_text() and tokens.extract_tokens_from_response()."""
        return self.post_json({
            "model": self.model_id,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })


def reply_text(data: dict[str, Any]) -> str | None:
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None
    return content if isinstance(content, str) else None
