from __future__ import annotations

from dataclasses import dataclass

from app.notaris.constants import FLAGGED_ROLES

ALL = ("ADMIN", "STAFF", "CLIENT")
ADMIN_ONLY = ("ADMIN",)
ADMIN_STAFF = ("ADMIN", "STAFF")


@dataclass(frozen=True)
class FeatureDefinition:
    key: str
    label: str
    category: str
    applicable_roles: tuple[str, ...]
    sidebar_href: str | None = None
    is_ai: bool = False
    # full AI features are dropped by the limited_ai package
    is_full_ai: bool = False

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "label": self.label,
            "category": self.category,
            "sidebar_href": self.sidebar_href,
            "applicable_roles": list(self.applicable_roles),
            "is_ai": self.is_ai,
            "is_full_ai": self.is_full_ai,
        }


FEATURES: tuple[FeatureDefinition, ...] = (
    # core
    FeatureDefinition("dashboard", "Dashboard", "core", ALL, "/dashboard"),
    FeatureDefinition("documents", "Dokumen", "core", ALL, "/documents"),
    FeatureDefinition("appointments", "Jadwal", "core", ALL, "/appointments"),
    FeatureDefinition("messages", "Pesan", "communication", ALL, "/messages"),
    FeatureDefinition("notifications", "Notifikasi", "communication", ALL, "/notifications"),
    FeatureDefinition("profile", "Profil", "core", ALL, "/profile"),
    FeatureDefinition("staff_availability", "Ketersediaan Staff", "management", ADMIN_STAFF, "/staff/availability"),
    # admin
    FeatureDefinition("user_management", "Manajemen Pengguna", "admin", ADMIN_ONLY, "/admin/users"),
    FeatureDefinition("content_management", "Konten Website", "admin", ADMIN_ONLY, "/admin/content"),
    FeatureDefinition("google_drive", "Google Drive", "admin", ADMIN_ONLY, "/admin/drives"),
    FeatureDefinition("document_types", "Jenis Dokumen", "admin", ADMIN_ONLY, "/admin/document-types"),
    FeatureDefinition("services", "Layanan", "admin", ADMIN_ONLY, "/admin/services"),
    FeatureDefinition("audit_logs", "Audit Log", "admin", ADMIN_ONLY, "/admin/audit-logs"),
    FeatureDefinition("reports", "Laporan", "admin", ADMIN_ONLY, "/admin/reports"),
    FeatureDefinition("branches", "Cabang", "admin", ADMIN_ONLY, "/admin/branches"),
    FeatureDefinition("gallery", "Galeri", "admin", ADMIN_ONLY, "/admin/gallery"),
    FeatureDefinition("settings", "Pengaturan", "admin", ADMIN_ONLY, "/admin/settings"),
    # billing and ledgers
    FeatureDefinition("billing", "Tagihan", "billing", ALL, "/billing"),
    FeatureDefinition("repertorium", "Repertorium", "core", ADMIN_STAFF, "/repertorium"),
    FeatureDefinition("klapper", "Klapper", "core", ADMIN_STAFF, "/klapper"),
    FeatureDefinition("document_templates", "Template Akta", "admin", ADMIN_STAFF, "/admin/templates"),
    FeatureDefinition("document_checklist", "Checklist Dokumen", "core", ALL),
    # AI
    FeatureDefinition("ai_settings", "AI Settings", "ai", ADMIN_ONLY, "/admin/ai-settings", is_ai=True),
    FeatureDefinition("ai_document_editor", "AI Document Editor", "ai", ADMIN_STAFF, is_ai=True, is_full_ai=True),
    FeatureDefinition("ai_summarize", "AI Ringkasan", "ai", ALL, is_ai=True),
    FeatureDefinition("ai_compare", "AI Perbandingan", "ai", ADMIN_STAFF, is_ai=True, is_full_ai=True),
    FeatureDefinition("ai_draft_reply", "AI Draft Balasan", "ai", ADMIN_STAFF, is_ai=True, is_full_ai=True),
    FeatureDefinition("ai_chatbot", "AI Chatbot", "ai", ("ADMIN", "CLIENT"), is_ai=True, is_full_ai=True),
)

FEATURES_BY_KEY = {f.key: f for f in FEATURES}

PACKAGES: dict[str, dict] = {
    "complete": {
        "label": "Paket Lengkap",
        "description": "All features, including every AI tool.",
        "include": lambda f: True,
    },
    "limited_ai": {
        "label": "AI Terbatas",
        "description": "All features with basic AI only (summaries, AI settings).",
        "include": lambda f: not f.is_full_ai,
    },
    "no_ai": {
        "label": "Tanpa AI",
        "description": "All features except AI tools.",
        "include": lambda f: not f.is_ai,
    },
}
DEFAULT_PACKAGE = "complete"


def features_for_package(package: str) -> dict[str, list[str]]:
    """Per-role enabled feature keys for a package preset."""
    preset = PACKAGES.get(package) or PACKAGES[DEFAULT_PACKAGE]
    include = preset["include"]
    return {
        role: [f.key for f in FEATURES if role in f.applicable_roles and include(f)]
        for role in FLAGGED_ROLES
    }


def package_catalog() -> list[dict]:
    return [
        {"key": key, "label": p["label"], "description": p["description"]}
        for key, p in PACKAGES.items()
    ]
