"""
Central constants for the notary office application.
"""
from __future__ import annotations

ROLE_SUPER_ADMIN = "SUPER_ADMIN"
ROLE_ADMIN = "ADMIN"
ROLE_STAFF = "STAFF"
ROLE_CLIENT = "CLIENT"
# chatbot visitors without an account
ROLE_GUEST = "GUEST"

ROLES = (ROLE_SUPER_ADMIN, ROLE_ADMIN, ROLE_STAFF, ROLE_CLIENT)
ADMIN_ROLES = (ROLE_SUPER_ADMIN, ROLE_ADMIN)
STAFF_ROLES = (ROLE_SUPER_ADMIN, ROLE_ADMIN, ROLE_STAFF)
# roles whose features are governed by feature flags
FLAGGED_ROLES = (ROLE_ADMIN, ROLE_STAFF, ROLE_CLIENT)
CHAT_ROLES = (ROLE_GUEST, ROLE_CLIENT, ROLE_STAFF, ROLE_ADMIN, ROLE_SUPER_ADMIN)

DOCUMENT_STATUSES = ("draft", "submitted", "in_review", "approved", "completed", "cancelled")
DOCUMENT_PRIORITIES = ("LOW", "NORMAL", "HIGH", "URGENT")

APPOINTMENT_STATUSES = ("PENDING", "CONFIRMED", "COMPLETED", "CANCELLED", "NO_SHOW")

INVOICE_STATUSES = ("DRAFT", "SENT", "PAID", "PARTIALLY_PAID", "OVERDUE", "CANCELLED")
PAYMENT_METHODS = ("BANK_TRANSFER", "CASH", "CARD", "E_WALLET", "OTHER")

NOTIFICATION_NEW_MESSAGE = "NEW_MESSAGE"
NOTIFICATION_DOCUMENT_STATUS = "DOCUMENT_STATUS"

BULAN_NAMES = (
    "",
    "Januari",
    "Februari",
    "Maret",
    "April",
    "Mei",
    "Juni",
    "Juli",
    "Agustus",
    "September",
    "Oktober",
    "November",
    "Desember",
)

# site_settings keys managed by dedicated endpoints
SETTING_FEATURE_FLAGS = "feature_flags"
SETTING_AI_PROVIDER = "ai_provider_settings"
RESERVED_SETTING_KEYS = frozenset({SETTING_FEATURE_FLAGS, SETTING_AI_PROVIDER})

DEFAULT_PAGE_SIZE = 20
