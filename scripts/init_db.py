import sys
from pathlib import Path
import os

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from contextlib import contextmanager

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.notaris.constants import ROLE_SUPER_ADMIN, SETTING_FEATURE_FLAGS
from app.notaris.models import DocumentType, Service, User
from app.notaris.modules.account.service import create_user, normalize_email
from app.notaris.modules.feature_flags.service import default_flags
from app.notaris.site_settings import get_setting, set_json_setting

DOCUMENT_TYPES = (
    ("Akta Pendirian PT", "Pendirian perseroan terbatas", ["KTP", "NPWP", "Kartu Keluarga"], 14),
    ("Akta Jual Beli", "Peralihan hak atas tanah dan bangunan", ["KTP", "Sertifikat", "PBB"], 7),
    ("Akta Hibah", "Hibah tanah dan bangunan", ["KTP", "Kartu Keluarga", "Sertifikat"], 7),
    ("Surat Kuasa", "Pemberian kuasa", ["KTP"], 1),
    ("Akta Wasiat", "Wasiat dan warisan", ["KTP", "Kartu Keluarga"], 5),
)

SERVICES = (
    ("Konsultasi Hukum", "Konsultasi umum dengan notaris", 30),
    ("Penandatanganan Akta", "Penandatanganan akta di hadapan notaris", 60),
    ("Legalisasi Dokumen", "Legalisasi dan waarmerking", 15),
)


@contextmanager
def _session_scope(database_url: str):
    engine = create_engine(database_url, future=True)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the super admin, default feature flags, document types and services
    in an idempotent way. Does NOT overwrite an existing admin user's password.
    """
    admin_email = normalize_email(os.environ.get("ADMIN_EMAIL") or "admin@notaris.local")
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///notaris.db").strip()

    # Direct engine/session so this can run in release without importing app.wsgi.
    with _session_scope(db_url) as s:
        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            create_user(s, name="Super Admin", email=admin_email, password=admin_password, role=ROLE_SUPER_ADMIN)

        if get_setting(s, SETTING_FEATURE_FLAGS) is None:
            set_json_setting(s, SETTING_FEATURE_FLAGS, default_flags())

        for name, description, required, days in DOCUMENT_TYPES:
            if s.query(DocumentType).filter(DocumentType.name == name).one_or_none() is None:
                s.add(DocumentType(name=name, description=description, required_documents=required, estimated_duration_days=days, is_active=True))

        for name, description, minutes in SERVICES:
            if s.query(Service).filter(Service.name == name).one_or_none() is None:
                s.add(Service(name=name, description=description, duration_minutes=minutes, is_active=True))

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
