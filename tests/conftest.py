from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from app.notaris import auth, create_app
from app.notaris.constants import ROLE_ADMIN, ROLE_CLIENT, ROLE_STAFF, ROLE_SUPER_ADMIN
from app.notaris.db import session_scope
from app.notaris.models import Base, DocumentType, License, Service
from app.notaris.modules.account.service import create_user

PASSWORD = "password-123"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("APP_URL", "http://notaris.test")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY", "SMTP_SERVER", "STORAGE_ROOT"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    app.extensions["schema_health_check"]()
    auth._login_attempts.clear()
    return app


@pytest.fixture()
def seed(app):
    with session_scope(app) as s:
        superadmin = create_user(s, name="Super Admin", email="super@example.com", password=PASSWORD, role=ROLE_SUPER_ADMIN)
        admin = create_user(s, name="Admin Kantor", email="admin@example.com", password=PASSWORD, role=ROLE_ADMIN)
        staff = create_user(s, name="Budi Staf", email="staff@example.com", password=PASSWORD, role=ROLE_STAFF, position="Staf Akta")
        staff2 = create_user(s, name="Citra Staf", email="staff2@example.com", password=PASSWORD, role=ROLE_STAFF)
        client = create_user(s, name="Dewi Klien", email="client@example.com", password=PASSWORD, role=ROLE_CLIENT, company_name="PT Maju")
        other = create_user(s, name="Eko Klien", email="other@example.com", password=PASSWORD, role=ROLE_CLIENT)
        s.add(
            License(
                license_key="NTRS-TEST-TEST-TEST-TEST",
                package_type="complete",
                domain="notaris.test",
                server_hash="0" * 64,
                is_active=True,
                expires_at=datetime.utcnow() + timedelta(days=365),
            )
        )
        svc = Service(name="Konsultasi Hukum", duration_minutes=30, is_active=True)
        dtype = DocumentType(name="Akta Jual Beli", required_documents=["KTP", "Sertifikat"], estimated_duration_days=7, is_active=True)
        s.add_all([svc, dtype])
        s.flush()
        ids = SimpleNamespace(
            superadmin=superadmin.id,
            admin=admin.id,
            staff=staff.id,
            staff2=staff2.id,
            client=client.id,
            other=other.id,
            staff_profile=staff.staff_profile.id,
            staff2_profile=staff2.staff_profile.id,
            client_profile=client.client_profile.id,
            other_profile=other.client_profile.id,
            service=svc.id,
            document_type=dtype.id,
        )
    return ids


@pytest.fixture()
def client(app, seed):
    return app.test_client()


@pytest.fixture()
def login(client):
    """Log the shared test client in; returns headers carrying the CSRF token."""

    def _login(email: str, password: str = PASSWORD) -> dict:
        client.post("/api/auth/logout")
        r = client.post("/api/auth/login", json={"email": email, "password": password})
        assert r.status_code == 200, r.json
        return {"X-CSRF-Token": r.json["csrf_token"]}

    return _login
