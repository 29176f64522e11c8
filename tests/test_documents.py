import io

from app.notaris.config import load_config
from app.notaris.db import session_scope
from app.notaris.models import AuditEvent, Notification
from app.notaris.modules.documents.models import Document
from app.notaris.modules.documents.service import generate_document_number, to_base36


def _create_doc(client, headers, **extra):
    payload = {"title": "Akta Jual Beli Rumah", "description": "Jl. Merdeka 1"}
    payload.update(extra)
    r = client.post("/api/documents", json=payload, headers=headers)
    assert r.status_code == 201, r.json
    return r.json["document"]


def test_document_number_format():
    assert to_base36(0) == "0"
    assert to_base36(35) == "z"
    assert to_base36(36) == "10"
    number = generate_document_number("Akta Jual Beli")
    assert number.startswith("DOC-AKT-")
    assert number == number.upper()
    assert generate_document_number(None).startswith("DOC-GEN-")


def test_client_creates_own_draft(client, login, seed):
    headers = login("client@example.com")
    doc = _create_doc(client, headers, document_type_id=seed.document_type, staff_id=seed.staff_profile)
    assert doc["status"] == "draft"
    assert doc["client"]["id"] == seed.client_profile
    # clients cannot pick the handling staff
    assert doc["staff"] is None
    assert doc["document_number"].startswith("DOC-AKT-")
    assert [t["status"] for t in doc["timeline"]] == ["draft"]


def test_staff_must_name_client(client, login, seed):
    headers = login("staff@example.com")
    r = client.post("/api/documents", json={"title": "Surat Kuasa"}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "client_id is required."

    doc = _create_doc(client, headers, client_id=seed.client_profile)
    assert doc["staff"]["id"] == seed.staff_profile


def test_validation_errors(client, login):
    headers = login("client@example.com")
    r = client.post("/api/documents", json={"title": "", "status": "bogus", "due_date": "31/12/2026"}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Title is required."
    assert len(r.json["errors"]) == 3


def test_row_level_scoping(client, login, seed):
    headers = login("staff@example.com")
    mine = _create_doc(client, headers, client_id=seed.client_profile, title="Milik Budi")
    other_staff = _create_doc(client, headers, client_id=seed.other_profile, title="Milik Citra", staff_id=seed.staff2_profile)
    unassigned = _create_doc(client, headers, client_id=seed.other_profile, title="Belum ditugaskan", staff_id="")
    with session_scope(client.application) as s:
        s.get(Document, unassigned["id"]).staff_id = None

    r = client.get("/api/documents")
    titles = {d["title"] for d in r.json["data"]}
    assert titles == {"Milik Budi", "Belum ditugaskan"}
    assert client.get(f"/api/documents/{other_staff['id']}").status_code == 403

    login("client@example.com")
    r = client.get("/api/documents")
    assert [d["id"] for d in r.json["data"]] == [mine["id"]]
    assert r.json["meta"]["total"] == 1
    assert client.get(f"/api/documents/{other_staff['id']}").status_code == 403

    login("admin@example.com")
    r = client.get("/api/documents?search=milik")
    assert r.json["meta"]["total"] == 2


def test_status_change_records_timeline_and_notifies_client(client, login, seed):
    headers = login("staff@example.com")
    doc = _create_doc(client, headers, client_id=seed.client_profile)

    r = client.put(f"/api/documents/{doc['id']}", json={"status": "in_review", "notes": "Berkas lengkap"}, headers=headers)
    assert r.status_code == 200
    body = r.json["document"]
    assert body["status"] == "in_review"
    assert [t["status"] for t in body["timeline"]] == ["draft", "in_review"]
    assert body["timeline"][-1]["notes"] == "Berkas lengkap"
    assert r.json["changed"] == ["status"]

    r = client.put(f"/api/documents/{doc['id']}", json={"status": "completed"}, headers=headers)
    assert r.json["document"]["completed_at"] is not None

    with session_scope(client.application) as s:
        notes = s.query(Notification).filter(Notification.user_id == seed.client).all()
        assert len(notes) == 2
        assert notes[0].link == f"/documents/{doc['id']}"
        actions = [e.action for e in s.query(AuditEvent).all()]
        assert actions.count("document.status_change") == 2


def test_client_edits_only_drafts_and_only_safe_fields(client, login, seed):
    headers = login("client@example.com")
    doc = _create_doc(client, headers)

    r = client.put(f"/api/documents/{doc['id']}", json={"title": "Judul Baru", "status": "approved"}, headers=headers)
    assert r.status_code == 200
    assert r.json["document"]["title"] == "Judul Baru"
    assert r.json["document"]["status"] == "draft"

    with session_scope(client.application) as s:
        s.get(Document, doc["id"]).status = "submitted"
    r = client.put(f"/api/documents/{doc['id']}", json={"title": "Lagi"}, headers=headers)
    assert r.status_code == 403


def test_delete_is_admin_only_and_soft(client, login, seed):
    headers = login("staff@example.com")
    doc = _create_doc(client, headers, client_id=seed.client_profile)
    assert client.delete(f"/api/documents/{doc['id']}", headers=headers).status_code == 403

    headers = login("admin@example.com")
    assert client.delete(f"/api/documents/{doc['id']}", headers=headers).status_code == 200
    assert client.get(f"/api/documents/{doc['id']}").status_code == 404
    with session_scope(client.application) as s:
        assert s.get(Document, doc["id"]).deleted_at is not None


def test_file_upload_and_download(client, login):
    headers = login("client@example.com")
    doc = _create_doc(client, headers)

    r = client.post(f"/api/documents/{doc['id']}/files", data={}, headers=headers, content_type="multipart/form-data")
    assert r.status_code == 400

    r = client.post(
        f"/api/documents/{doc['id']}/files",
        data={"file": (io.BytesIO(b"%PDF-1.4 ktp scan"), "../ktp scan.pdf")},
        headers=headers,
        content_type="multipart/form-data",
    )
    assert r.status_code == 201, r.json
    f = r.json["file"]
    assert f["filename"] == "ktp_scan.pdf"
    assert f["size_bytes"] == len(b"%PDF-1.4 ktp scan")

    r = client.get(f"/api/documents/{doc['id']}/files/{f['id']}")
    assert r.status_code == 200
    assert r.data == b"%PDF-1.4 ktp scan"

    with session_scope(client.application) as s:
        actions = [e.action for e in s.query(AuditEvent).all()]
        assert "document.file_upload" in actions
        assert "document.file_download" in actions


def test_upload_size_limits(client, login, monkeypatch):
    headers = login("client@example.com")
    doc = _create_doc(client, headers)
    monkeypatch.setenv("MAX_UPLOAD_MB", "1")
    client.application.config["MAX_UPLOAD_BYTES"] = load_config()["MAX_UPLOAD_BYTES"]

    r = client.post(
        f"/api/documents/{doc['id']}/files",
        data={"file": (io.BytesIO(b"x" * (1024 * 1024 + 1)), "ktp.pdf")},
        headers=headers,
        content_type="multipart/form-data",
    )
    assert r.status_code == 413
    assert r.json["error"] == 'File "ktp.pdf" is too large (max 1.0 MB).'

    # bodies over MAX_CONTENT_LENGTH get the generic 413
    client.application.config["MAX_CONTENT_LENGTH"] = 512
    r = client.post(
        f"/api/documents/{doc['id']}/files",
        data={"file": (io.BytesIO(b"x" * 2048), "ktp.pdf")},
        headers=headers,
        content_type="multipart/form-data",
    )
    assert r.status_code == 413
    assert r.json["error"]
    assert "25MB" not in r.json["error"]


def test_checklist_replace_and_verify(client, login, seed):
    headers = login("staff@example.com")
    doc = _create_doc(client, headers, client_id=seed.client_profile)

    r = client.post(f"/api/documents/{doc['id']}/checklist", json={"items": ["KTP", {"item_name": "NPWP", "is_required": False}]}, headers=headers)
    assert r.status_code == 201
    items = r.json["items"]
    assert [i["item_name"] for i in items] == ["KTP", "NPWP"]
    assert items[1]["is_required"] is False

    r = client.patch(f"/api/documents/{doc['id']}/checklist", json={"checklist_id": items[0]["id"], "verified": True}, headers=headers)
    assert r.status_code == 200
    assert r.json["item"]["is_completed"] is True
    assert r.json["item"]["verified_at"] is not None

    # verified items survive a replace
    r = client.post(f"/api/documents/{doc['id']}/checklist", json={"items": ["Sertifikat"]}, headers=headers)
    assert [i["item_name"] for i in r.json["items"]] == ["KTP", "Sertifikat"]

    headers = login("client@example.com")
    r = client.patch(f"/api/documents/{doc['id']}/checklist", json={"checklist_id": items[0]["id"], "verified": False}, headers=headers)
    assert r.status_code == 403


def test_document_types_admin_crud(client, login, seed):
    headers = login("admin@example.com")
    r = client.post("/api/document-types", json={"name": "Akta Hibah", "required_documents": ["KTP", " "]}, headers=headers)
    assert r.status_code == 201
    assert r.json["document_type"]["required_documents"] == ["KTP"]
    assert r.json["document_type"]["estimated_duration_days"] == 7

    r = client.post("/api/document-types", json={"name": ""}, headers=headers)
    assert r.status_code == 400

    login("client@example.com")
    r = client.get("/api/document-types")
    assert {t["name"] for t in r.json["document_types"]} == {"Akta Jual Beli", "Akta Hibah"}


def test_templates(client, login):
    headers = login("admin@example.com")
    r = client.post("/api/templates", json={"name": "Kuasa Umum", "content": "Yang bertanda tangan..."}, headers=headers)
    assert r.status_code == 201
    tid = r.json["template"]["id"]

    login("staff@example.com")
    r = client.get("/api/templates")
    assert r.json["templates"][0]["name"] == "Kuasa Umum"
    assert "content" not in r.json["templates"][0]
    assert client.get(f"/api/templates/{tid}").json["template"]["content"] == "Yang bertanda tangan..."

    login("client@example.com")
    assert client.get("/api/templates").status_code == 403


def test_unknown_references_are_rejected(client, login, seed):
    headers = login("staff@example.com")
    r = client.post("/api/documents", json={"title": "Surat Kuasa", "client_id": seed.client_profile, "branch_id": 4242}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Branch not found."

    r = client.post("/api/documents", json={"title": "Surat Kuasa", "client_id": seed.client_profile, "document_type_id": 9999}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Document type not found."

    doc = _create_doc(client, headers, client_id=seed.client_profile)
    r = client.put(f"/api/documents/{doc['id']}", json={"staff_id": 99999}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Staff not found."
    with session_scope(client.application) as s:
        assert s.get(Document, doc["id"]).staff_id == seed.staff_profile
