from app.notaris.db import session_scope
from app.notaris.models import AuditEvent
from app.notaris.modules.invoices import service as invoice_service
from app.notaris.modules.invoices.models import Invoice
from app.notaris.modules.invoices.service import next_invoice_number


def _create_invoice(client, headers, seed, **extra):
    payload = {
        "client_id": seed.client_profile,
        "items": [
            {"description": "Jasa pembuatan akta", "quantity": 1, "unit_price": "2500000"},
            {"description": "Salinan akta", "quantity": 3, "unit_price": "50000"},
        ],
        "tax_percent": 11,
        "discount_amount": "100000",
    }
    payload.update(extra)
    r = client.post("/api/invoices", json=payload, headers=headers)
    assert r.status_code == 201, r.json
    return r.json["invoice"]


def test_totals_are_computed(client, login, seed):
    headers = login("staff@example.com")
    inv = _create_invoice(client, headers, seed)
    assert inv["status"] == "DRAFT"
    assert inv["subtotal"] == 2650000.0
    assert inv["tax_amount"] == 291500.0
    assert inv["total_amount"] == 2841500.0
    assert inv["items"][1]["amount"] == 150000.0
    assert inv["invoice_number"].endswith("-0001")


def test_invoice_numbers_are_sequential(app, seed):
    with session_scope(app) as s:
        assert next_invoice_number(s, 2026) == "INV-2026-0001"


def test_validation(client, login, seed):
    headers = login("staff@example.com")
    r = client.post("/api/invoices", json={"client_id": seed.client_profile, "items": []}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "At least one item is required."

    r = client.post("/api/invoices", json={"client_id": seed.client_profile, "items": [{"description": "x", "unit_price": "abc"}]}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "unit_price must be a number."

    r = client.post("/api/invoices", json={"items": [{"description": "x"}]}, headers=headers)
    assert r.json["error"] == "client_id is required."


def test_payments_move_status(client, login, seed):
    headers = login("staff@example.com")
    inv = _create_invoice(client, headers, seed, tax_percent=0, discount_amount=0)

    r = client.post(f"/api/invoices/{inv['id']}/payments", json={"amount": 0}, headers=headers)
    assert r.status_code == 400

    r = client.post(f"/api/invoices/{inv['id']}/payments", json={"amount": "1000000", "method": "cash"}, headers=headers)
    assert r.status_code == 201
    assert r.json["invoice"]["status"] == "PARTIALLY_PAID"
    assert r.json["payment"]["method"] == "CASH"

    r = client.post(f"/api/invoices/{inv['id']}/payments", json={"amount": "1650000"}, headers=headers)
    body = r.json["invoice"]
    assert body["status"] == "PAID"
    assert body["paid_amount"] == 2650000.0
    assert body["paid_at"] is not None
    assert len(body["payments"]) == 2

    with session_scope(client.application) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "invoice.payment").count() == 2


def test_update_recalculates(client, login, seed):
    headers = login("staff@example.com")
    inv = _create_invoice(client, headers, seed)
    r = client.patch(f"/api/invoices/{inv['id']}", json={"items": [{"description": "Konsultasi", "unit_price": 500000}], "tax_percent": 0, "discount_amount": 0, "status": "sent"}, headers=headers)
    assert r.status_code == 200
    body = r.json["invoice"]
    assert body["total_amount"] == 500000.0
    assert [i["description"] for i in body["items"]] == ["Konsultasi"]
    assert body["status"] == "SENT"
    assert body["sent_at"] is not None

    r = client.patch(f"/api/invoices/{inv['id']}", json={"status": "LOST"}, headers=headers)
    assert r.status_code == 400


def test_client_sees_only_own_invoices(client, login, seed):
    headers = login("staff@example.com")
    mine = _create_invoice(client, headers, seed)
    theirs = _create_invoice(client, headers, seed, client_id=seed.other_profile)

    login("client@example.com")
    r = client.get("/api/invoices")
    assert [i["id"] for i in r.json["invoices"]] == [mine["id"]]
    assert r.json["total"] == 1
    assert client.get(f"/api/invoices/{theirs['id']}").status_code == 403
    assert client.get(f"/api/invoices/{theirs['id']}/export").status_code == 403

    r = client.get(f"/api/invoices/{mine['id']}/export")
    assert r.status_code == 200
    assert r.mimetype == "application/pdf"
    assert r.data.startswith(b"%PDF")


def test_export_requires_login(client, login, seed):
    headers = login("staff@example.com")
    inv = _create_invoice(client, headers, seed)
    client.post("/api/auth/logout")
    assert client.get(f"/api/invoices/{inv['id']}/export").status_code == 401


def test_delete_is_admin_only(client, login, seed):
    headers = login("staff@example.com")
    inv = _create_invoice(client, headers, seed)
    assert client.delete(f"/api/invoices/{inv['id']}", headers=headers).status_code == 403

    headers = login("admin@example.com")
    assert client.delete(f"/api/invoices/{inv['id']}", headers=headers).status_code == 200
    assert client.get(f"/api/invoices/{inv['id']}").status_code == 404


def test_service_fee_catalog(client, login):
    headers = login("admin@example.com")
    r = client.post("/api/service-fees", json={"name": "Akta Pendirian PT", "base_fee": "5000000"}, headers=headers)
    assert r.status_code == 201
    assert r.json["service_fee"]["category"] == "notaris"
    assert r.json["service_fee"]["base_fee"] == 5000000.0

    r = client.post("/api/service-fees", json={"name": "Tanpa harga"}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "base_fee is required."

    login("staff@example.com")
    assert [f["name"] for f in client.get("/api/service-fees").json["service_fees"]] == ["Akta Pendirian PT"]


def test_unknown_document_is_rejected(client, login, seed):
    headers = login("staff@example.com")
    r = client.post(
        "/api/invoices",
        json={"client_id": seed.client_profile, "document_id": 555, "items": [{"description": "Jasa akta", "unit_price": "1000000"}]},
        headers=headers,
    )
    assert r.status_code == 400
    assert r.json["error"] == "Document not found."


def test_number_conflict_returns_409(client, login, seed, monkeypatch):
    headers = login("staff@example.com")
    first = _create_invoice(client, headers, seed)
    monkeypatch.setattr(invoice_service, "next_invoice_number", lambda s, year=None: first["invoice_number"])

    r = client.post("/api/invoices", json={"client_id": seed.client_profile, "items": [{"description": "Salinan", "unit_price": "50000"}]}, headers=headers)
    assert r.status_code == 409
    assert r.json["error"] == "Invoice number already taken. Please try again."

    with session_scope(client.application) as s:
        assert s.query(Invoice).count() == 1
