from datetime import date, timedelta


def _seed_activity(client, login, seed):
    headers = login("staff@example.com")
    due = (date.today() + timedelta(days=3)).isoformat()
    r = client.post("/api/documents", json={"title": "Akta Hibah", "client_id": seed.client_profile, "due_date": due}, headers=headers)
    assert r.status_code == 201, r.json
    r = client.post(
        "/api/repertorium",
        json={"tanggal": date.today().isoformat(), "sifat_akta": "Hibah", "nama_penghadap": ["Dewi Klien"]},
        headers=headers,
    )
    assert r.status_code == 201, r.json
    r = client.post(
        "/api/invoices",
        json={"client_id": seed.client_profile, "items": [{"description": "Akta hibah", "unit_price": "1000000"}]},
        headers=headers,
    )
    inv = r.json["invoice"]
    client.patch(f"/api/invoices/{inv['id']}", json={"status": "SENT"}, headers=headers)
    client.post(f"/api/invoices/{inv['id']}/payments", json={"amount": "400000"}, headers=headers)


def test_reports_overview_is_admin_only(client, login, seed):
    _seed_activity(client, login, seed)

    login("admin@example.com")
    r = client.get("/api/reports")
    assert r.status_code == 200
    assert r.json["documents_total"] == 1
    assert sum(r.json["documents_by_status"].values()) == 1
    assert r.json["revenue"] == 400000.0
    assert r.json["invoices_by_status"] == {"PARTIALLY_PAID": 1}

    login("staff@example.com")
    assert client.get("/api/reports").status_code == 403


def test_dashboard_is_scoped_by_role(client, login, seed):
    _seed_activity(client, login, seed)

    r = client.get("/api/dashboard/stats")
    assert r.status_code == 200
    assert r.json["akta_this_month"] == 1
    assert r.json["akta_this_year"] == 1
    assert [d["title"] for d in r.json["upcoming_deadlines"]] == ["Akta Hibah"]

    login("client@example.com")
    r = client.get("/api/dashboard/stats")
    assert r.json["akta_this_month"] is None
    assert r.json["akta_this_year"] is None
    assert r.json["unpaid_invoices"] == 1
    assert r.json["revenue_this_month"] == 400000.0
    assert sum(r.json["documents_by_status"].values()) == 1

    login("other@example.com")
    r = client.get("/api/dashboard/stats")
    assert r.json["documents_by_status"] == {}
    assert r.json["unpaid_invoices"] == 0
    assert r.json["revenue_this_month"] == 0.0


def test_dashboard_requires_login(client, seed):
    assert client.get("/api/dashboard/stats").status_code == 401
