from app.notaris.db import session_scope
from app.notaris.modules.appointments.models import Appointment


def _book(client, headers, seed, **extra):
    payload = {"service_id": seed.service, "scheduled_at": "2026-11-03T09:00:00Z", "notes": "Tanda tangan AJB"}
    payload.update(extra)
    r = client.post("/api/appointments", json=payload, headers=headers)
    assert r.status_code == 201, r.json
    return r.json["appointment"]


def test_client_books_pending_appointment(client, login, seed):
    headers = login("client@example.com")
    appt = _book(client, headers, seed, staff_id=seed.staff_profile)
    assert appt["status"] == "PENDING"
    assert appt["scheduled_at"].startswith("2026-11-03T09:00:00")
    assert appt["duration_minutes"] == 30
    assert appt["client"]["id"] == seed.client_profile
    assert appt["staff"] is None
    assert appt["service"]["name"] == "Konsultasi Hukum"


def test_booking_validation(client, login, seed):
    headers = login("client@example.com")
    r = client.post("/api/appointments", json={"scheduled_at": "soon"}, headers=headers)
    assert r.status_code == 400
    assert r.json["errors"] == ["service_id is required.", "scheduled_at must be an ISO timestamp."]

    r = client.post("/api/appointments", json={"service_id": 9999, "scheduled_at": "2026-11-03T09:00:00"}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Service not found."


def test_staff_only_sees_assigned_appointments(client, login, seed):
    headers = login("admin@example.com")
    assigned = _book(client, headers, seed, client_id=seed.client_profile, staff_id=seed.staff_profile)
    unassigned = _book(client, headers, seed, client_id=seed.other_profile)

    login("staff@example.com")
    r = client.get("/api/appointments")
    assert [a["id"] for a in r.json["data"]] == [assigned["id"]]
    assert client.get(f"/api/appointments/{unassigned['id']}").status_code == 403

    login("other@example.com")
    r = client.get("/api/appointments")
    assert [a["id"] for a in r.json["data"]] == [unassigned["id"]]


def test_list_filters_by_date_range(client, login, seed):
    headers = login("client@example.com")
    _book(client, headers, seed, scheduled_at="2026-11-03T09:00:00")
    late = _book(client, headers, seed, scheduled_at="2026-12-15T09:00:00")

    r = client.get("/api/appointments?from=2026-12-01T00:00:00")
    assert [a["id"] for a in r.json["data"]] == [late["id"]]
    assert client.get("/api/appointments?from=tomorrow").status_code == 400


def test_field_ownership_by_role(client, login, seed):
    headers = login("admin@example.com")
    appt = _book(client, headers, seed, client_id=seed.client_profile, staff_id=seed.staff_profile)

    headers = login("client@example.com")
    r = client.put(f"/api/appointments/{appt['id']}", json={"status": "CONFIRMED"}, headers=headers)
    assert r.status_code == 403
    r = client.put(f"/api/appointments/{appt['id']}", json={"scheduled_at": "2026-11-04T10:00:00", "duration_minutes": 90}, headers=headers)
    assert r.status_code == 200
    assert r.json["changed"] == ["scheduled_at"]

    headers = login("staff@example.com")
    r = client.put(f"/api/appointments/{appt['id']}", json={"status": "CONFIRMED", "scheduled_at": "2026-11-05T10:00:00"}, headers=headers)
    assert r.status_code == 200
    assert r.json["changed"] == ["status"]
    assert r.json["appointment"]["status"] == "CONFIRMED"

    r = client.put(f"/api/appointments/{appt['id']}", json={"status": "LATE"}, headers=headers)
    assert r.status_code == 400


def test_cancel_hides_from_list(client, login, seed):
    headers = login("client@example.com")
    appt = _book(client, headers, seed)
    r = client.delete(f"/api/appointments/{appt['id']}", headers=headers)
    assert r.status_code == 200
    assert client.get("/api/appointments").json["data"] == []
    with session_scope(client.application) as s:
        row = s.get(Appointment, appt["id"])
        assert row.status == "CANCELLED"
        assert row.cancelled_at is not None


def test_service_delete_deactivates(client, login, seed):
    headers = login("admin@example.com")
    r = client.post("/api/services", json={"name": "Legalisasi", "duration_minutes": 15, "price": "150000"}, headers=headers)
    assert r.status_code == 201
    sid = r.json["service"]["id"]

    assert client.delete(f"/api/services/{sid}", headers=headers).status_code == 200
    names = [svc["name"] for svc in client.get("/api/services").json["services"]]
    assert names == ["Konsultasi Hukum"]

    headers = login("staff@example.com")
    assert client.post("/api/services", json={"name": "X"}, headers=headers).status_code == 403


def test_staff_availability(client, login, seed):
    headers = login("staff@example.com")
    r = client.put(
        "/api/staff-availability",
        json={"entries": [{"day_of_week": 2, "start_time": "13:00", "end_time": "17:00"}, {"day_of_week": 1, "start_time": "08:00", "end_time": "12:00"}]},
        headers=headers,
    )
    assert r.status_code == 200
    assert [row["day_of_week"] for row in r.json["availability"]] == [1, 2]

    r = client.post("/api/staff-availability", json={"staff_id": seed.staff2_profile, "day_of_week": 1, "start_time": "08:00", "end_time": "12:00"}, headers=headers)
    assert r.status_code == 403

    r = client.post("/api/staff-availability", json={"day_of_week": 7, "start_time": "08:00", "end_time": "12:00"}, headers=headers)
    assert r.status_code == 400

    login("client@example.com")
    r = client.get(f"/api/staff-availability?staff_id={seed.staff_profile}")
    assert len(r.json["availability"]) == 2
    assert client.get("/api/staff-availability").status_code == 404


def test_unknown_staff_is_rejected(client, login, seed):
    headers = login("admin@example.com")
    r = client.post(
        "/api/appointments",
        json={"service_id": seed.service, "scheduled_at": "2026-11-03T09:00:00", "client_id": seed.client_profile, "staff_id": 777},
        headers=headers,
    )
    assert r.status_code == 400
    assert r.json["error"] == "Staff not found."
    with session_scope(client.application) as s:
        assert s.query(Appointment).count() == 0
