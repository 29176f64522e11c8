from app.notaris.db import session_scope
from app.notaris.modules.chatbot.providers import ChatCompletionClient, get_ai_settings, save_ai_settings
from app.notaris.modules.messaging.service import notify


def _configure_ai(app):
    with session_scope(app) as s:
        settings = get_ai_settings(s)
        settings["providers"]["gemini"]["api_key"] = "sk-test-key"
        save_ai_settings(s, settings)


def _start_conversation(client, login, seed):
    headers = login("client@example.com")
    r = client.post("/api/conversations", json={"participant_ids": [seed.staff], "subject": "Akta jual beli"}, headers=headers)
    assert r.status_code == 201, r.json
    conv = r.json["conversation"]
    r = client.post(f"/api/conversations/{conv['id']}/messages", json={"content": "Halo, apakah berkas saya sudah lengkap?"}, headers=headers)
    assert r.status_code == 201, r.json
    return conv


def test_client_contacts_exclude_other_clients(client, login, seed):
    login("client@example.com")
    r = client.get("/api/conversations/users")
    assert r.status_code == 200
    assert {u["id"] for u in r.json["staff"]} == {seed.staff, seed.staff2}
    assert {u["id"] for u in r.json["admins"]} == {seed.superadmin, seed.admin}
    assert r.json["clients"] == []
    staff = next(u for u in r.json["staff"] if u["id"] == seed.staff)
    assert staff["position"] == "Staf Akta"


def test_client_conversation_pulls_in_an_admin(client, login, seed):
    conv = _start_conversation(client, login, seed)
    ids = {p["id"] for p in conv["participants"]}
    assert ids == {seed.client, seed.staff, seed.superadmin}
    assert conv["subject"] == "Akta jual beli"


def test_create_conversation_validation(client, login, seed):
    headers = login("staff@example.com")
    r = client.post("/api/conversations", json={"participant_ids": []}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "participant_ids is required."

    r = client.post("/api/conversations", json={"participant_ids": [9999, seed.staff]}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "No valid participants."


def test_message_notifies_and_counts_unread(client, login, seed):
    conv = _start_conversation(client, login, seed)

    headers = login("staff@example.com")
    r = client.get("/api/conversations")
    assert r.status_code == 200
    listed = r.json["conversations"][0]
    assert listed["id"] == conv["id"]
    assert listed["unread_count"] == 1
    assert listed["last_message"]["content"] == "Halo, apakah berkas saya sudah lengkap?"
    assert listed["last_message"]["sender"]["id"] == seed.client

    r = client.get("/api/notifications")
    assert r.json["unread_count"] == 1
    n = r.json["data"][0]
    assert n["title"] == "Pesan baru"
    assert n["message"].startswith("Dewi Klien: Halo")
    assert n["link"] == f"/messages?conversation={conv['id']}"

    r = client.post(f"/api/conversations/{conv['id']}/read", headers=headers)
    assert r.status_code == 200
    r = client.get("/api/conversations")
    assert r.json["conversations"][0]["unread_count"] == 0

    r = client.post(f"/api/conversations/{conv['id']}/messages", json={"content": "Sudah, terima kasih."}, headers=headers)
    assert r.status_code == 201
    r = client.get(f"/api/conversations/{conv['id']}/messages")
    assert [m["content"] for m in r.json["data"]] == ["Halo, apakah berkas saya sudah lengkap?", "Sudah, terima kasih."]

    login("client@example.com")
    r = client.get("/api/notifications?unread=1")
    assert r.json["unread_count"] == 1
    assert r.json["data"][0]["message"].startswith("Budi Staf: Sudah")


def test_non_participant_is_forbidden(client, login, seed):
    conv = _start_conversation(client, login, seed)
    headers = login("staff2@example.com")
    assert client.get(f"/api/conversations/{conv['id']}/messages").status_code == 403
    r = client.post(f"/api/conversations/{conv['id']}/messages", json={"content": "hi"}, headers=headers)
    assert r.status_code == 403
    assert client.get("/api/conversations/9999/messages").status_code == 404


def test_empty_message_is_rejected(client, login, seed):
    conv = _start_conversation(client, login, seed)
    headers = login("client@example.com")
    r = client.post(f"/api/conversations/{conv['id']}/messages", json={"content": "   "}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Content is required."


def test_notification_read_and_delete(app, client, login, seed):
    with session_scope(app) as s:
        first = notify(s, seed.client, "DOCUMENT_STATUS", "Status dokumen", "Dokumen disetujui", link="/documents/1")
        notify(s, seed.client, "INVOICE", "Tagihan baru", "INV-2026-0001")
        notify(s, seed.other, "INVOICE", "Tagihan baru", "INV-2026-0002")
        s.flush()
        first_id = first.id

    headers = login("client@example.com")
    r = client.get("/api/notifications")
    assert r.json["unread_count"] == 2
    assert r.json["meta"]["total"] == 2

    r = client.post(f"/api/notifications/{first_id}/read", headers=headers)
    assert r.status_code == 200
    assert r.json["notification"]["is_read"] is True
    assert r.json["notification"]["read_at"]

    r = client.post("/api/notifications/read-all", headers=headers)
    assert r.json == {"success": True, "updated": 1}

    headers = login("other@example.com")
    r = client.delete(f"/api/notifications/{first_id}", headers=headers)
    assert r.status_code == 404

    headers = login("client@example.com")
    r = client.delete(f"/api/notifications/{first_id}", headers=headers)
    assert r.status_code == 200
    assert client.get("/api/notifications").json["meta"]["total"] == 1


def test_ai_draft_reply(app, client, login, seed, monkeypatch):
    conv = _start_conversation(client, login, seed)
    headers = login("staff@example.com")
    recent = [{"sender": "Dewi Klien", "content": "Halo, apakah berkas saya sudah lengkap?"}]

    r = client.post("/api/messages/ai-draft", json={"conversation_id": conv["id"]}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Missing data"

    r = client.post("/api/messages/ai-draft", json={"conversation_id": conv["id"], "recent_messages": recent}, headers=headers)
    assert r.status_code == 503

    _configure_ai(app)
    calls = []

    def fake_post_json(self, body):
        calls.append(body)
        return {"choices": [{"message": {"content": "Berkas Anda sudah kami terima."}}], "usage": {"prompt_tokens": 40, "completion_tokens": 8}}

    monkeypatch.setattr(ChatCompletionClient, "post_json", fake_post_json)
    r = client.post("/api/messages/ai-draft", json={"conversation_id": conv["id"], "recent_messages": recent}, headers=headers)
    assert r.status_code == 200, r.json
    assert r.json["draft"] == "Berkas Anda sudah kami terima."
    assert "Dewi Klien: Halo" in calls[0]["messages"][1]["content"]
    assert calls[0]["model"] == "gemini-2.5-flash"

    headers = login("client@example.com")
    r = client.post("/api/messages/ai-draft", json={"conversation_id": conv["id"], "recent_messages": recent}, headers=headers)
    assert r.status_code == 403
