import pytest

from app.notaris.db import session_scope
from app.notaris.models import AuditEvent
from app.notaris.modules.chatbot.chunker import chunk_content
from app.notaris.modules.chatbot.models import ChatMessage, ChatSession, KnowledgeBase, KnowledgeChunk
from app.notaris.modules.chatbot.providers import ChatCompletionClient, get_ai_settings, mask_api_key, save_ai_settings
from app.notaris.modules.chatbot.service import search_knowledge
from app.notaris.modules.chatbot.tokens import (
    estimate_cost_usd,
    estimate_tokens,
    extract_tokens_from_response,
    format_cost_idr,
    format_cost_usd,
)
from app.notaris.modules.feature_flags.service import save_flags

REPLY = {
    "choices": [{"message": {"content": "Syaratnya KTP, KK dan sertifikat asli."}}],
    "usage": {"prompt_tokens": 120, "completion_tokens": 30, "total_tokens": 150},
}


@pytest.fixture()
def ai(app, monkeypatch):
    with session_scope(app) as s:
        settings = get_ai_settings(s)
        settings["providers"]["gemini"]["api_key"] = "sk-test-key"
        save_ai_settings(s, settings)
    calls = []

    def fake_post_json(self, body):
        calls.append(body)
        return REPLY

    monkeypatch.setattr(ChatCompletionClient, "post_json", fake_post_json)
    return calls


def _guest_headers(client):
    return {"X-CSRF-Token": client.get("/api/auth/csrf").json["csrf_token"]}


def _chat(client, headers, token, text="Apa persyaratan akta jual beli?"):
    return client.post("/api/chatbot", json={"messages": [{"role": "user", "content": text}], "session_token": token}, headers=headers)


# -- helpers ---------------------------------------------------------------


def test_short_content_is_one_chunk():
    assert chunk_content("Halo dunia") == [{"content": "Halo dunia", "metadata": {"heading": None, "index": 0}}]
    assert chunk_content("   ") == []


def test_headings_split_chunks_with_overlap():
    content = "# Pendahuluan\n" + "satu " * 200 + "\n# Persyaratan\n" + "dua " * 250
    chunks = chunk_content(content)
    assert [c["metadata"]["heading"] for c in chunks] == ["Pendahuluan", "Persyaratan"]
    assert [c["metadata"]["index"] for c in chunks] == [0, 1]
    assert chunks[0]["content"].startswith("# Pendahuluan")
    assert chunks[1]["content"].startswith("...")
    assert "satu" in chunks[1]["content"]


def test_long_section_splits_on_paragraphs():
    para = "x" * 700
    chunks = chunk_content("\n\n".join([para, para, para]), overlap=0)
    assert len(chunks) == 2
    assert chunks[0]["content"] == f"{para}\n\n{para}"
    assert chunks[1]["content"] == para


def test_token_helpers():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcdefg") == 2
    assert extract_tokens_from_response({}) == {"input_tokens": 0, "output_tokens": 0, "total_tokens": 0}
    assert extract_tokens_from_response({"usage": {"prompt_tokens": 10, "completion_tokens": 5}})["total_tokens"] == 15
    assert estimate_cost_usd(1_000_000, 1_000_000, "gpt-4o") == pytest.approx(12.5)
    assert estimate_cost_usd(1_000_000, 0, "unknown-model") == pytest.approx(0.075)
    assert format_cost_idr(1650.4) == "Rp 1.650"
    assert format_cost_usd(0.005) == "$0.005000"
    assert format_cost_usd(2) == "$2.00"
    assert mask_api_key("sk-test-key") == "•" * 7 + "-key"


# -- chatbot ---------------------------------------------------------------


def test_guest_chat_is_stored(app, client, seed, ai):
    r = _chat(client, _guest_headers(client), "guest-token-1")
    assert r.status_code == 200, r.json
    assert r.json["reply"] == "Syaratnya KTP, KK dan sertifikat asli."
    assert r.json["tokens"] == {"input_tokens": 120, "output_tokens": 30, "total_tokens": 150}

    system = ai[0]["messages"][0]
    assert system["role"] == "system"
    assert "calon klien" in system["content"]
    assert "Konsultasi Hukum" in system["content"]
    assert ai[0]["model"] == "gemini-2.5-flash"

    with session_scope(app) as s:
        chat = s.get(ChatSession, r.json["session_id"])
        assert chat.user_id is None
        assert chat.user_role == "GUEST"
        assert chat.title == "Apa persyaratan akta jual beli?"
        assert chat.total_messages == 2
        assert chat.output_tokens == 30
        assert [m.role for m in chat.messages] == ["user", "assistant"]
        assert s.get(ChatMessage, r.json["message_id"]).total_tokens == 150


def test_chat_requires_messages_and_token(client, seed, ai):
    headers = _guest_headers(client)
    r = client.post("/api/chatbot", json={"messages": [], "session_token": "t"}, headers=headers)
    assert r.status_code == 400
    r = client.post("/api/chatbot", json={"messages": [{"role": "user", "content": "hi"}]}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "messages and session_token are required."


def test_chat_without_api_key_is_unavailable(client, seed):
    r = _chat(client, _guest_headers(client), "guest-token-2")
    assert r.status_code == 503


def test_missing_usage_is_estimated(client, seed, ai, monkeypatch):
    monkeypatch.setattr(ChatCompletionClient, "post_json", lambda self, body: {"choices": [{"message": {"content": "Baik."}}]})
    r = _chat(client, _guest_headers(client), "guest-token-3")
    assert r.status_code == 200
    assert r.json["tokens"]["output_tokens"] == estimate_tokens("Baik.")
    assert r.json["tokens"]["input_tokens"] > 0


def test_foreign_session_token_is_rejected(client, login, seed, ai):
    headers = login("client@example.com")
    assert _chat(client, headers, "client-token").status_code == 200
    headers = login("other@example.com")
    r = _chat(client, headers, "client-token")
    assert r.status_code == 400
    assert r.json["error"] == "Invalid session token."


def test_staff_has_no_chatbot(client, login, seed, ai):
    headers = login("staff@example.com")
    r = _chat(client, headers, "staff-token")
    assert r.status_code == 403
    assert ai == []


def test_history_is_per_user(client, login, seed, ai):
    headers = login("client@example.com")
    r = _chat(client, headers, "client-token")
    session_id = r.json["session_id"]

    r = client.get("/api/chatbot/history")
    assert r.json["meta"]["total"] == 1
    assert r.json["data"][0]["title"] == "Apa persyaratan akta jual beli?"

    r = client.get(f"/api/chatbot/history/{session_id}")
    assert [m["role"] for m in r.json["messages"]] == ["user", "assistant"]

    headers = login("other@example.com")
    assert client.get(f"/api/chatbot/history/{session_id}").status_code == 404
    assert client.delete(f"/api/chatbot/history/{session_id}", headers=headers).status_code == 404

    headers = login("client@example.com")
    assert client.delete(f"/api/chatbot/history/{session_id}", headers=headers).status_code == 200
    assert client.get("/api/chatbot/history").json["meta"]["total"] == 0


# -- knowledge base and FAQ ------------------------------------------------


def test_knowledge_base_crud_and_role_filtered_retrieval(app, client, login, seed, ai):
    headers = login("admin@example.com")
    r = client.post("/api/admin/knowledge-base", json={}, headers=headers)
    assert r.status_code == 400
    assert r.json["errors"] == ["Title is required.", "Content is required.", "Category is required."]

    r = client.post(
        "/api/admin/knowledge-base",
        json={
            "title": "Syarat AJB",
            "content": "Persyaratan akta jual beli: KTP, KK, sertifikat asli dan PBB terakhir.",
            "category": "layanan",
            "allowed_roles": ["CLIENT"],
        },
        headers=headers,
    )
    assert r.status_code == 201, r.json
    entry = r.json["entry"]
    assert entry["allowed_roles"] == ["CLIENT"]
    assert entry["chunk_count"] == 1
    assert entry["chunks"][0]["token_count"] > 0

    headers = login("client@example.com")
    r = _chat(client, headers, "client-rag")
    assert r.json["rag_sources"] == ["Syarat AJB"]
    assert "Syarat AJB" in ai[-1]["messages"][0]["content"]

    # admins are not in allowed_roles
    headers = login("admin@example.com")
    r = _chat(client, headers, "admin-rag")
    assert r.json["rag_sources"] == []

    long_content = "# Dokumen\n" + "ktp " * 400 + "\n# Biaya\n" + "biaya " * 300
    r = client.put(f"/api/admin/knowledge-base/{entry['id']}", json={"content": long_content}, headers=headers)
    assert r.status_code == 200
    assert [c["heading"] for c in r.json["entry"]["chunks"]] == ["Dokumen", "Biaya"]

    r = client.get("/api/admin/knowledge-base?category=layanan")
    assert len(r.json["data"]) == 1

    r = client.delete(f"/api/admin/knowledge-base/{entry['id']}", headers=headers)
    assert r.status_code == 200
    with session_scope(app) as s:
        assert s.query(KnowledgeChunk).count() == 0

    headers = login("staff@example.com")
    assert client.get("/api/admin/knowledge-base").status_code == 403


def test_faq_crud(app, client, login, seed, ai):
    headers = login("admin@example.com")
    r = client.post("/api/admin/faq", json={"question": ""}, headers=headers)
    assert r.status_code == 400
    assert r.json["errors"] == ["Question is required.", "Answer is required."]

    r = client.post("/api/admin/faq", json={"question": "Berapa lama proses AJB?", "answer": "Sekitar 7 hari kerja.", "order": 2}, headers=headers)
    assert r.status_code == 201
    faq_id = r.json["faq"]["id"]
    client.post("/api/admin/faq", json={"question": "Jam buka?", "answer": "08.00 - 16.00", "order": 1}, headers=headers)

    r = client.get("/api/admin/faq")
    assert [f["question"] for f in r.json["data"]] == ["Jam buka?", "Berapa lama proses AJB?"]

    r = client.put(f"/api/admin/faq/{faq_id}", json={"is_active": False}, headers=headers)
    assert r.json["faq"]["is_active"] is False

    # guests only see active FAQs in the prompt
    client.post("/api/auth/logout")
    _chat(client, _guest_headers(client), "guest-faq")
    system = ai[-1]["messages"][0]["content"]
    assert "Jam buka?" in system
    assert "Berapa lama proses AJB?" not in system

    headers = login("admin@example.com")
    assert client.delete(f"/api/admin/faq/{faq_id}", headers=headers).status_code == 200
    assert client.delete(f"/api/admin/faq/{faq_id}", headers=headers).status_code == 404


# -- AI settings and analytics ---------------------------------------------


def test_ai_settings_mask_keys(app, client, login, seed):
    headers = login("super@example.com")
    r = client.get("/api/admin/ai-settings")
    assert r.status_code == 200
    assert r.json["settings"]["active_provider_id"] == "gemini"
    assert r.json["settings"]["providers"]["gemini"]["is_configured"] is False
    assert {p["id"] for p in r.json["providers"]} == {"openai", "gemini", "deepseek"}

    r = client.put("/api/admin/ai-settings", json={"providers": {"gemini": {"api_key": "sk-test-key"}}}, headers=headers)
    assert r.status_code == 200
    masked = r.json["settings"]["providers"]["gemini"]["api_key"]
    assert masked.endswith("-key") and "sk-test" not in masked

    r = client.put("/api/admin/ai-settings", json={"providers": {"gemini": {"api_key": masked}}}, headers=headers)
    assert r.status_code == 200
    with session_scope(app) as s:
        assert get_ai_settings(s)["providers"]["gemini"]["api_key"] == "sk-test-key"

    r = client.put("/api/admin/ai-settings", json={"active_provider_id": "gemini", "active_model_id": "gpt-4o"}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Unknown model for gemini: gpt-4o"

    r = client.put("/api/admin/ai-settings", json={"active_provider_id": "openai", "active_model_id": "gpt-4o"}, headers=headers)
    assert r.json["settings"]["active_model_id"] == "gpt-4o"

    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "ai_settings.update").count() == 3

    headers = login("staff@example.com")
    assert client.get("/api/admin/ai-settings").status_code == 403


def test_ai_connection_test(client, login, seed, monkeypatch):
    headers = login("super@example.com")
    r = client.post("/api/admin/ai-settings", json={}, headers=headers)
    assert r.status_code == 400
    assert r.json == {"success": False, "error": "API key is not configured."}

    monkeypatch.setattr(ChatCompletionClient, "post_json", lambda self, body: {"choices": [{"message": {"content": "hello"}}]})
    r = client.post("/api/admin/ai-settings", json={"provider_id": "deepseek", "api_key": "sk-ds"}, headers=headers)
    assert r.json == {"success": True, "message": "Koneksi berhasil! Response: hello"}

    r = client.post("/api/admin/ai-settings", json={"provider_id": "nope"}, headers=headers)
    assert r.status_code == 400


def test_ai_analytics(client, login, seed, ai):
    headers = login("client@example.com")
    _chat(client, headers, "client-analytics")
    client.post("/api/auth/logout")
    _chat(client, _guest_headers(client), "guest-analytics")

    login("admin@example.com")
    r = client.get("/api/admin/ai-analytics?days=7")
    assert r.status_code == 200
    assert r.json["days"] == 7
    assert r.json["totals"]["sessions"] == 2
    assert r.json["totals"]["messages"] == 4
    assert {row["role"] for row in r.json["by_role"]} == {"CLIENT", "GUEST"}
    assert r.json["estimated_cost"]["model"] == "gemini-2.5-flash"
    assert sum(d["messages"] for d in r.json["daily"]) == 4

    login("staff@example.com")
    assert client.get("/api/admin/ai-analytics").status_code == 403


# -- document assist -------------------------------------------------------


def test_document_ai_actions(app, client, login, seed, ai):
    headers = login("staff@example.com")
    r = client.post("/api/documents/ai", json={"action": "bogus"}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"].startswith("Invalid action.")

    r = client.post("/api/documents/ai", json={"action": "revise", "document_type": "Akta", "title": "AJB"}, headers=headers)
    assert r.json["errors"] == ["Content is required for revise.", "Instruction is required for revise."]

    r = client.post(
        "/api/documents/ai",
        json={"action": "generate", "document_type": "Akta Jual Beli", "title": "AJB Rumah", "client_name": "Dewi"},
        headers=headers,
    )
    assert r.status_code == 200, r.json
    assert r.json["content"] == REPLY["choices"][0]["message"]["content"]
    assert "Nama klien: Dewi" in ai[-1]["messages"][1]["content"]

    r = client.post(
        "/api/documents/ai",
        json={"action": "translate", "document_type": "Akta", "title": "AJB", "content": "<p>Pada hari ini</p>"},
        headers=headers,
    )
    assert r.status_code == 200
    assert ai[-1]["messages"][0]["content"].startswith("You are a professional legal translator")

    with session_scope(app) as s:
        actions = {a for (a,) in s.query(AuditEvent.action).filter(AuditEvent.action.like("ai.%")).all()}
        assert actions == {"ai.document_generate", "ai.document_translate"}

    headers = login("client@example.com")
    r = client.post("/api/documents/ai", json={"action": "summarize", "document_type": "Akta", "title": "AJB", "content": "x"}, headers=headers)
    assert r.status_code == 403


def test_retrieval_is_not_crowded_out_by_hidden_chunks(app, seed):
    with session_scope(app) as s:
        internal = KnowledgeBase(title="Tarif Internal", content="-", category="internal", allowed_roles=["ADMIN"])
        internal.chunks = [
            KnowledgeChunk(chunk_index=i, content=f"biaya akta internal {i}", allowed_roles=["ADMIN"]) for i in range(60)
        ]
        public = KnowledgeBase(title="Biaya Layanan", content="-", category="layanan", allowed_roles=["CLIENT"])
        public.chunks = [KnowledgeChunk(chunk_index=0, content="biaya akta jual beli mulai Rp 5.000.000", allowed_roles=["CLIENT"])]
        s.add_all([internal, public])

    with session_scope(app) as s:
        found = search_knowledge(s, "berapa biaya akta", "CLIENT")
        assert [c.knowledge_base.title for c in found] == ["Biaya Layanan"]
        assert len(search_knowledge(s, "berapa biaya akta", "ADMIN")) == 5


def test_document_compare(app, client, login, seed, ai):
    headers = login("staff@example.com")
    r = client.post("/api/documents/ai/compare", json={"original_content": "<p>Pasal 1</p>"}, headers=headers)
    assert r.status_code == 400
    assert r.json["error"] == "Both original_content and revised_content are required."

    r = client.post(
        "/api/documents/ai/compare",
        json={
            "original_content": "<p>Pasal 1: harga Rp 500.000.000</p>",
            "revised_content": "<p>Pasal 1: harga Rp 550.000.000</p>",
            "title": "AJB Rumah",
            "document_type": "Akta Jual Beli",
        },
        headers=headers,
    )
    assert r.status_code == 200, r.json
    assert r.json["comparison"] == REPLY["choices"][0]["message"]["content"]
    system, user = ai[-1]["messages"][0]["content"], ai[-1]["messages"][1]["content"]
    assert "membandingkan dokumen" in system
    assert user.startswith('Bandingkan kedua versi dokumen "AJB Rumah" (Akta Jual Beli)')
    assert "=== VERSI LAMA ===\n<p>Pasal 1: harga Rp 500.000.000</p>" in user

    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "ai.document_compare").count() == 1

    headers = login("client@example.com")
    r = client.post("/api/documents/ai/compare", json={"original_content": "a", "revised_content": "b"}, headers=headers)
    assert r.status_code == 403

    with session_scope(app) as s:
        save_flags(s, package=None, enabled_features={"ADMIN": [], "STAFF": ["documents"], "CLIENT": []})
    headers = login("staff@example.com")
    r = client.post("/api/documents/ai/compare", json={"original_content": "a", "revised_content": "b"}, headers=headers)
    assert r.status_code == 403
    assert r.json["error"] == "Feature is not available in your license package"
