from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_

from app.notaris.audit import record_event
from app.notaris.constants import CHAT_ROLES, ROLE_CLIENT, ROLE_GUEST
from app.notaris.modules.appointments.models import Service
from app.notaris.modules.chatbot.chunker import chunk_content
from app.notaris.modules.chatbot.models import FAQ, ChatMessage, ChatSession, KnowledgeBase, KnowledgeChunk
from app.notaris.modules.chatbot.providers import ChatCompletionClient, get_ai_settings, reply_text
from app.notaris.modules.chatbot.tokens import estimate_cost_idr, estimate_cost_usd, estimate_tokens, extract_tokens_from_response
from app.notaris.utils import clean_str, iso, parse_bool, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.notaris.models import User

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "Maaf, saya tidak bisa menjawab saat ini."
HISTORY_WINDOW = 10
RAG_TOP_K = 5
CONTEXT_LIMIT = 15

BASE_RULES = """
ATURAN WAJIB:
- Jawab dalam Bahasa Indonesia yang sopan dan profesional
- Jawaban ringkas dan to-the-point, maksimal 4-5 kalimat kecuali ditanya detail
- JANGAN gunakan format markdown. Tulis plain text biasa
- Jika ada URL yang relevan, berikan dalam format: "Silakan buka halaman [nama] di /url"
- Jika pertanyaan di luar cakupan, jawab "Maaf, saya tidak bisa membantu dengan hal tersebut"
- JANGAN membuat informasi yang tidak ada di konteks
- Gunakan emoji secukupnya untuk kesan ramah"""

ROLE_PROMPTS = {
    "GUEST": """Kamu adalah asisten virtual kantor notaris yang ramah dan profesional.
Tugasmu membantu calon klien mendapatkan informasi tentang layanan notaris.

Bantu mereka dengan:
- Informasi layanan notaris (jenis akta, surat, dll)
- Persyaratan dokumen
- Prosedur umum
- Estimasi biaya (jika ada di data)
- Arahkan untuk membuat akun atau appointment jika tertarik

JANGAN berikan info tentang fitur internal sistem (admin, staff dashboard, dll).""",
    "CLIENT": """Kamu adalah asisten virtual kantor notaris untuk klien yang sudah terdaftar.

Bantu klien dengan:
- Status dan tracking dokumen mereka
- Cara membuat appointment/janji
- Info tagihan & cara pembayaran
- Panduan navigasi portal klien
- Persyaratan dokumen yang dibutuhkan
- Cara menghubungi staff/admin melalui messaging

Berikan URL halaman yang relevan jika klien butuh navigasi.""",
    "STAFF": """Kamu adalah asisten kantor notaris untuk staff.

Bantu staff dengan:
- Cara menggunakan AI document tools (generate, analyze, correct, revise, translate, summarize)
- Workflow dokumen: draft → submitted → in_review → approved → completed
- Cara mengelola appointment & billing
- Panduan repertorium & klapper
- Cara berkomunikasi dengan client via messaging
- Template dokumen

Berikan URL halaman yang relevan.""",
    "ADMIN": """Kamu adalah asisten admin kantor notaris.

Bantu admin dengan SEMUA fitur staff ditambah:
- Cara mengelola user (tambah, edit, ganti role, hapus)
- Cara mengelola branches/cabang kantor
- Cara mengelola services & document types
- Cara mengatur AI provider & model (OpenAI, Gemini, DeepSeek)
- Cara membuat & mengelola template dokumen
- Cara menggunakan reports & analytics
- Cara mengatur feature flags
- Audit logs & aktivitas
- Service fees / tarif layanan

Berikan URL halaman yang relevan.""",
    "SUPER_ADMIN": """Kamu adalah asisten teknis untuk super admin kantor notaris.

Bantu dengan SEMUA fitur termasuk:
- Semua fitur admin
- License management & status
- System configuration
- Knowledge base management
- AI analytics & token usage monitoring

Kamu memiliki akses penuh ke semua informasi. Berikan URL halaman yang relevan.""",
}
DEFAULT_PROMPT = """Kamu adalah asisten virtual kantor notaris yang ramah.
Bantu pengguna dengan informasi umum tentang layanan notaris."""


def system_prompt_for_role(role: str) -> str:
    return ROLE_PROMPTS.get(role, DEFAULT_PROMPT) + "\n" + BASE_RULES


# -- knowledge retrieval ---------------------------------------------------


def search_keywords(query: str) -> list[str]:
    return [w for w in query.lower().split() if len(w) > 2][:5]


def search_knowledge(s: "Session", query: str, role: str, top_k: int = RAG_TOP_K) -> list[KnowledgeChunk]:
    """
    Keyword retrieval: any keyword matches (case-insensitive), filtered by the
    chunk's allowed roles, then ranked by how many distinct keywords a chunk
    contains. Ties keep insertion order.
    """
    keywords = search_keywords(query)
    if not keywords:
        return []
    candidates = (
        s.query(KnowledgeChunk)
        .join(KnowledgeBase, KnowledgeBase.id == KnowledgeChunk.knowledge_base_id)
        .filter(KnowledgeBase.is_active.is_(True))
        .filter(or_(*[KnowledgeChunk.content.ilike(f"%{kw}%") for kw in keywords]))
        .order_by(KnowledgeChunk.id.asc())
        .all()
    )
    scored = []
    for chunk in candidates:
        if role not in (chunk.allowed_roles or []):
            continue
        text = chunk.content.lower()
        scored.append((sum(1 for kw in keywords if kw in text), chunk))
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [chunk for _, chunk in scored[:top_k]]


def build_rag_context(chunks: list[KnowledgeChunk]) -> str:
    if not chunks:
        return ""
    parts = [f"[Info {i + 1} - {c.knowledge_base.title}]\n{c.content}" for i, c in enumerate(chunks)]
    return (
        "\nKONTEKS DARI KNOWLEDGE BASE (gunakan info ini untuk menjawab):\n"
        + "\n\n".join(parts)
        + "\n---\nJawab berdasarkan konteks di atas jika relevan. Jika pertanyaan tidak terkait konteks, "
        "jawab berdasarkan pengetahuan umummu sebagai asisten notaris."
    )


def build_dynamic_context(s: "Session", role: str) -> str:
    sections = []
    services = s.query(Service).filter(Service.is_active.is_(True)).order_by(Service.name.asc()).limit(CONTEXT_LIMIT).all()
    if services:
        lines = [f"- {svc.name}: {svc.description or ''} ({svc.duration_minutes} menit)" for svc in services]
        sections.append("LAYANAN TERSEDIA:\n" + "\n".join(lines))
    if role in (ROLE_GUEST, ROLE_CLIENT):
        faqs = s.query(FAQ).filter(FAQ.is_active.is_(True)).order_by(FAQ.order.asc(), FAQ.id.asc()).limit(CONTEXT_LIMIT).all()
        if faqs:
            sections.append("FAQ:\n" + "\n\n".join(f"Q: {f.question}\nA: {f.answer}" for f in faqs))
    return "\n\n".join(sections)


# -- chat ------------------------------------------------------------------


def clean_chat_messages(raw: Any) -> list[dict[str, str]]:
    if not isinstance(raw, list):
        return []
    out = []
    for m in raw:
        if not isinstance(m, dict):
            continue
        role = m.get("role")
        content = m.get("content")
        if role in ("user", "assistant") and isinstance(content, str) and content.strip():
            out.append({"role": role, "content": content})
    return out


def get_or_create_session(s: "Session", token: str, user: "User | None", provider_id: str, model_id: str) -> ChatSession:
    chat = s.query(ChatSession).filter(ChatSession.session_token == token).one_or_none()
    if chat is not None:
        if chat.user_id is not None and (user is None or chat.user_id != user.id):
            raise ValueError("Invalid session token.")
        return chat
    now = datetime.utcnow()
    chat = ChatSession(
        session_token=token,
        user_id=user.id if user else None,
        user_role=user.role if user else ROLE_GUEST,
        provider=provider_id,
        model=model_id,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    s.add(chat)
    s.flush()
    return chat


def process_chat(
    s: "Session",
    messages: list[dict[str, str]],
    session_token: str,
    user: "User | None",
    *,
    timeout_seconds: int = 60,
) -> dict[str, Any]:
    """
    One chatbot turn: retrieve knowledge, call the active provider, persist
    both sides of the exchange and roll usage into the session totals.

    Raises AINotConfigured, AIProviderError (provider failure) and ValueError
    (foreign session token).
    """
    started = time.monotonic()
    role = user.role if user else ROLE_GUEST
    settings = get_ai_settings(s)
    client = ChatCompletionClient.from_settings(settings, timeout_seconds=timeout_seconds)
    chat = get_or_create_session(s, session_token, user, client.provider_id, client.model_id)

    last_user = next((m["content"] for m in reversed(messages) if m["role"] == "user"), messages[-1]["content"])
    chunks = search_knowledge(s, last_user, role)
    rag_sources = list(dict.fromkeys(c.knowledge_base.title for c in chunks))

    parts = [system_prompt_for_role(role)]
    if user is not None:
        parts.append(f"\nNama pengguna: {user.name}")
    dynamic = build_dynamic_context(s, role)
    if dynamic:
        parts.append("\n" + dynamic)
    rag = build_rag_context(chunks)
    if rag:
        parts.append(rag)
    system_prompt = "\n".join(parts)

    user_tokens = estimate_tokens(last_user)
    s.add(ChatMessage(session_id=chat.id, role="user", content=last_user, input_tokens=user_tokens, output_tokens=0, total_tokens=user_tokens))

    api_messages = [{"role": "system", "content": system_prompt}] + messages[-HISTORY_WINDOW:]
    data = client.complete(api_messages, max_tokens=800, temperature=0.7)
    reply = reply_text(data) or FALLBACK_REPLY

    usage = extract_tokens_from_response(data)
    input_tokens = usage["input_tokens"] or estimate_tokens(" ".join(m["content"] for m in api_messages))
    output_tokens = usage["output_tokens"] or estimate_tokens(reply)
    total_tokens = input_tokens + output_tokens
    duration_ms = int((time.monotonic() - started) * 1000)

    assistant = ChatMessage(
        session_id=chat.id,
        role="assistant",
        content=reply,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=total_tokens,
        duration_ms=duration_ms,
        rag_chunk_ids=[c.id for c in chunks],
        metadata_json={"provider": client.provider_id, "model": client.model_id, "rag_source_count": len(chunks)},
    )
    s.add(assistant)

    chat.total_messages = (chat.total_messages or 0) + 2
    chat.input_tokens = (chat.input_tokens or 0) + input_tokens + user_tokens
    chat.output_tokens = (chat.output_tokens or 0) + output_tokens
    chat.total_tokens = (chat.total_tokens or 0) + total_tokens + user_tokens
    if not chat.title and len(messages) <= 2:
        chat.title = last_user[:100]
    chat.updated_at = datetime.utcnow()
    s.flush()

    return {
        "reply": reply,
        "session_id": chat.id,
        "message_id": assistant.id,
        "tokens": {"input_tokens": input_tokens, "output_tokens": output_tokens, "total_tokens": total_tokens},
        "rag_sources": rag_sources,
    }


def serialize_session(chat: ChatSession) -> dict[str, Any]:
    return {
        "id": chat.id,
        "title": chat.title,
        "user_role": chat.user_role,
        "provider": chat.provider,
        "model": chat.model,
        "total_messages": chat.total_messages,
        "total_tokens": chat.total_tokens,
        "created_at": iso(chat.created_at),
        "updated_at": iso(chat.updated_at),
    }


def serialize_chat_message(m: ChatMessage) -> dict[str, Any]:
    return {
        "id": m.id,
        "role": m.role,
        "content": m.content,
        "total_tokens": m.total_tokens,
        "duration_ms": m.duration_ms,
        "created_at": iso(m.created_at),
    }


# -- knowledge base admin --------------------------------------------------


def normalize_roles(value: Any) -> list[str]:
    if not isinstance(value, list) or not value:
        return list(CHAT_ROLES)
    return [r for r in CHAT_ROLES if r in value]


def rebuild_chunks(kb: KnowledgeBase) -> None:
    kb.chunks.clear()
    for piece in chunk_content(kb.content):
        kb.chunks.append(
            KnowledgeChunk(
                chunk_index=piece["metadata"]["index"],
                content=piece["content"],
                heading=piece["metadata"]["heading"],
                allowed_roles=list(kb.allowed_roles),
                token_count=estimate_tokens(piece["content"]),
            )
        )


def apply_knowledge_payload(s: "Session", kb: KnowledgeBase, payload: dict) -> list[str]:
    """Validates and applies; re-chunks when content or roles change."""
    errors = []
    creating = kb.id is None
    rechunk = creating
    for field in ("title", "content", "category"):
        if field in payload or creating:
            value = clean_str(payload.get(field))
            if not value:
                errors.append(f"{field.capitalize()} is required.")
            elif getattr(kb, field) != value:
                setattr(kb, field, value)
                rechunk = rechunk or field == "content"
    if "allowed_roles" in payload or creating:
        roles = normalize_roles(payload.get("allowed_roles"))
        if roles != (kb.allowed_roles or []):
            kb.allowed_roles = roles
            rechunk = True
    if "is_active" in payload:
        kb.is_active = parse_bool(payload.get("is_active"), default=True)
    if errors:
        return errors
    kb.updated_at = datetime.utcnow()
    if rechunk:
        if kb.id is not None:
            s.flush()
        rebuild_chunks(kb)
    return []


def serialize_knowledge(kb: KnowledgeBase, *, detail: bool = False) -> dict[str, Any]:
    out = {
        "id": kb.id,
        "title": kb.title,
        "category": kb.category,
        "allowed_roles": kb.allowed_roles,
        "is_active": kb.is_active,
        "chunk_count": len(kb.chunks),
        "created_at": iso(kb.created_at),
        "updated_at": iso(kb.updated_at),
    }
    if detail:
        out["content"] = kb.content
        out["chunks"] = [
            {"id": c.id, "chunk_index": c.chunk_index, "heading": c.heading, "token_count": c.token_count, "content": c.content}
            for c in kb.chunks
        ]
    return out


# -- FAQ -------------------------------------------------------------------


def apply_faq_payload(faq: FAQ, payload: dict) -> list[str]:
    errors = []
    creating = faq.id is None
    for field in ("question", "answer"):
        if field in payload or creating:
            value = clean_str(payload.get(field))
            if not value:
                errors.append(f"{field.capitalize()} is required.")
            else:
                setattr(faq, field, value)
    if "order" in payload:
        faq.order = parse_int(payload.get("order"), 0) or 0
    if "is_active" in payload:
        faq.is_active = parse_bool(payload.get("is_active"), default=True)
    faq.updated_at = datetime.utcnow()
    return errors


def serialize_faq(faq: FAQ) -> dict[str, Any]:
    return {"id": faq.id, "question": faq.question, "answer": faq.answer, "order": faq.order, "is_active": faq.is_active}


# -- analytics -------------------------------------------------------------


def ai_analytics(s: "Session", days: int, model_id: str | None) -> dict[str, Any]:
    since = datetime.utcnow() - timedelta(days=days)

    def _totals(q):
        row = q.with_entities(
            func.count(ChatSession.id),
            func.coalesce(func.sum(ChatSession.total_messages), 0),
            func.coalesce(func.sum(ChatSession.input_tokens), 0),
            func.coalesce(func.sum(ChatSession.output_tokens), 0),
            func.coalesce(func.sum(ChatSession.total_tokens), 0),
        ).one()
        return {
            "sessions": int(row[0]),
            "messages": int(row[1]),
            "input_tokens": int(row[2]),
            "output_tokens": int(row[3]),
            "total_tokens": int(row[4]),
        }

    totals = _totals(s.query(ChatSession))
    period = _totals(s.query(ChatSession).filter(ChatSession.created_at >= since))

    by_role = [
        {"role": role, "sessions": int(count), "total_tokens": int(tokens or 0)}
        for role, count, tokens in (
            s.query(ChatSession.user_role, func.count(ChatSession.id), func.sum(ChatSession.total_tokens))
            .filter(ChatSession.created_at >= since)
            .group_by(ChatSession.user_role)
            .all()
        )
    ]

    daily: dict[str, dict[str, int]] = {}
    for created_at, tokens in (
        s.query(ChatMessage.created_at, ChatMessage.total_tokens).filter(ChatMessage.created_at >= since).all()
    ):
        day = daily.setdefault(created_at.date().isoformat(), {"messages": 0, "tokens": 0})
        day["messages"] += 1
        day["tokens"] += tokens or 0

    recent = s.query(ChatSession).order_by(ChatSession.updated_at.desc()).limit(10).all()
    return {
        "days": days,
        "totals": totals,
        "period": period,
        "by_role": by_role,
        "daily": [{"date": k, **v} for k, v in sorted(daily.items())],
        "recent_sessions": [serialize_session(c) for c in recent],
        "estimated_cost": {
            "model": model_id,
            "usd": round(estimate_cost_usd(period["input_tokens"], period["output_tokens"], model_id), 6),
            "idr": round(estimate_cost_idr(period["input_tokens"], period["output_tokens"], model_id)),
        },
    }


def record_ai_usage(s: "Session", user: "User", action: str, provider_id: str, model_id: str, data: dict[str, Any], **extra: Any) -> None:
    usage = extract_tokens_from_response(data)
    record_event(
        s,
        actor=user,
        action=f"ai.{action}",
        entity_type="AI",
        metadata={"provider": provider_id, "model": model_id, "total_tokens": usage["total_tokens"], **extra},
    )
