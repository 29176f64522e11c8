from __future__ import annotations

from datetime import datetime

from flask import Blueprint, abort, current_app, jsonify, request

from app.notaris.audit import record_event
from app.notaris.constants import ADMIN_ROLES, STAFF_ROLES
from app.notaris.db import db_session
from app.notaris.modules.chatbot.assist import (
    compare_documents,
    run_document_action,
    validate_compare_request,
    validate_document_request,
)
from app.notaris.modules.chatbot.models import FAQ, ChatSession, KnowledgeBase
from app.notaris.modules.chatbot.providers import (
    AI_PROVIDERS,
    MASK_CHAR,
    AINotConfigured,
    AIProviderError,
    ChatCompletionClient,
    apply_ai_settings_update,
    get_ai_settings,
    public_ai_settings,
    reply_text,
    save_ai_settings,
)
from app.notaris.modules.chatbot.service import (
    ai_analytics,
    apply_faq_payload,
    apply_knowledge_payload,
    clean_chat_messages,
    process_chat,
    serialize_chat_message,
    serialize_faq,
    serialize_knowledge,
    serialize_session,
)
from app.notaris.modules.feature_flags.service import is_feature_enabled
from app.notaris.rbac import current_user, require_feature, require_login, require_role
from app.notaris.utils import clean_str, json_body, page_args, paginate, parse_int

bp = Blueprint("chatbot", __name__)


def _ai_timeout() -> int:
    return int(current_app.config.get("AI_TIMEOUT_SECONDS") or 60)


def _ai_error_response(e: AIProviderError):
    if isinstance(e, AINotConfigured):
        return jsonify({"error": "AI belum dikonfigurasi. Silakan hubungi admin."}), 503
    return jsonify({"error": "Gagal menghubungi AI. Silakan coba lagi."}), 502


# -- chatbot ---------------------------------------------------------------


@bp.post("/chatbot")
def chatbot():
    payload = json_body()
    messages = clean_chat_messages(payload.get("messages"))
    token = clean_str(payload.get("session_token"))
    if not messages or not token:
        return jsonify({"error": "messages and session_token are required."}), 400

    s = db_session()
    u = current_user()
    if u is not None and not is_feature_enabled(s, u.role, "ai_chatbot"):
        abort(403, description="Feature is not available in your license package")

    try:
        result = process_chat(s, messages, token, u, timeout_seconds=_ai_timeout())
    except ValueError as e:
        s.rollback()
        return jsonify({"error": str(e)}), 400
    except AIProviderError as e:
        s.rollback()
        current_app.logger.warning("Chatbot turn failed: %s", e)
        return _ai_error_response(e)
    s.commit()
    return jsonify(result)


@bp.get("/chatbot/history")
@require_login
def chatbot_history():
    s = db_session()
    page, limit = page_args()
    q = s.query(ChatSession).filter(ChatSession.user_id == current_user().id).order_by(ChatSession.updated_at.desc())
    rows, meta = paginate(q, page, limit)
    return jsonify({"data": [serialize_session(c) for c in rows], "meta": meta})


def _own_session_or_404(session_id: int) -> ChatSession:
    chat = db_session().get(ChatSession, session_id)
    if chat is None or chat.user_id != current_user().id:
        abort(404, description="Chat session not found")
    return chat


@bp.get("/chatbot/history/<int:session_id>")
@require_login
def chatbot_history_detail(session_id: int):
    chat = _own_session_or_404(session_id)
    return jsonify({"session": serialize_session(chat), "messages": [serialize_chat_message(m) for m in chat.messages]})


@bp.delete("/chatbot/history/<int:session_id>")
@require_login
def chatbot_history_delete(session_id: int):
    chat = _own_session_or_404(session_id)
    s = db_session()
    s.delete(chat)
    s.commit()
    return jsonify({"success": True})


# -- document assist -------------------------------------------------------


@bp.post("/documents/ai")
@require_role(*STAFF_ROLES)
def documents_ai():
    payload = json_body()
    errors = validate_document_request(payload)
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400

    s = db_session()
    u = current_user()
    keys = ("ai_document_editor", "ai_summarize") if payload["action"] == "summarize" else ("ai_document_editor",)
    if not any(is_feature_enabled(s, u.role, k) for k in keys):
        abort(403, description="Feature is not available in your license package")

    try:
        result = run_document_action(s, payload, u, timeout_seconds=_ai_timeout())
    except AIProviderError as e:
        s.rollback()
        current_app.logger.warning("AI document action %s failed: %s", payload["action"], e)
        return _ai_error_response(e)
    s.commit()
    return jsonify(result)


@bp.post("/documents/ai/compare")
@require_role(*STAFF_ROLES)
@require_feature("ai_compare")
def documents_ai_compare():
    payload = json_body()
    errors = validate_compare_request(payload)
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400

    s = db_session()
    try:
        result = compare_documents(s, payload, current_user(), timeout_seconds=_ai_timeout())
    except AIProviderError as e:
        s.rollback()
        current_app.logger.warning("AI document compare failed: %s", e)
        return _ai_error_response(e)
    s.commit()
    return jsonify(result)


# -- AI settings -----------------------------------------------------------


@bp.get("/admin/ai-settings")
@require_role(*ADMIN_ROLES)
@require_feature("ai_settings")
def ai_settings_get():
    settings = get_ai_settings(db_session())
    return jsonify({"settings": public_ai_settings(settings), "providers": list(AI_PROVIDERS.values())})


@bp.put("/admin/ai-settings")
@require_role(*ADMIN_ROLES)
@require_feature("ai_settings")
def ai_settings_put():
    s = db_session()
    settings = get_ai_settings(s)
    errors = apply_ai_settings_update(settings, json_body())
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400
    save_ai_settings(s, settings)
    record_event(
        s,
        actor=current_user(),
        action="ai_settings.update",
        entity_type="SiteSetting",
        metadata={"provider": settings["active_provider_id"], "model": settings["active_model_id"]},
    )
    s.commit()
    return jsonify({"success": True, "settings": public_ai_settings(settings)})


@bp.post("/admin/ai-settings")
@require_role(*ADMIN_ROLES)
@require_feature("ai_settings")
def ai_settings_test():
    """Connection test. Uses the key from the body, else the stored one."""
    payload = json_body()
    settings = get_ai_settings(db_session())
    provider_id = payload.get("provider_id") or settings["active_provider_id"]
    if provider_id not in AI_PROVIDERS:
        return jsonify({"error": f"Unknown provider: {provider_id}"}), 400
    model_id = payload.get("model_id") or (
        settings["active_model_id"] if provider_id == settings["active_provider_id"] else AI_PROVIDERS[provider_id]["models"][0]["id"]
    )
    api_key = (payload.get("api_key") or "").strip()
    if not api_key or MASK_CHAR in api_key:
        api_key = settings["providers"][provider_id]["api_key"]
    if not api_key:
        return jsonify({"success": False, "error": "API key is not configured."}), 400

    client = ChatCompletionClient(provider_id=provider_id, model_id=model_id, api_key=api_key, timeout_seconds=_ai_timeout())
    try:
        data = client.complete([{"role": "user", "content": 'Say "hello" in one word.'}], max_tokens=10, temperature=0)
    except AIProviderError as e:
        return jsonify({"success": False, "error": str(e)})
    return jsonify({"success": True, "message": f"Koneksi berhasil! Response: {reply_text(data) or ''}"})


@bp.get("/admin/ai-analytics")
@require_role(*ADMIN_ROLES)
def ai_analytics_get():
    days = min(max(parse_int(request.args.get("days"), 30) or 30, 1), 365)
    s = db_session()
    return jsonify(ai_analytics(s, days, get_ai_settings(s)["active_model_id"]))


# -- knowledge base --------------------------------------------------------


def _get_kb_or_404(kb_id: int) -> KnowledgeBase:
    kb = db_session().get(KnowledgeBase, kb_id)
    if kb is None:
        abort(404, description="Knowledge base entry not found")
    return kb


@bp.get("/admin/knowledge-base")
@require_role(*ADMIN_ROLES)
def knowledge_list():
    s = db_session()
    q = s.query(KnowledgeBase)
    category = (request.args.get("category") or "").strip()
    if category:
        q = q.filter(KnowledgeBase.category == category)
    rows = q.order_by(KnowledgeBase.category.asc(), KnowledgeBase.title.asc()).all()
    return jsonify({"data": [serialize_knowledge(kb) for kb in rows]})


@bp.post("/admin/knowledge-base")
@require_role(*ADMIN_ROLES)
def knowledge_create():
    s = db_session()
    now = datetime.utcnow()
    kb = KnowledgeBase(created_by_user_id=current_user().id, is_active=True, created_at=now, updated_at=now)
    errors = apply_knowledge_payload(s, kb, json_body())
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400
    s.add(kb)
    s.flush()
    record_event(s, actor=current_user(), action="knowledge.create", entity_type="KnowledgeBase", entity_id=kb.id, metadata={"chunks": len(kb.chunks)})
    s.commit()
    return jsonify({"entry": serialize_knowledge(kb, detail=True)}), 201


@bp.get("/admin/knowledge-base/<int:kb_id>")
@require_role(*ADMIN_ROLES)
def knowledge_detail(kb_id: int):
    return jsonify({"entry": serialize_knowledge(_get_kb_or_404(kb_id), detail=True)})


@bp.put("/admin/knowledge-base/<int:kb_id>")
@require_role(*ADMIN_ROLES)
def knowledge_update(kb_id: int):
    kb = _get_kb_or_404(kb_id)
    s = db_session()
    errors = apply_knowledge_payload(s, kb, json_body())
    if errors:
        s.rollback()
        return jsonify({"error": errors[0], "errors": errors}), 400
    record_event(s, actor=current_user(), action="knowledge.update", entity_type="KnowledgeBase", entity_id=kb.id)
    s.commit()
    return jsonify({"entry": serialize_knowledge(kb, detail=True)})


@bp.delete("/admin/knowledge-base/<int:kb_id>")
@require_role(*ADMIN_ROLES)
def knowledge_delete(kb_id: int):
    kb = _get_kb_or_404(kb_id)
    s = db_session()
    s.delete(kb)
    record_event(s, actor=current_user(), action="knowledge.delete", entity_type="KnowledgeBase", entity_id=kb_id)
    s.commit()
    return jsonify({"success": True})


# -- FAQ -------------------------------------------------------------------


@bp.get("/admin/faq")
@require_role(*ADMIN_ROLES)
def faq_list():
    rows = db_session().query(FAQ).order_by(FAQ.order.asc(), FAQ.id.asc()).all()
    return jsonify({"data": [serialize_faq(f) for f in rows]})


@bp.post("/admin/faq")
@require_role(*ADMIN_ROLES)
def faq_create():
    s = db_session()
    now = datetime.utcnow()
    faq = FAQ(order=0, is_active=True, created_at=now)
    errors = apply_faq_payload(faq, json_body())
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400
    s.add(faq)
    s.flush()
    record_event(s, actor=current_user(), action="faq.create", entity_type="FAQ", entity_id=faq.id)
    s.commit()
    return jsonify({"faq": serialize_faq(faq)}), 201


@bp.put("/admin/faq/<int:faq_id>")
@require_role(*ADMIN_ROLES)
def faq_update(faq_id: int):
    s = db_session()
    faq = s.get(FAQ, faq_id)
    if faq is None:
        abort(404, description="FAQ not found")
    errors = apply_faq_payload(faq, json_body())
    if errors:
        s.rollback()
        return jsonify({"error": errors[0], "errors": errors}), 400
    record_event(s, actor=current_user(), action="faq.update", entity_type="FAQ", entity_id=faq.id)
    s.commit()
    return jsonify({"faq": serialize_faq(faq)})


@bp.delete("/admin/faq/<int:faq_id>")
@require_role(*ADMIN_ROLES)
def faq_delete(faq_id: int):
    s = db_session()
    faq = s.get(FAQ, faq_id)
    if faq is None:
        abort(404, description="FAQ not found")
    s.delete(faq)
    record_event(s, actor=current_user(), action="faq.delete", entity_type="FAQ", entity_id=faq_id)
    s.commit()
    return jsonify({"success": True})
