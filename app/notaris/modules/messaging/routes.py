from __future__ import annotations

from datetime import datetime

from flask import Blueprint, abort, current_app, jsonify, request
from sqlalchemy import func

from app.notaris.constants import STAFF_ROLES
from app.notaris.db import db_session
from app.notaris.modules.chatbot.assist import draft_reply
from app.notaris.modules.chatbot.providers import AINotConfigured, AIProviderError
from app.notaris.modules.messaging.models import Conversation, Message, Notification
from app.notaris.modules.messaging.service import (
    contacts_for,
    create_conversation,
    list_conversations,
    participant_for,
    post_message,
    serialize_conversation,
    serialize_message,
    serialize_notification,
)
from app.notaris.rbac import current_user, require_feature, require_login, require_role
from app.notaris.utils import clean_str, json_body, page_args, paginate, parse_bool, parse_int

bp = Blueprint("messaging", __name__)


def _get_conversation_or_404(conv_id: int) -> Conversation:
    conv = db_session().get(Conversation, conv_id)
    if conv is None:
        abort(404, description="Conversation not found")
    if participant_for(conv, current_user()) is None:
        abort(403, description="Forbidden")
    return conv


@bp.get("/conversations")
@require_login
@require_feature("messages")
def conversations_list():
    s = db_session()
    u = current_user()
    return jsonify({"conversations": [serialize_conversation(s, c, u) for c in list_conversations(s, u)]})


@bp.post("/conversations")
@require_login
@require_feature("messages")
def conversations_create():
    s = db_session()
    u = current_user()
    try:
        conv = create_conversation(s, json_body(), u)
    except ValueError as e:
        s.rollback()
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify({"conversation": serialize_conversation(s, conv, u)}), 201


@bp.get("/conversations/users")
@require_login
@require_feature("messages")
def conversations_users():
    return jsonify(contacts_for(db_session(), current_user()))


@bp.get("/conversations/<int:conv_id>/messages")
@require_login
@require_feature("messages")
def messages_list(conv_id: int):
    conv = _get_conversation_or_404(conv_id)
    s = db_session()
    page, limit = page_args(default_limit=50, max_limit=200)
    q = s.query(Message).filter(Message.conversation_id == conv.id).order_by(Message.created_at.asc(), Message.id.asc())
    rows, meta = paginate(q, page, limit)
    return jsonify({"data": [serialize_message(m) for m in rows], "meta": meta})


@bp.post("/conversations/<int:conv_id>/messages")
@require_login
@require_feature("messages")
def messages_create(conv_id: int):
    conv = _get_conversation_or_404(conv_id)
    content = clean_str(json_body().get("content"))
    if not content:
        return jsonify({"error": "Content is required."}), 400
    s = db_session()
    msg = post_message(s, conv, current_user(), content)
    s.commit()
    return jsonify({"message": serialize_message(msg)}), 201


@bp.post("/conversations/<int:conv_id>/read")
@require_login
@require_feature("messages")
def conversations_read(conv_id: int):
    conv = _get_conversation_or_404(conv_id)
    participant_for(conv, current_user()).last_read_at = datetime.utcnow()
    db_session().commit()
    return jsonify({"success": True})


@bp.post("/messages/ai-draft")
@require_role(*STAFF_ROLES)
@require_feature("ai_draft_reply")
def messages_ai_draft():
    payload = json_body()
    conv_id = parse_int(payload.get("conversation_id"))
    recent = payload.get("recent_messages")
    if conv_id is None or not isinstance(recent, list) or not recent:
        return jsonify({"error": "Missing data"}), 400
    conv = _get_conversation_or_404(conv_id)
    s = db_session()
    try:
        draft = draft_reply(s, conv, [m for m in recent if isinstance(m, dict)], current_user(), timeout_seconds=int(current_app.config.get("AI_TIMEOUT_SECONDS") or 60))
    except AINotConfigured as e:
        s.rollback()
        return jsonify({"error": str(e)}), 503
    except AIProviderError as e:
        s.rollback()
        current_app.logger.warning("AI draft failed (conversation_id=%s): %s", conv_id, e)
        return jsonify({"error": "Gagal generate draft"}), 502
    s.commit()
    return jsonify({"draft": draft})


# -- notifications ---------------------------------------------------------


def _own_notifications():
    return db_session().query(Notification).filter(Notification.user_id == current_user().id, Notification.deleted_at.is_(None))


@bp.get("/notifications")
@require_login
def notifications_list():
    page, limit = page_args()
    q = _own_notifications()
    unread_count = q.filter(Notification.is_read.is_(False)).with_entities(func.count(Notification.id)).scalar() or 0
    if parse_bool(request.args.get("unread")):
        q = q.filter(Notification.is_read.is_(False))
    rows, meta = paginate(q.order_by(Notification.created_at.desc(), Notification.id.desc()), page, limit)
    return jsonify({"data": [serialize_notification(n) for n in rows], "meta": meta, "unread_count": int(unread_count)})


def _get_notification_or_404(notification_id: int) -> Notification:
    n = _own_notifications().filter(Notification.id == notification_id).one_or_none()
    if n is None:
        abort(404, description="Notification not found")
    return n


@bp.post("/notifications/<int:notification_id>/read")
@require_login
def notifications_read(notification_id: int):
    n = _get_notification_or_404(notification_id)
    if not n.is_read:
        n.is_read = True
        n.read_at = datetime.utcnow()
    db_session().commit()
    return jsonify({"notification": serialize_notification(n)})


@bp.post("/notifications/read-all")
@require_login
def notifications_read_all():
    now = datetime.utcnow()
    updated = 0
    for n in _own_notifications().filter(Notification.is_read.is_(False)).all():
        n.is_read = True
        n.read_at = now
        updated += 1
    db_session().commit()
    return jsonify({"success": True, "updated": updated})


@bp.delete("/notifications/<int:notification_id>")
@require_login
def notifications_delete(notification_id: int):
    n = _get_notification_or_404(notification_id)
    n.deleted_at = datetime.utcnow()
    db_session().commit()
    return jsonify({"success": True})
