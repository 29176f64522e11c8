from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func

from app.notaris.audit import record_event
from app.notaris.constants import ADMIN_ROLES, NOTIFICATION_NEW_MESSAGE, ROLE_ADMIN, ROLE_CLIENT, ROLE_STAFF, ROLE_SUPER_ADMIN
from app.notaris.models import User
from app.notaris.modules.documents.models import Document
from app.notaris.modules.messaging.models import Conversation, ConversationParticipant, Message, Notification
from app.notaris.utils import clean_str, iso, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

# who each role may start a conversation with
CONTACT_ROLES = {
    ROLE_CLIENT: (ROLE_STAFF, ROLE_ADMIN, ROLE_SUPER_ADMIN),
    ROLE_STAFF: (ROLE_CLIENT, ROLE_STAFF, ROLE_ADMIN, ROLE_SUPER_ADMIN),
}


def notify(s: "Session", user_id: int, type_: str, title: str, message: str, link: str | None = None) -> Notification:
    n = Notification(user_id=user_id, type=type_, title=title, message=message, link=link, is_read=False, created_at=datetime.utcnow())
    s.add(n)
    return n


def serialize_notification(n: Notification) -> dict[str, Any]:
    return {
        "id": n.id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "link": n.link,
        "is_read": n.is_read,
        "read_at": iso(n.read_at),
        "created_at": iso(n.created_at),
    }


def _user_brief(u: User | None) -> dict[str, Any] | None:
    if u is None:
        return None
    return {"id": u.id, "name": u.name, "role": u.role, "avatar_url": u.avatar_url}


def serialize_message(m: Message) -> dict[str, Any]:
    return {
        "id": m.id,
        "conversation_id": m.conversation_id,
        "content": m.content,
        "created_at": iso(m.created_at),
        "sender": _user_brief(m.sender),
    }


def participant_for(conv: Conversation, user: User) -> ConversationParticipant | None:
    for p in conv.participants:
        if p.user_id == user.id:
            return p
    return None


def serialize_conversation(s: "Session", conv: Conversation, user: User) -> dict[str, Any]:
    last = (
        s.query(Message)
        .filter(Message.conversation_id == conv.id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .first()
    )
    me = participant_for(conv, user)
    unread_q = s.query(func.count(Message.id)).filter(Message.conversation_id == conv.id, Message.sender_id != user.id)
    if me is not None and me.last_read_at is not None:
        unread_q = unread_q.filter(Message.created_at > me.last_read_at)
    return {
        "id": conv.id,
        "subject": conv.subject,
        "document_id": conv.document_id,
        "updated_at": iso(conv.updated_at),
        "participants": [_user_brief(p.user) for p in conv.participants],
        "last_message": serialize_message(last) if last else None,
        "unread_count": int(unread_q.scalar() or 0),
    }


def list_conversations(s: "Session", user: User) -> list[Conversation]:
    return (
        s.query(Conversation)
        .join(ConversationParticipant, ConversationParticipant.conversation_id == Conversation.id)
        .filter(ConversationParticipant.user_id == user.id)
        .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
        .all()
    )


def create_conversation(s: "Session", payload: dict, user: User) -> Conversation:
    """
    The creator always joins. A client's conversation also pulls in the first
    active admin so someone in the office sees it. Raises ValueError.
    """
    raw_ids = payload.get("participant_ids")
    if not isinstance(raw_ids, list) or not raw_ids:
        raise ValueError("participant_ids is required.")
    ids = {parse_int(i) for i in raw_ids} - {None}
    found = (
        s.query(User.id)
        .filter(User.id.in_(ids), User.deleted_at.is_(None), User.is_active.is_(True))
        .all()
        if ids
        else []
    )
    member_ids = {row[0] for row in found}
    if not member_ids - {user.id}:
        raise ValueError("No valid participants.")
    member_ids.add(user.id)
    document_id = parse_int(payload.get("document_id"))
    if document_id is not None and s.get(Document, document_id) is None:
        raise ValueError("Document not found.")

    if user.role == ROLE_CLIENT:
        admin = (
            s.query(User)
            .filter(User.role.in_(ADMIN_ROLES), User.deleted_at.is_(None), User.is_active.is_(True))
            .order_by(User.id.asc())
            .first()
        )
        if admin is not None:
            member_ids.add(admin.id)

    now = datetime.utcnow()
    conv = Conversation(
        subject=clean_str(payload.get("subject")),
        document_id=document_id,
        created_by_user_id=user.id,
        created_at=now,
        updated_at=now,
    )
    for uid in sorted(member_ids):
        conv.participants.append(ConversationParticipant(user_id=uid, joined_at=now))
    s.add(conv)
    s.flush()
    record_event(s, actor=user, action="conversation.create", entity_type="Conversation", entity_id=conv.id, metadata={"participants": sorted(member_ids)})
    return conv


def post_message(s: "Session", conv: Conversation, user: User, content: str) -> Message:
    now = datetime.utcnow()
    msg = Message(conversation_id=conv.id, sender_id=user.id, content=content, created_at=now)
    s.add(msg)
    conv.updated_at = now
    me = participant_for(conv, user)
    if me is not None:
        me.last_read_at = now

    preview = f"{user.name}: {content[:50]}..."
    for p in conv.participants:
        if p.user_id != user.id:
            notify(s, p.user_id, NOTIFICATION_NEW_MESSAGE, "Pesan baru", preview, link=f"/messages?conversation={conv.id}")
    s.flush()
    return msg


def contacts_for(s: "Session", user: User) -> dict[str, list[dict[str, Any]]]:
    q = s.query(User).filter(User.id != user.id, User.deleted_at.is_(None), User.is_active.is_(True))
    roles = CONTACT_ROLES.get(user.role)
    if roles is not None:
        q = q.filter(User.role.in_(roles))
    grouped: dict[str, list[dict[str, Any]]] = {"admins": [], "staff": [], "clients": []}
    for u in q.order_by(User.role.asc(), User.name.asc()).all():
        entry = {
            "id": u.id,
            "name": u.name,
            "email": u.email,
            "role": u.role,
            "avatar_url": u.avatar_url,
            "position": u.staff_profile.position if u.staff_profile else None,
            "company_name": u.client_profile.company_name if u.client_profile else None,
        }
        if u.role in ADMIN_ROLES:
            grouped["admins"].append(entry)
        elif u.role == ROLE_STAFF:
            grouped["staff"].append(entry)
        else:
            grouped["clients"].append(entry)
    return grouped
