from __future__ import annotations

import hashlib
import logging
import secrets
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_

from app.notaris.audit import record_event
from app.notaris.constants import (
    DOCUMENT_PRIORITIES,
    DOCUMENT_STATUSES,
    NOTIFICATION_DOCUMENT_STATUS,
    ROLE_CLIENT,
    ROLE_STAFF,
    STAFF_ROLES,
)
from app.notaris.models import Branch, ClientProfile, StaffProfile
from app.notaris.modules.documents.models import (
    Document,
    DocumentChecklist,
    DocumentFile,
    DocumentTemplate,
    DocumentTimeline,
    DocumentType,
)
from app.notaris.modules.messaging.service import notify
from app.notaris.storage import Storage, document_key, safe_filename
from app.notaris.utils import clean_str, iso, missing_references, parse_bool, parse_date, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from werkzeug.datastructures import FileStorage
    from app.notaris.models import User

logger = logging.getLogger(__name__)

_B36 = "0123456789abcdefghijklmnopqrstuvwxyz"
STATUS_LABELS = {
    "draft": "Draft",
    "submitted": "Submitted",
    "in_review": "In review",
    "approved": "Approved",
    "completed": "Completed",
    "cancelled": "Cancelled",
}
# fields a client may still edit while the document is a draft
CLIENT_EDITABLE = ("title", "description")


def to_base36(n: int) -> str:
    if n == 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(_B36[r])
    return "".join(reversed(out))


def generate_document_number(type_name: str | None) -> str:
    """DOC-{TYP}-{base36 millis}-{4 random base36}, uppercased."""
    letters = "".join(c for c in (type_name or "") if c.isalpha())[:3].upper() or "GEN"
    stamp = to_base36(int(time.time() * 1000))
    rand = "".join(secrets.choice(_B36) for _ in range(4))
    return f"DOC-{letters}-{stamp}-{rand}".upper()


def file_digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


# -- access ----------------------------------------------------------------


def _staff_id(user: "User") -> int | None:
    return user.staff_profile.id if user.staff_profile else None


def _client_id(user: "User") -> int | None:
    return user.client_profile.id if user.client_profile else None


def scope_to_user(query: "Query", model: Any, user: "User", *, include_unassigned: bool = True) -> "Query":
    """
    Row-level filter shared by documents and appointments: clients see their
    own rows, staff see rows assigned to them, admins see everything.
    """
    if user.role == ROLE_CLIENT:
        return query.filter(model.client_id == (_client_id(user) or -1))
    if user.role == ROLE_STAFF:
        sid = _staff_id(user) or -1
        if include_unassigned:
            return query.filter(or_(model.staff_id == sid, model.staff_id.is_(None)))
        return query.filter(model.staff_id == sid)
    return query


def can_access(user: "User", row: Any, *, include_unassigned: bool = True) -> bool:
    if user.role == ROLE_CLIENT:
        return row.client_id is not None and row.client_id == _client_id(user)
    if user.role == ROLE_STAFF:
        if include_unassigned and row.staff_id is None:
            return True
        return row.staff_id is not None and row.staff_id == _staff_id(user)
    return user.role in STAFF_ROLES


def resolve_client_id(s: "Session", user: "User", payload: dict) -> tuple[int | None, str | None]:
    """
    Clients always act for their own profile; staff must name the client.
    Returns (client_id, error).
    """
    if user.role == ROLE_CLIENT:
        cid = _client_id(user)
        if cid is None:
            return None, "Client profile not found."
        return cid, None
    cid = parse_int(payload.get("client_id"))
    if cid is None:
        return None, "client_id is required."
    client = s.get(ClientProfile, cid)
    if client is None or client.user.deleted_at is not None:
        return None, "Client not found."
    return cid, None


# -- serialization ---------------------------------------------------------


def serialize_document(doc: Document, *, detail: bool = False) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": doc.id,
        "document_number": doc.document_number,
        "title": doc.title,
        "description": doc.description,
        "status": doc.status,
        "priority": doc.priority,
        "due_date": iso(doc.due_date),
        "completed_at": iso(doc.completed_at),
        "created_at": iso(doc.created_at),
        "updated_at": iso(doc.updated_at),
        "document_type": {"id": doc.document_type.id, "name": doc.document_type.name} if doc.document_type else None,
        "client": {
            "id": doc.client.id,
            "client_number": doc.client.client_number,
            "name": doc.client.user.name,
            "company_name": doc.client.company_name,
        },
        "staff": {"id": doc.staff.id, "name": doc.staff.user.name} if doc.staff else None,
        "branch_id": doc.branch_id,
    }
    if detail:
        out["content"] = doc.content
        out["files"] = [serialize_file(f) for f in doc.files]
        out["timeline"] = [
            {
                "id": t.id,
                "status": t.status,
                "notes": t.notes,
                "created_at": iso(t.created_at),
                "created_by": t.created_by.name if t.created_by else None,
            }
            for t in doc.timeline
        ]
        out["checklist"] = [serialize_checklist_item(c) for c in doc.checklist]
    return out


def serialize_file(f: DocumentFile) -> dict[str, Any]:
    return {
        "id": f.id,
        "filename": f.filename,
        "content_type": f.content_type,
        "sha256": f.sha256,
        "size_bytes": f.size_bytes,
        "uploaded_at": iso(f.uploaded_at),
    }


def serialize_checklist_item(c: DocumentChecklist) -> dict[str, Any]:
    return {
        "id": c.id,
        "item_name": c.item_name,
        "is_required": c.is_required,
        "is_completed": c.is_completed,
        "order": c.order,
        "verified_by_user_id": c.verified_by_user_id,
        "verified_at": iso(c.verified_at),
    }


# -- documents -------------------------------------------------------------


DOCUMENT_REFERENCES = {
    "document_type_id": (DocumentType, "Document type not found."),
    "staff_id": (StaffProfile, "Staff not found."),
    "branch_id": (Branch, "Branch not found."),
}


def validate_document_payload(s: "Session", payload: dict, *, creating: bool) -> list[str]:
    errors = []
    if creating and not clean_str(payload.get("title")):
        errors.append("Title is required.")
    status = clean_str(payload.get("status"))
    if status and status not in DOCUMENT_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(DOCUMENT_STATUSES)}")
    priority = clean_str(payload.get("priority"))
    if priority and priority.upper() not in DOCUMENT_PRIORITIES:
        errors.append(f"Invalid priority. Must be one of: {', '.join(DOCUMENT_PRIORITIES)}")
    try:
        parse_date(payload.get("due_date"))
    except ValueError:
        errors.append("due_date must be YYYY-MM-DD.")
    errors.extend(missing_references(s, payload, DOCUMENT_REFERENCES))
    return errors


def add_timeline(s: "Session", doc: Document, status: str, notes: str | None, user: "User | None") -> DocumentTimeline:
    entry = DocumentTimeline(
        document_id=doc.id,
        status=status,
        notes=notes,
        created_by_user_id=user.id if user else None,
        created_at=datetime.utcnow(),
    )
    s.add(entry)
    doc.timeline.append(entry)
    return entry


def create_document(s: "Session", payload: dict, user: "User", client_id: int) -> Document:
    type_id = parse_int(payload.get("document_type_id"))
    doc_type = s.get(DocumentType, type_id) if type_id else None
    staff_id = parse_int(payload.get("staff_id")) if user.role != ROLE_CLIENT else None
    if staff_id is None and user.role == ROLE_STAFF:
        staff_id = _staff_id(user)

    now = datetime.utcnow()
    doc = Document(
        document_number=generate_document_number(doc_type.name if doc_type else None),
        title=clean_str(payload.get("title")) or "",
        description=clean_str(payload.get("description")),
        content=payload.get("content") or None,
        document_type_id=doc_type.id if doc_type else None,
        client_id=client_id,
        staff_id=staff_id,
        branch_id=parse_int(payload.get("branch_id")),
        status="draft",
        priority=(clean_str(payload.get("priority")) or "NORMAL").upper(),
        due_date=parse_date(payload.get("due_date")),
        created_at=now,
        updated_at=now,
    )
    s.add(doc)
    s.flush()
    add_timeline(s, doc, doc.status, "Document created", user)
    record_event(
        s,
        actor=user,
        action="document.create",
        entity_type="Document",
        entity_id=doc.id,
        metadata={"document_number": doc.document_number, "client_id": client_id},
    )
    return doc


def update_document(s: "Session", doc: Document, payload: dict, user: "User") -> tuple[dict[str, Any], str | None]:
    """
    Apply an update. Returns (changes, old_status) where old_status is set
    only when the status moved.
    """
    changes: dict[str, Any] = {}

    def _set(field: str, new_val: Any) -> None:
        old_val = getattr(doc, field)
        if new_val != old_val:
            changes[field] = {"old": str(old_val) if old_val is not None else None, "new": str(new_val) if new_val is not None else None}
            setattr(doc, field, new_val)

    for field in ("title", "description"):
        if field in payload:
            val = clean_str(payload.get(field))
            if field == "title" and not val:
                continue
            _set(field, val)

    old_status = None
    if user.role != ROLE_CLIENT:
        if "content" in payload:
            _set("content", payload.get("content") or None)
        if "priority" in payload and clean_str(payload.get("priority")):
            _set("priority", clean_str(payload.get("priority")).upper())
        if "due_date" in payload:
            _set("due_date", parse_date(payload.get("due_date")))
        for field in ("staff_id", "document_type_id", "branch_id"):
            if field in payload:
                _set(field, parse_int(payload.get(field)))
        new_status = clean_str(payload.get("status"))
        if new_status and new_status != doc.status:
            old_status = doc.status
            _set("status", new_status)
            if new_status == "completed":
                doc.completed_at = datetime.utcnow()
            add_timeline(s, doc, new_status, clean_str(payload.get("notes")) or f"Status changed to {STATUS_LABELS[new_status]}", user)

    if changes:
        doc.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=user,
            action="document.status_change" if old_status else "document.update",
            entity_type="Document",
            entity_id=doc.id,
            metadata={"changes": changes},
        )
    return changes, old_status


def soft_delete_document(s: "Session", doc: Document, user: "User") -> None:
    doc.deleted_at = datetime.utcnow()
    record_event(s, actor=user, action="document.delete", entity_type="Document", entity_id=doc.id, metadata={"document_number": doc.document_number})


def add_status_notification(s: "Session", doc: Document) -> None:
    if doc.client is None or doc.client.user.deleted_at is not None:
        return
    notify(
        s,
        doc.client.user_id,
        NOTIFICATION_DOCUMENT_STATUS,
        "Status dokumen diperbarui",
        f"Dokumen {doc.document_number} sekarang berstatus {doc.status}.",
        link=f"/documents/{doc.id}",
    )


def notify_status_change(doc: Document) -> None:
    """Best-effort email to the client; never blocks the update."""
    from app.notaris.mailer import send_document_status_email

    client_user = doc.client.user if doc.client else None
    if client_user is None or client_user.deleted_at is not None:
        return
    ok, msg = send_document_status_email(client_user.email, client_user.name, doc.title, doc.document_number, doc.status)
    if not ok:
        logger.info("Document status email skipped for document_id=%s: %s", doc.id, msg)


def store_document_file(s: "Session", storage: Storage, doc: Document, upload: "FileStorage", user: "User") -> DocumentFile:
    data = upload.read()
    filename = safe_filename(upload.filename)
    digest = file_digest(data)
    key = document_key(doc.document_number, digest, filename)
    content_type = upload.mimetype or "application/octet-stream"
    storage.put_bytes(key, data, content_type=content_type)
    f = DocumentFile(
        document_id=doc.id,
        storage_key=key,
        filename=filename,
        content_type=content_type,
        sha256=digest,
        size_bytes=len(data),
        uploaded_by_user_id=user.id,
        uploaded_at=datetime.utcnow(),
    )
    s.add(f)
    doc.files.append(f)
    s.flush()
    record_event(
        s,
        actor=user,
        action="document.file_upload",
        entity_type="Document",
        entity_id=doc.id,
        metadata={"file_id": f.id, "filename": filename, "sha256": digest, "size_bytes": len(data)},
    )
    return f


# -- checklist -------------------------------------------------------------


def replace_checklist(s: "Session", doc: Document, items: list, user: "User") -> list[DocumentChecklist]:
    """Verified items are kept; everything else is replaced by `items`."""
    kept = [c for c in doc.checklist if c.verified_at is not None]
    for c in list(doc.checklist):
        if c.verified_at is None:
            doc.checklist.remove(c)
            s.delete(c)
    base = len(kept)
    for idx, item in enumerate(items):
        if isinstance(item, str):
            item = {"item_name": item}
        name = clean_str(item.get("item_name") or item.get("label"))
        if not name:
            continue
        doc.checklist.append(
            DocumentChecklist(
                item_name=name,
                is_required=parse_bool(item.get("is_required"), default=True),
                order=base + idx,
            )
        )
    s.flush()
    record_event(s, actor=user, action="document.checklist_update", entity_type="Document", entity_id=doc.id, metadata={"items": len(items)})
    return list(doc.checklist)


def update_checklist_item(s: "Session", item: DocumentChecklist, payload: dict, user: "User") -> DocumentChecklist:
    if "is_completed" in payload:
        item.is_completed = parse_bool(payload.get("is_completed"))
    if "verified" in payload:
        if parse_bool(payload.get("verified")):
            item.verified_by_user_id = user.id
            item.verified_at = datetime.utcnow()
            item.is_completed = True
        else:
            item.verified_by_user_id = None
            item.verified_at = None
    return item


# -- document types / templates --------------------------------------------


def serialize_document_type(t: DocumentType) -> dict[str, Any]:
    return {
        "id": t.id,
        "name": t.name,
        "description": t.description,
        "required_documents": t.required_documents or [],
        "estimated_duration_days": t.estimated_duration_days,
        "is_active": t.is_active,
    }


def apply_document_type_payload(t: DocumentType, payload: dict) -> list[str]:
    errors = []
    if "name" in payload or t.id is None:
        name = clean_str(payload.get("name"))
        if not name:
            errors.append("Name is required.")
        else:
            t.name = name
    if "description" in payload:
        t.description = clean_str(payload.get("description"))
    if "required_documents" in payload:
        docs = payload.get("required_documents") or []
        if not isinstance(docs, list):
            errors.append("required_documents must be a list.")
        else:
            t.required_documents = [str(d).strip() for d in docs if str(d).strip()]
    if "estimated_duration_days" in payload or t.estimated_duration_days is None:
        t.estimated_duration_days = parse_int(payload.get("estimated_duration_days"), 7) or 7
    if "is_active" in payload:
        t.is_active = parse_bool(payload.get("is_active"), default=True)
    t.updated_at = datetime.utcnow()
    return errors


def serialize_template(t: DocumentTemplate, *, with_content: bool = True) -> dict[str, Any]:
    out = {
        "id": t.id,
        "name": t.name,
        "description": t.description,
        "document_type_id": t.document_type_id,
        "document_type_name": t.document_type.name if t.document_type else None,
        "is_active": t.is_active,
        "updated_at": iso(t.updated_at),
    }
    if with_content:
        out["content"] = t.content
    return out


def apply_template_payload(s: "Session", t: DocumentTemplate, payload: dict) -> list[str]:
    errors = []
    if "name" in payload or t.id is None:
        name = clean_str(payload.get("name"))
        if not name:
            errors.append("Name is required.")
        else:
            t.name = name
    if "content" in payload or t.id is None:
        content = payload.get("content") or ""
        if not content.strip():
            errors.append("Content is required.")
        else:
            t.content = content
    if "description" in payload:
        t.description = clean_str(payload.get("description"))
    if "document_type_id" in payload:
        type_id = parse_int(payload.get("document_type_id"))
        if type_id is not None and s.get(DocumentType, type_id) is None:
            errors.append("Document type not found.")
        else:
            t.document_type_id = type_id
    if "is_active" in payload:
        t.is_active = parse_bool(payload.get("is_active"), default=True)
    t.updated_at = datetime.utcnow()
    return errors

