from __future__ import annotations

from datetime import datetime

from flask import Blueprint, abort, current_app, jsonify, request, send_file
from sqlalchemy import or_

from app.notaris.constants import ADMIN_ROLES, ROLE_CLIENT, STAFF_ROLES
from app.notaris.db import db_session
from app.notaris.modules.documents.models import Document, DocumentChecklist, DocumentFile, DocumentTemplate, DocumentType
from app.notaris.modules.documents.service import (
    CLIENT_EDITABLE,
    add_status_notification,
    apply_document_type_payload,
    apply_template_payload,
    can_access,
    create_document,
    notify_status_change,
    replace_checklist,
    resolve_client_id,
    scope_to_user,
    serialize_checklist_item,
    serialize_document,
    serialize_document_type,
    serialize_file,
    serialize_template,
    soft_delete_document,
    store_document_file,
    update_checklist_item,
    update_document,
    validate_document_payload,
)
from app.notaris.audit import record_event
from app.notaris.rbac import current_user, is_admin, is_staff, require_feature, require_login, require_role
from app.notaris.storage import MAX_DOCUMENT_BYTES, StorageError, safe_filename, storage_from_config, validate_upload
from app.notaris.utils import json_body, page_args, paginate, parse_bool, parse_int

bp = Blueprint("documents", __name__)


def _get_doc_or_404(doc_id: int) -> Document:
    s = db_session()
    doc = s.get(Document, doc_id)
    if doc is None or doc.deleted_at is not None:
        abort(404, description="Document not found")
    if not can_access(current_user(), doc):
        abort(403, description="Forbidden")
    return doc


# -- documents -------------------------------------------------------------


@bp.get("/documents")
@require_login
@require_feature("documents")
def documents_list():
    s = db_session()
    u = current_user()
    page, limit = page_args()
    q = s.query(Document).filter(Document.deleted_at.is_(None))
    q = scope_to_user(q, Document, u)

    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Document.title.ilike(like), Document.document_number.ilike(like)))
    status = (request.args.get("status") or "").strip()
    if status:
        q = q.filter(Document.status == status)

    rows, meta = paginate(q.order_by(Document.created_at.desc(), Document.id.desc()), page, limit)
    return jsonify({"data": [serialize_document(d) for d in rows], "meta": meta})


@bp.post("/documents")
@require_login
@require_feature("documents")
def documents_create():
    payload = json_body()
    s = db_session()
    u = current_user()
    errors = validate_document_payload(s, payload, creating=True)
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400
    client_id, err = resolve_client_id(s, u, payload)
    if err:
        return jsonify({"error": err}), 400
    doc = create_document(s, payload, u, client_id)
    s.commit()
    return jsonify({"document": serialize_document(doc, detail=True)}), 201


@bp.get("/documents/<int:doc_id>")
@require_login
@require_feature("documents")
def documents_detail(doc_id: int):
    doc = _get_doc_or_404(doc_id)
    return jsonify({"document": serialize_document(doc, detail=True)})


@bp.put("/documents/<int:doc_id>")
@require_login
@require_feature("documents")
def documents_update(doc_id: int):
    doc = _get_doc_or_404(doc_id)
    u = current_user()
    payload = json_body()
    if u.role == ROLE_CLIENT:
        if doc.status != "draft":
            return jsonify({"error": "Only draft documents can be edited by the client."}), 403
        payload = {k: v for k, v in payload.items() if k in CLIENT_EDITABLE}
    s = db_session()
    errors = validate_document_payload(s, payload, creating=False)
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400

    changes, old_status = update_document(s, doc, payload, u)
    if old_status:
        add_status_notification(s, doc)
    s.commit()
    if old_status:
        notify_status_change(doc)
    return jsonify({"document": serialize_document(doc, detail=True), "changed": sorted(changes)})


@bp.delete("/documents/<int:doc_id>")
@require_role(*ADMIN_ROLES)
def documents_delete(doc_id: int):
    doc = _get_doc_or_404(doc_id)
    s = db_session()
    soft_delete_document(s, doc, current_user())
    s.commit()
    return jsonify({"success": True})


# -- files -----------------------------------------------------------------


@bp.post("/documents/<int:doc_id>/files")
@require_login
@require_feature("documents")
def documents_upload(doc_id: int):
    doc = _get_doc_or_404(doc_id)
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return jsonify({"error": "File is required."}), 400
    upload.stream.seek(0, 2)
    size = upload.stream.tell()
    upload.stream.seek(0)
    max_bytes = current_app.config.get("MAX_UPLOAD_BYTES") or MAX_DOCUMENT_BYTES
    error = validate_upload(safe_filename(upload.filename), upload.mimetype, size, max_bytes)
    if error:
        return jsonify({"error": error}), 413 if size > max_bytes else 400

    s = db_session()
    storage = storage_from_config(current_app.config)
    try:
        f = store_document_file(s, storage, doc, upload, current_user())
    except StorageError as e:
        s.rollback()
        current_app.logger.error("Document upload failed (document_id=%s): %s", doc.id, e)
        return jsonify({"error": "File storage is unavailable."}), 500
    s.commit()
    return jsonify({"file": serialize_file(f)}), 201


@bp.get("/documents/<int:doc_id>/files/<int:file_id>")
@require_login
@require_feature("documents")
def documents_download(doc_id: int, file_id: int):
    doc = _get_doc_or_404(doc_id)
    s = db_session()
    f = s.get(DocumentFile, file_id)
    if f is None or f.document_id != doc.id:
        abort(404, description="File not found")
    storage = storage_from_config(current_app.config)
    try:
        fobj = storage.open(f.storage_key)
    except StorageError:
        abort(404, description="File content missing from storage")
    record_event(s, actor=current_user(), action="document.file_download", entity_type="Document", entity_id=doc.id, metadata={"file_id": f.id})
    s.commit()
    return send_file(fobj, mimetype=f.content_type, as_attachment=True, download_name=f.filename)


# -- checklist -------------------------------------------------------------


@bp.get("/documents/<int:doc_id>/checklist")
@require_login
@require_feature("document_checklist")
def checklist_get(doc_id: int):
    doc = _get_doc_or_404(doc_id)
    return jsonify({"items": [serialize_checklist_item(c) for c in doc.checklist]})


@bp.post("/documents/<int:doc_id>/checklist")
@require_role(*STAFF_ROLES)
@require_feature("document_checklist")
def checklist_replace(doc_id: int):
    doc = _get_doc_or_404(doc_id)
    items = json_body().get("items")
    if not isinstance(items, list):
        return jsonify({"error": "items must be a list."}), 400
    s = db_session()
    rows = replace_checklist(s, doc, items, current_user())
    s.commit()
    return jsonify({"items": [serialize_checklist_item(c) for c in rows]}), 201


@bp.patch("/documents/<int:doc_id>/checklist")
@require_login
@require_feature("document_checklist")
def checklist_update(doc_id: int):
    doc = _get_doc_or_404(doc_id)
    payload = json_body()
    u = current_user()
    s = db_session()
    item = s.get(DocumentChecklist, parse_int(payload.get("checklist_id"), 0))
    if item is None or item.document_id != doc.id:
        abort(404, description="Checklist item not found")
    if "verified" in payload and not is_staff(u):
        return jsonify({"error": "Only staff can verify checklist items."}), 403
    update_checklist_item(s, item, payload, u)
    s.commit()
    return jsonify({"item": serialize_checklist_item(item)})


# -- document types --------------------------------------------------------


@bp.get("/document-types")
@require_login
def document_types_list():
    s = db_session()
    q = s.query(DocumentType)
    if not (is_admin(current_user()) and parse_bool(request.args.get("all"))):
        q = q.filter(DocumentType.is_active.is_(True))
    rows = q.order_by(DocumentType.name.asc()).all()
    return jsonify({"document_types": [serialize_document_type(t) for t in rows]})


@bp.post("/document-types")
@require_role(*ADMIN_ROLES)
def document_types_create():
    s = db_session()
    t = DocumentType(created_at=datetime.utcnow())
    errors = apply_document_type_payload(t, json_body())
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400
    s.add(t)
    s.flush()
    record_event(s, actor=current_user(), action="document_type.create", entity_type="DocumentType", entity_id=t.id, metadata={"name": t.name})
    s.commit()
    return jsonify({"document_type": serialize_document_type(t)}), 201


@bp.put("/document-types/<int:type_id>")
@require_role(*ADMIN_ROLES)
def document_types_update(type_id: int):
    s = db_session()
    t = s.get(DocumentType, type_id)
    if t is None:
        abort(404, description="Document type not found")
    errors = apply_document_type_payload(t, json_body())
    if errors:
        s.rollback()
        return jsonify({"error": errors[0], "errors": errors}), 400
    record_event(s, actor=current_user(), action="document_type.update", entity_type="DocumentType", entity_id=t.id)
    s.commit()
    return jsonify({"document_type": serialize_document_type(t)})


@bp.delete("/document-types/<int:type_id>")
@require_role(*ADMIN_ROLES)
def document_types_delete(type_id: int):
    s = db_session()
    t = s.get(DocumentType, type_id)
    if t is None:
        abort(404, description="Document type not found")
    in_use = s.query(Document.id).filter(Document.document_type_id == t.id).first() is not None
    if in_use:
        # referenced types are retired, not deleted
        t.is_active = False
    else:
        s.delete(t)
    record_event(s, actor=current_user(), action="document_type.delete", entity_type="DocumentType", entity_id=type_id, metadata={"deactivated": in_use})
    s.commit()
    return jsonify({"success": True, "deactivated": in_use})


# -- templates -------------------------------------------------------------


@bp.get("/templates")
@require_role(*STAFF_ROLES)
@require_feature("document_templates")
def templates_list():
    s = db_session()
    q = s.query(DocumentTemplate).filter(DocumentTemplate.is_active.is_(True))
    type_id = parse_int(request.args.get("document_type_id"))
    if type_id:
        q = q.filter(DocumentTemplate.document_type_id == type_id)
    rows = q.order_by(DocumentTemplate.name.asc()).all()
    return jsonify({"templates": [serialize_template(t, with_content=False) for t in rows]})


@bp.get("/templates/<int:template_id>")
@require_role(*STAFF_ROLES)
@require_feature("document_templates")
def templates_detail(template_id: int):
    t = db_session().get(DocumentTemplate, template_id)
    if t is None:
        abort(404, description="Template not found")
    return jsonify({"template": serialize_template(t)})


@bp.post("/templates")
@require_role(*ADMIN_ROLES)
@require_feature("document_templates")
def templates_create():
    s = db_session()
    u = current_user()
    t = DocumentTemplate(created_by_user_id=u.id, created_at=datetime.utcnow())
    errors = apply_template_payload(s, t, json_body())
    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400
    s.add(t)
    s.flush()
    record_event(s, actor=u, action="template.create", entity_type="DocumentTemplate", entity_id=t.id, metadata={"name": t.name})
    s.commit()
    return jsonify({"template": serialize_template(t)}), 201


@bp.put("/templates/<int:template_id>")
@require_role(*ADMIN_ROLES)
@require_feature("document_templates")
def templates_update(template_id: int):
    s = db_session()
    t = s.get(DocumentTemplate, template_id)
    if t is None:
        abort(404, description="Template not found")
    errors = apply_template_payload(s, t, json_body())
    if errors:
        s.rollback()
        return jsonify({"error": errors[0], "errors": errors}), 400
    record_event(s, actor=current_user(), action="template.update", entity_type="DocumentTemplate", entity_id=t.id)
    s.commit()
    return jsonify({"template": serialize_template(t)})


@bp.delete("/templates/<int:template_id>")
@require_role(*ADMIN_ROLES)
@require_feature("document_templates")
def templates_delete(template_id: int):
    s = db_session()
    t = s.get(DocumentTemplate, template_id)
    if t is None:
        abort(404, description="Template not found")
    s.delete(t)
    record_event(s, actor=current_user(), action="template.delete", entity_type="DocumentTemplate", entity_id=template_id)
    s.commit()
    return jsonify({"success": True})
