from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.doctrack.errors import ErrorKind, OperationResult
from app.doctrack.identity import current_actor, require_actor

from .engine import DocumentControlEngine
from .events import AuditRecord

bp = Blueprint("doc_control", __name__)

HTTP_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.NOT_AUTHORIZED: 403,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.ALREADY_EXISTS: 409,
    ErrorKind.VALIDATION_FAILED: 400,
    ErrorKind.DEPENDENCY_UNAVAILABLE: 503,
}


def _engine() -> DocumentControlEngine:
    return current_app.extensions["doctrack_engine"]


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


def _respond(res: OperationResult, *, created: bool = False):
    if not res.ok:
        body = {"ok": False, "error": res.error.to_dict()}
        resp = jsonify(body)
        resp.status_code = HTTP_STATUS.get(res.error.kind, 400)
        if res.error.retryable:
            resp.headers["Retry-After"] = "1"
        return resp
    value = res.value
    if isinstance(value, list):
        value = [v.to_dict() if isinstance(v, AuditRecord) else v for v in value]
    return jsonify({"ok": True, "data": value}), (201 if created else 200)


# ---------------------------------------------------------------------------
# Document types
# ---------------------------------------------------------------------------


@bp.get("/types")
@require_actor
def list_document_types():
    active_only = _as_bool(request.args.get("active_only"))
    return _respond(_engine().list_document_types(current_actor(), active_only=active_only))


@bp.post("/types")
@require_actor
def create_document_type():
    p = _payload()
    res = _engine().create_document_type(
        current_actor(),
        name=p.get("name") or "",
        prefix=p.get("prefix") or "",
        description=p.get("description"),
    )
    return _respond(res, created=True)


@bp.patch("/types/<int:type_id>")
@require_actor
def update_document_type(type_id: int):
    p = _payload()
    fields = {k: p[k] for k in ("name", "description") if k in p}
    if "is_active" in p:
        fields["is_active"] = _as_bool(p["is_active"])
    return _respond(_engine().update_document_type(current_actor(), type_id, **fields))


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@bp.post("/documents")
@require_actor
def create_document():
    p = _payload()
    try:
        type_id = int(p.get("document_type_id"))
    except (TypeError, ValueError):
        return jsonify({"ok": False, "error": {"kind": "ValidationFailed", "message": "document_type_id is required."}}), 400
    res = _engine().create_document(
        current_actor(),
        document_type_id=type_id,
        title=p.get("title") or "",
        description=p.get("description"),
        is_production=_as_bool(p.get("is_production")),
        project_code=p.get("project_code"),
    )
    return _respond(res, created=True)


@bp.get("/documents/<int:doc_id>")
@require_actor
def get_document(doc_id: int):
    return _respond(_engine().get_document(current_actor(), doc_id))


@bp.patch("/documents/<int:doc_id>")
@require_actor
def update_document(doc_id: int):
    p = _payload()
    fields = {k: p[k] for k in ("title", "description", "project_code") if k in p}
    return _respond(_engine().update_document(current_actor(), doc_id, **fields))


@bp.delete("/documents/<int:doc_id>")
@require_actor
def delete_document(doc_id: int):
    return _respond(_engine().delete_document(current_actor(), doc_id))


@bp.get("/documents/<int:doc_id>/audit")
@require_actor
def audit_trail(doc_id: int):
    return _respond(_engine().audit_trail(current_actor(), doc_id))


@bp.post("/documents/<int:doc_id>/approvers")
@require_actor
def add_approver(doc_id: int):
    p = _payload()
    res = _engine().add_approver(
        current_actor(),
        doc_id,
        user_id=p.get("user_id") or "",
        user_email=p.get("user_email") or "",
    )
    return _respond(res, created=True)


@bp.delete("/documents/<int:doc_id>/approvers/<user_id>")
@require_actor
def remove_approver(doc_id: int, user_id: str):
    return _respond(_engine().remove_approver(current_actor(), doc_id, user_id=user_id))


@bp.post("/documents/<int:doc_id>/files")
@require_actor
def attach_file(doc_id: int):
    p = _payload()
    res = _engine().attach_file(
        current_actor(),
        doc_id,
        file_ref=p.get("file_ref") or "",
        filename=p.get("filename") or "",
        size_bytes=p.get("size_bytes"),
        sha256=p.get("sha256") or "",
        content_type=p.get("content_type"),
    )
    return _respond(res, created=True)


@bp.delete("/documents/<int:doc_id>/files/<int:file_id>")
@require_actor
def detach_file(doc_id: int, file_id: int):
    return _respond(_engine().detach_file(current_actor(), doc_id, file_id))


@bp.post("/files/scan-result")
@require_actor
def record_scan_result():
    p = _payload()
    res = _engine().record_scan_result(
        current_actor(),
        file_ref=p.get("file_ref") or "",
        scan_status=p.get("scan_status") or "",
    )
    return _respond(res)


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


@bp.post("/documents/<int:doc_id>/submit")
@require_actor
def submit(doc_id: int):
    return _respond(_engine().submit(current_actor(), doc_id))


@bp.post("/documents/<int:doc_id>/approve")
@require_actor
def approve(doc_id: int):
    return _respond(_engine().approve(current_actor(), doc_id, comment=_payload().get("comment")))


@bp.post("/documents/<int:doc_id>/reject")
@require_actor
def reject(doc_id: int):
    return _respond(_engine().reject(current_actor(), doc_id, reason=_payload().get("reason")))


@bp.post("/documents/<int:doc_id>/withdraw")
@require_actor
def withdraw(doc_id: int):
    return _respond(_engine().withdraw(current_actor(), doc_id))


@bp.post("/documents/<int:doc_id>/versions")
@require_actor
def create_new_version(doc_id: int):
    return _respond(_engine().create_new_version(current_actor(), doc_id), created=True)


@bp.post("/documents/<int:doc_id>/promote")
@require_actor
def promote_to_production(doc_id: int):
    return _respond(_engine().promote_to_production(current_actor(), doc_id), created=True)


# ---------------------------------------------------------------------------
# Lineage queries
# ---------------------------------------------------------------------------


@bp.get("/numbers/<document_number>/versions")
@require_actor
def list_versions(document_number: str):
    return _respond(_engine().list_versions(current_actor(), document_number))


@bp.get("/numbers/<document_number>/lineage")
@require_actor
def list_lineage(document_number: str):
    is_production = _as_bool(request.args.get("production"))
    return _respond(_engine().list_lineage(current_actor(), document_number, is_production=is_production))


@bp.get("/numbers/<document_number>/current")
@require_actor
def current_version(document_number: str):
    is_production = _as_bool(request.args.get("production"))
    return _respond(_engine().current_version(current_actor(), document_number, is_production=is_production))


@bp.get("/my-approvals")
@require_actor
def my_pending_approvals():
    return _respond(_engine().my_pending_approvals(current_actor()))


# ---------------------------------------------------------------------------
# Admin overrides
# ---------------------------------------------------------------------------


@bp.post("/admin/documents/<int:doc_id>/status")
@require_actor
def admin_force_status(doc_id: int):
    p = _payload()
    res = _engine().admin_force_status(
        current_actor(), doc_id, new_status=p.get("status") or "", reason=p.get("reason") or ""
    )
    return _respond(res)


@bp.post("/admin/documents/<int:doc_id>/version")
@require_actor
def admin_force_version(doc_id: int):
    p = _payload()
    res = _engine().admin_force_version(
        current_actor(), doc_id, new_version=p.get("version") or "", reason=p.get("reason") or ""
    )
    return _respond(res)


@bp.post("/admin/documents/<int:doc_id>/number")
@require_actor
def admin_force_document_number(doc_id: int):
    p = _payload()
    res = _engine().admin_force_document_number(
        current_actor(), doc_id, new_number=p.get("document_number") or "", reason=p.get("reason") or ""
    )
    return _respond(res)


@bp.post("/admin/documents/<int:doc_id>/owner")
@require_actor
def admin_change_owner(doc_id: int):
    p = _payload()
    res = _engine().admin_change_owner(
        current_actor(),
        doc_id,
        new_owner_user_id=p.get("user_id") or "",
        new_owner_email=p.get("user_email") or "",
        reason=p.get("reason") or "",
    )
    return _respond(res)


@bp.delete("/admin/documents/<int:doc_id>")
@require_actor
def admin_delete_document(doc_id: int):
    p = _payload()
    return _respond(_engine().admin_delete_document(current_actor(), doc_id, reason=p.get("reason") or ""))
