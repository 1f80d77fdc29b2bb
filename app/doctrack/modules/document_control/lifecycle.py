"""
Lifecycle state machine.

    Draft --submit--> In Approval --all approved--> Released --superseded--> Obsolete
      ^                   |
      +--reject/withdraw--+

A submit with no approvers releases straight from Draft. Obsolete is only
reached through supersession (or an audited admin override).
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.doctrack.audit import record_event
from app.doctrack.errors import InvalidState, NotAuthorized, NotFound, ValidationFailed
from app.doctrack.notifications import APPROVED as EV_APPROVED
from app.doctrack.notifications import REJECTED as EV_REJECTED
from app.doctrack.notifications import RELEASED as EV_RELEASED
from app.doctrack.notifications import SUBMITTED, WITHDRAWN, Outbox

from . import approvals, store
from .events import (
    Approved,
    DocumentCreated,
    DocumentDeleted,
    DocumentUpdated,
    FileAttached,
    FileDetached,
    FileScanUpdated,
    Rejected,
    Released,
    SubmittedForApproval,
    Withdrawn,
)
from .models import (
    APPROVED,
    DRAFT,
    IN_APPROVAL,
    PENDING,
    REJECTED,
    RELEASED,
    SCAN_SAFE,
    SCAN_STATUSES,
    Document,
    DocumentFile,
)
from .numbering import DEFAULT_MAX_RETRIES, get_document_type, next_number
from .service import (
    TITLE_MAX_LEN,
    clean_text,
    format_document_number,
    initial_version,
    normalize_project_code,
    sanitize_attachment_filename,
    validate_sha256,
)

if TYPE_CHECKING:
    from app.doctrack.identity import ActorContext

logger = logging.getLogger(__name__)


def _require_status(document: Document, status: str, message: str) -> None:
    if document.status != status:
        raise InvalidState(message, details={"document_id": document.id, "status": document.status})


def _require_creator(ctx: "ActorContext", document: Document) -> None:
    if document.created_by != ctx.user_id:
        raise NotAuthorized("Only the document creator can do this", details={"document_id": document.id})


def _require_draft_owner(ctx: "ActorContext", document: Document, action: str) -> None:
    _require_status(document, DRAFT, f"Only Draft documents can be {action}")
    _require_creator(ctx, document)


# ---------------------------------------------------------------------------
# Create / edit / delete
# ---------------------------------------------------------------------------


def create_document(
    s: Session,
    ctx: "ActorContext",
    *,
    document_type_id: int,
    title: str,
    description: str | None = None,
    is_production: bool = False,
    project_code: str | None = None,
    number_digits: int = 5,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> Document:
    clean_title = clean_text(title, "title", max_len=TITLE_MAX_LEN, required=True)
    clean_desc = clean_text(description, "description", max_len=10000)
    clean_project = normalize_project_code(project_code)

    dt = get_document_type(s, ctx, document_type_id)
    if not dt.is_active:
        raise InvalidState(
            f"Document type {dt.prefix} is inactive.",
            details={"document_type_id": dt.id},
        )

    n = next_number(s, ctx, dt.id, max_retries=max_retries)
    d = store.create(
        s,
        ctx,
        document_type=dt,
        document_number=format_document_number(dt.prefix, n, number_digits),
        version=initial_version(is_production),
        title=clean_title,  # type: ignore[arg-type]
        description=clean_desc,
        is_production=is_production,
        project_code=clean_project,
    )

    record_event(
        s,
        ctx=ctx,
        detail=DocumentCreated(
            document_number=d.document_number,
            version=d.version,
            title=d.title,
            is_production=d.is_production,
        ),
        document=d,
    )
    logger.info("Created %s (tenant=%s by=%s)", d.display_number, ctx.tenant_id, ctx.user_id)
    return d


_UNSET = object()


def update_document(
    s: Session,
    ctx: "ActorContext",
    document_id: int,
    *,
    title=_UNSET,
    description=_UNSET,
    project_code=_UNSET,
) -> Document:
    """Edit metadata of a Draft. Only fields that are passed are touched."""
    d = store.get_document(s, ctx, document_id, for_update=True)
    _require_draft_owner(ctx, d, "edited")

    changes = {}
    if title is not _UNSET:
        new_title = clean_text(title, "title", max_len=TITLE_MAX_LEN, required=True)
        if new_title != d.title:
            changes["title"] = {"from": d.title, "to": new_title}
            d.title = new_title  # type: ignore[assignment]
    if description is not _UNSET:
        new_desc = clean_text(description, "description", max_len=10000)
        if new_desc != d.description:
            changes["description"] = {"from": "...", "to": "..."}  # Don't log full text
            d.description = new_desc
    if project_code is not _UNSET:
        new_code = normalize_project_code(project_code)
        if new_code != d.project_code:
            changes["project_code"] = {"from": d.project_code, "to": new_code}
            d.project_code = new_code

    if changes:
        d.updated_at = datetime.utcnow()
        record_event(s, ctx=ctx, detail=DocumentUpdated(changes=changes), document=d)
    return d


def delete_document(s: Session, ctx: "ActorContext", document_id: int) -> dict:
    """Physically remove a Draft. The tombstone audit entry is written in the same transaction."""
    d = store.get_document(s, ctx, document_id, for_update=True)
    _require_draft_owner(ctx, d, "deleted")

    summary = {"id": d.id, "display_number": d.display_number}
    record_event(
        s,
        ctx=ctx,
        detail=DocumentDeleted(
            document_number=d.document_number,
            version=d.version,
            status=d.status,
            is_production=d.is_production,
        ),
        document=d,
    )
    store.delete(s, d)
    logger.info("Deleted draft %s (tenant=%s by=%s)", summary["display_number"], ctx.tenant_id, ctx.user_id)
    return summary


# ---------------------------------------------------------------------------
# Files (by reference)
# ---------------------------------------------------------------------------


def attach_file(
    s: Session,
    ctx: "ActorContext",
    document_id: int,
    *,
    file_ref: str,
    filename: str,
    size_bytes: int,
    sha256: str,
    content_type: str | None = None,
) -> DocumentFile:
    d = store.get_document(s, ctx, document_id, for_update=True)
    _require_draft_owner(ctx, d, "modified")

    ref = (file_ref or "").strip()
    if not ref:
        raise ValidationFailed("file_ref is required.", details={"field": "file_ref"})
    try:
        size = int(size_bytes)
    except (TypeError, ValueError):
        raise ValidationFailed("size_bytes must be an integer.", details={"field": "size_bytes"})
    if size < 0:
        raise ValidationFailed("size_bytes must not be negative.", details={"field": "size_bytes"})
    if any(f.file_ref == ref for f in d.files):
        raise ValidationFailed("This file is already attached.", details={"file_ref": ref})

    f = DocumentFile(
        document_id=d.id,
        file_ref=ref,
        filename=sanitize_attachment_filename(filename),
        content_type=(content_type or "application/octet-stream").strip(),
        sha256=validate_sha256(sha256),
        size_bytes=size,
        uploaded_by=ctx.user_id,
    )
    d.files.append(f)
    d.updated_at = datetime.utcnow()
    s.flush()

    record_event(
        s,
        ctx=ctx,
        detail=FileAttached(
            file_id=f.id,
            file_ref=f.file_ref,
            filename=f.filename,
            sha256=f.sha256,
            size_bytes=f.size_bytes,
        ),
        document=d,
    )
    return f


def detach_file(s: Session, ctx: "ActorContext", document_id: int, file_id: int) -> None:
    d = store.get_document(s, ctx, document_id, for_update=True)
    _require_draft_owner(ctx, d, "modified")

    f = next((f for f in d.files if f.id == file_id), None)
    if f is None:
        raise NotFound("DocumentFile", file_id)

    d.files.remove(f)
    d.updated_at = datetime.utcnow()
    s.flush()

    record_event(
        s,
        ctx=ctx,
        detail=FileDetached(file_id=file_id, file_ref=f.file_ref, filename=f.filename),
        document=d,
    )


def record_scan_result(s: Session, ctx: "ActorContext", *, file_ref: str, scan_status: str) -> list[DocumentFile]:
    """Scan outcome reported by the file store. Never changes document status."""
    if scan_status not in SCAN_STATUSES:
        raise ValidationFailed(f"Invalid scan status: {scan_status}", details={"scan_status": scan_status})

    stmt = (
        select(DocumentFile)
        .join(Document, DocumentFile.document_id == Document.id)
        .where(Document.tenant_id == ctx.tenant_id, DocumentFile.file_ref == file_ref)
    )
    files = list(s.scalars(stmt))
    if not files:
        raise NotFound("DocumentFile", file_ref)

    for f in files:
        old = f.scan_status
        if old == scan_status:
            continue
        f.scan_status = scan_status
        s.flush()
        record_event(
            s,
            ctx=ctx,
            detail=FileScanUpdated(file_id=f.id, file_ref=f.file_ref, old_status=old, new_status=scan_status),
            document=f.document,
            entity_type="DocumentFile",
            entity_id=str(f.id),
        )
    return files


# ---------------------------------------------------------------------------
# Workflow transitions
# ---------------------------------------------------------------------------


def _release(
    s: Session,
    ctx: "ActorContext",
    d: Document,
    *,
    method: str,
    outbox: Outbox | None,
) -> Document:
    predecessor = store.current_version(s, ctx, d.document_number, d.is_production)
    superseded_id = None
    if predecessor is not None and predecessor.id != d.id:
        store.supersede(s, ctx, predecessor, d, outbox=outbox)
        superseded_id = predecessor.id

    store.transition_status(s, d, RELEASED)
    d.released_by = ctx.user_id
    d.released_at = datetime.utcnow()
    s.flush()

    record_event(
        s,
        ctx=ctx,
        detail=Released(release_method=method, superseded_document_id=superseded_id),
        document=d,
    )
    if outbox is not None:
        outbox.emit(
            EV_RELEASED,
            document=d,
            actor_user_id=ctx.user_id,
            recipients=[d.created_by_email] if d.created_by_email else [],
            release_method=method,
        )
    logger.info("Released %s via %s (tenant=%s)", d.display_number, method, ctx.tenant_id)
    return d


def submit(
    s: Session,
    ctx: "ActorContext",
    document_id: int,
    *,
    require_clean_scan: bool = False,
    outbox: Outbox | None = None,
) -> Document:
    d = store.get_document(s, ctx, document_id, for_update=True)
    _require_draft_owner(ctx, d, "submitted")

    if require_clean_scan:
        unsafe = [f.filename for f in d.files if f.scan_status != SCAN_SAFE]
        if unsafe:
            raise InvalidState(
                "Attached files have not passed the virus scan yet.",
                details={"document_id": d.id, "files": unsafe},
            )

    approvals.start_round(d)
    d.rejection_reason = None

    if not d.approvers:
        return _release(s, ctx, d, method="no_approvers", outbox=outbox)

    store.transition_status(s, d, IN_APPROVAL)
    s.flush()
    record_event(
        s,
        ctx=ctx,
        detail=SubmittedForApproval(approver_count=len(d.approvers)),
        document=d,
    )
    if outbox is not None:
        outbox.emit(
            SUBMITTED,
            document=d,
            actor_user_id=ctx.user_id,
            recipients=[a.user_email for a in d.approvers],
        )
    return d


def approve(
    s: Session,
    ctx: "ActorContext",
    document_id: int,
    *,
    comment: str | None = None,
    outbox: Outbox | None = None,
) -> Document:
    d = store.get_document(s, ctx, document_id, for_update=True)
    a = approvals.record_decision(s, ctx, d, decision=APPROVED, comment=comment)
    s.flush()
    record_event(s, ctx=ctx, detail=Approved(approver_email=a.user_email, comments=a.comments), document=d)
    if outbox is not None:
        outbox.emit(
            EV_APPROVED,
            document=d,
            actor_user_id=ctx.user_id,
            recipients=[d.created_by_email] if d.created_by_email else [],
        )

    if approvals.is_fully_approved(d):
        _release(s, ctx, d, method="approved", outbox=outbox)
    return d


def reject(
    s: Session,
    ctx: "ActorContext",
    document_id: int,
    *,
    reason: str | None,
    outbox: Outbox | None = None,
) -> Document:
    d = store.get_document(s, ctx, document_id, for_update=True)
    a = approvals.record_decision(s, ctx, d, decision=REJECTED, comment=reason)

    store.transition_status(s, d, DRAFT)
    d.rejection_reason = a.rejection_reason
    s.flush()

    record_event(
        s,
        ctx=ctx,
        detail=Rejected(approver_email=a.user_email, rejection_reason=a.rejection_reason or ""),
        document=d,
    )
    if outbox is not None:
        outbox.emit(
            EV_REJECTED,
            document=d,
            actor_user_id=ctx.user_id,
            recipients=[d.created_by_email] if d.created_by_email else [],
            rejection_reason=a.rejection_reason,
        )
    return d


def withdraw(
    s: Session,
    ctx: "ActorContext",
    document_id: int,
    *,
    outbox: Outbox | None = None,
) -> Document:
    """Creator pulls a document back out of approval. Votes already cast are kept."""
    d = store.get_document(s, ctx, document_id, for_update=True)
    _require_status(d, IN_APPROVAL, "Only documents in approval can be withdrawn")
    _require_creator(ctx, d)

    store.transition_status(s, d, DRAFT)
    s.flush()
    pending = sum(1 for a in d.approvers if a.status == PENDING)
    record_event(s, ctx=ctx, detail=Withdrawn(pending_approvers=pending), document=d)
    if outbox is not None:
        outbox.emit(
            WITHDRAWN,
            document=d,
            actor_user_id=ctx.user_id,
            recipients=[a.user_email for a in d.approvers],
        )
    return d


def add_approver(s: Session, ctx: "ActorContext", document_id: int, *, user_id: str, user_email: str):
    d = store.get_document(s, ctx, document_id, for_update=True)
    return approvals.add_approver(s, ctx, d, user_id=user_id, user_email=user_email)


def remove_approver(s: Session, ctx: "ActorContext", document_id: int, *, user_id: str) -> None:
    d = store.get_document(s, ctx, document_id, for_update=True)
    approvals.remove_approver(s, ctx, d, user_id=user_id)
