"""
Administrative overrides.

These bypass the workflow guards but not identifier uniqueness or the lineage
rule, and every one of them writes a mandatory audit entry with the before and
after values and the admin's reason.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.doctrack.audit import record_event
from app.doctrack.errors import AlreadyExists, InvalidState, NotAuthorized, ValidationFailed

from . import store
from .events import AdminRename, AdminStatusChange, AdminVersionChange, DocumentDeleted, OwnerChanged
from .models import DOCUMENT_STATUSES, IN_FLIGHT_STATUSES, RELEASED, Document, DocumentType
from .service import normalize_document_number, require_reason, version_matches_scheme

if TYPE_CHECKING:
    from app.doctrack.identity import ActorContext

logger = logging.getLogger(__name__)


def _require_admin(ctx: "ActorContext") -> None:
    if not ctx.is_admin:
        raise NotAuthorized("Administrator access required.")


def admin_force_status(
    s: Session,
    ctx: "ActorContext",
    document_id: int,
    *,
    new_status: str,
    reason: str,
) -> Document:
    _require_admin(ctx)
    clean_reason = require_reason(reason)
    if new_status not in DOCUMENT_STATUSES:
        raise ValidationFailed(f"Invalid status: {new_status}", details={"status": new_status})

    d = store.get_document(s, ctx, document_id, for_update=True)
    old_status = d.status
    if old_status == new_status:
        raise InvalidState(f"Document is already {new_status}", details={"document_id": d.id})

    lineage = [x for x in store.list_by_lineage(s, ctx, d.document_number, d.is_production) if x.id != d.id]
    if new_status == RELEASED and any(x.status == RELEASED for x in lineage):
        raise InvalidState(
            "Another version of this lineage is already Released.",
            details={"document_id": d.id, "to": new_status},
        )
    if new_status in IN_FLIGHT_STATUSES and any(x.status in IN_FLIGHT_STATUSES for x in lineage):
        raise InvalidState(
            "Another version of this lineage is already in progress.",
            details={"document_id": d.id, "to": new_status},
        )

    d.status = new_status
    d.updated_at = datetime.utcnow()
    if new_status == RELEASED and d.released_at is None:
        d.released_by = ctx.user_id
        d.released_at = d.updated_at
    s.flush()

    record_event(
        s,
        ctx=ctx,
        detail=AdminStatusChange(old_status=old_status, new_status=new_status),
        document=d,
        reason=clean_reason,
    )
    logger.warning("Admin status override %s: %s -> %s (by=%s)", d.display_number, old_status, new_status, ctx.user_id)
    return d


def admin_force_version(
    s: Session,
    ctx: "ActorContext",
    document_id: int,
    *,
    new_version: str,
    reason: str,
) -> Document:
    _require_admin(ctx)
    clean_reason = require_reason(reason)
    d = store.get_document(s, ctx, document_id, for_update=True)

    version = (new_version or "").strip()
    if not version_matches_scheme(version, is_production=d.is_production):
        raise ValidationFailed(
            f"Version {version!r} does not belong to the {'production' if d.is_production else 'prototype'} scheme.",
            details={"version": version, "is_production": d.is_production},
        )
    if version == d.version:
        raise InvalidState(f"Document is already {version}", details={"document_id": d.id})

    clash = s.scalars(
        select(Document.id).where(
            Document.tenant_id == ctx.tenant_id,
            Document.document_number == d.document_number,
            Document.version == version,
            Document.id != d.id,
        )
    ).first()
    if clash is not None:
        raise AlreadyExists(
            f"Version {version} already exists for this document",
            details={"document_id": clash, "version": version},
        )

    old_version = d.version
    d.version = version
    d.updated_at = datetime.utcnow()
    s.flush()

    record_event(
        s,
        ctx=ctx,
        detail=AdminVersionChange(old_version=old_version, new_version=version, is_production=d.is_production),
        document=d,
        reason=clean_reason,
    )
    logger.warning("Admin version override %s%s -> %s (by=%s)", d.document_number, old_version, version, ctx.user_id)
    return d


def admin_force_document_number(
    s: Session,
    ctx: "ActorContext",
    document_id: int,
    *,
    new_number: str,
    reason: str,
) -> Document:
    _require_admin(ctx)
    clean_reason = require_reason(reason)
    number = normalize_document_number(new_number)
    d = store.get_document(s, ctx, document_id, for_update=True)

    in_use = s.scalars(
        select(Document.id).where(Document.tenant_id == ctx.tenant_id, Document.document_number == number)
    ).first()
    if in_use is not None:
        raise AlreadyExists(f"Document number {number} already exists", details={"document_number": number})

    old_display = d.display_number
    d.document_number = number
    d.updated_at = datetime.utcnow()
    s.flush()
    _reserve_sequence(s, ctx, number)

    record_event(
        s,
        ctx=ctx,
        detail=AdminRename(old_number=old_display, new_number=d.display_number),
        document=d,
        reason=clean_reason,
    )
    logger.warning("Admin rename %s -> %s (by=%s)", old_display, d.display_number, ctx.user_id)
    return d


def _reserve_sequence(s: Session, ctx: "ActorContext", number: str) -> None:
    """Move the matching type's counter past a number taken by hand."""
    prefix, _, seq = number.partition("-")
    n = int(seq)
    res = s.execute(
        update(DocumentType)
        .where(
            DocumentType.tenant_id == ctx.tenant_id,
            DocumentType.prefix == prefix,
            DocumentType.next_number <= n,
        )
        .values(next_number=n + 1)
    )
    if res.rowcount:
        logger.info("Advanced %s counter to %s after admin rename (tenant=%s)", prefix, n + 1, ctx.tenant_id)


def admin_change_owner(
    s: Session,
    ctx: "ActorContext",
    document_id: int,
    *,
    new_owner_user_id: str,
    new_owner_email: str,
    reason: str,
) -> Document:
    _require_admin(ctx)
    clean_reason = require_reason(reason)
    uid = (new_owner_user_id or "").strip()
    email = (new_owner_email or "").strip().lower()
    if not uid:
        raise ValidationFailed("New owner user_id is required.", details={"field": "new_owner_user_id"})
    if "@" not in email:
        raise ValidationFailed("New owner email is invalid.", details={"field": "new_owner_email"})

    d = store.get_document(s, ctx, document_id, for_update=True)
    if d.created_by == uid:
        raise InvalidState("User is already the owner", details={"document_id": d.id, "user_id": uid})
    if any(a.user_id == uid for a in d.approvers):
        raise InvalidState(
            "An approver of this document cannot become its owner",
            details={"document_id": d.id, "user_id": uid},
        )

    previous_owner, previous_email = d.created_by, d.created_by_email
    d.created_by = uid
    d.created_by_email = email
    d.updated_at = datetime.utcnow()
    s.flush()

    record_event(
        s,
        ctx=ctx,
        detail=OwnerChanged(
            previous_owner=previous_owner,
            previous_owner_email=previous_email,
            new_owner=uid,
            new_owner_email=email,
        ),
        document=d,
        reason=clean_reason,
    )
    logger.warning("Admin owner change %s: %s -> %s (by=%s)", d.display_number, previous_owner, uid, ctx.user_id)
    return d


def admin_delete_document(s: Session, ctx: "ActorContext", document_id: int, *, reason: str) -> dict:
    """Delete a document in any status. History stays; a tombstone entry is appended."""
    _require_admin(ctx)
    clean_reason = require_reason(reason)
    d = store.get_document(s, ctx, document_id, for_update=True)

    summary = {"id": d.id, "display_number": d.display_number, "status": d.status}
    record_event(
        s,
        ctx=ctx,
        detail=DocumentDeleted(
            document_number=d.document_number,
            version=d.version,
            status=d.status,
            is_production=d.is_production,
            admin_override=True,
        ),
        document=d,
        reason=clean_reason,
    )
    store.delete(s, d)
    logger.warning("Admin delete %s (status=%s by=%s)", summary["display_number"], summary["status"], ctx.user_id)
    return summary
