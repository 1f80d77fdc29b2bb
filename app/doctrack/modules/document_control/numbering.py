"""
Numbering authority and document type administration.

Sequence numbers are handed out with a compare-and-swap on
`document_types.next_number`: the counter moves only if nobody else moved it
since it was read, and the move commits or rolls back together with the
document insert that consumes the number. Two callers can therefore never be
handed the same number, and a failed create never burns one.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.doctrack.audit import record_event
from app.doctrack.errors import AlreadyExists, DependencyUnavailable, NotAuthorized, NotFound

from .events import DocumentTypeCreated, DocumentTypeUpdated
from .models import DocumentType
from .service import clean_text, normalize_prefix

if TYPE_CHECKING:
    from app.doctrack.identity import ActorContext

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 10


def get_document_type(s: Session, ctx: "ActorContext", document_type_id: int) -> DocumentType:
    dt = s.get(DocumentType, document_type_id)
    if dt is None or dt.tenant_id != ctx.tenant_id:
        raise NotFound("DocumentType", document_type_id)
    return dt


def list_document_types(s: Session, ctx: "ActorContext", *, active_only: bool = False) -> list[DocumentType]:
    stmt = select(DocumentType).where(DocumentType.tenant_id == ctx.tenant_id)
    if active_only:
        stmt = stmt.where(DocumentType.is_active.is_(True))
    return list(s.scalars(stmt.order_by(DocumentType.name.asc())))


def next_number(
    s: Session,
    ctx: "ActorContext",
    document_type_id: int,
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> int:
    """Return the next sequence number for a document type and advance the counter."""
    for attempt in range(1, max_retries + 1):
        current = s.execute(
            select(DocumentType.next_number).where(
                DocumentType.id == document_type_id,
                DocumentType.tenant_id == ctx.tenant_id,
            )
        ).scalar_one_or_none()
        if current is None:
            raise NotFound("DocumentType", document_type_id)

        res = s.execute(
            update(DocumentType)
            .where(DocumentType.id == document_type_id, DocumentType.next_number == current)
            .values(next_number=current + 1)
        )
        if res.rowcount == 1:
            return current
        logger.debug("Numbering contention on type=%s (attempt %s/%s)", document_type_id, attempt, max_retries)

    logger.warning("Numbering gave up after %s attempts (type=%s, retryable=True)", max_retries, document_type_id)
    raise DependencyUnavailable(
        "Could not allocate a document number; please retry.",
        details={"document_type_id": document_type_id},
    )


def _require_admin(ctx: "ActorContext") -> None:
    if not ctx.is_admin:
        raise NotAuthorized("Administrator access required.")


def create_document_type(
    s: Session,
    ctx: "ActorContext",
    *,
    name: str,
    prefix: str,
    description: str | None = None,
) -> DocumentType:
    _require_admin(ctx)
    clean_name = clean_text(name, "name", max_len=128, required=True)
    clean_prefix = normalize_prefix(prefix)

    exists = s.scalars(
        select(DocumentType.id).where(
            DocumentType.tenant_id == ctx.tenant_id,
            DocumentType.prefix == clean_prefix,
        )
    ).first()
    if exists is not None:
        raise AlreadyExists(f"Prefix {clean_prefix} is already in use.", details={"prefix": clean_prefix})

    dt = DocumentType(
        tenant_id=ctx.tenant_id,
        name=clean_name,
        prefix=clean_prefix,
        description=clean_text(description, "description", max_len=2000),
        is_active=True,
        next_number=1,
    )
    s.add(dt)
    s.flush()

    record_event(
        s,
        ctx=ctx,
        detail=DocumentTypeCreated(prefix=dt.prefix, name=dt.name),
        entity_type="DocumentType",
        entity_id=str(dt.id),
    )
    return dt


def update_document_type(
    s: Session,
    ctx: "ActorContext",
    document_type_id: int,
    *,
    name: str | None = None,
    description: str | None = None,
    is_active: bool | None = None,
) -> DocumentType:
    """Prefix is immutable; deactivating only hides the type from creation."""
    _require_admin(ctx)
    dt = get_document_type(s, ctx, document_type_id)
    changes = {}

    if name is not None:
        new_name = clean_text(name, "name", max_len=128, required=True)
        if new_name != dt.name:
            changes["name"] = {"from": dt.name, "to": new_name}
            dt.name = new_name

    if description is not None:
        new_desc = clean_text(description, "description", max_len=2000)
        if new_desc != dt.description:
            changes["description"] = {"from": "...", "to": "..."}  # Don't log full text
            dt.description = new_desc

    if is_active is not None and bool(is_active) != dt.is_active:
        changes["is_active"] = {"from": dt.is_active, "to": bool(is_active)}
        dt.is_active = bool(is_active)

    if changes:
        record_event(
            s,
            ctx=ctx,
            detail=DocumentTypeUpdated(prefix=dt.prefix, changes=changes),
            entity_type="DocumentType",
            entity_id=str(dt.id),
        )
    return dt
