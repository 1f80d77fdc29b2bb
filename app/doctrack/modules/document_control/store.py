"""
Document store: tenant-scoped reads and the guarded writes on `documents`.

Lineage rule (also backed by partial unique indexes): per
(tenant, document_number, is_production) there is at most one Released row and
at most one in-flight (Draft / In Approval) row; everything else is Obsolete.
"""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.doctrack.audit import record_event
from app.doctrack.errors import AlreadyExists, InvalidState, NotFound
from app.doctrack.notifications import OBSOLETED, Outbox

from .events import Obsoleted
from .models import (
    DRAFT,
    IN_APPROVAL,
    IN_FLIGHT_STATUSES,
    OBSOLETE,
    RELEASED,
    Document,
    DocumentType,
)
from .service import version_ordinal

if TYPE_CHECKING:
    from app.doctrack.identity import ActorContext


# Transitions reachable through the regular workflow. Admin overrides bypass this map.
STATUS_TRANSITIONS = {
    DRAFT: {IN_APPROVAL, RELEASED},
    IN_APPROVAL: {DRAFT, RELEASED},
    RELEASED: {OBSOLETE},
    OBSOLETE: set(),
}


def get_document(s: Session, ctx: "ActorContext", document_id: int, *, for_update: bool = False) -> Document:
    """
    Load a document of the caller's tenant.

    `for_update` takes a row lock where the database has them; the optimistic
    `row_version` check covers the rest.
    """
    stmt = select(Document).where(Document.id == document_id, Document.tenant_id == ctx.tenant_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    d = s.scalars(stmt).one_or_none()
    if d is None:
        raise NotFound("Document", document_id)
    return d


def list_by_lineage(s: Session, ctx: "ActorContext", document_number: str, is_production: bool) -> list[Document]:
    stmt = select(Document).where(
        Document.tenant_id == ctx.tenant_id,
        Document.document_number == document_number,
        Document.is_production == is_production,
    )
    return sorted(s.scalars(stmt), key=lambda d: version_ordinal(d.version))


def list_versions(s: Session, ctx: "ActorContext", document_number: str) -> list[Document]:
    """Both lineages of a number: prototype first, then production, each in version order."""
    return list_by_lineage(s, ctx, document_number, False) + list_by_lineage(s, ctx, document_number, True)


def current_version(s: Session, ctx: "ActorContext", document_number: str, is_production: bool) -> Document | None:
    """The Released row of a lineage, if any."""
    for d in list_by_lineage(s, ctx, document_number, is_production):
        if d.status == RELEASED:
            return d
    return None


def in_flight_version(s: Session, ctx: "ActorContext", document_number: str, is_production: bool) -> Document | None:
    for d in list_by_lineage(s, ctx, document_number, is_production):
        if d.status in IN_FLIGHT_STATUSES:
            return d
    return None


def create(
    s: Session,
    ctx: "ActorContext",
    *,
    document_type: DocumentType,
    document_number: str,
    version: str,
    title: str,
    description: str | None,
    is_production: bool,
    project_code: str | None,
) -> Document:
    """Insert a new Draft row; refuses a second draft in flight for the same lineage."""
    exists = s.scalars(
        select(Document.id).where(
            Document.tenant_id == ctx.tenant_id,
            Document.document_number == document_number,
            Document.version == version,
        )
    ).first()
    if exists is not None:
        raise AlreadyExists(
            f"{document_number}{version} already exists.",
            details={"document_number": document_number, "version": version},
        )

    pending = in_flight_version(s, ctx, document_number, is_production)
    if pending is not None:
        raise InvalidState(
            f"{pending.display_number} is already {pending.status}; finish or delete it first.",
            details={"document_id": pending.id, "status": pending.status},
        )

    d = Document(
        tenant_id=ctx.tenant_id,
        document_type_id=document_type.id,
        document_number=document_number,
        version=version,
        title=title,
        description=description,
        project_code=project_code,
        status=DRAFT,
        is_production=is_production,
        created_by=ctx.user_id,
        created_by_email=ctx.email or None,
    )
    s.add(d)
    s.flush()
    return d


def transition_status(s: Session, document: Document, new_status: str) -> str:
    """Move a document along the workflow map. Returns the previous status."""
    old = document.status
    if new_status not in STATUS_TRANSITIONS.get(old, set()):
        raise InvalidState(
            f"Cannot transition from '{old}' to '{new_status}'",
            details={"document_id": document.id, "from": old, "to": new_status},
        )
    document.status = new_status
    document.updated_at = datetime.utcnow()
    return old


def supersede(
    s: Session,
    ctx: "ActorContext",
    old: Document,
    new: Document,
    *,
    outbox: Outbox | None = None,
) -> None:
    """
    Mark `old` Obsolete as `new` is released. Flushed immediately so the
    lineage never holds two Released rows, not even inside the transaction.
    """
    if old.id == new.id or old.status != RELEASED:
        return
    transition_status(s, old, OBSOLETE)
    s.flush()
    record_event(
        s,
        ctx=ctx,
        detail=Obsoleted(obsoleted_by_document_id=new.id, obsoleted_by_version=new.version),
        document=old,
    )
    if outbox is not None:
        outbox.emit(OBSOLETED, document=old, actor_user_id=ctx.user_id, superseded_by=new.display_number)


def delete(s: Session, document: Document) -> None:
    s.delete(document)
    s.flush()
