"""
New versions within a lineage, and promotion of a prototype into production.

A new version copies metadata only: files and approvers start empty. Promotion
opens an independent production lineage (same number, v1, Draft) and leaves the
prototype lineage untouched; it can happen once per document number.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.doctrack.audit import record_event
from app.doctrack.errors import AlreadyExists, InvalidState, NotAuthorized
from app.doctrack.notifications import PROMOTED, Outbox

from . import store
from .events import PromotedToProduction, PrototypePromoted, VersionCreated
from .models import RELEASED, Document
from .service import initial_version, next_version

if TYPE_CHECKING:
    from app.doctrack.identity import ActorContext

logger = logging.getLogger(__name__)


def create_new_version(s: Session, ctx: "ActorContext", source_document_id: int) -> Document:
    """Open the next Draft version of a lineage from its Released current version."""
    src = store.get_document(s, ctx, source_document_id, for_update=True)
    if src.status != RELEASED:
        raise InvalidState(
            f"Only Released documents can be versioned. Current status: {src.status}",
            details={"document_id": src.id, "status": src.status},
        )

    lineage = store.list_by_lineage(s, ctx, src.document_number, src.is_production)
    latest = lineage[-1]
    new_version = next_version(latest.version, is_production=src.is_production)

    d = store.create(
        s,
        ctx,
        document_type=src.document_type,
        document_number=src.document_number,
        version=new_version,
        title=src.title,
        description=src.description,
        is_production=src.is_production,
        project_code=src.project_code,
    )

    record_event(
        s,
        ctx=ctx,
        detail=VersionCreated(source_document_id=src.id, source_version=src.version, new_version=new_version),
        document=d,
    )
    logger.info("New version %s from %s (tenant=%s by=%s)", d.display_number, src.display_number, ctx.tenant_id, ctx.user_id)
    return d


def promote_to_production(
    s: Session,
    ctx: "ActorContext",
    prototype_document_id: int,
    *,
    outbox: Outbox | None = None,
) -> Document:
    src = store.get_document(s, ctx, prototype_document_id, for_update=True)

    if src.is_production:
        raise InvalidState(
            "This document is already a Production document",
            details={"document_id": src.id},
        )
    if src.status != RELEASED:
        raise InvalidState(
            "Only Released Prototype documents can be promoted to Production",
            details={"document_id": src.id, "status": src.status},
        )
    if src.created_by != ctx.user_id and not ctx.is_admin:
        raise NotAuthorized(
            "You do not have permission to promote this document",
            details={"document_id": src.id},
        )

    v1 = initial_version(True)
    existing = s.scalars(
        select(Document.id).where(
            Document.tenant_id == ctx.tenant_id,
            Document.document_number == src.document_number,
            Document.is_production.is_(True),
        )
    ).first()
    if existing is not None:
        raise AlreadyExists(
            f"A Production lineage already exists for {src.document_number}. "
            "Create a new version of the existing Production document instead.",
            details={"document_number": src.document_number, "existing_document_id": existing},
        )

    d = store.create(
        s,
        ctx,
        document_type=src.document_type,
        document_number=src.document_number,
        version=v1,
        title=src.title,
        description=src.description,
        is_production=True,
        project_code=src.project_code,
    )

    record_event(
        s,
        ctx=ctx,
        detail=PromotedToProduction(
            source_document_id=src.id,
            source_display_number=src.display_number,
            new_display_number=d.display_number,
        ),
        document=d,
    )
    record_event(
        s,
        ctx=ctx,
        detail=PrototypePromoted(promoted_to_document_id=d.id, new_display_number=d.display_number),
        document=src,
    )
    if outbox is not None:
        outbox.emit(PROMOTED, document=d, actor_user_id=ctx.user_id, source=src.display_number)
    logger.info("Promoted %s -> %s (tenant=%s by=%s)", src.display_number, d.display_number, ctx.tenant_id, ctx.user_id)
    return d
