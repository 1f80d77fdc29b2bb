from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.doctrack.models import AuditLogEntry

if TYPE_CHECKING:
    from app.doctrack.identity import ActorContext
    from app.doctrack.modules.document_control.events import AuditDetail
    from app.doctrack.modules.document_control.models import Document

logger = logging.getLogger(__name__)


def record_event(
    s: Session,
    *,
    ctx: "ActorContext",
    detail: "AuditDetail",
    document: "Document | None" = None,
    entity_type: str = "Document",
    entity_id: str | None = None,
    reason: str | None = None,
) -> AuditLogEntry | None:
    """
    Append-only audit entry helper.

    Mandatory details (document created/deleted, admin overrides) are written in the
    caller's transaction and any failure aborts it. Everything else is written inside
    a savepoint: a failed audit write is logged and the primary transition stands.
    """
    ev = AuditLogEntry(
        tenant_id=ctx.tenant_id,
        request_id=ctx.request_id,
        document_id=document.id if document is not None else None,
        document_number=document.document_number if document is not None else None,
        version=document.version if document is not None else None,
        performed_by=ctx.user_id,
        performed_by_email=ctx.email or None,
        action=detail.action,
        entity_type=entity_type,
        entity_id=entity_id if entity_id is not None else (str(document.id) if document is not None else None),
        reason=reason,
        details_json=json.dumps(detail.to_dict(), sort_keys=True, default=str),
    )
    if detail.mandatory:
        s.add(ev)
        s.flush()
        return ev

    # Flush the primary change first so its errors are not mistaken for audit failures.
    s.flush()
    try:
        with s.begin_nested():
            s.add(ev)
    except SQLAlchemyError:
        logger.exception(
            "Audit write failed (action=%s document_id=%s actor=%s request_id=%s)",
            detail.action,
            ev.document_id,
            ctx.user_id,
            ctx.request_id,
        )
        return None
    return ev


def audit_entries_for(s: Session, *, tenant_id: str, document_id: int) -> list[AuditLogEntry]:
    stmt = (
        select(AuditLogEntry)
        .where(AuditLogEntry.tenant_id == tenant_id, AuditLogEntry.document_id == document_id)
        .order_by(AuditLogEntry.id.asc())
    )
    return list(s.scalars(stmt))
