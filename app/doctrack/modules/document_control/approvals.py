"""
Approval coordinator: the per-document approver set and the consensus rule.

Fully approved means every approver is Approved. One Rejected vote rejects the
whole document; the other votes are left as they are and become moot once the
document leaves In Approval. Each submission starts a fresh round.
"""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.doctrack.audit import record_event
from app.doctrack.errors import AlreadyExists, InvalidState, NotAuthorized, NotFound, ValidationFailed

from .events import ApproverAdded, ApproverRemoved
from .models import APPROVED, DRAFT, IN_APPROVAL, PENDING, REJECTED, Approver, Document
from .service import REASON_MAX_LEN, clean_text, require_reason

if TYPE_CHECKING:
    from app.doctrack.identity import ActorContext


def _require_draft(document: Document, action: str) -> None:
    if document.status != DRAFT:
        raise InvalidState(
            f"Can only {action} approvers on Draft documents",
            details={"document_id": document.id, "status": document.status},
        )


def _require_creator(ctx: "ActorContext", document: Document, action: str) -> None:
    if document.created_by != ctx.user_id:
        raise NotAuthorized(
            f"Only the document creator can {action} approvers",
            details={"document_id": document.id},
        )


def find_approver(document: Document, user_id: str) -> Approver | None:
    for a in document.approvers:
        if a.user_id == user_id:
            return a
    return None


def add_approver(
    s: Session,
    ctx: "ActorContext",
    document: Document,
    *,
    user_id: str,
    user_email: str,
) -> Approver:
    _require_draft(document, "add")
    _require_creator(ctx, document, "add")

    uid = (user_id or "").strip()
    email = (user_email or "").strip().lower()
    if not uid:
        raise ValidationFailed("Approver user_id is required.", details={"field": "user_id"})
    if "@" not in email:
        raise ValidationFailed("Approver email is invalid.", details={"field": "user_email"})

    if find_approver(document, uid) is not None:
        raise AlreadyExists("This user is already an approver", details={"user_id": uid})

    a = Approver(document_id=document.id, user_id=uid, user_email=email, status=PENDING)
    document.approvers.append(a)
    document.updated_at = datetime.utcnow()
    s.flush()

    record_event(
        s,
        ctx=ctx,
        detail=ApproverAdded(approver_user_id=uid, approver_email=email),
        document=document,
    )
    return a


def remove_approver(s: Session, ctx: "ActorContext", document: Document, *, user_id: str) -> None:
    _require_draft(document, "remove")
    _require_creator(ctx, document, "remove")

    a = find_approver(document, (user_id or "").strip())
    if a is None:
        raise NotFound("Approver", user_id)

    document.approvers.remove(a)
    document.updated_at = datetime.utcnow()
    s.flush()

    record_event(
        s,
        ctx=ctx,
        detail=ApproverRemoved(approver_user_id=a.user_id, approver_email=a.user_email),
        document=document,
    )


def record_decision(
    s: Session,
    ctx: "ActorContext",
    document: Document,
    *,
    decision: str,
    comment: str | None = None,
) -> Approver:
    """
    Record one approver's vote. The document row is touched as well, so two
    concurrent votes on the same document conflict on its row version instead
    of both computing consensus from a stale snapshot.
    """
    if decision not in (APPROVED, REJECTED):
        raise ValidationFailed(f"Invalid decision: {decision}", details={"decision": decision})
    if document.status != IN_APPROVAL:
        raise InvalidState(
            "Document is not in approval status",
            details={"document_id": document.id, "status": document.status},
        )

    a = find_approver(document, ctx.user_id)
    if a is None:
        raise NotAuthorized(
            "You are not assigned as an approver for this document",
            details={"document_id": document.id},
        )
    if a.status != PENDING:
        raise InvalidState(
            "You have already responded to this approval request",
            details={"document_id": document.id, "approver_status": a.status},
        )

    now = datetime.utcnow()
    if decision == REJECTED:
        a.rejection_reason = require_reason(comment, "rejection_reason")
        a.comments = a.rejection_reason
    else:
        a.comments = clean_text(comment, "comments", max_len=REASON_MAX_LEN)
    a.status = decision
    a.action_date = now
    document.updated_at = now
    return a


def is_fully_approved(document: Document) -> bool:
    return all(a.status == APPROVED for a in document.approvers)


def is_rejected(document: Document) -> bool:
    return any(a.status == REJECTED for a in document.approvers)


def start_round(document: Document) -> None:
    """Reset every vote to Pending for a new submission."""
    for a in document.approvers:
        a.status = PENDING
        a.comments = None
        a.rejection_reason = None
        a.action_date = None


def pending_approvals_for(s: Session, ctx: "ActorContext") -> list[Approver]:
    """Approver rows still waiting on the caller, on documents currently In Approval."""
    stmt = (
        select(Approver)
        .join(Document, Approver.document_id == Document.id)
        .where(
            Document.tenant_id == ctx.tenant_id,
            Document.status == IN_APPROVAL,
            Approver.user_id == ctx.user_id,
            Approver.status == PENDING,
        )
        .order_by(Approver.created_at.desc(), Approver.id.desc())
    )
    return list(s.scalars(stmt))
