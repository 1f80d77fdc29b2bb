"""
DocumentControlEngine: the single entry point callers use.

Each public method runs exactly one transaction. Guard violations come back as
`OperationResult(ok=False, error=ErrorInfo(...))`; notifications collected
during the operation are dispatched only after the commit succeeded.

Usage:
    engine = DocumentControlEngine(sessionmaker, dispatcher=LoggingDispatcher())
    res = engine.submit(ctx, document_id)
    if not res.ok:
        ...  # res.error.kind, res.error.message
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from app.doctrack.audit import audit_entries_for
from app.doctrack.db import transaction
from app.doctrack.errors import (
    AlreadyExists,
    DependencyUnavailable,
    DocumentControlError,
    OperationResult,
)
from app.doctrack.notifications import LoggingDispatcher, NotificationDispatcher, Outbox, dispatch_all

from . import approvals, lifecycle, numbering, overrides, promotion, store
from .events import AuditRecord
from .service import approver_to_dict, document_to_dict, document_type_to_dict, file_to_dict, normalize_document_number

if TYPE_CHECKING:
    from flask import Flask

    from app.doctrack.identity import ActorContext

logger = logging.getLogger(__name__)


class DocumentControlEngine:
    def __init__(
        self,
        sm: sessionmaker[Session],
        *,
        dispatcher: NotificationDispatcher | None = None,
        number_digits: int = 5,
        numbering_max_retries: int = numbering.DEFAULT_MAX_RETRIES,
        require_clean_scan: bool = False,
    ) -> None:
        self._sm = sm
        self.dispatcher = dispatcher or LoggingDispatcher()
        self.number_digits = number_digits
        self.numbering_max_retries = numbering_max_retries
        self.require_clean_scan = require_clean_scan

    @classmethod
    def from_app(cls, app: "Flask", *, dispatcher: NotificationDispatcher | None = None) -> "DocumentControlEngine":
        return cls(
            app.extensions["sqlalchemy_sessionmaker"],
            dispatcher=dispatcher,
            number_digits=int(app.config.get("DOC_NUMBER_DIGITS", 5)),
            numbering_max_retries=int(app.config.get("NUMBERING_MAX_RETRIES", numbering.DEFAULT_MAX_RETRIES)),
            require_clean_scan=bool(app.config.get("REQUIRE_CLEAN_SCAN_FOR_RELEASE", False)),
        )

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _run(
        self,
        op: str,
        ctx: "ActorContext",
        fn: Callable[[Session, Outbox], Any],
        *,
        document_id: int | None = None,
    ) -> OperationResult:
        outbox = Outbox()
        try:
            with transaction(self._sm) as s:
                value = fn(s, outbox)
        except DocumentControlError as e:
            self._log_failure(op, ctx, document_id, e)
            return OperationResult.failure(e.to_info())
        except StaleDataError:
            err = DependencyUnavailable(
                "The document was changed by someone else; please retry.",
                details={"document_id": document_id},
            )
            self._log_failure(op, ctx, document_id, err)
            return OperationResult.failure(err.to_info())
        except IntegrityError as e:
            # Unique and lineage indexes are the backstop for races the guards cannot see.
            logger.debug("Integrity conflict during %s: %s", op, e.orig)
            err = AlreadyExists("Conflicting document record.", details={"document_id": document_id})
            self._log_failure(op, ctx, document_id, err)
            return OperationResult.failure(err.to_info())
        except (OperationalError, PoolTimeoutError):
            logger.warning(
                "Store unavailable during %s (tenant=%s document_id=%s retryable=True)",
                op,
                ctx.tenant_id,
                document_id,
                exc_info=True,
            )
            err = DependencyUnavailable("Document store is unavailable; please retry.")
            return OperationResult.failure(err.to_info())

        dispatch_all(self.dispatcher, outbox.events)
        return OperationResult.success(value)

    def _log_failure(self, op: str, ctx: "ActorContext", document_id: int | None, e: DocumentControlError) -> None:
        logger.warning(
            "%s rejected: %s (kind=%s retryable=%s actor=%s tenant=%s document_id=%s request_id=%s)",
            op,
            e.message,
            e.kind.value,
            e.kind.retryable,
            ctx.user_id,
            ctx.tenant_id,
            document_id,
            ctx.request_id,
        )

    # ------------------------------------------------------------------
    # Document types / numbering
    # ------------------------------------------------------------------

    def list_document_types(self, ctx: "ActorContext", *, active_only: bool = False) -> OperationResult:
        return self._run(
            "list_document_types",
            ctx,
            lambda s, ob: [document_type_to_dict(dt) for dt in numbering.list_document_types(s, ctx, active_only=active_only)],
        )

    def create_document_type(
        self, ctx: "ActorContext", *, name: str, prefix: str, description: str | None = None
    ) -> OperationResult:
        return self._run(
            "create_document_type",
            ctx,
            lambda s, ob: document_type_to_dict(
                numbering.create_document_type(s, ctx, name=name, prefix=prefix, description=description)
            ),
        )

    def update_document_type(self, ctx: "ActorContext", document_type_id: int, **fields: Any) -> OperationResult:
        return self._run(
            "update_document_type",
            ctx,
            lambda s, ob: document_type_to_dict(numbering.update_document_type(s, ctx, document_type_id, **fields)),
        )

    def next_number(self, ctx: "ActorContext", document_type_id: int) -> OperationResult:
        """Reserve a sequence number on its own. Normal creation goes through create_document."""
        return self._run(
            "next_number",
            ctx,
            lambda s, ob: numbering.next_number(s, ctx, document_type_id, max_retries=self.numbering_max_retries),
        )

    # ------------------------------------------------------------------
    # Create / edit / delete
    # ------------------------------------------------------------------

    def create_document(
        self,
        ctx: "ActorContext",
        *,
        document_type_id: int,
        title: str,
        description: str | None = None,
        is_production: bool = False,
        project_code: str | None = None,
    ) -> OperationResult:
        return self._run(
            "create_document",
            ctx,
            lambda s, ob: document_to_dict(
                lifecycle.create_document(
                    s,
                    ctx,
                    document_type_id=document_type_id,
                    title=title,
                    description=description,
                    is_production=is_production,
                    project_code=project_code,
                    number_digits=self.number_digits,
                    max_retries=self.numbering_max_retries,
                )
            ),
        )

    def update_document(self, ctx: "ActorContext", document_id: int, **fields: Any) -> OperationResult:
        return self._run(
            "update_document",
            ctx,
            lambda s, ob: document_to_dict(lifecycle.update_document(s, ctx, document_id, **fields)),
            document_id=document_id,
        )

    def delete_document(self, ctx: "ActorContext", document_id: int) -> OperationResult:
        return self._run(
            "delete_document",
            ctx,
            lambda s, ob: lifecycle.delete_document(s, ctx, document_id),
            document_id=document_id,
        )

    # ------------------------------------------------------------------
    # Approvers and files
    # ------------------------------------------------------------------

    def add_approver(self, ctx: "ActorContext", document_id: int, *, user_id: str, user_email: str) -> OperationResult:
        return self._run(
            "add_approver",
            ctx,
            lambda s, ob: approver_to_dict(
                lifecycle.add_approver(s, ctx, document_id, user_id=user_id, user_email=user_email)
            ),
            document_id=document_id,
        )

    def remove_approver(self, ctx: "ActorContext", document_id: int, *, user_id: str) -> OperationResult:
        return self._run(
            "remove_approver",
            ctx,
            lambda s, ob: lifecycle.remove_approver(s, ctx, document_id, user_id=user_id),
            document_id=document_id,
        )

    def attach_file(
        self,
        ctx: "ActorContext",
        document_id: int,
        *,
        file_ref: str,
        filename: str,
        size_bytes: int,
        sha256: str,
        content_type: str | None = None,
    ) -> OperationResult:
        return self._run(
            "attach_file",
            ctx,
            lambda s, ob: file_to_dict(
                lifecycle.attach_file(
                    s,
                    ctx,
                    document_id,
                    file_ref=file_ref,
                    filename=filename,
                    size_bytes=size_bytes,
                    sha256=sha256,
                    content_type=content_type,
                )
            ),
            document_id=document_id,
        )

    def detach_file(self, ctx: "ActorContext", document_id: int, file_id: int) -> OperationResult:
        return self._run(
            "detach_file",
            ctx,
            lambda s, ob: lifecycle.detach_file(s, ctx, document_id, file_id),
            document_id=document_id,
        )

    def record_scan_result(self, ctx: "ActorContext", *, file_ref: str, scan_status: str) -> OperationResult:
        return self._run(
            "record_scan_result",
            ctx,
            lambda s, ob: [
                file_to_dict(f) for f in lifecycle.record_scan_result(s, ctx, file_ref=file_ref, scan_status=scan_status)
            ],
        )

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    def submit(self, ctx: "ActorContext", document_id: int) -> OperationResult:
        return self._run(
            "submit",
            ctx,
            lambda s, ob: document_to_dict(
                lifecycle.submit(s, ctx, document_id, require_clean_scan=self.require_clean_scan, outbox=ob)
            ),
            document_id=document_id,
        )

    def approve(self, ctx: "ActorContext", document_id: int, *, comment: str | None = None) -> OperationResult:
        return self._run(
            "approve",
            ctx,
            lambda s, ob: document_to_dict(lifecycle.approve(s, ctx, document_id, comment=comment, outbox=ob)),
            document_id=document_id,
        )

    def reject(self, ctx: "ActorContext", document_id: int, *, reason: str | None) -> OperationResult:
        return self._run(
            "reject",
            ctx,
            lambda s, ob: document_to_dict(lifecycle.reject(s, ctx, document_id, reason=reason, outbox=ob)),
            document_id=document_id,
        )

    def withdraw(self, ctx: "ActorContext", document_id: int) -> OperationResult:
        return self._run(
            "withdraw",
            ctx,
            lambda s, ob: document_to_dict(lifecycle.withdraw(s, ctx, document_id, outbox=ob)),
            document_id=document_id,
        )

    def create_new_version(self, ctx: "ActorContext", source_document_id: int) -> OperationResult:
        return self._run(
            "create_new_version",
            ctx,
            lambda s, ob: document_to_dict(promotion.create_new_version(s, ctx, source_document_id)),
            document_id=source_document_id,
        )

    def promote_to_production(self, ctx: "ActorContext", prototype_document_id: int) -> OperationResult:
        return self._run(
            "promote_to_production",
            ctx,
            lambda s, ob: document_to_dict(promotion.promote_to_production(s, ctx, prototype_document_id, outbox=ob)),
            document_id=prototype_document_id,
        )

    # ------------------------------------------------------------------
    # Admin overrides
    # ------------------------------------------------------------------

    def admin_force_status(self, ctx: "ActorContext", document_id: int, *, new_status: str, reason: str) -> OperationResult:
        return self._run(
            "admin_force_status",
            ctx,
            lambda s, ob: document_to_dict(
                overrides.admin_force_status(s, ctx, document_id, new_status=new_status, reason=reason)
            ),
            document_id=document_id,
        )

    def admin_force_version(self, ctx: "ActorContext", document_id: int, *, new_version: str, reason: str) -> OperationResult:
        return self._run(
            "admin_force_version",
            ctx,
            lambda s, ob: document_to_dict(
                overrides.admin_force_version(s, ctx, document_id, new_version=new_version, reason=reason)
            ),
            document_id=document_id,
        )

    def admin_force_document_number(
        self, ctx: "ActorContext", document_id: int, *, new_number: str, reason: str
    ) -> OperationResult:
        return self._run(
            "admin_force_document_number",
            ctx,
            lambda s, ob: document_to_dict(
                overrides.admin_force_document_number(s, ctx, document_id, new_number=new_number, reason=reason)
            ),
            document_id=document_id,
        )

    def admin_change_owner(
        self,
        ctx: "ActorContext",
        document_id: int,
        *,
        new_owner_user_id: str,
        new_owner_email: str,
        reason: str,
    ) -> OperationResult:
        return self._run(
            "admin_change_owner",
            ctx,
            lambda s, ob: document_to_dict(
                overrides.admin_change_owner(
                    s,
                    ctx,
                    document_id,
                    new_owner_user_id=new_owner_user_id,
                    new_owner_email=new_owner_email,
                    reason=reason,
                )
            ),
            document_id=document_id,
        )

    def admin_delete_document(self, ctx: "ActorContext", document_id: int, *, reason: str) -> OperationResult:
        return self._run(
            "admin_delete_document",
            ctx,
            lambda s, ob: overrides.admin_delete_document(s, ctx, document_id, reason=reason),
            document_id=document_id,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_document(self, ctx: "ActorContext", document_id: int) -> OperationResult:
        return self._run(
            "get_document",
            ctx,
            lambda s, ob: document_to_dict(store.get_document(s, ctx, document_id)),
            document_id=document_id,
        )

    def list_versions(self, ctx: "ActorContext", document_number: str) -> OperationResult:
        def _q(s: Session, ob: Outbox) -> list[dict]:
            number = normalize_document_number(document_number)
            return [document_to_dict(d, include_children=False) for d in store.list_versions(s, ctx, number)]

        return self._run("list_versions", ctx, _q)

    def list_lineage(self, ctx: "ActorContext", document_number: str, *, is_production: bool) -> OperationResult:
        def _q(s: Session, ob: Outbox) -> list[dict]:
            number = normalize_document_number(document_number)
            return [
                document_to_dict(d, include_children=False)
                for d in store.list_by_lineage(s, ctx, number, is_production)
            ]

        return self._run("list_lineage", ctx, _q)

    def current_version(self, ctx: "ActorContext", document_number: str, *, is_production: bool) -> OperationResult:
        """The Released row of a lineage; `value` is None when nothing is released yet."""

        def _q(s: Session, ob: Outbox) -> dict | None:
            d = store.current_version(s, ctx, normalize_document_number(document_number), is_production)
            return document_to_dict(d) if d is not None else None

        return self._run("current_version", ctx, _q)

    def my_pending_approvals(self, ctx: "ActorContext") -> OperationResult:
        def _q(s: Session, ob: Outbox) -> list[dict]:
            out = []
            for a in approvals.pending_approvals_for(s, ctx):
                row = document_to_dict(a.document, include_children=False)
                row["approver"] = approver_to_dict(a)
                out.append(row)
            return out

        return self._run("my_pending_approvals", ctx, _q)

    def audit_trail(self, ctx: "ActorContext", document_id: int) -> OperationResult:
        """
        Audit history of one document as `AuditRecord`s, oldest first. Works for
        deleted documents too, since the log outlives them.
        """
        return self._run(
            "audit_trail",
            ctx,
            lambda s, ob: [
                AuditRecord.from_entry(e) for e in audit_entries_for(s, tenant_id=ctx.tenant_id, document_id=document_id)
            ],
            document_id=document_id,
        )
