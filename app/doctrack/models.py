from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class AuditLogEntry(Base):
    """
    Append-only audit trail entry.

    `document_id` is deliberately not a foreign key: deleting a document leaves
    its history (and the final tombstone entry) in place.
    """

    __tablename__ = "audit_log"
    __table_args__ = (
        Index("idx_audit_log_document", "tenant_id", "document_id"),
        Index("idx_audit_log_action", "action"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    document_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    document_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    version: Mapped[str | None] = mapped_column(String(16), nullable=True)

    performed_by: Mapped[str] = mapped_column(String(64), nullable=False)
    performed_by_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    action: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g. "submitted_for_approval"
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False, default="Document")
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    reason: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    details_json: Mapped[str | None] = mapped_column(Text, nullable=True)


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.doctrack.modules.document_control.models import (  # noqa: E402,F401
    Approver,
    Document,
    DocumentFile,
    DocumentType,
)
