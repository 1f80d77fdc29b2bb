from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.doctrack.models import Base

# Document status
DRAFT = "Draft"
IN_APPROVAL = "In Approval"
RELEASED = "Released"
OBSOLETE = "Obsolete"
DOCUMENT_STATUSES = (DRAFT, IN_APPROVAL, RELEASED, OBSOLETE)
IN_FLIGHT_STATUSES = (DRAFT, IN_APPROVAL)

# Approver status
PENDING = "Pending"
APPROVED = "Approved"
REJECTED = "Rejected"
APPROVER_STATUSES = (PENDING, APPROVED, REJECTED)

# File scan status (orthogonal to document status)
SCAN_PENDING = "pending"
SCAN_SCANNING = "scanning"
SCAN_SAFE = "safe"
SCAN_BLOCKED = "blocked"
SCAN_ERROR = "error"
SCAN_STATUSES = (SCAN_PENDING, SCAN_SCANNING, SCAN_SAFE, SCAN_BLOCKED, SCAN_ERROR)

_LINEAGE_COLUMNS = ("tenant_id", "document_number", "is_production")


class DocumentType(Base):
    __tablename__ = "document_types"
    __table_args__ = (
        UniqueConstraint("tenant_id", "prefix", name="uq_document_type_prefix"),
        CheckConstraint("next_number > 0", name="ck_document_type_next_number_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(128), nullable=False)
    prefix: Mapped[str] = mapped_column(String(10), nullable=False)  # e.g. "FORM"
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    next_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (
        UniqueConstraint("tenant_id", "document_number", "version", name="uq_document_number_version"),
        CheckConstraint(
            "status IN ('Draft', 'In Approval', 'Released', 'Obsolete')",
            name="ck_document_status",
        ),
        # One Released row and one in-flight row per lineage, at most.
        Index(
            "uq_document_lineage_released",
            *_LINEAGE_COLUMNS,
            unique=True,
            sqlite_where=text("status = 'Released'"),
            postgresql_where=text("status = 'Released'"),
        ),
        Index(
            "uq_document_lineage_in_flight",
            *_LINEAGE_COLUMNS,
            unique=True,
            sqlite_where=text("status IN ('Draft', 'In Approval')"),
            postgresql_where=text("status IN ('Draft', 'In Approval')"),
        ),
        Index("idx_documents_status", "tenant_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)

    document_type_id: Mapped[int] = mapped_column(
        ForeignKey("document_types.id", ondelete="RESTRICT"), nullable=False
    )
    document_number: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g. "FORM-00001"
    version: Mapped[str] = mapped_column(String(16), nullable=False)  # e.g. "vA", "v1"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    project_code: Mapped[str | None] = mapped_column(String(16), nullable=True)  # e.g. "P-00042"

    # Draft -> In Approval -> Released -> Obsolete
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=DRAFT)
    is_production: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Returned-for-revision note; cleared when the next approval round starts.
    rejection_reason: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_by_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    released_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    # Optimistic lock: concurrent writers of the same row lose with StaleDataError.
    row_version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": row_version}

    document_type: Mapped[DocumentType] = relationship("DocumentType", lazy="selectin")

    approvers: Mapped[list["Approver"]] = relationship(
        "Approver",
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Approver.id",
    )

    files: Mapped[list["DocumentFile"]] = relationship(
        "DocumentFile",
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="DocumentFile.id",
    )

    @property
    def display_number(self) -> str:
        return f"{self.document_number}{self.version}"


class Approver(Base):
    __tablename__ = "approvers"
    __table_args__ = (
        UniqueConstraint("document_id", "user_id", name="uq_approver_document_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    document_id: Mapped[int] = mapped_column(ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_email: Mapped[str] = mapped_column(String(320), nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default=PENDING)
    comments: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    action_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    document: Mapped[Document] = relationship("Document", back_populates="approvers", lazy="selectin")


class DocumentFile(Base):
    """A file attached by reference; the bytes live in the external file store."""

    __tablename__ = "document_files"
    __table_args__ = (
        UniqueConstraint("document_id", "file_ref", name="uq_document_file_ref"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    document_id: Mapped[int] = mapped_column(ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)

    file_ref: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    content_type: Mapped[str] = mapped_column(String(128), nullable=False, default="application/octet-stream")
    sha256: Mapped[str] = mapped_column(String(64), nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    scan_status: Mapped[str] = mapped_column(String(16), nullable=False, default=SCAN_PENDING)

    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    uploaded_by: Mapped[str] = mapped_column(String(64), nullable=False)

    document: Mapped[Document] = relationship("Document", back_populates="files", lazy="selectin")
