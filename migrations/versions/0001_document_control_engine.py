"""Document control engine: document types, documents, approvers, files, audit log.

Revision ID: 0001_document_control
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_document_control"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_RELEASED = sa.text("status = 'Released'")
_IN_FLIGHT = sa.text("status IN ('Draft', 'In Approval')")


def upgrade() -> None:
    op.create_table(
        "document_types",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("prefix", sa.String(10), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("tenant_id", "prefix", name="uq_document_type_prefix"),
        sa.CheckConstraint("next_number > 0", name="ck_document_type_next_number_positive"),
    )
    op.create_index("ix_document_types_tenant_id", "document_types", ["tenant_id"])

    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column(
            "document_type_id",
            sa.Integer(),
            sa.ForeignKey("document_types.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("document_number", sa.String(64), nullable=False),
        sa.Column("version", sa.String(16), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("project_code", sa.String(16), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="Draft"),
        sa.Column("is_production", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("rejection_reason", sa.String(1024), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=False),
        sa.Column("created_by_email", sa.String(320), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("released_by", sa.String(64), nullable=True),
        sa.Column("released_at", sa.DateTime(), nullable=True),
        sa.Column("row_version", sa.Integer(), nullable=False),
        sa.UniqueConstraint("tenant_id", "document_number", "version", name="uq_document_number_version"),
        sa.CheckConstraint(
            "status IN ('Draft', 'In Approval', 'Released', 'Obsolete')",
            name="ck_document_status",
        ),
    )
    op.create_index(
        "uq_document_lineage_released",
        "documents",
        ["tenant_id", "document_number", "is_production"],
        unique=True,
        sqlite_where=_RELEASED,
        postgresql_where=_RELEASED,
    )
    op.create_index(
        "uq_document_lineage_in_flight",
        "documents",
        ["tenant_id", "document_number", "is_production"],
        unique=True,
        sqlite_where=_IN_FLIGHT,
        postgresql_where=_IN_FLIGHT,
    )
    op.create_index("idx_documents_status", "documents", ["tenant_id", "status"])

    op.create_table(
        "approvers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_id", sa.Integer(), sa.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("user_email", sa.String(320), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="Pending"),
        sa.Column("comments", sa.String(1024), nullable=True),
        sa.Column("rejection_reason", sa.String(1024), nullable=True),
        sa.Column("action_date", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("document_id", "user_id", name="uq_approver_document_user"),
    )

    op.create_table(
        "document_files",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_id", sa.Integer(), sa.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False),
        sa.Column("file_ref", sa.String(255), nullable=False),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("content_type", sa.String(128), nullable=False, server_default="application/octet-stream"),
        sa.Column("sha256", sa.String(64), nullable=False),
        sa.Column("size_bytes", sa.Integer(), nullable=False),
        sa.Column("scan_status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("uploaded_at", sa.DateTime(), nullable=False),
        sa.Column("uploaded_by", sa.String(64), nullable=False),
        sa.UniqueConstraint("document_id", "file_ref", name="uq_document_file_ref"),
    )
    op.create_index("ix_document_files_file_ref", "document_files", ["file_ref"])

    # No FK on document_id: history outlives deleted drafts.
    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("document_id", sa.Integer(), nullable=True),
        sa.Column("document_number", sa.String(64), nullable=True),
        sa.Column("version", sa.String(16), nullable=True),
        sa.Column("performed_by", sa.String(64), nullable=False),
        sa.Column("performed_by_email", sa.String(320), nullable=True),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False, server_default="Document"),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.String(1024), nullable=True),
        sa.Column("details_json", sa.Text(), nullable=True),
    )
    op.create_index("idx_audit_log_document", "audit_log", ["tenant_id", "document_id"])
    op.create_index("idx_audit_log_action", "audit_log", ["action"])


def downgrade() -> None:
    op.drop_index("idx_audit_log_action", table_name="audit_log")
    op.drop_index("idx_audit_log_document", table_name="audit_log")
    op.drop_table("audit_log")
    op.drop_index("ix_document_files_file_ref", table_name="document_files")
    op.drop_table("document_files")
    op.drop_table("approvers")
    op.drop_index("idx_documents_status", table_name="documents")
    op.drop_index("uq_document_lineage_in_flight", table_name="documents")
    op.drop_index("uq_document_lineage_released", table_name="documents")
    op.drop_table("documents")
    op.drop_index("ix_document_types_tenant_id", table_name="document_types")
    op.drop_table("document_types")
