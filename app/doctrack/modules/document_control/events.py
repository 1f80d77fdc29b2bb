"""
Audit detail variants, one per action.

Every mutation writes exactly one of these into `audit_log.details_json`; the
`action` column carries the tag, so a stored entry can be turned back into the
typed variant with `detail_from_entry`.
"""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields
from typing import Any, ClassVar


@dataclass(frozen=True)
class AuditDetail:
    action: ClassVar[str] = ""
    # Entries whose write failure must fail the whole transition.
    mandatory: ClassVar[bool] = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DocumentCreated(AuditDetail):
    action: ClassVar[str] = "created"
    mandatory: ClassVar[bool] = True

    document_number: str
    version: str
    title: str
    is_production: bool


@dataclass(frozen=True)
class DocumentUpdated(AuditDetail):
    action: ClassVar[str] = "updated"

    changes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DocumentDeleted(AuditDetail):
    action: ClassVar[str] = "deleted"
    mandatory: ClassVar[bool] = True

    document_number: str
    version: str
    status: str
    is_production: bool
    admin_override: bool = False


@dataclass(frozen=True)
class ApproverAdded(AuditDetail):
    action: ClassVar[str] = "approver_added"

    approver_user_id: str
    approver_email: str


@dataclass(frozen=True)
class ApproverRemoved(AuditDetail):
    action: ClassVar[str] = "approver_removed"

    approver_user_id: str
    approver_email: str


@dataclass(frozen=True)
class SubmittedForApproval(AuditDetail):
    action: ClassVar[str] = "submitted_for_approval"

    approver_count: int


@dataclass(frozen=True)
class Withdrawn(AuditDetail):
    action: ClassVar[str] = "withdrawn"

    pending_approvers: int


@dataclass(frozen=True)
class Approved(AuditDetail):
    action: ClassVar[str] = "approved"

    approver_email: str
    comments: str | None = None


@dataclass(frozen=True)
class Rejected(AuditDetail):
    action: ClassVar[str] = "rejected"

    approver_email: str
    rejection_reason: str


@dataclass(frozen=True)
class Released(AuditDetail):
    action: ClassVar[str] = "released"

    release_method: str  # "approved" | "no_approvers"
    superseded_document_id: int | None = None


@dataclass(frozen=True)
class Obsoleted(AuditDetail):
    action: ClassVar[str] = "document_obsoleted"

    obsoleted_by_document_id: int
    obsoleted_by_version: str


@dataclass(frozen=True)
class VersionCreated(AuditDetail):
    action: ClassVar[str] = "version_created"

    source_document_id: int
    source_version: str
    new_version: str


@dataclass(frozen=True)
class PromotedToProduction(AuditDetail):
    """Written on the new production document."""

    action: ClassVar[str] = "promoted_to_production"

    source_document_id: int
    source_display_number: str
    new_display_number: str


@dataclass(frozen=True)
class PrototypePromoted(AuditDetail):
    """Written on the prototype the production lineage was promoted from."""

    action: ClassVar[str] = "prototype_promoted"

    promoted_to_document_id: int
    new_display_number: str


@dataclass(frozen=True)
class FileAttached(AuditDetail):
    action: ClassVar[str] = "file_attached"

    file_id: int
    file_ref: str
    filename: str
    sha256: str
    size_bytes: int


@dataclass(frozen=True)
class FileDetached(AuditDetail):
    action: ClassVar[str] = "file_deleted"

    file_id: int
    file_ref: str
    filename: str


@dataclass(frozen=True)
class FileScanUpdated(AuditDetail):
    action: ClassVar[str] = "file_scan_updated"

    file_id: int
    file_ref: str
    old_status: str
    new_status: str


@dataclass(frozen=True)
class AdminStatusChange(AuditDetail):
    action: ClassVar[str] = "admin_status_change"
    mandatory: ClassVar[bool] = True

    old_status: str
    new_status: str


@dataclass(frozen=True)
class AdminVersionChange(AuditDetail):
    action: ClassVar[str] = "admin_force_version_change"
    mandatory: ClassVar[bool] = True

    old_version: str
    new_version: str
    is_production: bool


@dataclass(frozen=True)
class AdminRename(AuditDetail):
    action: ClassVar[str] = "admin_rename"
    mandatory: ClassVar[bool] = True

    old_number: str
    new_number: str


@dataclass(frozen=True)
class OwnerChanged(AuditDetail):
    action: ClassVar[str] = "owner_changed"
    mandatory: ClassVar[bool] = True

    previous_owner: str
    previous_owner_email: str | None
    new_owner: str
    new_owner_email: str


@dataclass(frozen=True)
class DocumentTypeCreated(AuditDetail):
    action: ClassVar[str] = "document_type_created"

    prefix: str
    name: str


@dataclass(frozen=True)
class DocumentTypeUpdated(AuditDetail):
    action: ClassVar[str] = "document_type_updated"

    prefix: str
    changes: dict[str, Any] = field(default_factory=dict)


AUDIT_DETAIL_TYPES: dict[str, type[AuditDetail]] = {
    cls.action: cls
    for cls in (
        DocumentCreated,
        DocumentUpdated,
        DocumentDeleted,
        ApproverAdded,
        ApproverRemoved,
        SubmittedForApproval,
        Withdrawn,
        Approved,
        Rejected,
        Released,
        Obsoleted,
        VersionCreated,
        PromotedToProduction,
        PrototypePromoted,
        FileAttached,
        FileDetached,
        FileScanUpdated,
        AdminStatusChange,
        AdminVersionChange,
        AdminRename,
        OwnerChanged,
        DocumentTypeCreated,
        DocumentTypeUpdated,
    )
}


def detail_from_entry(action: str, details_json: str | None) -> AuditDetail:
    cls = AUDIT_DETAIL_TYPES.get(action)
    if cls is None:
        raise KeyError(f"Unknown audit action: {action!r}")
    raw = json.loads(details_json) if details_json else {}
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in raw.items() if k in known})


@dataclass(frozen=True)
class AuditRecord:
    """A stored audit entry with its detail decoded back into the typed variant."""

    id: int
    created_at: Any
    action: str
    performed_by: str
    performed_by_email: str | None
    document_id: int | None
    document_number: str | None
    version: str | None
    entity_type: str
    entity_id: str | None
    reason: str | None
    request_id: str | None
    detail: AuditDetail

    @classmethod
    def from_entry(cls, entry) -> "AuditRecord":
        return cls(
            id=entry.id,
            created_at=entry.created_at,
            action=entry.action,
            performed_by=entry.performed_by,
            performed_by_email=entry.performed_by_email,
            document_id=entry.document_id,
            document_number=entry.document_number,
            version=entry.version,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            reason=entry.reason,
            request_id=entry.request_id,
            detail=detail_from_entry(entry.action, entry.details_json),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "action": self.action,
            "performed_by": self.performed_by,
            "performed_by_email": self.performed_by_email,
            "document_id": self.document_id,
            "document_number": self.document_number,
            "version": self.version,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "reason": self.reason,
            "request_id": self.request_id,
            "details": self.detail.to_dict(),
        }
