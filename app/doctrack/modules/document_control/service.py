from __future__ import annotations

import re
from typing import Any

from werkzeug.utils import secure_filename

from app.doctrack.errors import ValidationFailed

PROTOTYPE = "prototype"
PRODUCTION = "production"

PREFIX_RE = re.compile(r"[A-Z]{2,10}")
PROJECT_CODE_RE = re.compile(r"P-\d{5}")
DOCUMENT_NUMBER_RE = re.compile(r"[A-Z]+-\d{5}")
SHA256_RE = re.compile(r"[0-9a-f]{64}")

TITLE_MAX_LEN = 255
REASON_MAX_LEN = 1024


def initial_version(is_production: bool) -> str:
    return "v1" if is_production else "vA"


def _letters_to_int(letters: str) -> int:
    # Base-26, A=1 ... Z=26 (Excel-style)
    n = 0
    for ch in letters:
        n = n * 26 + (ord(ch) - ord("A") + 1)
    return n


def _int_to_letters(n: int) -> str:
    out = []
    while n > 0:
        n -= 1
        out.append(chr(ord("A") + (n % 26)))
        n //= 26
    return "".join(reversed(out))


def parse_version(version: str) -> tuple[str, int]:
    """
    Split a version identifier into (scheme, ordinal).

    "vA" -> ("prototype", 1), "vAB" -> ("prototype", 28), "v12" -> ("production", 12)
    """
    raw = (version or "").strip()
    if not raw.startswith("v") or len(raw) < 2:
        raise ValidationFailed(f"Invalid version format: {version!r}", details={"version": version})
    suffix = raw[1:]
    if re.fullmatch(r"[A-Z]+", suffix):
        return PROTOTYPE, _letters_to_int(suffix)
    if re.fullmatch(r"[1-9]\d*", suffix):
        return PRODUCTION, int(suffix)
    raise ValidationFailed(f"Invalid version format: {version!r}", details={"version": version})


def scheme_for(is_production: bool) -> str:
    return PRODUCTION if is_production else PROTOTYPE


def version_matches_scheme(version: str, *, is_production: bool) -> bool:
    try:
        scheme, _ = parse_version(version)
    except ValidationFailed:
        return False
    return scheme == scheme_for(is_production)


def next_version(current: str, *, is_production: bool) -> str:
    """
    Increment a version identifier within its lineage's scheme.

    Supports:
    - production: "v1" -> "v2"
    - prototype: "vA" -> "vB", "vZ" -> "vAA"
    The schemes are never mixed: asking for the next production version of "vC" fails.
    """
    scheme, n = parse_version(current)
    if scheme != scheme_for(is_production):
        raise ValidationFailed(
            f"Version {current} is not a {scheme_for(is_production)} version",
            details={"version": current, "is_production": is_production},
        )
    if scheme == PRODUCTION:
        return f"v{n + 1}"
    return f"v{_int_to_letters(n + 1)}"


def version_ordinal(version: str) -> int:
    return parse_version(version)[1]


def format_document_number(prefix: str, number: int, digits: int = 5) -> str:
    return f"{prefix}-{number:0{digits}d}"


def normalize_prefix(prefix: str | None) -> str:
    p = (prefix or "").strip().upper()
    if not PREFIX_RE.fullmatch(p):
        raise ValidationFailed("Prefix must be 2-10 uppercase letters.", details={"prefix": prefix})
    return p


def normalize_project_code(code: str | None) -> str | None:
    c = (code or "").strip().upper()
    if not c:
        return None
    if not PROJECT_CODE_RE.fullmatch(c):
        raise ValidationFailed("Project code must look like P-00001.", details={"project_code": code})
    return c


def normalize_document_number(doc_number: str | None) -> str:
    n = (doc_number or "").strip().upper()
    if not DOCUMENT_NUMBER_RE.fullmatch(n):
        raise ValidationFailed(
            "Invalid document number format. Use PREFIX-##### (e.g., FORM-00001).",
            details={"document_number": doc_number},
        )
    return n


def clean_text(value: str | None, field: str, *, max_len: int, required: bool = False) -> str | None:
    v = (value or "").strip()
    if not v:
        if required:
            raise ValidationFailed(f"{field} is required.", details={"field": field})
        return None
    if len(v) > max_len:
        raise ValidationFailed(f"{field} must be at most {max_len} characters.", details={"field": field})
    return v


def require_reason(reason: str | None, field: str = "reason") -> str:
    return clean_text(reason, field, max_len=REASON_MAX_LEN, required=True)  # type: ignore[return-value]


def sanitize_attachment_filename(filename: str) -> str:
    fn = secure_filename(filename or "")
    return fn or "document.bin"


def validate_sha256(value: str | None) -> str:
    v = (value or "").strip().lower()
    if not SHA256_RE.fullmatch(v):
        raise ValidationFailed("sha256 must be 64 hex characters.", details={"sha256": value})
    return v


def _iso(dt) -> str | None:
    return dt.isoformat() if dt else None


def document_type_to_dict(dt) -> dict[str, Any]:
    return {
        "id": dt.id,
        "name": dt.name,
        "prefix": dt.prefix,
        "description": dt.description,
        "is_active": dt.is_active,
        "next_number": dt.next_number,
    }


def approver_to_dict(a) -> dict[str, Any]:
    return {
        "id": a.id,
        "document_id": a.document_id,
        "user_id": a.user_id,
        "user_email": a.user_email,
        "status": a.status,
        "comments": a.comments,
        "rejection_reason": a.rejection_reason,
        "action_date": _iso(a.action_date),
    }


def file_to_dict(f) -> dict[str, Any]:
    return {
        "id": f.id,
        "file_ref": f.file_ref,
        "filename": f.filename,
        "content_type": f.content_type,
        "sha256": f.sha256,
        "size_bytes": f.size_bytes,
        "scan_status": f.scan_status,
        "uploaded_by": f.uploaded_by,
        "uploaded_at": _iso(f.uploaded_at),
    }


def document_to_dict(d, *, include_children: bool = True) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": d.id,
        "document_number": d.document_number,
        "version": d.version,
        "display_number": d.display_number,
        "document_type_id": d.document_type_id,
        "title": d.title,
        "description": d.description,
        "project_code": d.project_code,
        "status": d.status,
        "is_production": d.is_production,
        "rejection_reason": d.rejection_reason,
        "created_by": d.created_by,
        "created_by_email": d.created_by_email,
        "created_at": _iso(d.created_at),
        "released_by": d.released_by,
        "released_at": _iso(d.released_at),
    }
    if include_children:
        out["approvers"] = [approver_to_dict(a) for a in d.approvers]
        out["files"] = [file_to_dict(f) for f in d.files]
    return out
