"""
Error kinds raised by the document control engine.

Component functions raise a `DocumentControlError` subclass; the engine
boundary turns it into an `ErrorInfo` inside an `OperationResult`, so no
guard violation escapes to a caller as an unhandled exception.

Usage:
    from app.doctrack.errors import InvalidState, NotFound

    raise NotFound("Document", document_id)
    raise InvalidState("Only Draft documents can be edited", details={"status": doc.status})
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    NOT_FOUND = "NotFound"
    NOT_AUTHORIZED = "NotAuthorized"
    INVALID_STATE = "InvalidState"
    ALREADY_EXISTS = "AlreadyExists"
    VALIDATION_FAILED = "ValidationFailed"
    DEPENDENCY_UNAVAILABLE = "DependencyUnavailable"

    @property
    def retryable(self) -> bool:
        return self is ErrorKind.DEPENDENCY_UNAVAILABLE


class DocumentControlError(Exception):
    """Base class; `kind` is fixed per subclass."""

    kind: ErrorKind = ErrorKind.VALIDATION_FAILED

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_info(self) -> "ErrorInfo":
        return ErrorInfo(kind=self.kind, message=self.message, details=dict(self.details))


class NotFound(DocumentControlError):
    """
    Unknown document, document type, approver or file.

    Also used for records owned by another tenant, so the response does not
    confirm that the record exists.
    """

    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg, details={"resource": resource, "resource_id": resource_id})


class NotAuthorized(DocumentControlError):
    kind = ErrorKind.NOT_AUTHORIZED


class InvalidState(DocumentControlError):
    kind = ErrorKind.INVALID_STATE


class AlreadyExists(DocumentControlError):
    kind = ErrorKind.ALREADY_EXISTS


class ValidationFailed(DocumentControlError):
    kind = ErrorKind.VALIDATION_FAILED


class DependencyUnavailable(DocumentControlError):
    """The store or the numbering counter could not be reached or kept contending. Safe to retry."""

    kind = ErrorKind.DEPENDENCY_UNAVAILABLE


@dataclass(frozen=True)
class ErrorInfo:
    kind: ErrorKind
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }


@dataclass(frozen=True)
class OperationResult:
    """Structured outcome of one engine operation."""

    ok: bool
    value: Any = None
    error: ErrorInfo | None = None

    @classmethod
    def success(cls, value: Any = None) -> "OperationResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: ErrorInfo) -> "OperationResult":
        return cls(ok=False, error=error)

    @property
    def kind(self) -> ErrorKind | None:
        return self.error.kind if self.error else None
