from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any

from flask import current_app, g, jsonify, request

SYSTEM_USER_ID = "system"

_TRUE_VALUES = ("1", "true", "yes")


@dataclass(frozen=True)
class ActorContext:
    """
    Authenticated caller, supplied by the identity provider and trusted as-is.
    Passed explicitly into every engine call.
    """

    user_id: str
    email: str
    tenant_id: str
    is_admin: bool = False
    request_id: str | None = None

    @classmethod
    def system(cls, tenant_id: str, *, request_id: str | None = None) -> "ActorContext":
        return cls(
            user_id=SYSTEM_USER_ID,
            email="system@localhost",
            tenant_id=tenant_id,
            is_admin=True,
            request_id=request_id,
        )


def load_current_actor() -> None:
    """
    Loads g.actor from the identity headers set by the upstream auth proxy.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
    g.actor = None
    if request.path.startswith(("/health", "/healthz")):
        return
    if not current_app.config.get("IDENTITY_TRUST_HEADERS", True):
        return

    user_id = (request.headers.get("X-User-Id") or "").strip()
    tenant_id = (request.headers.get("X-Tenant-Id") or "").strip()
    if not user_id or not tenant_id:
        return

    g.actor = ActorContext(
        user_id=user_id,
        email=(request.headers.get("X-User-Email") or "").strip().lower(),
        tenant_id=tenant_id,
        is_admin=(request.headers.get("X-User-Admin") or "").strip().lower() in _TRUE_VALUES,
        request_id=g.request_id,
    )


def current_actor() -> ActorContext | None:
    return getattr(g, "actor", None)


def require_actor(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        # No identity headers -> 401; per-operation authorization happens in the engine.
        if current_actor() is None:
            return jsonify({"ok": False, "error": {"kind": "NotAuthenticated", "message": "Authentication required."}}), 401
        return fn(*args, **kwargs)

    return wrapped
