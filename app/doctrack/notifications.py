"""
Logical events emitted at the engine boundary.

Events are collected in an `Outbox` while an operation runs and handed to a
`NotificationDispatcher` only after the transaction commits. Delivery (email,
digests, webhooks) belongs to whatever consumes them; a failing dispatcher is
logged and never touches engine state.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

SUBMITTED = "submitted"
APPROVED = "approved"
REJECTED = "rejected"
RELEASED = "released"
WITHDRAWN = "withdrawn"
OBSOLETED = "obsoleted"
PROMOTED = "promoted"


@dataclass(frozen=True)
class NotificationEvent:
    name: str
    tenant_id: str
    document_id: int
    display_number: str
    actor_user_id: str
    recipients: tuple[str, ...] = ()
    payload: dict[str, Any] = field(default_factory=dict)


class Outbox:
    def __init__(self) -> None:
        self.events: list[NotificationEvent] = []

    def emit(
        self,
        name: str,
        *,
        document,
        actor_user_id: str,
        recipients: tuple[str, ...] | list[str] = (),
        **payload: Any,
    ) -> None:
        self.events.append(
            NotificationEvent(
                name=name,
                tenant_id=document.tenant_id,
                document_id=document.id,
                display_number=document.display_number,
                actor_user_id=actor_user_id,
                recipients=tuple(recipients),
                payload=payload,
            )
        )


class NotificationDispatcher:
    def publish(self, event: NotificationEvent) -> None:
        raise NotImplementedError


class LoggingDispatcher(NotificationDispatcher):
    def publish(self, event: NotificationEvent) -> None:
        logger.info(
            "notify: %s %s (tenant=%s recipients=%d)",
            event.name,
            event.display_number,
            event.tenant_id,
            len(event.recipients),
        )


class InMemoryDispatcher(NotificationDispatcher):
    def __init__(self) -> None:
        self.events: list[NotificationEvent] = []

    def publish(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def names(self) -> list[str]:
        return [e.name for e in self.events]


def dispatch_all(dispatcher: NotificationDispatcher, events: list[NotificationEvent]) -> None:
    for ev in events:
        try:
            dispatcher.publish(ev)
        except Exception:
            logger.exception("Notification dispatch failed (event=%s document_id=%s)", ev.name, ev.document_id)
