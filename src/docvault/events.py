"""NotificationDispatcher and event types for share notifications."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Kinds of access changes that notify the recipient."""

    SHARE_GRANTED = "shared"
    ACCESS_REVOKED = "revoked"


@dataclass(frozen=True, slots=True)
class ShareEvent:
    """Immutable record of a committed share or revocation.

    Attributes:
        event_type: The kind of change that occurred.
        document_id: The affected document.
        recipient: Principal or email the notification goes to.
        document_title: Title at the time of the change.
        acting_principal: The owner who shared or revoked.
        permission: Granted permission (shares only).
        expires_at: Grant expiry (shares only).
    """

    event_type: EventType
    document_id: str
    recipient: str
    document_title: str
    acting_principal: str
    permission: str | None = None
    expires_at: datetime | None = None


class NotificationDispatcher:
    """Delivers share events to registered handlers without blocking the caller.

    ``dispatch`` schedules delivery as a background task and returns
    immediately.  Handlers for one event run sequentially in registration
    order.  Exceptions are logged but never propagated; a failing handler
    loses a notification and never fails the share.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[Callable[..., Any]]] = {et: [] for et in EventType}
        self._pending: set[asyncio.Task[None]] = set()

    def register(self, event_type: EventType, handler: Callable[..., Any]) -> None:
        """Append *handler* to the list for *event_type*."""
        self._handlers[event_type].append(handler)

    def unregister(self, event_type: EventType, handler: Callable[..., Any]) -> bool:
        """Remove first occurrence of *handler*. Return True if found."""
        handlers = self._handlers[event_type]
        try:
            handlers.remove(handler)
            return True
        except ValueError:
            return False

    def dispatch(self, event: ShareEvent) -> None:
        """Schedule delivery of *event*; never waits for handlers."""
        if not self._handlers[event.event_type]:
            return
        task = asyncio.get_running_loop().create_task(self._deliver(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, event: ShareEvent) -> None:
        for handler in list(self._handlers[event.event_type]):
            try:
                await handler(event)
            except Exception:
                logger.warning(
                    "Handler %r failed for %s to %s on %s",
                    handler,
                    event.event_type.value,
                    event.recipient,
                    event.document_id,
                    exc_info=True,
                )

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    @property
    def pending_count(self) -> int:
        """Number of deliveries scheduled but not yet finished."""
        return len(self._pending)

    @property
    def handler_count(self) -> int:
        """Total number of registered handlers across all event types."""
        return sum(len(h) for h in self._handlers.values())

    def clear(self) -> None:
        """Remove all registered handlers."""
        for handlers in self._handlers.values():
            handlers.clear()
