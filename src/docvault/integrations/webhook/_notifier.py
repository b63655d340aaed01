"""WebhookNotifier — posts share notifications as JSON email messages."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import aiohttp

from docvault.events import EventType

if TYPE_CHECKING:
    from docvault.events import NotificationDispatcher, ShareEvent

logger = logging.getLogger(__name__)

_PERMISSION_LABELS = {"view": "View only", "edit": "Can edit"}


def build_message(event: ShareEvent, app_url: str | None = None) -> dict[str, Any]:
    """Render *event* as an email payload with ``to``, ``subject`` and ``text``."""
    if event.event_type is EventType.SHARE_GRANTED:
        subject = f"Document Shared: {event.document_title}"
        lines = [
            f"{event.acting_principal} shared a document with you.",
            "",
            f"Document: {event.document_title}",
            f"Permission: {_PERMISSION_LABELS.get(event.permission or '', event.permission)}",
        ]
        if event.expires_at is not None:
            lines.append(f"Expires: {event.expires_at.date().isoformat()}")
        lines += ["", "Sign in and open \"Shared with Me\" to access it."]
    else:
        subject = f"Document Access Revoked: {event.document_title}"
        lines = [
            f"{event.acting_principal} revoked your access to a document.",
            "",
            f"Document: {event.document_title}",
        ]
    if app_url:
        lines += ["", app_url]
    return {
        "to": event.recipient,
        "subject": subject,
        "text": "\n".join(lines),
        "kind": event.event_type.value,
        "document_id": event.document_id,
    }


class WebhookNotifier:
    """Notification handler that POSTs each event to a webhook URL.

    Register it on a ``NotificationDispatcher`` with :meth:`attach`.
    Delivery errors propagate to the dispatcher, which logs them.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        app_url: str | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.url = url
        self.app_url = app_url
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    def attach(self, dispatcher: NotificationDispatcher) -> None:
        for event_type in EventType:
            dispatcher.register(event_type, self)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def __call__(self, event: ShareEvent) -> None:
        payload = build_message(event, self.app_url)
        session = await self._get_session()
        async with session.post(self.url, json=payload) as response:
            response.raise_for_status()
        logger.debug("Delivered %s notification to %s", event.event_type.value, event.recipient)

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
