"""Tests for the webhook notifier — message rendering and delivery."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import aiohttp
import pytest

from docvault.events import EventType, NotificationDispatcher, ShareEvent
from docvault.integrations.webhook import WebhookNotifier, build_message

# =========================================================================
# Helpers
# =========================================================================


class FakeResponse:
    def __init__(self, status: int) -> None:
        self.status = status

    async def __aenter__(self) -> FakeResponse:
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None

    def raise_for_status(self) -> None:
        if self.status >= 400:
            raise aiohttp.ClientError(f"HTTP {self.status}")


class FakeSession:
    """Records posted payloads instead of sending them."""

    def __init__(self, status: int = 200) -> None:
        self.status = status
        self.posted: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    def post(self, url: str, *, json: dict[str, Any]) -> FakeResponse:
        self.posted.append((url, json))
        return FakeResponse(self.status)

    async def close(self) -> None:
        self.closed = True


def _shared(**overrides: object) -> ShareEvent:
    fields: dict[str, object] = {
        "event_type": EventType.SHARE_GRANTED,
        "document_id": "doc-1",
        "recipient": "bob@example.com",
        "document_title": "Lease",
        "acting_principal": "alice@example.com",
        "permission": "view",
    }
    fields.update(overrides)
    return ShareEvent(**fields)  # type: ignore[arg-type]


# =========================================================================
# build_message
# =========================================================================


class TestBuildMessage:
    def test_share_message(self):
        message = build_message(_shared())
        assert message["to"] == "bob@example.com"
        assert message["subject"] == "Document Shared: Lease"
        assert message["kind"] == "shared"
        assert message["document_id"] == "doc-1"
        assert "alice@example.com shared a document with you." in message["text"]
        assert "Permission: View only" in message["text"]

    def test_share_with_expiry(self):
        expires = datetime(2030, 1, 31, tzinfo=UTC)
        message = build_message(_shared(permission="edit", expires_at=expires))
        assert "Permission: Can edit" in message["text"]
        assert "Expires: 2030-01-31" in message["text"]

    def test_revoke_message(self):
        event = _shared(event_type=EventType.ACCESS_REVOKED, permission=None)
        message = build_message(event)
        assert message["subject"] == "Document Access Revoked: Lease"
        assert message["kind"] == "revoked"
        assert "revoked your access" in message["text"]

    def test_app_url_appended(self):
        message = build_message(_shared(), app_url="https://vault.example")
        assert message["text"].endswith("https://vault.example")


# =========================================================================
# WebhookNotifier
# =========================================================================


class TestWebhookNotifier:
    async def test_posts_message(self):
        session = FakeSession()
        notifier = WebhookNotifier("https://hooks.example/mail", session=session)  # type: ignore[arg-type]
        await notifier(_shared())

        assert len(session.posted) == 1
        url, payload = session.posted[0]
        assert url == "https://hooks.example/mail"
        assert payload["to"] == "bob@example.com"

    async def test_http_error_propagates(self):
        notifier = WebhookNotifier("https://hooks.example/mail", session=FakeSession(500))  # type: ignore[arg-type]
        with pytest.raises(aiohttp.ClientError):
            await notifier(_shared())

    async def test_attach_registers_all_events(self):
        dispatcher = NotificationDispatcher()
        notifier = WebhookNotifier("https://hooks.example/mail", session=FakeSession())  # type: ignore[arg-type]
        notifier.attach(dispatcher)
        assert dispatcher.handler_count == len(EventType)

    async def test_failed_delivery_logged_by_dispatcher(
        self, caplog: pytest.LogCaptureFixture
    ):
        dispatcher = NotificationDispatcher()
        notifier = WebhookNotifier("https://hooks.example/mail", session=FakeSession(503))  # type: ignore[arg-type]
        notifier.attach(dispatcher)

        with caplog.at_level(logging.WARNING, logger="docvault.events"):
            dispatcher.dispatch(_shared())
            await dispatcher.drain()
        assert "failed" in caplog.text

    async def test_close_leaves_borrowed_session_open(self):
        session = FakeSession()
        notifier = WebhookNotifier("https://hooks.example/mail", session=session)  # type: ignore[arg-type]
        await notifier.close()
        assert session.closed is False
