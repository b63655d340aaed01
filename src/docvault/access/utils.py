"""Timestamp and validation helpers."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from .exceptions import AuthenticationRequiredError, InvalidRequestError

if TYPE_CHECKING:
    from .types import DocumentMetadata, DocumentPatch

_TICK = timedelta(microseconds=1)


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def is_expired(expires_at: datetime | None, now: datetime | None = None) -> bool:
    """True if *expires_at* is set and not in the future."""
    if expires_at is None:
        return False
    return ensure_utc(expires_at) <= (now or utc_now())


def next_timestamp(previous: datetime | None) -> datetime:
    """Return now, or one tick after *previous* if the clock has not moved past it."""
    now = utc_now()
    if previous is None:
        return now
    previous = ensure_utc(previous)
    return now if now > previous else previous + _TICK


def require_principal(principal: str | None) -> str:
    """Raise if *principal* is missing or blank."""
    if principal is None or not principal.strip():
        raise AuthenticationRequiredError("An authenticated principal is required")
    return principal


def normalize_recipient(recipient: str | None) -> str:
    """Strip surrounding whitespace; raise if nothing is left."""
    recipient = (recipient or "").strip()
    if not recipient:
        raise InvalidRequestError("Missing required field: recipient")
    return recipient


def validate_metadata(metadata: DocumentMetadata) -> None:
    """Raise ``InvalidRequestError`` if a required field is missing or invalid."""
    for name in ("title", "file_name", "file_type"):
        value = getattr(metadata, name)
        if not value or not value.strip():
            raise InvalidRequestError(f"Missing required field: {name}")
    if metadata.file_size < 0:
        raise InvalidRequestError("file_size must be non-negative")


def validate_patch(patch: DocumentPatch) -> None:
    if patch.title is not None and not patch.title.strip():
        raise InvalidRequestError("title cannot be blank")
