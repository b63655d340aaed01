"""AccessGrant model — the effective permission a principal holds on a document.

At most one row exists per ``(document_id, principal)``; the pair is the
primary key.  Provides ``AccessGrantBase`` (non-table) and ``AccessGrant``
(concrete table).
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


class AccessGrantBase(SQLModel):
    """Base fields for a ledger row. Subclass with ``table=True`` for a concrete table."""

    document_id: str = Field(primary_key=True)
    principal: str = Field(primary_key=True, index=True)
    permission: str = Field(default="view")
    offer_id: str | None = Field(default=None)
    granted_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    expires_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class AccessGrant(AccessGrantBase, table=True):
    """Default access ledger table — ``vault_access_grants``."""

    __tablename__ = "vault_access_grants"
