"""ShareOffer model — the administrative record of a share.

Provides ``ShareOfferBase`` (non-table) and ``ShareOffer`` (concrete table).
One outstanding offer exists per ``(document_id, recipient)``.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel


class ShareOfferBase(SQLModel):
    """Base fields for a share offer. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    document_id: str = Field(index=True)
    sharer_id: str = Field(index=True)
    recipient: str = Field(index=True)
    permission: str = Field(default="view")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    expires_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class ShareOffer(ShareOfferBase, table=True):
    """Default share registry table — ``vault_share_offers``."""

    __tablename__ = "vault_share_offers"
    __table_args__ = (
        UniqueConstraint("document_id", "recipient", name="uq_vault_share_offer_recipient"),
    )
