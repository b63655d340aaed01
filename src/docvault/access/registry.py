"""ShareRegistry — share offer CRUD.

Stateless service that receives the offer model at construction
and a session at call time, following the DocumentStore pattern.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import delete
from sqlmodel import select

from .types import ShareInfo
from .utils import ensure_utc, utc_now

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from docvault.models.offers import ShareOfferBase

    from .permissions import Permission


class ShareRegistry:
    """Records who shared which document with whom.

    Constructor receives the concrete offer model so callers can use
    custom SQLModel subclasses with different table names.
    """

    def __init__(self, offer_model: type[ShareOfferBase]) -> None:
        self._offer_model = offer_model

    @property
    def model(self) -> type[ShareOfferBase]:
        return self._offer_model

    async def get(
        self,
        session: AsyncSession,
        document_id: str,
        recipient: str,
    ) -> ShareOfferBase | None:
        """Get the outstanding offer for the pair."""
        model = self._offer_model
        result = await session.execute(
            select(model).where(
                model.document_id == document_id,
                model.recipient == recipient,
            )
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        session: AsyncSession,
        document_id: str,
        sharer_id: str,
        recipient: str,
        permission: Permission,
        *,
        expires_at: datetime | None = None,
    ) -> ShareOfferBase:
        """Create the offer for the pair, or replace the existing one in place.

        Flushes but does not commit.
        """
        offer = await self.get(session, document_id, recipient)
        if offer is None:
            offer = self._offer_model(document_id=document_id, recipient=recipient)
        offer.sharer_id = sharer_id
        offer.permission = permission.value
        offer.expires_at = expires_at
        offer.created_at = utc_now()
        session.add(offer)
        await session.flush()
        return offer

    async def remove(
        self,
        session: AsyncSession,
        document_id: str,
        recipient: str,
    ) -> ShareOfferBase | None:
        """Remove the offer for the pair. Returns the removed record, if any."""
        offer = await self.get(session, document_id, recipient)
        if offer is None:
            return None
        await session.delete(offer)
        await session.flush()
        return offer

    async def remove_all_for_document(self, session: AsyncSession, document_id: str) -> int:
        model = self._offer_model
        result = await session.execute(
            delete(model).where(model.document_id == document_id)  # type: ignore[arg-type]
        )
        await session.flush()
        return result.rowcount or 0

    async def list_for_document(
        self,
        session: AsyncSession,
        document_id: str,
    ) -> list[ShareOfferBase]:
        """List all offers on a document."""
        model = self._offer_model
        result = await session.execute(select(model).where(model.document_id == document_id))
        return list(result.scalars().all())

    async def list_by_sharer(
        self,
        session: AsyncSession,
        sharer_id: str,
    ) -> list[ShareOfferBase]:
        """List all offers made by *sharer_id*."""
        model = self._offer_model
        result = await session.execute(select(model).where(model.sharer_id == sharer_id))
        return list(result.scalars().all())

    async def list_all(self, session: AsyncSession) -> list[ShareOfferBase]:
        result = await session.execute(select(self._offer_model))
        return list(result.scalars().all())

    @staticmethod
    def to_info(offer: ShareOfferBase) -> ShareInfo:
        return ShareInfo(
            document_id=offer.document_id,
            recipient=offer.recipient,
            permission=offer.permission,
            sharer_id=offer.sharer_id,
            created_at=ensure_utc(offer.created_at),
            expires_at=ensure_utc(offer.expires_at) if offer.expires_at is not None else None,
        )
