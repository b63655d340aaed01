"""AccessLedger — the effective grant per (document, principal).

Stateless service that receives the grant model at construction
and a session at call time.  Only ``AccessControlEngine`` writes through it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import delete
from sqlmodel import select

from .permissions import Permission
from .utils import is_expired, utc_now

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from docvault.models.grants import AccessGrantBase


class AccessLedger:
    """Reads and writes access grants keyed by ``(document_id, principal)``."""

    def __init__(self, grant_model: type[AccessGrantBase]) -> None:
        self._grant_model = grant_model

    @property
    def model(self) -> type[AccessGrantBase]:
        return self._grant_model

    async def get(
        self,
        session: AsyncSession,
        document_id: str,
        principal: str,
    ) -> AccessGrantBase | None:
        """Primary-key lookup of the grant for the pair, expired or not."""
        return await session.get(self._grant_model, (document_id, principal))

    async def get_active(
        self,
        session: AsyncSession,
        document_id: str,
        principal: str,
        *,
        now: datetime | None = None,
    ) -> AccessGrantBase | None:
        """Return the grant for the pair, or None if absent or expired."""
        grant = await self.get(session, document_id, principal)
        if grant is None or is_expired(grant.expires_at, now):
            return None
        return grant

    async def grant_owner(
        self,
        session: AsyncSession,
        document_id: str,
        owner_id: str,
    ) -> AccessGrantBase:
        """Insert the owner row for a new document. Flushes but does not commit."""
        grant = self._grant_model(
            document_id=document_id,
            principal=owner_id,
            permission=Permission.OWNER.value,
            granted_at=utc_now(),
        )
        session.add(grant)
        await session.flush()
        return grant

    async def upsert(
        self,
        session: AsyncSession,
        document_id: str,
        principal: str,
        permission: Permission,
        *,
        offer_id: str | None = None,
        expires_at: datetime | None = None,
    ) -> AccessGrantBase:
        """Insert or replace the non-owner grant for the pair."""
        if permission is Permission.OWNER:
            raise ValueError("Owner grants are only created with the document")
        grant = await self.get(session, document_id, principal)
        if grant is None:
            grant = self._grant_model(document_id=document_id, principal=principal)
        grant.permission = permission.value
        grant.offer_id = offer_id
        grant.expires_at = expires_at
        grant.granted_at = utc_now()
        session.add(grant)
        await session.flush()
        return grant

    async def remove(
        self,
        session: AsyncSession,
        document_id: str,
        principal: str,
    ) -> bool:
        """Remove the non-owner grant for the pair. Returns True if found."""
        grant = await self.get(session, document_id, principal)
        if grant is None or grant.permission == Permission.OWNER.value:
            return False
        await session.delete(grant)
        await session.flush()
        return True

    async def remove_all_for_document(self, session: AsyncSession, document_id: str) -> int:
        """Delete every grant on *document_id*, owner row included."""
        model = self._grant_model
        result = await session.execute(
            delete(model).where(model.document_id == document_id)  # type: ignore[arg-type]
        )
        await session.flush()
        return result.rowcount or 0

    async def list_for_principal(
        self,
        session: AsyncSession,
        principal: str,
        *,
        include_owner: bool = False,
        now: datetime | None = None,
    ) -> list[AccessGrantBase]:
        """List unexpired grants held by *principal*."""
        model = self._grant_model
        query = select(model).where(model.principal == principal)
        if not include_owner:
            query = query.where(model.permission != Permission.OWNER.value)
        result = await session.execute(query)
        return [g for g in result.scalars().all() if not is_expired(g.expires_at, now)]

    async def list_for_document(
        self,
        session: AsyncSession,
        document_id: str,
    ) -> list[AccessGrantBase]:
        model = self._grant_model
        result = await session.execute(select(model).where(model.document_id == document_id))
        return list(result.scalars().all())

    async def list_expired(
        self,
        session: AsyncSession,
        *,
        now: datetime | None = None,
    ) -> list[AccessGrantBase]:
        """List non-owner grants whose expiry has passed."""
        model = self._grant_model
        result = await session.execute(
            select(model).where(
                model.expires_at.is_not(None),  # type: ignore[union-attr]
                model.permission != Permission.OWNER.value,
            )
        )
        return [g for g in result.scalars().all() if is_expired(g.expires_at, now)]

    async def list_all(self, session: AsyncSession) -> list[AccessGrantBase]:
        result = await session.execute(select(self._grant_model))
        return list(result.scalars().all())
