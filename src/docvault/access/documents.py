"""DocumentStore — document record lookup, insert, patch, and info conversion."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlmodel import select

from .types import DocumentInfo
from .utils import ensure_utc, next_timestamp

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from docvault.models.documents import DocumentBase

    from .types import DocumentMetadata


class DocumentStore:
    """Stateless helpers for document records.

    Receives the concrete document model at construction so callers can
    use custom SQLModel subclasses.  Methods flush but never commit.
    """

    def __init__(self, document_model: type[DocumentBase]) -> None:
        self._document_model = document_model

    @property
    def model(self) -> type[DocumentBase]:
        return self._document_model

    async def get(self, session: AsyncSession, document_id: str) -> DocumentBase | None:
        """Get a document record by id."""
        return await session.get(self._document_model, document_id)

    async def get_many(
        self,
        session: AsyncSession,
        document_ids: Iterable[str],
    ) -> list[DocumentBase]:
        """Get the existing records among *document_ids*, silently skipping missing ones."""
        ids = list(dict.fromkeys(document_ids))
        if not ids:
            return []
        model = self._document_model
        result = await session.execute(
            select(model).where(model.id.in_(ids))  # type: ignore[union-attr]
        )
        return list(result.scalars().all())

    async def list_all(self, session: AsyncSession) -> list[DocumentBase]:
        result = await session.execute(select(self._document_model))
        return list(result.scalars().all())

    async def list_owned_by(self, session: AsyncSession, owner_id: str) -> list[DocumentBase]:
        model = self._document_model
        result = await session.execute(select(model).where(model.owner_id == owner_id))
        return list(result.scalars().all())

    async def insert(
        self,
        session: AsyncSession,
        owner_id: str,
        metadata: DocumentMetadata,
        storage_ref: str,
    ) -> DocumentBase:
        """Insert a document record. Flushes but does not commit."""
        now = next_timestamp(None)
        document = self._document_model(
            owner_id=owner_id,
            title=metadata.title,
            description=metadata.description,
            file_name=metadata.file_name,
            file_size=metadata.file_size,
            file_type=metadata.file_type,
            category=metadata.category,
            tags=list(metadata.tags) if metadata.tags is not None else None,
            storage_ref=storage_ref,
            is_public=metadata.is_public,
            created_at=now,
            updated_at=now,
        )
        session.add(document)
        await session.flush()
        return document

    async def patch(
        self,
        session: AsyncSession,
        document: DocumentBase,
        changes: dict[str, object],
    ) -> DocumentBase:
        """Apply *changes* and bump ``updated_at``, even when *changes* is empty."""
        for name, value in changes.items():
            if name == "tags" and value is not None:
                value = list(value)  # type: ignore[call-overload]
            setattr(document, name, value)
        document.updated_at = next_timestamp(document.updated_at)
        session.add(document)
        await session.flush()
        return document

    async def remove(self, session: AsyncSession, document: DocumentBase) -> None:
        await session.delete(document)
        await session.flush()

    @staticmethod
    def to_info(doc: DocumentBase, permission: str | None = None) -> DocumentInfo:
        """Convert a document record to DocumentInfo."""
        return DocumentInfo(
            id=doc.id,
            owner_id=doc.owner_id,
            title=doc.title,
            file_name=doc.file_name,
            file_size=doc.file_size,
            file_type=doc.file_type,
            storage_ref=doc.storage_ref,
            is_public=doc.is_public,
            description=doc.description,
            category=doc.category,
            tags=list(doc.tags or []),
            created_at=ensure_utc(doc.created_at),
            updated_at=ensure_utc(doc.updated_at),
            permission=permission,
        )
