"""VaultAsync — primary async class wiring the access engine and its collaborators."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from docvault.access.engine import AccessControlEngine
from docvault.config import VaultConfig
from docvault.events import NotificationDispatcher
from docvault.storage import LocalBlobStore

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncEngine

    from docvault.access.permissions import Permission
    from docvault.access.types import (
        AccessibleDocuments,
        ConsistencyReport,
        DocumentInfo,
        DocumentMetadata,
        DocumentPatch,
        ShareInfo,
    )
    from docvault.models.documents import DocumentBase
    from docvault.models.grants import AccessGrantBase
    from docvault.models.offers import ShareOfferBase
    from docvault.storage import BlobStore, UploadHandle

logger = logging.getLogger(__name__)


class VaultAsync:
    """Async facade over ``AccessControlEngine``.

    Owns the database engine, the session factory, the blob store and the
    notification dispatcher.  Every method takes the caller's principal
    first; the engine does all authorization.

    From configuration::

        vault = await VaultAsync.open(VaultConfig(database_url="sqlite+aiosqlite:///vault.db"))
        doc_id = await vault.upload("alice", DocumentMetadata(...), b"%PDF...")
        await vault.share("alice", doc_id, "bob@example.com", "view")
        await vault.close()

    Or around an existing engine and blob store::

        vault = VaultAsync(engine=engine, blob_store=store)
        await vault.create_tables()
    """

    def __init__(
        self,
        *,
        engine: AsyncEngine,
        blob_store: BlobStore,
        dispatcher: NotificationDispatcher | None = None,
        document_model: type[DocumentBase] | None = None,
        grant_model: type[AccessGrantBase] | None = None,
        offer_model: type[ShareOfferBase] | None = None,
        owns_engine: bool = False,
    ) -> None:
        self._engine = engine
        self._owns_engine = owns_engine
        self._closed = False
        self._closers: list[Callable[[], Awaitable[None]]] = []

        self._session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )
        self._dispatcher = dispatcher or NotificationDispatcher()
        self._access = AccessControlEngine(
            self._session_factory,
            blob_store,
            dispatcher=self._dispatcher,
            document_model=document_model,
            grant_model=grant_model,
            offer_model=offer_model,
        )

    # ------------------------------------------------------------------
    # Construction / lifecycle
    # ------------------------------------------------------------------

    @classmethod
    async def open(
        cls,
        config: VaultConfig | None = None,
        *,
        blob_store: BlobStore | None = None,
    ) -> VaultAsync:
        """Create engine, blob store and tables from *config* (default: environment)."""
        config = config or VaultConfig.from_env()

        url = make_url(config.database_url)
        if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

        engine = create_async_engine(config.database_url, echo=config.echo_sql)
        store = blob_store or LocalBlobStore(config.blob_dir, url_ttl=config.retrieval_url_ttl)
        vault = cls(engine=engine, blob_store=store, owns_engine=True)
        await vault.create_tables()

        if config.webhook_url:
            from docvault.integrations.webhook import WebhookNotifier

            notifier = WebhookNotifier(config.webhook_url, timeout=config.webhook_timeout)
            notifier.attach(vault.dispatcher)
            vault._closers.append(notifier.close)

        logger.debug("Opened vault on %s", url.render_as_string(hide_password=True))
        return vault

    async def create_tables(self) -> None:
        """Create the document, grant and offer tables if they do not exist."""
        models = (
            self._access.documents.model,
            self._access.ledger.model,
            self._access.registry.model,
        )
        async with self._engine.begin() as conn:
            for model in models:
                await conn.run_sync(
                    lambda c, m=model: m.__table__.create(c, checkfirst=True)  # type: ignore[attr-defined]
                )

    async def close(self) -> None:
        """Wait for pending notifications, then release resources."""
        if self._closed:
            return
        self._closed = True
        await self._dispatcher.drain()
        for closer in self._closers:
            try:
                await closer()
            except Exception:
                logger.warning("Closer %r failed", closer, exc_info=True)
        if self._owns_engine:
            await self._engine.dispose()

    async def __aenter__(self) -> VaultAsync:
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.close()

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    @property
    def access(self) -> AccessControlEngine:
        return self._access

    @property
    def blob_store(self) -> BlobStore:
        return self._access.blob_store

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def begin_upload(self, principal: str | None) -> UploadHandle:
        return await self._access.begin_upload(principal)

    async def create(
        self, principal: str | None, metadata: DocumentMetadata, storage_ref: str
    ) -> str:
        return await self._access.create(principal, metadata, storage_ref)

    async def upload(
        self, principal: str | None, metadata: DocumentMetadata, content: bytes
    ) -> str:
        return await self._access.upload(principal, metadata, content)

    async def resolve(self, principal: str | None, document_id: str) -> DocumentInfo:
        return await self._access.resolve(principal, document_id)

    async def resolve_retrieval_url(self, principal: str | None, document_id: str) -> str | None:
        return await self._access.resolve_retrieval_url(principal, document_id)

    async def update(
        self, principal: str | None, document_id: str, patch: DocumentPatch
    ) -> DocumentInfo:
        return await self._access.update(principal, document_id, patch)

    async def delete(self, principal: str | None, document_id: str) -> None:
        await self._access.delete(principal, document_id)

    async def list_accessible(self, principal: str | None) -> AccessibleDocuments:
        return await self._access.list_accessible(principal)

    async def list_shared_by_me(self, principal: str | None) -> list[DocumentInfo]:
        return await self._access.list_shared_by_me(principal)

    # ------------------------------------------------------------------
    # Sharing
    # ------------------------------------------------------------------

    async def share(
        self,
        principal: str | None,
        document_id: str,
        recipient: str,
        permission: str | Permission,
        *,
        expires_at: datetime | None = None,
    ) -> ShareInfo:
        return await self._access.share(
            principal, document_id, recipient, permission, expires_at=expires_at
        )

    async def revoke(self, principal: str | None, document_id: str, recipient: str) -> bool:
        return await self._access.revoke(principal, document_id, recipient)

    async def list_shares(self, principal: str | None, document_id: str) -> list[ShareInfo]:
        return await self._access.list_shares(principal, document_id)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def purge_expired(self, now: datetime | None = None) -> int:
        return await self._access.purge_expired(now)

    async def check_consistency(self) -> ConsistencyReport:
        return await self._access.check_consistency()
