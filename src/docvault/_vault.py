"""Main Vault class — synchronous wrappers over VaultAsync."""

from __future__ import annotations

import asyncio
import threading
from typing import TYPE_CHECKING, Any

from docvault._vault_async import VaultAsync

if TYPE_CHECKING:
    from datetime import datetime

    from docvault.access.permissions import Permission
    from docvault.access.types import (
        AccessibleDocuments,
        ConsistencyReport,
        DocumentInfo,
        DocumentMetadata,
        DocumentPatch,
        ShareInfo,
    )
    from docvault.config import VaultConfig
    from docvault.events import NotificationDispatcher
    from docvault.storage import BlobStore, UploadHandle


class Vault:
    """Synchronous vault backed by a private event loop in a background thread.

    Notifications are delivered on the private loop, so they never block
    the calling thread.

    Usage::

        with Vault(VaultConfig.from_env()) as vault:
            doc_id = vault.upload("alice", metadata, data)
            vault.share("alice", doc_id, "bob@example.com", "view")
            url = vault.resolve_retrieval_url("bob@example.com", doc_id)
    """

    def __init__(
        self,
        config: VaultConfig | None = None,
        *,
        blob_store: BlobStore | None = None,
    ) -> None:
        self._closed = False

        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, daemon=True)
        self._thread.start()

        try:
            self._async: VaultAsync = self._run(VaultAsync.open(config, blob_store=blob_store))
        except BaseException:
            self._stop_loop()
            raise

    def _run(self, coro: Any) -> Any:
        """Submit *coro* to the private loop and block for the result."""
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    def _stop_loop(self) -> None:
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Drain notifications, close the async vault, stop the loop and join the thread."""
        if self._closed:
            return
        self._closed = True
        try:
            self._run(self._async.close())
        finally:
            self._stop_loop()

    def __enter__(self) -> Vault:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._async.dispatcher

    def drain_notifications(self) -> None:
        """Block until every scheduled notification has been delivered or has failed."""
        self._run(self._async.dispatcher.drain())

    # ------------------------------------------------------------------
    # Wrappers (sync)
    # ------------------------------------------------------------------

    def begin_upload(self, principal: str | None) -> UploadHandle:
        return self._run(self._async.begin_upload(principal))

    def create(self, principal: str | None, metadata: DocumentMetadata, storage_ref: str) -> str:
        return self._run(self._async.create(principal, metadata, storage_ref))

    def upload(self, principal: str | None, metadata: DocumentMetadata, content: bytes) -> str:
        return self._run(self._async.upload(principal, metadata, content))

    def resolve(self, principal: str | None, document_id: str) -> DocumentInfo:
        return self._run(self._async.resolve(principal, document_id))

    def resolve_retrieval_url(self, principal: str | None, document_id: str) -> str | None:
        return self._run(self._async.resolve_retrieval_url(principal, document_id))

    def update(self, principal: str | None, document_id: str, patch: DocumentPatch) -> DocumentInfo:
        return self._run(self._async.update(principal, document_id, patch))

    def delete(self, principal: str | None, document_id: str) -> None:
        self._run(self._async.delete(principal, document_id))

    def list_accessible(self, principal: str | None) -> AccessibleDocuments:
        return self._run(self._async.list_accessible(principal))

    def list_shared_by_me(self, principal: str | None) -> list[DocumentInfo]:
        return self._run(self._async.list_shared_by_me(principal))

    def share(
        self,
        principal: str | None,
        document_id: str,
        recipient: str,
        permission: str | Permission,
        *,
        expires_at: datetime | None = None,
    ) -> ShareInfo:
        return self._run(
            self._async.share(principal, document_id, recipient, permission, expires_at=expires_at)
        )

    def revoke(self, principal: str | None, document_id: str, recipient: str) -> bool:
        return self._run(self._async.revoke(principal, document_id, recipient))

    def list_shares(self, principal: str | None, document_id: str) -> list[ShareInfo]:
        return self._run(self._async.list_shares(principal, document_id))

    def purge_expired(self, now: datetime | None = None) -> int:
        return self._run(self._async.purge_expired(now))

    def check_consistency(self) -> ConsistencyReport:
        return self._run(self._async.check_consistency())
