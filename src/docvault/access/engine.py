"""AccessControlEngine — authorization and atomic mutation of documents, grants and offers.

The engine is the only writer of the access ledger and the share registry.
Every mutation runs in one transaction; writes for one document are
serialized by an in-process lock keyed on the document id, and a commit
conflict retries the whole operation once.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import weakref
from collections import defaultdict
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from docvault.events import EventType, ShareEvent
from docvault.storage import SupportsDirectUpload

from .documents import DocumentStore
from .exceptions import (
    AccessDeniedError,
    AuthenticationRequiredError,
    CapabilityNotSupportedError,
    CollaboratorUnavailableError,
    ConflictError,
    DocumentNotFoundError,
    InvalidRequestError,
    StorageError,
)
from .ledger import AccessLedger
from .permissions import Permission, parse_shareable
from .registry import ShareRegistry
from .types import AccessibleDocuments, ConsistencyReport
from .utils import (
    ensure_utc,
    is_expired,
    normalize_recipient,
    require_principal,
    validate_metadata,
    validate_patch,
)

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from docvault.events import NotificationDispatcher
    from docvault.models.documents import DocumentBase
    from docvault.models.grants import AccessGrantBase
    from docvault.models.offers import ShareOfferBase
    from docvault.storage import BlobStore, UploadHandle

    from .types import (
        DocumentInfo,
        DocumentMetadata,
        DocumentPatch,
        ShareInfo,
    )

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ATTEMPTS = 2
"""One try plus one retry on commit conflict."""

_CONFLICT_MARKERS = ("locked", "deadlock", "could not serialize", "serialization failure")


def _is_conflict(exc: SQLAlchemyError) -> bool:
    if isinstance(exc, IntegrityError):
        return True
    if isinstance(exc, OperationalError):
        text = str(exc).lower()
        return any(marker in text for marker in _CONFLICT_MARKERS)
    return False


class AccessControlEngine:
    """Composes DocumentStore, AccessLedger and ShareRegistry into vault operations.

    Holds a session factory, the blob store and an optional notification
    dispatcher.  The composed stores are stateless; sessions are created
    and committed here, one per operation.
    """

    def __init__(
        self,
        session_factory: Callable[..., AsyncSession],
        blob_store: BlobStore,
        *,
        dispatcher: NotificationDispatcher | None = None,
        document_model: type[DocumentBase] | None = None,
        grant_model: type[AccessGrantBase] | None = None,
        offer_model: type[ShareOfferBase] | None = None,
    ) -> None:
        from docvault.models import AccessGrant, Document, ShareOffer

        self._session_factory = session_factory
        self._blob_store = blob_store
        self._dispatcher = dispatcher

        self.documents = DocumentStore(document_model or Document)  # type: ignore[arg-type]
        self.ledger = AccessLedger(grant_model or AccessGrant)  # type: ignore[arg-type]
        self.registry = ShareRegistry(offer_model or ShareOffer)  # type: ignore[arg-type]

        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @property
    def blob_store(self) -> BlobStore:
        return self._blob_store

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def _transaction(self) -> AsyncGenerator[AsyncSession]:
        """Yield a session; commit on success, roll back on any error."""
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            if _is_conflict(exc):
                raise ConflictError("Concurrent modification; retry the operation") from exc
            raise StorageError("Backing store failure; retry the operation") from exc
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()

    def _lock_for(self, document_id: str | None) -> Any:
        if document_id is None:
            return contextlib.nullcontext()
        lock = self._locks.get(document_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[document_id] = lock
        return lock

    async def _atomic(
        self,
        operation: str,
        work: Callable[[AsyncSession], Awaitable[T]],
        *,
        document_id: str | None = None,
    ) -> T:
        """Run *work* in one transaction, retrying once on conflict."""
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                async with self._lock_for(document_id), self._transaction() as session:
                    return await work(session)
            except ConflictError:
                if attempt == MAX_ATTEMPTS:
                    logger.info("Conflict during %s on %s; giving up", operation, document_id)
                    raise
                logger.info("Conflict during %s on %s; retrying", operation, document_id)
        raise AssertionError("unreachable")

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    @staticmethod
    async def _blob(operation: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except Exception as exc:
            logger.warning("Blob store failed to %s", operation, exc_info=True)
            raise CollaboratorUnavailableError(f"Blob store failed to {operation}") from exc

    def _notify(self, event: ShareEvent) -> None:
        if self._dispatcher is not None:
            self._dispatcher.dispatch(event)

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    async def _require_owner(
        self,
        session: AsyncSession,
        document_id: str,
        principal: str,
        action: str,
    ) -> DocumentBase:
        """Return the document if *principal* holds its owner grant.

        Missing documents and non-owners get the same ``AccessDeniedError``.
        """
        doc = await self.documents.get(session, document_id)
        if doc is None:
            logger.info("Denied %s on %s for %r: no such document", action, document_id, principal)
            raise AccessDeniedError
        grant = await self.ledger.get(session, doc.id, principal)
        if grant is None or grant.permission != Permission.OWNER.value:
            logger.info("Denied %s on %s for %r: not the owner", action, document_id, principal)
            raise AccessDeniedError
        return doc

    async def _resolve(
        self,
        session: AsyncSession,
        document_id: str,
        principal: str,
    ) -> DocumentInfo:
        doc = await self.documents.get(session, document_id)
        if doc is None:
            logger.info("Denied read on %s for %r: no such document", document_id, principal)
            raise DocumentNotFoundError
        if doc.owner_id == principal:
            return self.documents.to_info(doc, Permission.OWNER.value)

        grant = await self.ledger.get(session, doc.id, principal)
        if grant is None:
            logger.info("Denied read on %s for %r: no grant", document_id, principal)
            raise AccessDeniedError
        if is_expired(grant.expires_at):
            logger.info("Denied read on %s for %r: grant expired", document_id, principal)
            raise AccessDeniedError
        return self.documents.to_info(doc, grant.permission)

    # ------------------------------------------------------------------
    # Create / upload
    # ------------------------------------------------------------------

    async def create(
        self,
        principal: str | None,
        metadata: DocumentMetadata,
        storage_ref: str,
    ) -> str:
        """Insert a document and its owner grant. Returns the document id."""
        owner = require_principal(principal)
        validate_metadata(metadata)
        if not storage_ref:
            raise InvalidRequestError("Missing required field: storage_ref")

        async def work(session: AsyncSession) -> str:
            doc = await self.documents.insert(session, owner, metadata, storage_ref)
            await self.ledger.grant_owner(session, doc.id, owner)
            return doc.id

        document_id = await self._atomic("create", work)
        logger.debug("Created document %s for %r", document_id, owner)
        return document_id

    async def begin_upload(self, principal: str | None) -> UploadHandle:
        """Ask the blob store for an upload destination."""
        require_principal(principal)
        return await self._blob("begin upload", self._blob_store.begin_upload())

    async def upload(
        self,
        principal: str | None,
        metadata: DocumentMetadata,
        content: bytes,
    ) -> str:
        """Store *content* and create the document for it.

        If the document cannot be created, the confirmed object is deleted
        before the error propagates.
        """
        owner = require_principal(principal)
        validate_metadata(metadata)
        store = self._blob_store
        if not isinstance(store, SupportsDirectUpload):
            raise CapabilityNotSupportedError("Blob store does not accept direct uploads")

        handle = await self._blob("begin upload", store.begin_upload())
        await self._blob("write upload", store.write_upload(handle, content))
        storage_ref = await self._blob("confirm upload", store.confirm_upload(handle))
        try:
            return await self.create(owner, metadata, storage_ref)
        except Exception:
            logger.warning("Create failed after upload; deleting object %s", storage_ref)
            try:
                await store.delete_object(storage_ref)
            except Exception:
                logger.warning("Could not delete orphaned object %s", storage_ref, exc_info=True)
            raise

    # ------------------------------------------------------------------
    # Share / revoke
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
        """Share *document_id* with *recipient*, replacing any earlier share."""
        sharer = require_principal(principal)
        perm = parse_shareable(permission)
        recipient = normalize_recipient(recipient)
        if expires_at is not None:
            expires_at = ensure_utc(expires_at)
            if is_expired(expires_at):
                raise InvalidRequestError("expires_at must be in the future")

        async def work(session: AsyncSession) -> tuple[ShareInfo, str]:
            doc = await self._require_owner(session, document_id, sharer, "share")
            if recipient == doc.owner_id:
                raise InvalidRequestError("Cannot share a document with its owner")
            offer = await self.registry.upsert(
                session, doc.id, sharer, recipient, perm, expires_at=expires_at
            )
            await self.ledger.upsert(
                session, doc.id, recipient, perm, offer_id=offer.id, expires_at=expires_at
            )
            return self.registry.to_info(offer), doc.title

        info, title = await self._atomic("share", work, document_id=document_id)
        logger.debug("Shared %s with %r as %s", document_id, recipient, perm.value)
        self._notify(
            ShareEvent(
                event_type=EventType.SHARE_GRANTED,
                document_id=document_id,
                recipient=recipient,
                document_title=title,
                acting_principal=sharer,
                permission=perm.value,
                expires_at=expires_at,
            )
        )
        return info

    async def revoke(self, principal: str | None, document_id: str, recipient: str) -> bool:
        """Remove the grant and offer for *recipient*. Returns True if anything was removed."""
        owner = require_principal(principal)
        recipient = normalize_recipient(recipient)

        async def work(session: AsyncSession) -> tuple[bool, bool, str]:
            doc = await self._require_owner(session, document_id, owner, "revoke")
            had_grant = await self.ledger.remove(session, doc.id, recipient)
            offer = await self.registry.remove(session, doc.id, recipient)
            return had_grant, offer is not None, doc.title

        had_grant, had_offer, title = await self._atomic(
            "revoke", work, document_id=document_id
        )
        if had_offer:
            logger.debug("Revoked %r on %s", recipient, document_id)
            self._notify(
                ShareEvent(
                    event_type=EventType.ACCESS_REVOKED,
                    document_id=document_id,
                    recipient=recipient,
                    document_title=title,
                    acting_principal=owner,
                )
            )
        return had_grant or had_offer

    # ------------------------------------------------------------------
    # Read paths
    # ------------------------------------------------------------------

    async def resolve(self, principal: str | None, document_id: str) -> DocumentInfo:
        """Return the document if *principal* may read it.

        This is the chokepoint every read, download and update path goes
        through.  Expired grants are treated as absent.
        """
        caller = require_principal(principal)
        async with self._transaction() as session:
            return await self._resolve(session, document_id, caller)

    async def resolve_retrieval_url(self, principal: str | None, document_id: str) -> str | None:
        """Return a retrieval URL, or None if the caller may not read the document."""
        try:
            info = await self.resolve(principal, document_id)
        except (AuthenticationRequiredError, AccessDeniedError):
            return None
        return await self._blob(
            "mint retrieval url", self._blob_store.mint_retrieval_url(info.storage_ref)
        )

    async def list_accessible(self, principal: str | None) -> AccessibleDocuments:
        """Documents the caller owns, and documents shared with the caller."""
        caller = require_principal(principal)
        async with self._transaction() as session:
            owned = await self.documents.list_owned_by(session, caller)
            grants = await self.ledger.list_for_principal(session, caller)
            permissions = {g.document_id: g.permission for g in grants}
            shared = await self.documents.get_many(session, permissions)
        return AccessibleDocuments(
            owned=[self.documents.to_info(d, Permission.OWNER.value) for d in owned],
            shared_with_me=[
                self.documents.to_info(d, permissions[d.id])
                for d in shared
                if d.owner_id != caller
            ],
        )

    async def list_shared_by_me(self, principal: str | None) -> list[DocumentInfo]:
        """Distinct documents referenced by the caller's outstanding offers."""
        caller = require_principal(principal)
        async with self._transaction() as session:
            offers = await self.registry.list_by_sharer(session, caller)
            docs = await self.documents.get_many(session, (o.document_id for o in offers))
        return [
            self.documents.to_info(d, Permission.OWNER.value)
            for d in docs
            if d.owner_id == caller
        ]

    async def list_shares(self, principal: str | None, document_id: str) -> list[ShareInfo]:
        """Outstanding offers on a document. Owner only."""
        owner = require_principal(principal)
        async with self._transaction() as session:
            doc = await self._require_owner(session, document_id, owner, "list shares")
            offers = await self.registry.list_for_document(session, doc.id)
        return [self.registry.to_info(o) for o in offers]

    # ------------------------------------------------------------------
    # Update / delete
    # ------------------------------------------------------------------

    async def update(
        self,
        principal: str | None,
        document_id: str,
        patch: DocumentPatch,
    ) -> DocumentInfo:
        """Patch the supplied metadata fields. Owner only; always bumps ``updated_at``."""
        owner = require_principal(principal)
        validate_patch(patch)

        async def work(session: AsyncSession) -> DocumentInfo:
            doc = await self._require_owner(session, document_id, owner, "update")
            await self.documents.patch(session, doc, patch.changes())
            return self.documents.to_info(doc, Permission.OWNER.value)

        return await self._atomic("update", work, document_id=document_id)

    async def delete(self, principal: str | None, document_id: str) -> None:
        """Delete the document, its grants, its offers and its blob. Owner only.

        Rows are removed first and the blob last, inside one transaction: a
        blob-store failure rolls back every row deletion.
        """
        owner = require_principal(principal)

        async def work(session: AsyncSession) -> tuple[int, int]:
            doc = await self._require_owner(session, document_id, owner, "delete")
            storage_ref = doc.storage_ref
            grants = await self.ledger.remove_all_for_document(session, doc.id)
            offers = await self.registry.remove_all_for_document(session, doc.id)
            await self.documents.remove(session, doc)
            await self._blob("delete object", self._blob_store.delete_object(storage_ref))
            return grants, offers

        grants, offers = await self._atomic("delete", work, document_id=document_id)
        logger.debug(
            "Deleted document %s with %d grant(s) and %d offer(s)", document_id, grants, offers
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def purge_expired(self, now: datetime | None = None) -> int:
        """Remove every expired grant together with its offer. Returns pairs removed.

        Each pair is re-read and removed under its document's lock, so a share
        that replaced the expired grant after the scan is left alone.
        """
        async with self._transaction() as session:
            expired = await self.ledger.list_expired(session, now=now)
            pairs = [(g.document_id, g.principal) for g in expired]

        removed = 0
        for document_id, principal in pairs:

            async def work(
                session: AsyncSession, document_id: str = document_id, principal: str = principal
            ) -> bool:
                grant = await self.ledger.get(session, document_id, principal)
                if grant is None or not is_expired(grant.expires_at, now):
                    return False
                await self.registry.remove(session, document_id, principal)
                return await self.ledger.remove(session, document_id, principal)

            if await self._atomic("purge expired", work, document_id=document_id):
                removed += 1
        if removed:
            logger.info("Purged %d expired grant(s)", removed)
        return removed

    async def check_consistency(self) -> ConsistencyReport:
        """Audit the ownership and grant/offer pairing invariants."""
        async with self._transaction() as session:
            docs = await self.documents.list_all(session)
            grants = await self.ledger.list_all(session)
            offers = await self.registry.list_all(session)

        report = ConsistencyReport(documents_checked=len(docs))
        by_id = {d.id: d for d in docs}
        owners: dict[str, list[str]] = defaultdict(list)
        grant_keys: set[tuple[str, str]] = set()
        for g in grants:
            if g.document_id not in by_id:
                report.problems.append(f"grant {g.document_id}/{g.principal}: no such document")
            if g.permission == Permission.OWNER.value:
                owners[g.document_id].append(g.principal)
            else:
                grant_keys.add((g.document_id, g.principal))

        for doc in docs:
            if owners.get(doc.id, []) != [doc.owner_id]:
                report.problems.append(
                    f"document {doc.id}: owner grants {owners.get(doc.id, [])!r}, "
                    f"expected [{doc.owner_id!r}]"
                )

        offer_keys: set[tuple[str, str]] = set()
        for o in offers:
            key = (o.document_id, o.recipient)
            offer_keys.add(key)
            doc = by_id.get(o.document_id)
            if doc is None:
                report.problems.append(f"offer {o.id}: no such document")
            elif o.sharer_id != doc.owner_id:
                report.problems.append(f"offer {o.id}: sharer {o.sharer_id!r} is not the owner")
            if key not in grant_keys:
                report.problems.append(f"offer {o.id}: no matching grant")

        for key in sorted(grant_keys - offer_keys):
            report.problems.append(f"grant {key[0]}/{key[1]}: no matching offer")
        return report
