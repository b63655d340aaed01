"""BlobStore protocol and LocalBlobStore — the external file storage boundary.

The access engine never reads file bytes.  It asks the blob store for an
upload destination, confirms uploads into opaque storage references,
mints time-limited retrieval URLs, and deletes objects.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import urlencode

logger = logging.getLogger(__name__)

DEFAULT_URL_TTL = timedelta(hours=1)


class BlobNotFoundError(LookupError):
    """Raised when a storage reference or upload handle does not resolve to bytes."""


@dataclass
class UploadHandle:
    """One-time destination for uploaded bytes."""

    upload_id: str
    destination: str
    """Opaque location the caller pushes bytes to (a file path for ``LocalBlobStore``)."""


@runtime_checkable
class BlobStore(Protocol):
    """Interface every blob store must implement.

    Implementations may block on I/O and may raise; the engine treats
    any exception as the collaborator being unavailable.
    """

    async def begin_upload(self) -> UploadHandle:
        """Return a one-time destination the caller can push bytes to."""
        ...

    async def confirm_upload(self, handle: UploadHandle) -> str:
        """Return a storage reference once the bytes are durably stored."""
        ...

    async def mint_retrieval_url(self, storage_ref: str) -> str:
        """Return a time-bounded URL for *storage_ref*."""
        ...

    async def delete_object(self, storage_ref: str) -> None:
        """Delete *storage_ref*. Deleting a missing object is not an error."""
        ...


@runtime_checkable
class SupportsDirectUpload(Protocol):
    """Opt-in capability: the store accepts bytes for an upload handle itself."""

    async def write_upload(self, handle: UploadHandle, content: bytes) -> None: ...


class LocalBlobStore:
    """Blob store on the local disk.

    Layout under *root*::

        _staging/{upload_id}   bytes pushed by the caller
        objects/{storage_ref}  confirmed objects

    Retrieval URLs are ``file://`` URLs with an ``expires`` query parameter
    (Unix seconds).  All disk access runs in ``asyncio.to_thread``.
    """

    def __init__(self, root: Path | str, url_ttl: timedelta = DEFAULT_URL_TTL) -> None:
        self.root = Path(root).resolve()
        self.url_ttl = url_ttl
        self._staging = self.root / "_staging"
        self._objects = self.root / "objects"
        self._staging.mkdir(parents=True, exist_ok=True)
        self._objects.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Path helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_key(key: str) -> str:
        if not key or "/" in key or "\\" in key or "\0" in key or key in (".", ".."):
            raise BlobNotFoundError(f"Invalid storage key: {key!r}")
        return key

    def _object_path(self, storage_ref: str) -> Path:
        return self._objects / self._check_key(storage_ref)

    def _staging_path(self, upload_id: str) -> Path:
        return self._staging / self._check_key(upload_id)

    # ------------------------------------------------------------------
    # BlobStore protocol
    # ------------------------------------------------------------------

    async def begin_upload(self) -> UploadHandle:
        upload_id = uuid.uuid4().hex
        return UploadHandle(upload_id=upload_id, destination=str(self._staging_path(upload_id)))

    async def confirm_upload(self, handle: UploadHandle) -> str:
        staged = self._staging_path(handle.upload_id)
        storage_ref = uuid.uuid4().hex
        target = self._object_path(storage_ref)

        def _commit() -> None:
            if not staged.is_file():
                raise BlobNotFoundError(f"Nothing uploaded for {handle.upload_id}")
            with staged.open("rb") as fh:
                os.fsync(fh.fileno())
            shutil.move(str(staged), str(target))

        await asyncio.to_thread(_commit)
        logger.debug("Confirmed upload %s as %s", handle.upload_id, storage_ref)
        return storage_ref

    async def mint_retrieval_url(self, storage_ref: str) -> str:
        path = self._object_path(storage_ref)
        if not await asyncio.to_thread(path.is_file):
            raise BlobNotFoundError(f"No object for {storage_ref}")
        expires = int((datetime.now(UTC) + self.url_ttl).timestamp())
        return f"{path.as_uri()}?{urlencode({'expires': expires})}"

    async def delete_object(self, storage_ref: str) -> None:
        path = self._object_path(storage_ref)
        await asyncio.to_thread(path.unlink, missing_ok=True)
        logger.debug("Deleted object %s", storage_ref)

    # ------------------------------------------------------------------
    # Convenience
    # ------------------------------------------------------------------

    async def write_upload(self, handle: UploadHandle, content: bytes) -> None:
        """Push *content* to the staging destination of *handle*."""
        await asyncio.to_thread(self._staging_path(handle.upload_id).write_bytes, content)

    async def read_object(self, storage_ref: str) -> bytes:
        path = self._object_path(storage_ref)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as exc:
            raise BlobNotFoundError(f"No object for {storage_ref}") from exc
