"""Shared fixtures for docvault tests."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel, select

from docvault.access.engine import AccessControlEngine
from docvault.access.types import DocumentMetadata
from docvault.events import NotificationDispatcher
from docvault.storage import BlobNotFoundError, UploadHandle

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine


class MemoryBlobStore:
    """In-memory blob store. Operations named in ``fail_on`` raise ``ConnectionError``."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.staged: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_on: set[str] = set()

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise ConnectionError(f"{operation} unavailable")

    def put(self, content: bytes = b"data") -> str:
        """Store *content* directly and return its storage reference."""
        ref = uuid.uuid4().hex
        self.objects[ref] = content
        return ref

    async def begin_upload(self) -> UploadHandle:
        self._check("begin_upload")
        upload_id = uuid.uuid4().hex
        self.staged[upload_id] = b""
        return UploadHandle(upload_id=upload_id, destination=f"memory://staging/{upload_id}")

    async def write_upload(self, handle: UploadHandle, content: bytes) -> None:
        self._check("write_upload")
        self.staged[handle.upload_id] = content

    async def confirm_upload(self, handle: UploadHandle) -> str:
        self._check("confirm_upload")
        if handle.upload_id not in self.staged:
            raise BlobNotFoundError(handle.upload_id)
        ref = uuid.uuid4().hex
        self.objects[ref] = self.staged.pop(handle.upload_id)
        return ref

    async def mint_retrieval_url(self, storage_ref: str) -> str:
        self._check("mint_retrieval_url")
        if storage_ref not in self.objects:
            raise BlobNotFoundError(storage_ref)
        return f"memory://objects/{storage_ref}?expires=3600"

    async def delete_object(self, storage_ref: str) -> None:
        self._check("delete_object")
        self.objects.pop(storage_ref, None)
        self.deleted.append(storage_ref)


def make_metadata(**overrides: object) -> DocumentMetadata:
    fields: dict[str, object] = {
        "title": "Invoice",
        "file_name": "inv.pdf",
        "file_size": 1024,
        "file_type": "application/pdf",
    }
    fields.update(overrides)
    return DocumentMetadata(**fields)  # type: ignore[arg-type]


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Async in-memory SQLite engine with all tables created."""
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
async def async_session(async_engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    """Async SQLModel session, rolled back after each test."""
    factory = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with factory() as session:
        yield session


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def blob_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher()


@pytest.fixture
def access(
    session_factory: async_sessionmaker[AsyncSession],
    blob_store: MemoryBlobStore,
    dispatcher: NotificationDispatcher,
) -> AccessControlEngine:
    return AccessControlEngine(session_factory, blob_store, dispatcher=dispatcher)


@pytest.fixture
def count_rows(session_factory: async_sessionmaker[AsyncSession]):
    """Return an async helper counting rows of a model matching equality filters."""

    async def _count(model: type[SQLModel], **where: object) -> int:
        async with session_factory() as session:
            query = select(model)
            for name, value in where.items():
                query = query.where(getattr(model, name) == value)
            result = await session.execute(query)
            return len(result.scalars().all())

    return _count


@pytest.fixture
def make_meta():
    """Return the ``DocumentMetadata`` factory (keyword overrides)."""
    return make_metadata


@pytest.fixture
def new_document(access: AccessControlEngine, blob_store: MemoryBlobStore):
    """Return an async helper that creates a document owned by *owner*."""

    async def _new(owner: str = "u1", **overrides: object) -> str:
        return await access.create(owner, make_metadata(**overrides), blob_store.put())

    return _new
