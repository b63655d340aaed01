"""Tests for DocumentStore, AccessLedger and ShareRegistry — session-level CRUD."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

from docvault.access.documents import DocumentStore
from docvault.access.ledger import AccessLedger
from docvault.access.permissions import Permission
from docvault.access.registry import ShareRegistry
from docvault.models import AccessGrant, Document, ShareOffer

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


@pytest.fixture
def documents() -> DocumentStore:
    return DocumentStore(Document)


@pytest.fixture
def ledger() -> AccessLedger:
    return AccessLedger(AccessGrant)


@pytest.fixture
def registry() -> ShareRegistry:
    return ShareRegistry(ShareOffer)


# ---------------------------------------------------------------------------
# DocumentStore
# ---------------------------------------------------------------------------


class TestDocumentStore:
    async def test_insert_and_get(
        self, documents: DocumentStore, async_session: AsyncSession, make_meta
    ):
        doc = await documents.insert(async_session, "u1", make_meta(tags=["x"]), "ref-1")
        fetched = await documents.get(async_session, doc.id)
        assert fetched is not None
        assert fetched.owner_id == "u1"
        assert fetched.storage_ref == "ref-1"
        assert fetched.tags == ["x"]

    async def test_get_missing(self, documents: DocumentStore, async_session: AsyncSession):
        assert await documents.get(async_session, "nope") is None

    async def test_get_many_skips_missing(
        self, documents: DocumentStore, async_session: AsyncSession, make_meta
    ):
        a = await documents.insert(async_session, "u1", make_meta(), "ref-a")
        b = await documents.insert(async_session, "u1", make_meta(), "ref-b")
        found = await documents.get_many(async_session, [a.id, "nope", b.id, a.id])
        assert {d.id for d in found} == {a.id, b.id}

    async def test_get_many_empty(self, documents: DocumentStore, async_session: AsyncSession):
        assert await documents.get_many(async_session, []) == []

    async def test_list_owned_by(
        self, documents: DocumentStore, async_session: AsyncSession, make_meta
    ):
        await documents.insert(async_session, "u1", make_meta(), "ref-a")
        await documents.insert(async_session, "u2", make_meta(), "ref-b")
        owned = await documents.list_owned_by(async_session, "u1")
        assert [d.storage_ref for d in owned] == ["ref-a"]

    async def test_patch_bumps_updated_at(
        self, documents: DocumentStore, async_session: AsyncSession, make_meta
    ):
        doc = await documents.insert(async_session, "u1", make_meta(), "ref")
        before = doc.updated_at
        await documents.patch(async_session, doc, {"category": "legal"})
        assert doc.category == "legal"
        assert doc.updated_at > before

    async def test_to_info_is_utc(
        self, documents: DocumentStore, async_session: AsyncSession, make_meta
    ):
        doc = await documents.insert(async_session, "u1", make_meta(), "ref")
        info = documents.to_info(doc, "owner")
        assert info.permission == "owner"
        assert info.created_at is not None
        assert info.created_at.tzinfo is not None


# ---------------------------------------------------------------------------
# AccessLedger
# ---------------------------------------------------------------------------


class TestAccessLedger:
    async def test_grant_owner(self, ledger: AccessLedger, async_session: AsyncSession):
        await ledger.grant_owner(async_session, "d1", "u1")
        grant = await ledger.get(async_session, "d1", "u1")
        assert grant is not None
        assert grant.permission == "owner"

    async def test_upsert_inserts_then_replaces(
        self, ledger: AccessLedger, async_session: AsyncSession
    ):
        await ledger.upsert(async_session, "d1", "u2", Permission.VIEW, offer_id="o1")
        await ledger.upsert(async_session, "d1", "u2", Permission.EDIT, offer_id="o2")
        grants = await ledger.list_for_document(async_session, "d1")
        assert len(grants) == 1
        assert grants[0].permission == "edit"
        assert grants[0].offer_id == "o2"

    async def test_upsert_refuses_owner(self, ledger: AccessLedger, async_session: AsyncSession):
        with pytest.raises(ValueError, match="Owner"):
            await ledger.upsert(async_session, "d1", "u2", Permission.OWNER)

    async def test_remove(self, ledger: AccessLedger, async_session: AsyncSession):
        await ledger.upsert(async_session, "d1", "u2", Permission.VIEW)
        assert await ledger.remove(async_session, "d1", "u2") is True
        assert await ledger.remove(async_session, "d1", "u2") is False
        assert await ledger.get(async_session, "d1", "u2") is None

    async def test_remove_keeps_owner(self, ledger: AccessLedger, async_session: AsyncSession):
        await ledger.grant_owner(async_session, "d1", "u1")
        assert await ledger.remove(async_session, "d1", "u1") is False
        assert await ledger.get(async_session, "d1", "u1") is not None

    async def test_remove_all_for_document(
        self, ledger: AccessLedger, async_session: AsyncSession
    ):
        await ledger.grant_owner(async_session, "d1", "u1")
        await ledger.upsert(async_session, "d1", "u2", Permission.VIEW)
        await ledger.upsert(async_session, "d2", "u2", Permission.VIEW)
        assert await ledger.remove_all_for_document(async_session, "d1") == 2
        assert await ledger.list_for_document(async_session, "d1") == []
        assert len(await ledger.list_for_document(async_session, "d2")) == 1

    async def test_list_for_principal_excludes_owner(
        self, ledger: AccessLedger, async_session: AsyncSession
    ):
        await ledger.grant_owner(async_session, "d1", "u2")
        await ledger.upsert(async_session, "d2", "u2", Permission.EDIT)
        grants = await ledger.list_for_principal(async_session, "u2")
        assert [g.document_id for g in grants] == ["d2"]
        with_owner = await ledger.list_for_principal(async_session, "u2", include_owner=True)
        assert len(with_owner) == 2

    async def test_expired_grants(self, ledger: AccessLedger, async_session: AsyncSession):
        now = datetime.now(UTC)
        await ledger.upsert(
            async_session, "d1", "u2", Permission.VIEW, expires_at=now + timedelta(hours=1)
        )
        await ledger.upsert(async_session, "d2", "u2", Permission.VIEW)
        later = now + timedelta(hours=2)

        active = await ledger.list_for_principal(async_session, "u2", now=later)
        assert [g.document_id for g in active] == ["d2"]
        expired = await ledger.list_expired(async_session, now=later)
        assert [g.document_id for g in expired] == ["d1"]
        assert await ledger.get_active(async_session, "d1", "u2", now=later) is None
        assert await ledger.get_active(async_session, "d1", "u2", now=now) is not None


# ---------------------------------------------------------------------------
# ShareRegistry
# ---------------------------------------------------------------------------


class TestShareRegistry:
    async def test_upsert_creates(self, registry: ShareRegistry, async_session: AsyncSession):
        offer = await registry.upsert(async_session, "d1", "u1", "u2", Permission.VIEW)
        assert offer.id
        assert offer.sharer_id == "u1"
        assert offer.permission == "view"

    async def test_upsert_replaces_in_place(
        self, registry: ShareRegistry, async_session: AsyncSession
    ):
        first = await registry.upsert(async_session, "d1", "u1", "u2", Permission.VIEW)
        second = await registry.upsert(async_session, "d1", "u1", "u2", Permission.EDIT)
        assert second.id == first.id
        offers = await registry.list_for_document(async_session, "d1")
        assert len(offers) == 1
        assert offers[0].permission == "edit"

    async def test_remove_returns_offer(
        self, registry: ShareRegistry, async_session: AsyncSession
    ):
        await registry.upsert(async_session, "d1", "u1", "u2", Permission.VIEW)
        removed = await registry.remove(async_session, "d1", "u2")
        assert removed is not None
        assert removed.recipient == "u2"
        assert await registry.remove(async_session, "d1", "u2") is None

    async def test_list_by_sharer(self, registry: ShareRegistry, async_session: AsyncSession):
        await registry.upsert(async_session, "d1", "u1", "u2", Permission.VIEW)
        await registry.upsert(async_session, "d1", "u1", "u3", Permission.VIEW)
        await registry.upsert(async_session, "d2", "u9", "u2", Permission.VIEW)
        offers = await registry.list_by_sharer(async_session, "u1")
        assert {o.recipient for o in offers} == {"u2", "u3"}

    async def test_remove_all_for_document(
        self, registry: ShareRegistry, async_session: AsyncSession
    ):
        await registry.upsert(async_session, "d1", "u1", "u2", Permission.VIEW)
        await registry.upsert(async_session, "d1", "u1", "u3", Permission.EDIT)
        assert await registry.remove_all_for_document(async_session, "d1") == 2
        assert await registry.list_for_document(async_session, "d1") == []

    async def test_to_info(self, registry: ShareRegistry, async_session: AsyncSession):
        expires = datetime.now(UTC) + timedelta(days=1)
        offer = await registry.upsert(
            async_session, "d1", "u1", "u2", Permission.EDIT, expires_at=expires
        )
        info = registry.to_info(offer)
        assert info.document_id == "d1"
        assert info.recipient == "u2"
        assert info.permission == "edit"
        assert info.expires_at == expires
