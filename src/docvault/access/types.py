"""Request and result types: DocumentMetadata, DocumentInfo, ShareInfo, etc."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime


@dataclass
class DocumentMetadata:
    """Caller-supplied metadata for a new document."""

    title: str
    file_name: str
    file_size: int
    file_type: str
    description: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    is_public: bool = False


@dataclass
class DocumentPatch:
    """Partial metadata update. ``None`` means "leave unchanged"."""

    title: str | None = None
    description: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    is_public: bool | None = None

    def changes(self) -> dict[str, object]:
        """Return only the supplied fields."""
        supplied = {
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "tags": self.tags,
            "is_public": self.is_public,
        }
        return {k: v for k, v in supplied.items() if v is not None}


@dataclass
class DocumentInfo:
    """Detached view of a document record."""

    id: str
    owner_id: str
    title: str
    file_name: str
    file_size: int
    file_type: str
    storage_ref: str
    is_public: bool = False
    description: str | None = None
    category: str | None = None
    tags: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    permission: str | None = None
    """The caller's effective permission, when known."""


@dataclass
class ShareInfo:
    """Share offer metadata."""

    document_id: str
    recipient: str
    permission: str
    sharer_id: str
    created_at: datetime | None = None
    expires_at: datetime | None = None


@dataclass
class AccessibleDocuments:
    """Result of ``list_accessible``."""

    owned: list[DocumentInfo] = field(default_factory=list)
    shared_with_me: list[DocumentInfo] = field(default_factory=list)


@dataclass
class ConsistencyReport:
    """Result of an invariant audit over the ledger and registry."""

    documents_checked: int = 0
    problems: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems
