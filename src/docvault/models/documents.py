"""Document model — metadata for an uploaded file.

Provides ``DocumentBase`` (non-table) and ``Document`` (concrete table).
Subclass ``DocumentBase`` with ``table=True`` and a custom ``__tablename__``
to use a different table name per backend.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, DateTime
from sqlmodel import Field, SQLModel


class DocumentBase(SQLModel):
    """Base fields for a document record. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    owner_id: str = Field(index=True)
    title: str
    description: str | None = Field(default=None)
    file_name: str
    file_size: int = Field(default=0)
    file_type: str = Field(default="application/octet-stream")
    category: str | None = Field(default=None)
    tags: list[str] | None = Field(default=None, sa_type=JSON)  # type: ignore[invalid-argument-type]
    storage_ref: str
    is_public: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class Document(DocumentBase, table=True):
    """Default document table — ``vault_documents``."""

    __tablename__ = "vault_documents"
