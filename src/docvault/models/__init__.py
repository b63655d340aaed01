"""SQLModel database models for docvault."""

from docvault.models.documents import Document, DocumentBase
from docvault.models.grants import AccessGrant, AccessGrantBase
from docvault.models.offers import ShareOffer, ShareOfferBase

__all__ = [
    "AccessGrant",
    "AccessGrantBase",
    "Document",
    "DocumentBase",
    "ShareOffer",
    "ShareOfferBase",
]
