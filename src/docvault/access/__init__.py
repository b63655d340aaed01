"""Access layer — documents, ledger, registry, and the access-control engine."""

from docvault.access.documents import DocumentStore
from docvault.access.engine import AccessControlEngine
from docvault.access.exceptions import (
    AccessDeniedError,
    AuthenticationRequiredError,
    CapabilityNotSupportedError,
    CollaboratorUnavailableError,
    ConflictError,
    DocumentNotFoundError,
    InvalidRequestError,
    StorageError,
    TransientError,
    VaultError,
)
from docvault.access.ledger import AccessLedger
from docvault.access.permissions import Permission
from docvault.access.registry import ShareRegistry
from docvault.access.types import (
    AccessibleDocuments,
    ConsistencyReport,
    DocumentInfo,
    DocumentMetadata,
    DocumentPatch,
    ShareInfo,
)

__all__ = [
    "AccessControlEngine",
    "AccessDeniedError",
    "AccessLedger",
    "AccessibleDocuments",
    "AuthenticationRequiredError",
    "CapabilityNotSupportedError",
    "CollaboratorUnavailableError",
    "ConflictError",
    "ConsistencyReport",
    "DocumentInfo",
    "DocumentMetadata",
    "DocumentNotFoundError",
    "DocumentPatch",
    "DocumentStore",
    "InvalidRequestError",
    "Permission",
    "ShareInfo",
    "ShareRegistry",
    "StorageError",
    "TransientError",
    "VaultError",
]
