"""docvault: a document vault with an access-control engine.

Share documents under a permission, revoke access, and let grants expire,
with documents, grants and share offers kept consistent in one transaction.
"""

__version__ = "0.1.0"

from docvault._vault import Vault
from docvault._vault_async import VaultAsync
from docvault.access.engine import AccessControlEngine
from docvault.access.exceptions import (
    AccessDeniedError,
    AuthenticationRequiredError,
    CollaboratorUnavailableError,
    ConflictError,
    DocumentNotFoundError,
    InvalidRequestError,
    TransientError,
    VaultError,
)
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
from docvault.events import EventType, NotificationDispatcher, ShareEvent
from docvault.storage import BlobStore, LocalBlobStore, UploadHandle

__all__ = [
    "AccessControlEngine",
    "AccessDeniedError",
    "AccessibleDocuments",
    "AuthenticationRequiredError",
    "BlobStore",
    "CollaboratorUnavailableError",
    "ConflictError",
    "ConsistencyReport",
    "DocumentInfo",
    "DocumentMetadata",
    "DocumentNotFoundError",
    "DocumentPatch",
    "EventType",
    "InvalidRequestError",
    "LocalBlobStore",
    "NotificationDispatcher",
    "Permission",
    "ShareEvent",
    "ShareInfo",
    "TransientError",
    "UploadHandle",
    "Vault",
    "VaultAsync",
    "VaultConfig",
    "VaultError",
    "__version__",
]
