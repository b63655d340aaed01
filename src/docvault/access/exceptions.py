"""Custom exception hierarchy for the docvault access layer."""

DENIED_MESSAGE = "Document not found or access denied"


class VaultError(Exception):
    """Base exception for all docvault errors."""


class AuthenticationRequiredError(VaultError):
    """Raised when an operation is attempted without a principal."""


class AccessDeniedError(VaultError, PermissionError):
    """Raised when the principal lacks the permission an operation needs.

    The message never says whether the document exists.
    """

    def __init__(self, message: str = DENIED_MESSAGE) -> None:
        super().__init__(message)


class DocumentNotFoundError(AccessDeniedError):
    """Raised when a document id does not resolve to a row.

    Subclasses ``AccessDeniedError`` with the same message so that callers
    handling denial cannot distinguish a missing document from a forbidden one.
    """


class InvalidRequestError(VaultError, ValueError):
    """Raised when a request is missing a required field or has a bad value."""


class TransientError(VaultError):
    """Base for failures where retrying the operation is advised."""


class ConflictError(TransientError):
    """Raised when an atomic commit failed because of concurrent modification."""


class StorageError(TransientError):
    """Raised on backing-store failures other than commit conflicts."""


class CollaboratorUnavailableError(TransientError):
    """Raised when the blob store fails on a path that cannot complete without it."""


class CapabilityNotSupportedError(VaultError):
    """Raised when a collaborator doesn't support a requested capability."""
