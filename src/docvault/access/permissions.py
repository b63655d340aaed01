"""Permission levels held in the access ledger."""

from __future__ import annotations

from enum import Enum

from .exceptions import InvalidRequestError


class Permission(str, Enum):
    """Permission level of an access grant."""

    OWNER = "owner"
    VIEW = "view"
    EDIT = "edit"


SHAREABLE_PERMISSIONS = frozenset({Permission.VIEW, Permission.EDIT})


def parse_shareable(permission: str | Permission) -> Permission:
    """Return *permission* as a ``Permission`` that may be granted by a share.

    Raises ``InvalidRequestError`` for ``owner`` or anything unknown.
    """
    try:
        perm = Permission(permission)
    except ValueError:
        perm = None
    if perm not in SHAREABLE_PERMISSIONS:
        raise InvalidRequestError(
            f"Invalid permission: {permission!r}. Must be 'view' or 'edit'."
        )
    return perm
