"""Errors raised by the WBS core.

Structural and interaction errors are raised before any mutation happens, so a
caller that catches one can assume the tree is unchanged.
"""

from __future__ import annotations


class WBSError(Exception):
    """Base class for all recoverable WBS errors."""


class ItemNotFound(WBSError, KeyError):
    """No work item with the given id exists in the tree."""

    def __init__(self, item_id: str) -> None:
        super().__init__(item_id)
        self.item_id = item_id

    def __str__(self) -> str:
        return f"work item not found: {self.item_id}"


class StructuralViolation(WBSError):
    """Illegal parent/child level pairing, cycle, or duplicate id."""


class InvalidLevel(WBSError):
    """The requested level is not allowed for this operation."""


class MaxLevelExceeded(WBSError):
    """An item or one of its descendants would go past LEVEL4."""


class NoPrecedingSibling(WBSError):
    """The first child has nothing to be demoted under."""


class NotDraggable(WBSError):
    """Drag started on a non-leaf item or on an item without planned dates."""


class DerivedFieldError(WBSError):
    """Direct edit of a field that non-leaf items derive from their children."""


class RepositoryRejected(WBSError):
    """The repository refused or failed to commit a mutation."""
