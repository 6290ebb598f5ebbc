"""Base tree provider interface for shelfsync.

This module defines the abstract interface that all tree providers must
implement. A tree provider gives access to a hierarchical document tree
that is only reachable through opaque handles (content URIs, in-memory
ids, ...). Providers never expose paths to callers; every lookup goes
through the provider itself.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Optional, Tuple


@dataclass(frozen=True)
class TreeHandle:
    """Opaque reference to a node in a document tree.

    Handles compare by equality only. They carry no path semantics and
    must not be concatenated or parsed outside of the provider that
    issued them.
    """

    uri: str

    def __str__(self) -> str:
        return self.uri


@dataclass(frozen=True)
class TreeEntry:
    """Snapshot of a single node as reported by the provider."""

    handle: TreeHandle
    name: str
    is_directory: bool
    last_modified: int  # epoch milliseconds, 0 if unknown


class ListingStatus(Enum):
    """Outcome of listing a directory."""

    EMPTY = "empty"
    ENTRIES = "entries"
    UNREADABLE = "unreadable"


@dataclass(frozen=True)
class Listing:
    """Children of a directory node.

    An unreadable directory is kept distinct from an empty one so that
    callers can report it instead of silently treating it as empty.
    """

    entries: Tuple[TreeEntry, ...] = ()
    readable: bool = True

    @classmethod
    def unreadable(cls) -> "Listing":
        return cls(entries=(), readable=False)

    @property
    def status(self) -> ListingStatus:
        if not self.readable:
            return ListingStatus.UNREADABLE
        if not self.entries:
            return ListingStatus.EMPTY
        return ListingStatus.ENTRIES


class BaseTreeProvider(ABC):
    """Abstract base class for tree providers.

    Every method blocks until the provider answers. Providers report
    refusals through their return values (None or False); repositories
    turn those into exceptions with the context they have.

    Implementations are not required to be thread-safe; repositories
    serialize access to a provider.
    """

    name: str = "base"
    scheme: str = ""

    @abstractmethod
    def resolve_tree(self, uri: str) -> Optional[TreeEntry]:
        """Resolve a tree URI to its root directory entry.

        Returns:
            The root entry, or None if the URI does not name an
            accessible directory tree.
        """
        raise NotImplementedError

    @abstractmethod
    def resolve_document(self, handle: TreeHandle) -> Optional[TreeEntry]:
        """Resolve a single handle.

        Returns:
            The entry for the handle, or None if no such node exists.
        """
        raise NotImplementedError

    @abstractmethod
    def list_children(self, handle: TreeHandle) -> Listing:
        """List the immediate children of a directory.

        The order of entries is unspecified and must not be relied on.
        """
        raise NotImplementedError

    def find_child(self, parent: TreeHandle, name: str) -> Optional[TreeEntry]:
        """Find a direct child of ``parent`` by display name.

        Default implementation scans the parent's listing. Providers
        with a cheaper lookup should override it.
        """
        for entry in self.list_children(parent).entries:
            if entry.name == name:
                return entry
        return None

    def last_modified(self, handle: TreeHandle) -> int:
        """Return the node's last-modified time in epoch ms, 0 if unknown."""
        entry = self.resolve_document(handle)
        return entry.last_modified if entry is not None else 0

    @abstractmethod
    def open_read(self, handle: TreeHandle) -> BinaryIO:
        """Open a binary read stream on a document."""
        raise NotImplementedError

    @abstractmethod
    def open_write(self, handle: TreeHandle) -> BinaryIO:
        """Open a binary write stream on a document, truncating it."""
        raise NotImplementedError

    @abstractmethod
    def create_document(
        self,
        parent: TreeHandle,
        mime_type: str,
        name: str,
    ) -> Optional[TreeEntry]:
        """Create an empty document under ``parent``.

        The provider chooses the handle and may adjust the display name
        to avoid clobbering an existing sibling.

        Returns:
            The new entry, or None if creation was refused.
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, handle: TreeHandle) -> bool:
        """Delete a node. Returns False if the provider refused."""
        raise NotImplementedError

    @abstractmethod
    def rename(self, handle: TreeHandle, display_name: str) -> Optional[TreeHandle]:
        """Rename a node in place.

        Renaming is not handle-preserving: the returned handle replaces
        the old one, which must not be used afterwards.

        Returns:
            The node's new handle, or None if the rename was refused.
        """
        raise NotImplementedError
