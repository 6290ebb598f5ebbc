"""Base repository interface for shelfsync.

A repository is one place where books are kept. The synchronizer drives
repositories through the SyncRepo interface: it lists books, pulls and
pushes them, renames and deletes them, and compares the VersionedRook
stamps it gets back to decide what changed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List

from ..tree.base import TreeHandle


class RepoType(Enum):
    """Kind of storage behind a repository, used for dispatch."""

    DOCUMENT = "document"


@dataclass(frozen=True)
class Repo:
    id: int
    type: RepoType
    url: str


@dataclass(frozen=True)
class RepoWithProps:
    """A repository record plus its free-form string properties."""

    repo: Repo
    props: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class VersionedRook:
    """A book's location in a repository, stamped with its version.

    ``revision`` is an opaque change marker: equal revisions mean the book
    is not known to have changed. ``mtime`` is in epoch milliseconds.
    """

    repo_id: int
    repo_type: RepoType
    repo_uri: TreeHandle  # repository root
    uri: TreeHandle  # the book itself
    revision: str
    mtime: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "repo_id": self.repo_id,
            "repo_type": self.repo_type.value,
            "repo_uri": str(self.repo_uri),
            "uri": str(self.uri),
            "revision": self.revision,
            "mtime": self.mtime,
        }


class SyncRepo(ABC):
    """Abstract base class for repositories.

    Implementations are used from a single thread; the synchronizer runs
    one pass at a time per repository and owns any retry policy.
    """

    @abstractmethod
    def is_connection_required(self) -> bool:
        """True if the repository needs network access to operate."""
        raise NotImplementedError

    @abstractmethod
    def is_auto_sync_supported(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def get_uri(self) -> TreeHandle:
        """The repository's root handle."""
        raise NotImplementedError

    @abstractmethod
    def get_books(self) -> List[VersionedRook]:
        """List every book in the repository, in no particular order."""
        raise NotImplementedError

    @abstractmethod
    def retrieve_book(self, file_name: str, destination_file: Path) -> VersionedRook:
        """Download a book into ``destination_file``."""
        raise NotImplementedError

    @abstractmethod
    def store_book(self, file: Path, file_name: str) -> VersionedRook:
        """Upload ``file`` as ``file_name``, replacing any existing book."""
        raise NotImplementedError

    @abstractmethod
    def rename_book(self, from_uri: TreeHandle, name: str) -> VersionedRook:
        """Give a book a new logical name, keeping its format."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, uri: TreeHandle) -> None:
        """Delete a book. Deleting a book that is already gone is a no-op."""
        raise NotImplementedError
