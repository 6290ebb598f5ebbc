"""Error types for shelfsync repository operations.

Every failure from a tree provider or from the repository itself is raised
as one of these. Degraded listings of nested directories are the only
condition that is logged instead of raised.
"""

from __future__ import annotations

from typing import Optional


class RepoError(Exception):
    """Base exception for all repository errors."""

    def __init__(self, message: str, uri: Optional[object] = None):
        self.uri = uri
        super().__init__(message)


class BookNotFoundError(RepoError):
    """Raised when a requested book or local source file does not exist."""


class BookAlreadyExistsError(RepoError):
    """Raised when a rename would clobber an existing book."""


class RepoAccessError(RepoError):
    """Raised when the tree provider refuses an operation.

    Covers creation, deletion and rename refusals, as well as a repository
    root that cannot be resolved or read.
    """


class InvalidBookNameError(RepoError):
    """Raised when a file name is not in a recognized book format."""

    def __init__(self, file_name: Optional[str]):
        self.file_name = file_name
        super().__init__(f"Unsupported book file name: {file_name!r}")
