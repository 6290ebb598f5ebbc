"""Document tree repository for shelfsync.

Keeps books in a document tree served by a tree provider. The tree is
only reachable through handles, so every operation is composed from the
provider's small set of calls: list, find, open, create, delete, rename.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import List, Optional

from .. import books
from ..errors import BookAlreadyExistsError, BookNotFoundError, RepoAccessError
from ..streams import write_file_to_stream, write_stream_to_file
from ..tree.base import BaseTreeProvider, ListingStatus, TreeEntry, TreeHandle
from .base import RepoType, RepoWithProps, SyncRepo, VersionedRook

log = logging.getLogger(__name__)

BOOK_MIME_TYPE = "text/*"


def _now_ms() -> int:
    return int(time.time() * 1000)


class DocumentRepo(SyncRepo):
    """Repository over a provider-managed document tree.

    The tree root is resolved once, when the repository is created. If it
    cannot be resolved, or later becomes inaccessible, operations fail
    instead of resolving it again.

    Storing a book deletes the old document before creating the new one.
    There is no atomic replace, so a concurrent reader may briefly see the
    book as missing.
    """

    def __init__(self, repo_with_props: RepoWithProps, provider: BaseTreeProvider) -> None:
        repo = repo_with_props.repo
        self._repo_id = repo.id
        self._repo_uri = TreeHandle(repo.url)
        self._provider = provider
        self._root: Optional[TreeEntry] = provider.resolve_tree(repo.url)

        if self._root is None or not self._root.is_directory:
            log.warning(f"repository tree {repo.url} could not be resolved")
            self._root = None

    def is_connection_required(self) -> bool:
        return False

    def is_auto_sync_supported(self) -> bool:
        return True

    def get_uri(self) -> TreeHandle:
        return self._repo_uri

    def _require_root(self) -> TreeEntry:
        if self._root is None:
            raise RepoAccessError(
                f"Repository tree {self._repo_uri} is not accessible",
                uri=self._repo_uri,
            )
        return self._root

    def _rook(self, uri: TreeHandle, revision: str, mtime: int) -> VersionedRook:
        return VersionedRook(
            repo_id=self._repo_id,
            repo_type=RepoType.DOCUMENT,
            repo_uri=self._repo_uri,
            uri=uri,
            revision=revision,
            mtime=mtime,
        )

    def get_books(self) -> List[VersionedRook]:
        """List every book in the tree, in no particular order.

        Nested directories that cannot be listed are logged and skipped.

        Raises:
            RepoAccessError: If the root is inaccessible or cannot be listed.
        """
        return self._get_books_recursive(self._require_root(), is_root=True)

    def _get_books_recursive(self, directory: TreeEntry, is_root: bool = False) -> List[VersionedRook]:
        result: List[VersionedRook] = []

        listing = self._provider.list_children(directory.handle)
        if listing.status is ListingStatus.UNREADABLE:
            if is_root:
                raise RepoAccessError(
                    f"Listing files in repository tree {self._repo_uri} failed",
                    uri=self._repo_uri,
                )
            log.error(f"Listing files in {directory.handle} returned nothing, skipping it")
            return result

        # Provider order is arbitrary; entries are not sorted.
        for entry in listing.entries:
            if entry.is_directory:
                result.extend(self._get_books_recursive(entry))
            elif books.is_supported_format_file_name(entry.name):
                log.debug(
                    f"found book {entry.name} at {entry.handle} "
                    f"(parent {directory.handle}, repo {self._repo_uri})"
                )
                result.append(
                    self._rook(entry.handle, str(entry.last_modified), entry.last_modified)
                )

        return result

    def retrieve_book(self, file_name: str, destination_file: Path) -> VersionedRook:
        """Copy the book ``file_name`` at the tree root into ``destination_file``.

        Raises:
            BookNotFoundError: If the root holds no document by that name.
            RepoAccessError: If the root is inaccessible.
        """
        root = self._require_root()

        source = self._provider.find_child(root.handle, file_name)
        if source is None or source.is_directory:
            raise BookNotFoundError(f"Book {file_name} not found in {self._repo_uri}")

        log.debug(f"found document for {file_name}: {source.handle}")

        with self._provider.open_read(source.handle) as stream:
            write_stream_to_file(stream, destination_file)

        return self._rook(source.handle, str(source.last_modified), source.last_modified)

    def store_book(self, file: Path, file_name: str) -> VersionedRook:
        """Store ``file`` at the tree root as ``file_name``, replacing any old copy.

        Raises:
            BookNotFoundError: If ``file`` does not exist.
            RepoAccessError: If the root is inaccessible, ``file_name`` names
                a directory, or the provider refuses the delete or create.
        """
        file = Path(file)
        if not file.exists():
            raise BookNotFoundError(f"File {file} does not exist")

        root = self._require_root()

        existing = self._provider.find_child(root.handle, file_name)
        if existing is not None and existing.is_directory:
            raise RepoAccessError(
                f"Cannot store {file_name}: {existing.handle} is a directory",
                uri=existing.handle,
            )
        if existing is not None:
            log.debug(f"deleting existing {file_name} at {existing.handle} before storing")
            if not self._provider.delete(existing.handle):
                raise RepoAccessError(
                    f"Failed deleting existing {existing.handle}",
                    uri=existing.handle,
                )

        created = self._provider.create_document(root.handle, BOOK_MIME_TYPE, file_name)
        if created is None:
            raise RepoAccessError(
                f"Failed creating {file_name} in {self._repo_uri}",
                uri=self._repo_uri,
            )

        with self._provider.open_write(created.handle) as stream:
            write_file_to_stream(file, stream)

        # Provider commit time may lag behind; mtime is the local clock.
        revision = str(self._provider.last_modified(created.handle))
        mtime = _now_ms()

        return self._rook(created.handle, revision, mtime)

    def rename_book(self, from_uri: TreeHandle, name: str) -> VersionedRook:
        """Rename the book at ``from_uri`` to ``name`` in its current format.

        The returned reference carries the new handle and the old
        document's timestamp.

        Raises:
            BookNotFoundError: If ``from_uri`` does not resolve.
            InvalidBookNameError: If the source is not a recognized book.
            BookAlreadyExistsError: If the new name is taken at the root.
            RepoAccessError: If the root is inaccessible or the provider
                refuses the rename.
        """
        root = self._require_root()

        source = self._provider.resolve_document(from_uri)
        if source is None:
            raise BookNotFoundError(f"Book at {from_uri} not found", uri=from_uri)

        book_name = books.from_file_name(source.name)
        new_file_name = books.file_name(name, book_name.format)

        existing = self._provider.find_child(root.handle, new_file_name)
        if existing is not None:
            raise BookAlreadyExistsError(
                f"File at {existing.handle} already exists",
                uri=existing.handle,
            )

        new_uri = self._provider.rename(from_uri, new_file_name)
        if new_uri is None:
            raise RepoAccessError(
                f"Failed renaming {from_uri} to {new_file_name}",
                uri=from_uri,
            )

        # Renaming does not touch content: keep the source's timestamp.
        mtime = source.last_modified
        return self._rook(new_uri, str(mtime), mtime)

    def delete(self, uri: TreeHandle) -> None:
        """Delete the document at ``uri``; a handle that no longer resolves is a no-op.

        Raises:
            RepoAccessError: If the provider refuses the delete.
        """
        if self._provider.resolve_document(uri) is None:
            return

        if not self._provider.delete(uri):
            raise RepoAccessError(f"Failed deleting document {uri}", uri=uri)

    def __str__(self) -> str:
        return str(self._repo_uri)
