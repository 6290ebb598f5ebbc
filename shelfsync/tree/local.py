"""Local filesystem tree provider for shelfsync.

This provider serves document trees that live in local directories,
whether they're synced by Dropbox, Syncthing, a mounted share or nothing
at all. Nodes are addressed by content URIs rather than paths:

    content://shelfsync.local/tree/<quoted root>
    content://shelfsync.local/tree/<quoted root>/document/<quoted relative path>

Callers treat these as opaque handles. Only this provider decodes them.

Symbolic links are not part of a tree: they are never listed, looked up
or resolved, and a handle whose path resolves outside its root is
rejected. Following links would let a handle reach outside the root
directory, and a link to an ancestor would make tree walks loop.
"""

from __future__ import annotations

import itertools
import logging
import os
import shutil
import stat
from pathlib import Path, PurePosixPath
from typing import BinaryIO, List, Optional, Tuple
from urllib.parse import quote, unquote

from .base import BaseTreeProvider, Listing, TreeEntry, TreeHandle

log = logging.getLogger(__name__)

SCHEME = "content"
AUTHORITY = "shelfsync.local"

_TREE_PREFIX = f"{SCHEME}://{AUTHORITY}/tree/"
_DOCUMENT_SEPARATOR = "/document/"


def tree_uri(root: Path) -> str:
    """Return the tree URI for a local directory."""
    root = Path(root).expanduser().resolve()
    return _TREE_PREFIX + quote(root.as_posix(), safe="")


def _mtime_ms(st: os.stat_result) -> int:
    return st.st_mtime_ns // 1_000_000


def _is_plain_name(name: str) -> bool:
    return bool(name) and name not in (".", "..") and "/" not in name and os.sep not in name


def _is_within(root: Path, path: Path) -> bool:
    """True if ``path`` resolves to ``root`` or somewhere below it."""
    real_root = root.resolve()
    real_path = path.resolve()
    return real_path == real_root or real_root in real_path.parents


def _lstat(path: Path) -> Optional[os.stat_result]:
    """Stat ``path`` without following links; None if missing or a link."""
    try:
        st = path.lstat()
    except OSError:
        return None
    if stat.S_ISLNK(st.st_mode):
        return None
    return st


class LocalTreeProvider(BaseTreeProvider):
    """Tree provider backed by local directories.

    Any directory can be exposed as a tree with ``tree_uri(path)``; the
    provider itself holds no configuration.

    Example:
        provider = LocalTreeProvider()
        root = provider.resolve_tree(tree_uri(Path("~/Notes")))
        for entry in provider.list_children(root.handle).entries:
            print(entry.name)
    """

    name: str = "local"
    scheme: str = SCHEME

    # -- handle encoding --------------------------------------------------

    def _locate(self, uri: str) -> Optional[Tuple[Path, Path]]:
        """Decode a URI into (tree root, node path), or None if invalid."""
        if not uri.startswith(_TREE_PREFIX):
            return None

        tree_part, sep, doc_part = uri[len(_TREE_PREFIX):].partition(_DOCUMENT_SEPARATOR)
        root = Path(unquote(tree_part))
        if not root.is_absolute():
            return None

        if not sep:
            return root, root

        relative = PurePosixPath(unquote(doc_part))
        if relative.is_absolute() or ".." in relative.parts:
            return None
        if str(relative) in ("", "."):
            return root, root

        path = root.joinpath(*relative.parts)
        if not _is_within(root, path):
            log.debug(f"{path} resolves outside tree root {root}")
            return None
        return root, path

    def _handle(self, root: Path, path: Path) -> TreeHandle:
        uri = _TREE_PREFIX + quote(root.as_posix(), safe="")
        relative = path.relative_to(root).as_posix()
        if relative != ".":
            uri += _DOCUMENT_SEPARATOR + quote(relative, safe="")
        return TreeHandle(uri)

    def _entry(self, root: Path, path: Path, st: os.stat_result) -> TreeEntry:
        return TreeEntry(
            handle=self._handle(root, path),
            name=path.name,
            is_directory=stat.S_ISDIR(st.st_mode),
            last_modified=_mtime_ms(st),
        )

    def _require_path(self, handle: TreeHandle) -> Path:
        located = self._locate(handle.uri)
        if located is None or located[1].is_symlink():
            raise FileNotFoundError(f"Not a {AUTHORITY} document: {handle}")
        return located[1]

    # -- resolution -------------------------------------------------------

    def resolve_tree(self, uri: str) -> Optional[TreeEntry]:
        located = self._locate(uri)
        if located is None:
            log.debug(f"not a local tree uri: {uri}")
            return None

        root, path = located
        if path != root:
            return None

        try:
            st = root.stat()
        except OSError as e:
            log.debug(f"tree root {root} is not accessible: {e}")
            return None

        if not stat.S_ISDIR(st.st_mode):
            return None
        return self._entry(root, root, st)

    def resolve_document(self, handle: TreeHandle) -> Optional[TreeEntry]:
        located = self._locate(handle.uri)
        if located is None:
            return None

        root, path = located
        st = _lstat(path)
        if st is None:
            return None
        return self._entry(root, path, st)

    def list_children(self, handle: TreeHandle) -> Listing:
        located = self._locate(handle.uri)
        if located is None:
            log.error(f"cannot list children of unknown handle {handle}")
            return Listing.unreadable()

        root, path = located
        entries: List[TreeEntry] = []
        try:
            with os.scandir(path) as it:
                for dirent in it:
                    try:
                        if dirent.is_symlink():
                            continue
                        st = dirent.stat(follow_symlinks=False)
                    except OSError:
                        # Vanished between scandir and stat
                        continue
                    entries.append(self._entry(root, Path(dirent.path), st))
        except OSError as e:
            log.error(f"listing {path} failed: {e}")
            return Listing.unreadable()

        return Listing(entries=tuple(entries))

    def find_child(self, parent: TreeHandle, name: str) -> Optional[TreeEntry]:
        located = self._locate(parent.uri)
        if located is None or not _is_plain_name(name):
            return None

        root, path = located
        child = path / name
        st = _lstat(child)
        if st is None:
            return None
        return self._entry(root, child, st)

    # -- content ----------------------------------------------------------

    def open_read(self, handle: TreeHandle) -> BinaryIO:
        return self._require_path(handle).open("rb")

    def open_write(self, handle: TreeHandle) -> BinaryIO:
        return self._require_path(handle).open("wb")

    # -- mutation ---------------------------------------------------------

    def create_document(
        self,
        parent: TreeHandle,
        mime_type: str,
        name: str,
    ) -> Optional[TreeEntry]:
        located = self._locate(parent.uri)
        if located is None or not _is_plain_name(name):
            return None

        root, directory = located
        if not directory.is_dir():
            log.warning(f"cannot create {name} ({mime_type}): {directory} is not a directory")
            return None

        base, dot, ext = name.rpartition(".")
        if not dot:
            base, ext = name, ""

        candidates = itertools.chain(
            [name],
            (f"{base} ({n}){dot}{ext}" for n in itertools.count(1)),
        )
        for candidate in candidates:
            target = directory / candidate
            try:
                # "x" mode never clobbers an existing sibling
                with target.open("xb"):
                    pass
            except FileExistsError:
                continue
            except OSError as e:
                log.warning(f"creating {target} failed: {e}")
                return None

            try:
                return self._entry(root, target, target.stat())
            except OSError as e:
                log.warning(f"created {target} but cannot stat it: {e}")
                return None
        return None

    def delete(self, handle: TreeHandle) -> bool:
        located = self._locate(handle.uri)
        if located is None:
            return False

        root, path = located
        if path == root:
            log.warning(f"refusing to delete tree root {root}")
            return False

        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
        except OSError as e:
            log.warning(f"deleting {path} failed: {e}")
            return False
        return True

    def rename(self, handle: TreeHandle, display_name: str) -> Optional[TreeHandle]:
        located = self._locate(handle.uri)
        if located is None or not _is_plain_name(display_name):
            return None

        root, path = located
        if path == root:
            return None

        target = path.with_name(display_name)
        if os.path.lexists(target):
            log.warning(f"refusing to rename {path} over existing {target}")
            return None

        try:
            path.rename(target)
        except OSError as e:
            log.warning(f"renaming {path} to {display_name} failed: {e}")
            return None

        return self._handle(root, target)
