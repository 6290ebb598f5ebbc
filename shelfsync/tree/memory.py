"""In-memory tree provider for shelfsync.

Trees live only as long as the provider instance. Useful for testing and
dry runs: it behaves like a remote document provider (opaque handles,
handle-changing renames, no sibling order) without touching the disk.
"""

from __future__ import annotations

import io
import itertools
import logging
import time
import uuid
from dataclasses import dataclass
from typing import BinaryIO, Callable, Dict, Iterator, Optional, Set, Tuple

from .base import BaseTreeProvider, Listing, TreeEntry, TreeHandle

log = logging.getLogger(__name__)

SCHEME = "memory"

_ROOT_ID = "root"


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class _Node:
    tree: str
    node_id: str
    name: str
    parent_id: Optional[str]
    is_directory: bool
    data: bytes = b""
    last_modified: int = 0


class _CommitOnClose(io.BytesIO):
    """Write buffer that hands its contents to a callback when closed."""

    def __init__(self, on_close: Callable[[bytes], None]):
        super().__init__()
        self._on_close = on_close

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._on_close(self.getvalue())
        finally:
            super().close()


class MemoryTreeProvider(BaseTreeProvider):
    """Tree provider keeping every tree in process memory.

    Handles look like ``memory://<tree>/<node id>``. Node ids are random,
    and a rename moves the node to a fresh id, so old handles stop
    resolving just like they do with real document providers.

    Args:
        clock: Returns the provider's notion of "now" in epoch ms. Used
            for last-modified times; defaults to the wall clock.
    """

    name: str = "memory"
    scheme: str = SCHEME

    def __init__(self, clock: Optional[Callable[[], int]] = None) -> None:
        self._clock = clock or _wall_clock_ms
        self._nodes: Dict[Tuple[str, str], _Node] = {}
        self._unreadable: Set[Tuple[str, str]] = set()
        self.read_only = False

    # -- handle encoding --------------------------------------------------

    def _key(self, uri: str) -> Optional[Tuple[str, str]]:
        prefix = f"{SCHEME}://"
        if not uri.startswith(prefix):
            return None
        tree, _, node_id = uri[len(prefix):].partition("/")
        if not tree:
            return None
        return tree, node_id or _ROOT_ID

    def _node(self, handle: TreeHandle) -> Optional[_Node]:
        key = self._key(handle.uri)
        if key is None:
            return None
        return self._nodes.get(key)

    @staticmethod
    def _handle(node: _Node) -> TreeHandle:
        return TreeHandle(f"{SCHEME}://{node.tree}/{node.node_id}")

    def _entry(self, node: _Node) -> TreeEntry:
        return TreeEntry(
            handle=self._handle(node),
            name=node.name,
            is_directory=node.is_directory,
            last_modified=node.last_modified,
        )

    def _children(self, node: _Node) -> Iterator[_Node]:
        for child in list(self._nodes.values()):
            if child.tree == node.tree and child.parent_id == node.node_id:
                yield child

    def _sibling_named(self, parent: _Node, name: str) -> Optional[_Node]:
        for child in self._children(parent):
            if child.name == name:
                return child
        return None

    def _add(self, parent: _Node, name: str, is_directory: bool) -> _Node:
        node = _Node(
            tree=parent.tree,
            node_id=uuid.uuid4().hex,
            name=name,
            parent_id=parent.node_id,
            is_directory=is_directory,
            last_modified=self._clock(),
        )
        self._nodes[(node.tree, node.node_id)] = node
        return node

    def _remove(self, node: _Node) -> None:
        for child in list(self._children(node)):
            self._remove(child)
        self._nodes.pop((node.tree, node.node_id), None)
        self._unreadable.discard((node.tree, node.node_id))

    # -- tree management --------------------------------------------------

    def add_tree(self, tree: str) -> str:
        """Create an empty tree and return its URI."""
        key = (tree, _ROOT_ID)
        if key not in self._nodes:
            self._nodes[key] = _Node(
                tree=tree,
                node_id=_ROOT_ID,
                name=tree,
                parent_id=None,
                is_directory=True,
                last_modified=self._clock(),
            )
        return f"{SCHEME}://{tree}"

    def remove_tree(self, tree: str) -> None:
        """Drop a whole tree, making its handles unresolvable."""
        root = self._nodes.get((tree, _ROOT_ID))
        if root is not None:
            self._remove(root)

    def make_directory(self, parent: TreeHandle, name: str) -> TreeEntry:
        node = self._node(parent)
        if node is None or not node.is_directory:
            raise NotADirectoryError(str(parent))
        existing = self._sibling_named(node, name)
        if existing is not None:
            return self._entry(existing)
        return self._entry(self._add(node, name, is_directory=True))

    def write_document(self, parent: TreeHandle, name: str, data: bytes) -> TreeEntry:
        """Create or overwrite a document directly, bypassing streams."""
        node = self._node(parent)
        if node is None or not node.is_directory:
            raise NotADirectoryError(str(parent))
        doc = self._sibling_named(node, name) or self._add(node, name, is_directory=False)
        doc.data = bytes(data)
        doc.last_modified = self._clock()
        return self._entry(doc)

    def read_document(self, handle: TreeHandle) -> bytes:
        node = self._node(handle)
        if node is None or node.is_directory:
            raise FileNotFoundError(str(handle))
        return node.data

    def mark_unreadable(self, handle: TreeHandle) -> None:
        """Make ``list_children`` report this directory as unreadable."""
        key = self._key(handle.uri)
        if key is not None:
            self._unreadable.add(key)

    # -- BaseTreeProvider -------------------------------------------------

    def resolve_tree(self, uri: str) -> Optional[TreeEntry]:
        key = self._key(uri)
        if key is None or key[1] != _ROOT_ID:
            return None
        root = self._nodes.get(key)
        return self._entry(root) if root is not None else None

    def resolve_document(self, handle: TreeHandle) -> Optional[TreeEntry]:
        node = self._node(handle)
        return self._entry(node) if node is not None else None

    def list_children(self, handle: TreeHandle) -> Listing:
        key = self._key(handle.uri)
        node = self._nodes.get(key) if key is not None else None
        if node is None or not node.is_directory or key in self._unreadable:
            log.debug(f"{handle} cannot be listed")
            return Listing.unreadable()
        return Listing(entries=tuple(self._entry(c) for c in self._children(node)))

    def open_read(self, handle: TreeHandle) -> BinaryIO:
        return io.BytesIO(self.read_document(handle))

    def open_write(self, handle: TreeHandle) -> BinaryIO:
        node = self._node(handle)
        if node is None or node.is_directory:
            raise FileNotFoundError(str(handle))

        def commit(data: bytes) -> None:
            if (node.tree, node.node_id) not in self._nodes:
                raise FileNotFoundError(str(handle))
            node.data = data
            node.last_modified = self._clock()

        return _CommitOnClose(commit)

    def create_document(
        self,
        parent: TreeHandle,
        mime_type: str,
        name: str,
    ) -> Optional[TreeEntry]:
        node = self._node(parent)
        if self.read_only or node is None or not node.is_directory or not name:
            return None

        base, dot, ext = name.rpartition(".")
        if not dot:
            base, ext = name, ""
        candidates = itertools.chain(
            [name],
            (f"{base} ({n}){dot}{ext}" for n in itertools.count(1)),
        )
        for candidate in candidates:
            if self._sibling_named(node, candidate) is None:
                return self._entry(self._add(node, candidate, is_directory=False))
        return None

    def delete(self, handle: TreeHandle) -> bool:
        node = self._node(handle)
        if self.read_only or node is None or node.parent_id is None:
            return False
        self._remove(node)
        return True

    def rename(self, handle: TreeHandle, display_name: str) -> Optional[TreeHandle]:
        node = self._node(handle)
        if self.read_only or node is None or node.parent_id is None or not display_name:
            return None

        parent = self._nodes[(node.tree, node.parent_id)]
        if self._sibling_named(parent, display_name) is not None:
            return None

        old_key = (node.tree, node.node_id)
        new_id = uuid.uuid4().hex
        for child in self._children(node):
            child.parent_id = new_id

        del self._nodes[old_key]
        node.node_id = new_id
        node.name = display_name
        self._nodes[(node.tree, new_id)] = node

        if old_key in self._unreadable:
            self._unreadable.discard(old_key)
            self._unreadable.add((node.tree, new_id))

        return self._handle(node)
