"""Tree provider registry for shelfsync.

This module wires together the base provider interface and concrete
implementations (local directories, in-memory trees) so that the CLI and
the repo factory can resolve a configured provider name, or a tree URI,
into a provider instance.
"""

from __future__ import annotations

import os
from typing import Callable, Dict, Optional

from .base import BaseTreeProvider, Listing, ListingStatus, TreeEntry, TreeHandle
from .local import LocalTreeProvider, tree_uri
from .memory import MemoryTreeProvider

DEFAULT_PROVIDER = "local"

_PROVIDER_FACTORIES: Dict[str, Callable[[], BaseTreeProvider]] = {}


def _register_defaults() -> None:
    """Populate the provider registry with built-in providers."""

    if _PROVIDER_FACTORIES:
        return

    _PROVIDER_FACTORIES[LocalTreeProvider.name] = lambda: LocalTreeProvider()
    _PROVIDER_FACTORIES[MemoryTreeProvider.name] = lambda: MemoryTreeProvider()


def get_provider(name: Optional[str]) -> BaseTreeProvider:
    """Return a tree provider instance for the given name.

    If the name is None, empty, or unknown, defaults to "local".

    Args:
        name: Provider name ("local", "memory")

    Returns:
        BaseTreeProvider instance
    """

    _register_defaults()

    if not name:
        name = DEFAULT_PROVIDER

    key = name.strip().lower()
    factory = _PROVIDER_FACTORIES.get(key)

    if factory is None:
        factory = _PROVIDER_FACTORIES[DEFAULT_PROVIDER]

    return factory()


def provider_from_env() -> BaseTreeProvider:
    """Resolve a provider based on SHELFSYNC_TREE_PROVIDER.

    Returns:
        BaseTreeProvider instance (defaults to "local" if not set)
    """

    name = os.environ.get("SHELFSYNC_TREE_PROVIDER", "").strip() or None
    return get_provider(name)


def provider_for_uri(uri: str) -> Optional[BaseTreeProvider]:
    """Return a provider able to resolve ``uri``, judged by its scheme.

    Returns None when no registered provider serves the scheme.
    """

    _register_defaults()

    scheme, sep, _ = uri.partition("://")
    if not sep:
        return None

    for factory in _PROVIDER_FACTORIES.values():
        provider = factory()
        if provider.scheme == scheme.lower():
            return provider
    return None


__all__ = [
    "BaseTreeProvider",
    "Listing",
    "ListingStatus",
    "LocalTreeProvider",
    "MemoryTreeProvider",
    "TreeEntry",
    "TreeHandle",
    "get_provider",
    "provider_for_uri",
    "provider_from_env",
    "tree_uri",
]
