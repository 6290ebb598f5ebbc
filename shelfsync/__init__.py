"""shelfsync: keep books in provider-managed document trees.

shelfsync stores versioned text documents ("books") in hierarchical
document trees that are only reachable through opaque handles, such as
content URIs. It lists, pulls, pushes, renames and deletes books, and
stamps every result with a revision that a synchronizer can compare to
detect changes.
"""

from __future__ import annotations

from .__version__ import __version__

__all__ = ["__version__"]
