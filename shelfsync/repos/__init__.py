"""Repository factory for shelfsync.

Resolves a configured repository into a SyncRepo instance, based on the
scheme of the repository URL.
"""

from __future__ import annotations

from typing import Callable, Dict, Optional

from ..errors import RepoError
from ..tree import BaseTreeProvider, provider_for_uri
from ..tree.local import SCHEME as LOCAL_SCHEME
from ..tree.memory import SCHEME as MEMORY_SCHEME
from .base import Repo, RepoType, RepoWithProps, SyncRepo, VersionedRook
from .document import DocumentRepo

_REPO_FACTORIES: Dict[str, Callable[[RepoWithProps, BaseTreeProvider], SyncRepo]] = {
    LOCAL_SCHEME: DocumentRepo,
    MEMORY_SCHEME: DocumentRepo,
}


def get_repo(
    repo_with_props: RepoWithProps,
    provider: Optional[BaseTreeProvider] = None,
) -> SyncRepo:
    """Return a repository for the given record.

    Args:
        repo_with_props: Repository record and properties
        provider: Tree provider to use; picked by URL scheme when omitted

    Raises:
        RepoError: if no repository type serves the URL's scheme.
    """

    url = repo_with_props.repo.url
    scheme = url.partition("://")[0].lower()

    factory = _REPO_FACTORIES.get(scheme)
    if factory is None:
        raise RepoError(f"Unsupported repository URL: {url}", uri=url)

    if provider is None:
        provider = provider_for_uri(url)
        if provider is None:
            raise RepoError(f"No tree provider for {url}", uri=url)

    return factory(repo_with_props, provider)


__all__ = [
    "DocumentRepo",
    "Repo",
    "RepoType",
    "RepoWithProps",
    "SyncRepo",
    "VersionedRook",
    "get_repo",
]
