"""Shared fixtures for the shelfsync test suite."""

from __future__ import annotations

import pytest

from shelfsync.repos import DocumentRepo, Repo, RepoType, RepoWithProps
from shelfsync.tree import LocalTreeProvider, MemoryTreeProvider, tree_uri

REPO_ID = 7

ENV_KEYS = (
    "SHELFSYNC_CONFIG_PATH",
    "SHELFSYNC_LOG_PATH",
    "SHELFSYNC_TREE_PROVIDER",
    "SHELFSYNC_VERBOSE",
)


class TickingClock:
    """Millisecond clock that advances by one second on every reading."""

    def __init__(self, start: int = 1_600_000_000_000):
        self.now = start

    def __call__(self) -> int:
        self.now += 1000
        return self.now


def make_repo(provider, url: str, repo_id: int = REPO_ID) -> DocumentRepo:
    repo = Repo(id=repo_id, type=RepoType.DOCUMENT, url=url)
    return DocumentRepo(RepoWithProps(repo=repo), provider)


@pytest.fixture
def repo_for():
    """Factory building a DocumentRepo for a provider and tree URI."""
    return make_repo


@pytest.fixture
def clean_env(monkeypatch):
    """Remove shelfsync settings from the environment for one test.

    Setting before deleting makes monkeypatch restore the variable to
    "absent" afterwards, even if load_dotenv sets it during the test.
    """
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def provider(clock):
    return MemoryTreeProvider(clock=clock)


@pytest.fixture
def tree(provider):
    """URI of an empty in-memory tree."""
    return provider.add_tree("books")


@pytest.fixture
def root(provider, tree):
    return provider.resolve_tree(tree)


@pytest.fixture
def repo(provider, tree):
    return make_repo(provider, tree)


@pytest.fixture
def local_provider():
    return LocalTreeProvider()


@pytest.fixture
def local_tree(tmp_path):
    """A local directory exposed as a tree, and its URI."""
    directory = tmp_path / "tree"
    directory.mkdir()
    return directory, tree_uri(directory)


@pytest.fixture
def local_repo(local_provider, local_tree):
    _, uri = local_tree
    return make_repo(local_provider, uri)
