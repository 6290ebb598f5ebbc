"""
Test the document tree repository against an in-memory tree.
"""

import io
import logging
import time

import pytest

from shelfsync.errors import (
    BookAlreadyExistsError,
    BookNotFoundError,
    InvalidBookNameError,
    RepoAccessError,
)
from shelfsync.repos import RepoType
from shelfsync.tree import MemoryTreeProvider, TreeHandle


def names_of(provider, rooks):
    return sorted(provider.resolve_document(r.uri).name for r in rooks)


def children_named(provider, root, name):
    return [e for e in provider.list_children(root.handle).entries if e.name == name]


class BrokenReadStream(io.BytesIO):
    """Read stream that fails on the first read."""

    def read(self, *args):
        raise OSError("connection reset while reading")


class StreamRecordingProvider(MemoryTreeProvider):
    """Memory provider that remembers every stream it hands out."""

    def __init__(self, clock=None, broken_reads=False):
        super().__init__(clock=clock)
        self.broken_reads = broken_reads
        self.streams = []

    def open_read(self, handle):
        stream = BrokenReadStream() if self.broken_reads else super().open_read(handle)
        self.streams.append(stream)
        return stream

    def open_write(self, handle):
        stream = super().open_write(handle)
        self.streams.append(stream)
        return stream


class TestRepoIdentity:

    def test_capabilities(self, repo):
        assert repo.is_connection_required() is False
        assert repo.is_auto_sync_supported() is True

    def test_uri_and_description(self, repo, tree):
        assert repo.get_uri() == TreeHandle(tree)
        assert str(repo) == tree


class TestGetBooks:

    def test_empty_root_returns_empty_list(self, repo):
        assert repo.get_books() == []

    def test_finds_books_at_every_depth(self, provider, root, repo):
        provider.write_document(root.handle, "top.org", b"* top")
        provider.write_document(root.handle, "README.md", b"readme")
        level1 = provider.make_directory(root.handle, "work")
        provider.write_document(level1.handle, "projects.org", b"* p")
        provider.write_document(level1.handle, "projects.org~", b"backup")
        level2 = provider.make_directory(level1.handle, "archive")
        provider.write_document(level2.handle, "2019.org.txt", b"* old")
        level3 = provider.make_directory(level2.handle, "deep.org")
        provider.write_document(level3.handle, "deepest.org", b"* deep")

        rooks = repo.get_books()

        assert names_of(provider, rooks) == sorted(
            ["top.org", "projects.org", "2019.org.txt", "deepest.org"]
        )

    def test_directories_are_never_books(self, provider, root, repo):
        provider.make_directory(root.handle, "looks-like.org")

        assert repo.get_books() == []

    def test_rooks_are_stamped_from_provider_mtime(self, provider, root, repo, tree):
        entry = provider.write_document(root.handle, "a.org", b"* a")
        sub = provider.make_directory(root.handle, "sub")
        provider.write_document(sub.handle, "b.org", b"* b")

        rooks = {r.uri: r for r in repo.get_books()}
        rook = rooks[entry.handle]

        assert rook.repo_id == 7
        assert rook.repo_type is RepoType.DOCUMENT
        assert rook.mtime == entry.last_modified
        assert rook.revision == str(entry.last_modified)
        # Nested books still belong to the repository root, not their parent
        assert {r.repo_uri for r in rooks.values()} == {TreeHandle(tree)}

    def test_unreadable_subdirectory_is_skipped(self, provider, root, repo, caplog):
        provider.write_document(root.handle, "a.org", b"* a")
        broken = provider.make_directory(root.handle, "broken")
        provider.write_document(broken.handle, "hidden.org", b"* hidden")
        fine = provider.make_directory(root.handle, "fine")
        provider.write_document(fine.handle, "c.org", b"* c")
        provider.mark_unreadable(broken.handle)

        with caplog.at_level(logging.ERROR, logger="shelfsync"):
            rooks = repo.get_books()

        assert names_of(provider, rooks) == ["a.org", "c.org"]
        assert any(str(broken.handle) in rec.getMessage() for rec in caplog.records)

    def test_unreadable_root_fails(self, provider, root, repo):
        provider.mark_unreadable(root.handle)

        with pytest.raises(RepoAccessError):
            repo.get_books()

    def test_unresolvable_root_fails(self, provider, repo_for):
        repo = repo_for(provider, "memory://nowhere")

        with pytest.raises(RepoAccessError) as exc:
            repo.get_books()
        assert "memory://nowhere" in str(exc.value)

    def test_vanished_root_fails(self, provider, repo, tmp_path):
        provider.remove_tree("books")

        with pytest.raises(RepoAccessError):
            repo.get_books()
        with pytest.raises(BookNotFoundError):
            repo.retrieve_book("a.org", tmp_path / "a.org")

    def test_root_resolved_once(self, provider, repo_for):
        repo = repo_for(provider, "memory://later")
        provider.add_tree("later")

        with pytest.raises(RepoAccessError):
            repo.get_books()


class TestRetrieveBook:

    def test_copies_bytes_and_stamps_rook(self, provider, root, repo, tmp_path):
        content = b"* heading\n\xff\xfe binary tail"
        entry = provider.write_document(root.handle, "notes.org", content)
        destination = tmp_path / "out" / "notes.org"

        rook = repo.retrieve_book("notes.org", destination)

        assert destination.read_bytes() == content
        assert rook.uri == entry.handle
        assert rook.revision == str(entry.last_modified)
        assert rook.mtime == entry.last_modified

    def test_overwrites_destination(self, provider, root, repo, tmp_path):
        provider.write_document(root.handle, "notes.org", b"new")
        destination = tmp_path / "notes.org"
        destination.write_bytes(b"old content that is longer")

        repo.retrieve_book("notes.org", destination)

        assert destination.read_bytes() == b"new"

    def test_missing_book_names_the_repo(self, repo, tree, tmp_path):
        with pytest.raises(BookNotFoundError) as exc:
            repo.retrieve_book("missing.org", tmp_path / "missing.org")

        assert "missing.org" in str(exc.value)
        assert tree in str(exc.value)
        assert not (tmp_path / "missing.org").exists()

    def test_does_not_search_subdirectories(self, provider, root, repo, tmp_path):
        sub = provider.make_directory(root.handle, "sub")
        provider.write_document(sub.handle, "nested.org", b"* nested")

        with pytest.raises(BookNotFoundError):
            repo.retrieve_book("nested.org", tmp_path / "nested.org")

    def test_does_not_modify_tree(self, provider, root, repo, tmp_path):
        entry = provider.write_document(root.handle, "notes.org", b"x")

        repo.retrieve_book("notes.org", tmp_path / "notes.org")

        assert provider.resolve_document(entry.handle) == entry

    def test_directory_named_like_book_is_not_retrieved(self, provider, root, repo, tmp_path):
        folder = provider.make_directory(root.handle, "inbox.org")
        provider.write_document(folder.handle, "keep.org", b"* keep")

        with pytest.raises(BookNotFoundError):
            repo.retrieve_book("inbox.org", tmp_path / "inbox.org")
        assert not (tmp_path / "inbox.org").exists()

    def test_read_stream_closed_when_copy_fails(self, clock, repo_for, tmp_path):
        provider = StreamRecordingProvider(clock=clock, broken_reads=True)
        repo = repo_for(provider, provider.add_tree("books"))
        root = provider.resolve_tree("memory://books")
        provider.write_document(root.handle, "notes.org", b"* notes")

        with pytest.raises(OSError):
            repo.retrieve_book("notes.org", tmp_path / "notes.org")

        assert len(provider.streams) == 1
        assert provider.streams[0].closed


class TestStoreBook:

    def test_round_trip(self, repo, tmp_path):
        content = "* Ünïcödé heading\n- item\n".encode("utf-8") + bytes(range(256))
        source = tmp_path / "source.org"
        source.write_bytes(content)

        repo.store_book(source, "shared.org")
        fetched = tmp_path / "fetched.org"
        repo.retrieve_book("shared.org", fetched)

        assert fetched.read_bytes() == content

    def test_store_replaces_existing(self, provider, root, repo, tmp_path):
        first = tmp_path / "first.org"
        first.write_bytes(b"first")
        second = tmp_path / "second.org"
        second.write_bytes(b"second")

        old = repo.store_book(first, "book.org")
        new = repo.store_book(second, "book.org")

        matches = children_named(provider, root, "book.org")
        assert len(matches) == 1
        assert provider.read_document(matches[0].handle) == b"second"
        assert new.uri == matches[0].handle
        assert provider.resolve_document(old.uri) is None

    def test_stored_book_is_listed(self, provider, repo, tmp_path):
        source = tmp_path / "a.org"
        source.write_bytes(b"* a")

        rook = repo.store_book(source, "a.org")

        assert [r.uri for r in repo.get_books()] == [rook.uri]

    def test_missing_local_file(self, provider, root, repo, tmp_path):
        with pytest.raises(BookNotFoundError):
            repo.store_book(tmp_path / "nope.org", "nope.org")

        assert provider.list_children(root.handle).entries == ()

    def test_creation_refused(self, provider, repo, tmp_path):
        source = tmp_path / "a.org"
        source.write_bytes(b"* a")
        provider.read_only = True

        with pytest.raises(RepoAccessError) as exc:
            repo.store_book(source, "a.org")
        assert "a.org" in str(exc.value)

    def test_mtime_is_local_clock_revision_is_provider(self, repo_for, tmp_path):
        # A provider whose clock lags far behind the wall clock
        lagging = MemoryTreeProvider(clock=lambda: 5_000)
        repo = repo_for(lagging, lagging.add_tree("lagging"))
        source = tmp_path / "a.org"
        source.write_bytes(b"* a")

        before = int(time.time() * 1000)
        rook = repo.store_book(source, "a.org")
        after = int(time.time() * 1000)

        assert rook.revision == "5000"
        assert before <= rook.mtime <= after

    def test_revision_comes_from_written_document(self, provider, repo, tmp_path):
        source = tmp_path / "a.org"
        source.write_bytes(b"* a")

        rook = repo.store_book(source, "a.org")

        assert rook.revision == str(provider.last_modified(rook.uri))

    def test_directory_in_the_way_is_kept(self, provider, root, repo, tmp_path):
        folder = provider.make_directory(root.handle, "inbox.org")
        kept = provider.write_document(folder.handle, "keep.org", b"* keep")
        source = tmp_path / "inbox.org"
        source.write_bytes(b"* inbox")

        with pytest.raises(RepoAccessError) as exc:
            repo.store_book(source, "inbox.org")

        assert exc.value.uri == folder.handle
        assert provider.read_document(kept.handle) == b"* keep"
        assert [e.name for e in provider.list_children(root.handle).entries] == ["inbox.org"]

    def test_write_stream_closed_when_copy_fails(self, clock, repo_for, tmp_path):
        provider = StreamRecordingProvider(clock=clock)
        repo = repo_for(provider, provider.add_tree("books"))
        # A directory exists but cannot be read as a file
        unreadable_source = tmp_path / "folder.org"
        unreadable_source.mkdir()

        with pytest.raises(OSError):
            repo.store_book(unreadable_source, "folder.org")

        assert len(provider.streams) == 1
        assert provider.streams[0].closed


class TestRenameBook:

    def test_rename_preserves_format(self, provider, root, repo):
        entry = provider.write_document(root.handle, "a.org", b"* a")

        rook = repo.rename_book(entry.handle, "x")

        renamed = provider.resolve_document(rook.uri)
        assert renamed.name == "x.org"
        assert provider.read_document(rook.uri) == b"* a"
        assert provider.resolve_document(entry.handle) is None

    def test_rename_drops_txt_suffix(self, provider, root, repo):
        entry = provider.write_document(root.handle, "a.org.txt", b"* a")

        rook = repo.rename_book(entry.handle, "x")

        assert provider.resolve_document(rook.uri).name == "x.org"

    def test_rook_keeps_source_timestamp(self, provider, root, repo, tree):
        entry = provider.write_document(root.handle, "a.org", b"* a")

        rook = repo.rename_book(entry.handle, "x")

        assert rook.uri != entry.handle
        assert rook.repo_uri == TreeHandle(tree)
        assert rook.mtime == entry.last_modified
        assert rook.revision == str(entry.last_modified)

    def test_collision_leaves_both_books(self, provider, root, repo):
        a = provider.write_document(root.handle, "a.org", b"* a")
        b = provider.write_document(root.handle, "b.org", b"* b")

        with pytest.raises(BookAlreadyExistsError) as exc:
            repo.rename_book(a.handle, "b")

        assert exc.value.uri == b.handle
        assert provider.read_document(a.handle) == b"* a"
        assert provider.read_document(b.handle) == b"* b"
        assert provider.resolve_document(a.handle).name == "a.org"

    def test_missing_source(self, repo):
        with pytest.raises(BookNotFoundError):
            repo.rename_book(TreeHandle("memory://books/gone"), "x")

    def test_unsupported_source_name(self, provider, root, repo):
        entry = provider.write_document(root.handle, "notes.txt", b"text")

        with pytest.raises(InvalidBookNameError):
            repo.rename_book(entry.handle, "x")

    def test_rename_refused(self, provider, root, repo):
        entry = provider.write_document(root.handle, "a.org", b"* a")
        provider.read_only = True

        with pytest.raises(RepoAccessError):
            repo.rename_book(entry.handle, "x")
        assert provider.resolve_document(entry.handle).name == "a.org"


class TestDelete:

    def test_delete_existing(self, provider, root, repo):
        entry = provider.write_document(root.handle, "a.org", b"* a")

        repo.delete(entry.handle)

        assert provider.resolve_document(entry.handle) is None
        assert repo.get_books() == []

    def test_delete_missing_is_noop(self, provider, root, repo):
        entry = provider.write_document(root.handle, "a.org", b"* a")

        repo.delete(TreeHandle("memory://books/does-not-exist"))
        repo.delete(TreeHandle("not-a-handle"))

        assert provider.resolve_document(entry.handle) == entry

    def test_delete_twice(self, provider, root, repo):
        entry = provider.write_document(root.handle, "a.org", b"* a")

        repo.delete(entry.handle)
        repo.delete(entry.handle)

        assert provider.resolve_document(entry.handle) is None

    def test_delete_refused(self, provider, root, repo):
        entry = provider.write_document(root.handle, "a.org", b"* a")
        provider.read_only = True

        with pytest.raises(RepoAccessError) as exc:
            repo.delete(entry.handle)

        assert exc.value.uri == entry.handle
        assert str(entry.handle) in str(exc.value)
