"""Tests for the directory-backed blob store."""

import asyncio
import hashlib

import pytest

from toiletmap.adapters.fs_store import FsStore
from toiletmap.errors import ConflictError, NotFound, StoreError


def test_put_and_get(store):
    """Test creating a blob and reading it back."""
    result = asyncio.run(store.put("data/toilets/1.md", b"hello", None, "Add"))
    blob = asyncio.run(store.get("data/toilets/1.md"))

    assert blob.content == b"hello"
    assert blob.revision == result.revision
    assert blob.revision == hashlib.sha1(b"hello").hexdigest()
    assert result.commit["message"] == "Add"


def test_get_missing(store):
    """Test NotFound for an absent blob."""
    with pytest.raises(NotFound):
        asyncio.run(store.get("data/toilets/404.md"))


def test_put_with_current_revision(store):
    """Test overwriting with the latest revision token."""
    first = asyncio.run(store.put("a.md", b"v1", None, "create"))
    second = asyncio.run(store.put("a.md", b"v2", first.revision, "update"))

    assert asyncio.run(store.get("a.md")).content == b"v2"
    assert second.revision != first.revision


def test_stale_revision_conflicts(store):
    """Test that a second write with the same token is rejected."""
    first = asyncio.run(store.put("a.md", b"v1", None, "create"))
    asyncio.run(store.put("a.md", b"v2", first.revision, "update one"))

    with pytest.raises(ConflictError):
        asyncio.run(store.put("a.md", b"v3", first.revision, "update two"))
    assert asyncio.run(store.get("a.md")).content == b"v2"


def test_create_over_existing_conflicts(store):
    """Test that creating without a token fails if the blob exists."""
    asyncio.run(store.put("a.md", b"v1", None, "create"))
    with pytest.raises(ConflictError):
        asyncio.run(store.put("a.md", b"other", None, "create again"))


def test_update_of_missing_conflicts(store):
    """Test that a token for a blob that no longer exists is stale."""
    with pytest.raises(ConflictError):
        asyncio.run(store.put("a.md", b"v1", "deadbeef", "update"))


def test_delete(store):
    """Test deleting with the current token."""
    result = asyncio.run(store.put("a.md", b"v1", None, "create"))
    asyncio.run(store.delete("a.md", result.revision, "delete"))

    with pytest.raises(NotFound):
        asyncio.run(store.get("a.md"))
    with pytest.raises(NotFound):
        asyncio.run(store.delete("a.md", result.revision, "delete"))


def test_delete_with_stale_revision(store):
    """Test that delete also checks the token."""
    asyncio.run(store.put("a.md", b"v1", None, "create"))
    with pytest.raises(ConflictError):
        asyncio.run(store.delete("a.md", "stale", "delete"))


def test_list(store):
    """Test directory listing."""
    asyncio.run(store.put("data/toilets/2.md", b"x", None, "c"))
    asyncio.run(store.put("data/toilets/1.md", b"x", None, "c"))
    asyncio.run(store.put("data/toilets/sub/x.md", b"x", None, "c"))

    entries = asyncio.run(store.list("data/toilets"))

    assert [(e.name, e.is_file) for e in entries] == [
        ("1.md", True),
        ("2.md", True),
        ("sub", False),
    ]


def test_list_missing_directory(store):
    """Test that a missing directory lists as empty."""
    assert asyncio.run(store.list("nothing/here")) == []


def test_public_url(tmp_path):
    """Test public URLs with and without a base URL."""
    with_base = FsStore(tmp_path, public_base_url="https://cdn.example.test/")
    assert with_base.public_url("data/images/x.jpg") == "https://cdn.example.test/data/images/x.jpg"

    without_base = FsStore(tmp_path)
    assert without_base.public_url("data/images/x.jpg").startswith("file://")


def test_rejects_path_escape(store):
    """Test that paths cannot leave the store root."""
    with pytest.raises(StoreError):
        asyncio.run(store.get("../outside.md"))


def test_concurrent_operations(store):
    """Test that file I/O runs off the event loop and interleaves cleanly."""

    async def scenario():
        await asyncio.gather(
            *(store.put(f"data/toilets/{n}.md", str(n).encode(), None, "Add") for n in range(1, 6))
        )
        blobs = await asyncio.gather(*(store.get(f"data/toilets/{n}.md") for n in range(1, 6)))
        entries = await store.list("data/toilets")
        return blobs, entries

    blobs, entries = asyncio.run(scenario())

    assert [b.content for b in blobs] == [b"1", b"2", b"3", b"4", b"5"]
    assert [e.name for e in entries] == ["1.md", "2.md", "3.md", "4.md", "5.md"]
