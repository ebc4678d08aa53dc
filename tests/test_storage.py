"""Tests for the local blob store."""

import io

import pytest

from errors import BlobMissing, TooLarge
from storage import TMP_PREFIX, LocalBlobStore


@pytest.fixture
def store(tmp_path):
    return LocalBlobStore(tmp_path / "blobs")


class TestPut:
    def test_stores_file_like(self, store):
        assert store.put("abc", io.BytesIO(b"0123456789")) == 10
        with store.open("abc") as f:
            assert f.read() == b"0123456789"

    def test_stores_chunk_iterable(self, store):
        assert store.put("abc", [b"ab", b"", b"cd"]) == 4
        with store.open("abc") as f:
            assert f.read() == b"abcd"

    def test_too_large_leaves_nothing_behind(self, store):
        with pytest.raises(TooLarge):
            store.put("big", io.BytesIO(b"x" * 11), max_bytes=10)
        assert not store.exists("big")
        assert list(store.root.iterdir()) == []

    def test_rejects_path_like_keys(self, store):
        for key in ("", "../escape", "a/b", ".hidden"):
            with pytest.raises(ValueError):
                store.put(key, io.BytesIO(b"x"))


class TestOpenAndDelete:
    def test_open_missing_raises(self, store):
        with pytest.raises(BlobMissing):
            store.open("nope")

    def test_delete_is_idempotent(self, store):
        store.put("abc", io.BytesIO(b"x"))
        assert store.delete("abc") is True
        assert store.delete("abc") is False
        assert not store.exists("abc")

    def test_open_handle_survives_delete(self, store):
        store.put("abc", io.BytesIO(b"still here"))
        handle = store.open("abc")
        store.delete("abc")
        with handle:
            assert handle.read() == b"still here"


class TestKeys:
    def test_lists_keys_but_not_partial_writes(self, store):
        store.put("one", io.BytesIO(b"1"))
        store.put("two", io.BytesIO(b"2"))
        (store.root / f"{TMP_PREFIX}leftover").write_bytes(b"partial")
        assert sorted(store.keys()) == ["one", "two"]

    def test_grace_period_hides_fresh_blobs(self, store):
        store.put("fresh", io.BytesIO(b"1"))
        assert list(store.keys(older_than=3600)) == []

    def test_purge_partial(self, store):
        store.put("keep", io.BytesIO(b"1"))
        (store.root / f"{TMP_PREFIX}leftover").write_bytes(b"partial")
        assert store.purge_partial(older_than=0) == 1
        assert [p.name for p in store.root.iterdir()] == ["keep"]
