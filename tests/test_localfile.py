import os
from pathlib import Path

import pytest

from snapsync.builder import build_snapshot
from snapsync.context import SyncContext
from snapsync.digest import compute_ref
from snapsync.errors import RemoteNotFoundError
from snapsync.locator import locate_snapshot
from snapsync.publisher import publish_snapshot
from snapsync.restore import restore_snapshot
from snapsync.store import LocalDirRemoteStore, RecordId

from conftest import TickingClock


@pytest.fixture()
def local_store(tmp_path: Path):
    return LocalDirRemoteStore(tmp_path / "store")


def test_blobs(local_store: LocalDirRemoteStore):
    ref = local_store.create_blob(b"hello", mime_type="text/plain")
    assert ref == compute_ref(b"hello")
    assert local_store.fetch_blob(ref) == b"hello"
    # storing again is a no-op
    assert local_store.create_blob(b"hello") == ref
    p = local_store.blob_path(ref.cid)
    assert not os.access(p, os.W_OK) or os.geteuid() == 0
    assert not list(local_store.blobs_dir.glob("*.partial"))
    assert local_store.blob_url(ref) == p.resolve().as_uri()


def test_missing_blob(local_store: LocalDirRemoteStore):
    with pytest.raises(RemoteNotFoundError):
        local_store.fetch_blob(compute_ref(b"never stored"))


def test_sha256_store(tmp_path: Path):
    store = LocalDirRemoteStore(tmp_path / "store", hash_algorithm="sha2-256")
    ref = store.create_blob(b"hello")
    assert ref.algorithm == "sha2-256"


def test_records(local_store: LocalDirRemoteStore):
    ids = [local_store.create_record("com.example.thing", {"n": i}) for i in range(3)]
    rid = RecordId.parse(ids[0])
    assert rid.repo == "local"
    assert rid.collection == "com.example.thing"
    assert local_store.get_record(ids[1]) == {"n": 1}
    records = local_store.list_records("com.example.thing")
    assert [r.identifier for r in records] == ids[::-1]
    assert len(local_store.list_records("com.example.thing", limit=2)) == 2
    assert local_store.list_records("com.example.other") == []

    local_store.delete_record(ids[1])
    with pytest.raises(RemoteNotFoundError):
        local_store.get_record(ids[1])
    with pytest.raises(RemoteNotFoundError):
        local_store.delete_record(ids[1])


def test_foreign_identifiers(local_store: LocalDirRemoteStore):
    with pytest.raises(RemoteNotFoundError):
        local_store.get_record("at://did:plc:someone/com.example.thing/3kaaaaaaaaaaa")
    with pytest.raises(RemoteNotFoundError):
        local_store.get_record("not an identifier")


def test_sync_through_directory(local_store: LocalDirRemoteStore, make_tree, tmp_path: Path):
    # two machines sharing the same store directory
    root = make_tree({"a.txt": b"hello", "sub/b.txt": b"world"})
    ctx = SyncContext(store=local_store, clock=TickingClock())
    m = build_snapshot(ctx, root).manifest
    publish_snapshot(ctx, m, manifest_dir=None)

    other = SyncContext(store=LocalDirRemoteStore(local_store.root), clock=TickingClock())
    located = locate_snapshot(other)
    assert located.manifest == m
    result = restore_snapshot(other, located.manifest, tmp_path / "restored")
    assert result.ok
    assert (tmp_path / "restored" / "sub" / "b.txt").read_bytes() == b"world"
