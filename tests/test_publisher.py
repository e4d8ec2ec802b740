from pathlib import Path

import pytest

from snapsync.builder import build_snapshot
from snapsync.context import SyncContext
from snapsync.errors import PublishError, RemoteAuthError, RemoteNotFoundError
from snapsync.manifest import MANIFEST_TYPE, load_manifest
from snapsync.publisher import publish_snapshot
from snapsync.store import InMemRemoteStore, RecordId

from conftest import TickingClock


class ReadOnlyStore(InMemRemoteStore):
    def create_record(self, collection, body):
        raise RemoteAuthError("session expired")


def test_publish_anchors_blobs(ctx: SyncContext, store: InMemRemoteStore, make_tree, tmp_path: Path):
    root = make_tree({"a.txt": b"hello", "b.txt": b"world"})
    m = build_snapshot(ctx, root).manifest
    ref = m.get("a.txt").content_ref
    with pytest.raises(RemoteNotFoundError):
        store.fetch_blob(ref)

    result = publish_snapshot(ctx, m, manifest_dir=tmp_path / "manifests")
    assert store.fetch_blob(ref) == b"hello"

    rid = RecordId.parse(result.identifier)
    assert rid.collection == MANIFEST_TYPE
    assert store.get_record(result.identifier)["$type"] == MANIFEST_TYPE

    assert result.manifest_path == tmp_path / "manifests" / "project-manifest.json"
    assert load_manifest(result.manifest_path) == m


def test_publish_without_local_copy(ctx: SyncContext, make_tree, tmp_path: Path):
    m = build_snapshot(ctx, make_tree({"a.txt": b"hello"})).manifest
    result = publish_snapshot(ctx, m, manifest_dir=None)
    assert result.manifest_path is None
    assert not list(tmp_path.glob("*-manifest.json"))


def test_publish_into_other_collection(ctx: SyncContext, store: InMemRemoteStore, make_tree):
    ctx.collection = "com.example.snapshots"
    m = build_snapshot(ctx, make_tree({"a.txt": b"hello"})).manifest
    result = publish_snapshot(ctx, m, manifest_dir=None)
    assert RecordId.parse(result.identifier).collection == "com.example.snapshots"
    assert store.get_record(result.identifier)["$type"] == "com.example.snapshots"


def test_record_failure_writes_nothing(make_tree, tmp_path: Path):
    store = ReadOnlyStore()
    ctx = SyncContext(store=store, clock=TickingClock())
    m = build_snapshot(ctx, make_tree({"a.txt": b"hello"})).manifest
    with pytest.raises(PublishError) as e:
        publish_snapshot(ctx, m, manifest_dir=tmp_path / "manifests")
    assert e.value.step == "create record"
    assert isinstance(e.value.__cause__, RemoteAuthError)
    assert not (tmp_path / "manifests").exists()


def test_local_write_failure(ctx: SyncContext, make_tree, tmp_path: Path):
    m = build_snapshot(ctx, make_tree({"a.txt": b"hello"})).manifest
    blocker = tmp_path / "blocker"
    blocker.write_text("i am a file, not a directory")
    with pytest.raises(PublishError) as e:
        publish_snapshot(ctx, m, manifest_dir=blocker)
    assert e.value.step == "write local manifest"
