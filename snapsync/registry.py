from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional, Tuple

from .context import SyncContext
from .locator import snapshot_records
from .manifest import Manifest
from .util import format_timestamp


@dataclass(frozen=True)
class SnapshotSummary:
    identifier: str
    name: str
    file_count: int
    total_size: int
    created_at: datetime

    @classmethod
    def of_manifest(cls, identifier: str, manifest: Manifest):
        return cls(
            identifier=identifier,
            name=manifest.name,
            file_count=len(manifest.files),
            total_size=manifest.total_size,
            created_at=manifest.created_at,
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "name": self.name,
            "fileCount": self.file_count,
            "totalSize": self.total_size,
            "createdAt": format_timestamp(self.created_at),
        }


def list_snapshots(ctx: SyncContext, name: Optional[str] = None) -> List[SnapshotSummary]:
    """Snapshot records of the collection, newest first. Malformed records are skipped."""
    return [
        SnapshotSummary.of_manifest(identifier, manifest)
        for identifier, manifest in snapshot_records(ctx)
        if name is None or manifest.name == name
    ]


def delete_snapshot(ctx: SyncContext, identifier: str) -> None:
    """Delete the snapshot record.

    Only the pointer goes away: the blobs stay in the store and any saved
    copy of the manifest can still be restored.
    """
    ctx.store.delete_record(identifier)


def blob_links(ctx: SyncContext, manifest: Manifest) -> List[Tuple[str, Optional[str]]]:
    """``(relpath, url)`` for every file; url is None when the store can't serve blobs directly."""
    return [(f.relpath, ctx.store.blob_url(f.content_ref)) for f in manifest.files]
