from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .console import user_info
from .context import SyncContext
from .errors import PublishError, SyncError
from .manifest import Manifest, manifest_filename, save_manifest


@dataclass
class PublishResult:
    identifier: str
    manifest_path: Optional[Path]


def manifest_body(ctx: SyncContext, manifest: Manifest) -> dict:
    body = manifest.to_json()
    body["$type"] = ctx.collection
    return body


def publish_snapshot(
    ctx: SyncContext,
    manifest: Manifest,
    manifest_dir: Optional[Union[str, Path]] = ".",
) -> PublishResult:
    """Store the manifest as a new snapshot record and also as ``<name>-manifest.json`` in manifest_dir.

    Creating the record is what anchors the manifest's blobs on stores with
    an anchoring rule. The local copy keeps the snapshot restorable if the
    record is lost or deleted. Pass ``manifest_dir=None`` to skip it.

    Raises:
        PublishError: the record or the local file could not be written.
    """
    try:
        identifier = ctx.store.create_record(ctx.collection, manifest_body(ctx, manifest))
    except SyncError as e:
        raise PublishError("create record", e) from e
    user_info(f"Manifest saved as record {identifier}")

    manifest_path = None
    if manifest_dir is not None:
        try:
            manifest_path = save_manifest(
                manifest, Path(manifest_dir) / manifest_filename(manifest.name)
            )
        except SyncError as e:
            raise PublishError("write local manifest", e) from e
        user_info(f"Local manifest: {manifest_path}")
    return PublishResult(identifier=identifier, manifest_path=manifest_path)
