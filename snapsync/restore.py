"""Restore engine: the download path.

Every file is attempted even when earlier ones fail; a partial restore is
more useful than none. Writing the same manifest into the same destination
twice is safe, since identical refs always yield identical bytes.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple, Union

from .console import logger, user_info, user_warning
from .context import SyncContext
from .errors import (
    LocalIOError,
    ManifestParseError,
    PartialRestoreError,
    RemoteError,
    SyncError,
)
from .digest import compute_ref
from .manifest import FileEntry, Manifest, check_relpath
from .util import human_size


@dataclass
class RestoreResult:
    destination: Path
    total: int
    restored: List[str] = field(default_factory=list)
    failures: List[Tuple[str, SyncError]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return len(self.failures) == 0

    def raise_for_failures(self):
        if self.failures:
            raise PartialRestoreError(self.failures, self.total)


def safe_destination(destination: Path, relpath: str) -> Path:
    """Where relpath goes under destination. Raises ManifestParseError if that would be outside it."""
    check_relpath(relpath)
    path = destination / relpath
    if not path.resolve().is_relative_to(destination.resolve()):
        raise ManifestParseError(f"modification of files outside {destination} is not allowed: {relpath}")
    return path


def restore_file(ctx: SyncContext, entry: FileEntry, destination: Path) -> int:
    """Fetch one entry and write it. Returns the number of bytes written."""
    path = safe_destination(destination, entry.relpath)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise LocalIOError(f"could not create {path.parent}: {e}") from e
    data = ctx.store.fetch_blob(entry.content_ref)
    actual = compute_ref(data, algorithm=entry.content_ref.algorithm)
    if actual != entry.content_ref:
        # we downloaded bad
        raise RemoteError(
            f"content mismatch for {entry.relpath}: expected {entry.content_ref.cid} ({entry.content_ref.size} bytes), "
            f"got {actual.cid} ({actual.size} bytes)"
        )
    try:
        if path.is_symlink():
            path.unlink()
        path.write_bytes(data)
    except OSError as e:
        raise LocalIOError(f"could not write {path}: {e}") from e
    return len(data)


def restore_snapshot(
    ctx: SyncContext, manifest: Manifest, destination: Union[str, Path]
) -> RestoreResult:
    """Recreate the manifest's files under destination.

    Failures are collected per file in the result rather than raised; call
    `RestoreResult.raise_for_failures` to turn them into a PartialRestoreError.
    Files in destination that the manifest doesn't mention are left alone.
    """
    destination = Path(destination)
    result = RestoreResult(destination=destination, total=len(manifest.files))
    try:
        destination.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        err = LocalIOError(f"could not create {destination}: {e}")
        for entry in manifest.files:
            result.failures.append((entry.relpath, err))
        user_warning(str(err))
        return result
    for entry in manifest.files:
        try:
            n = restore_file(ctx, entry, destination)
        except SyncError as e:
            user_warning(f"Failed {entry.relpath}: {e}")
            result.failures.append((entry.relpath, e))
            continue
        except ValueError as e:
            # unknown hash algorithm in a ref we didn't make
            err = ManifestParseError(f"{entry.relpath}: {e}")
            user_warning(f"Failed {entry.relpath}: {err}")
            result.failures.append((entry.relpath, err))
            continue
        logger.debug(f"Restored {entry.relpath} ({human_size(n)})")
        result.restored.append(entry.relpath)
    user_info(
        f"Restored {len(result.restored)} of {result.total} files into {destination}"
    )
    return result
