"""Resolving a snapshot reference to a concrete manifest.

A reference is one of

- a record identifier (``at://...``), fetched from the registry;
- a path to a local manifest JSON file;
- a snapshot name, meaning the newest record with that name;
- nothing, meaning the newest record of any name.

"Newest" is decided by ``createdAt`` alone: when two uploads of the same
directory race, whichever manifest claims the later time wins.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import List, Literal, Optional, Tuple

from .console import logger
from .context import SyncContext
from .errors import ManifestParseError, RemoteNotFoundError
from .manifest import Manifest, load_manifest
from .store import is_record_identifier


@dataclass
class LocatedSnapshot:
    manifest: Manifest
    identifier: Optional[str]
    """ Record identifier, None when the manifest came from a local file. """
    origin: Literal["record", "file", "latest"]


def fetch_manifest(ctx: SyncContext, identifier: str) -> Manifest:
    return Manifest.from_json(ctx.store.get_record(identifier))


def snapshot_records(ctx: SyncContext) -> List[Tuple[str, Manifest]]:
    """All parseable snapshot records as ``(identifier, manifest)``, newest first.

    Ties on ``created_at`` are broken by identifier so the order is stable.
    """
    out = []
    for record in ctx.store.list_records(ctx.collection, limit=ctx.list_limit):
        try:
            out.append((record.identifier, Manifest.from_json(record.body)))
        except ManifestParseError as e:
            logger.warning(f"skipping malformed snapshot record {record.identifier}: {e}")
    out.sort(key=lambda x: (x[1].created_at, x[0]), reverse=True)
    return out


def find_latest(ctx: SyncContext, name: Optional[str] = None) -> Optional[Tuple[str, Manifest]]:
    for identifier, manifest in snapshot_records(ctx):
        if name is None or manifest.name == name:
            return identifier, manifest
    return None


def find_previous(ctx: SyncContext, name: str) -> Optional[Manifest]:
    """The newest manifest named name, or None when there is none yet."""
    found = find_latest(ctx, name)
    if found is None:
        return None
    return found[1]


def looks_like_manifest_file(source: str) -> bool:
    p = Path(source)
    return p.is_file() or source.endswith(".json")


def locate_snapshot(
    ctx: SyncContext,
    source: Optional[str] = None,
    name: Optional[str] = None,
) -> LocatedSnapshot:
    """Resolve a snapshot reference. See module docstring.

    Raises:
        RemoteNotFoundError: no snapshot matches, including a manifest path that doesn't exist.
        ManifestParseError: the record or file is not a valid manifest.
        LocalIOError: the manifest file can't be read.
    """
    if source is not None:
        if is_record_identifier(source):
            return LocatedSnapshot(
                manifest=fetch_manifest(ctx, source), identifier=source, origin="record"
            )
        if looks_like_manifest_file(source):
            if not Path(source).exists():
                raise RemoteNotFoundError(f"manifest file {source} does not exist")
            return LocatedSnapshot(
                manifest=load_manifest(source), identifier=None, origin="file"
            )
        raise RemoteNotFoundError(
            f"{source!r} is neither a record identifier nor a manifest file"
        )
    found = find_latest(ctx, name)
    if found is None:
        if name is None:
            raise RemoteNotFoundError("no snapshot records found")
        raise RemoteNotFoundError(f"no snapshot named {name!r} found")
    identifier, manifest = found
    return LocatedSnapshot(manifest=manifest, identifier=identifier, origin="latest")
