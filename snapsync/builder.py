"""Snapshot builder: the upload path.

Walks a directory, compares every file against the previous manifest of the
same name and uploads only content that the previous manifest doesn't
already reference. Runs strictly one file at a time.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Tuple, Union

from .console import logger, tape_progress, user_info
from .context import SymlinkPolicy, SyncContext
from .digest import ContentRef
from .errors import LocalIOError, SyncError, UploadAbortedError
from .manifest import FileEntry, Manifest
from .util import chunked_read, human_size


@dataclass
class BuildResult:
    manifest: Manifest
    uploaded: List[str] = field(default_factory=list)
    """ Paths whose content was sent to the store (or would be, on a dry run). """
    reused: List[str] = field(default_factory=list)
    """ Paths whose entry was carried over from the previous manifest. """
    deduplicated: List[str] = field(default_factory=list)
    """ New paths whose content was already uploaded earlier in the same run. """

    @property
    def upload_count(self) -> int:
        return len(self.uploaded)


def walk_files(root: Path, policy: SymlinkPolicy = SymlinkPolicy.REJECT) -> Iterator[Tuple[str, Path]]:
    """Yields ``(relpath, path)`` for every regular file under root, sorted by relpath.

    Raises:
        LocalIOError: a directory can't be listed, a symlink was found under
            the REJECT policy, or a followed link is broken or loops.
    """
    root = Path(root)
    found: List[Tuple[str, Path]] = []
    # directories on the path from root to the one being listed
    ancestors: Set[Tuple[int, int]] = set()

    def rec(d: Path):
        try:
            st = d.stat()
            children = sorted(d.iterdir())
        except OSError as e:
            raise LocalIOError(f"could not list {d}: {e}") from e
        key = (st.st_dev, st.st_ino)
        if key in ancestors:
            raise LocalIOError(f"directory cycle through {d}")
        ancestors.add(key)
        try:
            walk_children(children)
        finally:
            ancestors.discard(key)

    def walk_children(children: List[Path]):
        for child in children:
            rel = child.relative_to(root).as_posix()
            if child.is_symlink():
                if policy is SymlinkPolicy.REJECT:
                    raise LocalIOError(
                        f"{rel} is a symlink; directory snapshots reject symlinks unless symlinks=follow"
                    )
                if not child.exists():
                    raise LocalIOError(f"{rel} is a broken symlink")
            if child.is_dir():
                rec(child)
            elif child.is_file():
                found.append((rel, child))
            else:
                logger.debug(f"skipping {rel}: not a regular file")

    rec(root)
    found.sort(key=lambda x: x[0])
    yield from found


def read_file(path: Path) -> bytes:
    try:
        size = path.stat().st_size
        with open(path, "rb") as f:
            with tape_progress(f, size, description="Reading") as tape:
                return b"".join(chunked_read(tape))
    except OSError as e:
        raise LocalIOError(f"could not read {path}: {e}") from e


def build_snapshot(
    ctx: SyncContext,
    root: Union[str, Path],
    previous: Optional[Manifest] = None,
    name: Optional[str] = None,
    dry_run: bool = False,
) -> BuildResult:
    """Snapshot the directory at root, uploading only what changed since previous.

    A file is skipped when previous has an entry at the same relative path with
    the same ContentRef; that entry is reused as is (including ``uploaded_at``).

    Files are hashed in chunks first; only content that has to be sent is
    read into memory.

    With dry_run nothing is uploaded: the result says what an upload would send.

    Raises:
        LocalIOError: root isn't a directory or can't be walked.
        UploadAbortedError: reading or uploading a file failed. Blobs uploaded
            before the failure stay in the store; no manifest is produced.
    """
    root = Path(root)
    if not root.is_dir():
        raise LocalIOError(f"{root} is not a directory")
    root_path = root.resolve()
    name = name or root_path.name or "root"
    if previous is not None and previous.name != name:
        logger.warning(f"previous snapshot is named {previous.name!r}, not {name!r}")
    prev_files = previous.by_path() if previous is not None else {}
    # refs sent during this run, by cid
    seen: Dict[str, ContentRef] = {}

    result_files: List[FileEntry] = []
    uploaded: List[str] = []
    reused: List[str] = []
    deduplicated: List[str] = []

    for relpath, path in walk_files(root, ctx.symlinks):
        try:
            local_ref = ctx.hash_file(path)
        except OSError as e:
            err = LocalIOError(f"could not read {path}: {e}")
            raise UploadAbortedError(relpath, "read", err) from e
        prev = prev_files.get(relpath)
        if prev is not None and prev.content_ref == local_ref:
            logger.debug(f"Skipping {relpath} (unchanged)")
            result_files.append(prev)
            reused.append(relpath)
            continue
        if local_ref.cid in seen:
            ref = seen[local_ref.cid]
            deduplicated.append(relpath)
        elif dry_run:
            ref = local_ref
            seen[local_ref.cid] = ref
            uploaded.append(relpath)
        else:
            try:
                data = read_file(path)
            except SyncError as e:
                raise UploadAbortedError(relpath, "read", e) from e
            user_info(f"Uploading {relpath} ({human_size(len(data))})")
            try:
                ref = ctx.store.create_blob(data, mime_type=local_ref.mime_type)
            except (SyncError, OSError, ValueError) as e:
                raise UploadAbortedError(relpath, "upload", e) from e
            if ref != local_ref:
                logger.warning(
                    f"store returned {ref.cid} for {relpath} but it hashes to {local_ref.cid}; "
                    f"unchanged-file detection won't work for this store"
                )
            seen[local_ref.cid] = ref
            uploaded.append(relpath)
        result_files.append(
            FileEntry(relpath=relpath, content_ref=ref, uploaded_at=ctx.now())
        )

    manifest = Manifest.create(
        name=name,
        root_path=str(root_path),
        files=result_files,
        created_at=ctx.now(),
    )
    return BuildResult(
        manifest=manifest,
        uploaded=uploaded,
        reused=reused,
        deduplicated=deduplicated,
    )
