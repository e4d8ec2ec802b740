from dataclasses import dataclass, field
from datetime import datetime
import json
from pathlib import Path, PurePosixPath
from typing import Any, Iterator, Optional, Tuple, Union

from .digest import ContentRef
from .errors import LocalIOError, ManifestParseError
from .util import format_timestamp, parse_timestamp

MANIFEST_TYPE = "ai.focus.sync.directory"
""" Record collection (and ``$type``) that directory manifests are stored under. """


def manifest_filename(name: str) -> str:
    return f"{name}-manifest.json"


def check_relpath(relpath: str) -> str:
    """Raise ManifestParseError unless relpath is a relative POSIX path that stays inside its root."""
    if not isinstance(relpath, str) or relpath == "":
        raise ManifestParseError(f"invalid file path {relpath!r}")
    p = PurePosixPath(relpath)
    if p.is_absolute() or "\\" in relpath or ".." in p.parts or relpath.startswith("/"):
        raise ManifestParseError(f"file path {relpath!r} escapes the snapshot root")
    return relpath


@dataclass(frozen=True)
class FileEntry:
    """One file of a snapshot."""

    relpath: str
    """ Path relative to the snapshot root, always with forward slashes. """

    content_ref: ContentRef

    uploaded_at: datetime
    """ When the content was uploaded. Carried over unchanged when the file is reused. """

    @property
    def size(self) -> int:
        return self.content_ref.size

    def to_json(self) -> dict[str, Any]:
        return {
            "path": self.relpath,
            "blobRef": self.content_ref.to_json(),
            "size": self.content_ref.size,
            "mimeType": self.content_ref.mime_type,
            "uploadedAt": format_timestamp(self.uploaded_at),
        }

    @classmethod
    def from_json(cls, j: Any) -> "FileEntry":
        if not isinstance(j, dict):
            raise ManifestParseError(f"expected a file entry object, got {j!r}")
        relpath = check_relpath(j.get("path"))  # type: ignore
        if "blobRef" not in j:
            raise ManifestParseError(f"file entry {relpath} has no blobRef")
        content_ref = ContentRef.from_json(
            j["blobRef"], size=j.get("size"), mime_type=j.get("mimeType")
        )
        try:
            uploaded_at = parse_timestamp(j.get("uploadedAt"))  # type: ignore
        except ValueError as e:
            raise ManifestParseError(f"file entry {relpath} has a bad uploadedAt") from e
        return cls(relpath=relpath, content_ref=content_ref, uploaded_at=uploaded_at)


@dataclass(frozen=True)
class Manifest:
    """The state of a directory at one point in time.

    Manifests are never mutated; each upload run builds a new one.
    Invariants (checked on construction):

    - ``total_size`` is the sum of the file sizes.
    - no two entries share a ``relpath``.
    """

    name: str
    root_path: str
    files: Tuple[FileEntry, ...]
    total_size: int
    created_at: datetime

    def __post_init__(self):
        object.__setattr__(self, "files", tuple(self.files))
        seen = set()
        for f in self.files:
            if f.relpath in seen:
                raise ManifestParseError(f"duplicate file path {f.relpath!r} in {self.name}")
            seen.add(f.relpath)
        actual = sum(f.content_ref.size for f in self.files)
        if actual != self.total_size:
            raise ManifestParseError(
                f"manifest {self.name} claims totalSize {self.total_size} but its files add up to {actual}"
            )

    @classmethod
    def create(cls, name: str, root_path: str, files, created_at: datetime) -> "Manifest":
        files = tuple(files)
        return cls(
            name=name,
            root_path=root_path,
            files=files,
            total_size=sum(f.content_ref.size for f in files),
            created_at=created_at,
        )

    def __iter__(self) -> Iterator[FileEntry]:
        return iter(self.files)

    def __len__(self):
        return len(self.files)

    def get(self, relpath: str) -> Optional[FileEntry]:
        for f in self.files:
            if f.relpath == relpath:
                return f
        return None

    def by_path(self) -> dict[str, FileEntry]:
        return {f.relpath: f for f in self.files}

    def to_json(self) -> dict[str, Any]:
        return {
            "$type": MANIFEST_TYPE,
            "name": self.name,
            "rootPath": self.root_path,
            "files": [f.to_json() for f in self.files],
            "totalSize": self.total_size,
            "createdAt": format_timestamp(self.created_at),
        }

    @classmethod
    def from_json(cls, j: Any) -> "Manifest":
        """Parse a record body or manifest file.

        Raises:
            ManifestParseError: the body is not a well-formed manifest.
        """
        if not isinstance(j, dict):
            raise ManifestParseError(f"expected a manifest object, got {type(j).__name__}")
        name = j.get("name")
        if not isinstance(name, str) or name == "":
            raise ManifestParseError("manifest has no name")
        files = j.get("files")
        if not isinstance(files, list):
            raise ManifestParseError(f"manifest {name} has no file list")
        total_size = j.get("totalSize")
        if isinstance(total_size, bool) or not isinstance(total_size, int):
            raise ManifestParseError(f"manifest {name} has invalid totalSize {total_size!r}")
        try:
            created_at = parse_timestamp(j.get("createdAt"))  # type: ignore
        except ValueError as e:
            raise ManifestParseError(f"manifest {name} has a bad createdAt") from e
        return cls(
            name=name,
            root_path=str(j.get("rootPath", "")),
            files=tuple(FileEntry.from_json(f) for f in files),
            total_size=total_size,
            created_at=created_at,
        )


def save_manifest(manifest: Manifest, path: Union[str, Path]) -> Path:
    """Write the manifest as pretty-printed JSON. Returns the path written."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(manifest.to_json(), indent=2))
    except OSError as e:
        raise LocalIOError(f"could not write manifest {path}: {e}") from e
    return path


def load_manifest(path: Union[str, Path]) -> Manifest:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise LocalIOError(f"manifest file {path} does not exist") from e
    except (OSError, UnicodeDecodeError) as e:
        raise LocalIOError(f"could not read manifest {path}: {e}") from e
    try:
        j = json.loads(text)
    except json.JSONDecodeError as e:
        raise ManifestParseError(f"{path} is not valid JSON: {e}") from e
    return Manifest.from_json(j)
