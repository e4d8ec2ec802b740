import json
from pathlib import Path
from stat import S_IREAD, S_IRGRP
from typing import Any, List, Optional
import logging

from ..digest import DEFAULT_MIME_TYPE, ContentRef, compute_ref
from ..errors import LocalIOError, RemoteNotFoundError
from ..util import RecordKeyClock
from .abstract import AbstractRemoteStore, Record, RecordId

logger = logging.getLogger("snapsync")


class LocalDirRemoteStore(AbstractRemoteStore):
    """A store that lives in a directory on this machine.

    Layout::

        <root>/blobs/<cid>
        <root>/records/<collection>/<rkey>.json

    Useful for offline snapshots and for syncing through a shared drive.
    Blobs are always retrievable; there is no anchoring rule.
    """

    repo = "local"

    def __init__(self, root: Path, hash_algorithm: str = "blake3"):
        self.root = Path(root)
        self.hash_algorithm = hash_algorithm
        self.keys = RecordKeyClock()

    @property
    def id(self):
        return self.root.as_uri()

    @property
    def blobs_dir(self) -> Path:
        return self.root / "blobs"

    @property
    def records_dir(self) -> Path:
        return self.root / "records"

    def blob_path(self, cid: str) -> Path:
        """Gets the place where the blob would be stored. Note that this doesn't guarantee existence."""
        return self.blobs_dir / cid

    def _record_path(self, identifier: str) -> Path:
        rid = RecordId.parse(identifier)
        if rid.repo != self.repo:
            raise RemoteNotFoundError(f"{identifier} is not a record of this store")
        if "/" in rid.rkey or rid.rkey.startswith("."):
            raise RemoteNotFoundError(f"invalid record key in {identifier}")
        return self.records_dir / rid.collection / f"{rid.rkey}.json"

    def create_blob(self, data: bytes, mime_type: str = DEFAULT_MIME_TYPE) -> ContentRef:
        ref = compute_ref(data, mime_type=mime_type, algorithm=self.hash_algorithm)
        cp = self.blob_path(ref.cid)
        if cp.exists():
            logger.debug(f"Blob is already stored. {ref.cid}")
            return ref
        try:
            self.blobs_dir.mkdir(parents=True, exist_ok=True)
            tmp = cp.with_name(cp.name + ".partial")
            tmp.write_bytes(data)
            tmp.replace(cp)
            # blobs are read only.
            cp.chmod(S_IREAD | S_IRGRP)
        except OSError as e:
            raise LocalIOError(f"could not store blob {ref.cid} in {self.root}: {e}") from e
        return ref

    def fetch_blob(self, ref: ContentRef) -> bytes:
        p = self.blob_path(ref.cid)
        try:
            return p.read_bytes()
        except FileNotFoundError as e:
            raise RemoteNotFoundError(f"No blob {ref.cid}") from e
        except OSError as e:
            raise LocalIOError(f"could not read blob {ref.cid}: {e}") from e

    def create_record(self, collection: str, body: Any) -> str:
        identifier = str(RecordId(self.repo, collection, self.keys.next()))
        p = self._record_path(identifier)
        try:
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text(json.dumps(body, indent=2))
        except OSError as e:
            raise LocalIOError(f"could not write record {identifier}: {e}") from e
        return identifier

    def list_records(self, collection: str, limit: int = 100) -> List[Record]:
        d = self.records_dir / collection
        if not d.is_dir():
            return []
        paths = sorted(d.glob("*.json"), key=lambda p: p.stem, reverse=True)
        out = []
        for p in paths[:limit]:
            identifier = str(RecordId(self.repo, collection, p.stem))
            try:
                body = json.loads(p.read_text())
            except (OSError, ValueError) as e:
                logger.warning(f"skipping unreadable record {p}: {e}")
                continue
            out.append(Record(identifier=identifier, body=body))
        return out

    def get_record(self, identifier: str) -> Any:
        p = self._record_path(identifier)
        try:
            return json.loads(p.read_text())
        except FileNotFoundError as e:
            raise RemoteNotFoundError(f"No record {identifier}") from e
        except (OSError, ValueError) as e:
            raise LocalIOError(f"could not read record {identifier}: {e}") from e

    def delete_record(self, identifier: str) -> None:
        p = self._record_path(identifier)
        try:
            p.unlink()
        except FileNotFoundError as e:
            raise RemoteNotFoundError(f"No record {identifier}") from e
        except OSError as e:
            raise LocalIOError(f"could not delete record {identifier}: {e}") from e

    def blob_url(self, ref: ContentRef) -> Optional[str]:
        return self.blob_path(ref.cid).resolve().as_uri()
