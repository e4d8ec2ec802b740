import copy
from typing import Any, Dict, List, Optional

from ..digest import DEFAULT_MIME_TYPE, ContentRef, compute_ref
from ..errors import RemoteNotFoundError
from ..util import RecordKeyClock, human_size
from .abstract import AbstractRemoteStore, Record, RecordId, iter_blob_refs


class InMemRemoteStore(AbstractRemoteStore):
    """Keeps blobs and records in dictionaries.

    With ``enforce_anchoring`` set, blobs that no record links to yet can't be
    fetched, the same as on an AT Protocol server.
    """

    blobs: Dict[str, bytes]
    records: Dict[str, Any]
    max_size: Optional[int]

    def __init__(
        self,
        repo: str = "did:example:mem",
        hash_algorithm: str = "blake3",
        enforce_anchoring: bool = True,
        max_size: Optional[int] = 2**26,
    ):
        self.repo = repo
        self.hash_algorithm = hash_algorithm
        self.enforce_anchoring = enforce_anchoring
        self.max_size = max_size
        self.blobs = {}
        self.records = {}
        self.anchored: set[str] = set()
        self.upload_count = 0
        """ Number of create_blob calls that stored something. """
        self.keys = RecordKeyClock()

    @property
    def id(self):
        return f"mem://{self.repo}"

    def create_blob(self, data: bytes, mime_type: str = DEFAULT_MIME_TYPE) -> ContentRef:
        if self.max_size is not None and len(data) > self.max_size:
            raise ValueError(
                f"Adding an in-mem blob with size {human_size(len(data))} is too large (max is set to {human_size(self.max_size)})."
            )
        ref = compute_ref(data, mime_type=mime_type, algorithm=self.hash_algorithm)
        self.blobs[ref.cid] = bytes(data)
        self.upload_count += 1
        return ref

    def fetch_blob(self, ref: ContentRef) -> bytes:
        if ref.cid not in self.blobs:
            raise RemoteNotFoundError(f"No blob with cid {ref.cid}")
        if self.enforce_anchoring and ref.cid not in self.anchored:
            raise RemoteNotFoundError(f"Blob {ref.cid} is not referenced by any record")
        return self.blobs[ref.cid]

    def create_record(self, collection: str, body: Any) -> str:
        identifier = str(RecordId(self.repo, collection, self.keys.next()))
        self.records[identifier] = copy.deepcopy(body)
        self.anchored.update(c for c in iter_blob_refs(body) if c in self.blobs)
        return identifier

    def list_records(self, collection: str, limit: int = 100) -> List[Record]:
        rs = [
            Record(identifier=k, body=copy.deepcopy(v))
            for k, v in self.records.items()
            if RecordId.parse(k).collection == collection
        ]
        # newest key first, like listRecords on a PDS
        rs.sort(key=lambda r: RecordId.parse(r.identifier).rkey, reverse=True)
        return rs[:limit]

    def get_record(self, identifier: str) -> Any:
        if identifier not in self.records:
            raise RemoteNotFoundError(f"No record {identifier}")
        return copy.deepcopy(self.records[identifier])

    def delete_record(self, identifier: str) -> None:
        if identifier not in self.records:
            raise RemoteNotFoundError(f"No record {identifier}")
        del self.records[identifier]
