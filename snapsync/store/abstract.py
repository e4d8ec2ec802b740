from dataclasses import dataclass
from typing import Any, Iterator, List, Optional

from ..digest import ContentRef, DEFAULT_MIME_TYPE
from ..errors import RemoteNotFoundError


@dataclass(frozen=True)
class RecordId:
    """Parsed ``at://<repo>/<collection>/<rkey>`` record identifier."""

    repo: str
    collection: str
    rkey: str

    def __str__(self):
        return f"at://{self.repo}/{self.collection}/{self.rkey}"

    @classmethod
    def parse(cls, identifier: str) -> "RecordId":
        """Raises RemoteNotFoundError if identifier can't name a record."""
        if not is_record_identifier(identifier):
            raise RemoteNotFoundError(f"not a record identifier: {identifier!r}")
        parts = identifier[len("at://") :].split("/")
        if len(parts) != 3 or not all(parts):
            raise RemoteNotFoundError(
                f"record identifier {identifier!r} should look like at://<repo>/<collection>/<rkey>"
            )
        repo, collection, rkey = parts
        return cls(repo=repo, collection=collection, rkey=rkey)


def is_record_identifier(s: str) -> bool:
    return isinstance(s, str) and s.startswith("at://")


@dataclass(frozen=True)
class Record:
    identifier: str
    body: Any


def iter_blob_refs(body: Any) -> Iterator[str]:
    """All the blob cids a record body links to, wherever they are nested."""
    if isinstance(body, dict):
        if body.get("$type") == "blob":
            ref = body.get("ref")
            if isinstance(ref, dict) and isinstance(ref.get("$link"), str):
                yield ref["$link"]
            elif isinstance(ref, str):
                yield ref
            return
        for v in body.values():
            yield from iter_blob_refs(v)
    elif isinstance(body, list):
        for v in body:
            yield from iter_blob_refs(v)


class AbstractRemoteStore:
    """Content-addressed blob storage plus a registry of versioned records.

    Blobs are immutable and named by their ContentRef. Records are JSON bodies
    stored under an identifier chosen by the store.

    Anchoring: a store may refuse to serve a blob until some record links to
    it. Records link to blobs through the ``{"$type": "blob", ...}`` shape
    produced by `ContentRef.to_json`.
    """

    hash_algorithm: str = "blake3"
    """ The algorithm the store derives cids with. Local refs must be computed the same way. """

    @property
    def id(self) -> str:
        """Unique resource identifier for the store."""
        raise NotImplementedError()

    def create_blob(self, data: bytes, mime_type: str = DEFAULT_MIME_TYPE) -> ContentRef:
        """Store the bytes, returning their ContentRef.

        Raises:
            NetworkError, RateLimitedError, RemoteAuthError
        """
        raise NotImplementedError()

    def fetch_blob(self, ref: ContentRef) -> bytes:
        """Raises:
        RemoteNotFoundError, NetworkError
        """
        raise NotImplementedError()

    def create_record(self, collection: str, body: Any) -> str:
        """Persist a new record, returning its identifier.

        Raises:
            RemoteAuthError, NetworkError
        """
        raise NotImplementedError()

    def list_records(self, collection: str, limit: int = 100) -> List[Record]:
        """At most ``limit`` records of the collection. The order is up to the store."""
        raise NotImplementedError()

    def get_record(self, identifier: str) -> Any:
        """Raises:
        RemoteNotFoundError
        """
        raise NotImplementedError()

    def delete_record(self, identifier: str) -> None:
        """Remove the record. Never removes the blobs it links to."""
        raise NotImplementedError()

    def blob_url(self, ref: ContentRef) -> Optional[str]:
        """A URL the blob can be fetched from without this client, if there is one."""
        return None
