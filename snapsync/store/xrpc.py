import logging
from typing import Any, List, Optional
from urllib.parse import urlencode

import requests

from ..digest import DEFAULT_MIME_TYPE, ContentRef
from ..errors import (
    ManifestParseError,
    NetworkError,
    RateLimitedError,
    RemoteAuthError,
    RemoteError,
    RemoteNotFoundError,
)

from .abstract import AbstractRemoteStore, Record, RecordId

logger = logging.getLogger("snapsync")

AUTH_ERRORS = {"ExpiredToken", "InvalidToken", "AuthRequired", "AuthenticationRequired"}
NOT_FOUND_ERRORS = {"RecordNotFound", "BlobNotFound", "RepoNotFound", "NotFound"}

PAGE_SIZE = 100
""" listRecords refuses limits above this. """


def raise_for_xrpc_status(r: requests.Response, what: str) -> None:
    """Turn an XRPC error response into the matching RemoteError."""
    if r.ok:
        return
    error, message = None, None
    try:
        j = r.json()
    except ValueError:
        j = None
    if isinstance(j, dict):
        error, message = j.get("error"), j.get("message")
    detail = f"{what}: HTTP {r.status_code}"
    if error or message:
        detail += f" {error or ''} {message or ''}".rstrip()
    if r.status_code in (401, 403) or error in AUTH_ERRORS:
        raise RemoteAuthError(detail)
    if r.status_code == 404 or error in NOT_FOUND_ERRORS:
        raise RemoteNotFoundError(detail)
    if r.status_code == 429:
        retry_after = r.headers.get("Retry-After") or r.headers.get("ratelimit-reset")
        try:
            ra = float(retry_after) if retry_after is not None else None
        except ValueError:
            ra = None
        raise RateLimitedError(detail, retry_after=ra)
    if r.status_code >= 500:
        raise NetworkError(detail)
    raise RemoteError(detail)


class AtprotoRemoteStore(AbstractRemoteStore):
    """Blobs and records on an AT Protocol personal data server, over XRPC.

    Blobs uploaded here are only served by ``com.atproto.sync.getBlob`` once a
    record links to them; until then they are temporary and get cleaned up by
    the server.

    Reference: https://atproto.com/specs/xrpc
    """

    hash_algorithm = "sha2-256"

    def __init__(
        self,
        service_url: str,
        identifier: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ):
        self.service_url = service_url.rstrip("/")
        self.identifier = identifier
        self.password = password
        self.timeout = timeout
        self.session = session or requests.Session()
        self.access_jwt: Optional[str] = None
        self.did: Optional[str] = None

    @property
    def id(self):
        return self.service_url

    def request(
        self, method: str, nsid: str, what: str, auth: bool = True, **kwargs
    ) -> requests.Response:
        """Sends an XRPC request, adding the session's bearer token.

        Raises:
          NetworkError: if we can't reach the server.
          RemoteError: for any error status, see `raise_for_xrpc_status`.
        """
        headers = dict(kwargs.pop("headers", {}))
        if auth:
            self.login()
            headers["Authorization"] = f"Bearer {self.access_jwt}"
        url = f"{self.service_url}/xrpc/{nsid}"
        try:
            r = self.session.request(
                method, url, headers=headers, timeout=self.timeout, **kwargs
            )
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as err:
            raise NetworkError(f"{what}: could not reach {self.service_url}: {err}") from err
        except requests.exceptions.RequestException as err:
            raise NetworkError(f"{what}: {err}") from err
        raise_for_xrpc_status(r, what)
        return r

    def login(self) -> str:
        """Create a session if there isn't one. Returns the account's DID."""
        if self.access_jwt is not None and self.did is not None:
            return self.did
        if not self.identifier or not self.password:
            raise RemoteAuthError(
                "no handle or password configured; set SNAPSYNC_HANDLE and SNAPSYNC_PASSWORD"
            )
        r = self.request(
            "POST",
            "com.atproto.server.createSession",
            "login",
            auth=False,
            json={"identifier": self.identifier, "password": self.password},
        )
        j = r.json()
        self.access_jwt = j["accessJwt"]
        self.did = j["did"]
        logger.debug(f"Logged in as {j.get('handle', self.identifier)} ({self.did})")
        return self.did

    def create_blob(self, data: bytes, mime_type: str = DEFAULT_MIME_TYPE) -> ContentRef:
        r = self.request(
            "POST",
            "com.atproto.repo.uploadBlob",
            "upload blob",
            data=data,
            headers={"Content-Type": mime_type},
        )
        try:
            return ContentRef.from_json(r.json()["blob"])
        except (ValueError, KeyError, ManifestParseError) as e:
            raise RemoteError(f"upload blob: unexpected response {r.text[:200]}") from e

    def fetch_blob(self, ref: ContentRef) -> bytes:
        # blobs are public, the owner's DID is all we need.
        did = self.login()
        r = self.request(
            "GET",
            "com.atproto.sync.getBlob",
            f"fetch blob {ref.cid}",
            auth=False,
            params={"did": did, "cid": ref.cid},
        )
        return r.content

    def create_record(self, collection: str, body: Any) -> str:
        did = self.login()
        r = self.request(
            "POST",
            "com.atproto.repo.createRecord",
            "create record",
            json={"repo": did, "collection": collection, "record": body},
        )
        return r.json()["uri"]

    def list_records(self, collection: str, limit: int = 100) -> List[Record]:
        did = self.login()
        out: List[Record] = []
        cursor = None
        while len(out) < limit:
            params = {
                "repo": did,
                "collection": collection,
                "limit": min(PAGE_SIZE, limit - len(out)),
            }
            if cursor is not None:
                params["cursor"] = cursor
            r = self.request(
                "GET", "com.atproto.repo.listRecords", "list records", params=params
            )
            j = r.json()
            for rec in j.get("records", []):
                out.append(Record(identifier=rec["uri"], body=rec.get("value")))
            cursor = j.get("cursor")
            if not cursor or not j.get("records"):
                break
        return out[:limit]

    def get_record(self, identifier: str) -> Any:
        rid = RecordId.parse(identifier)
        r = self.request(
            "GET",
            "com.atproto.repo.getRecord",
            f"get record {identifier}",
            params={"repo": rid.repo, "collection": rid.collection, "rkey": rid.rkey},
        )
        return r.json()["value"]

    def delete_record(self, identifier: str) -> None:
        rid = RecordId.parse(identifier)
        did = self.login()
        if rid.repo != did:
            raise RemoteAuthError(f"You can only delete your own records: {identifier}")
        self.request(
            "POST",
            "com.atproto.repo.deleteRecord",
            f"delete record {identifier}",
            json={"repo": did, "collection": rid.collection, "rkey": rid.rkey},
        )

    def blob_url(self, ref: ContentRef) -> Optional[str]:
        did = self.login()
        q = urlencode({"did": did, "cid": ref.cid})
        return f"{self.service_url}/xrpc/com.atproto.sync.getBlob?{q}"
