import json
from typing import Any, Callable, Dict, Union
from unittest import mock

import pytest
import requests

from snapsync.digest import compute_ref
from snapsync.errors import (
    NetworkError,
    RateLimitedError,
    RemoteAuthError,
    RemoteError,
    RemoteNotFoundError,
)
from snapsync.store import AtprotoRemoteStore, raise_for_xrpc_status

DID = "did:plc:abc123"


def response(status: int = 200, body: Any = None, content: bytes = b"", headers=None) -> requests.Response:
    r = requests.Response()
    r.status_code = status
    r._content = json.dumps(body).encode() if body is not None else content
    r.encoding = "utf-8"
    r.headers.update(headers or {})
    return r


class FakePds:
    """Routes session.request calls by NSID."""

    def __init__(self, routes: Dict[str, Union[requests.Response, Callable[..., requests.Response]]]):
        self.routes = {
            "com.atproto.server.createSession": response(
                body={"accessJwt": "jwt", "did": DID, "handle": "me.example.com"}
            ),
            **routes,
        }
        self.calls = []

    def __call__(self, method, url, headers=None, timeout=None, **kwargs):
        nsid = url.rsplit("/xrpc/", 1)[1]
        self.calls.append((method, nsid, headers, kwargs))
        route = self.routes[nsid]
        return route(**kwargs) if callable(route) else route

    def nsids(self):
        return [c[1] for c in self.calls]


def make_store(pds: FakePds, **kwargs) -> AtprotoRemoteStore:
    session = mock.Mock()
    session.request.side_effect = pds
    kwargs.setdefault("identifier", "me.example.com")
    kwargs.setdefault("password", "app-password")
    return AtprotoRemoteStore("https://pds.example.com/", session=session, **kwargs)


@pytest.mark.parametrize(
    "status,body,headers,expected",
    [
        (401, {"error": "AuthRequired"}, None, RemoteAuthError),
        (400, {"error": "ExpiredToken", "message": "Token has expired"}, None, RemoteAuthError),
        (404, None, None, RemoteNotFoundError),
        (400, {"error": "RecordNotFound"}, None, RemoteNotFoundError),
        (429, {"error": "RateLimitExceeded"}, {"Retry-After": "7"}, RateLimitedError),
        (502, None, None, NetworkError),
        (400, {"error": "InvalidRequest", "message": "bad"}, None, RemoteError),
    ],
)
def test_status_mapping(status, body, headers, expected):
    with pytest.raises(expected) as e:
        raise_for_xrpc_status(response(status, body, headers=headers), "doing a thing")
    assert type(e.value) is expected
    assert "doing a thing" in str(e.value)


def test_rate_limit_is_network_error():
    with pytest.raises(NetworkError) as e:
        raise_for_xrpc_status(response(429, headers={"Retry-After": "7"}), "upload")
    assert e.value.retry_after == 7.0


def test_ok_passes():
    raise_for_xrpc_status(response(200, {"ok": True}), "anything")


def test_non_json_error_body():
    with pytest.raises(NetworkError):
        raise_for_xrpc_status(response(503, content=b"<html>down</html>"), "list")


def test_missing_credentials():
    pds = FakePds({})
    store = make_store(pds, identifier=None, password=None)
    with pytest.raises(RemoteAuthError):
        store.login()
    assert pds.calls == []


def test_login_once():
    pds = FakePds({"com.atproto.repo.createRecord": response(body={"uri": f"at://{DID}/c/1"})})
    store = make_store(pds)
    store.create_record("c", {})
    store.create_record("c", {})
    assert pds.nsids().count("com.atproto.server.createSession") == 1
    _, _, headers, kwargs = pds.calls[1]
    assert headers["Authorization"] == "Bearer jwt"
    assert kwargs["json"]["repo"] == DID


def test_create_blob():
    data = b"hello"
    ref = compute_ref(data, mime_type="text/plain", algorithm="sha2-256")
    pds = FakePds({"com.atproto.repo.uploadBlob": response(body={"blob": ref.to_json()})})
    store = make_store(pds)
    assert store.create_blob(data, mime_type="text/plain") == ref
    _, nsid, headers, kwargs = pds.calls[-1]
    assert nsid == "com.atproto.repo.uploadBlob"
    assert headers["Content-Type"] == "text/plain"
    assert kwargs["data"] == data


def test_create_blob_bad_response():
    pds = FakePds({"com.atproto.repo.uploadBlob": response(body={"nope": 1})})
    with pytest.raises(RemoteError):
        make_store(pds).create_blob(b"hello")


def test_fetch_blob():
    ref = compute_ref(b"hello", algorithm="sha2-256")
    pds = FakePds({"com.atproto.sync.getBlob": response(content=b"hello")})
    assert make_store(pds).fetch_blob(ref) == b"hello"
    _, _, headers, kwargs = pds.calls[-1]
    assert kwargs["params"] == {"did": DID, "cid": ref.cid}
    assert "Authorization" not in headers


def test_blob_not_yet_anchored():
    pds = FakePds({"com.atproto.sync.getBlob": response(400, {"error": "BlobNotFound"})})
    with pytest.raises(RemoteNotFoundError):
        make_store(pds).fetch_blob(compute_ref(b"x", algorithm="sha2-256"))


def test_connection_error():
    session = mock.Mock()
    session.request.side_effect = requests.exceptions.ConnectionError("no route to host")
    store = AtprotoRemoteStore("https://pds.example.com", "me", "pw", session=session)
    with pytest.raises(NetworkError):
        store.login()


def test_list_records_pages():
    def list_records(params, **kwargs):
        start = int(params.get("cursor", 0))
        n = params["limit"]
        records = [
            {"uri": f"at://{DID}/c/{i:04d}", "value": {"n": i}}
            for i in range(start, min(start + n, 250))
        ]
        body = {"records": records}
        if start + n < 250:
            body["cursor"] = str(start + n)
        return response(body=body)

    pds = FakePds({"com.atproto.repo.listRecords": list_records})
    store = make_store(pds)
    records = store.list_records("c", limit=150)
    assert len(records) == 150
    assert records[0].body == {"n": 0}
    assert records[-1].identifier == f"at://{DID}/c/0149"
    assert pds.nsids().count("com.atproto.repo.listRecords") == 2
    assert all(c[3]["params"]["limit"] <= 100 for c in pds.calls[1:])

    assert len(store.list_records("c", limit=1000)) == 250


def test_get_record():
    pds = FakePds(
        {"com.atproto.repo.getRecord": response(body={"uri": "x", "value": {"name": "docs"}})}
    )
    assert make_store(pds).get_record(f"at://{DID}/c/abc") == {"name": "docs"}
    _, _, _, kwargs = pds.calls[-1]
    assert kwargs["params"] == {"repo": DID, "collection": "c", "rkey": "abc"}


def test_delete_record():
    pds = FakePds({"com.atproto.repo.deleteRecord": response(body={})})
    store = make_store(pds)
    store.delete_record(f"at://{DID}/c/abc")
    _, _, _, kwargs = pds.calls[-1]
    assert kwargs["json"] == {"repo": DID, "collection": "c", "rkey": "abc"}
    with pytest.raises(RemoteAuthError):
        store.delete_record("at://did:plc:someone-else/c/abc")


def test_blob_url():
    ref = compute_ref(b"hello", algorithm="sha2-256")
    url = make_store(FakePds({})).blob_url(ref)
    assert url.startswith("https://pds.example.com/xrpc/com.atproto.sync.getBlob?")
    assert f"cid={ref.cid}" in url
    assert "did=did%3Aplc%3Aabc123" in url
