"""Content hashing and content references.

A ContentRef's identifier is a CIDv1 (raw codec, base32 multibase). The
multihash inside the CID names the hash function, so identifiers made with
different algorithms can never be mistaken for each other.

Reference: https://github.com/multiformats/cid
"""
import base64
from dataclasses import dataclass, field
import hashlib
import mimetypes
from pathlib import Path
from typing import IO, Any, Callable, Literal, Optional, Tuple, Union

from blake3 import blake3

from .errors import ManifestParseError
from .util import chunked_read

HashAlgorithm = Literal["sha2-256", "blake3"]

DEFAULT_MIME_TYPE = "application/octet-stream"

CID_VERSION = 0x01
RAW_CODEC = 0x55
MULTIHASH_CODES: dict[str, int] = {
    "sha2-256": 0x12,
    "blake3": 0x1E,
}


@dataclass(frozen=True)
class ContentRef:
    """Reference to an immutable byte sequence in the content store.

    Two refs are equal when they name the same bytes; ``mime_type`` is only a
    hint for whoever serves the blob and is ignored by comparisons.
    """

    cid: str
    size: int
    mime_type: str = field(default=DEFAULT_MIME_TYPE, compare=False)

    @property
    def algorithm(self) -> str:
        return cid_algorithm(self.cid)

    def to_json(self) -> dict[str, Any]:
        """The AT Protocol blob shape. Records holding this shape anchor the blob."""
        return {
            "$type": "blob",
            "ref": {"$link": self.cid},
            "mimeType": self.mime_type,
            "size": self.size,
        }

    @classmethod
    def from_json(
        cls,
        j: Any,
        *,
        size: Optional[int] = None,
        mime_type: Optional[str] = None,
    ) -> "ContentRef":
        """Validate a blob reference as found in a record, manifest file or store response.

        Accepts ``{"ref": {"$link": cid}}``, ``{"ref": cid}``, ``{"cid": cid}``
        and a bare cid string. ``size`` and ``mime_type`` are fallbacks for
        when the reference itself doesn't carry them.

        Raises:
            ManifestParseError: the reference can't be made sense of.
        """
        if isinstance(j, str):
            cid = j
            j = {}
        elif isinstance(j, dict):
            ref = j.get("ref", j.get("cid"))
            if isinstance(ref, dict):
                ref = ref.get("$link")
            cid = ref
        else:
            raise ManifestParseError(f"expected a blob reference, got {j!r}")
        if not isinstance(cid, str):
            raise ManifestParseError(f"blob reference has no cid: {j!r}")
        try:
            decode_cid(cid)
        except ValueError as e:
            raise ManifestParseError(str(e)) from e
        s = j.get("size", size)
        if isinstance(s, bool) or not isinstance(s, int) or s < 0:
            raise ManifestParseError(f"blob {cid} has invalid size {s!r}")
        m = j.get("mimeType", mime_type) or DEFAULT_MIME_TYPE
        if not isinstance(m, str):
            raise ManifestParseError(f"blob {cid} has invalid mimeType {m!r}")
        return cls(cid=cid, size=s, mime_type=m)


def _hasher(algorithm: str) -> Callable[[], "hashlib._Hash"]:
    if algorithm == "sha2-256":
        return hashlib.sha256
    if algorithm == "blake3":
        return blake3  # type: ignore
    raise ValueError(f"unsupported hash algorithm {algorithm!r}")


def _varint(n: int) -> bytes:
    out = bytearray()
    while True:
        b = n & 0x7F
        n >>= 7
        if n:
            out.append(b | 0x80)
        else:
            out.append(b)
            return bytes(out)


def _read_varint(data: bytes, i: int) -> Tuple[int, int]:
    n = 0
    shift = 0
    while True:
        if i >= len(data):
            raise ValueError("truncated varint")
        b = data[i]
        n |= (b & 0x7F) << shift
        i += 1
        if not b & 0x80:
            return n, i
        shift += 7


def encode_cid(digest: bytes, algorithm: str) -> str:
    code = MULTIHASH_CODES[algorithm]
    raw = (
        _varint(CID_VERSION)
        + _varint(RAW_CODEC)
        + _varint(code)
        + _varint(len(digest))
        + digest
    )
    return "b" + base64.b32encode(raw).decode("ascii").lower().rstrip("=")


def decode_cid(cid: str) -> Tuple[int, int, bytes]:
    """Returns ``(codec, multihash_code, digest)``.

    Raises:
        ValueError: cid is not a base32 CIDv1.
    """
    if not isinstance(cid, str) or not cid.startswith("b") or len(cid) < 2:
        raise ValueError(f"not a base32 CIDv1: {cid!r}")
    body = cid[1:].upper()
    body += "=" * (-len(body) % 8)
    try:
        raw = base64.b32decode(body)
    except (ValueError, TypeError) as e:
        raise ValueError(f"not a base32 CIDv1: {cid!r}") from e
    version, i = _read_varint(raw, 0)
    if version != CID_VERSION:
        raise ValueError(f"unsupported CID version {version} in {cid!r}")
    codec, i = _read_varint(raw, i)
    code, i = _read_varint(raw, i)
    length, i = _read_varint(raw, i)
    digest = raw[i:]
    if len(digest) != length:
        raise ValueError(f"digest length mismatch in {cid!r}")
    return codec, code, digest


def cid_algorithm(cid: str) -> str:
    """Name of the hash algorithm embedded in the cid."""
    _, code, _ = decode_cid(cid)
    for name, c in MULTIHASH_CODES.items():
        if c == code:
            return name
    raise ValueError(f"unknown multihash code {code:#x} in {cid!r}")


def compute_ref(
    data: bytes,
    mime_type: str = DEFAULT_MIME_TYPE,
    algorithm: str = "blake3",
) -> ContentRef:
    """The ContentRef for the given bytes. Only the bytes influence ``cid`` and ``size``."""
    h = _hasher(algorithm)()
    h.update(data)
    return ContentRef(
        cid=encode_cid(h.digest(), algorithm),
        size=len(data),
        mime_type=mime_type,
    )


def get_digest_and_length(tape: IO[bytes], algorithm: str = "blake3") -> Tuple[str, int]:
    """Hash a file-like object in chunks, returning ``(cid, content_length)``."""
    content_length = 0
    h = _hasher(algorithm)()
    for data in chunked_read(tape):
        content_length += len(data)
        h.update(data)
    return encode_cid(h.digest(), algorithm), content_length


def hash_file(path: Union[str, Path], algorithm: str = "blake3") -> ContentRef:
    path = Path(path)
    with open(path, "rb") as f:
        cid, content_length = get_digest_and_length(f, algorithm)
    return ContentRef(cid=cid, size=content_length, mime_type=guess_mime_type(path))


def guess_mime_type(path: Union[str, Path]) -> str:
    mime_type, _ = mimetypes.guess_type(str(path), strict=False)
    return mime_type or DEFAULT_MIME_TYPE
