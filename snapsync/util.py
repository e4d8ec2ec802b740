from datetime import datetime, timezone
from functools import partial
import logging
import math
import os
from pathlib import Path
import sys
import tempfile
from typing import IO, Iterator, Optional

logger = logging.getLogger("snapsync")


def chunked_read(x: IO[bytes], block_size=2**20) -> Iterator[bytes]:
    """Repeatedly read in block_size chunks from the reader until it's empty."""
    # iter(f, x) will call f repeatedly until x is returned and then stop
    # https://docs.python.org/3/library/functions.html#iter
    return iter(partial(x.read, block_size), b"")


def human_size(bytes: int, units=[" bytes", "KB", "MB", "GB", "TB", "PB", "EB"]):
    """Returns a human readable string representation of bytes."""
    if bytes == 1:
        return "1 byte"
    if bytes < (2**10):
        return str(bytes) + units[0]
    ll = math.log2(bytes)
    i = int(ll // 10)
    if i >= len(units):
        return "2^" + str(math.ceil(math.log2(bytes))) + " bytes"
    f = bytes / (2 ** (i * 10))
    return f"{f:.1f}{units[i]}"


def get_app_cache_dir(app_name: str) -> Path:
    """Returns the path that the OS wants you to use to place application-specific caching files."""
    if sys.platform == "win32":
        p = Path(os.environ.get("LOCALAPPDATA", "~/.cache"))
    elif sys.platform == "linux":
        p = Path(os.environ.get("XDG_CACHE_HOME", "~/.cache"))
    elif sys.platform == "darwin":  # macos
        p = Path("~/Library/Caches")
    else:
        logger.warning(
            f"Unrecognised platform: {sys.platform}, user cache is defaulting to a tmpdir."
        )
        p = Path(tempfile.gettempdir())
    return p.expanduser().resolve() / app_name


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """Millisecond precision UTC timestamp with a ``Z`` suffix, eg ``2024-01-01T00:00:00.000Z``."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_timestamp(s: str) -> datetime:
    """Inverse of `format_timestamp`. Naive timestamps are taken to be UTC.

    Raises:
        ValueError: s is not an ISO-8601 timestamp.
    """
    if not isinstance(s, str):
        raise ValueError(f"expected a timestamp string, got {type(s).__name__}")
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


TID_ALPHABET = "234567abcdefghijklmnopqrstuvwxyz"


class RecordKeyClock:
    """Generates timestamp identifiers (TIDs) for record keys.

    A TID is 13 characters of base32-sortable text encoding 53 bits of
    microseconds since the epoch followed by a 10 bit clock id, so keys sort
    in creation order. Keys from one clock are strictly increasing even when
    the wall clock stalls.

    Reference: https://atproto.com/specs/record-key#record-key-type-tid
    """

    def __init__(self, clock_id: int = 0):
        self.clock_id = clock_id & 0x3FF
        self.last: int = 0

    def next(self, now: Optional[datetime] = None) -> str:
        now = now or utcnow()
        micros = int(now.timestamp() * 1_000_000)
        if micros <= self.last:
            micros = self.last + 1
        self.last = micros
        n = ((micros & ((1 << 53) - 1)) << 10) | self.clock_id
        chars = []
        for _ in range(13):
            chars.append(TID_ALPHABET[n & 0x1F])
            n >>= 5
        return "".join(reversed(chars))
