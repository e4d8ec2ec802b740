from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict

import pytest

from snapsync.context import SyncContext
from snapsync.store import InMemRemoteStore


class TickingClock:
    """Each call is one second later than the last."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.t = start

    def __call__(self) -> datetime:
        self.t += timedelta(seconds=1)
        return self.t


@pytest.fixture()
def store():
    return InMemRemoteStore()


@pytest.fixture()
def ctx(store):
    return SyncContext(store=store, clock=TickingClock())


@pytest.fixture()
def make_tree(tmp_path: Path):
    """Returns a function that writes ``{relpath: bytes}`` under a fresh directory."""

    def make(files: Dict[str, bytes], name: str = "project") -> Path:
        root = tmp_path / name
        root.mkdir(exist_ok=True)
        for relpath, data in files.items():
            p = root / relpath
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_bytes(data)
        return root

    return make
