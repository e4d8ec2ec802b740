from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union

from .digest import ContentRef, hash_file
from .manifest import MANIFEST_TYPE
from .settings import Settings
from .store import AbstractRemoteStore, AtprotoRemoteStore, LocalDirRemoteStore
from .util import utcnow


class SymlinkPolicy(Enum):
    REJECT = "reject"
    """ Abort the walk when a symlink is found. """
    FOLLOW = "follow"
    """ Snapshot whatever the link points at. Directory cycles are refused. """


@dataclass
class SyncContext:
    """Everything one upload or restore run needs.

    Passed explicitly to the builder, publisher, locator, restore engine and
    registry operations; nothing is looked up from module globals, so
    independent contexts (eg one per test) never interfere.
    """

    store: AbstractRemoteStore
    collection: str = MANIFEST_TYPE
    symlinks: SymlinkPolicy = SymlinkPolicy.REJECT
    list_limit: int = 100
    clock: Callable[[], datetime] = utcnow

    def now(self) -> datetime:
        return self.clock()

    def hash_file(self, path: Union[str, Path]) -> ContentRef:
        """Hash a local file the same way the store will."""
        return hash_file(path, algorithm=self.store.hash_algorithm)

    @classmethod
    def of_settings(cls, settings: Settings, store: Optional[AbstractRemoteStore] = None):
        if store is None:
            if settings.store == "local":
                store = LocalDirRemoteStore(
                    settings.local_store_dir, hash_algorithm=settings.hash_algorithm
                )
            else:
                store = AtprotoRemoteStore(
                    settings.service_url,
                    identifier=settings.handle,
                    password=settings.get_password(),
                    timeout=settings.timeout,
                )
        return cls(
            store=store,
            collection=settings.collection,
            symlinks=SymlinkPolicy(settings.symlinks),
            list_limit=settings.list_limit,
        )
