import logging
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .digest import HashAlgorithm
from .manifest import MANIFEST_TYPE
from .util import get_app_cache_dir

APP_NAME = "snapsync"

logger = logging.getLogger(APP_NAME)


class Settings(BaseSettings):
    """Everything needed to talk to a store. Read from ``SNAPSYNC_*`` environment variables and ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="SNAPSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    store: Literal["atproto", "local"] = Field(default="atproto")
    """ Which kind of remote store to use. """

    service_url: str = Field(default="https://bsky.social")
    """ AT Protocol server (PDS) to log in to. """

    handle: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("SNAPSYNC_HANDLE", "BLUESKY_HANDLE", "handle"),
    )

    password: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("SNAPSYNC_PASSWORD", "BLUESKY_PASSWORD", "password"),
    )
    """ Preferably an app password. """

    local_store_dir: Path = Field(default_factory=lambda: get_app_cache_dir(APP_NAME) / "store")
    """ Where the local store keeps its blobs and records. """

    collection: str = Field(default=MANIFEST_TYPE)
    """ Record collection that snapshots are published to. """

    hash_algorithm: HashAlgorithm = Field(default="blake3")
    """ Hash used by the local store. The atproto store always uses sha2-256. """

    symlinks: Literal["reject", "follow"] = Field(default="reject")
    """ What to do with symlinks found while walking a directory. """

    list_limit: int = Field(default=100, ge=1)
    """ Maximum number of records fetched when listing snapshots. """

    timeout: float = Field(default=60.0, gt=0)
    """ Seconds before an HTTP request to the store is abandoned. """

    def get_password(self) -> Optional[str]:
        if self.password is None:
            return None
        return self.password.get_secret_value()
