# SPDX-FileCopyrightText: 2023-present E.W.Ayers <contact@edayers.com>
#
# SPDX-License-Identifier: MIT

from .__about__ import __version__
from .digest import ContentRef, compute_ref
from .errors import (
    LocalIOError,
    ManifestParseError,
    NetworkError,
    PartialRestoreError,
    PublishError,
    RateLimitedError,
    RemoteAuthError,
    RemoteError,
    RemoteNotFoundError,
    SyncError,
    UploadAbortedError,
)
from .manifest import FileEntry, Manifest, load_manifest, save_manifest
from .context import SymlinkPolicy, SyncContext
from .builder import BuildResult, build_snapshot
from .publisher import PublishResult, publish_snapshot
from .locator import LocatedSnapshot, locate_snapshot
from .restore import RestoreResult, restore_snapshot
from .registry import SnapshotSummary, delete_snapshot, list_snapshots
