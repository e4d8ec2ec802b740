from typing import Optional, Sequence, Tuple


class SyncError(Exception):
    """Base class for every error the snapshot engine raises on purpose."""


class LocalIOError(SyncError):
    """Reading, writing or creating something on the local filesystem failed."""


class ManifestParseError(SyncError):
    """A manifest (local JSON file or record body) is malformed."""


class RemoteError(SyncError):
    """The remote store refused or failed a request."""


class RemoteAuthError(RemoteError):
    """Credentials are missing, expired or not allowed to do this."""


class RemoteNotFoundError(RemoteError):
    """The snapshot record or blob does not exist (or is not retrievable yet)."""


class NetworkError(RemoteError):
    """A transient failure talking to the store.

    Nothing retries these automatically; the run is aborted (upload) or the file
    is counted as failed (restore).
    """


class RateLimitedError(NetworkError):
    """The store asked us to slow down."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class UploadAbortedError(SyncError):
    """An upload run stopped at a particular file. Nothing was published."""

    def __init__(self, relpath: str, step: str, cause: BaseException):
        super().__init__(f"upload aborted at {relpath} ({step}): {cause}")
        self.relpath = relpath
        self.step = step


class PublishError(SyncError):
    """Publishing a built manifest failed at the given step."""

    def __init__(self, step: str, cause: BaseException):
        super().__init__(f"publish failed ({step}): {cause}")
        self.step = step


class PartialRestoreError(SyncError):
    """Some files of a restore could not be written.

    ``failures`` holds ``(relpath, error)`` pairs in manifest order.
    """

    def __init__(self, failures: Sequence[Tuple[str, BaseException]], total: int):
        self.failures = list(failures)
        self.total = total
        super().__init__(f"{len(self.failures)} of {total} files failed to restore")
