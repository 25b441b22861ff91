"""Error taxonomy for backup and restore operations."""

from typing import Optional


class BackupError(Exception):
    """Base class for all backup/restore errors."""


class ConfigurationError(BackupError):
    """Required configuration is missing or invalid."""


class ClassificationAmbiguous(BackupError):
    """A locator matched no known storage backend."""

    def __init__(self, locator: str):
        super().__init__(f"Cannot determine storage backend for locator: {locator!r}")
        self.locator = locator


class TransientBackendError(BackupError):
    """Temporary backend failure; the fetch is retried."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AssetTimeoutError(BackupError):
    """A single fetch attempt exceeded the per-file timeout; retried."""


class SizeExceededError(BackupError):
    """The asset is larger than the configured ceiling; never retried."""

    def __init__(self, size_bytes: int, limit: int):
        super().__init__(f"File too large ({size_bytes} bytes > {limit} bytes)")
        self.size_bytes = size_bytes
        self.limit = limit


class PermanentBackendError(BackupError):
    """The backend refused the request for good (e.g. not found)."""

    def __init__(self, message: str, status_code: Optional[int] = None, not_found: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.not_found = not_found


class CollectionReadFailure(BackupError):
    """An entire entity collection could not be read. Fatal to the backup."""

    def __init__(self, collection: str, cause: Exception):
        super().__init__(f"Failed to read collection {collection!r}: {cause}")
        self.collection = collection
        self.cause = cause


class RowConflict(BackupError):
    """A row with the same identity already exists. Treated as restored."""

    def __init__(self, collection: str, key: str):
        super().__init__(f"Row {key!r} already exists in {collection!r}")
        self.collection = collection
        self.key = key


class UploadFailure(BackupError):
    """Re-uploading a file during restore failed."""

    def __init__(self, path: str, cause: Exception):
        super().__init__(f"Failed to upload {path!r}: {cause}")
        self.path = path
        self.cause = cause


class CorruptArtifactError(BackupError):
    """An encoded artifact is truncated or malformed."""


class RestoreOrderError(BackupError):
    """Collection dependencies contain a cycle."""
