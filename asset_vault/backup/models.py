"""Data models for backup/restore operations."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class BackendHint(str, Enum):
    PATH_STORE = "path_store"
    HTTP_STORE = "http_store"
    UNKNOWN = "unknown"


class AssetReference(BaseModel):
    """A file locator tagged with the backend that owns it."""

    locator: str
    backend_hint: BackendHint
    path: str = Field(..., description="Normalized path or URL used to fetch the file")

    model_config = {"frozen": True}


class DownloadStatus(str, Enum):
    OK = "ok"
    TIMEOUT = "timeout"
    TOO_LARGE = "too_large"
    NOT_FOUND = "not_found"
    BACKEND_ERROR = "backend_error"


class DownloadOutcome(BaseModel):
    """Result of fetching one asset."""

    reference: AssetReference
    status: DownloadStatus
    data: Optional[bytes] = None
    mime_type: Optional[str] = None
    attempts: int = 0
    size_bytes: Optional[int] = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def _data_iff_ok(self) -> "DownloadOutcome":
        if (self.status == DownloadStatus.OK) != (self.data is not None):
            raise ValueError("data must be present if and only if status is OK")
        return self

    @property
    def locator(self) -> str:
        return self.reference.locator


class EntityCollectionSnapshot(BaseModel):
    """All rows of one entity collection, in source order."""

    name: str
    rows: List[Dict[str, Any]] = Field(default_factory=list)


class Identity(BaseModel):
    """Who triggered a backup."""

    id: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None


class FailedFile(BaseModel):
    locator: str
    reason: str  # timeout, not_found, backend_error, unclassified, cancelled
    attempts: int = 0
    error: Optional[str] = None


class SkippedFile(BaseModel):
    locator: str
    size_bytes: Optional[int] = None


class VerificationSummary(BaseModel):
    """Per-file accounting of a backup run."""

    total_assets: int = 0
    success_count: int = 0
    failed_files: List[FailedFile] = Field(default_factory=list)
    skipped_files: List[SkippedFile] = Field(default_factory=list)
    total_bytes: int = 0
    status: str = "success"  # success, degraded, failed, aborted
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    duration_ms: int = 0

    @model_validator(mode="after")
    def _counts_add_up(self) -> "VerificationSummary":
        accounted = self.success_count + len(self.failed_files) + len(self.skipped_files)
        if self.total_assets != accounted:
            raise ValueError(
                f"total_assets ({self.total_assets}) != success + failed + skipped ({accounted})"
            )
        return self

    @property
    def failed_count(self) -> int:
        return len(self.failed_files)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped_files)


class BackupArtifact(BaseModel):
    """Self-contained snapshot of all collections and their files."""

    backup_id: str
    created_at: datetime
    created_by: Identity = Field(default_factory=Identity)
    mode: str = "manual"
    collections: Dict[str, EntityCollectionSnapshot] = Field(default_factory=dict)
    files: Dict[str, DownloadOutcome] = Field(default_factory=dict)
    summary: VerificationSummary = Field(default_factory=VerificationSummary)

    def outcomes_by_locator(self) -> Dict[str, DownloadOutcome]:
        """Distinct outcomes, one per locator."""
        return {outcome.locator: outcome for outcome in self.files.values()}

    def keys_by_locator(self) -> Dict[str, List[str]]:
        """Record path keys grouped by the locator they reference."""
        grouped: Dict[str, List[str]] = {}
        for key, outcome in self.files.items():
            grouped.setdefault(outcome.locator, []).append(key)
        return grouped


class RestoreFailure(BaseModel):
    kind: str  # row, upload, reference
    error: str
    collection: Optional[str] = None
    key: Optional[str] = None
    locator: Optional[str] = None


class RestoreReport(BaseModel):
    """What a restore did and did not recover."""

    records_restored: Dict[str, int] = Field(default_factory=dict)
    records_failed: Dict[str, int] = Field(default_factory=dict)
    files_restored: int = 0
    files_failed: int = 0
    files_skipped: int = 0
    failures: List[RestoreFailure] = Field(default_factory=list)
    aborted: bool = False

    @property
    def complete(self) -> bool:
        return not self.aborted and not self.failures


class ArchivedBackup(BaseModel):
    """An archived artifact in cold storage."""

    name: str
    path: str
    created_at: datetime
    size_bytes: Optional[int] = None


class ArchiveResult(BaseModel):
    """Outcome of an archival backup run."""

    name: str
    path: str
    size_bytes: int
    checksum: str
    summary: VerificationSummary
    deleted: List[str] = Field(default_factory=list)
