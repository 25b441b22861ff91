"""Backup and restore for entity collections and the files they reference."""

from .manager import BackupManager
from .models import (
    ArchiveResult,
    ArchivedBackup,
    AssetReference,
    BackendHint,
    BackupArtifact,
    DownloadOutcome,
    DownloadStatus,
    EntityCollectionSnapshot,
    Identity,
    RestoreReport,
    VerificationSummary,
)
from .classifier import classify
from .codec import EncodeMode, decode, encode, iter_encode
from .hooks import BackupHooks

__all__ = [
    "BackupManager",
    "ArchiveResult",
    "ArchivedBackup",
    "AssetReference",
    "BackendHint",
    "BackupArtifact",
    "DownloadOutcome",
    "DownloadStatus",
    "EntityCollectionSnapshot",
    "Identity",
    "RestoreReport",
    "VerificationSummary",
    "classify",
    "EncodeMode",
    "decode",
    "encode",
    "iter_encode",
    "BackupHooks",
]
