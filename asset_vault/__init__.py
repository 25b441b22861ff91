from .backup import (
    BackupManager,
    BackupArtifact,
    RestoreReport,
    VerificationSummary,
)
from .config import VaultConfig, DownloaderConfig, ArchiveConfig, StorageConfig

__version__ = "0.3.0"
__author__ = "asset-vault contributors"
__url__ = "https://github.com/remcohendriks/asset-vault"

__all__ = [
    "BackupManager",
    "BackupArtifact",
    "RestoreReport",
    "VerificationSummary",
    "VaultConfig",
    "DownloaderConfig",
    "ArchiveConfig",
    "StorageConfig",
]
