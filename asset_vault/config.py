"""Configuration management for asset-vault."""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple


def _parse_markers(value: str) -> Tuple[str, ...]:
    return tuple(m.strip().lower() for m in value.split(",") if m.strip())


@dataclass(frozen=True)
class DownloaderConfig:
    """Limits applied to every asset download."""
    concurrency: int = 20
    file_timeout: float = 30.0  # seconds, per attempt
    max_attempts: int = 3
    max_file_size: int = 50 * 1024 * 1024
    backoff_base: float = 0.5  # first retry waits roughly this long
    backoff_max: float = 10.0
    backoff_jitter: float = 1.0
    chunk_size: int = 64 * 1024

    @classmethod
    def from_env(cls) -> 'DownloaderConfig':
        """Create config from environment variables."""
        return cls(
            concurrency=int(os.getenv("BACKUP_CONCURRENCY", "20")),
            file_timeout=float(os.getenv("BACKUP_FILE_TIMEOUT", "30.0")),
            max_attempts=int(os.getenv("BACKUP_MAX_ATTEMPTS", "3")),
            max_file_size=int(os.getenv("BACKUP_MAX_FILE_SIZE", str(50 * 1024 * 1024))),
            backoff_base=float(os.getenv("BACKUP_BACKOFF_BASE", "0.5")),
            backoff_max=float(os.getenv("BACKUP_BACKOFF_MAX", "10.0")),
            backoff_jitter=float(os.getenv("BACKUP_BACKOFF_JITTER", "1.0")),
        )

    def __post_init__(self):
        """Validate configuration."""
        if self.concurrency <= 0:
            raise ValueError(f"concurrency must be positive, got {self.concurrency}")
        if self.file_timeout <= 0:
            raise ValueError(f"file_timeout must be positive, got {self.file_timeout}")
        if self.max_attempts <= 0:
            raise ValueError(f"max_attempts must be positive, got {self.max_attempts}")
        if self.max_file_size <= 0:
            raise ValueError(f"max_file_size must be positive, got {self.max_file_size}")
        if self.backoff_base < 0 or self.backoff_max < 0 or self.backoff_jitter < 0:
            raise ValueError("backoff settings must not be negative")
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")


@dataclass(frozen=True)
class ArchiveConfig:
    """Where archival backups go and how many are kept."""
    folder: str = "/backups"
    retention_count: int = 20

    @classmethod
    def from_env(cls) -> 'ArchiveConfig':
        """Create config from environment variables."""
        return cls(
            folder=os.getenv("BACKUP_ARCHIVE_FOLDER", "/backups"),
            retention_count=int(os.getenv("BACKUP_RETENTION_COUNT", "20")),
        )

    def __post_init__(self):
        """Validate configuration."""
        if not self.folder:
            raise ValueError("folder must not be empty")
        if self.retention_count < 0:
            raise ValueError(f"retention_count must not be negative, got {self.retention_count}")


@dataclass(frozen=True)
class StorageConfig:
    """Storage backend configuration."""
    path_backend: str = "local"  # local, s3
    local_root: str = "./asset_vault_store"

    # S3 specific settings
    s3_bucket: Optional[str] = None
    s3_region: str = "us-east-1"
    s3_prefix: str = ""
    s3_endpoint_url: Optional[str] = None

    # HTTP fetcher
    http_user_agent: str = "asset-vault-backup/3.0"

    # Locators containing one of these markers belong to the path store
    domain_markers: Tuple[str, ...] = ("dropbox",)

    # Files that lived on HTTP storage are restored under this folder
    restore_prefix: str = "/restored"

    @classmethod
    def from_env(cls) -> 'StorageConfig':
        """Create config from environment variables."""
        return cls(
            path_backend=os.getenv("STORAGE_PATH_BACKEND", "local"),
            local_root=os.getenv("STORAGE_LOCAL_ROOT", "./asset_vault_store"),
            s3_bucket=os.getenv("STORAGE_S3_BUCKET", None),
            s3_region=os.getenv("AWS_REGION", "us-east-1"),
            s3_prefix=os.getenv("STORAGE_S3_PREFIX", ""),
            s3_endpoint_url=os.getenv("STORAGE_S3_ENDPOINT_URL", None),
            http_user_agent=os.getenv("STORAGE_HTTP_USER_AGENT", "asset-vault-backup/3.0"),
            domain_markers=_parse_markers(os.getenv("STORAGE_DOMAIN_MARKERS", "dropbox")),
            restore_prefix=os.getenv("STORAGE_RESTORE_PREFIX", "/restored"),
        )

    def __post_init__(self):
        """Validate configuration."""
        valid_path_backends = {"local", "s3"}
        if self.path_backend not in valid_path_backends:
            raise ValueError(f"Unknown path backend: {self.path_backend}. Valid options: {valid_path_backends}")
        if not self.restore_prefix.startswith("/"):
            raise ValueError(f"restore_prefix must be absolute, got {self.restore_prefix}")


@dataclass(frozen=True)
class VaultConfig:
    """Top-level configuration."""
    downloader: DownloaderConfig = field(default_factory=DownloaderConfig)
    archive: ArchiveConfig = field(default_factory=ArchiveConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    entity_dir: str = "./asset_vault_data"

    @classmethod
    def from_env(cls) -> 'VaultConfig':
        """Create complete config from environment variables."""
        return cls(
            downloader=DownloaderConfig.from_env(),
            archive=ArchiveConfig.from_env(),
            storage=StorageConfig.from_env(),
            entity_dir=os.getenv("ENTITY_DATA_DIR", "./asset_vault_data"),
        )
