"""Backup and restore orchestration over the entity and file stores."""

import asyncio
import tempfile
from typing import List, Optional

from .._utils import logger, utc_now
from ..base import BaseEntityStore, BaseHttpFetcher, BasePathStore
from ..config import VaultConfig
from .assembler import BackupAssembler
from .codec import EncodeMode, iter_encode
from .downloader import BoundedDownloader
from .hooks import BackupHooks
from .models import (
    ArchiveResult,
    ArchivedBackup,
    BackupArtifact,
    Identity,
    RestoreReport,
)
from .restore import RestoreEngine
from .retention import enforce_retention
from .utils import ARCHIVE_SUFFIX, archive_name, archive_path, parse_backup_timestamp, spool_chunks


class BackupManager:
    """Orchestrate backup, archival, retention and restore."""

    def __init__(
        self,
        entity_store: BaseEntityStore,
        path_store: Optional[BasePathStore],
        http_fetcher: Optional[BaseHttpFetcher],
        config: Optional[VaultConfig] = None,
        hooks: Optional[BackupHooks] = None,
    ):
        """Initialize backup manager.

        Args:
            entity_store: Source of collections and target of restores
            path_store: Path-addressed file storage, also holds archives
            http_fetcher: Reader for files on plain HTTP storage
            config: Downloader limits, archive folder and storage settings
            hooks: Optional progress callbacks
        """
        self.entity_store = entity_store
        self.path_store = path_store
        self.http_fetcher = http_fetcher
        self.config = config or VaultConfig()

        self.downloader = BoundedDownloader(path_store, http_fetcher, self.config.downloader, hooks)
        self.assembler = BackupAssembler(entity_store, self.downloader, self.config.storage.domain_markers)
        self.restore_engine = RestoreEngine(
            entity_store,
            path_store,
            restore_prefix=self.config.storage.restore_prefix,
        )

    @property
    def archive_folder(self) -> str:
        return self.config.archive.folder

    async def create_backup(
        self,
        created_by: Optional[Identity] = None,
        mode: str = "manual",
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BackupArtifact:
        """Build a full backup artifact in memory."""
        logger.info(f"Starting backup in {mode} mode")
        return await self.assembler.build_backup(created_by=created_by, mode=mode, cancel_event=cancel_event)

    async def archive_backup(self, created_by: Optional[Identity] = None) -> ArchiveResult:
        """Build a backup, store it compressed in the archive folder and apply retention.

        Returns:
            ArchiveResult with the archive location, summary and deleted archives
        """
        self._require_path_store()
        artifact = await self.create_backup(created_by=created_by, mode="cron")

        name = archive_name(artifact.backup_id)
        path = archive_path(self.archive_folder, name)
        # The encoded archive goes to disk, never to memory
        with tempfile.TemporaryFile() as spool:
            size_bytes, checksum = await asyncio.to_thread(
                spool_chunks, iter_encode(artifact, EncodeMode.COMPRESSED), spool
            )
            spool.seek(0)
            await self.path_store.upload_file(path, spool, "application/gzip")
        logger.info(f"Archived backup {name} ({size_bytes:,} bytes, {checksum})")

        deleted = await enforce_retention(
            self.list_backups,
            self.delete_backup,
            keep=self.config.archive.retention_count,
            protect=[name],
        )

        return ArchiveResult(
            name=name,
            path=path,
            size_bytes=size_bytes,
            checksum=checksum,
            summary=artifact.summary,
            deleted=deleted,
        )

    async def restore_backup(
        self,
        artifact: BackupArtifact,
        restore_files: bool = True,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RestoreReport:
        """Restore records and, optionally, files from an artifact."""
        logger.info(f"Starting restore: {artifact.backup_id} (files: {restore_files})")
        return await self.restore_engine.restore(artifact, restore_files=restore_files, cancel_event=cancel_event)

    async def list_backups(self) -> List[ArchivedBackup]:
        """List archived backups, newest first."""
        self._require_path_store()
        backups = []
        for item in await self.path_store.list_folder(self.archive_folder):
            if not item.name.endswith(ARCHIVE_SUFFIX):
                continue
            created_at = parse_backup_timestamp(item.name) or item.modified_at or utc_now()
            backups.append(ArchivedBackup(
                name=item.name,
                path=item.path,
                created_at=created_at,
                size_bytes=item.size,
            ))

        backups.sort(key=lambda b: b.created_at, reverse=True)
        return backups

    async def download_backup(self, name: str) -> bytes:
        """Fetch an archived backup.

        Raises:
            FileNotFoundError: No archive with that name
        """
        self._require_path_store()
        path = self._archive_path(name)
        if await self.path_store.get_size(path) is None:
            raise FileNotFoundError(f"Backup not found: {name}")
        return await self.path_store.download(path)

    async def delete_backup(self, name: str) -> bool:
        """Delete an archived backup.

        Returns:
            True if deleted, False if not found
        """
        self._require_path_store()
        deleted = await self.path_store.delete(self._archive_path(name))
        if deleted:
            logger.info(f"Deleted backup: {name}")
        return deleted

    async def close(self) -> None:
        if self.http_fetcher is not None:
            await self.http_fetcher.close()

    def _archive_path(self, name: str) -> str:
        if not name or "/" in name or name in (".", "..") or not name.endswith(ARCHIVE_SUFFIX):
            raise ValueError(f"Invalid backup name: {name!r}")
        return archive_path(self.archive_folder, name)

    def _require_path_store(self) -> None:
        if self.path_store is None:
            raise RuntimeError("Archive operations need a path store")
