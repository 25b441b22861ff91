"""Tests for BackupManager."""

import hashlib

import pytest
from unittest.mock import AsyncMock

from asset_vault.backup.codec import decode
from asset_vault.backup.manager import BackupManager
from asset_vault.backup.models import Identity
from asset_vault.base import CollectionSchema, UploadResult
from asset_vault.config import ArchiveConfig, DownloaderConfig, StorageConfig, VaultConfig
from tests.fakes import FakeHttpFetcher, FakePathStore, MemoryEntityStore

PATH_LOCATOR = "/photos/cover.png"
HTTP_LOCATOR = "https://cdn.example.com/uploads/plan.pdf"

SCHEMAS = [
    CollectionSchema(name="clients"),
    CollectionSchema(name="projects", depends_on=("clients",), asset_fields=("cover_image_url",)),
]

OLD_ARCHIVES = [
    "backup_2025-01-01T00-00-00Z_aaaaaa.json.gz",
    "backup_2025-02-01T00-00-00Z_bbbbbb.json.gz",
    "backup_2025-03-01T00-00-00Z_cccccc.json.gz",
]


def make_config(retention_count=20) -> VaultConfig:
    return VaultConfig(
        downloader=DownloaderConfig(concurrency=2, file_timeout=1.0, max_attempts=2,
                                    backoff_base=0, backoff_max=0, backoff_jitter=0),
        archive=ArchiveConfig(folder="/backups", retention_count=retention_count),
        storage=StorageConfig(restore_prefix="/restored"),
    )


def make_manager(retention_count=20, archives=()):
    entity_store = MemoryEntityStore(SCHEMAS, {
        "clients": [{"id": "c1", "name": "Acme"}],
        "projects": [
            {"id": "p1", "client_id": "c1", "cover_image_url": PATH_LOCATOR},
            {"id": "p2", "client_id": "c1", "cover_image_url": PATH_LOCATOR},
            {"id": "p3", "client_id": "c1", "cover_image_url": HTTP_LOCATOR},
        ],
    })
    files = {PATH_LOCATOR: b"png bytes"}
    for name in archives:
        files[f"/backups/{name}"] = b"old archive"
    path_store = FakePathStore(files)
    fetcher = FakeHttpFetcher({HTTP_LOCATOR: b"pdf bytes"})
    manager = BackupManager(entity_store, path_store, fetcher, make_config(retention_count))
    return manager, entity_store, path_store, fetcher


@pytest.mark.asyncio
async def test_create_backup():
    manager, _, _, _ = make_manager()

    artifact = await manager.create_backup(created_by=Identity(email="owner@example.com"))

    assert artifact.mode == "manual"
    assert artifact.summary.total_assets == 2
    assert artifact.summary.success_count == 2
    assert len(artifact.files) == 3


@pytest.mark.asyncio
async def test_archive_backup_uploads_compressed_artifact():
    manager, _, path_store, _ = make_manager()

    result = await manager.archive_backup()

    assert result.path == f"/backups/{result.name}"
    assert result.name.endswith(".json.gz")
    assert result.checksum.startswith("sha256:")
    payload = path_store.uploads[result.path]
    assert payload[:2] == b"\x1f\x8b"
    assert result.size_bytes == len(payload)

    artifact = decode(payload)
    assert artifact.mode == "cron"
    assert artifact.summary == result.summary
    assert artifact.files["projects/p3/cover_image_url"].data == b"pdf bytes"


@pytest.mark.asyncio
async def test_archive_backup_uploads_from_spooled_file():
    manager, _, path_store, _ = make_manager()
    received = {}

    async def upload_file(path, fileobj, content_type):
        received["data"] = fileobj.read()
        received["content_type"] = content_type
        return UploadResult(path=path)

    path_store.upload_file = upload_file

    result = await manager.archive_backup()

    payload = received["data"]
    assert received["content_type"] == "application/gzip"
    assert path_store.uploads == {}
    assert result.size_bytes == len(payload)
    assert result.checksum == f"sha256:{hashlib.sha256(payload).hexdigest()}"
    assert decode(payload).summary == result.summary


@pytest.mark.asyncio
async def test_archive_backup_applies_retention():
    manager, _, path_store, _ = make_manager(retention_count=2, archives=OLD_ARCHIVES)

    result = await manager.archive_backup()

    assert sorted(result.deleted) == OLD_ARCHIVES[:2]
    remaining = [b.name for b in await manager.list_backups()]
    assert remaining == [result.name, OLD_ARCHIVES[2]]


@pytest.mark.asyncio
async def test_new_archive_is_never_pruned():
    manager, _, _, _ = make_manager(retention_count=0, archives=OLD_ARCHIVES)

    result = await manager.archive_backup()

    assert result.name not in result.deleted
    assert [b.name for b in await manager.list_backups()] == [result.name]


@pytest.mark.asyncio
async def test_list_backups_newest_first_and_ignores_other_files():
    manager, _, path_store, _ = make_manager(archives=OLD_ARCHIVES)
    path_store.files["/backups/notes.txt"] = b"not a backup"

    backups = await manager.list_backups()

    assert [b.name for b in backups] == list(reversed(OLD_ARCHIVES))
    assert backups[0].size_bytes == len(b"old archive")


@pytest.mark.asyncio
async def test_download_and_delete_backup():
    manager, _, path_store, _ = make_manager(archives=OLD_ARCHIVES)

    assert await manager.download_backup(OLD_ARCHIVES[0]) == b"old archive"
    assert await manager.delete_backup(OLD_ARCHIVES[0]) is True
    assert await manager.delete_backup(OLD_ARCHIVES[0]) is False

    with pytest.raises(FileNotFoundError):
        await manager.download_backup(OLD_ARCHIVES[0])


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["../etc/passwd", "a/b.json.gz", "backup.zip", ""])
async def test_invalid_archive_names_are_rejected(name):
    manager, _, _, _ = make_manager()

    with pytest.raises(ValueError):
        await manager.delete_backup(name)


@pytest.mark.asyncio
async def test_backup_then_restore_into_empty_store():
    manager, _, path_store, _ = make_manager()
    result = await manager.archive_backup()
    artifact = decode(path_store.uploads[result.path])

    target_store = MemoryEntityStore(SCHEMAS)
    target = BackupManager(target_store, FakePathStore(), None, make_config())

    report = await target.restore_backup(artifact, restore_files=True)

    assert report.records_restored == {"clients": 1, "projects": 3}
    assert report.files_restored == 2
    assert report.complete
    restored = {row["id"]: row for row in target_store.data["projects"]}
    assert restored["p3"]["cover_image_url"] == "/restored/cdn.example.com/uploads/plan.pdf"
    assert restored["p1"]["cover_image_url"] == PATH_LOCATOR


@pytest.mark.asyncio
async def test_restore_without_files_restores_rows_only():
    manager, _, _, _ = make_manager()
    artifact = await manager.create_backup()

    target_path_store = FakePathStore()
    target = BackupManager(MemoryEntityStore(SCHEMAS), target_path_store, None, make_config())
    report = await target.restore_backup(artifact, restore_files=False)

    assert sum(report.records_restored.values()) == 4
    assert report.files_restored == 0
    assert target_path_store.uploads == {}


@pytest.mark.asyncio
async def test_close_closes_fetcher():
    manager, _, _, fetcher = make_manager()
    fetcher.close = AsyncMock()

    await manager.close()

    fetcher.close.assert_awaited_once()
