"""Tests for archive retention."""

from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock

from asset_vault.backup.models import ArchivedBackup
from asset_vault.backup.retention import enforce_retention

BASE = datetime(2026, 1, 1, tzinfo=timezone.utc)


def archives(count):
    return [
        ArchivedBackup(name=f"backup_{i}.json.gz", path=f"/backups/backup_{i}.json.gz", created_at=BASE + timedelta(days=i))
        for i in range(count)
    ]


def lister(items):
    return AsyncMock(return_value=list(items))


@pytest.mark.asyncio
@pytest.mark.parametrize("total,keep", [(5, 2), (25, 20), (3, 0), (2, 1)])
async def test_deletes_exactly_the_oldest(total, keep):
    items = archives(total)
    # Listing order must not matter
    items.reverse()
    delete = AsyncMock(return_value=True)

    deleted = await enforce_retention(lister(items), delete, keep=keep)

    assert sorted(deleted) == sorted(f"backup_{i}.json.gz" for i in range(total - keep))
    assert delete.await_count == total - keep


@pytest.mark.asyncio
async def test_nothing_deleted_when_under_limit():
    delete = AsyncMock(return_value=True)

    deleted = await enforce_retention(lister(archives(3)), delete, keep=5)

    assert deleted == []
    delete.assert_not_awaited()


@pytest.mark.asyncio
async def test_protected_archive_survives():
    items = archives(4)
    delete = AsyncMock(return_value=True)

    deleted = await enforce_retention(lister(items), delete, keep=1, protect=["backup_0.json.gz"])

    assert "backup_0.json.gz" not in deleted
    assert sorted(deleted) == ["backup_1.json.gz", "backup_2.json.gz"]


@pytest.mark.asyncio
async def test_only_listed_names_are_deleted():
    delete = AsyncMock(return_value=True)

    await enforce_retention(lister(archives(3)), delete, keep=1)

    for call in delete.await_args_list:
        assert call.args[0] in {a.name for a in archives(3)}


@pytest.mark.asyncio
async def test_failed_delete_does_not_stop_the_pass():
    async def delete(name):
        if name == "backup_0.json.gz":
            raise ConnectionError("storage hiccup")
        return True

    deleted = await enforce_retention(lister(archives(4)), delete, keep=1)

    assert sorted(deleted) == ["backup_1.json.gz", "backup_2.json.gz"]


@pytest.mark.asyncio
async def test_negative_keep_is_rejected():
    with pytest.raises(ValueError):
        await enforce_retention(lister([]), AsyncMock(), keep=-1)
