"""Tests for the local directory path store."""

import io

import pytest

from asset_vault._storage.path_local import LocalPathStore
from asset_vault.backup.exceptions import PermanentBackendError


@pytest.fixture
def store(tmp_path):
    return LocalPathStore(str(tmp_path / "files"), chunk_size=4)


@pytest.mark.asyncio
async def test_upload_download_roundtrip(store):
    result = await store.upload("/photos/cover.png", b"png bytes", "image/png")

    assert result.path == "/photos/cover.png"
    assert result.locator == "/photos/cover.png"
    assert await store.download("/photos/cover.png") == b"png bytes"
    assert await store.get_size("/photos/cover.png") == 9
    assert not (store.root / "photos" / "cover.png.partial").exists()


@pytest.mark.asyncio
async def test_upload_file_copies_stream(store):
    result = await store.upload_file("/backups/b.json.gz", io.BytesIO(b"\x1f\x8b0123456789"), "application/gzip")

    assert result.path == "/backups/b.json.gz"
    assert await store.download("/backups/b.json.gz") == b"\x1f\x8b0123456789"
    assert not (store.root / "backups" / "b.json.gz.partial").exists()


@pytest.mark.asyncio
async def test_upload_overwrites(store):
    await store.upload("/a.txt", b"first", "text/plain")
    await store.upload("/a.txt", b"second", "text/plain")

    assert await store.download("/a.txt") == b"second"


@pytest.mark.asyncio
async def test_missing_file(store):
    assert await store.get_size("/missing.png") is None

    with pytest.raises(PermanentBackendError) as exc_info:
        await store.download("/missing.png")
    assert exc_info.value.not_found

    with pytest.raises(PermanentBackendError) as exc_info:
        async with store.open("/missing.png"):
            pass
    assert exc_info.value.not_found


@pytest.mark.asyncio
async def test_paths_cannot_escape_root(store):
    with pytest.raises(PermanentBackendError, match="escapes"):
        await store.download("/../../etc/passwd")


@pytest.mark.asyncio
async def test_open_streams_in_chunks(store):
    await store.upload("/docs/plan.pdf", b"0123456789", "application/pdf")

    async with store.open("/docs/plan.pdf") as stream:
        assert stream.size == 10
        assert stream.content_type == "application/pdf"
        chunks = [chunk async for chunk in stream.chunks]

    assert chunks == [b"0123", b"4567", b"89"]


@pytest.mark.asyncio
async def test_list_folder_and_delete(store):
    await store.upload("/backups/b.json.gz", b"bb", "application/gzip")
    await store.upload("/backups/a.json.gz", b"a", "application/gzip")
    await store.upload("/backups/nested/c.json.gz", b"c", "application/gzip")

    items = await store.list_folder("/backups")

    assert [item.name for item in items] == ["a.json.gz", "b.json.gz"]
    assert items[0].path == "/backups/a.json.gz"
    assert items[1].size == 2
    assert items[0].modified_at is not None

    assert await store.delete("/backups/a.json.gz") is True
    assert await store.delete("/backups/a.json.gz") is False
    assert [item.name for item in await store.list_folder("/backups")] == ["b.json.gz"]


@pytest.mark.asyncio
async def test_list_missing_folder(store):
    assert await store.list_folder("/nothing-here") == []
