"""Path store backed by a local directory."""

import asyncio
import os
import shutil
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, List, Optional

from .._utils import guess_mime_type, logger
from ..backup.exceptions import PermanentBackendError
from ..base import AssetStream, BasePathStore, StoredObject, UploadResult


class LocalPathStore(BasePathStore):
    """Maps store paths such as ``/photos/a.png`` onto files under ``root``."""

    def __init__(self, root: str, chunk_size: int = 64 * 1024):
        self.root = Path(root).resolve()
        self.chunk_size = chunk_size
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        target = (self.root / path.lstrip("/")).resolve()
        if target != self.root and self.root not in target.parents:
            raise PermanentBackendError(f"Path escapes store root: {path}")
        return target

    async def download(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except FileNotFoundError as e:
            raise PermanentBackendError(f"Not found: {path}", status_code=404, not_found=True) from e

    async def upload(self, path: str, data: bytes, content_type: str) -> UploadResult:
        target = self._resolve(path)

        def _write():
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp = target.with_name(target.name + ".partial")
            tmp.write_bytes(data)
            os.replace(tmp, target)

        await asyncio.to_thread(_write)
        logger.debug(f"Stored {path} ({len(data)} bytes, {content_type})")
        return UploadResult(path="/" + path.lstrip("/"))

    async def upload_file(self, path: str, fileobj: BinaryIO, content_type: str) -> UploadResult:
        target = self._resolve(path)

        def _copy():
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp = target.with_name(target.name + ".partial")
            with open(tmp, "wb") as out:
                shutil.copyfileobj(fileobj, out, self.chunk_size)
            os.replace(tmp, target)
            return target.stat().st_size

        size = await asyncio.to_thread(_copy)
        logger.debug(f"Stored {path} ({size} bytes, {content_type})")
        return UploadResult(path="/" + path.lstrip("/"))

    async def get_size(self, path: str) -> Optional[int]:
        target = self._resolve(path)
        try:
            return target.stat().st_size if target.is_file() else None
        except OSError:
            return None

    async def list_folder(self, folder: str) -> List[StoredObject]:
        directory = self._resolve(folder)
        if not directory.is_dir():
            return []

        prefix = "/" + folder.strip("/")
        items = []
        for entry in sorted(directory.iterdir()):
            if not entry.is_file():
                continue
            stat = entry.stat()
            items.append(StoredObject(
                name=entry.name,
                path=f"{prefix.rstrip('/')}/{entry.name}",
                size=stat.st_size,
                modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            ))
        return items

    async def delete(self, path: str) -> bool:
        target = self._resolve(path)
        if not target.is_file():
            return False
        target.unlink()
        return True

    @asynccontextmanager
    async def open(self, path: str):
        target = self._resolve(path)
        size = await self.get_size(path)
        if size is None:
            raise PermanentBackendError(f"Not found: {path}", status_code=404, not_found=True)

        async def _chunks():
            with open(target, "rb") as f:
                while True:
                    chunk = await asyncio.to_thread(f.read, self.chunk_size)
                    if not chunk:
                        break
                    yield chunk

        yield AssetStream(size=size, content_type=guess_mime_type(path), chunks=_chunks())
