"""In-memory stores shared by the backup tests."""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from asset_vault.backup.exceptions import PermanentBackendError, RowConflict
from asset_vault.base import (
    AssetStream,
    BaseEntityStore,
    BaseHttpFetcher,
    BasePathStore,
    CollectionSchema,
    StoredObject,
    UploadResult,
)


class ScriptedBackend:
    """Serves bytes by locator with optional delays, scripted errors and hidden sizes."""

    def __init__(self, files: Optional[Dict[str, bytes]] = None):
        self.files: Dict[str, bytes] = dict(files or {})
        self.delays: Dict[str, float] = {}
        self.errors: Dict[str, List[Exception]] = {}
        self.hide_size: set = set()
        self.open_calls: Dict[str, int] = {}
        self.body_reads: Dict[str, int] = {}
        self.active = 0
        self.max_active = 0

    def fail(self, locator: str, *errors: Exception) -> None:
        """Raise these errors on the next attempts, one per attempt."""
        self.errors[locator] = list(errors)

    @asynccontextmanager
    async def open(self, locator: str):
        self.open_calls[locator] = self.open_calls.get(locator, 0) + 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delays.get(locator):
                await asyncio.sleep(self.delays[locator])

            scripted = self.errors.get(locator)
            if scripted:
                raise scripted.pop(0)

            if locator not in self.files:
                raise PermanentBackendError(f"Not found: {locator}", status_code=404, not_found=True)

            data = self.files[locator]

            async def _chunks():
                self.body_reads[locator] = self.body_reads.get(locator, 0) + 1
                for start in range(0, len(data), 4):
                    yield data[start:start + 4]

            yield AssetStream(
                size=None if locator in self.hide_size else len(data),
                content_type=None,
                chunks=_chunks(),
            )
        finally:
            self.active -= 1


class FakePathStore(ScriptedBackend, BasePathStore):
    """Path store over a dict. Uploads may be redirected to a new location."""

    def __init__(self, files: Optional[Dict[str, bytes]] = None, relocate_to: Optional[str] = None):
        super().__init__(files)
        self.uploads: Dict[str, bytes] = {}
        self.upload_errors: Dict[str, Exception] = {}
        self.relocate_to = relocate_to
        self.deleted: List[str] = []
        self.modified: Dict[str, Any] = {}

    async def download(self, path: str) -> bytes:
        return self.files[path]

    async def upload(self, path: str, data: bytes, content_type: str) -> UploadResult:
        if path in self.upload_errors:
            raise self.upload_errors[path]
        self.uploads[path] = data
        self.files[path] = data
        if self.relocate_to:
            return UploadResult(path=path, url=f"{self.relocate_to}{path}")
        return UploadResult(path=path)

    async def get_size(self, path: str) -> Optional[int]:
        data = self.files.get(path)
        return None if data is None else len(data)

    async def list_folder(self, folder: str) -> List[StoredObject]:
        prefix = folder.rstrip("/") + "/"
        return [
            StoredObject(name=path[len(prefix):], path=path, size=len(data), modified_at=self.modified.get(path))
            for path, data in self.files.items()
            if path.startswith(prefix) and "/" not in path[len(prefix):]
        ]

    async def delete(self, path: str) -> bool:
        if path not in self.files:
            return False
        del self.files[path]
        self.deleted.append(path)
        return True


class FakeHttpFetcher(ScriptedBackend, BaseHttpFetcher):
    async def fetch(self, url: str) -> bytes:
        return self.files[url]


class MemoryEntityStore(BaseEntityStore):
    """Collections as lists of dicts keyed by their schema's primary key."""

    def __init__(self, schemas: List[CollectionSchema], data: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self._schemas = {schema.name: schema for schema in schemas}
        self.data: Dict[str, List[Dict[str, Any]]] = {name: [] for name in self._schemas}
        for name, rows in (data or {}).items():
            self.data[name] = [dict(row) for row in rows]
        self.read_errors: Dict[str, Exception] = {}
        self.insert_errors: Dict[Any, Exception] = {}
        self.insert_log: List[str] = []

    def schemas(self) -> Dict[str, CollectionSchema]:
        return dict(self._schemas)

    async def collection_names(self) -> List[str]:
        return list(self.data.keys())

    async def read_all(self, name: str) -> List[Dict[str, Any]]:
        if name in self.read_errors:
            raise self.read_errors[name]
        return [dict(row) for row in self.data.get(name, [])]

    def _pk(self, name: str) -> str:
        schema = self._schemas.get(name)
        return schema.primary_key if schema else "id"

    async def insert(self, name: str, row: Dict[str, Any]) -> None:
        key = row.get(self._pk(name))
        if (name, key) in self.insert_errors:
            raise self.insert_errors[(name, key)]
        rows = self.data.setdefault(name, [])
        if any(existing.get(self._pk(name)) == key for existing in rows):
            raise RowConflict(name, str(key))
        self.insert_log.append(name)
        rows.append(dict(row))

    async def update_field(self, name: str, key: str, field_name: str, value: Any) -> None:
        for row in self.data.get(name, []):
            if str(row.get(self._pk(name))) == str(key):
                row[field_name] = value
                return
        raise KeyError(f"No row {key!r} in {name!r}")
