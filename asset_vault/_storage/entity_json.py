"""Entity collections stored as one JSON file per collection."""

import asyncio
import json
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .._utils import logger
from ..backup.exceptions import RowConflict
from ..base import BaseEntityStore, CollectionSchema

SCHEMA_FILE = "_schemas.json"


def load_json(file_name: Path) -> Optional[Any]:
    if not file_name.exists():
        return None
    with open(file_name, encoding="utf-8") as f:
        return json.load(f)


def write_json(json_obj: Any, file_name: Path) -> None:
    tmp = file_name.with_name(file_name.name + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(json_obj, f, indent=2, ensure_ascii=False, default=str)
    os.replace(tmp, file_name)


class JsonEntityStore(BaseEntityStore):
    """Each collection lives in ``<directory>/<name>.json`` as a list of rows.

    Schemas come from the constructor or from ``_schemas.json`` in the same
    directory, e.g.::

        {"projects": {"primary_key": "id", "depends_on": ["clients"],
                      "asset_fields": ["cover_image_url"]}}
    """

    def __init__(self, directory: str, schemas: Optional[Iterable[CollectionSchema]] = None):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()
        self._cache: Dict[str, List[Dict[str, Any]]] = {}

        if schemas is not None:
            self._schemas = {schema.name: schema for schema in schemas}
        else:
            self._schemas = self._load_schemas()

    def _load_schemas(self) -> Dict[str, CollectionSchema]:
        raw = load_json(self.directory / SCHEMA_FILE) or {}
        schemas = {}
        for name, spec in raw.items():
            schemas[name] = CollectionSchema(
                name=name,
                primary_key=spec.get("primary_key", "id"),
                depends_on=tuple(spec.get("depends_on", ())),
                asset_fields=tuple(spec.get("asset_fields", ())),
            )
        logger.debug(f"Loaded {len(schemas)} collection schemas from {self.directory}")
        return schemas

    def schemas(self) -> Dict[str, CollectionSchema]:
        return dict(self._schemas)

    async def collection_names(self) -> List[str]:
        names = list(self._schemas.keys())
        for file_name in sorted(self.directory.glob("*.json")):
            if file_name.name != SCHEMA_FILE and file_name.stem not in self._schemas:
                names.append(file_name.stem)
        return names

    def _file(self, name: str) -> Path:
        if not name or "/" in name or name.startswith("."):
            raise ValueError(f"Invalid collection name: {name!r}")
        return self.directory / f"{name}.json"

    async def _rows(self, name: str) -> List[Dict[str, Any]]:
        if name not in self._cache:
            data = await asyncio.to_thread(load_json, self._file(name))
            if data is not None and not isinstance(data, list):
                raise ValueError(f"{self._file(name)} does not hold a list of rows")
            self._cache[name] = data or []
        return self._cache[name]

    def _primary_key(self, name: str) -> str:
        schema = self._schemas.get(name)
        return schema.primary_key if schema else "id"

    async def read_all(self, name: str) -> List[Dict[str, Any]]:
        async with self._lock:
            return [dict(row) for row in await self._rows(name)]

    async def insert(self, name: str, row: Dict[str, Any]) -> None:
        primary_key = self._primary_key(name)
        async with self._lock:
            rows = await self._rows(name)
            key = row.get(primary_key)
            if key is not None and any(existing.get(primary_key) == key for existing in rows):
                raise RowConflict(name, str(key))
            rows.append(dict(row))
            await asyncio.to_thread(write_json, rows, self._file(name))

    async def update_field(self, name: str, key: str, field_name: str, value: Any) -> None:
        primary_key = self._primary_key(name)
        async with self._lock:
            rows = await self._rows(name)
            for row in rows:
                if str(row.get(primary_key)) == str(key):
                    row[field_name] = value
                    await asyncio.to_thread(write_json, rows, self._file(name))
                    return
        raise KeyError(f"No row {key!r} in {name!r}")
