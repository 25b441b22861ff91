"""Storage contracts the backup engine talks to."""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator, BinaryIO, Dict, List, Optional, Tuple

from ._utils import guess_mime_type


@dataclass
class AssetStream:
    """An opened asset: metadata first, body only when iterated."""
    size: Optional[int]
    content_type: Optional[str]
    chunks: AsyncIterator[bytes]


@dataclass
class UploadResult:
    path: str
    url: Optional[str] = None

    @property
    def locator(self) -> str:
        return self.url or self.path


@dataclass
class StoredObject:
    name: str
    path: str
    size: Optional[int] = None
    modified_at: Optional[datetime] = None


@dataclass(frozen=True)
class CollectionSchema:
    """What the engine needs to know about an entity collection."""
    name: str
    primary_key: str = "id"
    depends_on: Tuple[str, ...] = ()
    asset_fields: Tuple[str, ...] = ()


class BaseAssetBackend(ABC):
    """Anything assets can be read from."""

    @abstractmethod
    def open(self, locator: str):
        """Return an async context manager yielding an AssetStream."""
        raise NotImplementedError


class BasePathStore(BaseAssetBackend):
    """Path-addressed storage (team drive style)."""

    @abstractmethod
    async def download(self, path: str) -> bytes:
        raise NotImplementedError

    @abstractmethod
    async def upload(self, path: str, data: bytes, content_type: str) -> UploadResult:
        raise NotImplementedError

    async def upload_file(self, path: str, fileobj: BinaryIO, content_type: str) -> UploadResult:
        """Upload from a binary file positioned at the start of the body.

        Stores that can stream override this. The default reads the whole
        file and hands it to ``upload``.
        """
        data = await asyncio.to_thread(fileobj.read)
        return await self.upload(path, data, content_type)

    @abstractmethod
    async def get_size(self, path: str) -> Optional[int]:
        """Size in bytes, or None when the store cannot tell."""
        raise NotImplementedError

    @abstractmethod
    async def list_folder(self, folder: str) -> List[StoredObject]:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, path: str) -> bool:
        raise NotImplementedError

    @asynccontextmanager
    async def open(self, path: str):
        # The body is only downloaded once the caller starts iterating
        size = await self.get_size(path)

        async def _chunks():
            yield await self.download(path)

        yield AssetStream(size=size, content_type=guess_mime_type(path), chunks=_chunks())


class BaseHttpFetcher(BaseAssetBackend):
    """Plain HTTP object storage."""

    @abstractmethod
    async def fetch(self, url: str) -> bytes:
        raise NotImplementedError

    async def close(self) -> None:
        pass


class BaseEntityStore(ABC):
    """The relational dataset, seen as generic entity collections."""

    @abstractmethod
    def schemas(self) -> Dict[str, CollectionSchema]:
        raise NotImplementedError

    async def collection_names(self) -> List[str]:
        return list(self.schemas().keys())

    @abstractmethod
    async def read_all(self, name: str) -> List[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    async def insert(self, name: str, row: Dict[str, Any]) -> None:
        """Create a row. Raises RowConflict when its identity already exists."""
        raise NotImplementedError

    @abstractmethod
    async def update_field(self, name: str, key: str, field_name: str, value: Any) -> None:
        raise NotImplementedError
