"""Fetch assets from plain HTTP object storage."""

from contextlib import asynccontextmanager
from typing import Optional

import httpx

from .._utils import logger
from ..backup.exceptions import PermanentBackendError, TransientBackendError
from ..base import AssetStream, BaseHttpFetcher

NOT_FOUND_STATUSES = {404, 410}


def check_status(status_code: int, url: str) -> None:
    """Raise the matching backend error for a non-2xx status."""
    if status_code < 400:
        return
    if status_code in NOT_FOUND_STATUSES:
        raise PermanentBackendError(f"HTTP {status_code} for {url}", status_code=status_code, not_found=True)
    if status_code == 429 or status_code >= 500:
        raise TransientBackendError(f"HTTP {status_code} for {url}", status_code=status_code)
    raise PermanentBackendError(f"HTTP {status_code} for {url}", status_code=status_code)


class HttpAssetFetcher(BaseHttpFetcher):
    """Streaming GET through a shared ``httpx.AsyncClient``.

    Timeouts are enforced by the caller per attempt, so the client itself
    runs without one.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        user_agent: str = "asset-vault-backup/3.0",
        chunk_size: int = 64 * 1024,
    ):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=None,
            follow_redirects=True,
            headers={"User-Agent": user_agent},
        )
        self.chunk_size = chunk_size

    async def fetch(self, url: str) -> bytes:
        async with self.open(url) as stream:
            buffer = bytearray()
            async for chunk in stream.chunks:
                buffer.extend(chunk)
            return bytes(buffer)

    @asynccontextmanager
    async def open(self, url: str):
        try:
            async with self.client.stream("GET", url) as response:
                check_status(response.status_code, url)

                size = response.headers.get("content-length")
                content_type = response.headers.get("content-type")
                if content_type:
                    content_type = content_type.split(";", 1)[0].strip()

                yield AssetStream(
                    size=int(size) if size and size.isdigit() else None,
                    content_type=content_type or None,
                    chunks=response.aiter_bytes(self.chunk_size),
                )
        except httpx.TransportError as e:
            logger.debug(f"Transport error for {url}: {e!r}")
            raise TransientBackendError(f"Request failed for {url}: {e!r}") from e

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()
