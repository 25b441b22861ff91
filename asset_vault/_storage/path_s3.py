"""Path store on an S3 bucket."""

from contextlib import asynccontextmanager
from typing import BinaryIO, List, Optional

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from .._utils import guess_mime_type, logger
from ..backup.exceptions import PermanentBackendError, TransientBackendError
from ..base import AssetStream, BasePathStore, StoredObject, UploadResult

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
_TRANSIENT_CODES = {"SlowDown", "Throttling", "ThrottlingException", "RequestTimeout", "InternalError", "ServiceUnavailable"}


def _translate(error: Exception, key: str) -> Exception:
    """Map botocore errors onto the retry taxonomy."""
    if isinstance(error, ClientError):
        code = str(error.response.get("Error", {}).get("Code", ""))
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        if code in _NOT_FOUND_CODES or status == 404:
            return PermanentBackendError(f"Not found: {key}", status_code=404, not_found=True)
        if code in _TRANSIENT_CODES or (status is not None and (status == 429 or status >= 500)):
            return TransientBackendError(f"S3 {code} for {key}", status_code=status)
        return PermanentBackendError(f"S3 {code} for {key}", status_code=status)
    return TransientBackendError(f"S3 request failed for {key}: {error}")


class S3PathStore(BasePathStore):
    """Store paths map onto keys below an optional prefix."""

    def __init__(
        self,
        bucket: str,
        region: Optional[str] = None,
        prefix: str = "",
        endpoint_url: Optional[str] = None,
        chunk_size: int = 64 * 1024,
    ):
        self.bucket = bucket
        self.region = region
        self.prefix = prefix.strip("/")
        self.endpoint_url = endpoint_url
        self.chunk_size = chunk_size
        self.session = aioboto3.Session()

    def _client(self):
        return self.session.client("s3", region_name=self.region, endpoint_url=self.endpoint_url)

    def _key(self, path: str) -> str:
        key = path.lstrip("/")
        return f"{self.prefix}/{key}" if self.prefix else key

    async def download(self, path: str) -> bytes:
        key = self._key(path)
        async with self._client() as s3:
            try:
                response = await s3.get_object(Bucket=self.bucket, Key=key)
                return await response["Body"].read()
            except (ClientError, BotoCoreError) as e:
                raise _translate(e, key) from e

    async def upload(self, path: str, data: bytes, content_type: str) -> UploadResult:
        key = self._key(path)
        async with self._client() as s3:
            await s3.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        logger.debug(f"Uploaded s3://{self.bucket}/{key} ({len(data)} bytes)")
        return UploadResult(path="/" + path.lstrip("/"))

    async def upload_file(self, path: str, fileobj: BinaryIO, content_type: str) -> UploadResult:
        key = self._key(path)
        async with self._client() as s3:
            # Managed transfer, large bodies go up as a multipart upload
            await s3.upload_fileobj(fileobj, self.bucket, key, ExtraArgs={"ContentType": content_type})
        logger.debug(f"Uploaded s3://{self.bucket}/{key}")
        return UploadResult(path="/" + path.lstrip("/"))

    async def get_size(self, path: str) -> Optional[int]:
        key = self._key(path)
        async with self._client() as s3:
            try:
                head = await s3.head_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                if isinstance(_translate(e, key), PermanentBackendError):
                    return None
                raise
        return head.get("ContentLength")

    async def list_folder(self, folder: str) -> List[StoredObject]:
        folder_key = self._key(folder).rstrip("/")
        list_prefix = f"{folder_key}/" if folder_key else ""
        items = []

        async with self._client() as s3:
            paginator = s3.get_paginator("list_objects_v2")
            async for page in paginator.paginate(Bucket=self.bucket, Prefix=list_prefix, Delimiter="/"):
                for obj in page.get("Contents", []):
                    name = obj["Key"][len(list_prefix):]
                    if not name:
                        continue
                    items.append(StoredObject(
                        name=name,
                        path=f"/{folder.strip('/')}/{name}" if folder.strip("/") else f"/{name}",
                        size=obj.get("Size"),
                        modified_at=obj.get("LastModified"),
                    ))
        return items

    async def delete(self, path: str) -> bool:
        if await self.get_size(path) is None:
            return False
        async with self._client() as s3:
            await s3.delete_object(Bucket=self.bucket, Key=self._key(path))
        return True

    @asynccontextmanager
    async def open(self, path: str):
        key = self._key(path)
        async with self._client() as s3:
            try:
                head = await s3.head_object(Bucket=self.bucket, Key=key)
            except (ClientError, BotoCoreError) as e:
                raise _translate(e, key) from e

            async def _chunks():
                try:
                    response = await s3.get_object(Bucket=self.bucket, Key=key)
                    body = response["Body"]
                    while True:
                        chunk = await body.read(self.chunk_size)
                        if not chunk:
                            break
                        yield chunk
                except (ClientError, BotoCoreError) as e:
                    raise _translate(e, key) from e

            yield AssetStream(
                size=head.get("ContentLength"),
                content_type=head.get("ContentType") or guess_mime_type(path),
                chunks=_chunks(),
            )
