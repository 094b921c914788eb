# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3dump Transfer - Streaming access to the backup bucket.

Handles:
1. Multipart upload from an async byte stream (single PUT when small)
2. Streaming download sized by a HEAD request
3. Listing, existence checks and describe for backup objects

Every botocore failure is re-raised as TransferError; a missing object
is reported as False by exists() and never raised from it.
"""

from contextlib import aclosing, asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterable, AsyncIterator, Awaitable, Callable, Dict, List, Sequence

import aiofiles
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from s3dump.config import Codec, S3Config
from s3dump.exceptions import TransferError
from s3dump.keys import extract_display_name
from s3dump.models import TransferDescriptor
from s3dump.pipeline.channel import ByteChannel, require_channel
from s3dump.progress import ProgressAggregator

logger = structlog.get_logger()

DEFAULT_PART_SIZE = 10 * 1024 * 1024
DEFAULT_CHUNK_SIZE = 64 * 1024

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


def _is_not_found(error: ClientError) -> bool:
    """True for every flavour of 'object does not exist'."""
    code = str(error.response.get("Error", {}).get("Code", ""))
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return code in _NOT_FOUND_CODES or status == 404


class _MultipartUpload:
    """Tracks one multipart upload; created lazily on the first part."""

    def __init__(self, client: Any, bucket: str, key: str, content_type: str) -> None:
        self._client = client
        self._bucket = bucket
        self._key = key
        self._content_type = content_type
        self.upload_id: str | None = None
        self.parts: List[Dict[str, Any]] = []

    async def upload_part(self, data: bytes) -> None:
        if self.upload_id is None:
            response = await self._client.create_multipart_upload(
                Bucket=self._bucket, Key=self._key, ContentType=self._content_type
            )
            self.upload_id = response["UploadId"]
            logger.debug("multipart_upload_created", key=self._key, upload_id=self.upload_id)

        part_number = len(self.parts) + 1
        response = await self._client.upload_part(
            Bucket=self._bucket,
            Key=self._key,
            UploadId=self.upload_id,
            PartNumber=part_number,
            Body=data,
        )
        self.parts.append({"ETag": response["ETag"], "PartNumber": part_number})

    async def complete(self) -> None:
        await self._client.complete_multipart_upload(
            Bucket=self._bucket,
            Key=self._key,
            UploadId=self.upload_id,
            MultipartUpload={"Parts": self.parts},
        )

    async def abort(self) -> None:
        if self.upload_id is None:
            return
        try:
            await self._client.abort_multipart_upload(
                Bucket=self._bucket, Key=self._key, UploadId=self.upload_id
            )
            logger.info("multipart_upload_aborted", key=self._key, upload_id=self.upload_id)
        except (ClientError, BotoCoreError) as e:
            logger.warning(
                "multipart_upload_abort_failed",
                key=self._key,
                upload_id=self.upload_id,
                error=str(e),
            )


class TransferAdapter:
    """
    Object-store operations for one bucket.

    A client is created per operation from a shared aiobotocore session.
    """

    def __init__(
        self,
        s3: S3Config,
        part_size: int = DEFAULT_PART_SIZE,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        session: Any = None,
    ) -> None:
        if session is None:
            from aiobotocore.session import get_session

            session = get_session()
        self.s3 = s3
        self.bucket = s3.bucket
        self.part_size = part_size
        self.chunk_size = chunk_size
        self._session = session

    def client_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``session.create_client("s3", ...)``."""
        kwargs: Dict[str, Any] = {"region_name": self.s3.region}
        if self.s3.access_key_id and self.s3.secret_access_key:
            kwargs["aws_access_key_id"] = self.s3.access_key_id
            kwargs["aws_secret_access_key"] = self.s3.secret_access_key
        if self.s3.endpoint_url:
            from aiobotocore.config import AioConfig

            kwargs["endpoint_url"] = self.s3.endpoint_url
            kwargs["config"] = AioConfig(s3={"addressing_style": "path"})
        return kwargs

    @asynccontextmanager
    async def client(self) -> AsyncIterator[Any]:
        """Open an S3 client configured for this bucket."""
        async with self._session.create_client("s3", **self.client_kwargs()) as client:
            yield client

    async def upload(
        self,
        chunks: AsyncIterable[bytes],
        key: str,
        size_hint: int | None = None,
        progress: ProgressAggregator | None = None,
        content_type: str = Codec.GZIP.content_type,
    ) -> int:
        """
        Upload a byte stream to ``key``.

        Data is buffered up to one part at a time. A payload smaller than
        one part is sent with a single PUT; anything larger goes through
        a multipart upload that is aborted on failure or cancellation.

        Returns:
            Number of bytes uploaded
        """
        uploaded = 0
        if progress is not None:
            progress.start(size_hint)

        try:
            async with self.client() as client:
                multipart = _MultipartUpload(client, self.bucket, key, content_type)
                buffer = bytearray()
                try:
                    async for chunk in chunks:
                        buffer += chunk
                        while len(buffer) >= self.part_size:
                            part = bytes(buffer[: self.part_size])
                            del buffer[: self.part_size]
                            await multipart.upload_part(part)
                            uploaded += len(part)
                            if progress is not None:
                                progress.report(uploaded, size_hint)

                    if multipart.upload_id is None:
                        await client.put_object(
                            Bucket=self.bucket,
                            Key=key,
                            Body=bytes(buffer),
                            ContentType=content_type,
                        )
                        uploaded += len(buffer)
                    else:
                        if buffer:
                            await multipart.upload_part(bytes(buffer))
                            uploaded += len(buffer)
                        await multipart.complete()
                except BaseException:
                    await multipart.abort()
                    raise
        except (ClientError, BotoCoreError) as e:
            logger.error("upload_failed", bucket=self.bucket, key=key, error=str(e))
            raise TransferError(
                f"Upload of {key} failed: {e}",
                details={"bucket": self.bucket, "key": key, "uploaded": uploaded},
            ) from e

        if progress is not None:
            progress.complete(uploaded, size_hint or uploaded)
        logger.info("upload_completed", bucket=self.bucket, key=key, bytes=uploaded)
        return uploaded

    async def iter_download(
        self,
        key: str,
        progress: ProgressAggregator | None = None,
    ) -> AsyncIterator[bytes]:
        """Stream the object body chunk by chunk, reporting against its size."""
        try:
            async with self.client() as client:
                head = await client.head_object(Bucket=self.bucket, Key=key)
                total = head.get("ContentLength")
                if progress is not None:
                    progress.start(total)

                response = await client.get_object(Bucket=self.bucket, Key=key)
                loaded = 0
                async with response["Body"] as stream:
                    while True:
                        chunk = await stream.read(self.chunk_size)
                        if not chunk:
                            break
                        loaded += len(chunk)
                        if progress is not None:
                            progress.report(loaded, total)
                        yield chunk
        except ClientError as e:
            logger.error("download_failed", bucket=self.bucket, key=key, error=str(e))
            raise TransferError(
                f"Download of {key} failed: {e}",
                details={"bucket": self.bucket, "key": key, "not_found": _is_not_found(e)},
            ) from e
        except BotoCoreError as e:
            logger.error("download_failed", bucket=self.bucket, key=key, error=str(e))
            raise TransferError(
                f"Download of {key} failed: {e}",
                details={"bucket": self.bucket, "key": key},
            ) from e

    async def download(
        self,
        key: str,
        sink: Callable[[bytes], Awaitable[Any]],
        progress: ProgressAggregator | None = None,
        complete: bool = True,
    ) -> int:
        """
        Stream ``key`` into ``sink``; returns the number of bytes read.

        With ``complete=False`` only intermediate samples are reported and
        the caller delivers the 100% sample once its own work succeeds.
        """
        loaded = 0
        async with aclosing(self.iter_download(key, progress)) as chunks:
            async for chunk in chunks:
                await sink(chunk)
                loaded += len(chunk)
        if progress is not None and complete:
            progress.complete(loaded)
        logger.info("download_completed", bucket=self.bucket, key=key, bytes=loaded)
        return loaded

    async def upload_file(
        self,
        path: Path,
        key: str,
        progress: ProgressAggregator | None = None,
        content_type: str = Codec.GZIP.content_type,
    ) -> int:
        """Upload a local file, reporting progress against its size."""
        size = Path(path).stat().st_size

        async def _read() -> AsyncIterator[bytes]:
            async with aiofiles.open(path, "rb") as f:
                while True:
                    chunk = await f.read(self.chunk_size)
                    if not chunk:
                        return
                    yield chunk

        return await self.upload(_read(), key, size_hint=size, progress=progress, content_type=content_type)

    async def download_to_file(
        self,
        key: str,
        path: Path,
        progress: ProgressAggregator | None = None,
        complete: bool = True,
    ) -> int:
        """Download ``key`` into a local file."""
        async with aiofiles.open(path, "wb") as f:
            return await self.download(key, f.write, progress, complete)

    async def list(
        self,
        suffix: str | Sequence[str] = Codec.GZIP.suffix,
        prefix: str | None = None,
    ) -> List[TransferDescriptor]:
        """
        List backups in the bucket, newest first.

        Args:
            suffix: Only keys ending with this suffix (or any of several)
            prefix: Restrict the listing to keys under this prefix
        """
        suffixes = (suffix,) if isinstance(suffix, str) else tuple(suffix)
        params: Dict[str, Any] = {"Bucket": self.bucket}
        if prefix:
            params["Prefix"] = prefix

        descriptors: List[TransferDescriptor] = []
        try:
            async with self.client() as client:
                paginator = client.get_paginator("list_objects_v2")
                async for page in paginator.paginate(**params):
                    for obj in page.get("Contents", []):
                        key = obj["Key"]
                        if not key.endswith(suffixes):
                            continue
                        descriptors.append(
                            TransferDescriptor(
                                key=key,
                                last_modified=obj["LastModified"],
                                size_bytes=obj.get("Size", 0),
                                display_name=extract_display_name(key),
                            )
                        )
        except (ClientError, BotoCoreError) as e:
            logger.error("list_failed", bucket=self.bucket, error=str(e))
            raise TransferError(
                f"Listing bucket {self.bucket} failed: {e}",
                details={"bucket": self.bucket, "prefix": prefix},
            ) from e

        descriptors.sort(key=lambda d: d.last_modified, reverse=True)
        logger.debug("backups_listed", bucket=self.bucket, count=len(descriptors))
        return descriptors

    async def exists(self, key: str) -> bool:
        """True if the object exists; not-found is False, other failures raise."""
        try:
            async with self.client() as client:
                await client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if _is_not_found(e):
                return False
            raise TransferError(
                f"Existence check for {key} failed: {e}",
                details={"bucket": self.bucket, "key": key},
            ) from e
        except BotoCoreError as e:
            raise TransferError(
                f"Existence check for {key} failed: {e}",
                details={"bucket": self.bucket, "key": key},
            ) from e

    async def describe(self, key: str) -> TransferDescriptor:
        """Metadata of one backup object."""
        try:
            async with self.client() as client:
                head = await client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            raise TransferError(
                f"Describe of {key} failed: {e}",
                details={"bucket": self.bucket, "key": key, "not_found": _is_not_found(e)},
            ) from e
        except BotoCoreError as e:
            raise TransferError(
                f"Describe of {key} failed: {e}",
                details={"bucket": self.bucket, "key": key},
            ) from e

        return TransferDescriptor(
            key=key,
            last_modified=head["LastModified"],
            size_bytes=head.get("ContentLength", 0),
            display_name=extract_display_name(key),
        )


class S3UploadSink:
    """Sink stage uploading the compressed stream to one key."""

    def __init__(
        self,
        adapter: TransferAdapter,
        key: str,
        progress: ProgressAggregator | None = None,
        content_type: str = Codec.GZIP.content_type,
    ) -> None:
        self.name = "upload"
        self.adapter = adapter
        self.key = key
        self.content_type = content_type
        self._progress = progress
        self.bytes_written = 0

    async def run(self, inbox: ByteChannel | None, outbox: ByteChannel | None) -> None:
        inbox = require_channel(inbox, self.name)
        self.bytes_written = await self.adapter.upload(
            inbox, self.key, progress=self._progress, content_type=self.content_type
        )

    async def abort(self) -> None:
        """The upload aborts its own multipart state when cancelled."""


class S3DownloadSource:
    """Source stage streaming one object out of the bucket."""

    def __init__(
        self,
        adapter: TransferAdapter,
        key: str,
        progress: ProgressAggregator | None = None,
    ) -> None:
        self.name = "download"
        self.adapter = adapter
        self.key = key
        self._progress = progress
        self.bytes_read = 0

    async def run(self, inbox: ByteChannel | None, outbox: ByteChannel | None) -> None:
        outbox = require_channel(outbox, self.name)
        async with aclosing(self.adapter.iter_download(self.key, self._progress)) as chunks:
            async for chunk in chunks:
                await outbox.put(chunk)
                self.bytes_read += len(chunk)
        await outbox.close()

    async def abort(self) -> None:
        """The response body is released when the generator is closed."""
