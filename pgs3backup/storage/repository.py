# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgs3backup Repository - Bucket-bound object storage for backup archives.

A Repository is bound to one bucket and key prefix. It is created per
backup or restore invocation with open_repository(), which verifies that
the bucket exists. No connection is held open: every operation creates its
own client from the shared aiobotocore session.
"""

import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Protocol

import aiofiles
import structlog
from aiobotocore.config import AioConfig
from aiobotocore.session import AioSession, get_session
from botocore.exceptions import BotoCoreError, ClientError

from pgs3backup.config import BackupConfig
from pgs3backup.errors import explain_bucket_not_found
from pgs3backup.exceptions import BucketNotFoundError, StorageError

logger = structlog.get_logger()

# Chunk size used when streaming downloads to disk
DOWNLOAD_CHUNK_SIZE = 1024 * 1024

_MISSING_BUCKET_CODES = {"404", "NoSuchBucket", "NotFound"}


class SnapshotStore(Protocol):
    """The storage capability the backup executor depends on."""

    @property
    def working_dir(self) -> Path: ...

    async def put(self, name: str, local_file: Path) -> str: ...


@dataclass
class Repository:
    """A bucket/prefix location holding backup archives."""

    bucket: str
    prefix: str
    working_dir: Path
    session: AioSession = field(repr=False)
    client_kwargs: Dict[str, Any] = field(default_factory=dict, repr=False)

    def object_key(self, name: str) -> str:
        """
        Key under which name is stored.

        Names already carrying the prefix are returned unchanged so that a
        key reported by a backup can be passed straight back to restore.
        """
        prefix = self.prefix.strip("/")
        if not prefix:
            return name
        if name.startswith(prefix + "/"):
            return name
        return posixpath.join(prefix, name)

    def _client(self) -> Any:
        return self.session.create_client("s3", **self.client_kwargs)

    async def put(self, name: str, local_file: Path) -> str:
        """
        Upload local_file under object_key(name).

        The local file is removed as soon as its content has been handed to
        the upload, before the upload is confirmed. A failed upload leaves
        no local copy behind.

        Returns:
            The object key

        Raises:
            StorageError: If the file cannot be read or the upload fails
        """
        key = self.object_key(name)

        try:
            async with aiofiles.open(local_file, "rb") as f:
                body = await f.read()
            Path(local_file).unlink()
        except OSError as e:
            raise StorageError(
                f"Failed to read local file for upload: {e}",
                details={"key": key, "local_file": str(local_file)},
            ) from e

        logger.info("uploading_object", key=key, file=str(local_file), size=len(body))

        try:
            async with self._client() as client:
                await client.put_object(Bucket=self.bucket, Key=key, Body=body)
        except (ClientError, BotoCoreError) as e:
            logger.error("upload_failed", key=key, error=str(e))
            raise StorageError(
                f"Unable to upload object to remote bucket: {e}",
                details={"bucket": self.bucket, "key": key},
            ) from e

        logger.info("object_uploaded", key=key)
        return key

    async def get(self, name: str) -> Path:
        """
        Download object_key(name) into the working directory.

        The local file is named after the object's base name.

        Returns:
            Path of the downloaded file

        Raises:
            StorageError: If the object cannot be fetched or written
        """
        key = self.object_key(name)
        local_path = self.working_dir / posixpath.basename(key)

        try:
            self.working_dir.mkdir(parents=True, exist_ok=True)
            async with self._client() as client:
                response = await client.get_object(Bucket=self.bucket, Key=key)
                async with response["Body"] as stream:
                    async with aiofiles.open(local_path, "wb") as f:
                        while True:
                            chunk = await stream.read(DOWNLOAD_CHUNK_SIZE)
                            if not chunk:
                                break
                            await f.write(chunk)
        except (ClientError, BotoCoreError, OSError) as e:
            logger.error("download_failed", key=key, error=str(e))
            raise StorageError(
                f"Unable to download object from remote bucket: {e}",
                details={"bucket": self.bucket, "key": key},
            ) from e

        logger.info("object_downloaded", key=key, path=str(local_path))
        return local_path

    async def exists(self) -> bool:
        """Whether the bucket is reachable. Used by health checks."""
        try:
            async with self._client() as client:
                await client.head_bucket(Bucket=self.bucket)
            return True
        except (ClientError, BotoCoreError):
            return False


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


async def open_repository(
    config: BackupConfig,
    session: AioSession | None = None,
) -> Repository:
    """
    Bind a Repository to config.bucket/config.prefix.

    Args:
        config: Backup configuration (bucket, prefix, client settings)
        session: aiobotocore session to reuse (a new one by default)

    Returns:
        A Repository for the bucket

    Raises:
        BucketNotFoundError: If the bucket does not exist
        botocore.exceptions.ClientError: Any other probe failure, unchanged
    """
    session = session or get_session()
    client_kwargs = config.client_kwargs()
    if config.endpoint_url:
        # S3-compatible endpoints (MinIO, Ceph, ...) rarely support virtual hosts
        client_kwargs["config"] = AioConfig(s3={"addressing_style": "path"})

    repository = Repository(
        bucket=config.bucket,
        prefix=config.prefix,
        working_dir=config.working_dir,
        session=session,
        client_kwargs=client_kwargs,
    )

    try:
        async with repository._client() as client:
            await client.head_bucket(Bucket=config.bucket)
    except ClientError as e:
        if _error_code(e) in _MISSING_BUCKET_CODES:
            raise BucketNotFoundError(
                explain_bucket_not_found(config.bucket),
                details={"bucket": config.bucket},
            ) from e
        raise

    logger.debug("repository_opened", bucket=config.bucket, prefix=config.prefix)
    return repository
