# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Repository Tests.

Object storage operations against a moto S3 server.
"""

from pathlib import Path

import pytest
from botocore.exceptions import ClientError

from pgs3backup.config import BackupConfig
from pgs3backup.exceptions import BucketNotFoundError, StorageError
from pgs3backup.storage import open_repository

from conftest import get_s3_object_content, s3_object_exists


@pytest.mark.asyncio
async def test_missing_bucket_raises_bucket_not_found(s3_client, backup_config: BackupConfig):
    config = backup_config.with_updates(bucket="no-such-bucket")

    with pytest.raises(BucketNotFoundError, match="bucket no-such-bucket: not found"):
        await open_repository(config)


@pytest.mark.asyncio
async def test_object_key_joins_prefix(s3_client, backup_config: BackupConfig):
    repository = await open_repository(backup_config)

    assert repository.object_key("20240101120000.sql.tar.gz") == "p/20240101120000.sql.tar.gz"
    assert repository.object_key("p/20240101120000.sql.tar.gz") == "p/20240101120000.sql.tar.gz"

    bare = await open_repository(backup_config.with_updates(prefix=""))
    assert bare.object_key("20240101120000.sql.tar.gz") == "20240101120000.sql.tar.gz"


@pytest.mark.asyncio
async def test_put_uploads_and_removes_local_file(s3_client, backup_config: BackupConfig):
    repository = await open_repository(backup_config)
    backup_config.working_dir.mkdir(parents=True)
    local = backup_config.working_dir / "20240101120000.sql.tar.gz"
    local.write_bytes(b"archive bytes")

    key = await repository.put(local.name, local)

    assert key == "p/20240101120000.sql.tar.gz"
    assert not local.exists()
    assert await get_s3_object_content(s3_client, "test-bucket", key) == b"archive bytes"


@pytest.mark.asyncio
async def test_failed_upload_still_removes_local_file(s3_client, backup_config: BackupConfig):
    repository = await open_repository(backup_config)
    await s3_client.delete_bucket(Bucket="test-bucket")

    backup_config.working_dir.mkdir(parents=True)
    local = backup_config.working_dir / "20240101120000.sql.tar.gz"
    local.write_bytes(b"archive bytes")

    with pytest.raises(StorageError):
        await repository.put(local.name, local)

    assert not local.exists()


@pytest.mark.asyncio
async def test_put_missing_local_file_raises(s3_client, backup_config: BackupConfig, temp_dir: Path):
    repository = await open_repository(backup_config)

    with pytest.raises(StorageError):
        await repository.put("gone.tar.gz", temp_dir / "gone.tar.gz")

    assert not await s3_object_exists(s3_client, "test-bucket", "p/gone.tar.gz")


@pytest.mark.asyncio
async def test_get_downloads_into_working_dir(s3_client, backup_config: BackupConfig):
    await s3_client.put_object(
        Bucket="test-bucket", Key="p/20240101120000.sql.tar.gz", Body=b"payload"
    )
    repository = await open_repository(backup_config)

    path = await repository.get("20240101120000.sql.tar.gz")

    assert path == backup_config.working_dir / "20240101120000.sql.tar.gz"
    assert path.read_bytes() == b"payload"


@pytest.mark.asyncio
async def test_get_missing_object_raises(s3_client, backup_config: BackupConfig):
    repository = await open_repository(backup_config)

    with pytest.raises(StorageError):
        await repository.get("19990101000000.sql.tar.gz")


@pytest.mark.asyncio
async def test_exists_reports_bucket_reachability(s3_client, backup_config: BackupConfig):
    repository = await open_repository(backup_config)
    assert await repository.exists()

    await s3_client.delete_bucket(Bucket="test-bucket")
    assert not await repository.exists()


@pytest.mark.asyncio
async def test_other_probe_errors_propagate_unchanged(s3_client, backup_config: BackupConfig):
    # moto accepts any credentials, so a 403 probe is simulated
    class ForbiddenSession:
        def create_client(self, *args, **kwargs):
            return _ForbiddenClient()

    with pytest.raises(ClientError) as exc_info:
        await open_repository(backup_config, session=ForbiddenSession())

    assert not isinstance(exc_info.value, BucketNotFoundError)


class _ForbiddenClient:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def head_bucket(self, Bucket):
        raise ClientError({"Error": {"Code": "403", "Message": "Forbidden"}}, "HeadBucket")
