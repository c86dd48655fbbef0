# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgs3backup Backup Service - Entry point for taking a backup.
"""

import time

import httpx
import structlog
from aiobotocore.session import AioSession

from pgs3backup.backup.executor import Executor
from pgs3backup.backup.result import BackupResult
from pgs3backup.builder import create_config
from pgs3backup.config import BackupConfig
from pgs3backup.instance import InstanceClient
from pgs3backup.storage import open_repository

logger = structlog.get_logger()


def resolve_config(bucket: str, prefix: str, config: BackupConfig | None) -> BackupConfig:
    """Bind bucket and prefix onto config, or onto defaults when config is None."""
    if config is None:
        return create_config(bucket=bucket, prefix=prefix)
    return config.with_updates(bucket=bucket, prefix=prefix.strip("/"))


async def perform_backup(
    bucket: str,
    prefix: str,
    config: BackupConfig | None = None,
    session: AioSession | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> BackupResult:
    """
    Take a full backup of the local instance into bucket/prefix.

    Args:
        bucket: Destination bucket (must exist)
        prefix: Key prefix for the archive
        config: Remaining settings (defaults when omitted)
        session: aiobotocore session to reuse
        transport: httpx transport for the instance manager (tests)

    Returns:
        BackupResult describing the backup

    Raises:
        BucketNotFoundError: If the bucket does not exist
        BackupError: If any phase of the backup fails
    """
    config = resolve_config(bucket, prefix, config)
    repository = await open_repository(config, session)
    executor = Executor(config, repository, instance=InstanceClient(config, transport))

    started_at = int(time.time())
    completed = await executor.backup()
    stopped_at = int(time.time())

    status = completed.status
    backup_name = status.backup_name or completed.backup_name

    result = BackupResult(
        backup_id=backup_name,
        backup_name=backup_name,
        started_at=started_at,
        stopped_at=stopped_at,
        begin_wal=executor.begin_wal,
        end_wal=executor.end_wal,
        begin_lsn=status.begin_lsn,
        end_lsn=status.end_lsn,
        backup_label_file=status.label_file,
        tablespace_map_file=status.spcmap_file,
        object_key=completed.object_key,
        online=True,
    )

    logger.info(
        "backup_result_ready",
        backup_name=backup_name,
        key=result.object_key,
        duration=stopped_at - started_at,
    )
    return result
