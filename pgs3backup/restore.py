# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgs3backup Restore - Download, extract, replay and clean up.

Restores run against an instance that is not serving yet, so there is no
backup mode negotiation: the pipeline is strictly linear and any failing
step aborts it.
"""

import asyncio
import posixpath
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List

import structlog
from aiobotocore.session import AioSession

from pgs3backup import snapshot
from pgs3backup.archive import extract_snapshot, strip_archive_suffix
from pgs3backup.backup.service import resolve_config
from pgs3backup.config import BackupConfig
from pgs3backup.exceptions import PGS3BackupError, RestoreError
from pgs3backup.storage import open_repository

logger = structlog.get_logger()


@dataclass
class RestoreResult:
    """Result of a restore operation."""

    backup_name: str
    dump_file: str
    duration_seconds: float = 0.0


def _remove_path(path: Path) -> None:
    if path.is_dir():
        shutil.rmtree(path)
    elif path.exists():
        path.unlink()


def _cleanup(paths: List[Path], strict: bool) -> None:
    """
    Remove local working files.

    With strict=False removal errors are logged and ignored, so they never
    mask the error that aborted the restore.
    """
    for path in paths:
        try:
            _remove_path(path)
        except OSError as e:
            if strict:
                raise RestoreError(
                    f"Failed to remove restore working file: {e}",
                    details={"phase": "cleanup", "path": str(path)},
                ) from e
            logger.warning("restore_cleanup_failed", path=str(path), error=str(e))


async def restore(
    bucket: str,
    prefix: str,
    backup_name: str,
    config: BackupConfig | None = None,
    session: AioSession | None = None,
) -> RestoreResult:
    """
    Restore a backup archive into the local instance.

    Args:
        bucket: Bucket holding the backup
        prefix: Key prefix of the backup
        backup_name: Archive name (or full key) as written by perform_backup
        config: Remaining settings (defaults when omitted)
        session: aiobotocore session to reuse

    Returns:
        RestoreResult with the replayed dump file

    Raises:
        BucketNotFoundError: If the bucket does not exist
        RestoreError: If downloading, extracting or replaying fails;
            details["phase"] names the failing step
    """
    config = resolve_config(bucket, prefix, config)
    start = time.monotonic()
    log = logger.bind(backup_name=backup_name)

    repository = await open_repository(config, session)

    log.info("restoring_snapshot")
    working_files: List[Path] = []
    phase = "download"

    try:
        log.info("downloading_snapshot")
        working_files.append(config.working_dir / posixpath.basename(repository.object_key(backup_name)))
        archive_path = await repository.get(backup_name)

        phase = "extract"
        log.info("extracting_snapshot")
        dump_path = config.working_dir / strip_archive_suffix(archive_path.name)
        working_files.append(dump_path)
        await extract_snapshot(archive_path, config.working_dir)

        phase = "replay"
        log.info("executing_restore", dump_file=str(dump_path))
        await snapshot.replay(config, dump_path)

    except asyncio.CancelledError:
        _cleanup(working_files, strict=False)
        raise
    except PGS3BackupError as e:
        log.error("restore_failed", phase=phase, error=str(e))
        _cleanup(working_files, strict=False)
        raise RestoreError(
            f"restore of {backup_name} failed in phase {phase}: {e}",
            details={
                "backup_name": backup_name,
                "phase": phase,
                "error_type": type(e).__name__,
            },
        ) from e

    _cleanup(working_files, strict=True)

    duration = time.monotonic() - start
    log.info("restore_completed", dump_file=dump_path.name, duration=duration)
    return RestoreResult(
        backup_name=backup_name,
        dump_file=dump_path.name,
        duration_seconds=duration,
    )
