# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgs3backup Catalog - Local record of backup and restore runs.

The backup engine never persists its results; the HTTP integration uses this
SQLite catalog to remember what it ran so operators can list past backups
and pick one to restore.
"""

import json
from datetime import datetime, UTC
from pathlib import Path
from typing import List, TypedDict

import aiosqlite
import structlog

from pgs3backup.backup.result import BackupResult
from pgs3backup.exceptions import PGS3BackupError

logger = structlog.get_logger()


class CatalogError(PGS3BackupError):
    """Raised when catalog operations fail."""

    pass


class BackupRecord(TypedDict):
    """Catalog row for a completed backup."""

    backup_id: str
    object_key: str
    started_at: int
    stopped_at: int
    begin_wal: str
    end_wal: str
    begin_lsn: str
    end_lsn: str
    recorded_at: str  # ISO 8601


class RestoreRecord(TypedDict):
    """Catalog row for a restore attempt."""

    id: int
    backup_name: str
    restored_at: str  # ISO 8601
    error: str | None


async def init_catalog_db(db_path: Path) -> None:
    """
    Initialize the catalog schema. This is idempotent.

    Args:
        db_path: Path to the SQLite database file
    """
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS backups (
                    backup_id TEXT PRIMARY KEY,
                    object_key TEXT NOT NULL,
                    started_at INTEGER NOT NULL,
                    stopped_at INTEGER NOT NULL,
                    begin_wal TEXT NOT NULL,
                    end_wal TEXT NOT NULL,
                    begin_lsn TEXT NOT NULL,
                    end_lsn TEXT NOT NULL,
                    result TEXT NOT NULL,
                    recorded_at TEXT NOT NULL
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS restores (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    backup_name TEXT NOT NULL,
                    restored_at TEXT NOT NULL,
                    error TEXT
                )
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_backups_started_at
                ON backups(started_at)
            """)

            await db.commit()

        logger.info("catalog_db_initialized", db_path=str(db_path))

    except (aiosqlite.Error, OSError) as e:
        raise CatalogError(
            f"Failed to initialize catalog database: {e}",
            details={"db_path": str(db_path)},
        ) from e


async def record_backup(db: aiosqlite.Connection, result: BackupResult) -> None:
    """Record a completed backup."""
    await db.execute(
        """
        INSERT OR REPLACE INTO backups
        (backup_id, object_key, started_at, stopped_at, begin_wal, end_wal,
         begin_lsn, end_lsn, result, recorded_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            result.backup_id,
            result.object_key,
            result.started_at,
            result.stopped_at,
            result.begin_wal,
            result.end_wal,
            result.begin_lsn,
            result.end_lsn,
            json.dumps(result.to_dict()),
            datetime.now(UTC).isoformat(),
        ),
    )
    await db.commit()

    logger.info("backup_recorded", backup_id=result.backup_id, key=result.object_key)


async def record_restore(
    db: aiosqlite.Connection,
    backup_name: str,
    error: str | None = None,
) -> int:
    """
    Record a restore attempt.

    Returns:
        Row id of the record
    """
    cursor = await db.execute(
        """
        INSERT INTO restores (backup_name, restored_at, error)
        VALUES (?, ?, ?)
        """,
        (backup_name, datetime.now(UTC).isoformat(), error),
    )
    await db.commit()
    return cursor.lastrowid


def _row_to_backup(row: aiosqlite.Row) -> BackupRecord:
    return BackupRecord(
        backup_id=row["backup_id"],
        object_key=row["object_key"],
        started_at=row["started_at"],
        stopped_at=row["stopped_at"],
        begin_wal=row["begin_wal"],
        end_wal=row["end_wal"],
        begin_lsn=row["begin_lsn"],
        end_lsn=row["end_lsn"],
        recorded_at=row["recorded_at"],
    )


async def list_backups(
    db: aiosqlite.Connection,
    limit: int = 50,
    offset: int = 0,
) -> List[BackupRecord]:
    """List recorded backups, newest first."""
    db.row_factory = aiosqlite.Row
    async with db.execute(
        """
        SELECT * FROM backups
        ORDER BY started_at DESC, backup_id DESC
        LIMIT ? OFFSET ?
        """,
        (limit, offset),
    ) as cursor:
        rows = await cursor.fetchall()
    return [_row_to_backup(row) for row in rows]


async def get_backup(db: aiosqlite.Connection, backup_id: str) -> BackupRecord | None:
    """A recorded backup by id, or None."""
    db.row_factory = aiosqlite.Row
    async with db.execute(
        "SELECT * FROM backups WHERE backup_id = ?",
        (backup_id,),
    ) as cursor:
        row = await cursor.fetchone()
    return _row_to_backup(row) if row else None


async def list_restores(db: aiosqlite.Connection, limit: int = 50) -> List[RestoreRecord]:
    """List restore attempts, newest first."""
    db.row_factory = aiosqlite.Row
    async with db.execute(
        "SELECT * FROM restores ORDER BY id DESC LIMIT ?",
        (limit,),
    ) as cursor:
        rows = await cursor.fetchall()
    return [
        RestoreRecord(
            id=row["id"],
            backup_name=row["backup_name"],
            restored_at=row["restored_at"],
            error=row["error"],
        )
        for row in rows
    ]
