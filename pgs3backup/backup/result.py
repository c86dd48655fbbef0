# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup outcome records.
"""

from dataclasses import dataclass
from typing import Any, Dict

from pgs3backup.instance import BackupStatus


@dataclass(frozen=True)
class PendingBackup:
    """A backup that has not completed. Carries no WAL boundaries."""

    backup_name: str


@dataclass(frozen=True)
class CompletedBackup:
    """A backup that went through every phase of the executor."""

    backup_name: str
    begin_wal: str
    end_wal: str
    object_key: str
    status: BackupStatus


BackupOutcome = PendingBackup | CompletedBackup


@dataclass(frozen=True)
class BackupResult:
    """Result of a backup, returned to the caller and never persisted here."""

    backup_id: str
    backup_name: str
    started_at: int  # seconds since epoch
    stopped_at: int  # seconds since epoch
    begin_wal: str
    end_wal: str
    begin_lsn: str
    end_lsn: str
    backup_label_file: bytes
    tablespace_map_file: bytes
    object_key: str
    online: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation (label and map files as text)."""
        return {
            "backup_id": self.backup_id,
            "backup_name": self.backup_name,
            "started_at": self.started_at,
            "stopped_at": self.stopped_at,
            "begin_wal": self.begin_wal,
            "end_wal": self.end_wal,
            "begin_lsn": self.begin_lsn,
            "end_lsn": self.end_lsn,
            "backup_label_file": self.backup_label_file.decode(errors="replace"),
            "tablespace_map_file": self.tablespace_map_file.decode(errors="replace"),
            "object_key": self.object_key,
            "online": self.online,
        }
