# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup Engine - Backup mode state machine and backup entry point.
"""

from pgs3backup.backup.executor import (
    Executor,
    ExecutorState,
)

from pgs3backup.backup.result import (
    BackupResult,
    CompletedBackup,
    PendingBackup,
)

from pgs3backup.backup.service import perform_backup

__all__ = [
    # Executor
    "Executor",
    "ExecutorState",
    # Results
    "BackupResult",
    "CompletedBackup",
    "PendingBackup",
    # Entry point
    "perform_backup",
]
