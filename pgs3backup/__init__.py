# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgs3backup - PostgreSQL backups to S3-compatible object storage.

Drives the instance in and out of backup mode around a logical dump,
archives the dump, uploads it to a bucket, and restores it on demand.
"""

__version__ = "0.1.0"

# Configuration creation (user-facing API)
from pgs3backup.builder import create_config
from pgs3backup.config import BackupConfig
from pgs3backup.env import create_config_from_env

# Core entry points
from pgs3backup.backup import BackupResult, perform_backup
from pgs3backup.restore import RestoreResult, restore

__all__ = [
    # Version
    "__version__",
    # Configuration
    "BackupConfig",
    "create_config",
    "create_config_from_env",
    # Backup and restore
    "perform_backup",
    "restore",
    "BackupResult",
    "RestoreResult",
]
