# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Object Storage - Bucket-bound repository for backup archives.
"""

from pgs3backup.storage.repository import (
    Repository,
    SnapshotStore,
    open_repository,
)

__all__ = [
    "Repository",
    "SnapshotStore",
    "open_repository",
]
