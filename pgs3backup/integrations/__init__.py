# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Framework Integrations - FastAPI surface for triggering backups and restores.
"""

from pgs3backup.integrations.fastapi import (
    backup_lifespan,
    create_app,
    register_backup_routes,
    verify_api_key,
)

__all__ = [
    "backup_lifespan",
    "create_app",
    "register_backup_routes",
    "verify_api_key",
]
