# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Example backup sidecar application.

This example shows how to build a configuration with the functional
builder and serve the backup admin endpoints next to a PostgreSQL
instance manager.

Run with:
    uvicorn examples.basic_app:app

Environment variables:
    AWS_BUCKET: Bucket receiving the backups
    AWS_ENDPOINT_URL: S3-compatible endpoint (MinIO, Ceph, ...)
    AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY: Static credentials
    PGS3_ADMIN_API_KEY: API key for admin endpoints
"""

import os

from pgs3backup.builder import (
    build_config,
    create_empty_config,
    enable_catalog,
    run_daily_at,
    with_bucket,
    with_credentials,
    with_endpoint,
    with_prefix,
    with_working_dir,
)
from pgs3backup.integrations.fastapi import create_app


def create_backup_config():
    """
    Create the sidecar configuration from environment variables.

    This uses the functional builder pattern for clean, composable configuration.
    """
    config = create_empty_config()

    config = with_bucket(config, os.getenv("AWS_BUCKET", "pg-backups"))
    config = with_prefix(config, os.getenv("BACKUP_PREFIX", "cluster-a"))

    endpoint_url = os.getenv("AWS_ENDPOINT_URL")
    if endpoint_url:
        config = with_endpoint(config, endpoint_url)

    access_key = os.getenv("AWS_ACCESS_KEY_ID")
    secret_key = os.getenv("AWS_SECRET_ACCESS_KEY")
    if access_key and secret_key:
        config = with_credentials(config, access_key, secret_key)

    config = with_working_dir(config, os.getenv("PGS3_WORKING_DIR", "/backup"))

    # Remember runs so operators can list them and pick one to restore
    config = enable_catalog(config, "/var/lib/pgs3backup/catalog.db")

    # Daily backup at 2:30 AM UTC
    config = run_daily_at(config, "02:30")

    return build_config(config)


app = create_app(create_backup_config())


# ============================================================================
# Admin Endpoints (registered by create_app)
# ============================================================================
#
# POST /admin/pgbackup/backup                 - Take a backup now
# POST /admin/pgbackup/restore/{backup_name}  - Restore a backup archive
# GET  /admin/pgbackup/backups                - Backups recorded in the catalog
# GET  /admin/pgbackup/restores               - Restore attempts
# GET  /admin/pgbackup/status                 - Current service status
# GET  /admin/pgbackup/health                 - Bucket and instance connectivity
# GET  /admin/pgbackup/config                 - Configuration (redacted)
#
# All admin endpoints require: Authorization: Bearer <PGS3_ADMIN_API_KEY>


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8080)
