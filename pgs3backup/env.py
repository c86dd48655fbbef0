# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

The sidecar container receives its settings through environment variables.
This is the only module that reads them; everything else takes an explicit
BackupConfig.
"""

from __future__ import annotations

import os
from pathlib import Path

from pgs3backup.builder import create_config
from pgs3backup.config import BackupConfig
from pgs3backup.errors import explain_invalid_bool_env, explain_missing_bucket_env
from pgs3backup.exceptions import ConfigurationError

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(name: str, value: str | None, default: bool) -> bool:
    if value is None or value == "":
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(explain_invalid_bool_env(name, value))


def _first_env(*names: str) -> str | None:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return None


def create_config_from_env(
    *,
    bucket: str | None = None,
    prefix: str | None = None,
) -> BackupConfig:
    """
    Create a BackupConfig from environment variables.

    Explicit bucket/prefix arguments win over the environment.

    Required:
        - AWS_BUCKET (or bucket=...)

    Optional environment variables:
        - BACKUP_PREFIX: Key prefix for archives (default: "")
        - AWS_REGION / REGION: Region (default: us-east-1)
        - AWS_ENDPOINT_URL / ENDPOINT: S3-compatible endpoint
        - AWS_ACCESS_KEY_ID / AWS_KEY, AWS_SECRET_ACCESS_KEY / AWS_SECRET_KEY
        - PGS3_WORKING_DIR: Local working directory (default: /backup)
        - PGS3_SOCKET_DIR: PostgreSQL socket directory (default: /controller/run)
        - PGS3_INSTANCE_HOST: Instance manager host (default: 127.0.0.1)
        - PGS3_RELEASE_ON_FAILURE: Stop backup mode after a failed copy (default: true)
        - PGS3_CATALOG_PATH: SQLite catalog of runs
        - PGS3_SCHEDULE_CRON: Daily backup time in HH:MM (UTC)
    """

    bucket = bucket or os.getenv("AWS_BUCKET")
    if not bucket:
        raise ConfigurationError(explain_missing_bucket_env())

    if prefix is None:
        prefix = os.getenv("BACKUP_PREFIX", "")

    extra = {}
    socket_dir = os.getenv("PGS3_SOCKET_DIR")
    if socket_dir:
        extra["socket_dir"] = socket_dir
    instance_host = os.getenv("PGS3_INSTANCE_HOST")
    if instance_host:
        extra["instance_host"] = instance_host
    catalog_path = os.getenv("PGS3_CATALOG_PATH")
    if catalog_path:
        extra["catalog_path"] = Path(catalog_path)

    release_on_failure = _parse_bool(
        "PGS3_RELEASE_ON_FAILURE",
        os.getenv("PGS3_RELEASE_ON_FAILURE"),
        default=True,
    )

    return create_config(
        bucket=bucket,
        prefix=prefix,
        region=_first_env("AWS_REGION", "REGION"),
        endpoint_url=_first_env("AWS_ENDPOINT_URL", "ENDPOINT"),
        aws_access_key_id=_first_env("AWS_ACCESS_KEY_ID", "AWS_KEY"),
        aws_secret_access_key=_first_env("AWS_SECRET_ACCESS_KEY", "AWS_SECRET_KEY"),
        working_dir=os.getenv("PGS3_WORKING_DIR"),
        schedule_cron=os.getenv("PGS3_SCHEDULE_CRON"),
        release_on_failure=release_on_failure,
        **extra,
    )
