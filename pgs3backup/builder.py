# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgs3backup Builder - Functional builder pattern for configuration.

This module provides pure functions for building BackupConfig objects.
Each function takes a config dict and returns a new dict with the
modification applied (immutable updates).
"""

from pathlib import Path
from typing import Any, Callable, Dict

from pgs3backup.config import BackupConfig, _validate_cron_time
from pgs3backup.exceptions import ConfigurationError
from pgs3backup.retry import BACKUP_MODE_RETRY, RetryPolicy


# Type alias for builder functions
ConfigDict = Dict[str, Any]
BuilderFunc = Callable[[ConfigDict], ConfigDict]


def create_empty_config() -> ConfigDict:
    """
    Create an initial empty configuration dictionary.

    Returns:
        Dict with default values for all configuration fields
    """
    return {
        "bucket": "",
        "prefix": "",
        "region": "us-east-1",
        "endpoint_url": None,
        "aws_access_key_id": None,
        "aws_secret_access_key": None,
        "working_dir": Path("/backup"),
        "socket_dir": "/controller/run",
        "dump_command": "pg_dumpall",
        "restore_command": "psql",
        "instance_host": "127.0.0.1",
        "status_port": 8000,
        "webserver_port": 8010,
        "connect_timeout": 2.0,
        "request_timeout": 30.0,
        "retry_policy": BACKUP_MODE_RETRY,
        "release_on_failure": True,
        "catalog_path": None,
        "schedule_cron": None,
    }


def with_bucket(config: ConfigDict, bucket_name: str) -> ConfigDict:
    """
    Set the bucket name.

    Args:
        config: Current configuration dictionary
        bucket_name: Name of the bucket holding the backups

    Returns:
        New configuration dictionary with bucket set
    """
    return {**config, "bucket": bucket_name}


def with_prefix(config: ConfigDict, prefix: str) -> ConfigDict:
    """
    Set the key prefix under which archives are stored.

    Leading and trailing slashes are dropped so keys join cleanly.
    """
    return {**config, "prefix": prefix.strip("/")}


def with_region(config: ConfigDict, region: str) -> ConfigDict:
    """
    Set the AWS region.

    Args:
        config: Current configuration dictionary
        region: AWS region (e.g., 'us-east-1', 'eu-west-1')

    Returns:
        New configuration dictionary with region set
    """
    return {**config, "region": region}


def with_endpoint(config: ConfigDict, endpoint_url: str) -> ConfigDict:
    """Point the storage client at an S3-compatible endpoint (MinIO, Ceph, ...)."""
    return {**config, "endpoint_url": endpoint_url}


def with_credentials(config: ConfigDict, access_key_id: str, secret_access_key: str) -> ConfigDict:
    """
    Use static credentials instead of the ambient AWS credential chain.
    """
    return {
        **config,
        "aws_access_key_id": access_key_id,
        "aws_secret_access_key": secret_access_key,
    }


def with_working_dir(config: ConfigDict, working_dir: Path | str) -> ConfigDict:
    """Set the local working directory for dumps, archives and downloads."""
    path = Path(working_dir) if isinstance(working_dir, str) else working_dir
    return {**config, "working_dir": path}


def with_instance(
    config: ConfigDict,
    host: str,
    status_port: int | None = None,
    webserver_port: int | None = None,
) -> ConfigDict:
    """
    Set where the instance manager endpoints listen.

    Args:
        config: Current configuration dictionary
        host: Host of the instance manager (normally loopback)
        status_port: Port of the pg_controldata endpoint
        webserver_port: Port of the backup-control endpoint
    """
    updated = {**config, "instance_host": host}
    if status_port is not None:
        updated["status_port"] = status_port
    if webserver_port is not None:
        updated["webserver_port"] = webserver_port
    return updated


def with_retry_policy(config: ConfigDict, policy: RetryPolicy) -> ConfigDict:
    """Override the backoff used while waiting for backup mode transitions."""
    return {**config, "retry_policy": policy}


def keep_backup_mode_on_failure(config: ConfigDict) -> ConfigDict:
    """
    Do not try to stop backup mode when the copy fails.

    WARNING: the instance stays in backup mode after a failed backup
    until a new backup is taken or it is stopped by hand.
    """
    return {**config, "release_on_failure": False}


def enable_catalog(config: ConfigDict, catalog_path: Path | str) -> ConfigDict:
    """Record runs in a local SQLite catalog."""
    path = Path(catalog_path) if isinstance(catalog_path, str) else catalog_path
    return {**config, "catalog_path": path}


def run_daily_at(config: ConfigDict, time: str) -> ConfigDict:
    """
    Schedule a daily backup at a specific time (UTC).

    Args:
        config: Current configuration dictionary
        time: Time in HH:MM format (24-hour, UTC)

    Returns:
        New configuration dictionary with schedule set
    """
    if not _validate_cron_time(time):
        raise ValueError(f"Invalid time format: {time}, expected HH:MM")
    return {**config, "schedule_cron": time}


def build_config(config_dict: ConfigDict) -> BackupConfig:
    """
    Build a validated BackupConfig from a configuration dictionary.

    Raises:
        ConfigurationError: If the bucket is missing or validation fails
    """
    if not config_dict.get("bucket"):
        raise ConfigurationError("bucket is required")

    return BackupConfig(**config_dict)


def pipe(*funcs: BuilderFunc) -> BuilderFunc:
    """
    Compose builder functions left to right.

    Example:
        configure = pipe(
            lambda c: with_bucket(c, "pg-backups"),
            lambda c: with_prefix(c, "cluster-a"),
        )
        config = build_config(configure(create_empty_config()))
    """

    def composed(config: ConfigDict) -> ConfigDict:
        for func in funcs:
            config = func(config)
        return config

    return composed


def build_from_steps(*steps: BuilderFunc) -> BackupConfig:
    """Apply steps to an empty configuration and build it."""
    return build_config(pipe(*steps)(create_empty_config()))


def create_config(
    bucket: str,
    prefix: str = "",
    region: str | None = None,
    endpoint_url: str | None = None,
    aws_access_key_id: str | None = None,
    aws_secret_access_key: str | None = None,
    working_dir: Path | str | None = None,
    schedule_cron: str | None = None,
    **kwargs: Any,
) -> BackupConfig:
    """
    Create a BackupConfig in one call.

    Example:
        config = create_config(
            bucket="pg-backups",
            prefix="cluster-a",
            endpoint_url="http://minio:9000",
        )
    """
    config_dict = create_empty_config()
    config_dict = with_bucket(config_dict, bucket)
    config_dict = with_prefix(config_dict, prefix)

    if region:
        config_dict = with_region(config_dict, region)

    if endpoint_url:
        config_dict = with_endpoint(config_dict, endpoint_url)

    if aws_access_key_id or aws_secret_access_key:
        config_dict = with_credentials(config_dict, aws_access_key_id, aws_secret_access_key)

    if working_dir:
        config_dict = with_working_dir(config_dict, working_dir)

    if schedule_cron:
        config_dict = run_daily_at(config_dict, schedule_cron)

    # Apply any additional known fields
    for key, value in kwargs.items():
        if key in config_dict:
            config_dict[key] = value

    return build_config(config_dict)
