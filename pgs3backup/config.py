# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgs3backup Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation and validated once,
at construction, instead of reading the environment from every module.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List

from pgs3backup.exceptions import ConfigurationError
from pgs3backup.retry import BACKUP_MODE_RETRY, RetryPolicy


def _validate_cron_time(time_str: str) -> bool:
    """Validate HH:MM time format."""
    if not time_str:
        return False
    try:
        parts = time_str.split(":")
        if len(parts) != 2:
            return False
        hour, minute = int(parts[0]), int(parts[1])
        return 0 <= hour <= 23 and 0 <= minute <= 59
    except (ValueError, AttributeError):
        return False


def _validate_port(port: int) -> bool:
    return isinstance(port, int) and 0 < port < 65536


@dataclass(frozen=True)
class BackupConfig:
    """
    Immutable configuration for backups and restores.

    One instance is passed into the repository, the executor and the
    restore orchestrator; nothing below this layer reads the environment.
    """

    # Required: bucket holding the backups
    bucket: str

    # Key prefix under which archives are stored
    prefix: str = ""

    # Object storage client settings
    region: str = "us-east-1"
    endpoint_url: str | None = None
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None

    # Local working directory for dumps, archives and downloads
    working_dir: Path = field(default_factory=lambda: Path("/backup"))

    # PostgreSQL unix socket directory used by the dump/replay commands
    socket_dir: str = "/controller/run"
    dump_command: str = "pg_dumpall"
    restore_command: str = "psql"

    # Instance manager HTTP endpoints (control data and backup control)
    instance_host: str = "127.0.0.1"
    status_port: int = 8000
    webserver_port: int = 8010
    connect_timeout: float = 2.0
    request_timeout: float = 30.0

    # Backoff while waiting for backup mode to start/stop
    retry_policy: RetryPolicy = BACKUP_MODE_RETRY

    # Attempt a best-effort stop when the copy fails inside backup mode
    release_on_failure: bool = True

    # Optional SQLite catalog of runs (used by the HTTP integration)
    catalog_path: Path | None = None

    # Daily backup time in HH:MM format (UTC)
    schedule_cron: str | None = None

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        # Naming rules differ between stores; HeadBucket checks existence
        if not self.bucket or not self.bucket.strip():
            errors.append("bucket must not be empty")

        if self.prefix.startswith("/"):
            errors.append(f"prefix must be relative, got {self.prefix}")

        if not str(self.working_dir):
            errors.append("working_dir must not be empty")

        if not self.socket_dir:
            errors.append("socket_dir must not be empty")

        for name in ("status_port", "webserver_port"):
            if not _validate_port(getattr(self, name)):
                errors.append(f"{name} must be a TCP port, got {getattr(self, name)}")

        if self.connect_timeout <= 0:
            errors.append(f"connect_timeout must be > 0, got {self.connect_timeout}")

        if self.request_timeout < self.connect_timeout:
            errors.append(
                f"request_timeout ({self.request_timeout}) must be >= "
                f"connect_timeout ({self.connect_timeout})"
            )

        if self.schedule_cron and not _validate_cron_time(self.schedule_cron):
            errors.append(f"Invalid schedule_cron format: {self.schedule_cron}, expected HH:MM")

        # Credentials come in pairs
        if bool(self.aws_access_key_id) != bool(self.aws_secret_access_key):
            errors.append("aws_access_key_id and aws_secret_access_key must be set together")

        if errors:
            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    @property
    def control_data_url(self) -> str:
        return f"http://{self.instance_host}:{self.status_port}/pg/controldata"

    @property
    def backup_api_url(self) -> str:
        return f"http://{self.instance_host}:{self.webserver_port}/pg/mode/backup"

    def client_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for session.create_client("s3", ...)."""
        kwargs: Dict[str, Any] = {"region_name": self.region}
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        if self.aws_access_key_id:
            kwargs["aws_access_key_id"] = self.aws_access_key_id
            kwargs["aws_secret_access_key"] = self.aws_secret_access_key
        return kwargs

    def with_updates(self, **kwargs) -> "BackupConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance. asdict() is
        avoided so the nested RetryPolicy stays a RetryPolicy.
        """
        current = {f.name: getattr(self, f.name) for f in fields(self)}
        current.update(kwargs)
        return BackupConfig(**current)

    def redacted(self) -> Dict[str, Any]:
        """Configuration as a dict with credentials removed."""
        return {
            "bucket": self.bucket,
            "prefix": self.prefix,
            "region": self.region,
            "endpoint_url": self.endpoint_url,
            "credentials": "configured" if self.aws_access_key_id else "ambient",
            "working_dir": str(self.working_dir),
            "socket_dir": self.socket_dir,
            "instance_host": self.instance_host,
            "status_port": self.status_port,
            "webserver_port": self.webserver_port,
            "release_on_failure": self.release_on_failure,
            "retry_steps": self.retry_policy.steps,
            "schedule_cron": self.schedule_cron,
        }
