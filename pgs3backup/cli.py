# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Command line interface for the backup sidecar.

    pgs3backup backup
    pgs3backup restore --backup-name 20240101120000.sql.tar.gz
    pgs3backup serve --port 8080

Settings come from the environment (see pgs3backup.env).
"""

import asyncio
import json
import logging
import sys

import click
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from pgs3backup.backup import perform_backup
from pgs3backup.env import create_config_from_env
from pgs3backup.exceptions import PGS3BackupError
from pgs3backup.restore import restore

# Package errors plus the botocore errors open_repository passes through
RUN_ERRORS = (PGS3BackupError, ClientError, BotoCoreError)


def configure_logging(level: str) -> None:
    """Configure structlog for console output at the given level."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
    )


def _load_config(bucket, prefix):
    try:
        return create_config_from_env(bucket=bucket, prefix=prefix)
    except PGS3BackupError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Log level",
)
@click.pass_context
def cli(ctx, log_level):
    """PostgreSQL backups to S3-compatible object storage."""
    ctx.ensure_object(dict)
    configure_logging(log_level)


@cli.command()
@click.option("--bucket", envvar="AWS_BUCKET", help="Destination bucket")
@click.option("--prefix", envvar="BACKUP_PREFIX", default="", help="Key prefix")
def backup(bucket, prefix):
    """Take a full backup of the local instance."""
    config = _load_config(bucket, prefix)

    try:
        result = asyncio.run(perform_backup(config.bucket, config.prefix, config))
    except RUN_ERRORS as e:
        click.echo(f"Backup failed: {e}", err=True)
        sys.exit(1)

    click.echo(json.dumps(result.to_dict(), indent=2))


@cli.command(name="restore")
@click.option("--backup-name", required=True, help="The backup name to restore")
@click.option("--bucket", envvar="AWS_BUCKET", help="Source bucket")
@click.option("--prefix", envvar="BACKUP_PREFIX", default="", help="Key prefix")
def restore_command(backup_name, bucket, prefix):
    """Restore a backup into the current instance."""
    config = _load_config(bucket, prefix)

    try:
        result = asyncio.run(restore(config.bucket, config.prefix, backup_name, config))
    except RUN_ERRORS as e:
        click.echo(f"Restore failed: {e}", err=True)
        sys.exit(1)

    click.echo(f"Restored {result.backup_name} in {result.duration_seconds:.1f}s")


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address")
@click.option("--port", default=8080, type=int, help="Bind port")
def serve(host, port):
    """Serve the backup admin API."""
    import uvicorn

    from pgs3backup.integrations.fastapi import create_app

    config = _load_config(None, None)
    uvicorn.run(create_app(config), host=host, port=port)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
