# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgs3backup Snapshot - Logical dump and replay through external commands.

Dumps are taken with pg_dumpall and replayed with psql, both connecting
through the instance's unix socket directory. Neither step is retried.
"""

import asyncio
from datetime import datetime
from pathlib import Path

import structlog

from pgs3backup.config import BackupConfig
from pgs3backup.exceptions import CommandError

logger = structlog.get_logger()

# Dump files are named <YYYYMMDDHHMMSS>.sql
BACKUP_TIME_FORMAT = "%Y%m%d%H%M%S"
DUMP_SUFFIX = ".sql"


def dump_file_name(now: datetime | None = None) -> str:
    """Timestamp-based name of a dump file."""
    now = now or datetime.now()
    return f"{now.strftime(BACKUP_TIME_FORMAT)}{DUMP_SUFFIX}"


async def run_command(command: str, *args: str) -> str:
    """
    Run an external command, capturing stdout and stderr.

    Output is logged on success and on failure. If the caller is cancelled
    the child process is killed before the cancellation propagates.

    Returns:
        The captured stdout

    Raises:
        CommandError: If the command cannot be started or exits non-zero
    """
    try:
        process = await asyncio.create_subprocess_exec(
            command,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.error("command_not_started", command=command, args=list(args), error=str(e))
        raise CommandError(
            f"Failed to start {command}: {e}",
            details={"command": command, "args": list(args)},
        ) from e

    try:
        stdout_bytes, stderr_bytes = await process.communicate()
    except asyncio.CancelledError:
        if process.returncode is None:
            process.kill()
            await process.wait()
        raise

    stdout = stdout_bytes.decode(errors="replace")
    stderr = stderr_bytes.decode(errors="replace")

    if process.returncode != 0:
        logger.error(
            "command_failed",
            command=command,
            args=list(args),
            returncode=process.returncode,
            stdout=stdout,
            stderr=stderr,
        )
        raise CommandError(
            f"{command} exited with status {process.returncode}",
            returncode=process.returncode,
            stdout=stdout,
            stderr=stderr,
            details={"command": command, "args": list(args)},
        )

    logger.info(
        "command_succeeded",
        command=command,
        args=list(args),
        stdout=stdout,
        stderr=stderr,
    )
    return stdout


async def dump(config: BackupConfig, now: datetime | None = None) -> Path:
    """
    Dump the whole cluster into a timestamp-named SQL file.

    Args:
        config: Provides the working directory, socket dir and command
        now: Timestamp used for the file name (defaults to the current time)

    Returns:
        Path of the dump file in the working directory
    """
    config.working_dir.mkdir(parents=True, exist_ok=True)
    dump_file = config.working_dir / dump_file_name(now)

    logger.info("dump_started", file=str(dump_file))
    await run_command(
        config.dump_command,
        "-h",
        config.socket_dir,
        "-f",
        str(dump_file),
    )
    return dump_file


async def replay(config: BackupConfig, dump_file: Path) -> None:
    """Replay a dump file against the cluster with psql."""
    logger.info("replay_started", file=str(dump_file))
    await run_command(
        config.restore_command,
        "-h",
        config.socket_dir,
        "-f",
        str(dump_file),
    )
