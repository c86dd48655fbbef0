# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgs3backup Archive - gzip-compressed tar packaging of snapshot files.

Backups are uploaded as <dump file>.tar.gz whose single member is the dump
file itself. Restore strips ARCHIVE_SUFFIX from the object name to find the
extracted dump, so the naming helpers here are shared by both directions.
"""

import asyncio
import os
import shutil
import stat
import tarfile
import zlib
from pathlib import Path, PurePosixPath
from typing import Iterable, List

import structlog

from pgs3backup.errors import explain_bad_archive_name
from pgs3backup.exceptions import ArchiveError

logger = structlog.get_logger()

ARCHIVE_SUFFIX = ".tar.gz"

# Errors raised by tarfile/gzip while reading or writing a damaged stream
_CODEC_ERRORS = (OSError, tarfile.TarError, EOFError, zlib.error)


def archive_name_for(name: str) -> str:
    """Name of the archive holding the file called name."""
    return f"{name}{ARCHIVE_SUFFIX}"


def strip_archive_suffix(name: str) -> str:
    """
    Inverse of archive_name_for.

    Raises:
        ArchiveError: If name does not carry the archive suffix
    """
    if not name.endswith(ARCHIVE_SUFFIX) or name == ARCHIVE_SUFFIX:
        raise ArchiveError(
            explain_bad_archive_name(name, ARCHIVE_SUFFIX),
            details={"name": name},
        )
    return name[: -len(ARCHIVE_SUFFIX)]


def create_archive(archive_path: Path | str, input_paths: Iterable[Path | str]) -> List[str]:
    """
    Write input_paths into a gzip-compressed tar at archive_path.

    Directories are walked depth-first; only regular files become members,
    named relative to the parent of their input path.

    Args:
        archive_path: Destination archive
        input_paths: Files or directories to include

    Returns:
        Member names in the order they were written

    Raises:
        ArchiveError: If an input cannot be read or the archive cannot be written
    """
    archive_path = Path(archive_path)
    members: List[str] = []

    try:
        with tarfile.open(archive_path, "w:gz") as tar:
            for input_path in input_paths:
                input_path = Path(input_path)
                _add_to_archive(tar, input_path.parent, PurePosixPath(), input_path.name, members)
    except _CODEC_ERRORS as e:
        raise ArchiveError(
            f"Failed to create archive: {e}",
            details={"archive_path": str(archive_path)},
        ) from e

    logger.debug("archive_created", archive_path=str(archive_path), members=len(members))
    return members


def _add_to_archive(
    tar: tarfile.TarFile,
    base: Path,
    prefix: PurePosixPath,
    name: str,
    members: List[str],
) -> None:
    """Recursively add base/prefix/name under the member name prefix/name."""
    full_path = base.joinpath(*prefix.parts, name)
    member_name = str(prefix / name)
    info = full_path.stat()

    if stat.S_ISDIR(info.st_mode):
        for child in sorted(os.listdir(full_path)):
            _add_to_archive(tar, base, prefix / name, child, members)
        return

    if not stat.S_ISREG(info.st_mode):
        logger.debug("archive_skipped_special_file", path=str(full_path))
        return

    tarinfo = tar.gettarinfo(str(full_path), arcname=member_name)
    with open(full_path, "rb") as f:
        tar.addfile(tarinfo, f)
    members.append(member_name)


def _safe_target(output_dir: Path, member_name: str) -> Path:
    """Resolve member_name under output_dir, rejecting escapes."""
    member = PurePosixPath(member_name)
    if member.is_absolute() or ".." in member.parts:
        raise ArchiveError(
            f"Unsafe path in archive: {member_name}",
            details={"member": member_name},
        )
    return output_dir.joinpath(*member.parts)


def extract_archive(archive_path: Path | str, output_dir: Path | str) -> List[Path]:
    """
    Extract the regular files of archive_path into output_dir.

    The output directory is created if missing. Entries that are not regular
    files are ignored. On failure output_dir may be partially populated and
    must be cleaned up by the caller.

    Returns:
        Paths of the extracted files

    Raises:
        ArchiveError: On a malformed archive, an unsafe member name or a
            filesystem error
    """
    archive_path = Path(archive_path)
    output_dir = Path(output_dir)
    extracted: List[Path] = []

    try:
        output_dir.mkdir(parents=True, exist_ok=True)

        with tarfile.open(archive_path, "r|gz") as tar:
            for member in tar:
                if not member.isreg():
                    continue

                target = _safe_target(output_dir, member.name)
                target.parent.mkdir(parents=True, exist_ok=True)

                source = tar.extractfile(member)
                if source is None:
                    continue
                with source, open(target, "wb") as out:
                    shutil.copyfileobj(source, out)
                extracted.append(target)

    except ArchiveError:
        raise
    except _CODEC_ERRORS as e:
        raise ArchiveError(
            f"Failed to extract archive: {e}",
            details={"archive_path": str(archive_path), "output_dir": str(output_dir)},
        ) from e

    logger.debug("archive_extracted", archive_path=str(archive_path), files=len(extracted))
    return extracted


async def archive_snapshot(dump_file: Path) -> Path:
    """
    Package a dump file as <dump_file>.tar.gz next to it and remove the dump.

    Runs the codec in a worker thread since it is CPU and disk bound.

    Returns:
        Path of the archive
    """
    archive_path = dump_file.with_name(archive_name_for(dump_file.name))
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, create_archive, archive_path, [dump_file])

    try:
        dump_file.unlink()
    except OSError as e:
        raise ArchiveError(
            f"Failed to remove archived dump: {e}",
            details={"dump_file": str(dump_file)},
        ) from e

    logger.info("snapshot_archived", archive=archive_path.name)
    return archive_path


async def extract_snapshot(archive_path: Path, output_dir: Path) -> Path:
    """
    Extract a backup archive and return the path of the dump it contains.

    The dump path follows the naming contract: output_dir / the archive
    name without ARCHIVE_SUFFIX.
    """
    dump_name = strip_archive_suffix(archive_path.name)
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, extract_archive, archive_path, output_dir)
    return output_dir / dump_name
