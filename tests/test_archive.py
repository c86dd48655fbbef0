# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Archive Tests.

Packaging and extraction of snapshot archives and the naming contract
shared by backup and restore.
"""

import io
import tarfile
from pathlib import Path

import pytest

from pgs3backup.archive import (
    ARCHIVE_SUFFIX,
    archive_name_for,
    archive_snapshot,
    create_archive,
    extract_archive,
    extract_snapshot,
    strip_archive_suffix,
)
from pgs3backup.exceptions import ArchiveError


# ============================================================================
# Naming
# ============================================================================

def test_archive_name_round_trip():
    """The restore side recovers the dump name from the archive name."""
    assert archive_name_for("20240101120000.sql") == "20240101120000.sql.tar.gz"
    assert strip_archive_suffix("20240101120000.sql.tar.gz") == "20240101120000.sql"


@pytest.mark.parametrize("name", ["20240101120000.sql", "dump.zip", ARCHIVE_SUFFIX])
def test_strip_archive_suffix_rejects_foreign_names(name: str):
    with pytest.raises(ArchiveError):
        strip_archive_suffix(name)


# ============================================================================
# Create / Extract
# ============================================================================

def test_create_and_extract_preserves_content_and_relative_names(temp_dir: Path):
    """Directories are walked and members are named relative to the input's parent."""
    source = temp_dir / "data"
    (source / "nested").mkdir(parents=True)
    (source / "a.txt").write_bytes(b"alpha")
    (source / "nested" / "b.txt").write_bytes(b"bravo")

    archive = temp_dir / "out.tar.gz"
    members = create_archive(archive, [source])

    assert members == ["data/a.txt", "data/nested/b.txt"]

    output = temp_dir / "restored"
    extracted = extract_archive(archive, output)

    assert sorted(p.relative_to(output).as_posix() for p in extracted) == members
    assert (output / "data" / "a.txt").read_bytes() == b"alpha"
    assert (output / "data" / "nested" / "b.txt").read_bytes() == b"bravo"


def test_create_archive_missing_input_raises(temp_dir: Path):
    with pytest.raises(ArchiveError):
        create_archive(temp_dir / "out.tar.gz", [temp_dir / "missing.sql"])


def test_extract_archive_rejects_path_escape(temp_dir: Path):
    archive = temp_dir / "evil.tar.gz"
    payload = b"owned"
    with tarfile.open(archive, "w:gz") as tar:
        info = tarfile.TarInfo("../escape.txt")
        info.size = len(payload)
        tar.addfile(info, io.BytesIO(payload))

    with pytest.raises(ArchiveError):
        extract_archive(archive, temp_dir / "out")

    assert not (temp_dir / "escape.txt").exists()


def test_extract_archive_malformed_input_raises(temp_dir: Path):
    archive = temp_dir / "broken.tar.gz"
    archive.write_bytes(b"this is not gzip data")

    with pytest.raises(ArchiveError):
        extract_archive(archive, temp_dir / "out")


def test_extract_archive_ignores_directory_entries(temp_dir: Path):
    archive = temp_dir / "dirs.tar.gz"
    with tarfile.open(archive, "w:gz") as tar:
        info = tarfile.TarInfo("only-a-dir")
        info.type = tarfile.DIRTYPE
        tar.addfile(info)

    assert extract_archive(archive, temp_dir / "out") == []


# ============================================================================
# Snapshot helpers
# ============================================================================

@pytest.mark.asyncio
async def test_archive_snapshot_replaces_dump_with_archive(temp_dir: Path):
    dump = temp_dir / "20240101120000.sql"
    dump.write_bytes(b"CREATE TABLE t ();\n")

    archive = await archive_snapshot(dump)

    assert archive.name == "20240101120000.sql.tar.gz"
    assert archive.exists()
    assert not dump.exists()


@pytest.mark.asyncio
async def test_extract_snapshot_returns_dump_path(temp_dir: Path):
    dump = temp_dir / "20240101120000.sql"
    dump.write_bytes(b"SELECT 1;\n")
    archive = await archive_snapshot(dump)

    output = temp_dir / "restore"
    dump_path = await extract_snapshot(archive, output)

    assert dump_path == output / "20240101120000.sql"
    assert dump_path.read_bytes() == b"SELECT 1;\n"
