# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgs3backup Exceptions - Custom exceptions for the pgs3backup package.
"""


class PGS3BackupError(Exception):
    """Base exception for all pgs3backup errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(PGS3BackupError):
    """Raised when configuration is invalid."""

    pass


class ArchiveError(PGS3BackupError):
    """Raised when an archive cannot be created or extracted."""

    pass


class StorageError(PGS3BackupError):
    """Raised when object storage operations fail."""

    pass


class BucketNotFoundError(StorageError):
    """Raised when the configured bucket does not exist."""

    pass


class CommandError(PGS3BackupError):
    """Raised when an external command exits with a non-zero status."""

    def __init__(
        self,
        message: str,
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
        details: dict | None = None,
    ):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(message, details)


class InstanceAPIError(PGS3BackupError):
    """Raised when the PostgreSQL instance HTTP API fails or is unreachable."""

    pass


class ControlDataError(InstanceAPIError):
    """Raised when pg_controldata cannot be obtained from the instance."""

    pass


class BackupNotStartedError(InstanceAPIError):
    """The instance has not confirmed backup mode yet."""

    pass


class BackupNotStoppedError(InstanceAPIError):
    """The instance has not confirmed the end of backup mode yet."""

    pass


class BackupError(PGS3BackupError):
    """Raised when a backup fails; details carry the failing phase."""

    pass


class RestoreError(PGS3BackupError):
    """Raised when a restore fails; details carry the failing phase."""

    pass


class BackupIncompleteError(PGS3BackupError):
    """Raised when backup results are read before the backup has completed."""

    pass
