# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for pgs3backup.

These helpers centralize wording for common configuration and usage errors
so that all modules present consistent, actionable messages.
"""


def explain_missing_bucket_env() -> str:
    """
    Explain that the bucket environment variable is missing.
    """

    return (
        "Backup bucket is not configured. "
        "Set the AWS_BUCKET environment variable or pass bucket=... to create_config()."
    )


def explain_bucket_not_found(bucket: str) -> str:
    """
    Explain that the bucket probe reported a missing bucket.
    """

    return f"bucket {bucket}: not found"


def explain_invalid_bool_env(name: str, value: str | None) -> str:
    """
    Explain that a boolean environment variable is invalid.
    """

    return (
        f"Invalid {name} value: {value!r}. "
        "Expected one of: 'true', 'false', '1', '0', 'yes', 'no'."
    )


def explain_invalid_schedule(value: str | None) -> str:
    """
    Explain that the daily schedule is invalid.
    """

    return f"Invalid schedule_cron value: {value!r}, expected HH:MM (UTC)."


def explain_bad_archive_name(name: str, suffix: str) -> str:
    """
    Explain that a backup object does not follow the archive naming contract.
    """

    return (
        f"Backup object {name!r} does not end with {suffix!r}. "
        "Only archives produced by perform_backup() can be restored."
    )


def explain_incomplete_backup(field_name: str) -> str:
    """
    Explain that a backup result was read before the backup finished.
    """

    return (
        f"{field_name}: run the backup to completion before trying to access this value"
    )
