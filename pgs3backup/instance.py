# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgs3backup Instance Client - HTTP access to the PostgreSQL instance manager.

Two local endpoints are used:

- the status endpoint serving pg_controldata output, from which the current
  WAL file is read;
- the backup-control endpoint, which starts and stops backup mode and
  reports the phase of the current backup.

Backup-control responses are envelopes of the form
{"data": {...}, "error": {"code": ..., "message": ...}}.
"""

import asyncio
import base64
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Type

import httpx
import structlog

from pgs3backup.config import BackupConfig
from pgs3backup.exceptions import ControlDataError, InstanceAPIError

logger = structlog.get_logger()

# pg_controldata key holding the WAL file of the latest checkpoint
CURRENT_WAL_FILE_KEY = "Latest checkpoint's REDO WAL file"


class BackupPhase(str, Enum):
    """Phase of a backup as reported by the instance manager."""

    UNKNOWN = "unknown"
    STARTING = "starting"
    STARTED = "started"
    CLOSING = "closing"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def parse(cls, value: Any) -> "BackupPhase":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


def _decode_bytes(value: Any) -> bytes:
    # Byte fields are JSON-encoded as base64 strings
    if not value:
        return b""
    try:
        return base64.b64decode(value)
    except (ValueError, TypeError):
        return str(value).encode()


@dataclass(frozen=True)
class BackupStatus:
    """Status of the instance's current backup."""

    phase: BackupPhase
    backup_name: str = ""
    begin_lsn: str = ""
    end_lsn: str = ""
    label_file: bytes = b""
    spcmap_file: bytes = b""

    @classmethod
    def from_payload(cls, data: Dict[str, Any] | None) -> "BackupStatus":
        data = data or {}
        return cls(
            phase=BackupPhase.parse(data.get("phase")),
            backup_name=data.get("backupName") or "",
            begin_lsn=str(data.get("beginLSN") or ""),
            end_lsn=str(data.get("endLSN") or ""),
            label_file=_decode_bytes(data.get("labelFile")),
            spcmap_file=_decode_bytes(data.get("spcmapFile")),
        )


def parse_controldata(output: str) -> Dict[str, str]:
    """
    Parse pg_controldata output into a key -> value mapping.

    Each line is split at its first colon; lines without one are skipped.
    """
    result: Dict[str, str] = {}
    for line in output.splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        result[key.strip()] = value.strip()
    return result


class InstanceClient:
    """
    Client for the instance manager's control-data and backup-control APIs.

    A new HTTP client is created for every call, bounded by a connect timeout
    and an overall request timeout. Timeouts and connection failures raise
    the call's error class with details["kind"] set to "timeout" or
    "connectivity"; caller cancellation propagates as asyncio.CancelledError.
    """

    def __init__(
        self,
        config: BackupConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.control_data_url = config.control_data_url
        self.backup_api_url = config.backup_api_url
        self.connect_timeout = config.connect_timeout
        self.request_timeout = config.request_timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.request_timeout, connect=self.connect_timeout),
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        url: str,
        error_cls: Type[InstanceAPIError] = InstanceAPIError,
        payload: Dict[str, Any] | None = None,
    ) -> httpx.Response:
        try:
            async with asyncio.timeout(self.request_timeout):
                async with self._client() as client:
                    return await client.request(method, url, json=payload)
        except (TimeoutError, httpx.TimeoutException) as e:
            raise error_cls(
                f"{method} {url} timed out",
                details={"kind": "timeout", "url": url},
            ) from e
        except httpx.HTTPError as e:
            raise error_cls(
                f"{method} {url} failed: {e}",
                details={"kind": "connectivity", "url": url},
            ) from e

    async def get_controldata(self) -> Dict[str, str]:
        """
        Fetch and parse pg_controldata from the status endpoint.

        Raises:
            ControlDataError: On a transport failure, a non-200 response, an
                undecodable body or an error reported by the endpoint
        """
        response = await self._request("GET", self.control_data_url, ControlDataError)

        if response.status_code != httpx.codes.OK:
            logger.info(
                "controldata_query_failed",
                status_code=response.status_code,
                body=response.text,
            )
            raise ControlDataError(
                f"error while querying the pg_controldata endpoint: {response.status_code}",
                details={"kind": "http", "status_code": response.status_code},
            )

        try:
            body = response.json()
        except json.JSONDecodeError as e:
            raise ControlDataError(
                f"invalid pg_controldata response: {e}",
                details={"kind": "decode"},
            ) from e

        if not isinstance(body, dict):
            raise ControlDataError(
                "invalid pg_controldata response: expected a JSON object",
                details={"kind": "decode"},
            )

        if body.get("error"):
            raise ControlDataError(
                f"pg_controldata endpoint reported an error: {body['error']}",
                details={"kind": "remote", "error": body["error"]},
            )

        return parse_controldata(body.get("data") or "")

    async def current_wal_file(self) -> str:
        """WAL file of the latest checkpoint's REDO location."""
        controldata = await self.get_controldata()
        wal_file = controldata.get(CURRENT_WAL_FILE_KEY)
        if not wal_file:
            raise ControlDataError(
                f"{CURRENT_WAL_FILE_KEY!r} missing from pg_controldata output",
                details={"kind": "decode"},
            )
        return wal_file

    async def _call_backup_api(
        self,
        method: str,
        payload: Dict[str, Any] | None = None,
    ) -> Dict[str, Any] | None:
        response = await self._request(method, self.backup_api_url, payload=payload)

        try:
            body = response.json()
        except json.JSONDecodeError as e:
            raise InstanceAPIError(
                f"invalid backup API response ({response.status_code}): {e}",
                details={"kind": "decode", "status_code": response.status_code},
            ) from e

        error = body.get("error") if isinstance(body, dict) else None
        if error or response.status_code >= 400:
            message = error.get("message") if isinstance(error, dict) else error
            raise InstanceAPIError(
                f"backup API {method} failed: {message or response.status_code}",
                details={
                    "kind": "remote",
                    "status_code": response.status_code,
                    "error": error,
                },
            )

        return body.get("data") if isinstance(body, dict) else None

    async def start_backup(
        self,
        backup_name: str,
        immediate_checkpoint: bool = True,
        wait_for_archive: bool = True,
        force: bool = True,
    ) -> None:
        """Request the instance to enter backup mode."""
        await self._call_backup_api(
            "POST",
            {
                "immediateCheckpoint": immediate_checkpoint,
                "waitForArchive": wait_for_archive,
                "backupName": backup_name,
                "force": force,
            },
        )

    async def stop_backup(self, backup_name: str) -> None:
        """Request the instance to leave backup mode."""
        await self._call_backup_api("PUT", {"backupName": backup_name})

    async def status(self) -> BackupStatus:
        """Current backup status."""
        data = await self._call_backup_api("GET")
        return BackupStatus.from_payload(data)
