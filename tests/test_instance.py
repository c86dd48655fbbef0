# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Instance Client Tests.

The control-data and backup-control endpoints are served by
httpx.MockTransport, so no network access is needed.
"""

import base64
import json

import httpx
import pytest

from pgs3backup.config import BackupConfig
from pgs3backup.exceptions import ControlDataError, InstanceAPIError
from pgs3backup.instance import (
    CURRENT_WAL_FILE_KEY,
    BackupPhase,
    BackupStatus,
    InstanceClient,
    parse_controldata,
)

from conftest import controldata_text


def _client(backup_config: BackupConfig, handler) -> InstanceClient:
    return InstanceClient(backup_config, transport=httpx.MockTransport(handler))


# ============================================================================
# pg_controldata
# ============================================================================

def test_parse_controldata_splits_at_first_colon():
    parsed = parse_controldata(
        "Database cluster state:   in production\n"
        "no colon on this line\n"
        "Time of latest checkpoint: Mon 01 Jan 2024 12:00:00 UTC\n"
    )

    assert parsed["Database cluster state"] == "in production"
    assert parsed["Time of latest checkpoint"] == "Mon 01 Jan 2024 12:00:00 UTC"
    assert len(parsed) == 2


@pytest.mark.asyncio
async def test_current_wal_file(backup_config: BackupConfig):
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == "http://127.0.0.1:8000/pg/controldata"
        return httpx.Response(200, json={"data": controldata_text("000000010000000000000007")})

    client = _client(backup_config, handler)

    assert await client.current_wal_file() == "000000010000000000000007"


@pytest.mark.asyncio
async def test_controldata_non_200_raises(backup_config: BackupConfig):
    client = _client(backup_config, lambda request: httpx.Response(503, text="starting up"))

    with pytest.raises(ControlDataError) as exc_info:
        await client.get_controldata()

    assert exc_info.value.details["status_code"] == 503


@pytest.mark.asyncio
async def test_controldata_error_envelope_raises(backup_config: BackupConfig):
    client = _client(
        backup_config,
        lambda request: httpx.Response(200, json={"error": "pg_controldata failed"}),
    )

    with pytest.raises(ControlDataError):
        await client.get_controldata()


@pytest.mark.asyncio
async def test_controldata_undecodable_body_raises(backup_config: BackupConfig):
    client = _client(backup_config, lambda request: httpx.Response(200, text="{not json"))

    with pytest.raises(ControlDataError) as exc_info:
        await client.get_controldata()

    assert exc_info.value.details["kind"] == "decode"


@pytest.mark.asyncio
async def test_missing_wal_key_raises(backup_config: BackupConfig):
    client = _client(
        backup_config,
        lambda request: httpx.Response(200, json={"data": "pg_control version number: 1300"}),
    )

    with pytest.raises(ControlDataError, match=CURRENT_WAL_FILE_KEY):
        await client.current_wal_file()


@pytest.mark.asyncio
async def test_timeout_reports_kind(backup_config: BackupConfig):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    client = _client(backup_config, handler)

    with pytest.raises(ControlDataError) as exc_info:
        await client.get_controldata()

    assert exc_info.value.details["kind"] == "timeout"


@pytest.mark.asyncio
async def test_connection_failure_reports_kind(backup_config: BackupConfig):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = _client(backup_config, handler)

    with pytest.raises(InstanceAPIError) as exc_info:
        await client.status()

    assert exc_info.value.details["kind"] == "connectivity"


# ============================================================================
# Backup control
# ============================================================================

@pytest.mark.asyncio
async def test_start_backup_sends_expected_body(backup_config: BackupConfig):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, str(request.url), json.loads(request.content)))
        return httpx.Response(200, json={"data": {}})

    await _client(backup_config, handler).start_backup("bk-1")

    assert seen == [
        (
            "POST",
            "http://127.0.0.1:8010/pg/mode/backup",
            {
                "immediateCheckpoint": True,
                "waitForArchive": True,
                "backupName": "bk-1",
                "force": True,
            },
        )
    ]


@pytest.mark.asyncio
async def test_stop_backup_uses_put(backup_config: BackupConfig):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, json.loads(request.content)))
        return httpx.Response(200, json={"data": {}})

    await _client(backup_config, handler).stop_backup("bk-1")

    assert seen == [("PUT", {"backupName": "bk-1"})]


@pytest.mark.asyncio
async def test_status_decodes_base64_files(backup_config: BackupConfig):
    label = b"START WAL LOCATION: 0/3000028\n"

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        return httpx.Response(
            200,
            json={
                "data": {
                    "phase": "completed",
                    "backupName": "bk-1",
                    "beginLSN": "0/3000028",
                    "endLSN": "0/5000100",
                    "labelFile": base64.b64encode(label).decode(),
                }
            },
        )

    status = await _client(backup_config, handler).status()

    assert status.phase is BackupPhase.COMPLETED
    assert status.backup_name == "bk-1"
    assert status.end_lsn == "0/5000100"
    assert status.label_file == label
    assert status.spcmap_file == b""


@pytest.mark.asyncio
async def test_backup_api_error_envelope_raises(backup_config: BackupConfig):
    client = _client(
        backup_config,
        lambda request: httpx.Response(
            500, json={"error": {"code": "BUSY", "message": "backup already running"}}
        ),
    )

    with pytest.raises(InstanceAPIError, match="backup already running"):
        await client.start_backup("bk-1")


def test_unknown_phase_parses_as_unknown():
    assert BackupStatus.from_payload({"phase": "rebooting"}).phase is BackupPhase.UNKNOWN
    assert BackupStatus.from_payload(None).phase is BackupPhase.UNKNOWN
