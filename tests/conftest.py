# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for pgs3backup tests.

Provides a moto S3 server, a scripted instance manager, an in-memory
snapshot store and test configuration helpers.
"""

import base64
import json
import os
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, List

import httpx
import pytest
import pytest_asyncio

from pgs3backup.config import BackupConfig
from pgs3backup.retry import RetryPolicy

# Set test environment variables
os.environ["PGS3_ADMIN_API_KEY"] = "test-api-key-12345"
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

MOTO_PORT = 5055
MOTO_ENDPOINT = f"http://127.0.0.1:{MOTO_PORT}"

# Policy with no waiting for tests that do not inject a sleep
FAST_RETRY = RetryPolicy(steps=10, duration=0.0, factor=5.0, jitter=0.0)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def backup_config(temp_dir: Path) -> BackupConfig:
    """Create a test configuration pointing at the moto server."""
    return BackupConfig(
        bucket="test-bucket",
        prefix="p",
        region="us-east-1",
        endpoint_url=MOTO_ENDPOINT,
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
        working_dir=temp_dir / "work",
        retry_policy=FAST_RETRY,
    )


@pytest.fixture(scope="session")
def moto_server() -> Generator[str, None, None]:
    """
    Run a moto S3 server for the whole session.

    aiobotocore talks real HTTP to it, so no client patching is involved.
    """
    from moto.server import ThreadedMotoServer

    server = ThreadedMotoServer(ip_address="127.0.0.1", port=MOTO_PORT, verbose=False)
    server.start()
    yield MOTO_ENDPOINT
    server.stop()


@pytest_asyncio.fixture
async def s3_client(moto_server: str):
    """An aiobotocore client against a freshly reset moto server with test-bucket."""
    from aiobotocore.session import get_session

    httpx.post(f"{moto_server}/moto-api/reset")

    session = get_session()
    async with session.create_client(
        "s3",
        region_name="us-east-1",
        endpoint_url=moto_server,
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    ) as client:
        await client.create_bucket(Bucket="test-bucket")
        yield client


async def get_s3_object_content(s3_client, bucket: str, key: str) -> bytes:
    """Get content of an S3 object."""
    response = await s3_client.get_object(Bucket=bucket, Key=key)
    async with response["Body"] as stream:
        return await stream.read()


async def s3_object_exists(s3_client, bucket: str, key: str) -> bool:
    """Check if an S3 object exists."""
    try:
        await s3_client.head_object(Bucket=bucket, Key=key)
        return True
    except Exception:
        return False


def controldata_text(wal_file: str) -> str:
    """pg_controldata-like output with the given REDO WAL file."""
    return "\n".join(
        [
            "pg_control version number:            1300",
            "Database cluster state:               in production",
            "Latest checkpoint location:           0/3000060",
            "Latest checkpoint's REDO location:    0/3000028",
            f"Latest checkpoint's REDO WAL file:    {wal_file}",
            "Latest checkpoint's TimeLineID:       1",
        ]
    )


class FakeInstanceManager:
    """
    Scripted instance manager served through httpx.MockTransport.

    phases_after_start / phases_after_stop are consumed one per status
    poll; once exhausted the final phase is repeated.
    """

    def __init__(
        self,
        wal_files: List[str] | None = None,
        phases_after_start: List[str] | None = None,
        phases_after_stop: List[str] | None = None,
    ):
        self.wal_files = list(wal_files or ["000000010000000000000003", "000000010000000000000005"])
        self.phases_after_start = list(phases_after_start or ["started"])
        self.phases_after_stop = list(phases_after_stop or ["completed"])
        self.requests: List[httpx.Request] = []
        self.events: List[str] = []
        self.backup_name = ""
        self.stopped = False

    def _next_phase(self) -> str:
        phases = self.phases_after_stop if self.stopped else self.phases_after_start
        return phases.pop(0) if len(phases) > 1 else phases[0]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.path == "/pg/controldata":
            wal = self.wal_files.pop(0) if len(self.wal_files) > 1 else self.wal_files[0]
            self.events.append(f"controldata:{wal}")
            return httpx.Response(200, json={"data": controldata_text(wal)})

        if request.url.path == "/pg/mode/backup":
            if request.method == "POST":
                body = json.loads(request.content)
                self.backup_name = body["backupName"]
                self.events.append("start")
                return httpx.Response(200, json={"data": {}})
            if request.method == "PUT":
                self.stopped = True
                self.events.append("stop")
                return httpx.Response(200, json={"data": {}})
            phase = self._next_phase()
            self.events.append(f"status:{phase}")
            return httpx.Response(200, json={"data": self._status(phase)})

        return httpx.Response(404, json={"error": {"message": "not found"}})

    def _status(self, phase: str) -> Dict:
        data = {"phase": phase, "backupName": self.backup_name, "beginLSN": "0/3000028"}
        if phase == "completed":
            data.update(
                {
                    "endLSN": "0/5000100",
                    "labelFile": base64.b64encode(b"START WAL LOCATION: 0/3000028\n").decode(),
                    "spcmapFile": base64.b64encode(b"").decode(),
                }
            )
        return data

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_instance() -> FakeInstanceManager:
    return FakeInstanceManager()


class MemoryStore:
    """In-memory SnapshotStore recording what was uploaded."""

    def __init__(self, working_dir: Path, events: List[str] | None = None, fail: bool = False):
        self.working_dir = working_dir
        self.objects: Dict[str, bytes] = {}
        self.events = events if events is not None else []
        self.fail = fail

    async def put(self, name: str, local_file: Path) -> str:
        from pgs3backup.exceptions import StorageError

        data = local_file.read_bytes()
        local_file.unlink()
        if self.fail:
            raise StorageError("upload failed", details={"key": name})
        key = f"p/{name}"
        self.objects[key] = data
        self.events.append(f"put:{key}")
        return key


def make_fake_dump(name: str = "20240101120000.sql", content: bytes = b"-- dump\n") -> Callable:
    """A stand-in for snapshot.dump writing a fixed file into the working dir."""

    async def fake_dump(config, now=None):
        config.working_dir.mkdir(parents=True, exist_ok=True)
        path = config.working_dir / name
        path.write_bytes(content)
        return path

    return fake_dump


def make_backup_result(backup_id: str = "01HQ000000000000000000BK01", started_at: int = 100):
    """A completed BackupResult as returned by perform_backup."""
    from pgs3backup.backup import BackupResult

    return BackupResult(
        backup_id=backup_id,
        backup_name=backup_id,
        started_at=started_at,
        stopped_at=started_at + 5,
        begin_wal="000000010000000000000003",
        end_wal="000000010000000000000005",
        begin_lsn="0/3000028",
        end_lsn="0/5000100",
        backup_label_file=b"label",
        tablespace_map_file=b"",
        object_key="p/20240101120000.sql.tar.gz",
    )
