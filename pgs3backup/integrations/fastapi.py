# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgs3backup FastAPI Integration - HTTP trigger surface for the backup engine.

This module exposes the engine to the cluster operator over HTTP:
- Protected admin endpoints for backup, restore and inspection
- Lifespan management (catalog initialization, scheduler shutdown)
- Optional daily scheduled backups
- One backup or restore at a time, since runs share the working directory
"""

import asyncio
import os
from contextlib import asynccontextmanager
from datetime import datetime, UTC
from typing import Any, AsyncIterator, TypedDict

import aiosqlite
import structlog
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Depends, FastAPI, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from pgs3backup.backup import BackupResult, perform_backup
from pgs3backup.catalog import init_catalog_db, list_backups, list_restores, record_backup, record_restore
from pgs3backup.config import BackupConfig
from pgs3backup.exceptions import BucketNotFoundError, PGS3BackupError
from pgs3backup.instance import InstanceClient
from pgs3backup.restore import restore
from pgs3backup.storage import open_repository

logger = structlog.get_logger()

# Security
security = HTTPBearer(auto_error=False)


class ServiceState(TypedDict):
    """Runtime state shared by the endpoints."""

    lock: asyncio.Lock
    last_result: BackupResult | None
    last_run_at: datetime | None
    last_error: str | None
    total_backups: int
    total_restores: int
    scheduler: Any  # AsyncIOScheduler when a schedule is configured


def create_service_state() -> ServiceState:
    return ServiceState(
        lock=asyncio.Lock(),
        last_result=None,
        last_run_at=None,
        last_error=None,
        total_backups=0,
        total_restores=0,
        scheduler=None,
    )


async def verify_api_key(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> bool:
    """
    Verify API key from Authorization header.

    The API key is read from the PGS3_ADMIN_API_KEY environment variable.
    Requests must include: Authorization: Bearer <api_key>

    Raises:
        HTTPException: If API key is missing or invalid
    """
    api_key = os.getenv("PGS3_ADMIN_API_KEY")

    if not api_key:
        raise HTTPException(
            status_code=500,
            detail="PGS3_ADMIN_API_KEY environment variable not set",
        )

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Authorization header required",
        )

    if credentials.credentials != api_key:
        raise HTTPException(
            status_code=403,
            detail="Invalid API key",
        )

    return True


async def run_backup(config: BackupConfig, state: ServiceState) -> BackupResult:
    """
    Take a backup under the service lock and record it.

    Raises:
        RuntimeError: If another backup or restore is running
    """
    if state["lock"].locked():
        raise RuntimeError("a backup or restore is already running")

    async with state["lock"]:
        state["last_run_at"] = datetime.now(UTC)
        try:
            result = await perform_backup(config.bucket, config.prefix, config)
        except Exception as e:
            state["last_error"] = str(e)
            raise

        state["last_result"] = result
        state["last_error"] = None
        state["total_backups"] += 1

        if config.catalog_path:
            async with aiosqlite.connect(config.catalog_path) as db:
                await record_backup(db, result)

        return result


# Package errors plus the botocore errors open_repository passes through
_UPSTREAM_ERRORS = (PGS3BackupError, ClientError, BotoCoreError)


def _raise_http(e: Exception) -> None:
    status_code = 404 if isinstance(e, BucketNotFoundError) else 502
    raise HTTPException(status_code=status_code, detail=str(e)) from e


def register_backup_routes(
    app: FastAPI,
    config: BackupConfig,
    state: ServiceState,
    prefix: str = "/admin/pgbackup",
) -> None:
    """
    Register backup admin endpoints on a FastAPI app.

    All endpoints require Bearer token authentication.

    Args:
        app: FastAPI application
        config: Backup configuration
        state: Runtime state
        prefix: URL prefix for endpoints (default: /admin/pgbackup)
    """

    @app.post(f"{prefix}/backup", dependencies=[Depends(verify_api_key)])
    async def trigger_backup() -> dict:
        """
        Take a full backup now.

        Returns the backup result including WAL boundaries and object key.
        """
        try:
            result = await run_backup(config, state)
        except RuntimeError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        except _UPSTREAM_ERRORS as e:
            _raise_http(e)
        return result.to_dict()

    @app.post(f"{prefix}/restore/{{backup_name:path}}", dependencies=[Depends(verify_api_key)])
    async def trigger_restore(backup_name: str) -> dict:
        """
        Restore a backup archive into the local instance.

        Args:
            backup_name: Archive name or key, e.g. 20240101120000.sql.tar.gz
        """
        if state["lock"].locked():
            raise HTTPException(status_code=409, detail="a backup or restore is already running")

        async with state["lock"]:
            error: str | None = None
            try:
                result = await restore(config.bucket, config.prefix, backup_name, config)
            except Exception as e:
                error = str(e) or type(e).__name__
                state["last_error"] = error
                if isinstance(e, _UPSTREAM_ERRORS):
                    _raise_http(e)
                raise
            finally:
                if config.catalog_path:
                    async with aiosqlite.connect(config.catalog_path) as db:
                        await record_restore(db, backup_name, error)

            state["total_restores"] += 1
            return {
                "backup_name": result.backup_name,
                "dump_file": result.dump_file,
                "duration_seconds": result.duration_seconds,
            }

    @app.get(f"{prefix}/backups", dependencies=[Depends(verify_api_key)])
    async def list_recorded_backups(limit: int = 50, offset: int = 0) -> list:
        """
        List backups recorded in the catalog, newest first.
        """
        if not config.catalog_path:
            return []
        async with aiosqlite.connect(config.catalog_path) as db:
            return await list_backups(db, limit, offset)

    @app.get(f"{prefix}/restores", dependencies=[Depends(verify_api_key)])
    async def list_recorded_restores(limit: int = 50) -> list:
        if not config.catalog_path:
            return []
        async with aiosqlite.connect(config.catalog_path) as db:
            return await list_restores(db, limit)

    @app.get(f"{prefix}/status", dependencies=[Depends(verify_api_key)])
    async def get_status() -> dict:
        """
        Get current service status.
        """
        last = state["last_result"]
        return {
            "running": state["lock"].locked(),
            "last_run_at": (
                state["last_run_at"].isoformat() if state["last_run_at"] else None
            ),
            "last_backup": last.backup_name if last else None,
            "last_error": state["last_error"],
            "total_backups": state["total_backups"],
            "total_restores": state["total_restores"],
            "bucket": config.bucket,
            "prefix": config.prefix,
        }

    @app.get(f"{prefix}/health", dependencies=[Depends(verify_api_key)])
    async def health_check() -> dict:
        """
        Health check endpoint.

        Verifies bucket and instance manager connectivity.
        """
        s3_ok = False
        s3_error = None
        try:
            repository = await open_repository(config)
            s3_ok = await repository.exists()
        except Exception as e:
            s3_error = str(e)

        instance_ok = False
        instance_error = None
        phase = None
        try:
            status = await InstanceClient(config).status()
            instance_ok = True
            phase = status.phase.value
        except PGS3BackupError as e:
            instance_error = str(e)

        status_str = "healthy"
        if not s3_ok or not instance_ok:
            status_str = "degraded"
        if not s3_ok and not instance_ok:
            status_str = "unhealthy"

        return {
            "status": status_str,
            "s3_reachable": s3_ok,
            "s3_error": s3_error,
            "instance_reachable": instance_ok,
            "instance_error": instance_error,
            "backup_phase": phase,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    @app.get(f"{prefix}/config", dependencies=[Depends(verify_api_key)])
    async def get_config() -> dict:
        """
        Get current configuration (credentials redacted).
        """
        return config.redacted()


def _setup_scheduled_backup(config: BackupConfig, state: ServiceState) -> None:
    """Set up APScheduler for daily backups."""
    from apscheduler.schedulers.asyncio import AsyncIOScheduler
    from apscheduler.triggers.cron import CronTrigger

    scheduler = AsyncIOScheduler(timezone="UTC")

    # Parse HH:MM format
    hour, minute = map(int, config.schedule_cron.split(":"))

    async def scheduled_backup():
        """Run scheduled backup."""
        logger.info("scheduled_backup_starting")
        try:
            result = await run_backup(config, state)
            logger.info("scheduled_backup_completed", backup_name=result.backup_name)
        except (RuntimeError, *_UPSTREAM_ERRORS) as e:
            logger.error("scheduled_backup_failed", error=str(e))

    scheduler.add_job(
        scheduled_backup,
        trigger=CronTrigger(hour=hour, minute=minute, timezone="UTC"),
        id="pgs3backup_scheduled",
        replace_existing=True,
    )
    scheduler.start()
    state["scheduler"] = scheduler

    logger.info(
        "scheduler_started",
        schedule=config.schedule_cron,
        next_run=scheduler.get_job("pgs3backup_scheduled").next_run_time.isoformat(),
    )


@asynccontextmanager
async def backup_lifespan(app: FastAPI, config: BackupConfig) -> AsyncIterator[None]:
    """
    Lifespan context manager for FastAPI.

        app = FastAPI(lifespan=lambda app: backup_lifespan(app, config))

    Args:
        app: FastAPI application
        config: Backup configuration
    """
    logger.info("pgs3backup_lifespan_starting", bucket=config.bucket, prefix=config.prefix)

    state = getattr(app.state, "pgs3backup_state", None) or create_service_state()
    app.state.pgs3backup_state = state
    app.state.pgs3backup_config = config

    if config.catalog_path:
        await init_catalog_db(config.catalog_path)

    if config.schedule_cron:
        _setup_scheduled_backup(config, state)

    logger.info("pgs3backup_lifespan_started")

    try:
        yield
    finally:
        logger.info("pgs3backup_lifespan_stopping")
        if state["scheduler"] is not None:
            state["scheduler"].shutdown(wait=False)
        logger.info("pgs3backup_lifespan_stopped")


def create_app(config: BackupConfig, prefix: str = "/admin/pgbackup") -> FastAPI:
    """
    Build a FastAPI app serving the backup endpoints.

    This is what the `serve` command runs in the sidecar container.
    """
    app = FastAPI(
        title="pgs3backup",
        description="PostgreSQL backups to S3-compatible object storage",
        lifespan=lambda app: backup_lifespan(app, config),
    )
    state = create_service_state()
    app.state.pgs3backup_state = state
    app.state.pgs3backup_config = config
    register_backup_routes(app, config, state, prefix)
    return app


def get_service_state(app: FastAPI) -> ServiceState:
    """
    Get the service state from a FastAPI app.

    Raises:
        RuntimeError: If the backup routes were not set up
    """
    state = getattr(app.state, "pgs3backup_state", None)
    if not state:
        raise RuntimeError("pgs3backup not initialized. Call create_app first.")
    return state
