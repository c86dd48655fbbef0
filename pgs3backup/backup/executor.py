# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgs3backup Executor - Backup mode state machine.

The executor brackets a logical snapshot with the instance's physical backup
mode so that the recorded WAL boundaries cover the copy:

    IDLE -> MODE_REQUESTED -> MODE_CONFIRMED_STARTED -> SNAPSHOT_CAPTURED
         -> MODE_STOP_REQUESTED -> MODE_CONFIRMED_STOPPED -> DONE

Any failure moves the executor to FAILED. Starting and stopping backup mode
are asynchronous on the instance side, so both transitions are confirmed by
polling the status endpoint with a bounded backoff. The snapshot is only
taken once the start is confirmed, and the stop is only requested once the
snapshot has been uploaded.
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, List

import structlog
from ulid import ULID

from pgs3backup import snapshot
from pgs3backup.archive import archive_snapshot
from pgs3backup.backup.result import BackupOutcome, CompletedBackup, PendingBackup
from pgs3backup.config import BackupConfig
from pgs3backup.errors import explain_incomplete_backup
from pgs3backup.exceptions import (
    BackupError,
    BackupIncompleteError,
    BackupNotStartedError,
    BackupNotStoppedError,
    InstanceAPIError,
)
from pgs3backup.instance import BackupPhase, BackupStatus, InstanceClient
from pgs3backup.retry import retry_on_error
from pgs3backup.storage.repository import SnapshotStore

logger = structlog.get_logger()


class ExecutorState(str, Enum):
    """Executor state machine."""

    IDLE = "idle"
    MODE_REQUESTED = "mode_requested"
    MODE_CONFIRMED_STARTED = "mode_confirmed_started"
    SNAPSHOT_CAPTURED = "snapshot_captured"
    MODE_STOP_REQUESTED = "mode_stop_requested"
    MODE_CONFIRMED_STOPPED = "mode_confirmed_stopped"
    DONE = "done"
    FAILED = "failed"


# States in which backup mode may be engaged on the instance
_ENGAGED_STATES = {ExecutorState.MODE_REQUESTED, ExecutorState.MODE_CONFIRMED_STARTED}


def retry_on_backup_not_started(error: BaseException) -> bool:
    return isinstance(error, BackupNotStartedError)


def retry_on_backup_not_stopped(error: BaseException) -> bool:
    return isinstance(error, BackupNotStoppedError)


class Executor:
    """
    Runs one backup. Create a new executor for every backup.

    Args:
        config: Backup configuration
        store: Where the archived snapshot is uploaded
        instance: Client for the instance manager endpoints
        backup_name: Identifier of the backup (a new ULID by default)
        sleep: Sleep coroutine used between status polls
    """

    def __init__(
        self,
        config: BackupConfig,
        store: SnapshotStore,
        instance: InstanceClient | None = None,
        backup_name: str | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.store = store
        self.instance = instance or InstanceClient(config)
        self.backup_name = backup_name or str(ULID())
        self.state = ExecutorState.IDLE
        self.transitions: List[ExecutorState] = [ExecutorState.IDLE]
        self.outcome: BackupOutcome = PendingBackup(self.backup_name)
        self._sleep = sleep

    def _transition(self, state: ExecutorState) -> None:
        logger.debug(
            "executor_transition",
            backup_name=self.backup_name,
            from_state=self.state.value,
            to_state=state.value,
        )
        self.state = state
        self.transitions.append(state)

    def completed(self) -> CompletedBackup:
        """
        The completed outcome.

        Raises:
            BackupIncompleteError: If the backup has not run to completion
        """
        if not isinstance(self.outcome, CompletedBackup):
            raise BackupIncompleteError(
                explain_incomplete_backup("backup outcome"),
                details={"backup_name": self.backup_name, "state": self.state.value},
            )
        return self.outcome

    @property
    def begin_wal(self) -> str:
        if not isinstance(self.outcome, CompletedBackup):
            raise BackupIncompleteError(explain_incomplete_backup("begin_wal"))
        return self.outcome.begin_wal

    @property
    def end_wal(self) -> str:
        if not isinstance(self.outcome, CompletedBackup):
            raise BackupIncompleteError(explain_incomplete_backup("end_wal"))
        return self.outcome.end_wal

    async def backup(self) -> CompletedBackup:
        """
        Take the backup.

        Returns:
            The completed outcome with WAL boundaries and the final status

        Raises:
            BackupError: Wrapping the failure, with details["phase"] naming
                the state the executor was in when it failed
        """
        if self.state is not ExecutorState.IDLE:
            raise BackupError(
                "executor has already run; create a new one for every backup",
                details={"backup_name": self.backup_name, "state": self.state.value},
            )

        log = logger.bind(backup_name=self.backup_name)

        try:
            log.info("preparing_physical_backup")
            begin_wal = await self._set_backup_mode()

            log.info("copying_files")
            object_key = await self._exec_snapshot()

            log.info("finishing_backup")
            status, end_wal = await self._unset_backup_mode()

        except asyncio.CancelledError:
            log.warning("backup_cancelled", phase=self.state.value)
            self._transition(ExecutorState.FAILED)
            raise
        except Exception as e:
            phase = self.state.value
            await self._release_backup_mode(e)
            self._transition(ExecutorState.FAILED)
            log.error("backup_failed", phase=phase, error=str(e))
            raise BackupError(
                f"backup {self.backup_name} failed in phase {phase}: {e}",
                details={
                    "backup_name": self.backup_name,
                    "phase": phase,
                    "error_type": type(e).__name__,
                },
            ) from e

        self.outcome = CompletedBackup(
            backup_name=self.backup_name,
            begin_wal=begin_wal,
            end_wal=end_wal,
            object_key=object_key,
            status=status,
        )
        self._transition(ExecutorState.DONE)
        log.info("backup_completed", begin_wal=begin_wal, end_wal=end_wal, key=object_key)
        return self.outcome

    async def _set_backup_mode(self) -> str:
        """Record the begin WAL, request backup mode and wait until it starts."""
        begin_wal = await self.instance.current_wal_file()

        await self.instance.start_backup(
            self.backup_name,
            immediate_checkpoint=True,
            wait_for_archive=True,
            force=True,
        )
        self._transition(ExecutorState.MODE_REQUESTED)
        logger.info("backup_mode_requested", backup_name=self.backup_name, begin_wal=begin_wal)

        await retry_on_error(
            self.config.retry_policy,
            retry_on_backup_not_started,
            lambda: self._wait_for_phase(BackupPhase.STARTED, BackupNotStartedError),
            sleep=self._sleep,
        )
        self._transition(ExecutorState.MODE_CONFIRMED_STARTED)
        logger.info("backup_mode_started", backup_name=self.backup_name)
        return begin_wal

    async def _exec_snapshot(self) -> str:
        """Dump, archive and upload. Returns the object key."""
        dump_file = await snapshot.dump(self.config)
        archive_path = await archive_snapshot(dump_file)
        object_key = await self.store.put(archive_path.name, archive_path)
        self._transition(ExecutorState.SNAPSHOT_CAPTURED)
        logger.info("snapshot_uploaded", backup_name=self.backup_name, key=object_key)
        return object_key

    async def _unset_backup_mode(self) -> tuple[BackupStatus, str]:
        """Request the stop, wait for completion and record the end WAL."""
        await self.instance.stop_backup(self.backup_name)
        self._transition(ExecutorState.MODE_STOP_REQUESTED)
        logger.info("backup_mode_stop_requested", backup_name=self.backup_name)

        status = await retry_on_error(
            self.config.retry_policy,
            retry_on_backup_not_stopped,
            lambda: self._wait_for_phase(BackupPhase.COMPLETED, BackupNotStoppedError),
            sleep=self._sleep,
        )
        self._transition(ExecutorState.MODE_CONFIRMED_STOPPED)
        logger.info("backup_mode_stopped", backup_name=self.backup_name)

        end_wal = await self.instance.current_wal_file()
        return status, end_wal

    async def _wait_for_phase(
        self,
        expected: BackupPhase,
        not_yet: type[InstanceAPIError],
    ) -> BackupStatus:
        """One status poll: the status if it reached expected, not_yet otherwise."""
        status = await self.instance.status()

        if status.phase is expected:
            return status

        if status.phase is BackupPhase.FAILED and status.backup_name == self.backup_name:
            raise InstanceAPIError(
                f"instance reported backup {self.backup_name} as failed",
                details={"kind": "remote", "phase": status.phase.value},
            )

        logger.debug(
            "backup_phase_pending",
            backup_name=self.backup_name,
            expected=expected.value,
            phase=status.phase.value,
        )
        raise not_yet(
            f"backup not {expected.value}",
            details={"phase": status.phase.value},
        )

    async def _release_backup_mode(self, error: Exception) -> None:
        """
        Best-effort stop after a failure between the start request and the
        stop request.

        Failures of the stop itself are logged; the original error is what
        the caller sees.
        """
        if self.state not in _ENGAGED_STATES:
            return

        if not self.config.release_on_failure:
            logger.warning(
                "backup_mode_left_engaged",
                backup_name=self.backup_name,
                error=str(error),
            )
            return

        try:
            await self.instance.stop_backup(self.backup_name)
            logger.warning("backup_mode_released_after_failure", backup_name=self.backup_name)
        except InstanceAPIError as stop_error:
            logger.error(
                "backup_mode_release_failed",
                backup_name=self.backup_name,
                error=str(stop_error),
            )
