# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3dump Models - Data structures shared by the pipeline components.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from pathlib import Path
from typing import Dict, Tuple

from s3dump.config import DatabaseConfig


class Direction(str, Enum):
    """Data flow direction of a pipeline run."""

    BACKUP = "backup"
    RESTORE = "restore"


class StageState(str, Enum):
    """Lifecycle of one pipeline stage."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# Allowed forward transitions; terminal states have none
_TRANSITIONS: Dict[StageState, Tuple[StageState, ...]] = {
    StageState.IDLE: (StageState.RUNNING,),
    StageState.RUNNING: (StageState.COMPLETED, StageState.FAILED),
    StageState.COMPLETED: (),
    StageState.FAILED: (),
}


@dataclass(frozen=True)
class TargetDescriptor:
    """
    What to dump: an explicit schema list, a single database, or all.

    Priority when several are given: schemas > database > all.
    """

    database: str | None = None
    schemas: Tuple[str, ...] = ()

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> "TargetDescriptor":
        return cls(database=config.database, schemas=tuple(config.schemas))

    @property
    def is_all(self) -> bool:
        return not self.schemas and not self.database

    @property
    def label(self) -> str:
        """Name used as the backup key stem."""
        if self.schemas:
            return "-".join(self.schemas)
        if self.database:
            return self.database
        return "all"


@dataclass(frozen=True)
class ProgressSample:
    """Point-in-time byte progress of a run."""

    loaded_bytes: int
    total_bytes: int | None = None
    percentage: float | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_complete(self) -> bool:
        return self.percentage == 100


@dataclass(frozen=True)
class TransferDescriptor:
    """An object-store entry holding a backup."""

    key: str
    last_modified: datetime
    size_bytes: int
    display_name: str


@dataclass
class DatabaseTarget:
    """Restore target as seen by the lifecycle manager."""

    name: str
    exists: bool = False


@dataclass(frozen=True)
class BackupLocator:
    """Where a restore reads from: an object key or a local file."""

    key: str | None = None
    path: Path | None = None

    def __post_init__(self) -> None:
        if (self.key is None) == (self.path is None):
            raise ValueError("BackupLocator needs exactly one of key or path")

    @classmethod
    def from_key(cls, key: str) -> "BackupLocator":
        return cls(key=key)

    @classmethod
    def from_path(cls, path: Path | str) -> "BackupLocator":
        return cls(path=Path(path))

    @property
    def name(self) -> str:
        return self.key if self.key is not None else str(self.path)


@dataclass
class PipelineRun:
    """
    One backup or restore execution.

    Owned by the invocation that created it. Stage states only move
    forward: idle -> running -> completed | failed.
    """

    direction: Direction
    source: str
    sink: str
    run_id: str = field(default_factory=lambda: _new_run_id())
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    stages: Dict[str, StageState] = field(default_factory=dict)

    def register(self, stage: str) -> None:
        if stage in self.stages:
            raise ValueError(f"Duplicate stage name: {stage}")
        self.stages[stage] = StageState.IDLE

    def transition(self, stage: str, state: StageState) -> None:
        current = self.stages[stage]
        if state not in _TRANSITIONS[current]:
            raise ValueError(
                f"Illegal stage transition for {stage}: {current.value} -> {state.value}"
            )
        self.stages[stage] = state

    @property
    def failed(self) -> bool:
        return StageState.FAILED in self.stages.values()


@dataclass(frozen=True)
class BackupRequest:
    """Input of run_backup()."""

    target: TargetDescriptor

    # Object key; generated from the target when omitted
    destination_key: str | None = None

    # Write to this local file instead of the object store
    local_path: Path | None = None

    # Compress to a temp file first, then upload it
    staged: bool = False


@dataclass(frozen=True)
class BackupResult:
    """Output of run_backup()."""

    bytes_written: int
    location: str
    run_id: str
    duration_seconds: float = 0.0


@dataclass(frozen=True)
class RestoreRequest:
    """Input of run_restore()."""

    source: BackupLocator
    target_database: str

    # Create the target database when it does not exist
    force_create: bool = True

    # Download to a temp file first, then restore from it
    staged: bool = False


@dataclass(frozen=True)
class RestoreResult:
    """Output of run_restore()."""

    target_database: str
    run_id: str
    bytes_read: int = 0
    duration_seconds: float = 0.0


def _new_run_id() -> str:
    from ulid import ULID

    return str(ULID())
