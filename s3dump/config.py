# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3dump Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation. A single
AppConfig value is built once and passed explicitly into every
pipeline component; nothing in the package caches it globally.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Tuple
import re


class Codec(str, Enum):
    """Compression codec applied to dumps."""

    GZIP = "gzip"
    ZSTD = "zstd"

    @property
    def suffix(self) -> str:
        """Object key suffix for dumps written with this codec."""
        return ".sql.gz" if self is Codec.GZIP else ".sql.zst"

    @property
    def content_type(self) -> str:
        return "application/gzip" if self is Codec.GZIP else "application/zstd"


def codec_for_key(key: str) -> Codec:
    """Pick the codec from a backup key or file name (gzip unless .zst)."""
    if key.lower().endswith(".zst"):
        return Codec.ZSTD
    return Codec.GZIP


def _validate_bucket_name(bucket: str) -> bool:
    """
    Validate S3 bucket name according to AWS rules.

    Rules:
    - 3-63 characters
    - Lowercase letters, numbers, hyphens, periods
    - Must start and end with letter or number
    - No consecutive periods
    """
    if not bucket or len(bucket) < 3 or len(bucket) > 63:
        return False

    if not re.match(r"^[a-z0-9][a-z0-9.-]*[a-z0-9]$", bucket):
        return False

    if ".." in bucket:
        return False

    return True


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection parameters for the MySQL server. Read-only input."""

    host: str
    user: str
    password: str = ""
    port: int = 3306

    # Single database to dump (ignored when schemas is non-empty)
    database: str | None = None

    # Explicit schema list; takes priority over database
    schemas: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        errors: List[str] = []

        if not self.host:
            errors.append("Database host is required (DB_HOST)")
        if not self.user:
            errors.append("Database user is required (DB_USER)")
        if not 0 < self.port < 65536:
            errors.append(f"Database port out of range: {self.port}")
        if any(not s for s in self.schemas):
            errors.append("Schema names must be non-empty")

        if errors:
            from s3dump.exceptions import ConfigurationError

            raise ConfigurationError(
                "Database configuration validation failed",
                details={"errors": errors},
            )

    def redacted(self) -> dict:
        """Connection parameters safe for logging."""
        return {"host": self.host, "port": self.port, "user": self.user}


@dataclass(frozen=True)
class S3Config:
    """Object store location and credentials."""

    bucket: str
    region: str = "us-east-1"
    access_key_id: str | None = None
    secret_access_key: str | None = None

    # Custom endpoint (MinIO, Ceph, ...); enables path-style addressing
    endpoint_url: str | None = None

    # Optional fixed backup name used instead of the target-derived one
    backup_name: str | None = None

    # Prefix prepended to generated backup keys, e.g. "mysql/"
    key_prefix: str = ""

    def __post_init__(self) -> None:
        if not _validate_bucket_name(self.bucket):
            from s3dump.exceptions import ConfigurationError

            raise ConfigurationError(
                "S3 configuration validation failed",
                details={"errors": [f"Invalid bucket name: {self.bucket}"]},
            )


@dataclass(frozen=True)
class PipelineSettings:
    """Tunables for the streaming pipeline."""

    # Bytes read from a process or object body per chunk
    chunk_size: int = 64 * 1024

    # Chunks buffered between two stages before the producer is suspended
    queue_size: int = 8

    # Multipart upload part size (S3 minimum is 5 MiB)
    part_size: int = 10 * 1024 * 1024

    codec: Codec = Codec.GZIP
    compression_level: int = 6

    # Whole-run timeouts in seconds (None disables)
    restore_timeout: float | None = 30 * 60
    backup_timeout: float | None = None

    # Seconds between SIGTERM and SIGKILL when stopping a child process
    kill_grace: float = 5.0

    # Bytes of stderr kept for error messages
    stderr_tail_bytes: int = 4096

    dump_command: Tuple[str, ...] = ("mysqldump",)
    restore_command: Tuple[str, ...] = ("mysql",)

    # Disable FK/unique checks and autocommit during restore
    disable_integrity_checks: bool = True

    # Pass --force to the restore client
    continue_on_error: bool = False

    # Directory for staged (temp file) transfers; None uses the system default
    temp_dir: Path | None = None

    def __post_init__(self) -> None:
        errors: List[str] = []

        if self.chunk_size < 1:
            errors.append(f"chunk_size must be >= 1, got {self.chunk_size}")
        if self.queue_size < 1:
            errors.append(f"queue_size must be >= 1, got {self.queue_size}")
        if self.part_size < 5 * 1024 * 1024:
            errors.append(f"part_size must be >= 5 MiB, got {self.part_size}")
        if self.restore_timeout is not None and self.restore_timeout <= 0:
            errors.append(f"restore_timeout must be > 0, got {self.restore_timeout}")
        if self.backup_timeout is not None and self.backup_timeout <= 0:
            errors.append(f"backup_timeout must be > 0, got {self.backup_timeout}")
        if self.kill_grace < 0:
            errors.append(f"kill_grace must be >= 0, got {self.kill_grace}")
        if not self.dump_command or not self.restore_command:
            errors.append("dump_command and restore_command must not be empty")

        if errors:
            from s3dump.exceptions import ConfigurationError

            raise ConfigurationError(
                "Pipeline configuration validation failed",
                details={"errors": errors},
            )


@dataclass(frozen=True)
class AppConfig:
    """Complete configuration for one invocation."""

    database: DatabaseConfig
    s3: S3Config
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    verbose: bool = False

    def with_updates(self, **kwargs) -> "AppConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        current = {
            "database": self.database,
            "s3": self.s3,
            "pipeline": self.pipeline,
            "verbose": self.verbose,
        }
        current.update(kwargs)
        return AppConfig(**current)

    def as_dict(self) -> dict:
        """Configuration as a dict with secrets removed."""
        data = asdict(self)
        data["database"].pop("password", None)
        data["s3"].pop("secret_access_key", None)
        return data
