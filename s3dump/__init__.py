# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3dump - Streaming MySQL backups to and from S3.

Pipes mysqldump through gzip (or zstd) straight into a multipart upload,
and an object back through decompression into the mysql client, with
bounded memory, throttled progress and predictable failure handling.
"""

__version__ = "0.1.0"

# Configuration creation (user-facing API)
from s3dump.builder import create_config
from s3dump.config import AppConfig, Codec, DatabaseConfig, PipelineSettings, S3Config

# Core functions
from s3dump.core import list_backups, run_backup, run_restore

# Environment-based configuration
from s3dump.env import create_config_from_env

from s3dump.models import (
    BackupLocator,
    BackupRequest,
    BackupResult,
    ProgressSample,
    RestoreRequest,
    RestoreResult,
    TargetDescriptor,
    TransferDescriptor,
)
from s3dump.progress import ProgressAggregator

__all__ = [
    # Version
    "__version__",
    # Configuration
    "create_config",
    "create_config_from_env",
    "AppConfig",
    "Codec",
    "DatabaseConfig",
    "PipelineSettings",
    "S3Config",
    # Core orchestration functions
    "run_backup",
    "run_restore",
    "list_backups",
    # Requests and results
    "BackupLocator",
    "BackupRequest",
    "BackupResult",
    "RestoreRequest",
    "RestoreResult",
    "TargetDescriptor",
    "TransferDescriptor",
    # Progress
    "ProgressAggregator",
    "ProgressSample",
]
