# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

Builds an AppConfig from the well-known environment variables used by
the mysqldump-to-S3 container images. The result is an ordinary value:
callers construct it once and pass it to run_backup()/run_restore().
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Tuple

from s3dump.config import AppConfig, Codec, DatabaseConfig, PipelineSettings, S3Config
from s3dump.errors import (
    explain_invalid_codec_env,
    explain_invalid_number_env,
    explain_invalid_port_env,
    explain_missing_env,
)
from s3dump.exceptions import ConfigurationError


def _require(env: Mapping[str, str], name: str, purpose: str) -> str:
    value = env.get(name)
    if not value:
        raise ConfigurationError(explain_missing_env(name, purpose))
    return value


def _parse_port(value: str | None) -> int:
    if not value:
        return 3306
    try:
        port = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_port_env(value)) from exc
    if not 0 < port < 65536:
        raise ConfigurationError(explain_invalid_port_env(value))
    return port


def _parse_schemas(value: str | None) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(s.strip() for s in value.split(",") if s.strip())


def _parse_codec(value: str | None) -> Codec:
    if not value:
        return Codec.GZIP
    try:
        return Codec(value.lower())
    except ValueError as exc:
        raise ConfigurationError(explain_invalid_codec_env(value)) from exc


def _parse_seconds(name: str, value: str | None, default: float | None) -> float | None:
    if value is None or value == "":
        return default
    if value.lower() in ("0", "none", "off"):
        return None
    try:
        seconds = float(value)
    except ValueError as exc:
        raise ConfigurationError(explain_invalid_number_env(name, value)) from exc
    if seconds <= 0:
        raise ConfigurationError(explain_invalid_number_env(name, value))
    return seconds


def create_config_from_env(env: Mapping[str, str] | None = None) -> AppConfig:
    """
    Create an AppConfig from environment variables.

    Required:
        - DB_HOST, DB_USER: MySQL server and user
        - S3_BUCKET: Bucket holding the backups

    Optional environment variables:
        - DB_PASSWORD: MySQL password (default: empty)
        - DB_PORT: MySQL port (default: 3306)
        - DB_NAME: Single database to back up
        - DB_SCHEMAS: Comma-separated schema list (overrides DB_NAME)
        - AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY: Explicit credentials
        - AWS_DEFAULT_REGION: Region (default: us-east-1)
        - S3_ENDPOINT_URL: Custom S3-compatible endpoint
        - S3_KEY: Fixed backup name used instead of the database name
        - S3_PREFIX: Prefix for generated backup keys
        - S3DUMP_CODEC: 'gzip' | 'zstd' (default: gzip)
        - S3DUMP_RESTORE_TIMEOUT: Seconds, or 'none' (default: 1800)
        - S3DUMP_BACKUP_TIMEOUT: Seconds, or 'none' (default: none)
        - S3DUMP_TEMP_DIR: Directory for staged transfers
    """
    env = os.environ if env is None else env

    database = DatabaseConfig(
        host=_require(env, "DB_HOST", "Database host"),
        user=_require(env, "DB_USER", "Database user"),
        password=env.get("DB_PASSWORD", ""),
        port=_parse_port(env.get("DB_PORT")),
        database=env.get("DB_NAME") or None,
        schemas=_parse_schemas(env.get("DB_SCHEMAS")),
    )

    s3 = S3Config(
        bucket=_require(env, "S3_BUCKET", "S3 bucket"),
        region=env.get("AWS_DEFAULT_REGION") or "us-east-1",
        access_key_id=env.get("AWS_ACCESS_KEY_ID") or None,
        secret_access_key=env.get("AWS_SECRET_ACCESS_KEY") or None,
        endpoint_url=env.get("S3_ENDPOINT_URL") or None,
        backup_name=env.get("S3_KEY") or None,
        key_prefix=env.get("S3_PREFIX", ""),
    )

    temp_dir = env.get("S3DUMP_TEMP_DIR")
    pipeline = PipelineSettings(
        codec=_parse_codec(env.get("S3DUMP_CODEC")),
        restore_timeout=_parse_seconds(
            "S3DUMP_RESTORE_TIMEOUT", env.get("S3DUMP_RESTORE_TIMEOUT"), 30 * 60
        ),
        backup_timeout=_parse_seconds(
            "S3DUMP_BACKUP_TIMEOUT", env.get("S3DUMP_BACKUP_TIMEOUT"), None
        ),
        temp_dir=Path(temp_dir) if temp_dir else None,
    )

    return AppConfig(
        database=database,
        s3=s3,
        pipeline=pipeline,
        verbose=env.get("S3DUMP_VERBOSE", "").lower() in ("1", "true", "yes"),
    )
