# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3dump Builder - Keyword-argument construction of AppConfig.

Validation happens in the config dataclasses; this module only maps
flat parameters onto the nested, immutable structure.
"""

from dataclasses import fields
from pathlib import Path
from typing import Any, Sequence

from s3dump.config import AppConfig, Codec, DatabaseConfig, PipelineSettings, S3Config

_PIPELINE_FIELDS = frozenset(f.name for f in fields(PipelineSettings))


def create_config(
    bucket: str,
    *,
    host: str = "localhost",
    user: str = "root",
    password: str = "",
    port: int = 3306,
    database: str | None = None,
    schemas: Sequence[str] = (),
    region: str = "us-east-1",
    endpoint_url: str | None = None,
    access_key_id: str | None = None,
    secret_access_key: str | None = None,
    backup_name: str | None = None,
    key_prefix: str = "",
    codec: str | Codec = Codec.GZIP,
    verbose: bool = False,
    **pipeline: Any,
) -> AppConfig:
    """
    Create an AppConfig from simple parameters.

    Args:
        bucket: S3 bucket holding the backups (required)
        host, user, password, port: MySQL connection parameters
        database: Single database to back up
        schemas: Explicit schema list (takes priority over database)
        region: AWS region (default: "us-east-1")
        endpoint_url: Custom S3-compatible endpoint (MinIO, Ceph, ...)
        backup_name: Fixed name used in generated keys instead of the target
        key_prefix: Prefix for generated keys
        codec: "gzip" (default) or "zstd"
        **pipeline: Any PipelineSettings field, e.g. restore_timeout=600

    Returns:
        Validated, immutable AppConfig

    Raises:
        ConfigurationError: If validation fails

    Example:
        config = create_config(
            "db-backups",
            host="db.internal",
            user="backup",
            password=secret,
            schemas=["shop", "billing"],
            restore_timeout=3600,
        )
    """
    unknown = sorted(set(pipeline) - _PIPELINE_FIELDS)
    if unknown:
        from s3dump.exceptions import ConfigurationError

        raise ConfigurationError(
            "Unknown pipeline settings",
            details={"errors": [f"Unknown setting: {name}" for name in unknown]},
        )

    if "temp_dir" in pipeline and isinstance(pipeline["temp_dir"], str):
        pipeline["temp_dir"] = Path(pipeline["temp_dir"])

    return AppConfig(
        database=DatabaseConfig(
            host=host,
            user=user,
            password=password,
            port=port,
            database=database,
            schemas=tuple(schemas),
        ),
        s3=S3Config(
            bucket=bucket,
            region=region,
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
            endpoint_url=endpoint_url,
            backup_name=backup_name,
            key_prefix=key_prefix,
        ),
        pipeline=PipelineSettings(codec=Codec(codec), **pipeline),
        verbose=verbose,
    )
