# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3dump Core - Entry points for backup, restore and listing.

Each entry point wires the pipeline components for one run:

    backup:  mysqldump -> compress -> S3 upload | local file
    restore: S3 download | local file -> decompress -> mysql

Staged runs go through a temporary file instead of streaming straight
to or from the bucket; the file is removed on every exit path.
"""

import os
import tempfile
from datetime import datetime, UTC
from functools import partial
from pathlib import Path
from typing import List, Sequence

import structlog

from s3dump.config import AppConfig, Codec, codec_for_key
from s3dump.database.lifecycle import DatabaseLifecycleManager
from s3dump.exceptions import TransferError
from s3dump.keys import generate_backup_key
from s3dump.models import (
    BackupRequest,
    BackupResult,
    Direction,
    PipelineRun,
    RestoreRequest,
    RestoreResult,
    TransferDescriptor,
)
from s3dump.pipeline.compressor import COMPRESS, DECOMPRESS, CompressionStage
from s3dump.pipeline.coordinator import PipelineCoordinator
from s3dump.process.dump import DumpProcess
from s3dump.process.restore import RestoreProcess
from s3dump.process.supervisor import SpawnFunc
from s3dump.progress import ProgressAggregator
from s3dump.storage.local import LocalFileSink, LocalFileSource
from s3dump.storage.transfer import S3DownloadSource, S3UploadSink, TransferAdapter

logger = structlog.get_logger()


def create_transfer_adapter(config: AppConfig, session=None) -> TransferAdapter:
    """Transfer adapter for the configured bucket."""
    return TransferAdapter(
        config.s3,
        part_size=config.pipeline.part_size,
        chunk_size=config.pipeline.chunk_size,
        session=session,
    )


def _temp_path(config: AppConfig, suffix: str) -> Path:
    fd, name = tempfile.mkstemp(prefix="s3dump-", suffix=suffix, dir=config.pipeline.temp_dir)
    os.close(fd)
    return Path(name)


def _remove_temp(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
        logger.debug("temp_file_removed", path=str(path))
    except OSError as e:
        logger.warning("temp_file_cleanup_failed", path=str(path), error=str(e))


def _elapsed(run: PipelineRun) -> float:
    return (datetime.now(UTC) - run.started_at).total_seconds()


async def run_backup(
    config: AppConfig,
    request: BackupRequest,
    progress: ProgressAggregator | None = None,
    transfer: TransferAdapter | None = None,
    spawn: SpawnFunc | None = None,
) -> BackupResult:
    """
    Dump the target and store it compressed.

    Args:
        config: Application configuration
        request: What to dump and where to put it
        progress: Optional progress channel; closed when the run ends
        transfer: Transfer adapter (default: built from config)
        spawn: Process spawner (default: asyncio.create_subprocess_exec)

    Returns:
        BackupResult with the compressed size and the key or path written
    """
    settings = config.pipeline
    target = request.target
    codec = settings.codec

    dump = DumpProcess(
        config.database,
        target,
        command=settings.dump_command,
        chunk_size=settings.chunk_size,
        stderr_tail_bytes=settings.stderr_tail_bytes,
        kill_grace=settings.kill_grace,
        spawn=spawn,
    )

    temp_path: Path | None = None
    try:
        if request.local_path is not None:
            location = str(request.local_path)
            sink = LocalFileSink(request.local_path)
            compress = CompressionStage(COMPRESS, codec, settings.compression_level, progress)
            run = PipelineRun(Direction.BACKUP, source=target.label, sink=f"file:{location}")
        else:
            location = request.destination_key or generate_backup_key(
                target,
                codec=codec,
                name=config.s3.backup_name,
                prefix=config.s3.key_prefix,
            )
            transfer = transfer or create_transfer_adapter(config)
            compress = CompressionStage(
                COMPRESS, codec, settings.compression_level, None if request.staged else progress
            )
            if request.staged:
                temp_path = _temp_path(config, codec.suffix)
                sink = LocalFileSink(temp_path)
            else:
                sink = S3UploadSink(transfer, location, progress, codec.content_type)
            run = PipelineRun(Direction.BACKUP, source=target.label, sink=f"s3:{location}")

        logger.info(
            "backup_started",
            run_id=run.run_id,
            target=target.label,
            location=location,
            codec=codec.value,
            staged=request.staged,
        )

        coordinator = PipelineCoordinator(run, settings.queue_size)
        await coordinator.execute([dump, compress, sink], timeout=settings.backup_timeout)

        bytes_written = sink.bytes_written
        if temp_path is not None:
            bytes_written = await transfer.upload_file(
                temp_path, location, progress, content_type=codec.content_type
            )

        if progress is not None:
            progress.complete(bytes_written)

        result = BackupResult(
            bytes_written=bytes_written,
            location=location,
            run_id=run.run_id,
            duration_seconds=_elapsed(run),
        )
        logger.info(
            "backup_completed",
            run_id=run.run_id,
            location=location,
            bytes=bytes_written,
            duration=result.duration_seconds,
        )
        return result

    except Exception as e:
        logger.error("backup_failed", target=target.label, error=str(e))
        raise

    finally:
        if temp_path is not None:
            _remove_temp(temp_path)
        if progress is not None:
            progress.close()


async def run_restore(
    config: AppConfig,
    request: RestoreRequest,
    progress: ProgressAggregator | None = None,
    transfer: TransferAdapter | None = None,
    spawn: SpawnFunc | None = None,
    lifecycle: DatabaseLifecycleManager | None = None,
) -> RestoreResult:
    """
    Restore a backup into ``request.target_database``.

    The target database is checked (and created when allowed) before any
    data moves. The restore pipeline runs under the configured timeout.

    Returns:
        RestoreResult with the compressed bytes read
    """
    settings = config.pipeline
    source = request.source
    database = request.target_database
    codec = codec_for_key(source.name)
    lifecycle = lifecycle or DatabaseLifecycleManager(config.database)

    temp_path: Path | None = None
    try:
        if source.key is not None:
            transfer = transfer or create_transfer_adapter(config)
            if not await transfer.exists(source.key):
                raise TransferError(
                    f"Backup {source.key} not found",
                    details={"bucket": config.s3.bucket, "key": source.key},
                )
        elif not source.path.is_file():
            raise TransferError(f"Backup file {source.path} not found", details={"path": str(source.path)})

        await lifecycle.ensure(database, force_create=request.force_create)

        restore = RestoreProcess(
            config.database,
            database,
            command=settings.restore_command,
            disable_integrity_checks=settings.disable_integrity_checks,
            continue_on_error=settings.continue_on_error,
            session_reset=partial(lifecycle.reset_session_defaults, database),
            stderr_tail_bytes=settings.stderr_tail_bytes,
            kill_grace=settings.kill_grace,
            spawn=spawn,
        )

        if source.path is not None:
            reader = LocalFileSource(source.path, settings.chunk_size)
            decompress = CompressionStage(
                DECOMPRESS, codec, progress=progress, total=source.path.stat().st_size
            )
        elif request.staged:
            temp_path = _temp_path(config, codec.suffix)
            await transfer.download_to_file(source.key, temp_path, progress, complete=False)
            reader = LocalFileSource(temp_path, settings.chunk_size)
            decompress = CompressionStage(DECOMPRESS, codec)
        else:
            reader = S3DownloadSource(transfer, source.key, progress)
            decompress = CompressionStage(DECOMPRESS, codec)

        run = PipelineRun(Direction.RESTORE, source=source.name, sink=f"mysql:{database}")
        logger.info(
            "restore_started",
            run_id=run.run_id,
            source=source.name,
            database=database,
            codec=codec.value,
            staged=request.staged,
        )

        coordinator = PipelineCoordinator(run, settings.queue_size)
        await coordinator.execute([reader, decompress, restore], timeout=settings.restore_timeout)

        if progress is not None:
            progress.complete(reader.bytes_read)

        result = RestoreResult(
            target_database=database,
            run_id=run.run_id,
            bytes_read=reader.bytes_read,
            duration_seconds=_elapsed(run),
        )
        logger.info(
            "restore_completed",
            run_id=run.run_id,
            database=database,
            bytes=reader.bytes_read,
            duration=result.duration_seconds,
        )
        return result

    except Exception as e:
        logger.error("restore_failed", source=source.name, database=database, error=str(e))
        raise

    finally:
        if temp_path is not None:
            _remove_temp(temp_path)
        if progress is not None:
            progress.close()


async def list_backups(
    config: AppConfig,
    suffix: str | Sequence[str] | None = None,
    prefix: str | None = None,
    transfer: TransferAdapter | None = None,
) -> List[TransferDescriptor]:
    """
    List backups in the configured bucket, newest first.

    Without a suffix every known dump suffix is matched; without a prefix
    the configured key prefix (if any) is used.
    """
    transfer = transfer or create_transfer_adapter(config)
    suffixes = suffix if suffix is not None else tuple(c.suffix for c in Codec)
    return await transfer.list(suffixes, prefix if prefix is not None else config.s3.key_prefix or None)
