# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3dump Pipeline - Bounded channels, compression and run coordination.
"""

from s3dump.pipeline.channel import ByteChannel
from s3dump.pipeline.compressor import (
    COMPRESS,
    DECOMPRESS,
    CompressionStage,
    compress_bytes,
    decompress_bytes,
    open_transformer,
)
from s3dump.pipeline.coordinator import PipelineCoordinator, Stage

__all__ = [
    "ByteChannel",
    "CompressionStage",
    "COMPRESS",
    "DECOMPRESS",
    "compress_bytes",
    "decompress_bytes",
    "open_transformer",
    "PipelineCoordinator",
    "Stage",
]
