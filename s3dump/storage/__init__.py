# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3dump Storage - Object store and local file endpoints of a pipeline.
"""

from s3dump.storage.local import LocalFileSink, LocalFileSource
from s3dump.storage.transfer import S3DownloadSource, S3UploadSink, TransferAdapter

__all__ = [
    "TransferAdapter",
    "S3UploadSink",
    "S3DownloadSource",
    "LocalFileSink",
    "LocalFileSource",
]
