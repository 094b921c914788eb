# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3dump Exceptions - Custom exceptions for the s3dump package.
"""


class S3DumpError(Exception):
    """Base exception for all s3dump errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(S3DumpError):
    """Raised when configuration is invalid."""

    pass


class SpawnError(S3DumpError):
    """Raised when a dump/restore executable cannot be started."""

    pass


class ProcessExitError(S3DumpError):
    """Raised when a dump/restore process exits with a non-zero code."""

    def __init__(self, message: str, code: int, stderr_tail: str = ""):
        self.code = code
        self.stderr_tail = stderr_tail
        super().__init__(message, details={"code": code, "stderr_tail": stderr_tail})


class PipeError(S3DumpError):
    """Raised on a fatal (non broken-pipe) stdio failure."""

    pass


class CompressionError(S3DumpError):
    """Raised when compressing or decompressing a stream fails."""

    pass


class TransferError(S3DumpError):
    """Raised when object storage operations fail."""

    pass


class PipelineTimeoutError(S3DumpError, TimeoutError):
    """Raised when a pipeline run exceeds its timeout."""

    pass


class DatabaseError(S3DumpError):
    """Raised when talking to the database server fails."""

    pass


class DatabaseCreationError(S3DumpError):
    """Raised when the restore target database is missing after creation."""

    def __init__(self, name: str, details: dict | None = None):
        self.name = name
        super().__init__(
            f"Database {name!r} does not exist and could not be created",
            details={"name": name, **(details or {})},
        )
