# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for s3dump.

These helpers centralize wording for common configuration errors so that
all modules present consistent, actionable messages.
"""


def explain_missing_env(name: str, purpose: str) -> str:
    """
    Explain that a required environment variable is missing.
    """

    return (
        f"{purpose} is not configured. "
        f"Set the {name} environment variable or pass it explicitly to AppConfig."
    )


def explain_invalid_port_env(value: str | None) -> str:
    """
    Explain that DB_PORT is invalid.
    """

    return (
        f"Invalid DB_PORT value: {value!r}. "
        "It must be an integer between 1 and 65535."
    )


def explain_invalid_number_env(name: str, value: str | None) -> str:
    """
    Explain that a numeric pipeline tunable is invalid.
    """

    return f"Invalid {name} value: {value!r}. It must be a positive number."


def explain_invalid_codec_env(value: str | None) -> str:
    """
    Explain that S3DUMP_CODEC is invalid.
    """

    return (
        f"Invalid S3DUMP_CODEC value: {value!r}. "
        "Expected 'gzip' or 'zstd', or leave unset for gzip."
    )
