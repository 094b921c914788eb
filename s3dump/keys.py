# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup key naming.

Keys look like ``mydb-2023-12-01T10-30-00-000Z.sql.gz``: the target label,
then an ISO-8601 UTC timestamp with millisecond precision whose ':' and
'.' characters are replaced by '-'. Existing listings depend on this
exact shape.
"""

import re
from datetime import datetime, UTC

from s3dump.config import Codec
from s3dump.models import TargetDescriptor

_DISPLAY_NAME_RE = re.compile(
    r"^(?P<name>.+)-(?P<date>\d{4}-\d{2}-\d{2})"
    r"T(?P<hh>\d{2})-(?P<mm>\d{2})-(?P<ss>\d{2})-\d{3}Z\.sql\.(?:gz|zst)$"
)


def format_timestamp(moment: datetime | None = None) -> str:
    """Render a moment as ``YYYY-MM-DDTHH-MM-SS-mmmZ``."""
    moment = (moment or datetime.now(UTC)).astimezone(UTC)
    iso = moment.strftime("%Y-%m-%dT%H:%M:%S") + f".{moment.microsecond // 1000:03d}Z"
    return iso.replace(":", "-").replace(".", "-")


def generate_backup_key(
    target: TargetDescriptor,
    moment: datetime | None = None,
    codec: Codec = Codec.GZIP,
    name: str | None = None,
    prefix: str = "",
) -> str:
    """
    Build the object key for a new backup.

    Args:
        target: What is being dumped (provides the default name)
        moment: Backup time (default: now)
        codec: Codec the payload is compressed with
        name: Fixed backup name overriding the target label
        prefix: Key prefix, e.g. ``"mysql/"``

    Returns:
        The object key
    """
    stem = name or target.label
    return f"{prefix}{stem}-{format_timestamp(moment)}{codec.suffix}"


def extract_display_name(key: str) -> str:
    """
    Derive a human-readable name from a backup key.

    ``mydb-2023-12-01T10-30-00-000Z.sql.gz`` becomes
    ``mydb (2023-12-01 10:30:00)``. Keys of any other shape are returned
    as their last path segment.
    """
    basename = key.rsplit("/", 1)[-1] or key
    match = _DISPLAY_NAME_RE.match(basename)
    if not match:
        return basename
    return (
        f"{match['name']} ({match['date']} "
        f"{match['hh']}:{match['mm']}:{match['ss']})"
    )
