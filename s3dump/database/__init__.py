# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3dump Database - Administrative checks against the MySQL server.
"""

from s3dump.database.lifecycle import (
    SYSTEM_SCHEMAS,
    DatabaseLifecycleManager,
    quote_identifier,
)

__all__ = [
    "DatabaseLifecycleManager",
    "SYSTEM_SCHEMAS",
    "quote_identifier",
]
