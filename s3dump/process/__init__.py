# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3dump Process - Supervised mysqldump/mysql child processes.
"""

from s3dump.process.dump import DumpProcess
from s3dump.process.restore import INIT_COMMAND, RestoreProcess
from s3dump.process.supervisor import (
    ManagedProcess,
    StderrTail,
    child_env,
    connection_args,
    terminate_process,
)

__all__ = [
    "DumpProcess",
    "RestoreProcess",
    "INIT_COMMAND",
    "ManagedProcess",
    "StderrTail",
    "child_env",
    "connection_args",
    "terminate_process",
]
