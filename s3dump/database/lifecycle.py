# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3dump Database Lifecycle - Gate run before every restore.

Checks whether the target database exists and creates it if needed.
The re-check after CREATE DATABASE is authoritative: a failed create
call is only logged, because another client may have created the
database concurrently.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, List

import aiomysql
import structlog

from s3dump.config import DatabaseConfig
from s3dump.exceptions import DatabaseCreationError, DatabaseError
from s3dump.models import DatabaseTarget

logger = structlog.get_logger()

SYSTEM_SCHEMAS = frozenset({"information_schema", "performance_schema", "mysql", "sys"})

ConnectFunc = Callable[..., Awaitable[Any]]


def quote_identifier(name: str) -> str:
    """Backtick-quote a MySQL identifier, doubling embedded backticks."""
    return "`" + name.replace("`", "``") + "`"


class DatabaseLifecycleManager:
    """Short-lived administrative connections to the database server."""

    def __init__(
        self,
        database: DatabaseConfig,
        connect: ConnectFunc | None = None,
        connect_timeout: float = 10,
    ) -> None:
        self.database = database
        self._connect = connect or aiomysql.connect
        self._connect_timeout = connect_timeout

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[Any]:
        try:
            conn = await self._connect(
                host=self.database.host,
                port=self.database.port,
                user=self.database.user,
                password=self.database.password,
                connect_timeout=self._connect_timeout,
                autocommit=True,
            )
        except (aiomysql.MySQLError, OSError) as e:
            logger.error("database_connect_failed", error=str(e), **self.database.redacted())
            raise DatabaseError(
                f"Cannot connect to {self.database.host}:{self.database.port}: {e}",
                details=self.database.redacted(),
            ) from e
        try:
            yield conn
        finally:
            conn.close()

    async def _fetchall(self, query: str, args: tuple = ()) -> List[tuple]:
        async with self._connection() as conn:
            try:
                async with conn.cursor() as cursor:
                    await cursor.execute(query, args)
                    return list(await cursor.fetchall())
            except aiomysql.MySQLError as e:
                raise DatabaseError(f"Query failed: {e}", details={"query": query}) from e

    async def ping(self) -> bool:
        """Open a connection and run a trivial query."""
        await self._fetchall("SELECT 1")
        logger.info("database_ping_ok", **self.database.redacted())
        return True

    async def exists(self, name: str) -> bool:
        rows = await self._fetchall(
            "SELECT SCHEMA_NAME FROM INFORMATION_SCHEMA.SCHEMATA WHERE SCHEMA_NAME = %s",
            (name,),
        )
        return len(rows) > 0

    async def create(self, name: str) -> None:
        """Issue CREATE DATABASE IF NOT EXISTS; failures are logged only."""
        try:
            await self._fetchall(f"CREATE DATABASE IF NOT EXISTS {quote_identifier(name)}")
            logger.info("database_create_issued", database=name)
        except DatabaseError as e:
            logger.warning("database_create_failed", database=name, error=str(e))

    async def ensure(self, name: str, force_create: bool = True) -> DatabaseTarget:
        """
        Make sure ``name`` exists before a restore.

        Raises:
            DatabaseCreationError: The database is still missing afterwards
                (or is missing and creation was not allowed)
        """
        target = DatabaseTarget(name=name, exists=await self.exists(name))
        if target.exists:
            logger.debug("database_exists", database=name)
            return target

        if not force_create:
            raise DatabaseCreationError(name, details={"force_create": False})

        logger.info("database_missing", database=name)
        await self.create(name)
        target.exists = await self.exists(name)
        if not target.exists:
            logger.error("database_still_missing", database=name)
            raise DatabaseCreationError(name)

        logger.info("database_created", database=name)
        return target

    async def list_databases(self) -> List[str]:
        """User databases on the server, system schemas excluded."""
        rows = await self._fetchall("SHOW DATABASES")
        return [row[0] for row in rows if row[0] not in SYSTEM_SCHEMAS]

    async def reset_session_defaults(self, name: str) -> None:
        """Re-enable integrity checks after a restore; never raises."""
        try:
            await self._fetchall(
                "SET SESSION foreign_key_checks=1, unique_checks=1, autocommit=1"
            )
            logger.debug("session_defaults_reset", database=name)
        except DatabaseError as e:
            logger.warning("session_reset_failed", database=name, error=str(e))
