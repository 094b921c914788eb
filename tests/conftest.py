# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for s3dump tests.

Provides a moto-served S3 bucket, a fake MySQL server for the lifecycle
manager, python child processes standing in for mysqldump/mysql, and
configuration helpers.
"""

import sys
import tempfile
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Generator, List, Tuple

import aiomysql
import pytest
import pytest_asyncio
from aiobotocore.client import AioBaseClient
from aiobotocore.session import get_session
from botocore.exceptions import ClientError

from s3dump.config import S3Config
from s3dump.storage.transfer import TransferAdapter


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ============================================================================
# S3 (moto server)
# ============================================================================


def _client_error(code: str, status: int, operation: str) -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": code},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


@pytest.fixture(scope="session")
def moto_endpoint() -> Generator[str, None, None]:
    """
    Start a moto S3 server for the test session.

    Clients talk to it over HTTP through aiobotocore, exactly as they
    would talk to MinIO or another custom endpoint.
    """
    from moto.server import ThreadedMotoServer

    server = ThreadedMotoServer(ip_address="127.0.0.1", port=0, verbose=False)
    server.start()
    host, port = server.get_host_and_port()
    yield f"http://{host}:{port}"
    server.stop()


class S3Bucket:
    """
    One moto bucket plus a recorder around the real client's API calls.

    ``calls`` lists the operations (``"UploadPart"``, ``"HeadObject"``, ...)
    issued by the code under test; ``failures`` maps an operation name to
    an exception raised instead of the next such call.
    """

    def __init__(self, endpoint_url: str, name: str) -> None:
        self.name = name
        self.config = S3Config(
            bucket=name,
            endpoint_url=endpoint_url,
            access_key_id="testing",
            secret_access_key="testing",
        )
        self.calls: List[str] = []
        self.failures: Dict[str, Exception] = {}
        self._session = get_session()
        self._own_clients: set = set()

    def install(self, monkeypatch: pytest.MonkeyPatch) -> None:
        original = AioBaseClient._make_api_call
        bucket = self

        async def _make_api_call(client, operation_name, api_params):
            if id(client) not in bucket._own_clients:
                bucket.calls.append(operation_name)
                error = bucket.failures.pop(operation_name, None)
                if error is not None:
                    raise error
            return await original(client, operation_name, api_params)

        monkeypatch.setattr(AioBaseClient, "_make_api_call", _make_api_call)

    @asynccontextmanager
    async def client(self) -> AsyncIterator[Any]:
        """Client for setup and assertions; its calls are not recorded."""
        kwargs = TransferAdapter(self.config, session=self._session).client_kwargs()
        async with self._session.create_client("s3", **kwargs) as client:
            self._own_clients.add(id(client))
            try:
                yield client
            finally:
                self._own_clients.discard(id(client))

    async def create(self) -> None:
        async with self.client() as client:
            await client.create_bucket(Bucket=self.name)

    async def put(self, key: str, data: bytes) -> None:
        async with self.client() as client:
            await client.put_object(Bucket=self.name, Key=key, Body=data)

    async def get(self, key: str) -> bytes | None:
        async with self.client() as client:
            try:
                response = await client.get_object(Bucket=self.name, Key=key)
            except ClientError as e:
                if e.response["Error"]["Code"] == "NoSuchKey":
                    return None
                raise
            async with response["Body"] as stream:
                return await stream.read()

    async def head(self, key: str) -> dict:
        async with self.client() as client:
            return await client.head_object(Bucket=self.name, Key=key)

    async def keys(self) -> List[str]:
        async with self.client() as client:
            response = await client.list_objects_v2(Bucket=self.name)
        return sorted(obj["Key"] for obj in response.get("Contents", []))

    async def pending_uploads(self) -> List[str]:
        """Upload ids of multipart uploads neither completed nor aborted."""
        async with self.client() as client:
            response = await client.list_multipart_uploads(Bucket=self.name)
        return [upload["UploadId"] for upload in response.get("Uploads", [])]


@pytest.fixture
def bucket_name() -> str:
    """Fresh bucket per test; the moto server outlives a single test."""
    return f"test-bucket-{uuid.uuid4().hex[:12]}"


@pytest_asyncio.fixture
async def s3(moto_endpoint: str, bucket_name: str, monkeypatch: pytest.MonkeyPatch) -> S3Bucket:
    """Created, empty bucket on the moto server."""
    bucket = S3Bucket(moto_endpoint, bucket_name)
    await bucket.create()
    bucket.install(monkeypatch)
    return bucket


@pytest.fixture
def client_error():
    """Factory for botocore ClientError values."""
    return _client_error


# ============================================================================
# Fake MySQL server
# ============================================================================


class FakeCursor:
    def __init__(self, server: "FakeMySQLServer") -> None:
        self._server = server
        self._rows: List[tuple] = []

    async def __aenter__(self) -> "FakeCursor":
        return self

    async def __aexit__(self, *exc: Any) -> bool:
        return False

    async def execute(self, query: str, args: tuple = ()) -> None:
        self._server.queries.append((query, tuple(args)))
        for fragment, error in list(self._server.failing.items()):
            if fragment in query:
                raise error

        if query.startswith("SELECT SCHEMA_NAME"):
            self._rows = [(args[0],)] if args[0] in self._server.databases else []
        elif query.startswith("CREATE DATABASE"):
            name = query[query.index("`") + 1 : query.rindex("`")].replace("``", "`")
            if self._server.create_works:
                self._server.databases.add(name)
            self._rows = []
        elif query == "SHOW DATABASES":
            self._rows = [(name,) for name in sorted(self._server.databases)]
        elif query == "SELECT 1":
            self._rows = [(1,)]
        else:
            self._rows = []

    async def fetchall(self) -> List[tuple]:
        return self._rows


class FakeConnection:
    def __init__(self, server: "FakeMySQLServer") -> None:
        self._server = server
        self.closed = False

    def cursor(self) -> FakeCursor:
        return FakeCursor(self._server)

    def close(self) -> None:
        self.closed = True
        self._server.open_connections -= 1


class FakeMySQLServer:
    """Minimal server answering the lifecycle manager's queries."""

    def __init__(self) -> None:
        self.databases = {"information_schema", "mysql", "performance_schema", "sys", "shop"}
        self.create_works = True
        self.refuse_connections = False
        self.failing: Dict[str, Exception] = {}
        self.queries: List[Tuple[str, tuple]] = []
        self.connect_kwargs: List[Dict[str, Any]] = []
        self.open_connections = 0

    async def connect(self, **kwargs: Any) -> FakeConnection:
        self.connect_kwargs.append(kwargs)
        if self.refuse_connections:
            raise aiomysql.OperationalError(2003, "Can't connect to MySQL server")
        self.open_connections += 1
        return FakeConnection(self)


@pytest.fixture
def fake_mysql() -> FakeMySQLServer:
    return FakeMySQLServer()


# ============================================================================
# Child processes standing in for mysqldump / mysql
# ============================================================================


def python_command(script: str) -> Tuple[str, ...]:
    """Command running ``script``; the adapter's flags land in sys.argv[1:]."""
    return (sys.executable, "-c", script)


def dump_script(lines: int = 20000, exit_code: int = 0, stderr: str = "") -> str:
    """Script printing a deterministic SQL dump, then exiting with ``exit_code``."""
    return (
        "import sys\n"
        f"for i in range({lines}):\n"
        "    sys.stdout.buffer.write(b'INSERT INTO t VALUES (%d);\\n' % i)\n"
        "sys.stdout.flush()\n"
        f"sys.stderr.write({stderr!r})\n"
        f"sys.exit({exit_code})\n"
    )


def expected_dump(lines: int = 20000) -> bytes:
    return b"".join(b"INSERT INTO t VALUES (%d);\n" % i for i in range(lines))


def restore_script(output: Path, exit_code: int = 0, stderr: str = "") -> str:
    """Script copying stdin into ``output``, then exiting with ``exit_code``."""
    return (
        "import sys\n"
        "data = sys.stdin.buffer.read()\n"
        f"open({str(output)!r}, 'wb').write(data)\n"
        f"sys.stderr.write({stderr!r})\n"
        f"sys.exit({exit_code})\n"
    )


def early_exit_script(exit_code: int) -> str:
    """Script that reads a single byte of stdin and exits."""
    return (
        "import sys\n"
        "sys.stdin.buffer.read(1)\n"
        f"sys.exit({exit_code})\n"
    )


SLEEP_SCRIPT = "import time\ntime.sleep(60)\n"


@pytest.fixture
def child():
    """Namespace of child-process helpers."""

    class _Child:
        command = staticmethod(python_command)
        dump = staticmethod(dump_script)
        expected_dump = staticmethod(expected_dump)
        restore = staticmethod(restore_script)
        early_exit = staticmethod(early_exit_script)
        sleep = SLEEP_SCRIPT

    return _Child


# ============================================================================
# Configuration
# ============================================================================


@pytest.fixture
def app_config(temp_dir: Path):
    """Configuration with a fixed database and a private temp dir."""
    from s3dump.builder import create_config

    return create_config(
        "test-bucket",
        host="db.test",
        user="backup",
        password="s3cret",
        database="shop",
        temp_dir=temp_dir,
        kill_grace=1.0,
    )
