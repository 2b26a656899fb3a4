# tests/conftest.py
import logging
import os
import subprocess
import uuid
from typing import Any, Dict, List, Optional, Sequence

import aiomysql
import pytest
import pytest_asyncio

from async_dbtable.base.formatters import (
    BOOLEAN,
    DATETIME,
    FLOAT,
    INTEGER,
    JSON,
    TRIMMED_STRING,
)
from async_dbtable.base.interfaces import Dbc, QueryResult
from async_dbtable.base.query import FORMAT, QMARK
from async_dbtable.base.schema import FieldSpec, define_schema
from async_dbtable.config import DbConfig
from async_dbtable.db_implementations.mysql_dbc import MySQLDbc
from async_dbtable.db_implementations.sqlite_dbc import SqliteDbc
from async_dbtable.table import DbTable

# Silence verbose loggers
logging.getLogger("aiomysql").setLevel(logging.WARNING)
logging.getLogger("aiosqlite").setLevel(logging.WARNING)


# --- Constants ---
MYSQL_HOST = os.getenv("TEST_MYSQL_HOST", "localhost")
MYSQL_PORT = int(os.getenv("TEST_MYSQL_PORT", "3306"))
MYSQL_USER = os.getenv("TEST_MYSQL_USER", "testuser")
MYSQL_PASSWORD = os.getenv("TEST_MYSQL_PASSWORD", "password")

SQLITE_USERS_DDL = """
CREATE TABLE `users` (
    `id` INTEGER PRIMARY KEY AUTOINCREMENT,
    `name` VARCHAR(64) NOT NULL UNIQUE,
    `age` INTEGER NULL,
    `score` REAL NULL,
    `profile` TEXT NULL,
    `created_at` TEXT NULL,
    `deleted` INTEGER NOT NULL DEFAULT 0
)
"""

MYSQL_USERS_DDL = """
CREATE TABLE `users` (
    `id` INT AUTO_INCREMENT PRIMARY KEY,
    `name` VARCHAR(64) NOT NULL UNIQUE,
    `age` INT NULL,
    `score` DOUBLE NULL,
    `profile` TEXT NULL,
    `created_at` DATETIME NULL,
    `deleted` TINYINT(1) NOT NULL DEFAULT 0
)
"""

USER_SCHEMA = define_schema(
    id=FieldSpec(INTEGER),
    name=FieldSpec(TRIMMED_STRING),
    age=FieldSpec(INTEGER),
    score=FieldSpec(FLOAT),
    profile=FieldSpec(JSON),
    created_at=FieldSpec(DATETIME),
    deleted=FieldSpec(BOOLEAN, default=False),
    hidden_flag="deleted",
    primary_key="id",
)


# --- Availability Checks ---
def is_mysql_available():
    """Check if MySQL is available."""
    try:
        cmd = ["mysql", "-h", MYSQL_HOST, "-P", str(MYSQL_PORT), "-u", MYSQL_USER]
        if MYSQL_PASSWORD:
            cmd.append(f"-p{MYSQL_PASSWORD}")
        cmd.extend(["--execute", "SELECT 1"])

        result = subprocess.run(
            cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, timeout=5
        )
        if result.returncode == 0:
            logging.info(f"MySQL found and responsive at {MYSQL_HOST}:{MYSQL_PORT}")
            return True
        logging.warning(
            f"MySQL check failed at {MYSQL_HOST}:{MYSQL_PORT}: "
            f"{result.stderr.decode('utf-8')}"
        )
        return False
    except Exception as e:
        logging.warning(
            f"MySQL not found or not responsive at {MYSQL_HOST}:{MYSQL_PORT}: {e}. "
            "Skipping MySQL tests."
        )
        return False


AVAILABLE_BACKENDS = ["sqlite"]  # in-memory SQLite is always available
if is_mysql_available():
    AVAILABLE_BACKENDS.append("mysql")


# --- Recording Connection Handle ---
class RecordingDbc(Dbc):
    """
    Connection handle that records every statement instead of running it.

    Results are served from a queue filled with ``push``; when the queue is
    empty an empty ``QueryResult`` is returned.
    """

    def __init__(self, paramstyle: str = QMARK, columns: Optional[Sequence[str]] = None):
        self.paramstyle = paramstyle
        self.columns = list(columns or USER_SCHEMA.field_names)
        self.calls: List[tuple] = []
        self._results: List[QueryResult] = []

    @property
    def uri(self) -> str:
        return "recording://test"

    @property
    def database(self) -> str:
        return "test"

    def push(self, rows: Optional[List[Dict[str, Any]]] = None, affected_rows: int = 0,
             insert_id: Optional[int] = None) -> None:
        self._results.append(
            QueryResult(rows=list(rows or []), affected_rows=affected_rows, insert_id=insert_id)
        )

    @property
    def statements(self) -> List[str]:
        return [sql for sql, _ in self.calls]

    async def query(self, sql, args=None):
        self.calls.append((sql, list(args or [])))
        if self._results:
            return self._results.pop(0)
        return QueryResult()

    async def show_tables(self):
        return ["users"]

    async def table_exists(self, tablename):
        return tablename == "users"

    async def show_columns(self, tablename):
        return [{"Field": c} for c in self.columns]

    async def list_column_names(self, tablename):
        return list(self.columns)

    def on_duplicate_clause(self, key_sql, value_sql):
        return f" ON DUPLICATE KEY UPDATE {key_sql} = {value_sql}"

    async def close(self):
        pass


# --- Fixtures ---
@pytest.fixture
def recording_dbc():
    return RecordingDbc()


@pytest.fixture
def recording_mysql_dbc():
    return RecordingDbc(paramstyle=FORMAT)


@pytest.fixture
def user_schema():
    return USER_SCHEMA


@pytest_asyncio.fixture
async def sqlite_dbc():
    """An in-memory SQLite handle with an empty ``users`` table."""
    dbc = SqliteDbc(":memory:")
    try:
        await dbc.query(SQLITE_USERS_DDL)
        yield dbc
    finally:
        await dbc.close()


@pytest_asyncio.fixture
async def mysql_dbc():
    """
    A MySQL handle bound to a temporary database with an empty ``users``
    table; the database is dropped afterwards.
    """
    if "mysql" not in AVAILABLE_BACKENDS:
        pytest.skip("MySQL not available")

    temp_db_name = f"test_db_{uuid.uuid4().hex}"
    admin_conn = await aiomysql.connect(
        host=MYSQL_HOST,
        port=MYSQL_PORT,
        user=MYSQL_USER,
        password=MYSQL_PASSWORD,
        autocommit=True,
    )
    try:
        async with admin_conn.cursor() as cursor:
            await cursor.execute(f"CREATE DATABASE `{temp_db_name}`")

        config = DbConfig(
            host=MYSQL_HOST,
            port=MYSQL_PORT,
            user=MYSQL_USER,
            password=MYSQL_PASSWORD,
            database=temp_db_name,
            connection_limit=4,
        )
        dbc = MySQLDbc(config)
        await dbc.query(MYSQL_USERS_DDL)

        yield dbc

        await dbc.close()
        async with admin_conn.cursor() as cursor:
            await cursor.execute(f"DROP DATABASE `{temp_db_name}`")
    finally:
        admin_conn.close()


@pytest.fixture(params=AVAILABLE_BACKENDS)
def backend_dbc(request):
    """Parametrized fixture yielding a live handle for each available backend."""
    if request.param == "sqlite":
        return request.getfixturevalue("sqlite_dbc")
    if request.param == "mysql":
        return request.getfixturevalue("mysql_dbc")
    raise ValueError(f"Unknown backend: {request.param}")


@pytest.fixture
def users_table(backend_dbc):
    return DbTable("users", backend_dbc, USER_SCHEMA, model="User")


@pytest.fixture
def recorded_table(recording_dbc):
    return DbTable("users", recording_dbc, USER_SCHEMA, model="User")

