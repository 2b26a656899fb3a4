# src/async_dbtable/db_implementations/sqlite_dbc.py

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Any, AsyncGenerator, Dict, List, Optional, Sequence, Tuple

# --- aiosqlite Driver Import ---
import aiosqlite

# --- Framework Imports ---
from async_dbtable.base.exceptions import (
    DbIOError,
    KeyAlreadyExistsError,
    SqlError,
    ValidationError,
)
from async_dbtable.base.interfaces import Dbc, QueryResult, adapt_arg
from async_dbtable.base.query import QMARK, quote_identifier


def _adapt_sqlite_arg(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return adapt_arg(value)


def expand_placeholders(sql: str, args: Optional[Sequence[Any]]) -> Tuple[str, List[Any]]:
    """
    Bind ``args`` to the ``?`` placeholders of ``sql``.

    Tuple arguments are IN-lists: their placeholder becomes ``?, ?, ...``
    with one parameter per item. Question marks inside quoted literals or
    identifiers are left alone.

    Raises:
        ValidationError: The number of placeholders and arguments differ.
    """
    args = list(args or [])
    parts: List[str] = []
    params: List[Any] = []
    quote: Optional[str] = None
    used = 0
    for ch in sql:
        if quote:
            if ch == quote:
                quote = None
            parts.append(ch)
        elif ch in ("'", '"', "`"):
            quote = ch
            parts.append(ch)
        elif ch == "?":
            if used >= len(args):
                raise ValidationError(
                    f"not enough arguments for placeholders in '{sql}'"
                )
            value = args[used]
            used += 1
            if isinstance(value, tuple):
                parts.append(", ".join(["?"] * len(value)))
                params.extend(_adapt_sqlite_arg(v) for v in value)
            else:
                parts.append("?")
                params.append(_adapt_sqlite_arg(value))
        else:
            parts.append(ch)
    if used != len(args):
        raise ValidationError(
            f"{len(args)} arguments given for {used} placeholders in '{sql}'"
        )
    return "".join(parts), params


class SqliteDbc(Dbc):
    """
    SQLite connection handle using aiosqlite.

    Holds a single connection (autocommit) that statements share one at a
    time. Intended for embedded use and tests; ``:memory:`` by default.
    """

    paramstyle = QMARK

    def __init__(self, path: str = ":memory:", connection: Optional[aiosqlite.Connection] = None):
        """
        Args:
            path: Database file, or ``:memory:``.
            connection: An already opened aiosqlite.Connection to use instead.
        """
        if connection is not None and not isinstance(connection, aiosqlite.Connection):
            raise TypeError("connection must be an instance of aiosqlite.Connection")
        self._path = path
        self._conn = connection
        self._lock = asyncio.Lock()
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    def uri(self) -> str:
        return f"sqlite:///{self._path}"

    @property
    def database(self) -> str:
        return "main"

    def info(self) -> Dict[str, Any]:
        return {"path": self._path, "database": self.database, "uri": self.uri}

    # --- Connection/Session Management ---
    @asynccontextmanager
    async def _get_session(self) -> AsyncGenerator[aiosqlite.Connection, None]:
        async with self._lock:
            if self._conn is None:
                self._logger.info(f"Opening {self.uri}")
                try:
                    self._conn = await aiosqlite.connect(self._path, isolation_level=None)
                except Exception as e:
                    self._handle_db_error(e, f"opening {self.uri}")
            self._conn.row_factory = aiosqlite.Row
            yield self._conn

    # --- Statements ---
    async def query(self, sql: str, args: Optional[Sequence[Any]] = None) -> QueryResult:
        sql, params = expand_placeholders(sql, args)
        self._logger.debug(f"Executing: SQL='{sql}', Params={params}")
        try:
            async with self._get_session() as conn:
                async with conn.execute(sql, params) as cursor:
                    rows = await cursor.fetchall()
                    columns = [d[0] for d in cursor.description or []]
                    return QueryResult(
                        rows=[dict(row) for row in rows],
                        columns=columns,
                        affected_rows=max(cursor.rowcount, 0),
                        insert_id=cursor.lastrowid or None,
                    )
        except SqlError:
            raise
        except Exception as e:
            self._handle_db_error(e, f"executing '{sql}'")
            raise  # pragma: no cover

    async def show_tables(self) -> List[str]:
        rows = await self.select(
            "SELECT name FROM sqlite_master WHERE type = 'table' "
            "AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        return [row["name"] for row in rows]

    async def table_exists(self, tablename: str) -> bool:
        rows = await self.select(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            [tablename],
        )
        return len(rows) > 0

    async def show_columns(self, tablename: str) -> List[Dict[str, Any]]:
        # rows look like {cid, name, type, notnull, dflt_value, pk}
        return await self.select(f"PRAGMA table_info({quote_identifier(tablename)})")

    async def list_column_names(self, tablename: str) -> List[str]:
        return [row["name"] for row in await self.show_columns(tablename)]

    def on_duplicate_clause(self, key_sql: str, value_sql: str) -> str:
        return f" ON CONFLICT DO UPDATE SET {key_sql} = {value_sql}"

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    # --- Error Mapping ---
    def _handle_db_error(self, error: Exception, context: str = "") -> None:
        """Maps aiosqlite errors onto DbIOError / KeyAlreadyExistsError."""
        log_message = f"Error during {context}: {error}"
        self._logger.error(log_message, exc_info=True)

        if isinstance(error, aiosqlite.IntegrityError) and "UNIQUE constraint failed" in str(error):
            raise KeyAlreadyExistsError(
                f"Unique constraint violated during {context}. Detail: {error}"
            ) from error
        raise DbIOError(
            f"A database error occurred during {context}: {error}"
        ) from error

    def __repr__(self) -> str:
        return f"SqliteDbc({self.uri})"
