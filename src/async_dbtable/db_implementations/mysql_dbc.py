# src/async_dbtable/db_implementations/mysql_dbc.py

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional, Sequence, Tuple

# --- aiomysql Driver Import ---
import aiomysql

# --- Framework Imports ---
from async_dbtable.base.exceptions import DbIOError, KeyAlreadyExistsError, SqlError
from async_dbtable.base.interfaces import Dbc, QueryResult, adapt_arg
from async_dbtable.base.query import FORMAT, quote_identifier
from async_dbtable.config import DbConfig, get_db_config


class MySQLDbc(Dbc):
    """
    MySQL connection handle using aiomysql.

    The pool is created lazily on first use from ``DbConfig``
    (``maxsize = connection_limit``, autocommit on). At most ``queue_limit``
    callers may wait for a connection while the pool is exhausted; further
    callers fail immediately with ``DbIOError`` (0 means no limit).
    """

    paramstyle = FORMAT

    def __init__(
            self,
            config: Optional[DbConfig] = None,
            pool: Optional[aiomysql.Pool] = None,
    ):
        """
        Args:
            config: Connection settings; defaults to ``get_db_config()``.
            pool: An existing aiomysql.Pool to use instead of creating one.
        """
        if pool is not None and not isinstance(pool, aiomysql.Pool):
            raise TypeError("pool must be an instance of aiomysql.Pool")
        self.config = config or get_db_config()
        self._pool = pool
        self._pool_lock = asyncio.Lock()
        self._waiting = 0
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self._logger.debug(f"Dbc created for {self.safe_uri}")

    # --- Identity ---
    @property
    def uri(self) -> str:
        return self.config.uri

    @property
    def safe_uri(self) -> str:
        return self.config.safe_uri

    @property
    def database(self) -> str:
        return self.config.database

    def info(self) -> Dict[str, Any]:
        return {
            "host": self.config.host,
            "port": self.config.port,
            "user": self.config.user,
            "database": self.config.database,
            "uri": self.safe_uri,
        }

    # --- Connection/Session Management ---
    async def _get_pool(self) -> aiomysql.Pool:
        if self._pool is None:
            async with self._pool_lock:
                if self._pool is None:
                    cfg = self.config
                    self._logger.info(f"Creating connection pool for {self.safe_uri}")
                    try:
                        self._pool = await aiomysql.create_pool(
                            host=cfg.host,
                            port=cfg.port,
                            user=cfg.user,
                            password=cfg.password,
                            db=cfg.database,
                            minsize=1,
                            maxsize=cfg.connection_limit,
                            autocommit=True,
                        )
                    except Exception as e:
                        self._handle_db_error(e, f"connecting to {self.safe_uri}")
        return self._pool

    async def _acquire(self, pool: aiomysql.Pool) -> aiomysql.Connection:
        blocking = pool.freesize == 0 and pool.size >= pool.maxsize
        if not blocking:
            return await pool.acquire()

        limit = self.config.queue_limit
        if limit and self._waiting >= limit:
            raise DbIOError(
                f"connection queue limit reached ({limit} waiting) for {self.safe_uri}"
            )
        self._waiting += 1
        try:
            return await pool.acquire()
        finally:
            self._waiting -= 1

    @asynccontextmanager
    async def _get_session(self) -> AsyncGenerator[
        Tuple[aiomysql.Connection, aiomysql.DictCursor], None]:
        """
        Acquire a connection from the pool and create a DictCursor.
        The connection is released when the block exits, even on failure.
        """
        pool = await self._get_pool()
        conn = None
        cursor = None
        try:
            conn = await self._acquire(pool)
            self._logger.debug("Acquired connection from pool.")
            cursor = await conn.cursor(aiomysql.DictCursor)
            yield conn, cursor
        finally:
            if cursor:
                await cursor.close()
            if conn:
                pool.release(conn)
                self._logger.debug("Released connection back to pool.")

    # --- Statements ---
    async def query(self, sql: str, args: Optional[Sequence[Any]] = None) -> QueryResult:
        params = [adapt_arg(a) for a in args] if args else None
        self._logger.debug(f"Executing: SQL='{sql}', Params={params}")
        try:
            async with self._get_session() as (conn, cursor):
                await cursor.execute(sql, params)
                columns = [d[0] for d in cursor.description or []]
                rows = list(await cursor.fetchall()) if cursor.description else []
                return QueryResult(
                    rows=rows,
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
        result = await self.query(f"SHOW TABLES FROM {quote_identifier(self.database)}")
        name = result.columns[0] if result.columns else None
        return [row[name] for row in result.rows] if name else []

    async def table_exists(self, tablename: str) -> bool:
        sql = """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = %s AND table_name = %s
        """
        rows = await self.select(sql, [self.database, tablename])
        return len(rows) > 0

    async def show_columns(self, tablename: str) -> List[Dict[str, Any]]:
        # rows look like {Field, Type, Null, Key, Default, Extra}
        return await self.select(f"SHOW COLUMNS FROM {quote_identifier(tablename)}")

    async def list_column_names(self, tablename: str) -> List[str]:
        return [row["Field"] for row in await self.show_columns(tablename)]

    def on_duplicate_clause(self, key_sql: str, value_sql: str) -> str:
        return f" ON DUPLICATE KEY UPDATE {key_sql} = {value_sql}"

    async def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
            await self._pool.wait_closed()
            self._pool = None
            self._logger.info(f"Closed connection pool for {self.safe_uri}")

    # --- Error Mapping ---
    def _handle_db_error(self, error: Exception, context: str = "") -> None:
        """
        Map driver errors onto DbIOError.

        Raises:
            KeyAlreadyExistsError: Duplicate entry (MySQL errno 1062).
            DbIOError: Any other driver or network failure.
        """
        log_message = f"Error during {context}: {error}"
        self._logger.error(log_message, exc_info=True)

        errno = error.args[0] if error.args and isinstance(error.args[0], int) else None
        if errno == 1062:  # "Duplicate entry"
            raise KeyAlreadyExistsError(
                f"Unique constraint violated during {context}. Detail: {error}"
            ) from error
        raise DbIOError(
            f"A database error occurred during {context}: {error}"
        ) from error

    def __repr__(self) -> str:
        return f"MySQLDbc({self.safe_uri})"
