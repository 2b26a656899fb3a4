# src/async_dbtable/base/interfaces.py

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .formatters import dump_json
from .query import PLACEHOLDERS, QMARK, quote_identifier

# Marker carried by every connection handle a DbTable accepts
DBC_MARKER = "async-dbc"


@dataclass
class QueryResult:
    """Rows and metadata of one statement, as reported by the driver."""

    rows: List[Dict[str, Any]] = field(default_factory=list)
    columns: List[str] = field(default_factory=list)
    affected_rows: int = 0
    insert_id: Optional[int] = None


class Dbc(ABC):
    """
    Connection handle interface used by ``DbTable``.

    A handle owns (or wraps) a pool of connections. Each call acquires one
    connection for a single statement and releases it on completion or
    failure. Argument conventions shared by all drivers:

    - ``tuple`` arguments are IN-lists, expanded into ``(a, b, ...)``.
    - ``list`` and ``dict`` arguments are stored as JSON text.
    """

    _cls: str = DBC_MARKER
    paramstyle: str = QMARK

    @property
    @abstractmethod
    def uri(self) -> str:
        """Connection URI of the database this handle talks to."""
        pass

    @property
    @abstractmethod
    def database(self) -> str:
        pass

    @property
    def safe_uri(self) -> str:
        return self.uri

    def info(self) -> Dict[str, Any]:
        """Connection details safe for logs (no password)."""
        return {"uri": self.safe_uri, "database": self.database}

    @abstractmethod
    async def query(self, sql: str, args: Optional[Sequence[Any]] = None) -> QueryResult:
        """
        Run one parameterized statement.

        Raises:
            DbIOError: Any driver failure (KeyAlreadyExistsError for
                unique-key violations).
        """
        pass

    async def select(self, sql: str, args: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        result = await self.query(sql, args)
        return result.rows

    @abstractmethod
    async def show_tables(self) -> List[str]:
        pass

    @abstractmethod
    async def table_exists(self, tablename: str) -> bool:
        pass

    @abstractmethod
    async def show_columns(self, tablename: str) -> List[Dict[str, Any]]:
        """Raw column descriptions, in the driver's native shape."""
        pass

    @abstractmethod
    async def list_column_names(self, tablename: str) -> List[str]:
        pass

    @abstractmethod
    def on_duplicate_clause(self, key_sql: str, value_sql: str) -> str:
        """
        SQL suffix for an insert that sets ``key_sql = value_sql`` when a
        row with the same unique key already exists.
        """
        pass

    async def insert_one(self, tablename: str, record: Dict[str, Any]) -> QueryResult:
        return await self.insert_many(tablename, [record])

    async def insert_many(self, tablename: str, records: Sequence[Dict[str, Any]]) -> QueryResult:
        if not records:
            return QueryResult()
        fields = list(records[0].keys())
        placeholder = PLACEHOLDERS[self.paramstyle]
        row_sql = f"({', '.join([placeholder] * len(fields))})"
        args: List[Any] = []
        for record in records:
            args.extend(record.get(k) for k in fields)
        sql = (
            f"INSERT INTO {quote_identifier(tablename)} "
            f"({', '.join(quote_identifier(k) for k in fields)}) "
            f"VALUES {', '.join([row_sql] * len(records))}"
        )
        return await self.query(sql, args)

    @abstractmethod
    async def close(self) -> None:
        pass


def adapt_arg(value: Any) -> Any:
    """Convert a Python value into something every driver can bind."""
    if isinstance(value, (list, dict)):
        return dump_json(value)
    return value
