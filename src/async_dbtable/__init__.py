# src/async_dbtable/__init__.py

"""
Async DbTable Library Initialization.

Schema-driven table gateways over MySQL (aiomysql) and SQLite (aiosqlite):
declare a table's fields once, then find, count, add, update, upsert,
soft delete and delete rows with parameterized SQL.

The library logger uses a NullHandler; configure logging in the
application to see its output.
"""

import logging

# --------------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------------
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
logger.propagate = False  # Prevent log messages from propagating to the root logger

# --------------------------------------------------------------------------
# Errors
# --------------------------------------------------------------------------
from .base.exceptions import (
    ConflictError,
    DbcNotFoundError,
    DbIOError,
    KeyAlreadyExistsError,
    NotFoundError,
    SqlError,
    ValidationError,
)

# --------------------------------------------------------------------------
# Schema, Formatters and Filter Compiler
# --------------------------------------------------------------------------
from .base.formatters import (
    BOOLEAN,
    DATETIME,
    FLOAT,
    INTEGER,
    JSON,
    OPAQUE,
    STRING,
    TRIMMED_STRING,
    FormatterKind,
)
from .base.query import Order, QueryOperator, opt_filter, sql_format
from .base.schema import FieldSchema, FieldSpec, define_schema
from .base.utils import UNDEFINED

# --------------------------------------------------------------------------
# Gateway, Connection Handles and Configuration
# --------------------------------------------------------------------------
from .base.interfaces import Dbc, QueryResult
from .config import DbConfig, get_db_config
from .db_implementations.mysql_dbc import MySQLDbc
from .db_implementations.registry import DbcRegistry
from .db_implementations.sqlite_dbc import SqliteDbc
from .table import DbTable, ExecResult, UpsertResult

__all__ = [
    # Gateway
    "DbTable",
    "ExecResult",
    "UpsertResult",
    # Schema
    "FieldSchema",
    "FieldSpec",
    "define_schema",
    "FormatterKind",
    "INTEGER",
    "FLOAT",
    "BOOLEAN",
    "STRING",
    "TRIMMED_STRING",
    "DATETIME",
    "JSON",
    "OPAQUE",
    "UNDEFINED",
    # Filter compiler
    "QueryOperator",
    "Order",
    "opt_filter",
    "sql_format",
    # Connection handles
    "Dbc",
    "QueryResult",
    "MySQLDbc",
    "SqliteDbc",
    "DbcRegistry",
    "DbConfig",
    "get_db_config",
    # Errors
    "SqlError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "DbIOError",
    "KeyAlreadyExistsError",
    "DbcNotFoundError",
    # Logging
    "logger",
]
