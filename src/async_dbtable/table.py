# src/async_dbtable/table.py

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from async_dbtable.base.exceptions import ConflictError, NotFoundError, ValidationError
from async_dbtable.base.interfaces import DBC_MARKER, Dbc, QueryResult
from async_dbtable.base.query import (
    PLACEHOLDERS,
    CompiledClause,
    LimitType,
    opt_filter,
    quote_identifier,
    sql_format,
)
from async_dbtable.base.schema import FieldSchema
from async_dbtable.base.utils import to_record


@dataclass
class ExecResult:
    """Outcome of a write statement, tagged with its operation label."""

    op: str
    affected_rows: int = 0
    insert_id: Optional[int] = None


@dataclass
class UpsertResult:
    """Outcome of ``DbTable.upsert``: ``op`` is ``insert`` or ``update``."""

    op: str
    data: Dict[str, Any] = field(default_factory=dict)
    state: Any = None


class DbTable:
    """
    Table gateway: validated, parameterized CRUD over one table.

    A gateway is bound to a table name, a connection handle and a
    ``FieldSchema``. It keeps no row state between calls, so one instance can
    serve any number of concurrent tasks.

    Soft delete: when the schema declares a hidden flag, reads and updates
    only see rows whose flag is false unless ``ensure_not_deleted=False`` is
    passed. ``disable``/``enable`` set and clear the flag; ``delete`` removes
    rows for good.

    Behaviour switches (per instance):
        enable_undefined: ``UNDEFINED`` condition values mean IS NOT NULL
            instead of being rejected.
        allow_multiple: ``find_one`` returns the first of several matches
            instead of raising ``ConflictError``.
        allow_delete_all: ``delete`` may run without any condition.
        allow_update_all: ``update`` may run without any condition.
    """

    def __init__(
            self,
            tablename: str,
            dbc: Dbc,
            schema: FieldSchema,
            *,
            model: Optional[str] = None,
            enable_undefined: bool = False,
            allow_multiple: bool = False,
            allow_delete_all: bool = False,
            allow_update_all: bool = False,
    ):
        self._model = model or self.__class__.__name__
        if not (
                dbc is not None
                and getattr(dbc, "_cls", None) == DBC_MARKER
                and isinstance(getattr(dbc, "uri", None), str)
                and dbc.uri
        ):
            raise ValidationError(
                f"[DbTable:{self._model}:{tablename}], init DbTable with invalid dbc ..."
            )
        if not isinstance(schema, FieldSchema):
            raise ValidationError(
                f"[DbTable:{self._model}:{tablename}], schema must be a FieldSchema"
            )

        self._tablename = tablename
        self._qualified_table_name = quote_identifier(tablename)
        self._dbc = dbc
        self._schema = schema
        self.enable_undefined = enable_undefined
        self.allow_multiple = allow_multiple
        self.allow_delete_all = allow_delete_all
        self.allow_update_all = allow_update_all

        self._logger = logging.getLogger(f"{__name__}.DbTable[{tablename}]")
        self._logger.info(f"Gateway created: {self}")

    # --- Properties ---
    @property
    def tablename(self) -> str:
        return self._tablename

    @property
    def dbc(self) -> Dbc:
        return self._dbc

    @property
    def schema(self) -> FieldSchema:
        return self._schema

    @property
    def placeholder(self) -> str:
        return PLACEHOLDERS[self._dbc.paramstyle]

    def info(self) -> Dict[str, Any]:
        return {"model": self._model, "tablename": self._tablename, **self._dbc.info()}

    def __str__(self) -> str:
        return f"[DbTable:{self._model}:{self._tablename}] dbc={self._dbc.safe_uri}"

    def __repr__(self) -> str:
        return f"DbTable({self._tablename!r}, {self._dbc!r})"

    # --- Raw statements ---
    async def sql(self, sql: str, args: Optional[Sequence[Any]] = None) -> QueryResult:
        return await self._dbc.query(sql, args)

    async def select(self, sql: str, args: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        return await self._dbc.select(sql, args)

    # --- Introspection ---
    async def exist(self) -> bool:
        """Whether the table exists in the connected database."""
        return await self._dbc.table_exists(self._tablename)

    async def show_columns(self) -> List[Dict[str, Any]]:
        return await self._dbc.show_columns(self._tablename)

    async def list_columns(self) -> List[str]:
        return await self._dbc.list_column_names(self._tablename)

    async def ensure_columns(self, *column_names: str) -> None:
        """
        Raises:
            ValidationError: One of ``column_names`` is not a physical column.
        """
        existing = set(await self.list_columns())
        for name in column_names:
            if name not in existing:
                raise ValidationError(f'DbTable<{self._model}> unknown field "{name}"')

    # --- Helpers ---
    def format(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return self._schema.format(rows)

    def _compile(self, opts=None, order=None, limit: LimitType = None) -> CompiledClause:
        return sql_format(opts, order, limit, paramstyle=self._dbc.paramstyle)

    def _where(self, cond: Any, ensure_not_deleted: Optional[bool]) -> CompiledClause:
        form = self._schema.query_form(cond, ensure_not_deleted)
        return self._compile(opt_filter(form, self.enable_undefined))

    def _projection(self, res: str) -> str:
        if res == "*" and self._schema.field_names:
            return ", ".join(quote_identifier(f) for f in self._schema.field_names)
        return res

    def _write_form(self, record: Any, strict: bool) -> Dict[str, Any]:
        if not strict:
            return to_record(record)
        return self._schema.to_row(self._schema.strict_form(record))

    def _many_forms(
            self, records: Any, strict: bool, what: str
    ) -> Tuple[List[str], List[Dict[str, Any]]]:
        if not isinstance(records, (list, tuple)):
            raise ValidationError(f"DbTable<{self._model}>: objects to {what} must be a list")
        if not records:
            raise ValidationError(f"DbTable<{self._model}>: no objects to {what}")
        forms = [self._write_form(r, strict) for r in records]
        fields = list(forms[0].keys())
        if not fields:
            raise ValidationError(f"DbTable<{self._model}>: no fields to {what}")
        for form in forms[1:]:
            if set(form.keys()) != set(fields):
                raise ValidationError(
                    f"DbTable<{self._model}>: objects to {what} must share the same "
                    f"fields, got {sorted(form.keys())} and {sorted(fields)}"
                )
        return fields, forms

    def _values_sql(self, fields: List[str], forms: List[Dict[str, Any]]) -> Tuple[str, List[Any]]:
        row_sql = f"({', '.join([self.placeholder] * len(fields))})"
        args: List[Any] = []
        for form in forms:
            args.extend(form[k] for k in fields)
        columns = ", ".join(quote_identifier(k) for k in fields)
        return f"({columns}) VALUES {', '.join([row_sql] * len(forms))}", args

    # --- Reads ---
    async def query(
            self,
            opts: Optional[Dict[str, Dict[str, Any]]] = None,
            order: Any = None,
            limit: LimitType = None,
            res: str = "*",
    ) -> List[Dict[str, Any]]:
        """
        Run a SELECT from operator buckets (``{"ge": {"id": 2}, ...}``).

        With ``res="*"`` the declared fields are selected explicitly and rows
        come back typed through the schema; any other projection returns the
        driver's rows untouched.
        """
        clause = self._compile(opts, order, limit)
        sql = f"SELECT {self._projection(res)} FROM {self._qualified_table_name}{clause.text}"
        self._logger.debug(f"Executing query: SQL='{sql}', Params={clause.positional_args}")
        rows = await self._dbc.select(sql, clause.positional_args)
        if res == "*":
            return self.format(rows)
        return rows

    async def find(
            self,
            cond: Any = None,
            ensure_not_deleted: Optional[bool] = True,
            res: str = "*",
            order: Any = None,
            limit: LimitType = None,
    ) -> List[Dict[str, Any]]:
        form = self._schema.query_form(cond, ensure_not_deleted)
        opts = opt_filter(form, self.enable_undefined)
        return await self.query(opts, order, limit, res)

    async def find_one(
            self,
            cond: Any = None,
            ensure_not_deleted: Optional[bool] = True,
            res: str = "*",
            order: Any = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Return the single matching row, or None.

        Raises:
            ConflictError: Two or more rows match (unless ``allow_multiple``).
        """
        rows = await self.find(cond, ensure_not_deleted, res, order, 2)
        if len(rows) <= 1:
            return rows[0] if rows else None
        if self.allow_multiple:
            self._logger.warning(f"find_one matched several rows for {cond!r}; using the first")
            return rows[0]
        raise ConflictError(
            f"[ConflictItems] <{self._tablename}:{cond!r}> expect one or none, "
            f"but get rows >= 2"
        )

    async def find_one_by_fields(
            self, field_keys: Sequence[str], field_values: Sequence[Any]
    ) -> Optional[Dict[str, Any]]:
        if len(field_keys) != len(field_values):
            raise ValidationError("field_keys and field_values differ in length")
        return await self.find_one(dict(zip(field_keys, field_values)))

    async def count(self, cond: Any = None, ensure_not_deleted: Optional[bool] = True) -> int:
        pk = self._schema.primary_key
        target = quote_identifier(pk) if pk else "*"
        row = await self.find_one(cond, ensure_not_deleted, f"count({target}) AS `count`")
        return int(row["count"]) if row else 0

    async def get_or_404(
            self, cond: Any = None, ensure_not_deleted: Optional[bool] = True, res: str = "*"
    ) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: No row matches (errno 40400, status 404).
            ConflictError: Several rows match.
        """
        obj = await self.find_one(cond, ensure_not_deleted, res)
        if obj is None:
            raise NotFoundError(f"[DataNotFound] <{self._tablename}:{cond!r}>", errno=40400)
        return obj

    # --- Writes ---
    async def add(self, record: Any, strict: bool = True) -> Optional[int]:
        """
        Insert one row; returns the id the driver reports, if any.

        ``add``, ``add_many`` and ``update`` return the bare driver value;
        the other writes wrap theirs in an ``ExecResult`` with an op label.
        """
        form = self._write_form(record, strict)
        if not form:
            raise ValidationError(f"DbTable<{self._model}>: no fields to insert")
        result = await self._dbc.insert_one(self._tablename, form)
        self._logger.info(f"Inserted row into '{self._tablename}' (id={result.insert_id}).")
        return result.insert_id

    async def add_many(self, records: Sequence[Any], strict: bool = True) -> int:
        """Insert several rows in one statement; returns the affected-row count as an int."""
        fields, forms = self._many_forms(records, strict, "insert")
        rows = [{k: form[k] for k in fields} for form in forms]
        result = await self._dbc.insert_many(self._tablename, rows)
        self._logger.info(f"Inserted {result.affected_rows} row(s) into '{self._tablename}'.")
        return result.affected_rows

    async def update(
            self,
            cond: Any = None,
            changes: Any = None,
            ensure_not_deleted: Optional[bool] = True,
            strict: bool = True,
    ) -> int:
        """
        ``UPDATE table SET ... WHERE ...``; change values are bound before
        condition values. Returns the affected-row count as an int (not an
        ``ExecResult``), or 0 without touching the database when there is
        nothing to change.

        Raises:
            ValidationError: The effective condition is empty and
                ``allow_update_all`` is off.
        """
        updates = self._write_form(changes, strict)
        if not updates:
            self._logger.warning(f"update on '{self._tablename}' called with no changes.")
            return 0

        clause = self._where(cond, ensure_not_deleted)
        if not clause.where_text and not self.allow_update_all:
            raise ValidationError(
                f"DbTable<{self._model}>: refusing to update every row of "
                f"'{self._tablename}' without a condition"
            )
        set_clause = ", ".join(f"{quote_identifier(k)} = {self.placeholder}" for k in updates)
        sql = f"UPDATE {self._qualified_table_name} SET {set_clause}{clause.where_text}"
        args = list(updates.values()) + clause.positional_args
        self._logger.debug(f"Executing update: SQL='{sql}', Params={args}")
        result = await self._dbc.query(sql, args)
        self._logger.info(f"Updated {result.affected_rows} row(s) in '{self._tablename}'.")
        return result.affected_rows

    async def ensure(self, record: Any) -> Optional[ExecResult]:
        """
        Make sure a live row equal to ``record`` exists: insert it when
        absent, revive it when soft-deleted, do nothing otherwise.
        """
        cond = self._schema.strict_form(record)
        flag = self._schema.hidden_flag
        if self._schema.has_hidden_flag:
            cond.pop(flag, None)
        lookup = self._schema.to_row(cond)
        item = await self.find_one(lookup, False)
        if item is None:
            insert_id = await self.add(cond)
            return ExecResult("insert", affected_rows=1, insert_id=insert_id)

        if self._schema.has_hidden_flag and item.get(flag):
            pk = self._schema.primary_key
            target = {pk: item[pk]} if pk and pk in item else lookup
            self._logger.warning(f"Reviving soft-deleted row in '{self._tablename}': {target!r}")
            return await self.enable(target)
        return None

    async def upsert(self, cond: Any = None, changes: Any = None) -> UpsertResult:
        """
        Update the row matching ``cond`` (soft-deleted rows included, and
        revived) or insert ``cond`` merged with ``changes``.

        This is a read followed by a write, not one atomic statement: two
        concurrent callers can both see no row and both insert. Use
        ``replace_one`` or ``upsert_many`` against a unique key when that
        matters.
        """
        changes = to_record(changes)
        item = await self.find_one(cond, False)
        if item is None:
            data = self._schema.strict_form({**to_record(cond), **changes})
            state = await self.add(data)
            return UpsertResult("insert", data, state)

        flag = self._schema.hidden_flag
        if self._schema.has_hidden_flag and item.get(flag):
            self._logger.warning(f"upsert revives soft-deleted row in '{self._tablename}'.")
            changes[flag] = False
        data = {**item, **self._schema.strict_form(changes)}
        state = await self.update(cond, changes, False)
        return UpsertResult("update", data, state)

    async def replace_one(self, record: Any, strict: bool = True) -> ExecResult:
        """
        ``REPLACE INTO``: delete any row sharing a unique key, then insert.
        Needs DELETE and INSERT privileges on MySQL.
        """
        return await self.replace_many([record], strict)

    async def replace_many(self, records: Sequence[Any], strict: bool = True) -> ExecResult:
        fields, forms = self._many_forms(records, strict, "replace")
        values_sql, args = self._values_sql(fields, forms)
        sql = f"REPLACE INTO {self._qualified_table_name} {values_sql}"
        self._logger.debug(f"Executing replace: SQL='{sql}', Params={args}")
        result = await self._dbc.query(sql, args)
        return ExecResult("replace_into", result.affected_rows, result.insert_id)

    async def upsert_many(
            self,
            records: Sequence[Any],
            dup_key: Optional[str] = None,
            dup_value: Any = False,
            strict: bool = True,
    ) -> ExecResult:
        """
        Insert ``records`` in one statement; rows colliding on a unique key
        get ``dup_key = dup_value`` instead (``dup_value=None`` leaves the
        column as it is). ``dup_key`` defaults to the hidden flag, so by
        default duplicates are revived.
        """
        key = dup_key or self._schema.hidden_flag
        if not key:
            raise ValidationError(
                f"DbTable<{self._model}>: upsert_many needs dup_key (no hidden flag declared)"
            )
        await self.ensure_columns(key)

        fields, forms = self._many_forms(records, strict, "upsert")
        values_sql, args = self._values_sql(fields, forms)
        key_sql = quote_identifier(key)
        if dup_value is None:
            value_sql = key_sql
        else:
            value_sql = self.placeholder
            args.append(dup_value)
        sql = (
            f"INSERT INTO {self._qualified_table_name} {values_sql}"
            f"{self._dbc.on_duplicate_clause(key_sql, value_sql)}"
        )
        self._logger.debug(f"Executing upsert_many: SQL='{sql}', Params={args}")
        result = await self._dbc.query(sql, args)
        return ExecResult("insert_ondup", result.affected_rows, result.insert_id)

    def _require_hidden_flag(self, op: str) -> str:
        if not self._schema.has_hidden_flag:
            raise ValidationError(
                f"DbTable<{self._model}>: {op} requires a hidden flag field in the schema"
            )
        return self._schema.hidden_flag

    async def disable(self, cond: Any = None) -> ExecResult:
        """Soft delete: set the hidden flag on matching live rows."""
        flag = self._require_hidden_flag("disable")
        await self.ensure_columns(flag)
        affected = await self.update(cond, {flag: True})
        return ExecResult("disable", affected)

    async def enable(self, cond: Any = None) -> ExecResult:
        """Soft restore: clear the hidden flag on matching rows."""
        flag = self._require_hidden_flag("enable")
        await self.ensure_columns(flag)
        affected = await self.update(cond, {flag: False}, False)
        return ExecResult("enable", affected)

    async def delete(self, cond: Any = None) -> ExecResult:
        """
        Hard delete, cannot be undone.

        Raises:
            ValidationError: ``cond`` is empty and ``allow_delete_all`` is off.
        """
        clause = self._where(cond, False)
        if not clause.where_text and not self.allow_delete_all:
            raise ValidationError(
                f"DbTable<{self._model}>: refusing to delete every row of "
                f"'{self._tablename}' without a condition"
            )
        sql = f"DELETE FROM {self._qualified_table_name}{clause.where_text}"
        self._logger.debug(f"Executing delete: SQL='{sql}', Params={clause.positional_args}")
        result = await self._dbc.query(sql, clause.positional_args)
        self._logger.info(f"Deleted {result.affected_rows} row(s) from '{self._tablename}'.")
        return ExecResult("delete", result.affected_rows)
