# src/async_dbtable/base/query.py
"""
Filter compiler.

Turns a condition map into operator buckets (``opt_filter``) and operator
buckets plus ordering/limit into a parameterized clause (``sql_format``).
Only field names are interpolated into the clause text; every value travels
as a positional argument. Buckets are joined with AND; there is no OR and no
grouping.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .exceptions import ValidationError
from .formatters import is_nan
from .utils import UNDEFINED

log = logging.getLogger(__name__)

QMARK = "qmark"
FORMAT = "format"
PLACEHOLDERS = {QMARK: "?", FORMAT: "%s"}


class QueryOperator(Enum):
    """Enumeration of valid filter operators."""

    # Comparison
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GE = "ge"
    LT = "lt"
    LE = "le"
    # Membership
    IN = "in"
    NOT_IN = "not_in"
    # Pattern
    LIKE = "like"
    # Null checks
    IS = "is"
    IS_NOT = "is_not"


OPERATOR_SQL: Mapping[QueryOperator, str] = {
    QueryOperator.EQ: "=",
    QueryOperator.NE: "!=",
    QueryOperator.GT: ">",
    QueryOperator.GE: ">=",
    QueryOperator.LT: "<",
    QueryOperator.LE: "<=",
    QueryOperator.IN: "IN",
    QueryOperator.NOT_IN: "NOT IN",
    QueryOperator.LIKE: "LIKE",
    QueryOperator.IS: "IS",
    QueryOperator.IS_NOT: "IS NOT",
}

OPERATOR_NAMES = frozenset(op.value for op in QueryOperator)

LimitType = Union[None, int, Sequence[int]]


def quote_identifier(identifier: str) -> str:
    """Quotes a column or table name with backticks."""
    if not isinstance(identifier, str) or not identifier:
        raise ValidationError(f"identifier must be a non-empty string, got {identifier!r}")
    if "`" in identifier:
        raise ValidationError(f"identifier cannot contain backticks: {identifier!r}")
    return f"`{identifier}`"


def get_operator(mark: Any) -> QueryOperator:
    if isinstance(mark, QueryOperator):
        return mark
    try:
        return QueryOperator(mark)
    except ValueError:
        raise ValidationError(f"invalid operator <{mark}>") from None


@dataclass(frozen=True)
class Order:
    """ORDER BY specification; ``key`` is a field name or a list of them."""

    key: Union[None, str, Sequence[str]] = None
    desc: bool = False

    @classmethod
    def coerce(cls, order: Any) -> "Order":
        if order is None:
            return cls()
        if isinstance(order, Order):
            return order
        if isinstance(order, Mapping):
            return cls(key=order.get("key"), desc=bool(order.get("desc", False)))
        if isinstance(order, (str, list, tuple)):
            return cls(key=order)
        raise ValidationError(f"invalid order {order!r}")

    @property
    def keys(self) -> List[str]:
        if not self.key:
            return []
        if isinstance(self.key, str):
            return [self.key]
        return list(self.key)


@dataclass
class CompiledClause:
    """
    Parameterized WHERE/ORDER BY/LIMIT text and its positional arguments.

    Every fragment that is present starts with a space so the clause can be
    appended directly after a table name.
    """

    where_text: str = ""
    order_text: str = ""
    limit_text: str = ""
    positional_args: List[Any] = field(default_factory=list)

    @property
    def text(self) -> str:
        return f"{self.where_text}{self.order_text}{self.limit_text}"

    @property
    def args(self) -> List[Any]:
        return list(self.positional_args)

    def __repr__(self) -> str:
        return f"CompiledClause(text={self.text!r}, args={self.positional_args!r})"


def _check_value(key: str, value: Any) -> None:
    if is_nan(value):
        raise ValidationError(f"invalid {key}={value}, require number")


def opt_filter(
    condition: Optional[Mapping[str, Any]], enable_undefined: bool = False
) -> Dict[str, Dict[str, Any]]:
    """
    Classify a flat condition map into operator buckets.

    ``None`` goes to ``is``, ``UNDEFINED`` to ``is_not`` (only when
    ``enable_undefined``), anything else to ``eq``. A key named after an
    operator whose value is a mapping is taken as an explicit bucket and
    merged as-is.

    Raises:
        ValidationError: NaN values, or UNDEFINED while it is not enabled.
    """
    opts: Dict[str, Dict[str, Any]] = {}
    for key, value in (condition or {}).items():
        if key in OPERATOR_NAMES and isinstance(value, Mapping):
            bucket = opts.setdefault(key, {})
            for name, item in value.items():
                _check_value(name, item)
                bucket[name] = item
            continue

        _check_value(key, value)
        if value is None:
            opts.setdefault(QueryOperator.IS.value, {})[key] = None
        elif value is UNDEFINED:
            if not enable_undefined:
                raise ValidationError(
                    f"undefined value for '{key}' (enable_undefined is off)"
                )
            # undefined means NOT NULL
            opts.setdefault(QueryOperator.IS_NOT.value, {})[key] = None
        else:
            opts.setdefault(QueryOperator.EQ.value, {})[key] = value
    return opts


def _render_predicate(
    key: str, op: QueryOperator, value: Any, placeholder: str, paramstyle: str
):
    column = quote_identifier(key)
    sql_op = OPERATOR_SQL[op]

    if value is UNDEFINED:
        if op is not QueryOperator.IS_NOT:
            raise ValidationError(f"undefined value for '{key}' under <{op.value}>")
        value = None
    _check_value(key, value)

    if op in (QueryOperator.IN, QueryOperator.NOT_IN):
        if isinstance(value, (list, tuple, set, frozenset)):
            if not value:
                raise ValidationError(f"empty list for '{key}' under <{op.value}>")
            # tuple args are expanded to "(a, b, ...)" by the driver
            items = tuple(value)
            for item in items:
                _check_value(key, item)
            if paramstyle == FORMAT:
                return f"{column} {sql_op} {placeholder}", items
            return f"{column} {sql_op} ({placeholder})", items
        return f"{column} {sql_op} ({placeholder})", value

    return f"{column} {sql_op} {placeholder}", value


def render_order(order: Any) -> str:
    order = Order.coerce(order)
    keys = order.keys
    if not keys:
        return ""
    text = f" ORDER BY {','.join(quote_identifier(k) for k in keys)}"
    if order.desc:
        text += " DESC"
    return text


def _check_limit_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"invalid limit {value!r}, require int")
    return value


def render_limit(limit: LimitType) -> str:
    if limit is None:
        return ""
    if isinstance(limit, (list, tuple)):
        if len(limit) == 0:
            return ""
        if len(limit) == 1:
            limit = limit[0]
        elif len(limit) == 2:
            offset, count = (_check_limit_int(v) for v in limit)
            if offset < 0 or count < 0:
                raise ValidationError(f"invalid limit {list(limit)!r}")
            return f" LIMIT {offset},{count}"
        else:
            raise ValidationError(f"invalid limit {list(limit)!r}, require [offset, count]")
    limit = _check_limit_int(limit)
    if limit <= 0:
        return ""
    return f" LIMIT {limit}"


def sql_format(
    opts: Optional[Mapping[str, Mapping[str, Any]]] = None,
    order: Any = None,
    limit: LimitType = None,
    paramstyle: str = QMARK,
) -> CompiledClause:
    """
    Render operator buckets, ordering and limit into a ``CompiledClause``.

    Args:
        opts: ``{operator_name: {field: value}}``, rendered in mapping order.
        order: ``Order``, ``{"key": ..., "desc": bool}`` or a field name/list.
        limit: ``n`` or ``[offset, count]``; non-positive ``n`` means no limit.
        paramstyle: ``"qmark"`` (``?``) or ``"format"`` (``%s``).

    Raises:
        ValidationError: unknown operator, NaN value, bad order or limit.
    """
    if paramstyle not in PLACEHOLDERS:
        raise ValidationError(f"unsupported paramstyle '{paramstyle}'")
    placeholder = PLACEHOLDERS[paramstyle]

    predicates: List[str] = []
    args: List[Any] = []
    for mark, form in (opts or {}).items():
        op = get_operator(mark)
        if not isinstance(form, Mapping):
            raise ValidationError(f"operator <{op.value}> requires a mapping of fields")
        for key, value in form.items():
            text, arg = _render_predicate(key, op, value, placeholder, paramstyle)
            predicates.append(text)
            args.append(arg)

    clause = CompiledClause(
        where_text=f" WHERE {' AND '.join(predicates)}" if predicates else "",
        order_text=render_order(order),
        limit_text=render_limit(limit),
        positional_args=args,
    )
    log.debug(f"Compiled clause: {clause!r}")
    return clause
