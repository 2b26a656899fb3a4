# src/async_dbtable/base/formatters.py
"""
Per-field value formatters.

A formatter converts a raw value (as read from a driver row or supplied by a
caller) into the typed value a field holds, or raises ``ValidationError``.
The set of formatters is closed: each one is a named strategy identified by
its ``FormatterKind`` and the module exposes one shared instance per kind.

All formatters pass ``None`` and ``UNDEFINED`` through unchanged and are
idempotent on values they produced themselves.
"""

import json
import math
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ValidationError
from .utils import UNDEFINED


# Strings treated as false by var_bool, after strip/lower
FALSE_STRINGS = frozenset(["", "false", "0", "undefined", "null", "none", "[]", "{}"])


def is_nan(value: Any) -> bool:
    """True for float or Decimal NaN, never for bools or other types."""
    if isinstance(value, float):
        return math.isnan(value)
    if isinstance(value, Decimal):
        return value.is_nan()
    return False


def var_bool(value: Any) -> bool:
    """Truthiness that understands the string spellings of false values."""
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        return value.strip().lower() not in FALSE_STRINGS
    if is_nan(value):
        return False
    return bool(value)


def var_int(value: Any) -> Any:
    """Parse an int, returning UNDEFINED instead of failing."""
    try:
        return INTEGER.format(value)
    except ValidationError:
        return UNDEFINED


def trim_string(value: Any) -> str:
    if value is None or value is UNDEFINED:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return str(value)
    raise ValidationError(
        f"trim_string: value should be None, str or number, got {type(value).__name__}"
    )


def fmt_json(value: Any) -> Any:
    """Decode JSON text (str or bytes); any other value is returned as is."""
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise ValidationError(f"invalid JSON text {value!r}: {e}") from e
    return value


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dump_json(value: Any) -> str:
    """Encode ``value`` as JSON text; NaN and infinities are rejected."""
    try:
        return json.dumps(value, default=_json_default, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"value is not JSON serializable: {e}") from e


class FormatterKind(Enum):
    """The closed set of conversion strategies a field can use."""

    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    STRING = "string"
    DATETIME = "datetime"
    JSON = "json"
    OPAQUE = "opaque"


class Formatter:
    """Base strategy; subclasses implement ``_convert`` for non-null input."""

    kind: FormatterKind = FormatterKind.OPAQUE

    def format(self, raw: Any) -> Any:
        if raw is None or raw is UNDEFINED:
            return raw
        return self._convert(raw)

    __call__ = format

    def load(self, raw: Any) -> Any:
        """Convert a value read from a driver row."""
        return self.format(raw)

    def dump(self, value: Any) -> Any:
        """Convert a formatted value into what gets bound on write."""
        return value

    def _convert(self, raw: Any) -> Any:
        return raw

    def _fail(self, raw: Any, detail: str = "") -> ValidationError:
        message = f"invalid {self.kind.value} value {raw!r}"
        if detail:
            message = f"{message}: {detail}"
        return ValidationError(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class _AdapterFormatter(Formatter):
    """Formatter backed by a pydantic ``TypeAdapter`` in lax mode."""

    python_type: type = object

    def __init__(self):
        self._adapter = TypeAdapter(self.python_type)

    def _validate(self, raw: Any) -> Any:
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        if isinstance(raw, str):
            raw = raw.strip()
        try:
            return self._adapter.validate_python(raw)
        except PydanticValidationError as e:
            errors = e.errors()
            detail = errors[0]["msg"] if errors else str(e)
            raise self._fail(raw, detail) from e


class IntegerFormatter(_AdapterFormatter):
    kind = FormatterKind.INTEGER
    python_type = int

    def _convert(self, raw: Any) -> int:
        if is_nan(raw):
            raise self._fail(raw, "require number")
        if isinstance(raw, bool):
            return int(raw)
        if isinstance(raw, int):
            return raw
        return self._validate(raw)


class FloatFormatter(_AdapterFormatter):
    kind = FormatterKind.FLOAT
    python_type = float

    def _convert(self, raw: Any) -> float:
        if isinstance(raw, float) and not math.isnan(raw):
            return raw
        value = self._validate(raw)
        if math.isnan(value):
            raise self._fail(raw, "require number")
        return value


class BooleanFormatter(Formatter):
    kind = FormatterKind.BOOLEAN

    def _convert(self, raw: Any) -> bool:
        return var_bool(raw)


class StringFormatter(Formatter):
    kind = FormatterKind.STRING

    def __init__(self, strip: bool = False):
        self.strip = strip

    def _convert(self, raw: Any) -> str:
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        if isinstance(raw, str):
            return raw.strip() if self.strip else raw
        if isinstance(raw, bool):
            return "true" if raw else "false"
        if isinstance(raw, (int, float, Decimal)):
            if is_nan(raw):
                raise self._fail(raw, "require number")
            return str(raw)
        if isinstance(raw, (datetime, date)):
            return raw.isoformat()
        raise self._fail(raw, f"unsupported type {type(raw).__name__}")

    def __repr__(self) -> str:
        return f"StringFormatter(strip={self.strip!r})"


class DateTimeFormatter(_AdapterFormatter):
    """
    Timestamps. Accepts datetimes, dates, ISO-8601 strings and epoch numbers
    (seconds, or milliseconds for large values, as pydantic interprets them).
    """

    kind = FormatterKind.DATETIME
    python_type = datetime

    def _convert(self, raw: Any) -> datetime:
        if isinstance(raw, datetime):
            return raw
        if isinstance(raw, date):
            return datetime.combine(raw, time())
        if isinstance(raw, bool) or is_nan(raw):
            raise self._fail(raw)
        return self._validate(raw)


class JsonFormatter(Formatter):
    """
    JSON documents. The field holds the decoded value (a str is a JSON
    string, not JSON text); text is decoded only by ``load`` and every
    non-null value is encoded by ``dump``.
    """

    kind = FormatterKind.JSON

    def _convert(self, raw: Any) -> Any:
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        try:
            dump_json(raw)
        except ValidationError as e:
            raise self._fail(raw, e.message) from e
        return raw

    def load(self, raw: Any) -> Any:
        if raw is None or raw is UNDEFINED:
            return raw
        return fmt_json(raw)

    def dump(self, value: Any) -> Any:
        if value is None or value is UNDEFINED:
            return value
        return dump_json(value)


class OpaqueFormatter(Formatter):
    kind = FormatterKind.OPAQUE


INTEGER = IntegerFormatter()
FLOAT = FloatFormatter()
BOOLEAN = BooleanFormatter()
STRING = StringFormatter()
TRIMMED_STRING = StringFormatter(strip=True)
DATETIME = DateTimeFormatter()
JSON = JsonFormatter()
OPAQUE = OpaqueFormatter()

FORMATTERS = {
    FormatterKind.INTEGER: INTEGER,
    FormatterKind.FLOAT: FLOAT,
    FormatterKind.BOOLEAN: BOOLEAN,
    FormatterKind.STRING: STRING,
    FormatterKind.DATETIME: DATETIME,
    FormatterKind.JSON: JSON,
    FormatterKind.OPAQUE: OPAQUE,
}


def get_formatter(kind: Any) -> Formatter:
    """Resolve a formatter instance, kind enum or kind name to a formatter."""
    if isinstance(kind, Formatter):
        return kind
    if isinstance(kind, str):
        try:
            kind = FormatterKind(kind.lower())
        except ValueError:
            raise ValidationError(f"unknown formatter kind '{kind}'") from None
    if isinstance(kind, FormatterKind):
        return FORMATTERS[kind]
    raise ValidationError(f"unknown formatter {kind!r}")
