# src/async_dbtable/base/schema.py
"""
Field schemas.

A ``FieldSchema`` is an immutable, ordered table of ``field name -> FieldSpec``
plus the optional designations of a hidden flag (soft-delete marker) and a
primary key. Schemas are plain values built with ``define_schema`` and handed
to the table gateway; they are safe to share between gateways and tasks.
"""

import copy
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .exceptions import ValidationError
from .formatters import Formatter, FormatterKind, OPAQUE, get_formatter, is_nan
from .utils import UNDEFINED, to_record

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldSpec:
    """A field's formatter and its default (``UNDEFINED`` for none)."""

    formatter: Formatter = OPAQUE
    default: Any = UNDEFINED

    def __post_init__(self):
        object.__setattr__(self, "formatter", get_formatter(self.formatter))

    @property
    def kind(self) -> FormatterKind:
        return self.formatter.kind

    def format(self, raw: Any) -> Any:
        return self.formatter.format(raw)

    def load(self, raw: Any) -> Any:
        return self.formatter.load(raw)

    def dump(self, value: Any) -> Any:
        return self.formatter.dump(value)

    def get_default(self) -> Any:
        # Defaults such as {} or [] must not be shared between rows
        return copy.deepcopy(self.default)


def _as_field_spec(name: str, value: Any) -> FieldSpec:
    if isinstance(value, FieldSpec):
        return value
    try:
        return FieldSpec(formatter=value)
    except ValidationError as e:
        raise ValidationError(f"field '{name}': {e.message}") from e


@dataclass(frozen=True)
class FieldSchema:
    """Immutable description of a table's declared fields."""

    fields: Mapping[str, FieldSpec] = field(default_factory=dict)
    hidden_flag: Optional[str] = None
    primary_key: Optional[str] = None

    def __post_init__(self):
        specs = {name: _as_field_spec(name, spec) for name, spec in self.fields.items()}
        object.__setattr__(self, "fields", MappingProxyType(specs))

        if self.hidden_flag is not None:
            spec = specs.get(self.hidden_flag)
            if spec is None:
                raise ValidationError(
                    f"hidden flag '{self.hidden_flag}' is not a declared field"
                )
            if spec.kind is not FormatterKind.BOOLEAN:
                raise ValidationError(
                    f"hidden flag '{self.hidden_flag}' must use a boolean formatter, "
                    f"got {spec.kind.value}"
                )
        if self.primary_key is not None and self.primary_key not in specs:
            raise ValidationError(
                f"primary key '{self.primary_key}' is not a declared field"
            )

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(self.fields)

    @property
    def has_hidden_flag(self) -> bool:
        return self.hidden_flag is not None

    def _value_of(
        self, name: str, spec: FieldSpec, record: Mapping[str, Any], loading: bool = False
    ) -> Any:
        if name in record:
            raw = record[name]
            return spec.load(raw) if loading else spec.format(raw)
        return spec.get_default()

    def query_form(self, condition: Any = None, ensure_not_deleted: Optional[bool] = True) -> Dict[str, Any]:
        """
        Copy ``condition`` and, when the schema has a hidden flag and
        ``ensure_not_deleted`` is not False, force ``hidden_flag = False``.
        """
        form = to_record(condition)
        if self.has_hidden_flag and ensure_not_deleted is not False:
            form[self.hidden_flag] = False
        return form

    def to_data(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Convert a driver row into a typed dict.

        Declared fields missing from the row take their default; fields with
        neither a value nor a default are left out.
        """
        data: Dict[str, Any] = {}
        for name, spec in self.fields.items():
            value = self._value_of(name, spec, row, loading=True)
            if value is not UNDEFINED:
                data[name] = value
        return data

    def format(self, rows: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        return [self.to_data(row) for row in rows]

    def strict_form(self, obj: Any) -> Dict[str, Any]:
        """
        Project ``obj`` through every declared field's formatter.

        Absent fields are dropped; undeclared keys are ignored. Any value
        that fails formatting fails the whole call.

        Raises:
            ValidationError: A present value could not be formatted.
        """
        record = to_record(obj)
        form: Dict[str, Any] = {}
        for name, spec in self.fields.items():
            value = record.get(name, UNDEFINED)
            if value is UNDEFINED:
                continue
            formatted = spec.format(value)
            if formatted is UNDEFINED:
                continue
            if is_nan(formatted):
                raise ValidationError(f"invalid {name}={value}, require number")
            form[name] = formatted
        return form

    def to_row(self, form: Mapping[str, Any]) -> Dict[str, Any]:
        """Encode a ``strict_form`` result into bindable values (JSON fields become text)."""
        return {
            name: self.fields[name].dump(value) if name in self.fields else value
            for name, value in form.items()
        }

    def equal(self, a: Any, b: Any) -> bool:
        """Compare two records over the declared fields only."""
        left, right = to_record(a), to_record(b)
        for name, spec in self.fields.items():
            if self._value_of(name, spec, left) != self._value_of(name, spec, right):
                return False
        return True


def define_schema(
    fields: Optional[Mapping[str, Any]] = None,
    *,
    hidden_flag: Optional[str] = None,
    primary_key: Optional[str] = None,
    **named_fields: Any,
) -> FieldSchema:
    """
    Build a ``FieldSchema``.

    Fields may be given as a mapping, as keyword arguments, or both (keywords
    are appended after the mapping). Each value is a ``FieldSpec``, a
    formatter, a ``FormatterKind`` or a kind name such as ``"integer"``.

    Example:
        users = define_schema(
            id=FieldSpec(INTEGER),
            name=FieldSpec(STRING, default=""),
            deleted=FieldSpec(BOOLEAN, default=False),
            hidden_flag="deleted",
            primary_key="id",
        )
    """
    merged: Dict[str, Any] = dict(fields or {})
    for name, spec in named_fields.items():
        if name in merged:
            raise ValidationError(f"field '{name}' declared twice")
        merged[name] = spec
    schema = FieldSchema(fields=merged, hidden_flag=hidden_flag, primary_key=primary_key)
    log.debug(
        f"Defined schema fields={list(schema.field_names)} "
        f"hidden_flag={hidden_flag!r} primary_key={primary_key!r}"
    )
    return schema
