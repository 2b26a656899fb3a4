# tests/base/test_formatters.py

from datetime import date, datetime
from decimal import Decimal

import pytest

from async_dbtable.base.exceptions import ValidationError
from async_dbtable.base.formatters import (
    BOOLEAN,
    DATETIME,
    FLOAT,
    INTEGER,
    JSON,
    OPAQUE,
    STRING,
    TRIMMED_STRING,
    FormatterKind,
    fmt_json,
    get_formatter,
    is_nan,
    trim_string,
    var_bool,
    var_int,
)
from async_dbtable.base.utils import UNDEFINED


# =============================================================================
# Helpers
# =============================================================================


@pytest.mark.parametrize(
    "value, expected",
    [
        ("", False),
        ("false", False),
        (" FALSE ", False),
        ("0", False),
        ("null", False),
        ("undefined", False),
        ("[]", False),
        ("{}", False),
        ("no", True),
        ("1", True),
        (0, False),
        (2, True),
        (float("nan"), False),
        (None, False),
    ],
)
def test_var_bool(value, expected):
    assert var_bool(value) is expected


def test_var_int_returns_undefined_on_failure():
    assert var_int("12") == 12
    assert var_int("twelve") is UNDEFINED


def test_trim_string():
    assert trim_string("  a b ") == "a b"
    assert trim_string(None) == ""
    assert trim_string(12) == "12"
    with pytest.raises(ValidationError):
        trim_string(["a"])


def test_is_nan_ignores_non_numbers():
    assert is_nan(float("nan"))
    assert is_nan(Decimal("NaN"))
    assert not is_nan(1.5)
    assert not is_nan("nan")


# =============================================================================
# Formatters
# =============================================================================


@pytest.mark.parametrize("formatter", [INTEGER, FLOAT, BOOLEAN, STRING, DATETIME, JSON, OPAQUE])
def test_null_and_undefined_pass_through(formatter):
    assert formatter.format(None) is None
    assert formatter.format(UNDEFINED) is UNDEFINED


def test_integer_formatter():
    assert INTEGER("42") == 42
    assert INTEGER(" 7 ") == 7
    assert INTEGER(True) == 1
    assert INTEGER(3.0) == 3
    with pytest.raises(ValidationError):
        INTEGER("abc")
    with pytest.raises(ValidationError):
        INTEGER(float("nan"))
    with pytest.raises(ValidationError):
        INTEGER(3.5)


def test_float_formatter():
    assert FLOAT("1.5") == 1.5
    assert FLOAT(2) == 2.0
    with pytest.raises(ValidationError):
        FLOAT("x")
    with pytest.raises(ValidationError):
        FLOAT(float("nan"))


def test_boolean_formatter():
    assert BOOLEAN(1) is True
    assert BOOLEAN(0) is False
    assert BOOLEAN("false") is False
    assert BOOLEAN("yes") is True


def test_string_formatters():
    assert STRING(" a ") == " a "
    assert TRIMMED_STRING(" a ") == "a"
    assert STRING(12) == "12"
    assert STRING(b"bytes") == "bytes"
    with pytest.raises(ValidationError):
        STRING({"a": 1})


def test_datetime_formatter():
    moment = datetime(2024, 5, 1, 12, 30)
    assert DATETIME(moment) is moment
    assert DATETIME("2024-05-01T12:30:00") == moment
    assert DATETIME(date(2024, 5, 1)) == datetime(2024, 5, 1)
    assert DATETIME(0).year == 1970
    with pytest.raises(ValidationError):
        DATETIME("not a date")
    with pytest.raises(ValidationError):
        DATETIME(True)


def test_json_formatter_keeps_decoded_values():
    assert JSON({"a": 1}) == {"a": 1}
    assert JSON("abc") == "abc"
    assert JSON(0) == 0
    assert JSON(False) is False
    with pytest.raises(ValidationError):
        JSON(object())
    with pytest.raises(ValidationError):
        JSON(float("nan"))


def test_json_load_decodes_driver_text():
    assert JSON.load('{"a": [1, 2]}') == {"a": [1, 2]}
    assert JSON.load(b"[1]") == [1]
    assert JSON.load('"abc"') == "abc"
    assert JSON.load("0") == 0
    assert JSON.load(None) is None
    with pytest.raises(ValidationError):
        JSON.load("{broken")


def test_json_dump_encodes_every_value():
    assert JSON.dump("abc") == '"abc"'
    assert JSON.dump(0) == "0"
    assert JSON.dump(False) == "false"
    assert JSON.dump({"at": datetime(2024, 1, 2)}) == '{"at": "2024-01-02T00:00:00"}'
    assert JSON.dump(None) is None


@pytest.mark.parametrize("value", ["abc", '"abc"', 0, False, 1.5, [1, "x"], {"k": None}])
def test_json_values_survive_dump_and_load(value):
    assert JSON.load(JSON.dump(JSON(value))) == value
    assert JSON(JSON(value)) == JSON(value)


def test_fmt_json_passes_non_text_through():
    assert fmt_json("[1]") == [1]
    assert fmt_json(0) == 0
    assert fmt_json(False) is False


def test_non_json_formatters_dump_unchanged():
    moment = datetime(2024, 1, 2)
    assert DATETIME.dump(moment) is moment
    assert INTEGER.load("3") == 3


def test_formatters_are_idempotent():
    samples = [
        (INTEGER, "5"),
        (FLOAT, "2.5"),
        (BOOLEAN, "0"),
        (TRIMMED_STRING, " x "),
        (DATETIME, "2020-01-02T03:04:05"),
        (JSON, '{"k": "v"}'),
        (JSON, '"abc"'),
        (JSON, 0),
    ]
    for formatter, raw in samples:
        once = formatter(raw)
        assert formatter(once) == once


def test_opaque_returns_input_unchanged():
    obj = object()
    assert OPAQUE(obj) is obj


# =============================================================================
# Lookup
# =============================================================================


def test_get_formatter_by_kind_and_name():
    assert get_formatter(FormatterKind.INTEGER) is INTEGER
    assert get_formatter("boolean") is BOOLEAN
    assert get_formatter("DateTime") is DATETIME
    assert get_formatter(JSON) is JSON


def test_get_formatter_rejects_unknown():
    with pytest.raises(ValidationError):
        get_formatter("decimal")
    with pytest.raises(ValidationError):
        get_formatter(int)


def test_decimal_nan_is_rejected_by_integer():
    with pytest.raises(ValidationError):
        INTEGER(Decimal("NaN"))
