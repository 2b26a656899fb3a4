# tests/base/test_exceptions.py

import pytest

from async_dbtable.base.exceptions import (
    ConflictError,
    DbcNotFoundError,
    DbIOError,
    KeyAlreadyExistsError,
    NotFoundError,
    SqlError,
    ValidationError,
)


@pytest.mark.parametrize(
    "error_cls, errno",
    [
        (SqlError, 40099),
        (ValidationError, 40097),
        (ConflictError, 40095),
        (NotFoundError, 40490),
        (DbIOError, 50099),
        (KeyAlreadyExistsError, 40999),
    ],
)
def test_default_error_codes(error_cls, errno):
    error = error_cls()
    assert error.errno == errno
    assert isinstance(error, SqlError)
    assert error.message


def test_errno_override_is_per_instance():
    error = NotFoundError("missing", errno=40400)
    assert error.errno == 40400
    assert NotFoundError().errno == 40490


def test_not_found_to_dict():
    error = NotFoundError("[DataNotFound] <users:{}>", errno=40400)
    assert error.to_dict() == {
        "status": 404,
        "code": 40400,
        "message": "[DataNotFound] <users:{}>",
    }


def test_validation_error_is_a_value_error():
    with pytest.raises(ValueError):
        raise ValidationError("bad")


def test_key_already_exists_is_an_io_error():
    assert issubclass(KeyAlreadyExistsError, DbIOError)


def test_dbc_not_found_names_the_handle():
    error = DbcNotFoundError("reports")
    assert error.errno == 50094
    assert error.dbc_name == "reports"
    assert "reports" in str(error)
