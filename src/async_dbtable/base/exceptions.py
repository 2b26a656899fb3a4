# src/async_dbtable/base/exceptions.py
from typing import Any, Dict, Optional


class SqlError(Exception):
    """Base class for every error raised by the table layer."""

    errno: int = 40099

    def __init__(self, message: str = "SQL operation failed.", errno: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if errno is not None:
            self.errno = errno


class ValidationError(SqlError, ValueError):
    """Exception raised for malformed input: bad values, operators or columns."""

    errno = 40097

    def __init__(self, message: str = "Invalid arguments.", errno: Optional[int] = None):
        super().__init__(message, errno)


class ConflictError(SqlError):
    """Exception raised when more than one row matched where one was required."""

    errno = 40095

    def __init__(self, message: str = "Expected one or no row, got several.", errno: Optional[int] = None):
        super().__init__(message, errno)


class NotFoundError(SqlError):
    """Exception raised when no row matched where exactly one was required."""

    errno = 40490
    status = 404

    def __init__(self, message: str = "The requested row was not found.", errno: Optional[int] = None):
        super().__init__(message, errno)

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "code": self.errno, "message": self.message}


class DbIOError(SqlError):
    """Opaque failure surfaced by the database driver."""

    errno = 50099

    def __init__(self, message: str = "Database driver error.", errno: Optional[int] = None):
        super().__init__(message, errno)


class KeyAlreadyExistsError(DbIOError):
    """Exception raised when an insert would violate a unique constraint."""

    errno = 40999

    def __init__(self, message: str = "A row with the same key already exists.", errno: Optional[int] = None):
        super().__init__(message, errno)


class DbcNotFoundError(SqlError):
    errno = 50094

    def __init__(self, dbc_name: str):
        super().__init__(f"[DbcRegistry] no dbc configured under name <{dbc_name}>")
        self.dbc_name = dbc_name
