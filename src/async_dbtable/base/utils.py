import logging
from dataclasses import asdict, is_dataclass
from typing import Any, Dict, Mapping

logger = logging.getLogger(__name__)


class _Undefined:
    """
    Marker for "no value at all", as opposed to ``None`` (SQL NULL).

    In a condition it means "IS NOT NULL"; in a row or default it means the
    key is omitted.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


UNDEFINED: Any = _Undefined()


def to_record(data: Any) -> Dict[str, Any]:
    """
    Convert a record-like object into a plain dict keyed by column name.

    It handles:
    - Mappings (copied)
    - Python dataclasses
    - Pydantic models (``model_dump`` with aliases, falling back to ``dict``)
    - Plain objects exposing ``__dict__``

    Args:
        data: The object to convert

    Returns:
        A new dict; the input is never modified.
    """
    if data is None:
        return {}

    if isinstance(data, Mapping):
        return dict(data)

    if is_dataclass(data) and not isinstance(data, type):
        return asdict(data)

    if hasattr(data, "model_dump") and callable(getattr(data, "model_dump")):
        # Python-mode dump keeps datetimes as datetimes for the formatters
        return data.model_dump(by_alias=True)

    if hasattr(data, "dict") and callable(getattr(data, "dict")):
        logger.debug(f"Using legacy dict() for {type(data).__name__}")
        return data.dict(by_alias=True)

    if hasattr(data, "__dict__"):
        return {k: v for k, v in vars(data).items() if not k.startswith("_")}

    raise TypeError(f"Cannot convert {type(data).__name__} to a record")
