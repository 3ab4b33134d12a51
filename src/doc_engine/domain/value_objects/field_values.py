"""Tagged field values for schema-less documents.

Every value stored in a document belongs to exactly one ValueKind. All
comparison, ordering and key-encoding rules used by filters, indexes,
sorting and grouping are defined here over that tag set, so the different
execution paths can never disagree about what "equal" or "less than" means.

Rules:
    - Equality requires the same kind (1 == 1.0, but True != 1).
    - Range comparisons only succeed within one orderable kind; null and
      absent values never compare.
    - Total sort order: null/absent < numbers < strings < booleans.
    - Objects only arise inside aggregation (compound group keys); they
      sort last and are never orderable by range operators.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any


class _Absent:
    """Marker for a field that does not exist in a document."""

    _instance: _Absent | None = None

    def __new__(cls) -> _Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "ABSENT"


ABSENT: Any = _Absent()


class ValueKind(Enum):
    """Kinds of values a document field may hold."""

    ABSENT = "absent"
    NULL = "null"
    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    OBJECT = "object"

    @property
    def sort_rank(self) -> int:
        """Position of this kind in the cross-kind sort order."""
        return _SORT_RANK[self]

    def is_orderable(self) -> bool:
        """Check if range operators apply to values of this kind."""
        return self in (ValueKind.NUMBER, ValueKind.STRING, ValueKind.BOOLEAN)


_SORT_RANK = {
    ValueKind.ABSENT: 0,
    ValueKind.NULL: 0,
    ValueKind.NUMBER: 1,
    ValueKind.STRING: 2,
    ValueKind.BOOLEAN: 3,
    ValueKind.OBJECT: 4,
}


def kind_of(value: Any) -> ValueKind:
    """Classify a value.

    Raises:
        TypeError: If the value is not a supported scalar.
    """
    if value is ABSENT:
        return ValueKind.ABSENT
    if value is None:
        return ValueKind.NULL
    # bool is a subclass of int, so test it first
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, Mapping):
        return ValueKind.OBJECT
    raise TypeError(f"Unsupported field value type: {type(value).__name__}")


def is_scalar(value: Any) -> bool:
    """Check if a value may be stored in a document field."""
    return value is None or isinstance(value, (bool, int, float, str))


def is_number(value: Any) -> bool:
    """Check for a numeric value, excluding booleans."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def values_equal(left: Any, right: Any) -> bool:
    """Equality under the per-kind rules.

    Null and absent are only equal to themselves here; the filter layer
    decides whether ``None`` in a query also matches a missing field.
    """
    left_kind = kind_of(left)
    if left_kind != kind_of(right):
        return False
    if left_kind in (ValueKind.NULL, ValueKind.ABSENT):
        return True
    return bool(left == right)


def compare_values(left: Any, right: Any) -> int | None:
    """Three-way comparison within a single orderable kind.

    Returns:
        -1, 0 or 1, or None when the values are not comparable.
    """
    left_kind = kind_of(left)
    if left_kind != kind_of(right) or not left_kind.is_orderable():
        return None
    if left < right:
        return -1
    if left > right:
        return 1
    return 0


def sort_key(value: Any) -> tuple:
    """Total-order key used by sorting, index keys and group keys.

    Keys are hashable and compare equal exactly when values_equal() holds,
    with null and absent collapsed together.
    """
    kind = kind_of(value)
    if kind in (ValueKind.NULL, ValueKind.ABSENT):
        return (kind.sort_rank,)
    if kind is ValueKind.OBJECT:
        return (kind.sort_rank, tuple((name, sort_key(v)) for name, v in value.items()))
    return (kind.sort_rank, value)


def key_value(key: tuple) -> Any:
    """Recover the field value from a sort_key() tuple."""
    return None if len(key) == 1 else key[1]
