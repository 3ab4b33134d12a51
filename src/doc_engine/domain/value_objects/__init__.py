"""Value objects for the document engine domain.

Value objects are immutable types that represent domain concepts.
They have no identity - two value objects with the same attributes are equal.

Exports:
    Identifiers:
        - DocumentId: Type-safe document identifier
        - ID_FIELD: Reserved identifier field name
        - IndexField: One (field, direction) component of an index key

    Field Values:
        - ABSENT: Marker for a missing field
        - ValueKind: Tag set over document values
        - kind_of, values_equal, compare_values, sort_key: Per-kind rules
"""

from doc_engine.domain.value_objects.field_values import (
    ABSENT,
    ValueKind,
    compare_values,
    is_number,
    is_scalar,
    key_value,
    kind_of,
    sort_key,
    values_equal,
)
from doc_engine.domain.value_objects.identifiers import (
    FIRST_DOCUMENT_ID,
    ID_FIELD,
    DocumentId,
    IndexField,
    index_name,
)

__all__ = [
    # Identifiers
    "DocumentId",
    "FIRST_DOCUMENT_ID",
    "ID_FIELD",
    "IndexField",
    "index_name",
    # Field values
    "ABSENT",
    "ValueKind",
    "compare_values",
    "is_number",
    "is_scalar",
    "key_value",
    "kind_of",
    "sort_key",
    "values_equal",
]
