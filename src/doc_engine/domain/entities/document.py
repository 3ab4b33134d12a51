"""Document entity.

A Document is an immutable snapshot of one record: its identifier plus a
read-only mapping of scalar fields. Updates never mutate a Document in
place; they produce a replacement carrying the same identifier, which is
what lets readers hold on to a store snapshot while writers move on.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from doc_engine.domain.value_objects import ABSENT, ID_FIELD, DocumentId, is_scalar
from doc_engine.ports.inbound.query_engine import InvalidSpecificationError


def validate_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Check a field mapping and return a private copy of it.

    Raises:
        InvalidSpecificationError: On non-string names, the reserved ``_id``
            field, or values that are not scalars.
    """
    if not isinstance(fields, Mapping):
        raise InvalidSpecificationError(
            f"Document fields must be a mapping, got {type(fields).__name__}"
        )
    checked: dict[str, Any] = {}
    for name, value in fields.items():
        if not isinstance(name, str) or not name:
            raise InvalidSpecificationError(f"Invalid field name: {name!r}")
        if name == ID_FIELD:
            raise InvalidSpecificationError(f"'{ID_FIELD}' is assigned by the store")
        if not is_scalar(value):
            raise InvalidSpecificationError(
                f"Field '{name}' has unsupported value type {type(value).__name__}"
            )
        checked[name] = value
    return checked


@dataclass(frozen=True)
class Document:
    """A stored record.

    Attributes:
        id: Identifier assigned by the store at insertion
        fields: Read-only field mapping (never contains ``_id``)
    """

    id: DocumentId
    fields: Mapping[str, Any]

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    @classmethod
    def new(cls, document_id: DocumentId, fields: Mapping[str, Any]) -> Document:
        """Create a document from caller-supplied fields after validating them."""
        return cls(id=document_id, fields=validate_fields(fields))

    def get(self, name: str, default: Any = ABSENT) -> Any:
        """Read a field, resolving ``_id`` to the identifier.

        Returns ``default`` (ABSENT unless given) for missing fields, so a
        Document can be used wherever a plain record mapping is expected.
        """
        if name == ID_FIELD:
            return self.id
        return self.fields.get(name, default)

    def with_changes(
        self,
        set_fields: Mapping[str, Any],
        unset_fields: Iterable[str] = (),
    ) -> Document:
        """Return a copy with fields replaced and removed, keeping the id."""
        merged = dict(self.fields)
        merged.update(validate_fields(set_fields))
        for name in unset_fields:
            merged.pop(name, None)
        return Document(id=self.id, fields=merged)

    def to_dict(self) -> dict[str, Any]:
        """Render as a plain record with ``_id`` first."""
        return {ID_FIELD: self.id, **self.fields}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Document):
            return NotImplemented
        return self.id == other.id and dict(self.fields) == dict(other.fields)

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        pairs = ", ".join(f"{k}={v!r}" for k, v in self.fields.items())
        return f"Document({self.id}: {pairs})"
