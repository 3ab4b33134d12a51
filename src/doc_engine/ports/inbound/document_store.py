"""Document Store port.

This inbound port defines the contract for owning documents: identity
assignment, single-document mutation and snapshot iteration.

Key responsibilities:
- Assign stable identifiers on insert
- Apply update/delete to the first match in insertion order
- Keep indexes consistent with every mutation
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Iterable, Mapping, ValuesView
from typing import TYPE_CHECKING, Any, Protocol

from doc_engine.domain.value_objects import DocumentId

if TYPE_CHECKING:
    from doc_engine.domain.entities.document import Document


class DocumentStore(Protocol):
    """Protocol for the document store.

    Thread Safety:
        Writers are serialized. Readers observe a point-in-time snapshot
        and never block writers.
    """

    @abstractmethod
    def insert(self, fields: Mapping[str, Any]) -> DocumentId:
        """Insert a new document.

        Args:
            fields: Field name to scalar value mapping.

        Returns:
            The identifier assigned to the document.

        Raises:
            DuplicateKeyError: If a unique index already holds the key.
            InvalidSpecificationError: If a field value is not a scalar.
        """
        ...

    @abstractmethod
    def update_one(self, filter_spec: Mapping[str, Any], changes: Mapping[str, Any]) -> bool:
        """Replace fields on the first document matching the filter.

        Returns:
            True if a document matched, False otherwise.
        """
        ...

    @abstractmethod
    def delete_one(self, filter_spec: Mapping[str, Any]) -> bool:
        """Delete the first document matching the filter.

        Returns:
            True if a document matched, False otherwise.
        """
        ...

    @abstractmethod
    def get(self, document_id: DocumentId) -> Document:
        """Get a document by identifier.

        Raises:
            NotFoundError: If no document has this identifier.
        """
        ...

    @abstractmethod
    def all(self) -> ValuesView[Document]:
        """Return a restartable view over a snapshot of every document."""
        ...


class NotFoundError(LookupError):
    """Raised when a document or index does not exist."""

    pass


class DuplicateKeyError(Exception):
    """Raised when a write would violate a unique index."""

    def __init__(self, index_name: str, key: Iterable[Any]) -> None:
        self.index_name = index_name
        self.key = tuple(key)
        super().__init__(f"Duplicate key {self.key!r} for unique index '{index_name}'")
