"""Outbound port for an optional persistence backend.

The engine gives no durability guarantees of its own. A backend, when
supplied, seeds the store at startup and is told about every mutation
after it has been applied in memory.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from doc_engine.domain.value_objects import DocumentId

if TYPE_CHECKING:
    from doc_engine.domain.entities.document import Document


@runtime_checkable
class PersistenceBackend(Protocol):
    """Protocol for document persistence."""

    def load(self) -> Iterable[Document]:
        """Load every stored document.

        Returns:
            Documents with their previously assigned identifiers
        """
        ...

    def persist(self, document: Document) -> None:
        """Store a newly inserted or updated document.

        Args:
            document: The document as it now exists in the store
        """
        ...

    def remove(self, document_id: DocumentId) -> None:
        """Forget a deleted document.

        Args:
            document_id: Identifier of the deleted document
        """
        ...
