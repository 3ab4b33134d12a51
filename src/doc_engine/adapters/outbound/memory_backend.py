"""In-memory persistence backend adapter.

A simple in-memory implementation of PersistenceBackend for tests and
embedding. Data is not persisted across restarts.

Usage:
    backend = InMemoryBackend()
    collection = DocumentCollection(backend=backend)
    collection.insert({"title": "Paper Boats"})
    restored = DocumentCollection(backend=backend)
"""

from __future__ import annotations

from collections.abc import Iterable

from doc_engine.domain.entities.document import Document
from doc_engine.domain.value_objects import DocumentId


class InMemoryBackend:
    """In-memory implementation of PersistenceBackend.

    Keeps the latest version of every document keyed by id. Useful for
    testing restart behaviour without touching disk.
    """

    def __init__(self, documents: Iterable[Document] = ()) -> None:
        """Initialize storage, optionally pre-seeded."""
        self._documents: dict[DocumentId, Document] = {doc.id: doc for doc in documents}
        self.persist_count = 0
        self.remove_count = 0

    def load(self) -> list[Document]:
        """Return stored documents in id order."""
        return [self._documents[doc_id] for doc_id in sorted(self._documents)]

    def persist(self, document: Document) -> None:
        """Store the latest version of a document."""
        self._documents[document.id] = document
        self.persist_count += 1

    def remove(self, document_id: DocumentId) -> None:
        """Forget a document. Unknown ids are ignored."""
        self._documents.pop(document_id, None)
        self.remove_count += 1

    def clear(self) -> None:
        """Clear all stored data."""
        self._documents.clear()

    def __len__(self) -> int:
        """Number of stored documents."""
        return len(self._documents)
