"""Identifiers and index descriptors for the document engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import NewType


DocumentId = NewType("DocumentId", int)
"""Unique identifier of a document. Monotonically increasing in insertion order."""

ID_FIELD = "_id"
"""Reserved field name that exposes a document's identifier."""

FIRST_DOCUMENT_ID = DocumentId(1)


@dataclass(frozen=True, slots=True)
class IndexField:
    """A single field of an index key.

    Attributes:
        name: The document field being indexed
        direction: 1 for ascending key order, -1 for descending

    Example:
        >>> IndexField("published_year", -1)
        published_year_-1
    """

    name: str
    direction: int = 1

    def __post_init__(self) -> None:
        """Validate the field descriptor."""
        if not self.name:
            raise ValueError("Index field name must not be empty")
        if self.direction not in (1, -1):
            raise ValueError(f"Index direction must be 1 or -1, got {self.direction}")

    def __repr__(self) -> str:
        return f"{self.name}_{self.direction}"


def index_name(fields: tuple[IndexField, ...]) -> str:
    """Derive the conventional index name, e.g. ``author_1_published_year_-1``."""
    return "_".join(repr(field) for field in fields)
