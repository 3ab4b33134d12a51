"""Index Manager port for ordered secondary indexes.

Indexes are derived, rebuildable state kept consistent with the store on
every write. A compound index serves the leftmost-prefix of its fields:
equality on a prefix, optionally followed by a range on the next field.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, Union

from doc_engine.domain.value_objects import DocumentId, IndexField

IndexFieldSpec = Union[Sequence[Union[str, tuple[str, int]]], Mapping[str, int]]
"""Accepted index field lists: ``["title"]``, ``[("year", -1)]`` or ``{"year": -1}``."""


@dataclass(frozen=True)
class IndexHandle:
    """Public handle for a created index."""

    name: str
    fields: tuple[IndexField, ...]
    unique: bool = False

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(field.name for field in self.fields)


@dataclass
class IndexStats:
    """Statistics for index monitoring."""

    name: str
    num_keys: int
    num_entries: int
    unique: bool


class IndexManager(Protocol):
    """Protocol for creating, dropping and probing indexes."""

    @abstractmethod
    def create_index(self, fields: IndexFieldSpec, unique: bool = False) -> IndexHandle:
        """Create an index and build it from the current documents.

        Idempotent: an index over the same field list is returned as-is.

        Raises:
            DuplicateKeyError: If ``unique`` and existing documents collide.
            InvalidSpecificationError: If the field list is malformed.
        """
        ...

    @abstractmethod
    def drop_index(self, index: IndexHandle | str) -> bool:
        """Drop an index by handle or name.

        Returns:
            True if dropped, False if not found.
        """
        ...

    @abstractmethod
    def lookup(
        self, fields: IndexFieldSpec, bound_spec: Mapping[str, Any]
    ) -> list[DocumentId]:
        """Probe an index with equality/range bounds.

        Returns:
            Document ids in the index's key order.

        Raises:
            NotFoundError: If no index exists over ``fields``.
            InvalidSpecificationError: If the bounds are not prefix-servable.
        """
        ...

    @abstractmethod
    def list_indexes(self) -> list[IndexHandle]:
        """List indexes in creation order."""
        ...
