"""Index manager over ordered indexes.

The manager is an immutable value: every maintenance call returns a new
manager whose touched indexes are fresh clones, leaving the original
untouched. The collection publishes the new manager together with the new
document map, so readers always see documents and indexes that agree.

Uniqueness is checked across all indexes before any of them is modified,
which keeps a failed write from leaving indexes half-updated.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from doc_engine.domain.entities.document import Document
from doc_engine.domain.services.filter_evaluator import CompiledFilter, Condition, compile_filter
from doc_engine.domain.services.ordered_index import IndexBounds, OrderedIndex, ScanResult
from doc_engine.domain.value_objects import IndexField, index_name
from doc_engine.ports.inbound.document_store import DuplicateKeyError, NotFoundError
from doc_engine.ports.inbound.index_manager import IndexFieldSpec, IndexHandle, IndexStats
from doc_engine.ports.inbound.query_engine import InvalidSpecificationError


def normalize_index_fields(spec: IndexFieldSpec | Sequence[IndexField]) -> tuple[IndexField, ...]:
    """Normalize the accepted field-list shapes into IndexField tuples.

    Raises:
        InvalidSpecificationError: On empty lists, bad directions or repeats.
    """
    if isinstance(spec, (str, bytes)):
        raise InvalidSpecificationError("Index fields must be a list or mapping, not a string")

    items: Iterable[Any] = spec.items() if isinstance(spec, Mapping) else spec
    fields: list[IndexField] = []
    try:
        for item in items:
            if isinstance(item, IndexField):
                fields.append(item)
            elif isinstance(item, str):
                fields.append(IndexField(item))
            else:
                name, direction = item
                if isinstance(direction, bool) or not isinstance(name, str):
                    raise ValueError(f"Invalid index field {item!r}")
                fields.append(IndexField(name, direction))
    except (TypeError, ValueError) as e:
        raise InvalidSpecificationError(f"Invalid index specification: {e}") from e

    if not fields:
        raise InvalidSpecificationError("An index needs at least one field")
    names = [f.name for f in fields]
    if len(set(names)) != len(names):
        raise InvalidSpecificationError(f"Duplicate field in index specification: {names}")
    return tuple(fields)


def derive_bounds(
    fields: tuple[IndexField, ...], filter_spec: CompiledFilter
) -> tuple[IndexBounds, dict[str, tuple[Condition, ...]]]:
    """Work out how much of a filter an index can enforce.

    Walks the index fields left to right: an equality extends the prefix,
    a range ends it, anything else stops it.

    Returns:
        The bounds and the conditions they cover, keyed by field.
    """
    equalities: list[tuple[str, Any]] = []
    covered: dict[str, tuple[Condition, ...]] = {}

    for index_field in fields:
        predicate = filter_spec.predicate_for(index_field.name)
        if predicate is None:
            break
        equality = predicate.equality
        if equality is not None:
            equalities.append((index_field.name, equality.value))
            covered[index_field.name] = (equality,)
            continue
        ranges = predicate.ranges
        if ranges:
            covered[index_field.name] = ranges
            return (
                IndexBounds(tuple(equalities), index_field.name, ranges),
                covered,
            )
        break

    return IndexBounds(tuple(equalities)), covered


class OrderedIndexManager:
    """Immutable collection of ordered indexes in creation order."""

    def __init__(self, indexes: tuple[OrderedIndex, ...] = ()) -> None:
        self._indexes = indexes

    @property
    def indexes(self) -> tuple[OrderedIndex, ...]:
        return self._indexes

    def __len__(self) -> int:
        return len(self._indexes)

    def handles(self) -> list[IndexHandle]:
        return [index.handle for index in self._indexes]

    def stats(self) -> list[IndexStats]:
        return [index.stats for index in self._indexes]

    def find(self, fields: tuple[IndexField, ...]) -> OrderedIndex | None:
        for index in self._indexes:
            if index.fields == fields:
                return index
        return None

    def get(self, name: str) -> OrderedIndex | None:
        for index in self._indexes:
            if index.name == name:
                return index
        return None

    def with_index(
        self,
        fields: tuple[IndexField, ...],
        unique: bool,
        documents: Iterable[Document],
    ) -> tuple[OrderedIndexManager, OrderedIndex]:
        """Build a new index from the given documents and add it.

        Raises:
            DuplicateKeyError: If ``unique`` and two documents share a key.
        """
        index = OrderedIndex(index_name(fields), fields, unique)
        for document in documents:
            index.add(document.id, index.key_for(document))
        return OrderedIndexManager(self._indexes + (index,)), index

    def without_index(self, name: str) -> OrderedIndexManager:
        return OrderedIndexManager(tuple(i for i in self._indexes if i.name != name))

    def on_insert(self, document: Document) -> OrderedIndexManager:
        """Return a manager that also indexes ``document``."""
        keys = [index.key_for(document) for index in self._indexes]
        self._check_unique(document, keys)

        updated = []
        for index, key in zip(self._indexes, keys):
            clone = index.clone()
            clone.add(document.id, key)
            updated.append(clone)
        return OrderedIndexManager(tuple(updated))

    def on_delete(self, document: Document) -> OrderedIndexManager:
        """Return a manager without any entry for ``document``."""
        updated = []
        for index in self._indexes:
            clone = index.clone()
            clone.remove(document.id, index.key_for(document))
            updated.append(clone)
        return OrderedIndexManager(tuple(updated))

    def on_update(self, old: Document, new: Document) -> OrderedIndexManager:
        """Return a manager reflecting ``old`` replaced by ``new``.

        Indexes whose key did not change are shared, not cloned.
        """
        old_keys = [index.key_for(old) for index in self._indexes]
        new_keys = [index.key_for(new) for index in self._indexes]
        self._check_unique(new, new_keys)

        updated = []
        for index, old_key, new_key in zip(self._indexes, old_keys, new_keys):
            if old_key == new_key:
                updated.append(index)
                continue
            clone = index.clone()
            clone.remove(old.id, old_key)
            clone.add(new.id, new_key)
            updated.append(clone)
        return OrderedIndexManager(tuple(updated))

    def _check_unique(self, document: Document, keys: list[tuple]) -> None:
        for index, key in zip(self._indexes, keys):
            if index.conflicts(document.id, key):
                raise DuplicateKeyError(index.name, index.raw_key(key))

    def lookup(
        self,
        fields: tuple[IndexField, ...],
        bound_spec: Mapping[str, Any] | CompiledFilter,
    ) -> ScanResult:
        """Scan the index over ``fields`` with bounds given in filter syntax.

        Raises:
            NotFoundError: If no index covers exactly these fields.
            InvalidSpecificationError: If some bound cannot be served by the
                index's leftmost prefix.
        """
        index = self.find(fields)
        if index is None:
            raise NotFoundError(f"No index on {index_name(fields)}")

        compiled = compile_filter(bound_spec)
        bounds, covered = derive_bounds(index.fields, compiled)
        leftover = compiled.without(covered)
        if not leftover.is_empty:
            raise InvalidSpecificationError(
                f"Bounds {leftover.describe()} cannot be served by index '{index.name}'"
            )
        return index.scan(bounds)
