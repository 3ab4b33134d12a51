"""Ordered secondary index.

Each index keeps a sorted list of distinct encoded keys plus a posting map
from key to the ascending tuple of document ids holding that key. Keys are
tuples with one component per indexed field; a component is the field's
sort_key(), wrapped in _Descending for fields indexed with direction -1 so
plain tuple comparison yields the declared key order.

Lookups follow the leftmost-prefix rule: bisect to the first key carrying
the equality prefix and the start of the range window on the next
component, then walk forward until the prefix changes or the window ends.

Indexes are mutated only on private clones (see OrderedIndex.clone), so a
published index is never changed underneath a reader.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from functools import total_ordering
from typing import Any, Iterator

from doc_engine.domain.services.filter_evaluator import Range, RangeOp
from doc_engine.domain.value_objects import (
    DocumentId,
    IndexField,
    key_value,
    kind_of,
    sort_key,
)
from doc_engine.ports.inbound.document_store import DuplicateKeyError
from doc_engine.ports.inbound.index_manager import IndexHandle, IndexStats


@total_ordering
class _Descending:
    """Key component that sorts in reverse."""

    __slots__ = ("key",)

    def __init__(self, key: tuple) -> None:
        self.key = key

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, _Descending):
            return NotImplemented
        return self.key == other.key

    def __lt__(self, other: _Descending) -> bool:
        return other.key < self.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        return f"desc{self.key!r}"


def encode_component(value: Any, direction: int) -> Any:
    """Encode one field value for an index key."""
    key = sort_key(value)
    return key if direction == 1 else _Descending(key)


def decode_component(component: Any) -> Any:
    """Recover the field value from an encoded key component."""
    key = component.key if isinstance(component, _Descending) else component
    return key_value(key)


Boundary = tuple[Any, bool]
"""An encoded key component plus whether the bound is inclusive."""


def _tighter(current: Boundary, candidate: Boundary, lower: bool) -> Boundary:
    (key, inclusive), (new_key, new_inclusive) = current, candidate
    if key == new_key:
        return key, inclusive and new_inclusive
    if (new_key > key) == lower:
        return candidate
    return current


def range_window(
    conditions: tuple[Range, ...], direction: int
) -> tuple[Boundary, Boundary] | None:
    """Translate range conditions into start and stop components for a scan.

    Ranges only match values of the operand's kind, so a window never leaves
    that kind's block of keys.

    Returns:
        (start, stop) in scan order, or None when no key can match.
    """
    kinds = {kind_of(condition.value) for condition in conditions}
    if len(kinds) != 1:
        return None
    kind = kinds.pop()
    if not kind.is_orderable():
        return None

    rank = kind.sort_rank
    low: Boundary = ((rank,), True)
    high: Boundary = ((rank + 1,), False)
    for condition in conditions:
        key = sort_key(condition.value)
        if condition.op in (RangeOp.GT, RangeOp.GTE):
            low = _tighter(low, (key, condition.op is RangeOp.GTE), lower=True)
        else:
            high = _tighter(high, (key, condition.op is RangeOp.LTE), lower=False)

    if low[0] > high[0] or (low[0] == high[0] and not (low[1] and high[1])):
        return None
    if direction == 1:
        return low, high
    return (_Descending(high[0]), high[1]), (_Descending(low[0]), low[1])



@dataclass(frozen=True)
class IndexBounds:
    """Bounds an index scan applies.

    Attributes:
        equalities: (field, value) pairs pinning a leading prefix of the index
        range_field: Field directly after the prefix constrained by ranges
        range_conditions: Range conditions on ``range_field``
    """

    equalities: tuple[tuple[str, Any], ...] = ()
    range_field: str | None = None
    range_conditions: tuple[Range, ...] = field(default_factory=tuple)

    @property
    def fields_used(self) -> tuple[str, ...]:
        names = tuple(name for name, _ in self.equalities)
        if self.range_field is not None:
            names += (self.range_field,)
        return names

    @property
    def prefix_length(self) -> int:
        return len(self.fields_used)

    def describe(self) -> dict[str, str]:
        """Human readable bounds, e.g. ``{"published_year": "> 2015"}``."""
        described = {name: f"== {value!r}" for name, value in self.equalities}
        if self.range_field is not None:
            described[self.range_field] = " and ".join(str(c) for c in self.range_conditions)
        return described


@dataclass
class ScanResult:
    """Output of an index scan."""

    document_ids: list[DocumentId]
    keys_examined: int


class OrderedIndex:
    """A sorted index over one or more document fields.

    Attributes:
        name: Index name (derived from the field list).
        fields: Indexed fields with their directions.
        unique: Whether two documents may share a key.
    """

    def __init__(self, name: str, fields: tuple[IndexField, ...], unique: bool = False) -> None:
        self.name = name
        self.fields = fields
        self.unique = unique
        self._keys: list[tuple] = []
        self._postings: dict[tuple, tuple[DocumentId, ...]] = {}
        self._num_entries = 0

    @property
    def handle(self) -> IndexHandle:
        return IndexHandle(name=self.name, fields=self.fields, unique=self.unique)

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    @property
    def stats(self) -> IndexStats:
        return IndexStats(
            name=self.name,
            num_keys=len(self._keys),
            num_entries=self._num_entries,
            unique=self.unique,
        )

    def __len__(self) -> int:
        return self._num_entries

    def clone(self) -> OrderedIndex:
        """Copy for modification. Posting tuples are immutable and shared."""
        copy = OrderedIndex(self.name, self.fields, self.unique)
        copy._keys = list(self._keys)
        copy._postings = dict(self._postings)
        copy._num_entries = self._num_entries
        return copy

    def key_for(self, record: Any) -> tuple:
        """Compute the encoded key for a document (missing fields index as null)."""
        return tuple(encode_component(record.get(f.name), f.direction) for f in self.fields)

    def raw_key(self, key: tuple) -> tuple:
        return tuple(decode_component(component) for component in key)

    def conflicts(self, document_id: DocumentId, key: tuple) -> bool:
        """Check whether storing ``key`` for ``document_id`` breaks uniqueness."""
        if not self.unique:
            return False
        holders = self._postings.get(key, ())
        return any(holder != document_id for holder in holders)

    def add(self, document_id: DocumentId, key: tuple) -> None:
        """Add an entry.

        Raises:
            DuplicateKeyError: If the index is unique and the key is taken.
        """
        if self.conflicts(document_id, key):
            raise DuplicateKeyError(self.name, self.raw_key(key))

        holders = self._postings.get(key)
        if holders is None:
            bisect.insort(self._keys, key)
            self._postings[key] = (document_id,)
        else:
            ids = list(holders)
            bisect.insort(ids, document_id)
            self._postings[key] = tuple(ids)
        self._num_entries += 1

    def remove(self, document_id: DocumentId, key: tuple) -> bool:
        """Remove an entry. Returns False if it was not present."""
        holders = self._postings.get(key)
        if holders is None or document_id not in holders:
            return False

        remaining = tuple(holder for holder in holders if holder != document_id)
        if remaining:
            self._postings[key] = remaining
        else:
            del self._postings[key]
            position = bisect.bisect_left(self._keys, key)
            del self._keys[position]
        self._num_entries -= 1
        return True

    def scan(self, bounds: IndexBounds) -> ScanResult:
        """Collect document ids within the bounds, in key order."""
        document_ids: list[DocumentId] = []
        keys_examined = 0
        for key, holders in self._walk(bounds):
            keys_examined += 1
            if holders:
                document_ids.extend(holders)
        return ScanResult(document_ids=document_ids, keys_examined=keys_examined)

    def _walk(self, bounds: IndexBounds) -> Iterator[tuple[tuple, tuple[DocumentId, ...]]]:
        prefix = tuple(
            encode_component(value, index_field.direction)
            for (_, value), index_field in zip(bounds.equalities, self.fields)
        )
        depth = len(prefix)
        if not bounds.range_conditions:
            start = stop = None
            position = bisect.bisect_left(self._keys, prefix)
        else:
            window = range_window(bounds.range_conditions, self.fields[depth].direction)
            if window is None:
                return
            start, stop = window
            position = bisect.bisect_left(self._keys, prefix + (start[0],))

        while position < len(self._keys):
            key = self._keys[position]
            if key[:depth] != prefix:
                break
            position += 1

            if start is not None:
                component = key[depth]
                if component == start[0] and not start[1]:
                    continue
                if component > stop[0] or (component == stop[0] and not stop[1]):
                    break
            yield key, self._postings[key]

    def entries(self) -> Iterator[tuple[tuple, DocumentId]]:
        """Iterate every (raw key, document id) pair in key order."""
        for key in self._keys:
            raw = self.raw_key(key)
            for document_id in self._postings[key]:
                yield raw, document_id
