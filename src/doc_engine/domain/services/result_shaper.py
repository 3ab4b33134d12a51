"""Projection, sorting and pagination of result sequences.

Application order is fixed: sort, skip, limit, then projection. Projection
is purely cosmetic and never changes which records are returned or their
order.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from doc_engine.domain.entities.document import Document
from doc_engine.domain.value_objects import ABSENT, ID_FIELD, sort_key
from doc_engine.ports.inbound.query_engine import InvalidSpecificationError


class ProjectionMode(Enum):
    INCLUDE = "include"
    EXCLUDE = "exclude"


@dataclass(frozen=True)
class Projection:
    """A validated projection.

    Attributes:
        mode: Whether ``fields`` lists kept or dropped fields.
        fields: Field names (never ``_id``).
        include_id: Whether ``_id`` survives.
    """

    mode: ProjectionMode
    fields: tuple[str, ...]
    include_id: bool = True

    def apply(self, record: Mapping[str, Any]) -> dict[str, Any]:
        if self.mode is ProjectionMode.INCLUDE:
            wanted = set(self.fields)
            return {
                name: value
                for name, value in record.items()
                if name in wanted or (name == ID_FIELD and self.include_id)
            }
        dropped = set(self.fields)
        if not self.include_id:
            dropped.add(ID_FIELD)
        return {name: value for name, value in record.items() if name not in dropped}


@dataclass(frozen=True)
class SortKey:
    field: str
    direction: int = 1


def projection_flag(name: str, value: Any) -> bool:
    """Interpret a 1/0/True/False projection flag."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise InvalidSpecificationError(
        f"Projection value for '{name}' must be 0 or 1, got {value!r}"
    )


def compile_projection(spec: Mapping[str, Any] | Projection | None) -> Projection | None:
    """Validate a projection specification.

    Inclusion and exclusion flags may not be mixed, except that ``_id: 0``
    may accompany inclusions.

    Returns:
        The projection, or None for an empty specification.
    """
    if spec is None or isinstance(spec, Projection):
        return spec
    if not isinstance(spec, Mapping):
        raise InvalidSpecificationError(
            f"Projection must be a mapping, got {type(spec).__name__}"
        )
    if not spec:
        return None

    include_id = True
    included: list[str] = []
    excluded: list[str] = []
    for name, value in spec.items():
        if not isinstance(name, str) or not name:
            raise InvalidSpecificationError(f"Invalid projection field: {name!r}")
        flag = projection_flag(name, value)
        if name == ID_FIELD:
            include_id = flag
        elif flag:
            included.append(name)
        else:
            excluded.append(name)

    if included and excluded:
        raise InvalidSpecificationError(
            f"Cannot mix inclusion {included} and exclusion {excluded} in a projection"
        )
    if included:
        return Projection(ProjectionMode.INCLUDE, tuple(included), include_id)
    if excluded or not include_id:
        return Projection(ProjectionMode.EXCLUDE, tuple(excluded), include_id)
    # Only `_id: 1` was given
    return Projection(ProjectionMode.INCLUDE, (), include_id=True)


def compile_sort(spec: Mapping[str, Any] | Sequence[Any] | None) -> tuple[SortKey, ...]:
    """Validate a sort specification.

    Accepts ``{"price": -1, "title": 1}`` or ``[("price", -1), ("title", 1)]``.
    """
    if spec is None:
        return ()
    if isinstance(spec, (str, bytes)):
        raise InvalidSpecificationError("Sort must be a mapping or a list of pairs")

    pairs = spec.items() if isinstance(spec, Mapping) else spec
    keys: list[SortKey] = []
    for item in pairs:
        if isinstance(item, SortKey):
            keys.append(item)
            continue
        try:
            name, direction = item
        except (TypeError, ValueError):
            raise InvalidSpecificationError(f"Invalid sort entry: {item!r}") from None
        if not isinstance(name, str) or not name:
            raise InvalidSpecificationError(f"Invalid sort field: {name!r}")
        if isinstance(direction, bool) or direction not in (1, -1):
            raise InvalidSpecificationError(
                f"Sort direction for '{name}' must be 1 or -1, got {direction!r}"
            )
        keys.append(SortKey(name, direction))
    return tuple(keys)


def check_count(name: str, value: Any, optional: bool = False) -> int | None:
    """Validate a skip/limit count."""
    if value is None and optional:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidSpecificationError(f"{name} must be a non-negative integer, got {value!r}")
    return value


def sort_records(records: Iterable[Any], keys: Sequence[SortKey]) -> list[Any]:
    """Stable multi-key sort.

    Sorting by the least significant key first and relying on sort
    stability gives the full lexicographic order with ties kept in input
    order.
    """
    ordered = list(records)
    for key in reversed(keys):
        ordered.sort(
            key=lambda record, name=key.field: sort_key(record.get(name, ABSENT)),
            reverse=key.direction == -1,
        )
    return ordered


def _as_record(item: Any) -> dict[str, Any]:
    return item.to_dict() if isinstance(item, Document) else dict(item)


def shape(
    records: Iterable[Any],
    projection: Mapping[str, Any] | Projection | None = None,
    sort: Mapping[str, Any] | Sequence[Any] | None = None,
    skip: int = 0,
    limit: int | None = None,
) -> list[dict[str, Any]]:
    """Sort, paginate and project a result sequence.

    Args:
        records: Documents or record mappings.
        projection: Projection specification.
        sort: Sort specification.
        skip: Records to drop from the front.
        limit: Maximum records to return (None for no limit).

    Returns:
        Plain record dicts.

    Raises:
        InvalidSpecificationError: If any argument is malformed.
    """
    compiled_projection = compile_projection(projection)
    sort_keys = compile_sort(sort)
    skip = check_count("skip", skip)
    limit = check_count("limit", limit, optional=True)

    ordered = sort_records(records, sort_keys) if sort_keys else list(records)
    end = None if limit is None else skip + limit
    page = ordered[skip:end]

    shaped = [_as_record(item) for item in page]
    if compiled_projection is None:
        return shaped
    return [compiled_projection.apply(record) for record in shaped]
