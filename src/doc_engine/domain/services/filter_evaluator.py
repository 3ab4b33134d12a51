"""Filter compilation and evaluation.

A filter specification is a mapping of field name to either a literal
(equality) or an operator object::

    {"genre": "Technology", "published_year": {"$gt": 2015}}

Specifications are parsed once into a CompiledFilter - a conjunction of
FieldPredicates, each holding Equals, Range or NotEquals conditions - and
rejected immediately if malformed. The compiled tree is what both the
planner's residual filter and the aggregation Match stage evaluate.

Operator names may be written with or without a leading ``$``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from doc_engine.domain.value_objects import (
    ABSENT,
    ValueKind,
    compare_values,
    is_scalar,
    kind_of,
    values_equal,
)
from doc_engine.ports.inbound.query_engine import InvalidSpecificationError


class RangeOp(Enum):
    """Ordering operators."""

    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"

    @property
    def symbol(self) -> str:
        return _RANGE_SYMBOLS[self]

    def accepts(self, comparison: int) -> bool:
        """Check a three-way comparison result against this operator."""
        if self is RangeOp.GT:
            return comparison > 0
        if self is RangeOp.GTE:
            return comparison >= 0
        if self is RangeOp.LT:
            return comparison < 0
        return comparison <= 0


_RANGE_SYMBOLS = {
    RangeOp.GT: ">",
    RangeOp.GTE: ">=",
    RangeOp.LT: "<",
    RangeOp.LTE: "<=",
}


@dataclass(frozen=True)
class Equals:
    """Field equals a literal. ``None`` matches null and absent fields."""

    value: Any

    def matches(self, candidate: Any) -> bool:
        if self.value is None:
            return kind_of(candidate) in (ValueKind.NULL, ValueKind.ABSENT)
        return values_equal(candidate, self.value)

    def __str__(self) -> str:
        return f"== {self.value!r}"


@dataclass(frozen=True)
class Range:
    """Field is ordered relative to a literal of the same kind."""

    op: RangeOp
    value: Any

    def matches(self, candidate: Any) -> bool:
        comparison = compare_values(candidate, self.value)
        if comparison is None:
            return False
        return self.op.accepts(comparison)

    def __str__(self) -> str:
        return f"{self.op.symbol} {self.value!r}"


@dataclass(frozen=True)
class NotEquals:
    """Negated equality. Absent fields match unless the operand is ``None``."""

    value: Any

    def matches(self, candidate: Any) -> bool:
        return not Equals(self.value).matches(candidate)

    def __str__(self) -> str:
        return f"!= {self.value!r}"


Condition = Union[Equals, Range, NotEquals]


@dataclass(frozen=True)
class FieldPredicate:
    """All conditions that apply to one field."""

    field: str
    conditions: tuple[Condition, ...]

    def matches(self, record: Any) -> bool:
        value = record.get(self.field, ABSENT)
        return all(condition.matches(value) for condition in self.conditions)

    @property
    def equality(self) -> Equals | None:
        """First equality condition, if any."""
        for condition in self.conditions:
            if isinstance(condition, Equals):
                return condition
        return None

    @property
    def ranges(self) -> tuple[Range, ...]:
        return tuple(c for c in self.conditions if isinstance(c, Range))


@dataclass(frozen=True)
class CompiledFilter:
    """A validated conjunction of field predicates."""

    predicates: tuple[FieldPredicate, ...] = field(default_factory=tuple)

    def matches(self, record: Any) -> bool:
        """Evaluate against a Document or a plain record mapping."""
        return all(predicate.matches(record) for predicate in self.predicates)

    @property
    def is_empty(self) -> bool:
        return not self.predicates

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(predicate.field for predicate in self.predicates)

    def predicate_for(self, name: str) -> FieldPredicate | None:
        for predicate in self.predicates:
            if predicate.field == name:
                return predicate
        return None

    def without(self, covered: Mapping[str, tuple[Condition, ...]]) -> CompiledFilter:
        """Drop conditions already enforced elsewhere (e.g. by index bounds)."""
        remaining = []
        for predicate in self.predicates:
            skip = covered.get(predicate.field, ())
            conditions = tuple(c for c in predicate.conditions if c not in skip)
            if conditions:
                remaining.append(FieldPredicate(predicate.field, conditions))
        return CompiledFilter(tuple(remaining))

    def describe(self) -> dict[str, list[str]]:
        return {p.field: [str(c) for c in p.conditions] for p in self.predicates}


def normalize_operator(name: Any) -> str:
    """Strip the optional ``$`` prefix from an operator name."""
    if not isinstance(name, str):
        raise InvalidSpecificationError(f"Operator names must be strings, got {name!r}")
    return name[1:] if name.startswith("$") else name


def _check_operand(field_name: str, value: Any) -> Any:
    if not is_scalar(value):
        raise InvalidSpecificationError(
            f"Filter value for '{field_name}' must be a scalar, got {type(value).__name__}"
        )
    return value


def _compile_operators(field_name: str, operators: Mapping[Any, Any]) -> tuple[Condition, ...]:
    if not operators:
        raise InvalidSpecificationError(f"Empty operator object for field '{field_name}'")

    conditions: list[Condition] = []
    for raw_name, operand in operators.items():
        name = normalize_operator(raw_name)
        operand = _check_operand(field_name, operand)
        if name == "eq":
            conditions.append(Equals(operand))
        elif name == "ne":
            conditions.append(NotEquals(operand))
        else:
            try:
                op = RangeOp(name)
            except ValueError:
                raise InvalidSpecificationError(
                    f"Unknown operator '{raw_name}' for field '{field_name}'"
                ) from None
            conditions.append(Range(op, operand))
    return tuple(conditions)


def compile_filter(spec: Mapping[str, Any] | CompiledFilter | None) -> CompiledFilter:
    """Parse and validate a filter specification.

    Args:
        spec: Filter mapping, an already compiled filter, or None for "match all".

    Returns:
        The compiled filter.

    Raises:
        InvalidSpecificationError: If the specification is malformed.
    """
    if spec is None:
        return CompiledFilter()
    if isinstance(spec, CompiledFilter):
        return spec
    if not isinstance(spec, Mapping):
        raise InvalidSpecificationError(
            f"Filter must be a mapping, got {type(spec).__name__}"
        )

    predicates = []
    for field_name, criterion in spec.items():
        if not isinstance(field_name, str) or not field_name:
            raise InvalidSpecificationError(f"Invalid filter field: {field_name!r}")
        if field_name.startswith("$"):
            raise InvalidSpecificationError(f"Unknown top-level operator '{field_name}'")

        if isinstance(criterion, Mapping):
            conditions = _compile_operators(field_name, criterion)
        else:
            conditions = (Equals(_check_operand(field_name, criterion)),)
        predicates.append(FieldPredicate(field_name, conditions))

    return CompiledFilter(tuple(predicates))


def evaluate(document: Any, filter_spec: Mapping[str, Any] | CompiledFilter | None) -> bool:
    """Check whether a document satisfies a filter.

    Pure and deterministic; the document is never modified.
    """
    return compile_filter(filter_spec).matches(document)
