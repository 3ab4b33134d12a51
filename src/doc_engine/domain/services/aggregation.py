"""Aggregation pipeline.

A pipeline is an ordered list of stages, each transforming the record
stream produced by the previous one. Stage specifications use the familiar
document-database shape::

    [
        {"$match": {"genre": "Technology"}},
        {"$group": {"_id": "$author", "count": {"$sum": 1}}},
        {"$sort": {"count": -1}},
        {"$limit": 1},
        {"$project": {"author": "$_id", "count": 1, "_id": 0}},
    ]

The whole pipeline is compiled up front so malformed stages are rejected
before any record is read. At run time, $match, $addFields, $project,
$skip and $limit stream lazily; $group and $sort consume their whole input
before emitting anything.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from itertools import islice
from typing import Any, Union

from doc_engine.domain.services.expressions import (
    Expression,
    LiteralValue,
    compile_expression,
    evaluate_expression,
)
from doc_engine.domain.services.filter_evaluator import CompiledFilter, compile_filter
from doc_engine.domain.services.result_shaper import (
    SortKey,
    check_count,
    compile_sort,
    projection_flag,
    sort_records,
)
from doc_engine.domain.value_objects import ABSENT, ID_FIELD, is_number, sort_key
from doc_engine.ports.inbound.query_engine import InvalidSpecificationError

Record = dict[str, Any]


class Stage(ABC):
    """Base class for pipeline stages."""

    name: str = ""

    @abstractmethod
    def apply(self, records: Iterable[Record]) -> Iterator[Record]:
        """Transform the upstream records."""


@dataclass(frozen=True)
class MatchStage(Stage):
    """Keep records satisfying a filter."""

    filter: CompiledFilter
    name = "$match"

    def apply(self, records: Iterable[Record]) -> Iterator[Record]:
        return (record for record in records if self.filter.matches(record))


@dataclass(frozen=True)
class AddFieldsStage(Stage):
    """Add or overwrite computed fields.

    All expressions see the incoming record, not each other's results. A
    plain reference to a missing field leaves the target field out.
    """

    fields: tuple[tuple[str, Expression], ...]
    name = "$addFields"

    def apply(self, records: Iterable[Record]) -> Iterator[Record]:
        for record in records:
            output = dict(record)
            for target, expression in self.fields:
                value = expression.evaluate(record)
                if value is ABSENT:
                    continue
                output[target] = value
            yield output


@dataclass(frozen=True)
class Accumulator:
    """One group output field, e.g. ``{"avgPrice": {"$avg": "$price"}}``."""

    target: str
    op: str
    argument: Expression

    def compute(self, records: list[Record]) -> Any:
        if self.op == "count":
            return len(records)

        values = [evaluate_expression(self.argument, record) for record in records]
        if self.op == "sum":
            return sum(v for v in values if is_number(v))
        if self.op == "avg":
            numbers = [v for v in values if is_number(v)]
            return sum(numbers) / len(numbers) if numbers else None

        present = [v for v in values if v is not None]
        if not present:
            return None
        chooser = min if self.op == "min" else max
        return chooser(present, key=sort_key)


ACCUMULATORS = ("sum", "avg", "min", "max", "count")


@dataclass(frozen=True)
class GroupStage(Stage):
    """Partition records by key and compute accumulators per partition.

    Keys are compared with the filter equality rules, so ``1`` and ``1.0``
    share a group while ``True`` does not, and null and missing keys fall
    into one group. Groups are emitted in first-seen order.
    """

    key: Expression | tuple[tuple[str, Expression], ...] | None
    accumulators: tuple[Accumulator, ...]
    name = "$group"

    def _key_of(self, record: Record) -> tuple[Any, tuple]:
        if self.key is None:
            return None, ()
        if isinstance(self.key, Expression):
            value = evaluate_expression(self.key, record)
            return value, sort_key(value)
        value = {name: evaluate_expression(expr, record) for name, expr in self.key}
        return value, tuple(sort_key(v) for v in value.values())

    def apply(self, records: Iterable[Record]) -> Iterator[Record]:
        groups: dict[tuple, tuple[Any, list[Record]]] = {}
        for record in records:
            value, encoded = self._key_of(record)
            if encoded not in groups:
                groups[encoded] = (value, [])
            groups[encoded][1].append(record)

        for value, members in groups.values():
            output: Record = {ID_FIELD: value}
            for accumulator in self.accumulators:
                output[accumulator.target] = accumulator.compute(members)
            yield output


@dataclass(frozen=True)
class ProjectStage(Stage):
    """Reshape records: keep, drop, rename or compute fields.

    Attributes:
        outputs: (name, expression) pairs for kept or computed fields; an
            expression of None means "copy the field if present".
        excluded: Fields to drop (exclusion mode).
        include_id: Whether ``_id`` is carried over.
    """

    outputs: tuple[tuple[str, Expression | None], ...] = ()
    excluded: tuple[str, ...] = ()
    include_id: bool = True
    name = "$project"

    @property
    def inclusive(self) -> bool:
        """Inclusion mode. A lone ``_id: 1`` keeps only the id."""
        return bool(self.outputs) or (not self.excluded and self.include_id)

    def apply(self, records: Iterable[Record]) -> Iterator[Record]:
        for record in records:
            if self.inclusive:
                yield self._include(record)
            else:
                dropped = set(self.excluded)
                if not self.include_id:
                    dropped.add(ID_FIELD)
                yield {k: v for k, v in record.items() if k not in dropped}

    def _include(self, record: Record) -> Record:
        output: Record = {}
        if self.include_id and ID_FIELD in record:
            output[ID_FIELD] = record[ID_FIELD]
        for target, expression in self.outputs:
            if expression is None:
                value = record.get(target, ABSENT)
            else:
                value = expression.evaluate(record)
            if value is not ABSENT:
                output[target] = value
        return output


@dataclass(frozen=True)
class SortStage(Stage):
    keys: tuple[SortKey, ...]
    name = "$sort"

    def apply(self, records: Iterable[Record]) -> Iterator[Record]:
        yield from sort_records(records, self.keys)


@dataclass(frozen=True)
class SkipStage(Stage):
    count: int
    name = "$skip"

    def apply(self, records: Iterable[Record]) -> Iterator[Record]:
        return islice(records, self.count, None)


@dataclass(frozen=True)
class LimitStage(Stage):
    count: int
    name = "$limit"

    def apply(self, records: Iterable[Record]) -> Iterator[Record]:
        return islice(records, self.count)


StageSpec = Union[Stage, Mapping[str, Any]]


def _compile_match(body: Any) -> Stage:
    return MatchStage(compile_filter(body))


def _compile_add_fields(body: Any) -> Stage:
    if not isinstance(body, Mapping) or not body:
        raise InvalidSpecificationError("$addFields needs a non-empty mapping")
    fields = []
    for target, spec in body.items():
        if not isinstance(target, str) or not target or target.startswith("$"):
            raise InvalidSpecificationError(f"Invalid $addFields target: {target!r}")
        if target == ID_FIELD:
            raise InvalidSpecificationError(f"$addFields cannot overwrite '{ID_FIELD}'")
        fields.append((target, compile_expression(spec)))
    return AddFieldsStage(tuple(fields))


def _compile_group_key(spec: Any) -> Expression | tuple[tuple[str, Expression], ...] | None:
    if spec is None:
        return None
    if isinstance(spec, Mapping) and spec and not any(
        isinstance(k, str) and k.startswith("$") for k in spec
    ):
        return tuple((name, compile_expression(expr)) for name, expr in spec.items())
    return compile_expression(spec)


def _compile_group(body: Any) -> Stage:
    if not isinstance(body, Mapping) or ID_FIELD not in body:
        raise InvalidSpecificationError(f"$group needs a mapping with an '{ID_FIELD}' key")

    accumulators = []
    for target, spec in body.items():
        if target == ID_FIELD:
            continue
        if not isinstance(spec, Mapping) or len(spec) != 1:
            raise InvalidSpecificationError(
                f"Accumulator for '{target}' must be a single-operator mapping"
            )
        (raw_op, argument), = spec.items()
        op = raw_op[1:] if isinstance(raw_op, str) and raw_op.startswith("$") else raw_op
        if op not in ACCUMULATORS:
            raise InvalidSpecificationError(f"Unknown accumulator '{raw_op}' for '{target}'")
        if op == "count":
            if argument not in ({}, None):
                raise InvalidSpecificationError("$count takes no argument")
            expression: Expression = LiteralValue(1)
        else:
            expression = compile_expression(argument)
        accumulators.append(Accumulator(target, op, expression))

    return GroupStage(_compile_group_key(body[ID_FIELD]), tuple(accumulators))


def _compile_project(body: Any) -> Stage:
    if not isinstance(body, Mapping) or not body:
        raise InvalidSpecificationError("$project needs a non-empty mapping")

    include_id = True
    outputs: list[tuple[str, Expression | None]] = []
    excluded: list[str] = []
    for target, spec in body.items():
        if not isinstance(target, str) or not target:
            raise InvalidSpecificationError(f"Invalid $project field: {target!r}")
        if isinstance(spec, (bool, int)):
            flag = projection_flag(target, spec)
            if target == ID_FIELD:
                include_id = flag
            elif flag:
                outputs.append((target, None))
            else:
                excluded.append(target)
        elif target == ID_FIELD:
            outputs.append((target, compile_expression(spec)))
            include_id = False
        else:
            outputs.append((target, compile_expression(spec)))

    if outputs and excluded:
        raise InvalidSpecificationError(
            f"Cannot mix inclusion and exclusion in $project (excluded {excluded})"
        )
    return ProjectStage(tuple(outputs), tuple(excluded), include_id)


def _compile_sort(body: Any) -> Stage:
    keys = compile_sort(body)
    if not keys:
        raise InvalidSpecificationError("$sort needs at least one key")
    return SortStage(keys)


def _compile_limit(body: Any) -> Stage:
    return LimitStage(check_count("$limit", body))


def _compile_skip(body: Any) -> Stage:
    return SkipStage(check_count("$skip", body))


_STAGE_COMPILERS = {
    "match": _compile_match,
    "addFields": _compile_add_fields,
    "set": _compile_add_fields,
    "group": _compile_group,
    "project": _compile_project,
    "sort": _compile_sort,
    "skip": _compile_skip,
    "limit": _compile_limit,
}


def compile_stage(spec: StageSpec) -> Stage:
    """Compile one stage specification.

    Raises:
        InvalidSpecificationError: For unknown stage types or bad bodies.
    """
    if isinstance(spec, Stage):
        return spec
    if not isinstance(spec, Mapping) or len(spec) != 1:
        raise InvalidSpecificationError(
            f"A stage must be a mapping with exactly one key, got {spec!r}"
        )
    (raw_name, body), = spec.items()
    name = raw_name[1:] if isinstance(raw_name, str) and raw_name.startswith("$") else raw_name
    compiler = _STAGE_COMPILERS.get(name)
    if compiler is None:
        raise InvalidSpecificationError(f"Unknown pipeline stage '{raw_name}'")
    return compiler(body)


@dataclass(frozen=True)
class AggregationPipeline:
    """A compiled, reusable pipeline.

    Built from stage specifications or Stage objects; every specification is
    compiled on construction.
    """

    stages: tuple[Stage, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if isinstance(self.stages, (str, bytes, Mapping)):
            raise InvalidSpecificationError("A pipeline must be a list of stages")
        object.__setattr__(self, "stages", tuple(compile_stage(spec) for spec in self.stages))

    @classmethod
    def compile(cls, specs: Sequence[StageSpec]) -> AggregationPipeline:
        return cls(specs)

    def run(self, records: Iterable[Any]) -> Iterator[Record]:
        """Stream records through every stage.

        ``records`` may hold Documents or plain mappings; each is turned
        into a fresh dict so stages never alias store data.
        """
        stream: Iterable[Record] = (_to_record(record) for record in records)
        for stage in self.stages:
            stream = stage.apply(stream)
        return iter(stream)


def _to_record(item: Any) -> Record:
    to_dict = getattr(item, "to_dict", None)
    return to_dict() if to_dict is not None else dict(item)
