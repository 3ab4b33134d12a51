"""Query planning and execution.

The planner turns a compiled filter into one of two physical plans:

    IndexScan(index, bounds, residual)
        Bounds narrow the candidate set through an ordered index; the
        residual filter re-checks whatever the bounds do not cover.
    FullScan(filter)
        Every document in insertion order is tested against the filter.

Planning rule: for every index, measure the leftmost prefix of its fields
the filter constrains (equalities extend the prefix, a range closes it).
The longest prefix wins, ties go to the index created first, and a filter
that touches no index's leading field falls back to a full scan.

Execution returns the matching documents together with ExplainStats, which
mirror the "executionStats" an operator would inspect: keys examined,
documents examined and documents returned.
"""

from __future__ import annotations

import time
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

import structlog

from doc_engine.domain.entities.document import Document
from doc_engine.domain.services.filter_evaluator import CompiledFilter
from doc_engine.domain.services.index_manager import OrderedIndexManager, derive_bounds
from doc_engine.domain.services.ordered_index import IndexBounds
from doc_engine.domain.value_objects import DocumentId
from doc_engine.ports.inbound.index_manager import IndexHandle

logger = structlog.get_logger(__name__)


class PlanKind(Enum):
    """Physical plan kinds."""

    INDEX_SCAN = "IndexScan"
    FULL_SCAN = "FullScan"


@dataclass(frozen=True)
class IndexScan:
    """Index-assisted plan."""

    index: IndexHandle
    bounds: IndexBounds
    residual: CompiledFilter
    rejected: tuple[str, ...] = ()

    @property
    def kind(self) -> PlanKind:
        return PlanKind.INDEX_SCAN


@dataclass(frozen=True)
class FullScan:
    """Linear scan over the whole store."""

    filter: CompiledFilter

    @property
    def kind(self) -> PlanKind:
        return PlanKind.FULL_SCAN


ExecutionPlan = Union[IndexScan, FullScan]


@dataclass
class ExplainStats:
    """Execution statistics of one plan run.

    Attributes:
        plan_kind: IndexScan or FullScan.
        index_name: Index used, if any.
        fields_used: Index fields constrained by the bounds.
        bounds: Printable bounds per field.
        keys_examined: Index keys visited.
        candidates_examined: Documents considered before residual filtering.
        returned: Documents that satisfied the whole filter.
        cost: Logical cost estimate (documents examined).
        execution_time_ms: Wall time spent executing.
        rejected_indexes: Other indexes that could also have served the filter.
    """

    plan_kind: PlanKind
    index_name: str | None = None
    fields_used: tuple[str, ...] = ()
    bounds: dict[str, str] = field(default_factory=dict)
    keys_examined: int = 0
    candidates_examined: int = 0
    returned: int = 0
    cost: int = 0
    execution_time_ms: float = 0.0
    rejected_indexes: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan_kind": self.plan_kind.value,
            "index_name": self.index_name,
            "fields_used": list(self.fields_used),
            "bounds": dict(self.bounds),
            "keys_examined": self.keys_examined,
            "candidates_examined": self.candidates_examined,
            "returned": self.returned,
            "cost": self.cost,
            "execution_time_ms": self.execution_time_ms,
            "rejected_indexes": list(self.rejected_indexes),
        }


class QueryPlanner:
    """Plans and executes filters against one snapshot of the store.

    A planner is cheap to build; the collection creates one per read so the
    document map and the index manager always come from the same snapshot.
    """

    def __init__(
        self,
        documents: Mapping[DocumentId, Document],
        index_manager: OrderedIndexManager,
    ) -> None:
        self._documents = documents
        self._index_manager = index_manager

    def plan(self, filter_spec: CompiledFilter) -> ExecutionPlan:
        """Choose the plan for a compiled filter."""
        if filter_spec.is_empty:
            return FullScan(filter_spec)

        best = None
        usable: list[str] = []
        for index in self._index_manager.indexes:
            bounds, covered = derive_bounds(index.fields, filter_spec)
            if bounds.prefix_length == 0:
                continue
            usable.append(index.name)
            # Strictly greater keeps the earliest index on ties
            if best is None or bounds.prefix_length > best[1].prefix_length:
                best = (index, bounds, covered)

        if best is None:
            logger.debug("query_planned", plan_kind=PlanKind.FULL_SCAN.value)
            return FullScan(filter_spec)

        index, bounds, covered = best
        logger.debug(
            "query_planned",
            plan_kind=PlanKind.INDEX_SCAN.value,
            index=index.name,
            fields_used=list(bounds.fields_used),
        )
        return IndexScan(
            index=index.handle,
            bounds=bounds,
            residual=filter_spec.without(covered),
            rejected=tuple(name for name in usable if name != index.name),
        )

    def execute(self, plan: ExecutionPlan) -> tuple[Iterator[Document], ExplainStats]:
        """Run a plan.

        Returns:
            Iterator over matching documents (index key order for index
            scans, insertion order for full scans) and the run's statistics.

        Raises:
            KeyError: If an index scan names an index missing from this snapshot.
        """
        started = time.perf_counter()

        if isinstance(plan, IndexScan):
            index = self._index_manager.get(plan.index.name)
            if index is None:
                raise KeyError(f"Index '{plan.index.name}' not present in snapshot")
            scan = index.scan(plan.bounds)
            candidates = [self._documents[document_id] for document_id in scan.document_ids]
            matches = [doc for doc in candidates if plan.residual.matches(doc)]
            stats = ExplainStats(
                plan_kind=plan.kind,
                index_name=index.name,
                fields_used=plan.bounds.fields_used,
                bounds=plan.bounds.describe(),
                keys_examined=scan.keys_examined,
                candidates_examined=len(candidates),
                returned=len(matches),
                cost=len(candidates),
                rejected_indexes=plan.rejected,
            )
        else:
            candidates = list(self._documents.values())
            matches = [doc for doc in candidates if plan.filter.matches(doc)]
            stats = ExplainStats(
                plan_kind=plan.kind,
                candidates_examined=len(candidates),
                returned=len(matches),
                cost=len(candidates),
            )

        stats.execution_time_ms = (time.perf_counter() - started) * 1000.0
        return iter(matches), stats
