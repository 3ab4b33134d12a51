"""Query Engine port: planning, querying, explain and aggregation."""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Iterator, Mapping, Sequence
from typing import TYPE_CHECKING, Any, NamedTuple, Protocol

if TYPE_CHECKING:
    from doc_engine.domain.entities.document import Document
    from doc_engine.domain.services.query_planner import ExecutionPlan, ExplainStats


class QueryResult(NamedTuple):
    """Shaped query output plus the statistics of the plan that produced it."""

    records: list[dict[str, Any]]
    stats: ExplainStats


class QueryEngine(Protocol):
    """Protocol for read operations over a collection snapshot.

    Malformed specifications raise InvalidSpecificationError before any
    document is read.
    """

    @abstractmethod
    def plan(self, filter_spec: Mapping[str, Any] | None) -> ExecutionPlan:
        """Choose between an index-assisted and a full-scan plan."""
        ...

    @abstractmethod
    def execute(self, plan: ExecutionPlan) -> tuple[Iterator[Document], ExplainStats]:
        """Run a plan against the current snapshot."""
        ...

    @abstractmethod
    def query(
        self,
        filter_spec: Mapping[str, Any] | None = None,
        projection: Mapping[str, Any] | None = None,
        sort: Any = None,
        skip: int = 0,
        limit: int | None = None,
    ) -> QueryResult:
        """Filter, sort, paginate and project documents."""
        ...

    @abstractmethod
    def explain(self, filter_spec: Mapping[str, Any] | None = None) -> ExplainStats:
        """Plan and execute a filter, returning only its statistics."""
        ...

    @abstractmethod
    def aggregate(self, stages: Sequence[Any]) -> list[dict[str, Any]]:
        """Run an aggregation pipeline over the current snapshot."""
        ...


class InvalidSpecificationError(ValueError):
    """Raised for malformed filters, projections, sorts, indexes or pipelines."""

    pass
