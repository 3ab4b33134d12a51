"""Document collection - the engine's main entry point.

A DocumentCollection owns the documents, their secondary indexes and the
read paths over them (queries, explain and aggregation).

Usage:
    from doc_engine.application import DocumentCollection

    books = DocumentCollection("books")
    books.create_index([("author", 1), ("published_year", -1)])
    books.insert({"title": "Python Patterns", "author": "Jamie Lee", ...})

    result = books.query({"genre": "Technology", "published_year": {"$gt": 2015}})
    result.records      # shaped dicts
    result.stats        # ExplainStats of the plan that ran

Thread Safety:
    Writers are serialized by a lock. Each write builds a new state (document
    map plus index manager) and publishes it with a single assignment, so a
    reader that grabbed the state keeps a consistent snapshot for as long as
    it likes and never blocks a writer.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator, Mapping, Sequence, ValuesView
from dataclasses import dataclass
from typing import Any

from doc_engine.domain.entities.document import Document, validate_fields
from doc_engine.domain.services.aggregation import AggregationPipeline
from doc_engine.domain.services.filter_evaluator import CompiledFilter, compile_filter
from doc_engine.domain.services.index_manager import OrderedIndexManager, normalize_index_fields
from doc_engine.domain.services.query_planner import (
    ExecutionPlan,
    ExplainStats,
    QueryPlanner,
)
from doc_engine.domain.services.result_shaper import (
    check_count,
    compile_projection,
    compile_sort,
    shape,
)
from doc_engine.domain.value_objects import FIRST_DOCUMENT_ID, ID_FIELD, DocumentId, index_name
from doc_engine.infrastructure.logging import get_logger
from doc_engine.infrastructure.metrics import MetricsRegistry, get_metrics
from doc_engine.infrastructure.tracing import trace_span
from doc_engine.ports.inbound.document_store import DuplicateKeyError, NotFoundError
from doc_engine.ports.inbound.index_manager import IndexFieldSpec, IndexHandle, IndexStats
from doc_engine.ports.inbound.query_engine import InvalidSpecificationError, QueryResult
from doc_engine.ports.outbound.persistence_backend import PersistenceBackend

UPDATE_OPERATORS = ("$set", "$unset")


@dataclass(frozen=True)
class _CollectionState:
    """One published snapshot. The documents dict is never mutated once published."""

    documents: dict[DocumentId, Document]
    indexes: OrderedIndexManager
    next_id: DocumentId

    def planner(self) -> QueryPlanner:
        return QueryPlanner(self.documents, self.indexes)


def _parse_changes(changes: Mapping[str, Any]) -> tuple[dict[str, Any], tuple[str, ...]]:
    """Split an update into fields to set and fields to remove.

    Accepts a plain field mapping (treated as ``$set``) or an operator
    document ``{"$set": {...}, "$unset": [...]}``; ``$unset`` may also be a
    mapping whose keys are the fields to remove.
    """
    if not isinstance(changes, Mapping) or not changes:
        raise InvalidSpecificationError("An update needs a non-empty mapping of changes")

    operator_keys = [k for k in changes if isinstance(k, str) and k.startswith("$")]
    if not operator_keys:
        return validate_fields(changes), ()
    if len(operator_keys) != len(changes):
        raise InvalidSpecificationError("Cannot mix update operators with plain fields")

    unknown = [k for k in operator_keys if k not in UPDATE_OPERATORS]
    if unknown:
        raise InvalidSpecificationError(f"Unknown update operator(s): {unknown}")

    set_fields = changes.get("$set", {})
    if not isinstance(set_fields, Mapping):
        raise InvalidSpecificationError("$set needs a mapping of fields")

    raw_unset = changes.get("$unset", ())
    if isinstance(raw_unset, str):
        raise InvalidSpecificationError("$unset needs a list or mapping of field names")
    unset_fields = tuple(raw_unset.keys() if isinstance(raw_unset, Mapping) else raw_unset)
    for name in unset_fields:
        if not isinstance(name, str) or not name:
            raise InvalidSpecificationError(f"Invalid $unset field: {name!r}")
        if name == ID_FIELD:
            raise InvalidSpecificationError(f"Cannot unset '{ID_FIELD}'")
        if name in set_fields:
            raise InvalidSpecificationError(f"Field '{name}' is both set and unset")

    if not set_fields and not unset_fields:
        raise InvalidSpecificationError("An update needs at least one field to change")
    return validate_fields(set_fields), unset_fields


class DocumentCollection:
    """An in-memory collection of documents with secondary indexes.

    Implements the DocumentStore, IndexManager and QueryEngine ports.

    Attributes:
        name: Collection name, used in logs and metric labels.
    """

    def __init__(
        self,
        name: str = "books",
        backend: PersistenceBackend | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Create a collection, loading any documents the backend holds.

        Args:
            name: Collection name.
            backend: Optional persistence backend mirrored on every write.
            metrics: Metrics registry (defaults to the global one).

        Raises:
            ValueError: If the backend yields duplicate or invalid ids.
        """
        self.name = name
        self._backend = backend
        self._metrics = metrics or get_metrics()
        self._logger = get_logger(__name__, collection=name)
        self._write_lock = threading.Lock()
        self._state = self._load(backend)
        self._update_gauges(self._state)

    def _load(self, backend: PersistenceBackend | None) -> _CollectionState:
        documents: dict[DocumentId, Document] = {}
        if backend is not None:
            for document in sorted(backend.load(), key=lambda d: d.id):
                if document.id < FIRST_DOCUMENT_ID:
                    raise ValueError(f"Invalid document id {document.id} in backend")
                if document.id in documents:
                    raise ValueError(f"Duplicate document id {document.id} in backend")
                documents[document.id] = document
            self._logger.info("backend_loaded", documents=len(documents))

        next_id = DocumentId(max(documents, default=FIRST_DOCUMENT_ID - 1) + 1)
        return _CollectionState(documents, OrderedIndexManager(), next_id)

    # -- Snapshot helpers ---------------------------------------------------

    def _publish(self, state: _CollectionState) -> None:
        # Single reference assignment; readers see either the old or new state
        self._state = state
        self._update_gauges(state)

    def _update_gauges(self, state: _CollectionState) -> None:
        self._metrics.documents.labels(collection=self.name).set(len(state.documents))
        self._metrics.indexes.labels(collection=self.name).set(len(state.indexes))

    def _count_operation(self, operation: str, status: str) -> None:
        self._metrics.operations_total.labels(operation=operation, status=status).inc()

    def _first_match(self, state: _CollectionState, compiled: CompiledFilter) -> Document | None:
        """First matching document in insertion (ascending id) order."""
        planner = state.planner()
        matches, _ = planner.execute(planner.plan(compiled))
        return min(matches, key=lambda document: document.id, default=None)

    # -- DocumentStore ------------------------------------------------------

    def insert(self, fields: Mapping[str, Any]) -> DocumentId:
        """Insert a new document and return its id.

        Raises:
            DuplicateKeyError: If a unique index already holds the key.
            InvalidSpecificationError: If the fields are malformed.
        """
        with self._write_lock:
            state = self._state
            document = Document.new(state.next_id, fields)
            try:
                indexes = state.indexes.on_insert(document)
            except DuplicateKeyError as e:
                self._logger.warning("duplicate_key_rejected", index=e.index_name, key=list(e.key))
                self._count_operation("insert", "error")
                raise

            documents = dict(state.documents)
            documents[document.id] = document
            self._publish(_CollectionState(documents, indexes, DocumentId(document.id + 1)))
            if self._backend is not None:
                self._backend.persist(document)

        self._count_operation("insert", "success")
        return document.id

    def insert_many(self, documents: Iterable[Mapping[str, Any]]) -> list[DocumentId]:
        """Insert documents one at a time.

        Each insert is atomic on its own; a failure leaves the earlier
        documents in place.
        """
        return [self.insert(fields) for fields in documents]

    def update_one(self, filter_spec: Mapping[str, Any] | None, changes: Mapping[str, Any]) -> bool:
        """Change fields on the first document matching the filter.

        Args:
            filter_spec: Filter selecting the document.
            changes: ``{"price": 13.99}`` or
                ``{"$set": {"price": 13.99}, "$unset": ["in_stock"]}``.

        Returns:
            True if a document matched, False otherwise.

        Raises:
            DuplicateKeyError: If the change collides with a unique index.
            InvalidSpecificationError: If the filter or changes are malformed.
        """
        compiled = compile_filter(filter_spec)
        set_fields, unset_fields = _parse_changes(changes)

        with self._write_lock:
            state = self._state
            current = self._first_match(state, compiled)
            if current is None:
                self._count_operation("update", "no_match")
                return False

            updated = current.with_changes(set_fields, unset_fields)
            try:
                indexes = state.indexes.on_update(current, updated)
            except DuplicateKeyError as e:
                self._logger.warning("duplicate_key_rejected", index=e.index_name, key=list(e.key))
                self._count_operation("update", "error")
                raise

            documents = dict(state.documents)
            documents[updated.id] = updated
            self._publish(_CollectionState(documents, indexes, state.next_id))
            if self._backend is not None:
                self._backend.persist(updated)

        self._count_operation("update", "success")
        return True

    def delete_one(self, filter_spec: Mapping[str, Any] | None) -> bool:
        """Delete the first document matching the filter.

        Returns:
            True if a document was deleted, False otherwise.
        """
        compiled = compile_filter(filter_spec)

        with self._write_lock:
            state = self._state
            victim = self._first_match(state, compiled)
            if victim is None:
                self._count_operation("delete", "no_match")
                return False

            documents = dict(state.documents)
            del documents[victim.id]
            self._publish(
                _CollectionState(documents, state.indexes.on_delete(victim), state.next_id)
            )
            if self._backend is not None:
                self._backend.remove(victim.id)

        self._count_operation("delete", "success")
        return True

    def get(self, document_id: DocumentId) -> Document:
        """Get a document by id.

        Raises:
            NotFoundError: If no document has this id.
        """
        document = self._state.documents.get(document_id)
        if document is None:
            raise NotFoundError(f"No document with id {document_id}")
        return document

    def find_one(
        self,
        filter_spec: Mapping[str, Any] | None = None,
        projection: Mapping[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Return the first matching record in insertion order, or None."""
        records = self.query(filter_spec, projection=projection, limit=1).records
        return records[0] if records else None

    def all(self) -> ValuesView[Document]:
        """Every document of the current snapshot, in insertion order.

        The view is restartable and unaffected by later writes.
        """
        return self._state.documents.values()

    def count(self, filter_spec: Mapping[str, Any] | None = None) -> int:
        """Count documents, optionally only those matching a filter."""
        state = self._state
        if filter_spec is None:
            return len(state.documents)
        planner = state.planner()
        _, stats = planner.execute(planner.plan(compile_filter(filter_spec)))
        return stats.returned

    def __len__(self) -> int:
        return len(self._state.documents)

    def __iter__(self) -> Iterator[Document]:
        return iter(self.all())

    # -- IndexManager -------------------------------------------------------

    def create_index(self, fields: IndexFieldSpec, unique: bool = False) -> IndexHandle:
        """Create an index over ``fields`` and build it from current documents.

        Idempotent on the field list: asking again for the same fields and
        directions returns the existing handle.

        Raises:
            DuplicateKeyError: If ``unique`` and existing documents collide.
            InvalidSpecificationError: If the field list is malformed.
        """
        normalized = normalize_index_fields(fields)

        with self._write_lock:
            state = self._state
            existing = state.indexes.find(normalized)
            if existing is not None:
                if existing.unique != unique:
                    self._logger.warning(
                        "index_exists_with_other_options",
                        index=existing.name,
                        unique=existing.unique,
                    )
                return existing.handle

            try:
                indexes, index = state.indexes.with_index(
                    normalized, unique, state.documents.values()
                )
            except DuplicateKeyError as e:
                self._logger.warning(
                    "index_build_failed", index=e.index_name, key=list(e.key)
                )
                self._count_operation("create_index", "error")
                raise

            self._publish(_CollectionState(state.documents, indexes, state.next_id))

        self._logger.info(
            "index_created",
            index=index.name,
            fields=list(index.field_names),
            unique=unique,
            entries=len(index),
        )
        self._count_operation("create_index", "success")
        return index.handle

    def drop_index(self, index: IndexHandle | str) -> bool:
        """Drop an index by handle or name.

        Returns:
            True if dropped, False if no such index exists.
        """
        name = index.name if isinstance(index, IndexHandle) else index

        with self._write_lock:
            state = self._state
            if state.indexes.get(name) is None:
                self._count_operation("drop_index", "no_match")
                return False
            self._publish(
                _CollectionState(state.documents, state.indexes.without_index(name), state.next_id)
            )

        self._logger.info("index_dropped", index=name)
        self._count_operation("drop_index", "success")
        return True

    def lookup(self, fields: IndexFieldSpec, bound_spec: Mapping[str, Any]) -> list[DocumentId]:
        """Probe the index over exactly ``fields`` with filter-style bounds.

        Returns:
            Document ids in the index's key order.

        Raises:
            NotFoundError: If no index exists over ``fields``.
            InvalidSpecificationError: If the bounds are not prefix-servable.
        """
        normalized = normalize_index_fields(fields)
        result = self._state.indexes.lookup(normalized, bound_spec)
        self._metrics.index_lookups_total.labels(index_name=index_name(normalized)).inc()
        return result.document_ids

    def list_indexes(self) -> list[IndexHandle]:
        """Index handles in creation order."""
        return self._state.indexes.handles()

    def index_stats(self) -> list[IndexStats]:
        return self._state.indexes.stats()

    # -- QueryEngine --------------------------------------------------------

    def plan(self, filter_spec: Mapping[str, Any] | CompiledFilter | None) -> ExecutionPlan:
        """Choose a plan for the filter against the current snapshot."""
        return self._state.planner().plan(compile_filter(filter_spec))

    def execute(self, plan: ExecutionPlan) -> tuple[Iterator[Document], ExplainStats]:
        """Run a plan against the current snapshot.

        Raises:
            KeyError: If the plan's index was dropped since planning.
        """
        matches, stats = self._state.planner().execute(plan)
        self._record_plan(stats)
        return matches, stats

    def _record_plan(self, stats: ExplainStats) -> None:
        self._metrics.query_plans_total.labels(plan_kind=stats.plan_kind.value).inc()
        if stats.index_name is not None:
            self._metrics.index_lookups_total.labels(index_name=stats.index_name).inc()

    def _run(self, state: _CollectionState, compiled: CompiledFilter) -> tuple[list[Document], ExplainStats]:
        planner = state.planner()
        plan = planner.plan(compiled)
        matches, stats = planner.execute(plan)
        self._record_plan(stats)
        return list(matches), stats

    def query(
        self,
        filter_spec: Mapping[str, Any] | None = None,
        projection: Mapping[str, Any] | None = None,
        sort: Mapping[str, Any] | Sequence[Any] | None = None,
        skip: int = 0,
        limit: int | None = None,
    ) -> QueryResult:
        """Filter, sort, paginate and project documents.

        Without a sort, records come back in insertion order whichever plan
        ran. Ties under a sort also keep insertion order.

        Raises:
            InvalidSpecificationError: If any argument is malformed. Every
                argument is validated before a document is read.
        """
        compiled = compile_filter(filter_spec)
        compiled_projection = compile_projection(projection)
        sort_keys = compile_sort(sort)
        check_count("skip", skip)
        check_count("limit", limit, optional=True)

        state = self._state
        with trace_span(
            "collection.query",
            {"collection": self.name, "filter": compiled.describe()},
        ) as span:
            with self._metrics.query_latency_seconds.labels(query_type="query").time():
                matches, stats = self._run(state, compiled)
                if stats.index_name is not None:
                    # Index scans yield key order; restore insertion order
                    matches.sort(key=lambda document: document.id)
                records = shape(matches, compiled_projection, sort_keys, skip, limit)
            span.set_attribute("plan_kind", stats.plan_kind.value)
            span.set_attribute("returned", len(records))

        self._count_operation("query", "success")
        return QueryResult(records, stats)

    def explain(self, filter_spec: Mapping[str, Any] | None = None) -> ExplainStats:
        """Plan and run a filter, returning only the statistics."""
        compiled = compile_filter(filter_spec)
        state = self._state
        with trace_span("collection.explain", {"collection": self.name}) as span:
            with self._metrics.query_latency_seconds.labels(query_type="explain").time():
                _, stats = self._run(state, compiled)
            span.set_attribute("plan_kind", stats.plan_kind.value)
        self._count_operation("explain", "success")
        return stats

    def aggregate(self, stages: Sequence[Any]) -> list[dict[str, Any]]:
        """Run an aggregation pipeline over the current snapshot.

        Raises:
            InvalidSpecificationError: If any stage is malformed. The whole
                pipeline is compiled before a document is read.
        """
        pipeline = AggregationPipeline.compile(stages)
        state = self._state
        with trace_span(
            "collection.aggregate",
            {"collection": self.name, "stages": len(pipeline.stages)},
        ) as span:
            with self._metrics.query_latency_seconds.labels(query_type="aggregate").time():
                output = list(pipeline.run(state.documents.values()))
            span.set_attribute("returned", len(output))
        self._count_operation("aggregate", "success")
        return output

    def __repr__(self) -> str:
        state = self._state
        return (
            f"DocumentCollection(name={self.name!r}, documents={len(state.documents)}, "
            f"indexes={len(state.indexes)})"
        )
