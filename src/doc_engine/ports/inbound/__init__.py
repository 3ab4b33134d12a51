"""Inbound ports - API contracts for the document engine.

Inbound ports define the interfaces that callers use to store documents,
manage indexes and run queries or aggregations.
"""

from doc_engine.ports.inbound.document_store import (
    DocumentStore,
    DuplicateKeyError,
    NotFoundError,
)
from doc_engine.ports.inbound.index_manager import (
    IndexFieldSpec,
    IndexHandle,
    IndexManager,
    IndexStats,
)
from doc_engine.ports.inbound.query_engine import (
    InvalidSpecificationError,
    QueryEngine,
    QueryResult,
)

__all__ = [
    # Document Store
    "DocumentStore",
    "DuplicateKeyError",
    "NotFoundError",
    # Index Manager
    "IndexFieldSpec",
    "IndexHandle",
    "IndexManager",
    "IndexStats",
    # Query Engine
    "InvalidSpecificationError",
    "QueryEngine",
    "QueryResult",
]
