"""Ports layer - interface definitions following Hexagonal Architecture.

Ports are abstract interfaces (protocols) that define contracts:
- Inbound ports: APIs offered to callers (DocumentStore, IndexManager, QueryEngine)
- Outbound ports: Dependencies on external systems (PersistenceBackend)

Adapters and the application layer implement these ports.
"""

from doc_engine.ports.inbound import (
    DocumentStore,
    DuplicateKeyError,
    IndexFieldSpec,
    IndexHandle,
    IndexManager,
    IndexStats,
    InvalidSpecificationError,
    NotFoundError,
    QueryEngine,
    QueryResult,
)
from doc_engine.ports.outbound import PersistenceBackend

__all__ = [
    # Inbound ports
    "DocumentStore",
    "DuplicateKeyError",
    "IndexFieldSpec",
    "IndexHandle",
    "IndexManager",
    "IndexStats",
    "InvalidSpecificationError",
    "NotFoundError",
    "QueryEngine",
    "QueryResult",
    # Outbound ports
    "PersistenceBackend",
]
