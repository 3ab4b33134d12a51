"""Application layer for the document engine.

Exports:
    DocumentCollection: Store, index manager and query engine in one object
    create_collection: Build a collection from configuration
"""

from doc_engine.application.bootstrap import create_collection
from doc_engine.application.collection import DocumentCollection

__all__ = [
    "DocumentCollection",
    "create_collection",
]
