"""Outbound ports - dependencies of the document engine on external systems."""

from doc_engine.ports.outbound.persistence_backend import PersistenceBackend

__all__ = ["PersistenceBackend"]
