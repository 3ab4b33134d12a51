"""Outbound adapters - implementations of outbound ports."""

from doc_engine.adapters.outbound.memory_backend import InMemoryBackend

__all__ = [
    "InMemoryBackend",
]
