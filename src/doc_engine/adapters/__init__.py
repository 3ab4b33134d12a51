"""Adapters layer - concrete implementations of port interfaces.

Adapters provide the actual implementations:
- Outbound adapters: Implement external dependencies (persistence backends)
"""

from doc_engine.adapters.outbound import InMemoryBackend

__all__ = [
    # Outbound adapters
    "InMemoryBackend",
]
