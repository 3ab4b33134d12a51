"""Domain entities for the document engine.

Entities are objects with identity that have a lifecycle. Unlike value objects,
two entities with the same attributes may not be equal if they have different
identities.

Exports:
    Document:
        - Document: Immutable record with a store-assigned identifier
        - validate_fields: Checks a caller-supplied field mapping
"""

from doc_engine.domain.entities.document import Document, validate_fields

__all__ = [
    "Document",
    "validate_fields",
]
