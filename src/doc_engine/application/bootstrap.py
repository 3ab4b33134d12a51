"""Build a ready-to-use collection from configuration."""

from __future__ import annotations

from doc_engine.application.collection import DocumentCollection
from doc_engine.infrastructure.config import Config, get_config
from doc_engine.infrastructure.logging import get_logger, setup_logging
from doc_engine.infrastructure.metrics import MetricsRegistry, setup_metrics
from doc_engine.infrastructure.tracing import setup_tracing
from doc_engine.ports.outbound.persistence_backend import PersistenceBackend

logger = get_logger(__name__)


def create_collection(
    config: Config | None = None,
    backend: PersistenceBackend | None = None,
    metrics: MetricsRegistry | None = None,
) -> DocumentCollection:
    """
    Wire up observability and create the configured collection.

    Args:
        config: Engine configuration (defaults to get_config())
        backend: Optional persistence backend to load from and mirror to
        metrics: Metrics registry; when omitted and metrics are enabled, a
            scrape endpoint is started on the configured port

    Returns:
        A collection holding the backend's documents and every configured index

    Raises:
        DuplicateKeyError: If a configured unique index conflicts with
            loaded documents
    """
    config = config or get_config()
    observability = config.observability

    setup_logging(level=observability.log_level, log_format=observability.log_format)

    if observability.otel_endpoint:
        setup_tracing(
            service_name=observability.otel_service_name,
            otlp_endpoint=observability.otel_endpoint,
        )

    if metrics is None and observability.metrics_enabled:
        metrics = setup_metrics(port=observability.metrics_port)

    collection = DocumentCollection(
        name=config.collection.name,
        backend=backend,
        metrics=metrics,
    )
    for definition in config.collection.indexes:
        collection.create_index(definition.as_pairs(), unique=definition.unique)

    logger.info(
        "collection_ready",
        collection=collection.name,
        documents=len(collection),
        indexes=[handle.name for handle in collection.list_indexes()],
    )
    return collection
