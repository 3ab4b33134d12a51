"""Prometheus metrics for the document engine."""

from __future__ import annotations

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
    REGISTRY,
    CollectorRegistry,
)


class MetricsRegistry:
    """Registry of all document engine metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics registry."""
        self._registry = registry or REGISTRY

        # Store metrics
        self.operations_total = Counter(
            "doc_operations_total",
            "Total number of store and query operations",
            ["operation", "status"],  # status: success, no_match, error
            registry=self._registry,
        )

        self.documents = Gauge(
            "doc_documents",
            "Number of documents in the collection",
            ["collection"],
            registry=self._registry,
        )

        # Query metrics
        self.query_latency_seconds = Histogram(
            "doc_query_latency_seconds",
            "Query latency in seconds",
            ["query_type"],  # query, explain, aggregate
            buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0),
            registry=self._registry,
        )

        self.query_plans_total = Counter(
            "doc_query_plans_total",
            "Executed query plans by kind",
            ["plan_kind"],  # IndexScan, FullScan
            registry=self._registry,
        )

        # Index metrics
        self.index_lookups_total = Counter(
            "doc_index_lookups_total",
            "Total index scans, from plans or direct lookups",
            ["index_name"],
            registry=self._registry,
        )

        self.indexes = Gauge(
            "doc_indexes",
            "Number of indexes on the collection",
            ["collection"],
            registry=self._registry,
        )

        # Engine info
        self.info = Info(
            "doc_engine",
            "Document engine information",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry


# Global metrics registry
_metrics: MetricsRegistry | None = None


def setup_metrics(port: int = 8001, registry: CollectorRegistry | None = None) -> MetricsRegistry:
    """
    Set up Prometheus metrics server.

    Metrics already bound to the same registry are reused, since their
    collectors cannot be registered twice.

    Args:
        port: Port for the metrics HTTP server
        registry: Optional custom registry

    Returns:
        The metrics registry
    """
    global _metrics
    target = registry or REGISTRY
    if _metrics is None or _metrics.registry is not target:
        _metrics = MetricsRegistry(target)

    from doc_engine import __version__
    _metrics.info.info({
        "version": __version__,
    })

    # Start HTTP server for Prometheus scraping
    start_http_server(port, registry=target)

    return _metrics


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsRegistry()
    return _metrics
