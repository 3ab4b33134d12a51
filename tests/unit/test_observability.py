"""Unit tests for logging, metrics and tracing helpers."""

from __future__ import annotations

import io
import json

import pytest
import structlog
from prometheus_client import CollectorRegistry

from doc_engine.infrastructure.logging import get_logger, setup_logging
from doc_engine.infrastructure import metrics as metrics_module
from doc_engine.infrastructure.metrics import MetricsRegistry, get_metrics, setup_metrics
from doc_engine.infrastructure.tracing import get_tracer, trace_span


@pytest.fixture
def reset_structlog():
    yield
    structlog.reset_defaults()


@pytest.mark.unit
class TestLogging:
    """Tests for structured logging setup."""

    def test_json_output(self, reset_structlog: None) -> None:
        """JSON logs carry the event, bound context and level."""
        stream = io.StringIO()
        setup_logging(level="INFO", log_format="json", stream=stream)

        get_logger("tests", collection="books").info("index_created", index="title_1")

        event = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert event["event"] == "index_created"
        assert event["collection"] == "books"
        assert event["index"] == "title_1"
        assert event["level"] == "info"

    def test_level_filtering(self, reset_structlog: None) -> None:
        """Events below the configured level are dropped."""
        stream = io.StringIO()
        setup_logging(level="WARNING", log_format="json", stream=stream)

        logger = get_logger("tests")
        logger.info("ignored")
        logger.warning("duplicate_key_rejected")

        lines = stream.getvalue().strip().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["event"] == "duplicate_key_rejected"


@pytest.mark.unit
class TestMetricsRegistry:
    """Tests for the metrics registry."""

    def test_metrics_are_registered(self) -> None:
        """Metrics record samples on their registry."""
        registry = CollectorRegistry()
        metrics = MetricsRegistry(registry=registry)

        metrics.operations_total.labels(operation="insert", status="success").inc()
        metrics.documents.labels(collection="books").set(12)

        assert registry.get_sample_value(
            "doc_operations_total", {"operation": "insert", "status": "success"}
        ) == 1.0
        assert registry.get_sample_value("doc_documents", {"collection": "books"}) == 12.0

    def test_separate_registries_do_not_clash(self) -> None:
        """Each registry gets its own collectors."""
        MetricsRegistry(registry=CollectorRegistry())
        MetricsRegistry(registry=CollectorRegistry())

    def test_setup_reuses_metrics_on_same_registry(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Setup reuses metrics already bound to its registry."""
        registry = CollectorRegistry()
        started: list[int] = []
        monkeypatch.setattr(
            metrics_module, "start_http_server", lambda port, registry: started.append(port)
        )
        monkeypatch.setattr(metrics_module, "_metrics", MetricsRegistry(registry=registry))
        existing = get_metrics()

        metrics = setup_metrics(port=9100, registry=registry)

        assert metrics is existing
        assert started == [9100]
        assert registry.get_sample_value("doc_engine_info", {"version": "0.1.0"}) == 1.0

    def test_setup_builds_metrics_for_new_registry(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Setup builds fresh metrics for another registry."""
        monkeypatch.setattr(metrics_module, "start_http_server", lambda port, registry: None)
        registry = CollectorRegistry()
        monkeypatch.setattr(metrics_module, "_metrics", MetricsRegistry(CollectorRegistry()))

        metrics = setup_metrics(registry=registry)

        assert metrics.registry is registry
        assert get_metrics() is metrics


@pytest.mark.unit
class TestTracing:
    """Tests for tracing helpers."""

    def test_trace_span_skips_none_attributes(self) -> None:
        """Spans accept attribute maps holding None."""
        with trace_span("collection.query", {"collection": "books", "index": None}) as span:
            assert span is not None

    def test_get_tracer_is_cached(self) -> None:
        """get_tracer returns one tracer."""
        assert get_tracer() is get_tracer()
