"""Pytest configuration and fixtures for doc_engine tests."""

from __future__ import annotations

from typing import Any

import pytest
from prometheus_client import CollectorRegistry

from doc_engine.application.collection import DocumentCollection
from doc_engine.domain.entities.document import Document
from doc_engine.domain.value_objects import DocumentId
from doc_engine.infrastructure.config import CollectionConfig, Config, ObservabilityConfig
from doc_engine.infrastructure.metrics import MetricsRegistry


BOOKS: list[dict[str, Any]] = [
    {"title": "The Silent Library", "author": "Ada K. Rivers", "genre": "Fiction",
     "published_year": 2016, "price": 12.50, "in_stock": True},
    {"title": "Cooking Lagos", "author": "Tunde Bakare", "genre": "Fiction",
     "published_year": 2012, "price": 18.00, "in_stock": True},
    {"title": "Python Patterns", "author": "Jamie Lee", "genre": "Technology",
     "published_year": 2018, "price": 39.99, "in_stock": True},
    {"title": "Cloud Native Basics", "author": "Jamie Lee", "genre": "Technology",
     "published_year": 2014, "price": 29.50, "in_stock": False},
    {"title": "Data at Scale", "author": "Jamie Lee", "genre": "Technology",
     "published_year": 2021, "price": 35.00, "in_stock": True},
    {"title": "Quiet Rivers", "author": "Ada K. Rivers", "genre": "Fiction",
     "published_year": 2009, "price": 9.99, "in_stock": True},
    {"title": "Kernel Tales", "author": "Mira Chen", "genre": "Technology",
     "published_year": 2005, "price": 22.00, "in_stock": False},
    {"title": "Distributed Minds", "author": "Mira Chen", "genre": "Technology",
     "published_year": 2019, "price": 31.25, "in_stock": True},
    {"title": "Summer in Accra", "author": "Kofi Mensah", "genre": "Fiction",
     "published_year": 2022, "price": 14.75, "in_stock": True},
    {"title": "The Last Archive", "author": "Ada K. Rivers", "genre": "Fiction",
     "published_year": 2020, "price": 5.00, "in_stock": False},
    {"title": "Neural Notes", "author": "Jamie Lee", "genre": "Technology",
     "published_year": 2016, "price": 27.80, "in_stock": True},
    {"title": "Paper Boats", "author": "Kofi Mensah", "genre": "Fiction",
     "published_year": 2007, "price": 40.00, "in_stock": True},
]
"""Twelve catalog records; ids 1..12 are assigned in this order."""


@pytest.fixture
def books() -> list[dict[str, Any]]:
    """Provide fresh copies of the sample books."""
    return [dict(book) for book in BOOKS]


@pytest.fixture
def book_documents(books: list[dict[str, Any]]) -> dict[DocumentId, Document]:
    """Provide the sample books as a document map keyed by id."""
    return {
        DocumentId(i): Document.new(DocumentId(i), book)
        for i, book in enumerate(books, start=1)
    }


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    """Provide a fresh metrics registry for each test."""
    # Use a separate registry to avoid conflicts between tests
    registry = CollectorRegistry(auto_describe=True)
    return MetricsRegistry(registry=registry)


@pytest.fixture
def empty_collection(metrics_registry: MetricsRegistry) -> DocumentCollection:
    """Provide an empty books collection."""
    return DocumentCollection("books", metrics=metrics_registry)


@pytest.fixture
def collection(
    empty_collection: DocumentCollection, books: list[dict[str, Any]]
) -> DocumentCollection:
    """Provide a collection seeded with the sample books."""
    empty_collection.insert_many(books)
    return empty_collection


@pytest.fixture
def test_config() -> Config:
    """Provide a test configuration with console logging and no exporters."""
    return Config(
        collection=CollectionConfig(
            name="books",
            indexes=[
                {"fields": [{"name": "title"}], "unique": True},
                {"fields": [{"name": "author"}, {"name": "published_year", "direction": -1}]},
            ],
        ),
        observability=ObservabilityConfig(log_level="WARNING", log_format="console"),
    )


# Markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")
