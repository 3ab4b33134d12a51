"""Unit tests for filter compilation and evaluation."""

from __future__ import annotations

from typing import Any

import pytest

from doc_engine.domain.entities.document import Document
from doc_engine.domain.services.filter_evaluator import (
    Equals,
    NotEquals,
    Range,
    RangeOp,
    compile_filter,
    evaluate,
)
from doc_engine.domain.value_objects import DocumentId
from doc_engine.ports.inbound.query_engine import InvalidSpecificationError


@pytest.fixture
def book() -> Document:
    return Document.new(
        DocumentId(3),
        {
            "title": "Python Patterns",
            "author": "Jamie Lee",
            "genre": "Technology",
            "published_year": 2018,
            "price": 39.99,
            "in_stock": True,
            "subtitle": None,
        },
    )


@pytest.mark.unit
class TestEvaluate:
    """Tests for evaluate()."""

    def test_empty_filter_matches_everything(self, book: Document) -> None:
        """Empty and None filters match any document."""
        assert evaluate(book, {})
        assert evaluate(book, None)

    def test_equality(self, book: Document) -> None:
        """Literal values test equality."""
        assert evaluate(book, {"genre": "Technology"})
        assert not evaluate(book, {"genre": "Fiction"})

    def test_conjunction(self, book: Document) -> None:
        """Every field condition must hold."""
        assert evaluate(book, {"genre": "Technology", "published_year": {"$gt": 2015}})
        assert not evaluate(book, {"genre": "Technology", "published_year": {"$gt": 2018}})

    @pytest.mark.parametrize(
        ("operators", "expected"),
        [
            ({"$gt": 2017}, True),
            ({"$gt": 2018}, False),
            ({"$gte": 2018}, True),
            ({"$lt": 2018}, False),
            ({"$lte": 2018}, True),
            ({"$gte": 2010, "$lt": 2020}, True),
            ({"$gte": 2019, "$lt": 2020}, False),
            ({"$eq": 2018}, True),
            ({"$ne": 2018}, False),
        ],
    )
    def test_operators(self, book: Document, operators: dict[str, Any], expected: bool) -> None:
        """Each comparison operator applies to the field."""
        assert evaluate(book, {"published_year": operators}) is expected

    def test_operators_without_dollar_prefix(self, book: Document) -> None:
        """Operator names work without the $ prefix."""
        assert evaluate(book, {"published_year": {"gt": 2015, "lte": 2018}})

    def test_number_equality_ignores_int_float(self, book: Document) -> None:
        """An int field equals the same float."""
        assert evaluate(book, {"published_year": 2018.0})

    def test_boolean_never_equals_number(self, book: Document) -> None:
        """Booleans and numbers never match each other."""
        assert evaluate(book, {"in_stock": True})
        assert not evaluate(book, {"in_stock": 1})

    def test_range_across_kinds_never_matches(self, book: Document) -> None:
        """Ranges never match values of another kind."""
        assert not evaluate(book, {"published_year": {"$gt": "2015"}})
        assert not evaluate(book, {"published_year": {"$lt": "2015"}})

    def test_missing_field_never_satisfies_range(self, book: Document) -> None:
        """Missing fields fail every range."""
        assert not evaluate(book, {"pages": {"$gt": 0}})
        assert not evaluate(book, {"pages": {"$lt": 0}})

    def test_none_matches_null_and_missing(self, book: Document) -> None:
        """None matches null and missing fields."""
        assert evaluate(book, {"subtitle": None})
        assert evaluate(book, {"pages": None})
        assert not evaluate(book, {"title": None})

    def test_ne_on_missing_field(self, book: Document) -> None:
        """$ne matches missing fields unless the operand is None."""
        assert evaluate(book, {"pages": {"$ne": 300}})
        assert not evaluate(book, {"pages": {"$ne": None}})
        assert evaluate(book, {"title": {"$ne": None}})

    def test_plain_records_are_supported(self) -> None:
        """Plain mappings are evaluated like documents."""
        assert evaluate({"genre": "Fiction"}, {"genre": "Fiction"})
        assert not evaluate({}, {"genre": "Fiction"})

    def test_evaluation_is_deterministic_and_pure(self, book: Document) -> None:
        """Evaluation leaves the document unchanged."""
        spec = {"author": "Jamie Lee", "price": {"$lt": 40}}
        before = book.to_dict()
        results = {evaluate(book, spec) for _ in range(5)}
        assert results == {True}
        assert book.to_dict() == before


@pytest.mark.unit
class TestCompileFilter:
    """Tests for filter compilation."""

    def test_compiled_structure(self) -> None:
        """Compiling yields one predicate per field."""
        compiled = compile_filter({"genre": "Technology", "published_year": {"$gt": 2015}})

        assert compiled.fields == ("genre", "published_year")
        genre = compiled.predicate_for("genre")
        assert genre is not None and genre.equality == Equals("Technology")
        year = compiled.predicate_for("published_year")
        assert year is not None and year.ranges == (Range(RangeOp.GT, 2015),)

    def test_describe(self) -> None:
        """describe renders conditions per field."""
        compiled = compile_filter({"published_year": {"$gte": 2010, "$lt": 2020}, "genre": {"$ne": "Fiction"}})
        assert compiled.describe() == {
            "published_year": [">= 2010", "< 2020"],
            "genre": ["!= 'Fiction'"],
        }

    def test_without_drops_covered_conditions(self) -> None:
        """without removes conditions an index covers."""
        compiled = compile_filter({"genre": "Technology", "published_year": {"$gt": 2015}})
        rest = compiled.without({"genre": (Equals("Technology"),)})
        assert rest.fields == ("published_year",)
        assert compiled.without({}).fields == compiled.fields

    def test_compiled_filter_passes_through(self) -> None:
        """Compiled filters compile to themselves."""
        compiled = compile_filter({"genre": "Fiction"})
        assert compile_filter(compiled) is compiled

    def test_ne_condition(self) -> None:
        """$ne compiles to a NotEquals condition."""
        compiled = compile_filter({"genre": {"$ne": "Fiction"}})
        predicate = compiled.predicate_for("genre")
        assert predicate is not None
        assert predicate.conditions == (NotEquals("Fiction"),)
        assert predicate.equality is None

    @pytest.mark.parametrize(
        "spec",
        [
            {"$or": [{"genre": "Fiction"}]},
            {"genre": {"$regex": "Fic"}},
            {"genre": {}},
            {"genre": ["Fiction", "Technology"]},
            {"published_year": {"$gt": [2015]}},
            {"": 1},
            "genre = Fiction",
            [("genre", "Fiction")],
        ],
    )
    def test_malformed_filters_are_rejected(self, spec: Any) -> None:
        """Malformed filters are rejected up front."""
        with pytest.raises(InvalidSpecificationError):
            compile_filter(spec)

    def test_invalid_specification_is_a_value_error(self) -> None:
        """InvalidSpecificationError is a ValueError."""
        with pytest.raises(ValueError):
            compile_filter({"genre": {"$in": ["Fiction"]}})
