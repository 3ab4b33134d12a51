"""Unit tests for the ordered secondary index."""

from __future__ import annotations

import pytest

from doc_engine.domain.entities.document import Document
from doc_engine.domain.services.filter_evaluator import Range, RangeOp
from doc_engine.domain.services.ordered_index import IndexBounds, OrderedIndex
from doc_engine.domain.value_objects import DocumentId, IndexField, index_name
from doc_engine.ports.inbound.document_store import DuplicateKeyError


def _index(*fields: IndexField, unique: bool = False) -> OrderedIndex:
    return OrderedIndex(index_name(fields), fields, unique)


def _fill(index: OrderedIndex, documents: dict[DocumentId, Document]) -> OrderedIndex:
    for document in documents.values():
        index.add(document.id, index.key_for(document))
    return index


@pytest.mark.unit
class TestOrderedIndex:
    """Tests for OrderedIndex."""

    def test_full_scan_follows_key_order(self, book_documents: dict[DocumentId, Document]) -> None:
        """Unbounded scans return ids in key order."""
        index = _fill(_index(IndexField("price")), book_documents)

        result = index.scan(IndexBounds())

        prices = [book_documents[i].get("price") for i in result.document_ids]
        assert prices == sorted(prices)
        assert result.document_ids[0] == 10  # The Last Archive, 5.00
        assert result.document_ids[-1] == 12  # Paper Boats, 40.00
        assert result.keys_examined == 12

    def test_equality_prefix(self, book_documents: dict[DocumentId, Document]) -> None:
        """An equality prefix examines one key."""
        index = _fill(_index(IndexField("genre")), book_documents)

        result = index.scan(IndexBounds(equalities=(("genre", "Technology"),)))

        assert result.document_ids == [3, 4, 5, 7, 8, 11]
        assert result.keys_examined == 1

    def test_range_on_single_field(self, book_documents: dict[DocumentId, Document]) -> None:
        """Range bounds on one field keep only keys inside the window."""
        index = _fill(_index(IndexField("published_year")), book_documents)
        bounds = IndexBounds(
            range_field="published_year",
            range_conditions=(Range(RangeOp.GTE, 2016), Range(RangeOp.LT, 2020)),
        )

        result = index.scan(bounds)

        years = [book_documents[i].get("published_year") for i in result.document_ids]
        assert years == [2016, 2016, 2018, 2019]
        assert result.document_ids[:2] == [1, 11]  # ids ascending within one key
        # 2016, 2018 and 2019; the scan stops at 2020
        assert result.keys_examined == 3

    def test_range_seeks_to_lower_bound(self, book_documents: dict[DocumentId, Document]) -> None:
        """An exclusive lower bound skips every key at or below it."""
        index = _fill(_index(IndexField("published_year")), book_documents)
        bounds = IndexBounds(
            range_field="published_year", range_conditions=(Range(RangeOp.GT, 2021),)
        )

        result = index.scan(bounds)

        assert result.document_ids == [9]
        assert result.keys_examined == 1

    def test_range_stops_at_upper_bound(self, book_documents: dict[DocumentId, Document]) -> None:
        """An inclusive upper bound ends the scan after its key."""
        index = _fill(_index(IndexField("price")), book_documents)
        bounds = IndexBounds(range_field="price", range_conditions=(Range(RangeOp.LTE, 12.5),))

        result = index.scan(bounds)

        assert result.document_ids == [10, 6, 1]
        assert result.keys_examined == 3

    def test_range_on_descending_field(self, book_documents: dict[DocumentId, Document]) -> None:
        """Descending indexes walk the window from its upper end."""
        index = _fill(_index(IndexField("published_year", -1)), book_documents)
        bounds = IndexBounds(
            range_field="published_year",
            range_conditions=(Range(RangeOp.GTE, 2018), Range(RangeOp.LT, 2021)),
        )

        result = index.scan(bounds)

        assert result.document_ids == [10, 8, 3]
        assert result.keys_examined == 3

    @pytest.mark.parametrize(
        "conditions",
        [
            (Range(RangeOp.GT, 2022),),
            (Range(RangeOp.GT, 2016), Range(RangeOp.LT, 2016)),
            (Range(RangeOp.GTE, 2016), Range(RangeOp.LT, "z")),
            (Range(RangeOp.GT, None),),
        ],
    )
    def test_empty_range_examines_nothing(
        self, book_documents: dict[DocumentId, Document], conditions: tuple[Range, ...]
    ) -> None:
        """Windows that no key can fall into return without walking the index."""
        index = _fill(_index(IndexField("published_year")), book_documents)

        result = index.scan(IndexBounds(range_field="published_year", range_conditions=conditions))

        assert result.document_ids == []
        assert result.keys_examined == 0

    def test_range_keeps_to_operand_kind(self) -> None:
        """Numeric ranges never reach string or null keys."""
        index = _index(IndexField("edition"))
        for i, value in enumerate([None, 1, 2.5, "3", True, 4], start=1):
            document = Document.new(DocumentId(i), {"edition": value})
            index.add(document.id, index.key_for(document))

        result = index.scan(
            IndexBounds(range_field="edition", range_conditions=(Range(RangeOp.GTE, 2),))
        )

        assert result.document_ids == [3, 6]
        assert result.keys_examined == 2

    def test_compound_descending(self, book_documents: dict[DocumentId, Document]) -> None:
        """A descending second field scans from the newest year."""
        index = _fill(
            _index(IndexField("author"), IndexField("published_year", -1)), book_documents
        )
        bounds = IndexBounds(
            equalities=(("author", "Jamie Lee"),),
            range_field="published_year",
            range_conditions=(Range(RangeOp.GT, 2015),),
        )

        result = index.scan(bounds)

        assert result.document_ids == [5, 3, 11]
        # 2021, 2018 and 2016; the scan stops at 2014
        assert result.keys_examined == 3

    def test_missing_field_indexes_as_null(self) -> None:
        """Documents without the field are indexed under null."""
        index = _index(IndexField("pages"))
        document = Document.new(DocumentId(1), {"title": "No pages"})
        index.add(document.id, index.key_for(document))

        assert list(index.entries()) == [((None,), 1)]
        assert index.scan(IndexBounds(equalities=(("pages", None),))).document_ids == [1]

    def test_unique_rejects_duplicate(self) -> None:
        """Unique indexes reject a second holder of a key."""
        index = _index(IndexField("title"), unique=True)
        first = Document.new(DocumentId(1), {"title": "Quiet Rivers"})
        second = Document.new(DocumentId(2), {"title": "Quiet Rivers"})
        index.add(first.id, index.key_for(first))

        with pytest.raises(DuplicateKeyError) as exc_info:
            index.add(second.id, index.key_for(second))

        assert exc_info.value.index_name == "title_1"
        assert exc_info.value.key == ("Quiet Rivers",)
        assert len(index) == 1

    def test_unique_allows_same_document(self) -> None:
        """A document never conflicts with itself."""
        index = _index(IndexField("title"), unique=True)
        document = Document.new(DocumentId(1), {"title": "Quiet Rivers"})
        index.add(document.id, index.key_for(document))
        assert not index.conflicts(document.id, index.key_for(document))

    def test_remove(self, book_documents: dict[DocumentId, Document]) -> None:
        """Removing an entry is reported once."""
        index = _fill(_index(IndexField("genre")), book_documents)
        tech = book_documents[DocumentId(3)]

        assert index.remove(tech.id, index.key_for(tech)) is True
        assert index.remove(tech.id, index.key_for(tech)) is False
        assert len(index) == 11
        assert index.stats.num_keys == 2

    def test_remove_last_holder_drops_key(self) -> None:
        """A key with no holders left is dropped."""
        index = _index(IndexField("genre"))
        document = Document.new(DocumentId(1), {"genre": "Poetry"})
        index.add(document.id, index.key_for(document))
        index.remove(document.id, index.key_for(document))

        assert index.stats.num_keys == 0
        assert index.scan(IndexBounds()).document_ids == []

    def test_clone_is_independent(self, book_documents: dict[DocumentId, Document]) -> None:
        """Changes to a clone do not reach the original."""
        original = _fill(_index(IndexField("genre")), book_documents)
        clone = original.clone()
        extra = Document.new(DocumentId(13), {"genre": "Poetry"})
        clone.add(extra.id, clone.key_for(extra))

        assert len(original) == 12
        assert len(clone) == 13
        assert original.stats.num_keys == 2

    def test_handle_and_stats(self) -> None:
        """Handles and stats describe the index."""
        index = _index(IndexField("author"), IndexField("published_year", -1), unique=True)

        assert index.handle.name == "author_1_published_year_-1"
        assert index.handle.field_names == ("author", "published_year")
        assert index.stats.unique is True
        assert index.stats.num_entries == 0
