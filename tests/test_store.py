"""Tests for the knowledge base store."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from kb_retrieval.errors import (
    ExtractionError,
    InvalidQueryError,
    NotFoundError,
    UnsupportedSourceKindError,
)
from kb_retrieval.extractors import ExtractedPage, ExtractedText
from kb_retrieval.schemas import SourceKind
from kb_retrieval.store import KnowledgeBaseStore
from kb_retrieval.utils import estimate_tokens

from conftest import make_text


SCENARIO_A_TEXT = "Cats are small mammals. Dogs are loyal companions. Cats often sleep sixteen hours a day."


def assert_consistent(kb):
    assert kb.total_chunks == len(kb.chunks)
    assert kb.total_tokens == sum(chunk.token_count for chunk in kb.chunks)
    assert {chunk.source_index for chunk in kb.chunks} <= set(range(len(kb.sources)))
    for chunk in kb.chunks:
        assert len(chunk.text.strip()) > 20


def test_create_returns_empty_summary(store):
    """Test a new knowledge base starts empty."""
    summary = store.create("Pets", "Notes about pets")
    assert summary.id.startswith("kb_")
    assert summary.name == "Pets"
    assert summary.total_chunks == 0
    assert summary.total_tokens == 0
    assert summary.created_at == summary.updated_at
    assert store.get_full(summary.id).chunks == []


def test_list_summaries_omit_chunks(store):
    """Test listings do not carry chunk payloads."""
    first = store.create("Pets")
    second = store.create("Plants")
    store.add_source(first.id, "text", SCENARIO_A_TEXT)

    summaries = store.list_summaries()
    assert [summary.id for summary in summaries] == [first.id, second.id]
    assert all("chunks" not in summary.model_dump() for summary in summaries)
    assert summaries[0].total_chunks == 1


def test_update_merges_fields(store):
    """Test update changes only the provided fields."""
    kb = store.create("Pets", "Notes about pets")
    updated = store.update(kb.id, name="Animals")
    assert updated.name == "Animals"
    assert updated.description == "Notes about pets"
    assert updated.updated_at >= kb.updated_at

    updated = store.update(kb.id, description="All animals")
    assert updated.name == "Animals"
    assert updated.description == "All animals"


def test_update_and_delete_unknown(store):
    """Test unknown ids raise NotFoundError."""
    with pytest.raises(NotFoundError):
        store.update("kb_missing", name="x")
    with pytest.raises(NotFoundError):
        store.delete("kb_missing")
    with pytest.raises(NotFoundError):
        store.get_full("kb_missing")


def test_delete_removes_everything(store):
    """Test deleting a knowledge base drops its sources and chunks."""
    kb = store.create("Pets")
    store.add_source(kb.id, "text", SCENARIO_A_TEXT)
    store.delete(kb.id)
    assert store.list_summaries() == []
    with pytest.raises(NotFoundError):
        store.get_full(kb.id)


def test_scenario_a_query_returns_matching_chunk():
    """Test a single-chunk source is returned for a matching question."""
    store = KnowledgeBaseStore()
    kb = store.create("Pets")
    result = store.add_source(kb.id, "plain-text", SCENARIO_A_TEXT, label="pets.txt")
    assert result.chunks_added == 1
    assert result.tokens_added == estimate_tokens(SCENARIO_A_TEXT)
    assert result.source_index == 0

    chunks = store.query(kb.id, "how much do cats sleep")
    assert len(chunks) == 1
    assert chunks[0].text == SCENARIO_A_TEXT


def test_add_source_records_source(store):
    """Test source metadata and default labels."""
    kb = store.create("Pets")
    store.add_source(kb.id, "txt", make_text("cat", 3))
    store.add_source(kb.id, "url", make_text("dog", 3), url="https://example.com/dogs")
    store.add_source(kb.id, "text", make_text("bird", 3))

    full = store.get_full(kb.id)
    assert [source.kind for source in full.sources] == [
        SourceKind.PLAIN_TEXT,
        SourceKind.URL,
        SourceKind.PASTED_TEXT,
    ]
    assert full.sources[0].label == "uploaded.txt"
    assert full.sources[1].label == "https://example.com/dogs"
    assert full.sources[1].url == "https://example.com/dogs"
    assert full.sources[2].label is None
    assert full.updated_at >= full.created_at
    assert_consistent(full)


def test_add_source_returns_new_chunk_totals(store):
    """Test the result counts only the chunks of the new source."""
    kb = store.create("Pets")
    store.add_source(kb.id, "text", make_text("cat", 10))
    result = store.add_source(kb.id, "text", make_text("dog", 10))

    full = store.get_full(kb.id)
    new_chunks = [chunk for chunk in full.chunks if chunk.source_index == 1]
    assert result.source_index == 1
    assert result.chunks_added == len(new_chunks)
    assert result.tokens_added == sum(chunk.token_count for chunk in new_chunks)
    assert_consistent(full)


def test_add_source_errors(store):
    """Test unknown base, unknown kind and extraction failures."""
    kb = store.create("Pets")
    with pytest.raises(NotFoundError):
        store.add_source("kb_missing", "text", SCENARIO_A_TEXT)
    with pytest.raises(UnsupportedSourceKindError):
        store.add_source(kb.id, "audio", SCENARIO_A_TEXT)
    with pytest.raises(ExtractionError):
        store.add_source(kb.id, "text", b"\xff\xfe\xfa")

    full = store.get_full(kb.id)
    assert full.sources == []
    assert full.chunks == []


def test_add_source_uses_extractor_pages(small_settings):
    """Test paginated extraction sets page_count and chunk page numbers."""

    def fake_extractor(kind, content, label):
        assert kind is SourceKind.DOCUMENT_PDF
        assert label == "report.pdf"
        return ExtractedText(
            pages=[
                ExtractedPage(text=make_text("cat", 2), page_number=1),
                ExtractedPage(text=make_text("dog", 2), page_number=2),
            ],
            page_count=2,
        )

    store = KnowledgeBaseStore(settings=small_settings, extractor=fake_extractor)
    kb = store.create("Reports")
    result = store.add_source(kb.id, "document-pdf", b"%PDF-fake", label="report.pdf")

    full = store.get_full(kb.id)
    assert result.chunks_added == 2
    assert full.sources[0].page_count == 2
    assert [chunk.page_number for chunk in full.chunks] == [1, 2]


def test_aggregates_consistent_through_mutations(store):
    """Test totals match chunks after every add and remove."""
    kb = store.create("Pets")
    for topic, count in [("cat", 10), ("dog", 4), ("bird", 7), ("fish", 1)]:
        store.add_source(kb.id, "text", make_text(topic, count))
        assert_consistent(store.get_full(kb.id))

    for index in (2, 0, 1, 0):
        assert store.remove_source(kb.id, index) is True
        full = store.get_full(kb.id)
        assert_consistent(full)

    assert store.get_full(kb.id).chunks == []


def test_scenario_b_remove_last_source(store):
    """Test removing the second source leaves no orphaned chunks."""
    kb = store.create("Pets")
    store.add_source(kb.id, "text", make_text("cat", 5))
    store.add_source(kb.id, "text", make_text("dog", 5))
    before = store.get_full(kb.id)
    cat_chunks = [chunk for chunk in before.chunks if chunk.source_index == 0]

    store.remove_source(kb.id, 1)

    full = store.get_full(kb.id)
    assert len(full.sources) == 1
    assert all(chunk.source_index == 0 for chunk in full.chunks)
    assert [chunk.id for chunk in full.chunks] == [chunk.id for chunk in cat_chunks]


def test_remove_first_source_renumbers_later_sources(store):
    """Test chunks of later sources shift down by one."""
    kb = store.create("Pets")
    store.add_source(kb.id, "text", make_text("cat", 4))
    store.add_source(kb.id, "text", make_text("dog", 4))
    store.add_source(kb.id, "text", make_text("bird", 4))

    store.remove_source(kb.id, 0)

    full = store.get_full(kb.id)
    assert len(full.sources) == 2
    assert {chunk.source_index for chunk in full.chunks} == {0, 1}
    for chunk in full.chunks:
        expected = "dog" if chunk.source_index == 0 else "bird"
        assert expected in chunk.text
        assert "cat" not in chunk.text


@pytest.mark.parametrize("index", [2, 5, -1])
def test_remove_source_out_of_range(store, index):
    """Test invalid source indexes raise NotFoundError and change nothing."""
    kb = store.create("Pets")
    store.add_source(kb.id, "text", make_text("cat", 3))
    store.add_source(kb.id, "text", make_text("dog", 3))
    before = store.get_full(kb.id)

    with pytest.raises(NotFoundError):
        store.remove_source(kb.id, index)
    assert store.get_full(kb.id).chunks == before.chunks


def test_remove_source_unknown_base(store):
    """Test removing from an unknown base raises NotFoundError."""
    with pytest.raises(NotFoundError):
        store.remove_source("kb_missing", 0)


def test_scenario_c_query_empty_base(store):
    """Test querying an empty or unknown base returns no chunks."""
    kb = store.create("Empty")
    assert store.query(kb.id, "anything at all") == []
    assert store.query("kb_missing", "anything at all") == []


def test_query_validates_arguments(store):
    """Test blank questions and non-positive top_k are rejected."""
    kb = store.create("Pets")
    store.add_source(kb.id, "text", SCENARIO_A_TEXT)
    with pytest.raises(InvalidQueryError):
        store.query(kb.id, "  ")
    with pytest.raises(InvalidQueryError):
        store.query(kb.id, "cats", top_k=0)


def test_query_limits_results(store):
    """Test top_k caps the number of returned chunks."""
    kb = store.create("Pets")
    store.add_source(kb.id, "text", make_text("cat", 30))
    assert len(store.query(kb.id, "cat note", top_k=3)) == 3
    assert len(store.query(kb.id, "cat note")) == store.settings.default_top_k


def test_scenario_d_context_smaller_than_best_chunk():
    """Test a budget below the best chunk's size gives an empty context."""
    store = KnowledgeBaseStore()
    kb = store.create("Pets")
    store.add_source(kb.id, "text", SCENARIO_A_TEXT)
    best = store.query(kb.id, "how much do cats sleep")[0]
    assert store.build_context(kb.id, "how much do cats sleep", max_tokens=best.token_count - 1) == ""


def test_build_context_contains_ranked_chunks(store):
    """Test the context block carries the header and the best chunk."""
    kb = store.create("Pets")
    store.add_source(kb.id, "text", SCENARIO_A_TEXT)
    store.add_source(kb.id, "text", make_text("dog", 6))

    context = store.build_context(kb.id, "how much do cats sleep")
    assert context.startswith("## Relevant Knowledge Base Context\n")
    assert SCENARIO_A_TEXT in context


@pytest.mark.parametrize("max_tokens", [15, 40, 90, 300])
def test_build_context_respects_budget(store, max_tokens):
    """Test the assembled context never exceeds max_tokens."""
    kb = store.create("Pets")
    store.add_source(kb.id, "text", make_text("cat", 40))
    context = store.build_context(kb.id, "cat note point", max_tokens=max_tokens)
    assert estimate_tokens(context) <= max_tokens


def test_build_context_empty_for_unknown_base(store):
    """Test no context is produced for an unknown base."""
    assert store.build_context("kb_missing", "cats") == ""


def test_build_context_rejects_non_positive_budget(store):
    """Test max_tokens must be positive."""
    kb = store.create("Pets")
    store.add_source(kb.id, "text", SCENARIO_A_TEXT)
    with pytest.raises(InvalidQueryError):
        store.build_context(kb.id, "cats", max_tokens=0)


def test_concurrent_add_source_same_base(file_store):
    """Test concurrent writers to one base do not lose sources."""
    kb = file_store.create("Pets")
    topics = [f"topic{i}" for i in range(8)]

    with ThreadPoolExecutor(max_workers=4) as executor:
        results = list(executor.map(lambda topic: file_store.add_source(kb.id, "text", make_text(topic, 4)), topics))

    full = file_store.get_full(kb.id)
    assert len(full.sources) == len(topics)
    assert sorted(result.source_index for result in results) == list(range(len(topics)))
    assert_consistent(full)
    for result in results:
        chunks = [chunk for chunk in full.chunks if chunk.source_index == result.source_index]
        assert len(chunks) == result.chunks_added


def test_concurrent_add_source_different_bases(file_store):
    """Test writers to different bases in one file keep each other's changes."""
    kbs = [file_store.create(f"KB {i}") for i in range(4)]

    with ThreadPoolExecutor(max_workers=4) as executor:
        list(executor.map(lambda kb: file_store.add_source(kb.id, "text", make_text("cat", 6)), kbs))

    for kb in kbs:
        full = file_store.get_full(kb.id)
        assert len(full.sources) == 1
        assert full.total_chunks > 0


def test_unknown_ids_leave_no_locks(store):
    """Test calls against unknown bases do not accumulate lock entries."""
    for i in range(50):
        with pytest.raises(NotFoundError):
            store.remove_source(f"kb_missing_{i}", 0)
        with pytest.raises(NotFoundError):
            store.update(f"kb_missing_{i}", name="x")
        with pytest.raises(NotFoundError):
            store.delete(f"kb_missing_{i}")
    assert store._locks == {}


def test_delete_drops_lock(store):
    """Test deleting a base releases its lock entry."""
    kb = store.create("Pets")
    store.add_source(kb.id, "text", SCENARIO_A_TEXT)
    assert kb.id in store._locks

    store.delete(kb.id)
    assert kb.id not in store._locks
