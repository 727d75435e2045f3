"""Retriever: owner isolation, filter precedence, thresholds and context text."""

import uuid
from unittest.mock import AsyncMock, patch

import pytest

from docrag.core import cache
from docrag.services.retriever import NO_RELEVANT_MATERIAL, RetrievalFilter


async def _index(container, make_document, owner, body, title="Doc", collection_id=None):
    doc_id = await make_document(owner, body, title=title, collection_id=collection_id)
    outcome = await container.indexer.reindex_document(doc_id, owner)
    assert outcome.chunks_written >= 1
    return doc_id


async def test_empty_query_returns_sentinel(container, mock_embedding):
    result = await container.retriever.retrieve("   ", uuid.uuid4())

    assert result.sources == []
    assert result.is_empty
    assert result.context_text == NO_RELEVANT_MATERIAL
    mock_embedding.assert_not_called()


async def test_unrestricted_search_ranks_best_first(container, make_document):
    owner = uuid.uuid4()
    mixed = await _index(container, make_document, owner, "Rust and python in the garden.")
    focused = await _index(container, make_document, owner, "Python python python.")

    result = await container.retriever.retrieve("python", owner)

    assert [s.document_id for s in result.sources] == [focused, mixed]
    assert result.sources[0].similarity >= result.sources[1].similarity


async def test_document_ids_restrict_results(container, make_document):
    owner = uuid.uuid4()
    wanted = await _index(container, make_document, owner, "Rust and python in the garden.")
    await _index(container, make_document, owner, "Python python python.")

    result = await container.retriever.retrieve(
        "python", owner, filter=RetrievalFilter(document_ids=[wanted])
    )

    assert {s.document_id for s in result.sources} == {wanted}


async def test_other_owners_chunks_never_returned(container, make_document, make_collection):
    owner = uuid.uuid4()
    stranger = uuid.uuid4()
    shelf = await make_collection(stranger)
    theirs = await _index(container, make_document, stranger, "Python python.", collection_id=shelf)
    await _index(container, make_document, owner, "Whales in the ocean.")

    unfiltered = await container.retriever.retrieve("python", owner)
    by_id = await container.retriever.retrieve(
        "python", owner, filter=RetrievalFilter(document_ids=[theirs])
    )
    by_collection = await container.retriever.retrieve(
        "python", owner, filter=RetrievalFilter(collection_id=shelf)
    )

    assert all(s.document_id != theirs for s in unfiltered.sources)
    assert by_id.sources == []
    assert by_id.context_text == NO_RELEVANT_MATERIAL
    assert by_collection.sources == []


async def test_collection_filter_expands_to_members(container, make_document, make_collection):
    owner = uuid.uuid4()
    shelf = await make_collection(owner)
    inside = await _index(container, make_document, owner, "Guitar music notes.", collection_id=shelf)
    await _index(container, make_document, owner, "Guitar guitar music.")

    result = await container.retriever.retrieve(
        "guitar", owner, filter=RetrievalFilter(collection_id=shelf)
    )

    assert {s.document_id for s in result.sources} == {inside}


async def test_document_ids_take_precedence_over_collection(container, make_document, make_collection):
    owner = uuid.uuid4()
    shelf = await make_collection(owner)
    await _index(container, make_document, owner, "Tomato garden.", collection_id=shelf)
    loose = await _index(container, make_document, owner, "Tomato soup.")

    result = await container.retriever.retrieve(
        "tomato", owner, filter=RetrievalFilter(document_ids=[loose], collection_id=shelf)
    )

    assert {s.document_id for s in result.sources} == {loose}


async def test_empty_collection_returns_sentinel(container, make_collection, mock_embedding):
    owner = uuid.uuid4()
    shelf = await make_collection(owner)

    result = await container.retriever.retrieve(
        "anything", owner, filter=RetrievalFilter(collection_id=shelf)
    )

    assert result.sources == []
    mock_embedding.assert_not_called()


async def test_threshold_filters_weak_matches(container, make_document):
    owner = uuid.uuid4()
    await _index(container, make_document, owner, "Rust and python in the garden.")

    loose = await container.retriever.retrieve("python", owner, threshold=0.1)
    strict = await container.retriever.retrieve("python", owner, threshold=0.9999)

    assert len(loose.sources) == 1
    assert all(s.similarity >= 0.1 for s in loose.sources)
    assert strict.sources == []
    assert strict.context_text == NO_RELEVANT_MATERIAL


async def test_top_k_caps_results(container, make_document):
    owner = uuid.uuid4()
    for i in range(8):
        await _index(container, make_document, owner, f"Ocean whale number {i}.")

    capped = await container.retriever.retrieve("whale", owner, top_k=3)
    default = await container.retriever.retrieve("whale", owner)

    assert len(capped.sources) == 3
    assert len(default.sources) == 5


async def test_context_text_labels_sources(container, make_document):
    owner = uuid.uuid4()
    await _index(container, make_document, owner, "Python python python.", title="Snakes")
    await _index(container, make_document, owner, "Rust and python in the garden.", title="Mixed")

    result = await container.retriever.retrieve("python", owner)

    assert result.context_text.startswith("[Source 1] Title: Snakes\nExcerpt:\n")
    assert "\n\n[Source 2] Title: Mixed\nExcerpt:\n" in result.context_text
    assert "Rust and python in the garden." in result.context_text


async def test_unindexed_document_found_by_text_match(container, make_document):
    owner = uuid.uuid4()
    doc_id = await make_document(owner, "Lighthouse keeper journal.", title="Log")

    result = await container.retriever.retrieve("lighthouse", owner)
    gated = await container.retriever.retrieve("lighthouse", owner, threshold=0.1)

    assert [s.document_id for s in result.sources] == [doc_id]
    assert result.sources[0].similarity is None
    assert result.sources[0].order is None
    assert "Lighthouse keeper journal." in result.context_text
    assert gated.sources == []


async def test_fusion_weights_text_matches(container, make_document):
    owner = uuid.uuid4()
    both = await _index(container, make_document, owner, "Guitar music.")
    vector_only = await _index(container, make_document, owner, "Music notes.")
    text_only = await make_document(owner, "Guitar guitar.")

    result = await container.retriever.retrieve("guitar", owner)

    assert [s.document_id for s in result.sources] == [both, text_only, vector_only]
    # vector rank 1 + text rank 2; text rank 1; vector rank 2
    assert result.sources[0].score == pytest.approx(1.0 / 61 + 1.5 / 62)
    assert result.sources[1].score == pytest.approx(1.5 / 61)
    assert result.sources[2].score == pytest.approx(1.0 / 62)
    assert result.sources[1].similarity is None


async def test_text_match_never_crosses_owners(container, make_document):
    owner = uuid.uuid4()
    stranger = uuid.uuid4()
    theirs = await make_document(stranger, "Guitar guitar guitar.")

    unfiltered = await container.retriever.retrieve("guitar", owner)
    by_id = await container.retriever.retrieve(
        "guitar", owner, filter=RetrievalFilter(document_ids=[theirs])
    )

    assert unfiltered.sources == []
    assert by_id.sources == []


async def test_repeated_search_is_served_from_cache(container, make_document):
    owner = uuid.uuid4()
    await _index(container, make_document, owner, "Tomato garden.")
    spy = AsyncMock(wraps=container.documents.search_text)

    with patch.object(container.retriever.documents, "search_text", spy):
        first = await container.retriever.retrieve("tomato", owner)
        first.sources.clear()
        second = await container.retriever.retrieve("tomato", owner)
        narrower = await container.retriever.retrieve("tomato", owner, top_k=1)

    assert len(second.sources) == 1
    assert len(narrower.sources) == 1
    assert spy.await_count == 2


async def test_reindex_invalidates_cached_results(container, make_document):
    owner = uuid.uuid4()
    stranger = uuid.uuid4()
    await _index(container, make_document, owner, "Ocean whale.")
    before = await container.retriever.retrieve("whale", owner)
    await _index(container, make_document, stranger, "Whale whale.")
    still = await container.retriever.retrieve("whale", owner)
    await _index(container, make_document, owner, "Whale song.")

    after = await container.retriever.retrieve("whale", owner)

    assert len(before.sources) == len(still.sources) == 1
    assert len(after.sources) == 2


def test_invalidate_prefix_drops_only_matching_keys():
    cache.clear()
    cache.put(("retrieval", "a", "q1"), 1)
    cache.put(("retrieval", "a", "q2"), 2)
    cache.put(("retrieval", "b", "q1"), 3)
    cache.put("plain", 4)

    assert cache.invalidate_prefix("retrieval", "a") == 2
    assert cache.get(("retrieval", "a", "q1")) is None
    assert cache.get(("retrieval", "b", "q1")) == 3
    assert cache.get("plain") == 4
    cache.clear()
