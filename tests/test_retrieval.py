"""
Retrieval engine tests: keyed facts, semantic lookup and the store join.
"""

import pytest

from continuity.core.errors import DimensionMismatchError, EmbeddingProviderError
from continuity.core.retrieval import RetrievalEngine, RetrievalHit, record_metadata
from continuity.core.schema import user_data_category
from continuity.vector.index import SimpleInMemoryVectorIndex


class TestIndexing:

    @pytest.mark.asyncio
    async def test_index_record_metadata(self, store, retrieval, index):
        record = store.create("s", "hello there", category="notes", priority="high")

        entry = await retrieval.index_record(record)

        assert entry.record_id == record.id
        assert entry.source_text == "hello there"
        assert entry.metadata == record_metadata(record)
        assert entry.metadata["priority"] == "high"
        assert index.size() == 1

    @pytest.mark.asyncio
    async def test_index_record_with_text_override(self, store, retrieval):
        record = store.create("s", "San Francisco", category=user_data_category("location"))
        entry = await retrieval.index_record(record, text="location: San Francisco")
        assert entry.source_text == "location: San Francisco"

    @pytest.mark.asyncio
    async def test_reindex_replaces_entries(self, store, retrieval, index):
        record = store.create("s", "first draft")
        await retrieval.index_record(record)

        updated = store.update(record.id, content="changed")
        entry = await retrieval.reindex_record(updated)

        assert index.size() == 1
        assert entry.source_text == "changed"

    @pytest.mark.asyncio
    async def test_index_scope(self, store, retrieval, index):
        store.create("s", "one")
        store.create("s", "two")
        store.create("other", "three")

        assert await retrieval.index_scope("s") == 2
        assert index.size() == 2

    @pytest.mark.asyncio
    async def test_provider_failure_leaves_index_unchanged(self, store, failing_provider):
        index = SimpleInMemoryVectorIndex(failing_provider)
        retrieval = RetrievalEngine(store, index)
        record = store.create("s", "content")

        with pytest.raises(EmbeddingProviderError):
            await retrieval.index_record(record)

        assert index.size() == 0

    @pytest.mark.asyncio
    async def test_embed_for_index_checks_dimension(self, store, retrieval, index):
        index.add_vector("short", [1.0, 0.0, 0.0])

        with pytest.raises(DimensionMismatchError):
            await retrieval.embed_for_index("alpha")
        assert index.size() == 1


class TestKeyedFacts:

    def test_latest_value_wins(self, store, retrieval):
        store.create("s", "New York", category=user_data_category("location"))
        store.create("s", "San Francisco", category=user_data_category("location"))

        fact = retrieval.retrieve_by_key("s", "location")

        assert fact.value == "San Francisco"
        assert fact.found

    def test_unknown_key(self, retrieval):
        fact = retrieval.retrieve_by_key("s", "non_existent")

        assert fact.key == "non_existent"
        assert fact.value is None
        assert not fact.found

    def test_key_lookup_is_scoped(self, store, retrieval):
        store.create("a", "blue", category=user_data_category("color"))
        assert retrieval.retrieve_by_key("b", "color").value is None

    @pytest.mark.asyncio
    async def test_query_only_returns_keyed_facts_of_scope(self, store, retrieval):
        fact = store.create("s", "blue", category=user_data_category("color"))
        await retrieval.index_record(fact, text="color: blue")

        plain = store.create("s", "color: blue")
        await retrieval.index_record(plain)

        elsewhere = store.create("other", "blue", category=user_data_category("color"))
        await retrieval.index_record(elsewhere, text="color: blue")

        hits = await retrieval.retrieve_by_query("s", "color: blue")

        assert [hit.record.id for hit in hits] == [fact.id]
        assert hits[0].score == pytest.approx(1.0)
        assert hits[0].record.user_data_key == "color"


class TestSemanticSearch:

    @pytest.mark.asyncio
    async def test_orphaned_entries_skipped(self, store, retrieval, index):
        record = store.create("s", "forgotten fact")
        await retrieval.index_record(record)
        store.delete(record.id)

        hits = await retrieval.search_records("s", "forgotten fact")

        assert hits == []
        assert index.size() == 1

    @pytest.mark.asyncio
    async def test_orphans_do_not_use_up_limit(self, store, retrieval):
        for _ in range(3):
            orphan = store.create("s", "alpha beta")
            await retrieval.index_record(orphan)
            store.delete(orphan.id)
        live = store.create("s", "alpha beta gamma")
        await retrieval.index_record(live)

        hits = await retrieval.search_records("s", "alpha beta", limit=1)

        assert [hit.record.id for hit in hits] == [live.id]

    @pytest.mark.asyncio
    async def test_record_filter_applied_before_limit(self, store, retrieval):
        best = store.create("s", "alpha beta", origin_reference="skip")
        other = store.create("s", "alpha beta gamma", origin_reference="keep")
        for record in (best, other):
            await retrieval.index_record(record)

        hits = await retrieval.search_records(
            "s", "alpha beta", limit=1, record_filter=lambda record: record.origin_reference == "keep"
        )

        assert [hit.record.id for hit in hits] == [other.id]

    @pytest.mark.asyncio
    async def test_join_returns_current_record(self, store, retrieval):
        record = store.create("s", "project deadline")
        await retrieval.index_record(record)
        store.update(record.id, priority="high")

        hits = await retrieval.search_records("s", "project deadline")

        assert hits[0].record.version == 2
        assert isinstance(hits[0], RetrievalHit)

    @pytest.mark.asyncio
    async def test_category_and_priority_filters(self, store, retrieval):
        notes = store.create("s", "meeting notes", category="notes", priority="low")
        tasks = store.create("s", "meeting notes", category="tasks", priority="high")
        for record in (notes, tasks):
            await retrieval.index_record(record)

        by_category = await retrieval.search_records("s", "meeting notes", category="tasks")
        by_priority = await retrieval.search_records("s", "meeting notes", priority="low")

        assert [hit.record.id for hit in by_category] == [tasks.id]
        assert [hit.record.id for hit in by_priority] == [notes.id]

    @pytest.mark.asyncio
    async def test_predicate_and_record_filter(self, store, retrieval):
        first = store.create("s", "alpha beta", origin_reference="1")
        second = store.create("s", "alpha beta", origin_reference="2")
        for record in (first, second):
            await retrieval.index_record(record)

        via_predicate = await retrieval.search_records(
            "s", "alpha beta", predicate=lambda metadata: metadata["record_id"] == first.id
        )
        via_record = await retrieval.search_records(
            "s", "alpha beta", record_filter=lambda record: record.origin_reference == "2"
        )

        assert [hit.record.id for hit in via_predicate] == [first.id]
        assert [hit.record.id for hit in via_record] == [second.id]

    @pytest.mark.asyncio
    async def test_default_limit(self, store, index):
        retrieval = RetrievalEngine(store, index, default_limit=2)
        for _ in range(4):
            await retrieval.index_record(store.create("s", "repeated text"))

        assert len(await retrieval.search_records("s", "repeated text")) == 2

    @pytest.mark.asyncio
    async def test_query_embedding_failure(self, store, failing_provider):
        retrieval = RetrievalEngine(store, SimpleInMemoryVectorIndex(failing_provider))

        with pytest.raises(EmbeddingProviderError):
            await retrieval.search_records("s", "anything")


class TestGenerateContext:

    def _hits(self, store):
        return [
            RetrievalHit(record=store.create("s", "first", category="notes", priority="high"),
                         score=0.91, entry_id="e1"),
            RetrievalHit(record=store.create("s", "second"), score=0.5, entry_id="e2"),
        ]

    def test_default_template(self, store):
        assert RetrievalEngine.generate_context(self._hits(store)) == "first\n\nsecond"

    def test_custom_template(self, store):
        context = RetrievalEngine.generate_context(
            self._hits(store), template="[{category}|{priority}|{score}] {content}"
        )
        assert context.split("\n\n") == ["[notes|high|0.91] first", "[||0.50] second"]

    def test_no_hits(self):
        assert RetrievalEngine.generate_context([]) == ""
