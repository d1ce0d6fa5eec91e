"""
Engine facade tests: wiring, convenience methods and lifecycle.
"""

from unittest.mock import patch

import pytest

from continuity.api.engine import ContinuityEngine
from continuity.core.config import EngineConfig
from continuity.core.errors import EmbeddingProviderError, RecordNotFoundError
from continuity.core.storage import InMemoryStorageBackend
from continuity.vector.embeddings import LetterFrequencyEmbedding


def add(content, category=None, priority=None):
    parts = ["<add_record>"]
    if category:
        parts.append(f"<category>{category}</category>")
    if priority:
        parts.append(f"<priority>{priority}</priority>")
    parts.append(f"<context>{content}</context></add_record>")
    return "".join(parts)


class TestWiring:

    def test_default_components(self, engine):
        assert isinstance(engine.index.embedding_provider, LetterFrequencyEmbedding)
        assert engine.store.max_records_per_scope == 1000
        assert engine.retrieval.default_limit == 5
        assert engine.retrieval.default_threshold == 0.5

    def test_injected_backend_and_provider(self):
        backend = InMemoryStorageBackend()
        provider = LetterFrequencyEmbedding()

        engine = ContinuityEngine(embedding_provider=provider, storage_backend=backend)

        assert engine.store.backend is backend
        assert engine.index.embedding_provider is provider

    def test_config_issues_logged(self):
        config = EngineConfig(retrieval_limit=20, search_limit=10)

        with patch("continuity.api.engine.logger") as mock_logger:
            ContinuityEngine(config)

        warnings = [c.args[0] for c in mock_logger.warning.call_args_list]
        assert any("retrieval_limit" in w for w in warnings)

    @pytest.mark.asyncio
    async def test_default_scope_used(self):
        engine = ContinuityEngine(EngineConfig(default_scope="main"))

        await engine.process_response(add("remember this"))

        assert len(engine.get_records()) == 1
        assert len(engine.get_records("main")) == 1

    @pytest.mark.asyncio
    async def test_capacity_from_config(self):
        engine = ContinuityEngine(EngineConfig(max_records_per_scope=2))

        for i in range(4):
            await engine.process_response(add(f"record {i}"), "s")

        assert [r.content for r in engine.get_records("s")] == ["record 2", "record 3"]


class TestRecordAccess:

    @pytest.mark.asyncio
    async def test_get_record_and_query(self, engine):
        result = await engine.process_response(
            add("first", "notes", "low") + add("second", "notes", "high"), "s"
        )
        first = result.results[0].data

        assert engine.get_record(first.id) == first
        assert engine.get_record("missing") is None

        ordered = engine.query_records("s", category="notes", sort_by="priority")
        assert [r.content for r in ordered] == ["second", "first"]


class TestSimilarity:

    @pytest.mark.asyncio
    async def test_search_similar_records(self, engine):
        await engine.process_response(add("quarterly budget review", "finance") + add("xyz"), "s")

        hits = await engine.search_similar_records("quarterly budget review", "s")

        assert hits[0].record.content == "quarterly budget review"
        assert hits[0].score == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_search_similar_records_by_category(self, engine):
        await engine.process_response(
            add("shared words", "a") + add("shared words", "b"), "s"
        )

        hits = await engine.search_similar_records("shared words", "s", category="b")

        assert [hit.record.category for hit in hits] == ["b"]

    @pytest.mark.asyncio
    async def test_import_similar_records(self, engine):
        await engine.process_response(add("travel plans for june", "trips") + add("qqq"), "old")

        imported = await engine.import_similar_records("travel plans for june", "old", "new")

        assert [r.content for r in imported] == ["travel plans for june"]
        assert imported[0].scope == "new"
        assert imported[0].category == "trips"

        hits = await engine.search_similar_records("travel plans for june", "new")
        assert [hit.record.id for hit in hits] == [imported[0].id]


class TestContextOperations:

    @pytest.mark.asyncio
    async def test_find_related_records(self, engine):
        result = await engine.process_response(add("alpha", "notes") + add("beta", "notes"), "s")
        first, second = (r.data for r in result.results)

        assert engine.find_related_records(first.id) == [second]

    def test_find_related_unknown_record(self, engine):
        with pytest.raises(RecordNotFoundError):
            engine.find_related_records("missing")

    @pytest.mark.asyncio
    async def test_import_records_are_indexed(self, engine):
        await engine.process_response(add("portable fact"), "source")

        imported = await engine.import_records("source", "target")

        assert len(imported) == 1
        hits = await engine.search_similar_records("portable fact", "target")
        assert [hit.record.id for hit in hits] == [imported[0].id]

    @pytest.mark.asyncio
    async def test_import_embedding_failure_copies_nothing(self, flaky_provider):
        engine = ContinuityEngine(embedding_provider=flaky_provider)
        await engine.process_response(add("first fact") + add("second fact"), "source")

        with pytest.raises(EmbeddingProviderError):
            await engine.import_records("source", "target")

        assert flaky_provider.calls == 4
        assert engine.get_records("target") == []
        assert engine.index.size() == 2

    @pytest.mark.asyncio
    async def test_import_similar_embedding_failure_copies_nothing(self, flaky_provider):
        engine = ContinuityEngine(embedding_provider=flaky_provider)
        await engine.process_response(add("travel plans") + add("travel plans"), "old")

        with pytest.raises(EmbeddingProviderError):
            await engine.import_similar_records("travel plans", "old", "new")

        assert engine.get_records("new") == []
        assert engine.index.size() == 2

    @pytest.mark.asyncio
    async def test_import_without_indexing(self):
        engine = ContinuityEngine(EngineConfig(index_on_create=False))
        await engine.process_response(add("portable fact"), "source")

        imported = await engine.import_records("source", "target")

        assert [r.content for r in imported] == ["portable fact"]
        assert engine.index.size() == 0

    @pytest.mark.asyncio
    async def test_get_organized_records(self, engine):
        result = await engine.process_response(
            add("draft", "plan.q1") + add("notes", "plan"), "s"
        )
        draft = result.results[0].data
        await engine.process_response(
            f"<edit_record><id>{draft.id}</id><context>final</context></edit_record>", "s"
        )

        organized = engine.get_organized_records("s")

        assert [r.content for r in organized["plan"]["records"]] == ["notes"]
        q1 = organized["plan"]["subcategories"]["q1"]
        assert [r.content for r in q1["records"]] == ["final"]


class TestLifecycle:

    def test_new_scope_ids_are_unique(self):
        assert ContinuityEngine.new_scope_id() != ContinuityEngine.new_scope_id()

    @pytest.mark.asyncio
    async def test_clear(self, engine):
        await engine.process_response(add("temporary"), "s")

        engine.clear()

        assert engine.get_records("s") == []
        assert engine.index.size() == 0
        assert engine.index.dimension is None

    @pytest.mark.asyncio
    async def test_engines_are_independent(self):
        first = ContinuityEngine()
        second = ContinuityEngine()

        await first.process_response(add("only here"), "s")

        assert second.get_records("s") == []
