"""Tests for RetrievalService with deterministic keyword embeddings."""

import pytest
import pytest_asyncio

from conftest import FlakyEmbedder, KeywordEmbedder, ShortBatchEmbedder
from ragpack.chunkers import TextChunker
from ragpack.config import ChunkerConfig, RetrievalOptions
from ragpack.errors import ClosedStoreError, ConfigurationError, EmbeddingError, MetadataError
from ragpack.models import DocumentStats, SearchResult
from ragpack.service import RetrievalService, format_context
from ragpack.storage import VectorIndex

FRUIT = "Apple pie recipe.\n\nBanana bread recipe.\n\nCherry tart recipe."
SPACE = "Galaxy far away.\n\nEngine room notes."


def small_chunker() -> TextChunker:
    return TextChunker(ChunkerConfig(max_chunk_size=30, chunk_overlap=0))


@pytest.fixture
def service(embedder, keyword_index):
    return RetrievalService(embedder, keyword_index, small_chunker())


@pytest_asyncio.fixture
async def loaded(service):
    await service.index_document("fruit", FRUIT, {"source": "fruit.txt"})
    await service.index_document("space", SPACE)
    return service


class TestFormatContext:
    def test_with_scores_and_heading(self):
        results = [
            SearchResult("a-0", "a", "First.", 0.91234, {"heading": "Intro"}),
            SearchResult("b-0", "b", "Second.", 0.5, {}),
        ]
        assert format_context(results) == (
            "[Source 1 (similarity: 0.912)]\nFirst.\n(from section: Intro)\n\n"
            "[Source 2 (similarity: 0.500)]\nSecond.\n"
        )

    def test_without_scores(self):
        results = [SearchResult("a-0", "a", "First.", 0.9, {})]
        assert format_context(results, show_scores=False) == "[Source 1]\nFirst.\n"

    def test_empty(self):
        assert format_context([]) == ""


class TestIndexing:
    @pytest.mark.asyncio
    async def test_index_returns_chunk_count(self, service):
        assert await service.index_document("fruit", FRUIT) == 3
        assert service.list_documents() == ["fruit"]
        assert service.get_document_stats("fruit") == DocumentStats(
            chunk_count=3,
            total_chars=len("Apple pie recipe.") + len("Banana bread recipe.") + len("Cherry tart recipe."),
        )

    @pytest.mark.asyncio
    async def test_chunks_carry_metadata(self, loaded):
        chunk = loaded.get_chunk("fruit-1")
        assert chunk.content == "Banana bread recipe."
        assert chunk.metadata == {"source": "fruit.txt"}
        assert loaded.get_chunk("space-0").metadata == {}

    @pytest.mark.asyncio
    async def test_one_batch_call_in_chunk_order(self, service, embedder):
        await service.index_document("fruit", FRUIT)
        assert embedder.batch_calls == [
            ["Apple pie recipe.", "Banana bread recipe.", "Cherry tart recipe."]
        ]

    @pytest.mark.asyncio
    async def test_reindex_is_idempotent(self, service):
        await service.index_document("fruit", FRUIT)
        before = [service.get_chunk(f"fruit-{i}") for i in range(3)]

        assert await service.index_document("fruit", FRUIT) == 3
        after = [service.get_chunk(f"fruit-{i}") for i in range(3)]

        assert before == after
        assert service.index.count() == 3

    @pytest.mark.asyncio
    async def test_shorter_reindex_drops_stale_chunks(self, service):
        await service.index_document("fruit", FRUIT)
        assert await service.index_document("fruit", "Apple crumble.") == 1

        assert service.get_chunk("fruit-0").content == "Apple crumble."
        assert service.get_chunk("fruit-1") is None
        assert service.get_chunk("fruit-2") is None

    @pytest.mark.asyncio
    async def test_empty_document_skips_embedding(self, service, embedder):
        assert await service.index_document("blank", "  \n\n ") == 0
        assert embedder.batch_calls == []
        assert service.list_documents() == []

    @pytest.mark.asyncio
    async def test_empty_document_removes_previous_version(self, service):
        await service.index_document("fruit", FRUIT)
        assert await service.index_document("fruit", "") == 0
        assert service.list_documents() == []

    @pytest.mark.asyncio
    async def test_invalid_metadata_keeps_existing_document(self, loaded, embedder):
        calls = len(embedder.batch_calls)
        with pytest.raises(MetadataError):
            await loaded.index_document("fruit", FRUIT, {"bad": None})

        assert loaded.get_document_stats("fruit").chunk_count == 3
        assert len(embedder.batch_calls) == calls

    @pytest.mark.asyncio
    async def test_embedding_failure_leaves_document_unindexed(self, keyword_index):
        embedder = FlakyEmbedder()
        service = RetrievalService(embedder, keyword_index, small_chunker())
        await service.index_document("fruit", FRUIT)

        embedder.fail = True
        with pytest.raises(EmbeddingError):
            await service.index_document("fruit", FRUIT)
        assert service.list_documents() == []

        embedder.fail = False
        assert await service.index_document("fruit", FRUIT) == 3
        assert service.list_documents() == ["fruit"]

    @pytest.mark.asyncio
    async def test_vector_count_mismatch(self, keyword_index):
        service = RetrievalService(ShortBatchEmbedder(), keyword_index, small_chunker())
        with pytest.raises(EmbeddingError, match="2 vectors for 3 chunks"):
            await service.index_document("fruit", FRUIT)
        assert service.index.count() == 0


class TestRetrieve:
    @pytest.mark.asyncio
    async def test_best_match_context(self, loaded):
        result = await loaded.retrieve("apple", RetrievalOptions(max_results=1))

        assert result.chunk_count == 1
        assert result.results[0].chunk_id == "fruit-0"
        assert result.context == "[Source 1 (similarity: 1.000)]\nApple pie recipe.\n"

    @pytest.mark.asyncio
    async def test_defaults(self, loaded):
        result = await loaded.retrieve("galaxy")

        assert result.chunk_count == 3
        assert result.results[0].chunk_id == "space-0"
        assert result.results[0].similarity == pytest.approx(1.0, abs=1e-6)
        similarities = [r.similarity for r in result.results]
        assert similarities == sorted(similarities, reverse=True)

    @pytest.mark.asyncio
    async def test_min_similarity_filters(self, loaded):
        result = await loaded.retrieve("apple", RetrievalOptions(max_results=3, min_similarity=0.5))
        assert [r.chunk_id for r in result.results] == ["fruit-0"]
        assert result.chunk_count == 1

    @pytest.mark.asyncio
    async def test_nothing_above_threshold(self, loaded):
        result = await loaded.retrieve("river", RetrievalOptions(min_similarity=0.1))
        assert result.chunk_count == 0
        assert result.results == []
        assert result.context == ""

    @pytest.mark.asyncio
    async def test_document_filter(self, loaded):
        result = await loaded.retrieve(
            "engine", RetrievalOptions(max_results=5, document_id="fruit")
        )
        assert result.chunk_count == 3
        assert {r.document_id for r in result.results} == {"fruit"}

    @pytest.mark.asyncio
    async def test_fetches_twice_max_results(self, loaded, monkeypatch):
        requested = []
        original = loaded.index.search

        def spy(query_vector, k, document_id=None):
            requested.append(k)
            return original(query_vector, k, document_id)

        monkeypatch.setattr(loaded.index, "search", spy)
        await loaded.retrieve("apple", RetrievalOptions(max_results=2))
        assert requested == [4]

    @pytest.mark.asyncio
    async def test_hide_scores(self, loaded):
        result = await loaded.retrieve(
            "cherry", RetrievalOptions(max_results=1, show_scores=False)
        )
        assert result.context == "[Source 1]\nCherry tart recipe.\n"

    @pytest.mark.asyncio
    async def test_heading_in_context(self, embedder, keyword_index):
        chunker = TextChunker(ChunkerConfig(preserve_structure=True))
        service = RetrievalService(embedder, keyword_index, chunker)
        await service.index_document("menu", "# Desserts\nCherry tart recipe.")

        result = await service.retrieve("cherry", RetrievalOptions(max_results=1))
        assert result.context == (
            "[Source 1 (similarity: 1.000)]\n"
            "# Desserts\nCherry tart recipe.\n"
            "(from section: Desserts)\n"
        )

    @pytest.mark.asyncio
    async def test_empty_store(self, service):
        result = await service.retrieve("apple")
        assert result.chunk_count == 0
        assert result.context == ""

    @pytest.mark.asyncio
    async def test_query_embedding_failure_propagates(self, keyword_index):
        embedder = FlakyEmbedder()
        service = RetrievalService(embedder, keyword_index, small_chunker())
        await service.index_document("fruit", FRUIT)

        embedder.fail = True
        with pytest.raises(EmbeddingError):
            await service.retrieve("apple")


class TestLifecycle:
    def test_dimension_mismatch(self, tmp_path):
        index = VectorIndex(tmp_path / "small.db", 4, backend="brute-force")
        try:
            with pytest.raises(ConfigurationError, match="6-dimensional"):
                RetrievalService(KeywordEmbedder(), index)
        finally:
            index.close()

    def test_dimensions(self, service):
        assert service.dimension == KeywordEmbedder.DIMENSION
        assert service.get_dimensions() == KeywordEmbedder.DIMENSION

    def test_default_chunker(self, embedder, keyword_index):
        service = RetrievalService(embedder, keyword_index)
        assert isinstance(service.chunker, TextChunker)
        assert service.chunker.config == ChunkerConfig()

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, loaded):
        loaded.delete_document("fruit")
        assert loaded.list_documents() == ["space"]
        loaded.clear()
        assert loaded.list_documents() == []

    @pytest.mark.asyncio
    async def test_closed_service(self, loaded):
        loaded.close()
        with pytest.raises(ClosedStoreError):
            await loaded.retrieve("apple")
        with pytest.raises(ClosedStoreError):
            loaded.list_documents()
