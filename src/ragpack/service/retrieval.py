"""Retrieval service: chunk, embed, store and query documents."""

import logging
from typing import Optional

from ragpack.chunkers import TextChunker
from ragpack.config import RetrievalOptions, Settings
from ragpack.errors import ConfigurationError, EmbeddingError
from ragpack.models import DocumentStats, Metadata, RetrievalResult, SearchResult, validate_metadata
from ragpack.protocols import ChunkingStrategy, EmbeddingProvider
from ragpack.storage import VectorIndex

logger = logging.getLogger(__name__)


def format_context(results: list[SearchResult], show_scores: bool = True) -> str:
    """Build the citation-numbered context block handed to the model.

    Each result becomes a "[Source N]" header (with its similarity when
    show_scores is set), its content, the section heading if the chunk
    has one, and a blank line.
    """
    parts: list[str] = []
    for number, result in enumerate(results, 1):
        score = f" (similarity: {result.similarity:.3f})" if show_scores else ""
        parts.append(f"[Source {number}{score}]")
        parts.append(result.content)
        if result.heading:
            parts.append(f"(from section: {result.heading})")
        parts.append("")
    return "\n".join(parts)


class RetrievalService:
    """Glue between the chunker, an embedding provider and a VectorIndex.

    Holds no state of its own; everything persistent lives in the index.

    Usage::

        service = RetrievalService(embedder, VectorIndex("rag.db", embedder.dimension))
        await service.index_document("handbook", text)
        result = await service.retrieve("vacation policy")
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        index: VectorIndex,
        chunker: Optional[ChunkingStrategy] = None,
    ):
        if embedder.dimension != index.dimension:
            raise ConfigurationError(
                f"Embedder {embedder.model_name} produces {embedder.dimension}-dimensional "
                f"vectors but the index expects {index.dimension}"
            )
        self.embedder = embedder
        self.index = index
        self.chunker = chunker or TextChunker()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RetrievalService":
        """Build the default stack: sentence-transformers + SQLite index.

        Args:
            settings: Configuration (defaults to Settings.from_env())
        """
        # Import here to avoid loading torch unless needed
        from ragpack.embedders import SentenceTransformerEmbedder

        settings = settings or Settings.from_env()
        embedder = SentenceTransformerEmbedder(settings.embedding_model)
        index = VectorIndex(
            settings.store.path,
            embedder.dimension,
            backend=settings.store.backend,
            enable_wal=settings.store.enable_wal,
        )

        stored_model = index.get_metadata("embedding_model")
        if stored_model is None:
            index.set_metadata("embedding_model", embedder.model_name)
        elif stored_model != embedder.model_name:
            logger.warning(
                f"Store {index.path} was built with {stored_model}, "
                f"querying with {embedder.model_name}"
            )

        return cls(embedder, index, TextChunker(settings.chunker))

    async def index_document(
        self, document_id: str, text: str, metadata: Optional[Metadata] = None
    ) -> int:
        """Replace a document's chunks with freshly embedded ones.

        Previous chunks are deleted first. If embedding fails the document
        stays unindexed; calling again with the same arguments is safe.

        Args:
            document_id: Identifier of the document
            text: Full document text
            metadata: Optional metadata attached to every chunk

        Returns:
            Number of chunks stored

        Raises:
            EmbeddingError: The provider failed or returned the wrong
                number of vectors
        """
        validate_metadata(metadata)
        self.index.delete_document(document_id)

        chunks = self.chunker.chunk(document_id, text, metadata)
        if not chunks:
            logger.debug(f"Nothing to index for {document_id}")
            return 0

        vectors = await self.embedder.embed_batch([chunk.content for chunk in chunks])
        if len(vectors) != len(chunks):
            raise EmbeddingError(
                f"Embedder returned {len(vectors)} vectors for {len(chunks)} chunks",
                model=self.embedder.model_name,
            )

        self.index.add_chunks(chunks, vectors)
        logger.info(f"Indexed {document_id}: {len(chunks)} chunks")
        return len(chunks)

    async def retrieve(
        self, query: str, options: Optional[RetrievalOptions] = None
    ) -> RetrievalResult:
        """Find the chunks most relevant to a query and format them.

        Twice max_results candidates are fetched so that similarity
        filtering still leaves enough results to fill the context.

        Args:
            query: Natural language query
            options: Result count, threshold, document filter, score display

        Returns:
            RetrievalResult; chunk_count is the number of results returned
        """
        options = options or RetrievalOptions()

        query_vector = await self.embedder.embed(query)
        candidates = self.index.search(
            query_vector, options.candidate_count, options.document_id
        )

        results = [r for r in candidates if r.similarity >= options.min_similarity]
        results = results[: options.max_results]

        logger.debug(
            f"Retrieved {len(results)} of {len(candidates)} candidates for query {query[:50]!r}"
        )
        return RetrievalResult(
            context=format_context(results, show_scores=options.show_scores),
            chunk_count=len(results),
            results=results,
        )

    def delete_document(self, document_id: str) -> None:
        """Remove a document from the index."""
        self.index.delete_document(document_id)

    def list_documents(self) -> list[str]:
        return self.index.list_documents()

    def get_document_stats(self, document_id: str) -> DocumentStats:
        return self.index.get_document_stats(document_id)

    def get_chunk(self, chunk_id: str) -> Optional[SearchResult]:
        return self.index.get_chunk(chunk_id)

    def clear(self) -> None:
        """Remove every indexed document."""
        self.index.clear()

    def close(self) -> None:
        self.index.close()

    @property
    def dimension(self) -> int:
        """Embedding dimension reported by the provider."""
        return self.embedder.dimension

    def get_dimensions(self) -> int:
        return self.dimension
