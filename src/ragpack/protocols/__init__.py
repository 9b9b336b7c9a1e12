"""Protocol definitions for extensible components."""

from ragpack.protocols.backend import SimilarityBackend
from ragpack.protocols.chunker import ChunkingStrategy
from ragpack.protocols.embedder import EmbeddingProvider

__all__ = ["SimilarityBackend", "EmbeddingProvider", "ChunkingStrategy"]
