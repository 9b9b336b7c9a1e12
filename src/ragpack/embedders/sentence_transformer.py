"""SentenceTransformer-based embedding provider."""

import asyncio
import logging
import threading

import numpy as np
from sentence_transformers import SentenceTransformer

from ragpack.errors import EmbeddingError

logger = logging.getLogger(__name__)


class SentenceTransformerEmbedder:
    """Embedding provider using sentence-transformers library.

    Uses all-MiniLM-L6-v2 by default - a fast, lightweight model
    that produces good quality embeddings for semantic search.
    Encoding runs in a worker thread so callers on an event loop
    are not blocked.
    """

    DEFAULT_MODEL = "all-MiniLM-L6-v2"

    def __init__(self, model_name: str | None = None):
        """Initialize the embedder.

        Args:
            model_name: Name of the sentence-transformers model to use.
                       Defaults to all-MiniLM-L6-v2.
        """
        self._model_name = model_name or self.DEFAULT_MODEL
        self._model: SentenceTransformer | None = None
        self._lock = threading.Lock()

    @property
    def model(self) -> SentenceTransformer:
        """Lazy-load the model on first access."""
        with self._lock:
            if self._model is None:
                logger.info(f"Loading embedding model {self._model_name}...")
                try:
                    self._model = SentenceTransformer(self._model_name)
                except Exception as exc:
                    raise EmbeddingError(
                        f"Cannot load embedding model {self._model_name}: {exc}",
                        model=self._model_name,
                    ) from exc
            return self._model

    @property
    def dimension(self) -> int:
        """Return the embedding dimension."""
        return self.model.get_sentence_embedding_dimension()

    @property
    def model_name(self) -> str:
        """Return identifier for the model used."""
        return self._model_name

    async def embed(self, text: str) -> np.ndarray:
        """Embed a single text.

        Returns:
            numpy array of shape (embedding_dim,)
        """
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: list[str]) -> np.ndarray:
        """Generate embeddings for a batch of texts.

        Args:
            texts: List of text strings to embed

        Returns:
            numpy array of shape (len(texts), embedding_dim)
        """
        if not texts:
            return np.empty((0, 0), dtype=np.float32)
        return await asyncio.to_thread(self._encode, texts)

    def _encode(self, texts: list[str]) -> np.ndarray:
        try:
            embeddings = self.model.encode(
                texts,
                convert_to_numpy=True,
                normalize_embeddings=True,  # For cosine similarity
                show_progress_bar=False,
            )
        except EmbeddingError:
            raise
        except Exception as exc:
            raise EmbeddingError(
                f"Embedding generation failed: {exc}", model=self._model_name
            ) from exc
        return np.asarray(embeddings, dtype=np.float32)
