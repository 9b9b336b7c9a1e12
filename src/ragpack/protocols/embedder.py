"""Protocol for embedding model providers."""

from typing import Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Protocol for embedding model providers.

    Allows swapping between local models (sentence-transformers),
    API-based models, or custom implementations. Failures are raised
    as EmbeddingError.
    """

    @property
    def dimension(self) -> int:
        """Return the embedding dimension."""
        ...

    @property
    def model_name(self) -> str:
        """Return identifier for the model used."""
        ...

    async def embed(self, text: str) -> np.ndarray:
        """Embed a single text.

        Returns: numpy array of shape (embedding_dim,)
        """
        ...

    async def embed_batch(self, texts: list[str]) -> np.ndarray:
        """Generate embeddings for a batch of texts, preserving order.

        Returns: numpy array of shape (len(texts), embedding_dim)
        """
        ...
