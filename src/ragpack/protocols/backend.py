"""Protocol for similarity search backends."""

import sqlite3
from typing import Optional, Protocol, runtime_checkable

import numpy as np

from ragpack.models import SearchResult


@runtime_checkable
class SimilarityBackend(Protocol):
    """Ranks stored chunks against a query vector.

    Backends read from the chunks/embeddings tables of an open connection.
    Every backend must return cosine similarity in [-1, 1], score zero-norm
    vectors as 0, and break ties by chunk insertion order.
    """

    @property
    def name(self) -> str:
        """Return identifier for this backend (e.g., 'brute-force')."""
        ...

    def search(
        self,
        conn: sqlite3.Connection,
        query: np.ndarray,
        k: int,
        document_id: Optional[str] = None,
    ) -> list[SearchResult]:
        """Return up to k results, most similar first."""
        ...
