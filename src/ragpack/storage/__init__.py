"""SQLite-backed vector storage."""

from ragpack.storage.similarity import (
    BruteForceBackend,
    SqliteVecBackend,
    cosine_similarities,
    cosine_similarity,
    load_sqlite_vec,
    select_backend,
)
from ragpack.storage.store import VectorIndex

__all__ = [
    "VectorIndex",
    "BruteForceBackend",
    "SqliteVecBackend",
    "cosine_similarity",
    "cosine_similarities",
    "load_sqlite_vec",
    "select_backend",
]
