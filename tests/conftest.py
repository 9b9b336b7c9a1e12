"""
Shared test fixtures and pytest configuration.

Markers:
    @pytest.mark.embedding    Requires the sentence-transformers model to be downloadable

Storage tests run once per search backend through the ``backend`` fixture;
the sqlite-vec variant is skipped when the extension cannot be loaded.
"""

import sqlite3
from typing import Optional

import numpy as np
import pytest

from ragpack.errors import EmbeddingError
from ragpack.storage import VectorIndex, load_sqlite_vec

BACKENDS = ["brute-force", "sqlite-vec"]


def _sqlite_vec_available() -> bool:
    conn = sqlite3.connect(":memory:")
    try:
        return load_sqlite_vec(conn)
    finally:
        conn.close()


def _embedding_model_available() -> bool:
    """Check if all-MiniLM-L6-v2 can be loaded (already cached or downloadable)."""
    try:
        from sentence_transformers import SentenceTransformer

        model = SentenceTransformer("all-MiniLM-L6-v2")
        vec = model.encode(["test"])
        return vec.shape[1] == 384
    except Exception:
        return False


# Cache the checks at module level so they run once per session
_SQLITE_VEC_OK: Optional[bool] = None
_EMBEDDING_OK: Optional[bool] = None


def sqlite_vec_ok() -> bool:
    global _SQLITE_VEC_OK
    if _SQLITE_VEC_OK is None:
        _SQLITE_VEC_OK = _sqlite_vec_available()
    return _SQLITE_VEC_OK


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "embedding: requires sentence-transformers model available")


def pytest_collection_modifyitems(config, items):
    """Auto-skip tests whose requirements are not met."""
    global _EMBEDDING_OK

    if not any("embedding" in item.keywords for item in items):
        return

    if _EMBEDDING_OK is None:
        _EMBEDDING_OK = _embedding_model_available()

    skip_embedding = pytest.mark.skip(reason="Embedding model not available (all-MiniLM-L6-v2)")
    for item in items:
        if "embedding" in item.keywords and not _EMBEDDING_OK:
            item.add_marker(skip_embedding)


# ─── Deterministic embedding providers ───────────────────────────────────────


class KeywordEmbedder:
    """
    Bag-of-keywords embedder.

    Each dimension counts one vocabulary word, so a query for "apple"
    scores 1.0 against a chunk that only mentions apples and 0.0 against
    chunks that mention none of the same words. Records every batch call.
    """

    VOCABULARY = ("apple", "banana", "cherry", "engine", "galaxy", "river")
    DIMENSION = len(VOCABULARY)

    def __init__(self) -> None:
        self.batch_calls: list[list[str]] = []
        self.query_calls: list[str] = []

    @property
    def dimension(self) -> int:
        return self.DIMENSION

    @property
    def model_name(self) -> str:
        return "keyword-test"

    def vector(self, text: str) -> np.ndarray:
        lowered = text.lower()
        return np.array([lowered.count(word) for word in self.VOCABULARY], dtype=np.float32)

    async def embed(self, text: str) -> np.ndarray:
        self.query_calls.append(text)
        return self.vector(text)

    async def embed_batch(self, texts: list[str]) -> np.ndarray:
        if not texts:
            return np.empty((0, self.DIMENSION), dtype=np.float32)
        self.batch_calls.append(list(texts))
        return np.vstack([self.vector(text) for text in texts])


class FlakyEmbedder(KeywordEmbedder):
    """KeywordEmbedder that raises EmbeddingError while ``fail`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.fail = False

    async def embed(self, text: str) -> np.ndarray:
        if self.fail:
            raise EmbeddingError("provider unavailable", model=self.model_name)
        return await super().embed(text)

    async def embed_batch(self, texts: list[str]) -> np.ndarray:
        if self.fail:
            raise EmbeddingError("provider unavailable", model=self.model_name)
        return await super().embed_batch(texts)


class ShortBatchEmbedder(KeywordEmbedder):
    """Drops the last vector of every batch."""

    async def embed_batch(self, texts: list[str]) -> np.ndarray:
        return (await super().embed_batch(texts))[:-1]


# ─── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture(params=BACKENDS)
def backend(request) -> str:
    """Search backend name; every storage test runs against both."""
    if request.param == "sqlite-vec" and not sqlite_vec_ok():
        pytest.skip("sqlite-vec extension not loadable")
    return request.param


@pytest.fixture
def index(tmp_path, backend):
    """Four-dimensional VectorIndex on disk."""
    store = VectorIndex(tmp_path / "vectors.db", dimension=4, backend=backend)
    yield store
    store.close()


@pytest.fixture
def keyword_index(tmp_path, backend):
    """VectorIndex sized for KeywordEmbedder."""
    store = VectorIndex(tmp_path / "rag.db", dimension=KeywordEmbedder.DIMENSION, backend=backend)
    yield store
    store.close()


@pytest.fixture
def embedder() -> KeywordEmbedder:
    return KeywordEmbedder()
