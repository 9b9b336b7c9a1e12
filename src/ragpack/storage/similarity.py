"""Cosine similarity and the two search backends.

BruteForceBackend scores every candidate in numpy. SqliteVecBackend scores
inside SQLite with the sqlite-vec extension's vec_distance_cosine, which
sqlite-vec defines as 1 - cosine similarity, so both return the same scale.
"""

import logging
import sqlite3
from typing import Optional

import numpy as np
import sqlite_vec

from ragpack.errors import ConfigurationError
from ragpack.models import SearchResult, load_metadata
from ragpack.protocols import SimilarityBackend

logger = logging.getLogger(__name__)

VECTOR_DTYPE = np.dtype("<f4")


def to_blob(vector: np.ndarray) -> bytes:
    """Serialize a vector the way sqlite-vec reads it (float32, little-endian)."""
    return np.asarray(vector, dtype=VECTOR_DTYPE).tobytes()


def from_blob(blob: bytes) -> np.ndarray:
    """Deserialize a stored vector."""
    return np.frombuffer(blob, dtype=VECTOR_DTYPE)


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Compute cosine similarity between two vectors.

    Returns 0.0 when either vector has zero norm.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        raise ConfigurationError(f"Vector dimensions must match: {a.shape} vs {b.shape}")
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.clip(np.dot(a, b) / (norm_a * norm_b), -1.0, 1.0))


def unit_rows(matrix: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Scale every row to unit length.

    Norms are taken in float64. Zero rows stay zero.

    Returns:
        (unit-length rows as float64, original row norms)
    """
    matrix = np.atleast_2d(np.asarray(matrix, dtype=np.float64))
    norms = np.linalg.norm(matrix, axis=1)
    units = np.zeros_like(matrix)
    np.divide(matrix, norms[:, None], out=units, where=norms[:, None] > 0)
    return units, norms


def cosine_similarities(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of one query against every row of a matrix."""
    query = np.asarray(query, dtype=np.float64)
    matrix = np.asarray(matrix, dtype=np.float64)
    denominators = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    scores = np.zeros(len(matrix), dtype=np.float64)
    np.divide(matrix @ query, denominators, out=scores, where=denominators > 0)
    return np.clip(scores, -1.0, 1.0)


def _row_to_result(row: sqlite3.Row, similarity: float) -> SearchResult:
    return SearchResult(
        chunk_id=row["chunk_id"],
        document_id=row["document_id"],
        content=row["content"],
        similarity=similarity,
        metadata=load_metadata(row["metadata"]),
    )


class BruteForceBackend:
    """Scores every stored vector in numpy. Always available."""

    name = "brute-force"

    def search(
        self,
        conn: sqlite3.Connection,
        query: np.ndarray,
        k: int,
        document_id: Optional[str] = None,
    ) -> list[SearchResult]:
        if k <= 0:
            return []

        sql = """SELECT c.chunk_id, c.document_id, c.content, c.metadata, e.embedding
                 FROM chunks c JOIN embeddings e ON c.chunk_id = e.chunk_id"""
        params: tuple = ()
        if document_id is not None:
            sql += " WHERE c.document_id = ?"
            params = (document_id,)
        sql += " ORDER BY c.rowid"

        rows = conn.execute(sql, params).fetchall()
        if not rows:
            return []

        matrix = np.vstack([from_blob(row["embedding"]) for row in rows])
        scores = cosine_similarities(query, matrix)

        # Stable sort keeps insertion order among equal scores
        order = np.argsort(-scores, kind="stable")[:k]
        return [_row_to_result(rows[i], float(scores[i])) for i in order]


class SqliteVecBackend:
    """Scores inside SQLite using sqlite-vec's vec_distance_cosine."""

    name = "sqlite-vec"

    def search(
        self,
        conn: sqlite3.Connection,
        query: np.ndarray,
        k: int,
        document_id: Optional[str] = None,
    ) -> list[SearchResult]:
        if k <= 0:
            return []

        # vec_distance_cosine is undefined for zero vectors, so those score 0
        # before the extension is ever called. Both sides are unit length, so
        # the extension's float32 magnitudes cannot underflow.
        sql = """SELECT c.chunk_id, c.document_id, c.content, c.metadata,
                        CASE WHEN e.norm = 0 OR :query_norm = 0 THEN 0.0
                             ELSE COALESCE(
                                 max(-1.0, min(1.0, 1.0 - vec_distance_cosine(e.embedding, :query))),
                                 0.0)
                        END AS similarity
                 FROM chunks c JOIN embeddings e ON c.chunk_id = e.chunk_id"""
        units, norms = unit_rows(query)
        params = {
            "query": to_blob(units[0]),
            "query_norm": float(norms[0]),
            "k": k,
        }
        if document_id is not None:
            sql += " WHERE c.document_id = :document_id"
            params["document_id"] = document_id
        sql += " ORDER BY similarity DESC, c.rowid LIMIT :k"

        rows = conn.execute(sql, params).fetchall()
        return [_row_to_result(row, float(row["similarity"])) for row in rows]


def load_sqlite_vec(conn: sqlite3.Connection) -> bool:
    """Try to load the sqlite-vec extension into a connection.

    Returns:
        True if vec_* functions are now available on the connection
    """
    try:
        conn.enable_load_extension(True)
        try:
            sqlite_vec.load(conn)
        finally:
            conn.enable_load_extension(False)
        version = conn.execute("SELECT vec_version()").fetchone()[0]
    except (AttributeError, sqlite3.Error) as exc:
        # AttributeError: interpreter built without extension loading
        logger.debug(f"sqlite-vec unavailable: {exc}")
        return False

    logger.debug(f"sqlite-vec {version} loaded")
    return True


def select_backend(conn: sqlite3.Connection, preference: str = "auto") -> SimilarityBackend:
    """Pick the search backend for a connection.

    Args:
        conn: Open connection the backend will query
        preference: "auto", "sqlite-vec" or "brute-force"

    Returns:
        SqliteVecBackend when the extension loads (and is allowed),
        otherwise BruteForceBackend

    Raises:
        ConfigurationError: Unknown preference, or "sqlite-vec" requested
            but the extension cannot be loaded
    """
    if preference == "brute-force":
        return BruteForceBackend()

    if preference not in ("auto", "sqlite-vec"):
        raise ConfigurationError(
            f"Unknown search backend: {preference!r}. "
            f"Supported: 'auto', 'sqlite-vec', 'brute-force'"
        )

    if load_sqlite_vec(conn):
        return SqliteVecBackend()

    if preference == "sqlite-vec":
        raise ConfigurationError("sqlite-vec backend requested but the extension could not be loaded")

    logger.info("sqlite-vec not available, falling back to brute-force search")
    return BruteForceBackend()
