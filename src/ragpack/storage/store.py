"""SQLite-backed vector index for document chunks."""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, Sequence

import numpy as np

from ragpack.errors import ClosedStoreError, ConfigurationError, StorageError
from ragpack.models import Chunk, DocumentStats, SearchResult, dump_metadata, load_metadata
from ragpack.protocols import SimilarityBackend
from ragpack.storage.schema import SCHEMA, UPSERT_CHUNK, UPSERT_EMBEDDING
from ragpack.storage.similarity import VECTOR_DTYPE, select_backend, to_blob, unit_rows

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


class VectorIndex:
    """SQLite-backed storage of chunks and their embeddings.

    One index holds vectors of a single dimension, fixed when the store is
    first created. Similarity search runs through a backend chosen once at
    construction (sqlite-vec when it loads, brute-force otherwise).
    """

    def __init__(
        self,
        path: Path | str,
        dimension: int,
        backend: str = "auto",
        enable_wal: bool = True,
    ):
        """Open (or create) a store.

        Args:
            path: Database file, or ":memory:"
            dimension: Embedding dimension for every stored vector
            backend: "auto", "sqlite-vec" or "brute-force"
            enable_wal: Use WAL journaling for file-backed stores

        Raises:
            ConfigurationError: Bad dimension/backend, or the store was
                created with a different dimension
            StorageError: The database cannot be opened
        """
        if dimension <= 0:
            raise ConfigurationError(f"dimension must be positive, got {dimension}")

        self.path = str(path)
        self.dimension = dimension

        try:
            conn = sqlite3.connect(self.path, check_same_thread=False)
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open vector store at {self.path}: {exc}") from exc

        conn.row_factory = sqlite3.Row
        self._conn: Optional[sqlite3.Connection] = conn

        try:
            conn.execute("PRAGMA foreign_keys = ON")
            if enable_wal and self.path != MEMORY_PATH:
                conn.execute("PRAGMA journal_mode = WAL")
            self._backend: SimilarityBackend = select_backend(conn, backend)
            self.initialize()
        except sqlite3.Error as exc:
            self.close()
            raise StorageError(f"Cannot initialize vector store at {self.path}: {exc}") from exc
        except Exception:
            self.close()
            raise

        logger.info(f"Opened vector store {self.path} (dim={dimension}, backend={self.backend_name})")

    @classmethod
    def open(cls, path: Path | str, backend: str = "auto", enable_wal: bool = True) -> "VectorIndex":
        """Open an existing store with the dimension it was created with.

        Raises:
            StorageError: The file is missing or is not a ragpack store
        """
        if not Path(path).exists():
            raise StorageError(f"Vector store not found: {path}")
        try:
            conn = sqlite3.connect(str(path))
            try:
                row = conn.execute(
                    "SELECT value FROM metadata WHERE key = 'dimension'"
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot read vector store {path}: {exc}") from exc

        if row is None:
            raise StorageError(f"{path} has no recorded dimension")
        return cls(path, int(row[0]), backend=backend, enable_wal=enable_wal)

    def __enter__(self) -> "VectorIndex":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def backend_name(self) -> str:
        """Name of the active similarity backend."""
        return self._backend.name

    @property
    def closed(self) -> bool:
        return self._conn is None

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Transaction scope on the store's connection.

        Commits on success, rolls back on any error. SQLite errors are
        re-raised as StorageError.
        """
        conn = self._require_open()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageError(str(exc)) from exc
        except Exception:
            conn.rollback()
            raise

    def initialize(self) -> None:
        """Create schema if not exists and pin the store dimension."""
        with self.connection() as conn:
            conn.executescript(SCHEMA)

        stored = self.get_metadata("dimension")
        if stored is None:
            self.set_metadata("dimension", str(self.dimension))
            self.set_metadata("created_at", datetime.now().isoformat())
        elif int(stored) != self.dimension:
            raise ConfigurationError(
                f"Store {self.path} holds {stored}-dimensional vectors, "
                f"cannot open with dimension {self.dimension}"
            )

    def add_chunks(self, chunks: Sequence[Chunk], vectors: Sequence[Sequence[float]] | np.ndarray) -> None:
        """Store chunks and their embeddings in one transaction.

        Existing chunk ids are replaced (text, metadata and embedding) but
        keep their original position for tie-breaking in search.

        Args:
            chunks: Chunks to store
            vectors: One vector per chunk, in the same order

        Raises:
            ConfigurationError: Count or dimension mismatch
            MetadataError: A chunk carries unserializable metadata
        """
        self._require_open()
        if len(chunks) != len(vectors):
            raise ConfigurationError(
                f"Got {len(chunks)} chunks but {len(vectors)} vectors"
            )
        if not chunks:
            return

        matrix = self._as_matrix(vectors)
        chunk_rows = [
            (chunk.id, chunk.document_id, chunk.index, chunk.content, dump_metadata(chunk.metadata))
            for chunk in chunks
        ]
        # Stored vectors are unit length; the norm column keeps zero vectors distinct
        units, norms = unit_rows(matrix)
        embedding_rows = [
            (chunk.id, to_blob(vector), float(norm))
            for chunk, vector, norm in zip(chunks, units, norms)
        ]

        with self.connection() as conn:
            conn.executemany(UPSERT_CHUNK, chunk_rows)
            conn.executemany(UPSERT_EMBEDDING, embedding_rows)

        logger.debug(f"Stored {len(chunks)} chunks")

    def search(
        self,
        query_vector: Sequence[float] | np.ndarray,
        k: int,
        document_id: Optional[str] = None,
    ) -> list[SearchResult]:
        """Find the k chunks most similar to a query vector.

        Args:
            query_vector: Query embedding of the store dimension
            k: Maximum number of results
            document_id: Restrict candidates to one document

        Returns:
            Results sorted by cosine similarity, highest first
        """
        query = self._as_vector(query_vector)
        with self.connection() as conn:
            return self._backend.search(conn, query, k, document_id)

    def delete_document(self, document_id: str) -> None:
        """Remove every chunk and embedding of a document."""
        with self.connection() as conn:
            conn.execute(
                """DELETE FROM embeddings WHERE chunk_id IN
                   (SELECT chunk_id FROM chunks WHERE document_id = ?)""",
                (document_id,),
            )
            cursor = conn.execute("DELETE FROM chunks WHERE document_id = ?", (document_id,))
        if cursor.rowcount:
            logger.debug(f"Deleted {cursor.rowcount} chunks of {document_id}")

    def get_chunk(self, chunk_id: str) -> Optional[SearchResult]:
        """Fetch a chunk by id; similarity is 1.0 by convention."""
        with self.connection() as conn:
            row = conn.execute(
                """SELECT chunk_id, document_id, content, metadata
                   FROM chunks WHERE chunk_id = ?""",
                (chunk_id,),
            ).fetchone()
        if row is None:
            return None
        return SearchResult(
            chunk_id=row["chunk_id"],
            document_id=row["document_id"],
            content=row["content"],
            similarity=1.0,
            metadata=load_metadata(row["metadata"]),
        )

    def list_documents(self) -> list[str]:
        """Distinct document ids, sorted."""
        with self.connection() as conn:
            cursor = conn.execute(
                "SELECT DISTINCT document_id FROM chunks ORDER BY document_id"
            )
            return [row["document_id"] for row in cursor]

    def get_document_stats(self, document_id: str) -> DocumentStats:
        """Chunk count and total characters of a document."""
        with self.connection() as conn:
            row = conn.execute(
                """SELECT COUNT(*) AS chunk_count,
                          COALESCE(SUM(LENGTH(content)), 0) AS total_chars
                   FROM chunks WHERE document_id = ?""",
                (document_id,),
            ).fetchone()
        return DocumentStats(chunk_count=row["chunk_count"], total_chars=row["total_chars"])

    def count(self) -> int:
        """Return the number of stored chunks."""
        with self.connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]

    def clear(self) -> None:
        """Remove every chunk and embedding."""
        with self.connection() as conn:
            conn.execute("DELETE FROM embeddings")
            conn.execute("DELETE FROM chunks")
        logger.debug(f"Cleared vector store {self.path}")

    def set_metadata(self, key: str, value: str) -> None:
        """Store a metadata key-value pair."""
        with self.connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
                (key, value),
            )

    def get_metadata(self, key: str) -> Optional[str]:
        """Retrieve a metadata value by key."""
        with self.connection() as conn:
            row = conn.execute(
                "SELECT value FROM metadata WHERE key = ?", (key,)
            ).fetchone()
            return row["value"] if row else None

    def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None

    def _require_open(self) -> sqlite3.Connection:
        if self._conn is None:
            raise ClosedStoreError(f"Vector store {self.path} is closed")
        return self._conn

    def _as_vector(self, vector: Sequence[float] | np.ndarray) -> np.ndarray:
        array = np.asarray(vector, dtype=VECTOR_DTYPE)
        if array.shape != (self.dimension,):
            raise ConfigurationError(
                f"Expected a vector of dimension {self.dimension}, got shape {array.shape}"
            )
        if not np.all(np.isfinite(array)):
            raise ConfigurationError("Vector contains NaN or infinite values")
        return array

    def _as_matrix(self, vectors: Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
        try:
            matrix = np.asarray(vectors, dtype=VECTOR_DTYPE)
        except ValueError as exc:
            raise ConfigurationError(f"Vectors have inconsistent lengths: {exc}") from exc
        if matrix.ndim != 2 or matrix.shape[1] != self.dimension:
            raise ConfigurationError(
                f"Expected vectors of dimension {self.dimension}, got shape {matrix.shape}"
            )
        if not np.all(np.isfinite(matrix)):
            raise ConfigurationError("Vectors contain NaN or infinite values")
        return matrix
