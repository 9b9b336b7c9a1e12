"""Database schema for ragpack stores."""

SCHEMA = """
-- Chunks table: chunk text and JSON metadata, one row per chunk id
CREATE TABLE IF NOT EXISTS chunks (
    chunk_id TEXT PRIMARY KEY,
    document_id TEXT NOT NULL,
    chunk_index INTEGER NOT NULL,
    content TEXT NOT NULL,
    metadata TEXT NOT NULL DEFAULT '{}'
);

-- Embeddings table: unit-length little-endian float32 vectors plus the original norm,
-- lifetime tied to the chunk
CREATE TABLE IF NOT EXISTS embeddings (
    chunk_id TEXT PRIMARY KEY,
    embedding BLOB NOT NULL,
    norm REAL NOT NULL,
    FOREIGN KEY (chunk_id) REFERENCES chunks(chunk_id) ON DELETE CASCADE
);

-- Metadata table: store-level settings (dimension, embedding model)
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT
);

-- Indexes for efficient queries
CREATE INDEX IF NOT EXISTS idx_chunks_document ON chunks(document_id);
"""

UPSERT_CHUNK = """
INSERT INTO chunks (chunk_id, document_id, chunk_index, content, metadata)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT(chunk_id) DO UPDATE SET
    document_id = excluded.document_id,
    chunk_index = excluded.chunk_index,
    content = excluded.content,
    metadata = excluded.metadata
"""

UPSERT_EMBEDDING = """
INSERT INTO embeddings (chunk_id, embedding, norm)
VALUES (?, ?, ?)
ON CONFLICT(chunk_id) DO UPDATE SET
    embedding = excluded.embedding,
    norm = excluded.norm
"""
