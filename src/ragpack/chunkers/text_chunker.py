"""Separator- and heading-aware chunking strategy."""

import logging
import math
import re
from typing import Optional

from ragpack.config import ChunkerConfig
from ragpack.models import Chunk, Metadata
from ragpack.models.chunk import make_chunk_id

logger = logging.getLogger(__name__)

HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+)$")


class TextChunker:
    """Default chunking: split on a separator, pack up to a size limit, overlap.

    Two modes:
    - Size mode packs separator-delimited parts greedily and seeds every
      new chunk with the tail of the previous one.
    - Structure mode walks lines, starts a new chunk at each markdown
      heading and tags chunks with the heading they belong to.

    Parts are never split internally, so a single part longer than
    max_chunk_size yields an oversized chunk.
    """

    CHARS_PER_TOKEN = 4
    STRUCTURE_OVERLAP_LINES = 3

    def __init__(self, config: Optional[ChunkerConfig] = None):
        self.config = config or ChunkerConfig()

    def chunk(
        self, document_id: str, text: str, metadata: Optional[Metadata] = None
    ) -> list[Chunk]:
        """Split text into chunks with metadata.

        Args:
            document_id: Identifier of the source document
            text: The text content to chunk
            metadata: Optional metadata copied onto every chunk

        Returns:
            Ordered list of non-empty, trimmed chunks
        """
        text = text.replace("\r\n", "\n")
        if not text.strip():
            return []

        if len(text) <= self.config.max_chunk_size:
            heading = self._last_heading(text) if self.config.preserve_structure else None
            pieces = [(text, heading)]
        elif self.config.preserve_structure:
            pieces = self._split_by_structure(text)
        else:
            pieces = [(piece, None) for piece in self._split_by_size(text)]

        chunks = []
        for piece, heading in pieces:
            content = piece.strip()
            if not content:
                continue

            chunk_metadata = dict(metadata or {})
            if heading:
                chunk_metadata["heading"] = heading

            index = len(chunks)
            chunks.append(
                Chunk(
                    id=make_chunk_id(document_id, index),
                    document_id=document_id,
                    content=content,
                    index=index,
                    metadata=chunk_metadata,
                )
            )

        logger.debug(f"Chunked {document_id} into {len(chunks)} chunks")
        return chunks

    def _split_by_size(self, text: str) -> list[str]:
        separator = self.config.separator
        limit = self.config.max_chunk_size

        pieces: list[str] = []
        buffer = ""

        for part in text.split(separator):
            candidate = buffer + separator + part if buffer else part

            if len(candidate) > limit and buffer:
                flushed = buffer.strip()
                if flushed:
                    pieces.append(flushed)
                buffer = self._overlap_tail(flushed)
                candidate = buffer + separator + part if buffer else part

            buffer = candidate

        if buffer.strip():
            pieces.append(buffer)

        return pieces

    def _split_by_structure(self, text: str) -> list[tuple[str, Optional[str]]]:
        limit = self.config.max_chunk_size

        pieces: list[tuple[str, Optional[str]]] = []
        buffer = ""
        heading: Optional[str] = None

        for line in text.split("\n"):
            match = HEADING_PATTERN.match(line)

            if match:
                # The finished section belongs to the previous heading
                if buffer.strip():
                    pieces.append((buffer, heading))
                # A blank heading keeps the section it appears in
                heading = match.group(2).strip() or heading
                buffer = line + "\n"
                continue

            candidate = buffer + "\n" + line
            if len(candidate) > limit and buffer.strip():
                pieces.append((buffer, heading))
                tail = buffer.split("\n")[-self.STRUCTURE_OVERLAP_LINES :]
                buffer = "\n".join(tail) + "\n" + line
            else:
                buffer = candidate

        if buffer.strip():
            pieces.append((buffer, heading))

        return pieces

    def _overlap_tail(self, flushed: str) -> str:
        size = min(self.config.chunk_overlap, len(flushed))
        return flushed[-size:] if size > 0 else ""

    @staticmethod
    def _last_heading(text: str) -> Optional[str]:
        heading = None
        for line in text.split("\n"):
            match = HEADING_PATTERN.match(line)
            if match:
                heading = match.group(2).strip() or heading
        return heading

    @staticmethod
    def estimate_tokens(text: str) -> int:
        """Rough token count (~4 characters per token)."""
        return math.ceil(len(text) / TextChunker.CHARS_PER_TOKEN)

    @property
    def max_chunk_tokens(self) -> int:
        """Token budget of a full-size chunk."""
        return math.ceil(self.config.max_chunk_size / self.CHARS_PER_TOKEN)
