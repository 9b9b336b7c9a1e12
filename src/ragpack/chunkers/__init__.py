"""Chunking strategies for splitting documents."""

from ragpack.chunkers.text_chunker import TextChunker

__all__ = ["TextChunker"]
