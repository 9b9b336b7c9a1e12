"""Embedding providers for vector generation."""

from ragpack.embedders.sentence_transformer import SentenceTransformerEmbedder

__all__ = ["SentenceTransformerEmbedder"]
