"""ragpack - chunk, embed and retrieve documents from a local vector store."""

__version__ = "0.1.0"
