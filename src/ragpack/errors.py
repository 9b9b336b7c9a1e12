"""Exception hierarchy for ragpack."""


class RagError(Exception):
    """Base exception for all ragpack errors."""


class ConfigurationError(RagError, ValueError):
    """Invalid construction options or mismatched inputs.

    Raised when:
    - a vector's length differs from the store dimension
    - chunk and vector counts differ
    - chunker or retrieval options are out of range
    - a store is reopened with a different dimension
    """


class MetadataError(RagError, TypeError):
    """Metadata holds a value that cannot be serialized."""


class EmbeddingError(RagError):
    """The embedding provider failed to produce vectors."""

    def __init__(self, message: str, model: str | None = None):
        super().__init__(message)
        self.model = model


class StorageError(RagError):
    """The persistence layer failed."""


class ClosedStoreError(StorageError):
    """Operation attempted on a store after close()."""
