"""Chunk metadata: a JSON-safe key/value map.

Values are restricted to str, int, float, bool and nested maps of the same
kinds so that what goes into the store comes back out unchanged.
"""

import json
import math
from typing import Any, Union

from ragpack.errors import MetadataError

MetadataValue = Union[str, int, float, bool, "dict[str, MetadataValue]"]
Metadata = dict[str, MetadataValue]


def validate_metadata(metadata: Any, path: str = "metadata") -> Metadata:
    """Check that metadata only holds supported value kinds.

    Args:
        metadata: The candidate mapping (None is treated as empty)
        path: Dotted location used in error messages

    Returns:
        The metadata itself, or a new empty dict for None

    Raises:
        MetadataError: On non-string keys or unsupported values
    """
    if metadata is None:
        return {}
    if not isinstance(metadata, dict):
        raise MetadataError(f"{path} must be a mapping, got {type(metadata).__name__}")

    for key, value in metadata.items():
        if not isinstance(key, str):
            raise MetadataError(f"{path} keys must be strings, got {key!r}")
        location = f"{path}.{key}"
        if isinstance(value, dict):
            validate_metadata(value, location)
        elif isinstance(value, float):
            if not math.isfinite(value):
                raise MetadataError(f"{location} must be finite, got {value!r}")
        elif not isinstance(value, (str, int, bool)):
            raise MetadataError(
                f"{location} has unsupported type {type(value).__name__}"
            )
    return metadata


def dump_metadata(metadata: Metadata | None) -> str:
    """Serialize metadata for storage."""
    return json.dumps(validate_metadata(metadata), sort_keys=True, allow_nan=False)


def load_metadata(raw: str | None) -> Metadata:
    """Deserialize stored metadata; missing values load as an empty map."""
    if not raw:
        return {}
    return json.loads(raw)
