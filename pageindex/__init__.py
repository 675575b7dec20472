"""Local semantic indexing of captured page text."""

from .errors import (
    BackendError,
    DecodeError,
    EmbeddingError,
    EmbeddingInputError,
    EmptyDocumentError,
    IndexingError,
    InferenceTimeoutError,
    InitializationError,
    PageIndexError,
    ShapeError,
    TokenizationError,
)
from .pipeline import Pipeline

__all__ = [
    "BackendError",
    "DecodeError",
    "EmbeddingError",
    "EmbeddingInputError",
    "EmptyDocumentError",
    "IndexingError",
    "InferenceTimeoutError",
    "InitializationError",
    "PageIndexError",
    "Pipeline",
    "ShapeError",
    "TokenizationError",
]
