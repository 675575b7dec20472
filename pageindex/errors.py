"""Exception hierarchy shared by the indexing pipeline."""

from __future__ import annotations


class PageIndexError(RuntimeError):
    """Base class for every error raised by pageindex."""


class InitializationError(PageIndexError):
    """Raised when the vocabulary or encoder is missing, invalid, or not loaded yet."""


class TokenizationError(PageIndexError):
    """Raised when the tokenizer is used before a vocabulary was loaded."""


class EmbeddingError(PageIndexError):
    """Base class for failures while computing a single embedding."""


class EmbeddingInputError(EmbeddingError):
    """Raised for empty or malformed token input, before inference runs."""


class ShapeError(EmbeddingError):
    """Raised when the encoder output does not have the expected tensor shape."""


class BackendError(EmbeddingError):
    """Wraps an exception raised by the inference backend itself."""


class InferenceTimeoutError(EmbeddingError, TimeoutError):
    """Raised when a chunk does not finish embedding within its time budget."""


class DecodeError(PageIndexError):
    """Raised when stored vector data is corrupt or has an unexpected length."""


class IndexingError(PageIndexError):
    """Raised when a document cannot be turned into chunks and embeddings."""


class EmptyDocumentError(IndexingError):
    """Raised when a document produced no content tokens."""


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
    "ShapeError",
    "TokenizationError",
]
