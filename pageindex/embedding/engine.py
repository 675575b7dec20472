"""Embedding engine: encoder inference plus mean pooling."""

from __future__ import annotations

import operator
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence

import numpy as np

from ..errors import (
    BackendError,
    EmbeddingError,
    EmbeddingInputError,
    InferenceTimeoutError,
    InitializationError,
    PageIndexError,
    ShapeError,
)
from ..logging import get_logger
from ..models import Chunk, ChunkOutcome, ChunkStatus
from .session import Encoder

DEFAULT_HIDDEN_SIZE = 384
DEFAULT_MAX_SEQUENCE_LENGTH = 512
DEFAULT_CHUNK_TIMEOUT = 30.0

logger = get_logger("embedding")


@dataclass
class EmbeddingBatch:
    """One vector and one status per input chunk, in input order."""

    vectors: List[np.ndarray] = field(default_factory=list)
    outcomes: List[ChunkOutcome] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.vectors)

    def __iter__(self) -> Iterator[np.ndarray]:
        return iter(self.vectors)

    def __getitem__(self, index: int) -> np.ndarray:
        return self.vectors[index]

    @property
    def failed(self) -> List[ChunkOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]


class EmbeddingEngine:
    """Turns token sequences into fixed-length sentence vectors.

    The engine owns the encoder handle and serialises every call into it with a
    lock, so one engine may be shared between threads.
    """

    def __init__(
        self,
        encoder: Encoder | None = None,
        *,
        hidden_size: int = DEFAULT_HIDDEN_SIZE,
        max_sequence_length: int = DEFAULT_MAX_SEQUENCE_LENGTH,
        chunk_timeout: Optional[float] = DEFAULT_CHUNK_TIMEOUT,
    ) -> None:
        self._encoder = encoder
        self._lock = threading.Lock()
        self.hidden_size = hidden_size
        self.max_sequence_length = max_sequence_length
        self.chunk_timeout = chunk_timeout

    @property
    def ready(self) -> bool:
        return self._encoder is not None

    def attach(self, encoder: Encoder) -> None:
        with self._lock:
            self._encoder = encoder

    def close(self) -> None:
        with self._lock:
            encoder, self._encoder = self._encoder, None
        close = getattr(encoder, "close", None)
        if callable(close):
            close()

    def zero_vector(self) -> np.ndarray:
        return np.zeros(self.hidden_size, dtype=np.float32)

    def embed(self, tokens: Sequence[int]) -> np.ndarray:
        """Embed one token sequence and mean-pool it to a ``hidden_size`` vector."""
        encoder = self._require_encoder()
        token_ids = self._prepare_tokens(tokens)
        with inference_inputs(token_ids) as feeds:
            with self._lock:
                try:
                    hidden_state = encoder.run(feeds)
                except PageIndexError:
                    raise
                except Exception as exc:
                    raise BackendError(
                        f"Inference failed for a {len(token_ids)}-token input: {exc}"
                    ) from exc
            return mean_pool(hidden_state, seq_len=len(token_ids), hidden_size=self.hidden_size)

    def embed_batch(self, chunks: Sequence[Chunk]) -> EmbeddingBatch:
        """Embed chunks one at a time, substituting zero vectors for failures."""
        self._require_encoder()
        batch = EmbeddingBatch()
        started = time.perf_counter()
        executor = self._new_executor() if self.chunk_timeout is not None else None
        try:
            for chunk in chunks:
                try:
                    if executor is None:
                        vector = self.embed(chunk.tokens)
                    else:
                        vector = self._embed_with_timeout(executor, chunk)
                except InferenceTimeoutError as exc:
                    logger.warning("Embedding timed out for %s: %s", chunk.id, exc)
                    batch.vectors.append(self.zero_vector())
                    batch.outcomes.append(ChunkOutcome(chunk.index, ChunkStatus.TIMED_OUT, str(exc)))
                    # The stuck call keeps its worker; later chunks get a fresh one.
                    if executor is not None:
                        executor.shutdown(wait=False, cancel_futures=True)
                    executor = self._new_executor()
                except EmbeddingError as exc:
                    logger.warning("Failed to compute embedding for %s: %s", chunk.id, exc)
                    batch.vectors.append(self.zero_vector())
                    batch.outcomes.append(ChunkOutcome(chunk.index, ChunkStatus.FAILED, str(exc)))
                else:
                    batch.vectors.append(vector)
                    batch.outcomes.append(ChunkOutcome(chunk.index, ChunkStatus.OK))
        finally:
            if executor is not None:
                executor.shutdown(wait=False, cancel_futures=True)

        logger.debug(
            "Embedded %d chunk(s) in %.2fs (%d degraded)",
            len(batch),
            time.perf_counter() - started,
            len(batch.failed),
        )
        return batch

    # ------------------------------------------------------------------
    # Internal helpers

    def _require_encoder(self) -> Encoder:
        encoder = self._encoder
        if encoder is None:
            raise InitializationError("Embedding engine not initialized; load an encoder first")
        return encoder

    def _prepare_tokens(self, tokens: Sequence[int]) -> List[int]:
        try:
            token_ids = [operator.index(token) for token in tokens]
        except TypeError as exc:
            raise EmbeddingInputError(f"Token ids must be integers: {exc}") from exc
        if not token_ids:
            raise EmbeddingInputError("Cannot embed an empty token sequence")
        if any(token < 0 for token in token_ids):
            raise EmbeddingInputError("Token ids must be non-negative")
        if len(token_ids) > self.max_sequence_length:
            logger.warning(
                "Input has %d tokens, truncating to %d",
                len(token_ids),
                self.max_sequence_length,
            )
            token_ids = token_ids[: self.max_sequence_length]
        return token_ids

    def _embed_with_timeout(self, executor: ThreadPoolExecutor, chunk: Chunk) -> np.ndarray:
        future = executor.submit(self.embed, chunk.tokens)
        try:
            return future.result(timeout=self.chunk_timeout)
        except FutureTimeoutError as exc:
            future.cancel()
            raise InferenceTimeoutError(
                f"Embedding computation exceeded {self.chunk_timeout:g}s"
            ) from exc

    @staticmethod
    def _new_executor() -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=1, thread_name_prefix="pageindex-embed")


@contextmanager
def inference_inputs(token_ids: Sequence[int]) -> Iterator[Dict[str, np.ndarray]]:
    """Build single-item encoder feeds and drop them once inference is done."""
    input_ids = np.asarray(token_ids, dtype=np.int64).reshape(1, -1)
    feeds = {
        "input_ids": input_ids,
        "attention_mask": np.ones_like(input_ids),
        "token_type_ids": np.zeros_like(input_ids),
    }
    try:
        yield feeds
    finally:
        feeds.clear()


def mean_pool(hidden_state: np.ndarray, *, seq_len: int, hidden_size: int) -> np.ndarray:
    """Average a ``[1, seq_len, hidden_size]`` hidden state over the sequence axis."""
    hidden = np.asarray(hidden_state)
    if hidden.ndim != 3:
        raise ShapeError(f"Expected 3D tensor, got {hidden.ndim}D tensor")
    batch_size, length, width = hidden.shape
    if batch_size != 1:
        raise ShapeError(f"Expected batch size 1, got {batch_size}")
    if length != seq_len:
        raise ShapeError(f"Expected sequence length {seq_len}, got {length}")
    if width != hidden_size:
        raise ShapeError(f"Expected hidden size {hidden_size}, got {width}")
    pooled = hidden[0].astype(np.float64).sum(axis=0) / length
    return pooled.astype(np.float32)


__all__ = [
    "DEFAULT_CHUNK_TIMEOUT",
    "DEFAULT_HIDDEN_SIZE",
    "EmbeddingBatch",
    "EmbeddingEngine",
    "inference_inputs",
    "mean_pool",
]
