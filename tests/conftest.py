from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Mapping

import numpy as np
import pytest

from pageindex.config import IndexerConfig
from pageindex.pipeline import Pipeline
from pageindex.text import Vocabulary, WordPieceTokenizer

HIDDEN_SIZE = 8

# Ids are list positions: [UNK]=1, [CLS]=2, [SEP]=3.
VOCAB_TOKENS = [
    "[PAD]",
    "[UNK]",
    "[CLS]",
    "[SEP]",
    "the",
    "quick",
    "brown",
    "fox",
    "jumps",
    "over",
    "lazy",
    "dog",
    "hello",
    "world",
    "un",
    "##able",
    "##believ",
    "play",
    "##ing",
    "##ed",
    "search",
    "page",
    "index",
    "token",
    "cat",
]


class FakeEncoder:
    """Deterministic stand-in for an ONNX session.

    Row ``i`` of the hidden state is ``input_ids[i] + linspace(0, 1, hidden)``, so
    the pooled vector is ``mean(input_ids) + linspace(0, 1, hidden)``.
    """

    def __init__(
        self,
        hidden_size: int = HIDDEN_SIZE,
        *,
        fail_on: int | None = None,
        slow_on: int | None = None,
        delay: float = 0.5,
        shape_override: tuple[int, ...] | None = None,
        hold: float = 0.0,
    ) -> None:
        self.hidden_size = hidden_size
        self.fail_on = fail_on
        self.slow_on = slow_on
        self.delay = delay
        self.shape_override = shape_override
        self.hold = hold
        self.active = 0
        self.max_active = 0
        self.calls: List[Dict[str, np.ndarray]] = []
        self.last_feeds: Mapping[str, np.ndarray] | None = None
        self.closed = False
        self.lock = threading.Lock()

    def run(self, feeds: Mapping[str, np.ndarray]) -> np.ndarray:
        with self.lock:
            self.calls.append({name: value.copy() for name, value in feeds.items()})
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            return self._run(feeds)
        finally:
            with self.lock:
                self.active -= 1

    def _run(self, feeds: Mapping[str, np.ndarray]) -> np.ndarray:
        self.last_feeds = feeds
        if self.hold:
            time.sleep(self.hold)
        input_ids = feeds["input_ids"]
        if self.fail_on is not None and self.fail_on in input_ids:
            raise RuntimeError("backend exploded")
        if self.slow_on is not None and self.slow_on in input_ids:
            time.sleep(self.delay)
        if self.shape_override is not None:
            return np.zeros(self.shape_override, dtype=np.float32)
        offsets = np.linspace(0.0, 1.0, self.hidden_size, dtype=np.float32)
        return (input_ids[..., None].astype(np.float32) + offsets).astype(np.float32)

    def close(self) -> None:
        self.closed = True


def expected_vector(token_ids: List[int], hidden_size: int = HIDDEN_SIZE) -> np.ndarray:
    offsets = np.linspace(0.0, 1.0, hidden_size, dtype=np.float32)
    return (np.mean(token_ids) + offsets).astype(np.float32)


@pytest.fixture
def vocab_tokens() -> List[str]:
    return list(VOCAB_TOKENS)


@pytest.fixture
def vocabulary() -> Vocabulary:
    return Vocabulary(VOCAB_TOKENS)


@pytest.fixture
def tokenizer(vocabulary: Vocabulary) -> WordPieceTokenizer:
    return WordPieceTokenizer(vocabulary)


@pytest.fixture
def make_encoder() -> Callable[..., FakeEncoder]:
    return FakeEncoder


@pytest.fixture
def pooled() -> Callable[..., np.ndarray]:
    return expected_vector


@pytest.fixture
def indexer_config(tmp_path: Path) -> IndexerConfig:
    config = IndexerConfig.defaults(tmp_path)
    config.model.hidden_size = HIDDEN_SIZE
    config.embedding.chunk_timeout = 5.0
    return config


@pytest.fixture
def pipeline(indexer_config: IndexerConfig) -> Pipeline:
    instance = Pipeline(indexer_config, encoder=FakeEncoder())
    instance.initialize(VOCAB_TOKENS)
    return instance
