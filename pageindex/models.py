"""Core data models shared across pageindex components."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Hashable, List, Optional

import numpy as np


@dataclass(frozen=True)
class WordSpan:
    """Half-open token range a source word occupies in the CLS-prefixed sequence."""

    word: str
    token_start: int
    token_end: int

    @property
    def width(self) -> int:
        return self.token_end - self.token_start


@dataclass(frozen=True)
class Chunk:
    """One encoder-sized window of a document.

    ``tokens`` carries the CLS/SEP markers; ``start_token_index`` and
    ``end_token_index`` are offsets into the document's content tokens.
    """

    index: int
    tokens: List[int]
    token_count: int
    text: str
    start_token_index: int
    end_token_index: int

    @property
    def id(self) -> str:
        return f"chunk_{self.index}"


class ChunkStatus(str, Enum):
    """Outcome of embedding a single chunk."""

    OK = "ok"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class ChunkOutcome:
    """Status flag recorded for each chunk of a batch."""

    index: int
    status: ChunkStatus
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is ChunkStatus.OK


@dataclass
class IndexedDocument:
    """Chunks and embeddings produced for one document."""

    chunks: List[Chunk]
    embeddings: List[np.ndarray]
    outcomes: List[ChunkOutcome] = field(default_factory=list)

    @property
    def dimensions(self) -> int:
        if not self.embeddings:
            return 0
        return int(self.embeddings[0].shape[0])

    @property
    def failed_indexes(self) -> List[int]:
        return [outcome.index for outcome in self.outcomes if not outcome.ok]

    @property
    def degraded(self) -> bool:
        return bool(self.failed_indexes)


@dataclass(frozen=True)
class SimilarityResult:
    """Score of one stored chunk against a query vector."""

    source_id: Hashable
    chunk_index: int
    score: float


@dataclass
class PageRecord:
    """Metadata persisted for an indexed page."""

    page_id: str
    url: str
    title: str
    timestamp: int
    chunk_count: int
    dimensions: int
    degraded_chunks: List[int] = field(default_factory=list)


@dataclass(frozen=True)
class PageHit:
    """Search hit joined with the page and chunk it points at."""

    page_id: str
    url: str
    title: str
    chunk_index: int
    chunk_text: str
    score: float
    timestamp: int
