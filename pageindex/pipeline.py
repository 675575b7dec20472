"""Typed entry points for indexing documents and answering queries."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

import numpy as np

from .config import IndexerConfig, ModelConfig
from .embedding import EmbeddingEngine, Encoder, OnnxEncoder
from .errors import EmbeddingInputError, EmptyDocumentError, IndexingError, InitializationError
from .logging import get_logger
from .models import Chunk, IndexedDocument, PageHit, SimilarityResult
from .search.ranker import CandidateLike, rank
from .storage.codec import decode_vectors, encode_vectors
from .stores import PageStore
from .text import TokenChunker, Vocabulary, WordPieceTokenizer

EncoderFactory = Callable[[ModelConfig], Encoder]


def load_onnx_encoder(model: ModelConfig) -> Encoder:
    return OnnxEncoder(model.path, intra_op_threads=model.intra_op_threads)


class Pipeline:
    """Owns the tokenizer, chunker, and embedding engine for one encoder session.

    Call ``initialize`` once with the model vocabulary before any other operation.
    """

    def __init__(
        self,
        config: IndexerConfig | None = None,
        *,
        encoder: Encoder | None = None,
        encoder_factory: EncoderFactory = load_onnx_encoder,
    ) -> None:
        self.config = config or IndexerConfig.defaults(Path.cwd())
        model = self.config.model
        self.tokenizer = WordPieceTokenizer()
        self.chunker = TokenChunker(
            self.tokenizer,
            max_sequence_length=model.max_sequence_length,
            overlap=self.config.chunking.overlap,
        )
        self.engine = EmbeddingEngine(
            encoder,
            hidden_size=model.hidden_size,
            max_sequence_length=model.max_sequence_length,
            chunk_timeout=self.config.embedding.chunk_timeout,
        )
        self.logger = get_logger("pipeline")
        self._encoder_factory = encoder_factory
        self._vocabulary: Optional[Vocabulary] = None

    @property
    def ready(self) -> bool:
        return self._vocabulary is not None and self.engine.ready

    def initialize(self, vocabulary: Union[Vocabulary, Sequence[str]]) -> None:
        """Load the vocabulary and, unless one was injected, the ONNX encoder.

        Re-initialising with the same vocabulary is a no-op; a different one is
        rejected.
        """
        table = vocabulary if isinstance(vocabulary, Vocabulary) else Vocabulary(vocabulary)
        if self._vocabulary is not None:
            if table == self._vocabulary:
                self.logger.debug("Pipeline already initialized with this vocabulary")
                return
            raise InitializationError("Pipeline already initialized with a different vocabulary")
        if not self.engine.ready:
            self.engine.attach(self._encoder_factory(self.config.model))
        self.tokenizer.load(table)
        self._vocabulary = table
        self.logger.info("Pipeline ready (vocabulary=%d tokens)", len(table))

    def initialize_from_config(self) -> None:
        self.initialize(Vocabulary.from_file(self.config.model.vocab_path))

    def index_document(self, text: str) -> IndexedDocument:
        """Chunk ``text`` and embed every chunk.

        Chunks that fail to embed get zero vectors and a non-ok outcome rather than
        aborting the document.
        """
        self._require_ready()
        chunks = self.chunker.chunk(text)
        if not chunks:
            raise EmptyDocumentError("No content extracted from document")
        self._check_chunk_inputs(chunks)

        batch = self.engine.embed_batch(chunks)
        if len(batch) != len(chunks):
            raise IndexingError(
                f"Embedding count mismatch: {len(batch)} embeddings for {len(chunks)} chunks"
            )
        document = IndexedDocument(chunks=chunks, embeddings=list(batch.vectors), outcomes=list(batch.outcomes))
        if document.degraded:
            self.logger.warning(
                "Indexed document with %d degraded chunk(s): %s",
                len(document.failed_indexes),
                ", ".join(str(index) for index in document.failed_indexes),
            )
        else:
            self.logger.info("Indexed document into %d chunk(s)", len(chunks))
        return document

    def embed_query(self, text: str) -> np.ndarray:
        """Embed a search query as a single sequence, without chunking."""
        self._require_ready()
        if not text or not text.strip():
            raise EmbeddingInputError("Query text is empty")
        return self.engine.embed(self.tokenizer.tokenize(text))

    def search(
        self,
        query_vector: Sequence[float],
        candidates: Iterable[CandidateLike],
        k: int,
    ) -> List[SimilarityResult]:
        return rank(query_vector, candidates, k)

    def search_store(self, store: PageStore, query: str, limit: Optional[int] = None) -> List[PageHit]:
        """Embed ``query`` and rank every chunk held in ``store``."""
        limit = self.config.search.default_limit if limit is None else limit
        query_vector = self.embed_query(query)
        results = self.search(query_vector, store.candidates(), limit)

        chunk_cache: Dict[str, Dict[int, Chunk]] = {}
        hits: List[PageHit] = []
        for result in results:
            page = store.get_page(str(result.source_id))
            if page is None:
                continue
            if page.page_id not in chunk_cache:
                chunk_cache[page.page_id] = {chunk.index: chunk for chunk in store.load_chunks(page.page_id)}
            chunk = chunk_cache[page.page_id].get(result.chunk_index)
            hits.append(
                PageHit(
                    page_id=page.page_id,
                    url=page.url,
                    title=page.title,
                    chunk_index=result.chunk_index,
                    chunk_text=chunk.text if chunk is not None else "",
                    score=result.score,
                    timestamp=page.timestamp,
                )
            )
        self.logger.debug("Search returned %d hit(s) for %r", len(hits), query)
        return hits

    @staticmethod
    def encode_vectors(vectors: Sequence[Sequence[float]]) -> bytes:
        return encode_vectors(vectors)

    @staticmethod
    def decode_vectors(data: bytes) -> List[np.ndarray]:
        return decode_vectors(data)

    def close(self) -> None:
        self.engine.close()

    # ------------------------------------------------------------------
    # Internal helpers

    def _require_ready(self) -> None:
        if self._vocabulary is None:
            raise InitializationError("Pipeline not initialized; call initialize() first")

    def _check_chunk_inputs(self, chunks: Sequence[Chunk]) -> None:
        limit = self.config.model.max_sequence_length
        for chunk in chunks:
            if chunk.token_count != len(chunk.tokens) or len(chunk.tokens) > limit:
                raise IndexingError(
                    f"{chunk.id} has {len(chunk.tokens)} tokens (declared {chunk.token_count}, limit {limit})"
                )


__all__ = ["EncoderFactory", "Pipeline", "load_onnx_encoder"]
