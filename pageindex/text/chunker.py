"""Token-window chunking with overlap and approximate text reconstruction."""

from __future__ import annotations

from typing import List, Sequence

from ..logging import get_logger
from ..models import Chunk, WordSpan
from .tokenizer import WordPieceTokenizer

DEFAULT_MAX_SEQUENCE_LENGTH = 512
DEFAULT_OVERLAP = 50
RESERVED_SPECIAL_TOKENS = 2
EMPTY_CHUNK_TEXT = "[no text]"

logger = get_logger("chunker")


class TokenChunker:
    """Splits a document's content tokens into overlapping encoder windows."""

    def __init__(
        self,
        tokenizer: WordPieceTokenizer,
        *,
        max_sequence_length: int = DEFAULT_MAX_SEQUENCE_LENGTH,
        overlap: int = DEFAULT_OVERLAP,
    ) -> None:
        window = max_sequence_length - RESERVED_SPECIAL_TOKENS
        if window <= 0:
            raise ValueError(
                f"max_sequence_length must exceed {RESERVED_SPECIAL_TOKENS}, got {max_sequence_length}"
            )
        if overlap < 0 or overlap >= window:
            raise ValueError(f"overlap must be in [0, {window}), got {overlap}")
        self.tokenizer = tokenizer
        self.window = window
        self.overlap = overlap

    @property
    def step(self) -> int:
        return self.window - self.overlap

    def chunk(self, text: str) -> List[Chunk]:
        """Return the chunks for ``text``; an empty list means nothing was extracted."""
        tokens, _, spans = self.tokenizer.tokenize_with_mapping(text)
        vocabulary = self.tokenizer.vocabulary
        content = tokens[1:-1]

        chunks: List[Chunk] = []
        start = 0
        while start < len(content):
            end = min(start + self.window, len(content))
            window_tokens = [vocabulary.cls_id, *content[start:end], vocabulary.sep_id]
            chunks.append(
                Chunk(
                    index=len(chunks),
                    tokens=window_tokens,
                    token_count=len(window_tokens),
                    # +1 shifts content offsets into the CLS-prefixed span space.
                    text=_reconstruct_text(spans, start + 1, end + 1),
                    start_token_index=start,
                    end_token_index=end,
                )
            )
            start += self.step

        logger.debug(
            "Chunked %d content tokens into %d chunk(s) (window=%d overlap=%d)",
            len(content),
            len(chunks),
            self.window,
            self.overlap,
        )
        return chunks


def _reconstruct_text(spans: Sequence[WordSpan], low: int, high: int) -> str:
    words = [span.word for span in spans if span.token_start < high and span.token_end > low]
    if not words:
        return EMPTY_CHUNK_TEXT
    return " ".join(words)


__all__ = ["EMPTY_CHUNK_TEXT", "TokenChunker"]
