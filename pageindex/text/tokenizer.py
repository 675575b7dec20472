"""Greedy WordPiece tokenizer producing encoder token ids."""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

from ..errors import TokenizationError
from ..logging import get_logger
from ..models import WordSpan
from .vocab import CONTINUATION_PREFIX, Vocabulary

_APOSTROPHES = re.compile(r"[‘’]")
_NON_WORD = re.compile(r"[^A-Za-z0-9_]")
_ESTIMATE_SPLIT = re.compile(r"(\s+|[.,!?;:()\[\]{}\"'`~@#$%^&*+=|\\/<>-])")

logger = get_logger("tokenizer")


class WordPieceTokenizer:
    """Lowercasing whitespace/WordPiece tokenizer.

    Words that fail subword matching from their first character collapse into a
    single ``[UNK]``; once any piece of a word matched, the unmatched remainder is
    dropped rather than retried.
    """

    def __init__(self, vocabulary: Vocabulary | None = None) -> None:
        self._vocabulary = vocabulary

    def load(self, vocabulary: Vocabulary) -> None:
        self._vocabulary = vocabulary
        logger.debug(
            "Tokenizer loaded vocabulary of %d entries (cls=%d sep=%d unk=%d)",
            len(vocabulary),
            vocabulary.cls_id,
            vocabulary.sep_id,
            vocabulary.unk_id,
        )

    @property
    def loaded(self) -> bool:
        return self._vocabulary is not None

    @property
    def vocabulary(self) -> Vocabulary:
        if self._vocabulary is None:
            raise TokenizationError("Tokenizer used before a vocabulary was loaded")
        return self._vocabulary

    def tokenize(self, text: str) -> List[int]:
        """Return ``[CLS] ... [SEP]`` token ids for ``text``."""
        tokens, _, _ = self.tokenize_with_mapping(text)
        return tokens

    def tokenize_with_mapping(self, text: str) -> Tuple[List[int], List[str], List[WordSpan]]:
        """Tokenize ``text`` and record the token range each source word produced.

        Ranges are half-open and indexed into the returned sequence, so the first
        word starts at 1 (right after ``[CLS]``).
        """
        vocabulary = self.vocabulary
        words = normalize(text)
        tokens: List[int] = [vocabulary.cls_id]
        spans: List[WordSpan] = []
        for word in words:
            start = len(tokens)
            tokens.extend(self._word_pieces(word, vocabulary))
            spans.append(WordSpan(word=word, token_start=start, token_end=len(tokens)))
        tokens.append(vocabulary.sep_id)
        return tokens, words, spans

    @staticmethod
    def _word_pieces(word: str, vocabulary: Vocabulary) -> List[int]:
        key = _NON_WORD.sub("", word)
        if not key:
            return []
        whole = vocabulary.get(key)
        if whole is not None:
            return [whole]

        pieces: List[int] = []
        start = 0
        while start < len(key):
            match = _longest_match(key, start, vocabulary)
            if match is None:
                if not pieces:
                    pieces.append(vocabulary.unk_id)
                break
            token_id, start = match
            pieces.append(token_id)
        return pieces


def _longest_match(key: str, start: int, vocabulary: Vocabulary) -> Optional[Tuple[int, int]]:
    end = len(key)
    while end > start:
        candidate = key[start:end]
        if start > 0:
            candidate = CONTINUATION_PREFIX + candidate
        token_id = vocabulary.get(candidate)
        if token_id is not None:
            return token_id, end
        end -= 1
    return None


def normalize(text: str) -> List[str]:
    """Lowercase, straighten curly apostrophes and split on whitespace runs."""
    lowered = _APOSTROPHES.sub("'", (text or "").lower())
    return [word for word in lowered.split() if word]


def estimate_token_count(text: str) -> int:
    """Approximate a token count without a vocabulary.

    Each word-like run and each punctuation mark counts once. Used for persisted
    chunk records that predate stored token counts.
    """
    if not text:
        return 0
    pieces = [piece for piece in _ESTIMATE_SPLIT.split(text) if piece.strip()]
    return max(1, len(pieces))


__all__ = ["WordPieceTokenizer", "estimate_token_count", "normalize"]
