"""Subword vocabulary table for the WordPiece tokenizer."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional, Sequence, Tuple

from ..errors import InitializationError

CLS_TOKEN = "[CLS]"
SEP_TOKEN = "[SEP]"
UNK_TOKEN = "[UNK]"

DEFAULT_CLS_ID = 101
DEFAULT_SEP_ID = 102
DEFAULT_UNK_ID = 100

CONTINUATION_PREFIX = "##"


class Vocabulary:
    """Immutable ``subword -> id`` table where a token's id is its position."""

    def __init__(self, tokens: Sequence[str]) -> None:
        if isinstance(tokens, (str, bytes)):
            raise InitializationError("Vocabulary must be a sequence of strings, not a single string")
        entries = tuple(tokens)
        if not entries:
            raise InitializationError("Vocabulary is empty")
        lookup: Dict[str, int] = {}
        for position, token in enumerate(entries):
            if not isinstance(token, str):
                raise InitializationError(
                    f"Vocabulary entry {position} is {type(token).__name__}, expected str"
                )
            # A repeated token resolves to its last position.
            lookup[token] = position
        self._tokens: Tuple[str, ...] = entries
        self._lookup = lookup
        self.cls_id = lookup.get(CLS_TOKEN, DEFAULT_CLS_ID)
        self.sep_id = lookup.get(SEP_TOKEN, DEFAULT_SEP_ID)
        self.unk_id = lookup.get(UNK_TOKEN, DEFAULT_UNK_ID)

    @classmethod
    def from_file(cls, path: Path) -> "Vocabulary":
        """Load a ``vocab.txt`` file, one token per line, skipping blank lines."""
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise InitializationError(f"Unable to read vocabulary at {path}: {exc}") from exc
        return cls(_parse_lines(text.splitlines()))

    def __len__(self) -> int:
        return len(self._tokens)

    def __contains__(self, token: object) -> bool:
        return token in self._lookup

    def __iter__(self) -> Iterator[str]:
        return iter(self._tokens)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Vocabulary):
            return NotImplemented
        return self._tokens == other._tokens

    def __hash__(self) -> int:
        return hash(self._tokens)

    def get(self, token: str) -> Optional[int]:
        return self._lookup.get(token)

    def token_for(self, token_id: int) -> str:
        return self._tokens[token_id]

    @property
    def special_ids(self) -> Dict[str, int]:
        return {CLS_TOKEN: self.cls_id, SEP_TOKEN: self.sep_id, UNK_TOKEN: self.unk_id}


def _parse_lines(lines: Iterable[str]) -> list[str]:
    return [line for line in lines if line.strip()]


__all__ = [
    "CLS_TOKEN",
    "CONTINUATION_PREFIX",
    "SEP_TOKEN",
    "UNK_TOKEN",
    "Vocabulary",
]
