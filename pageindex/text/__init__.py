"""Text preparation: vocabulary, tokenization, and chunking."""

from .chunker import EMPTY_CHUNK_TEXT, TokenChunker
from .tokenizer import WordPieceTokenizer, estimate_token_count, normalize
from .vocab import Vocabulary

__all__ = [
    "EMPTY_CHUNK_TEXT",
    "TokenChunker",
    "Vocabulary",
    "WordPieceTokenizer",
    "estimate_token_count",
    "normalize",
]
