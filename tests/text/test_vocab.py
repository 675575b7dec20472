"""Tests for the vocabulary table."""

from __future__ import annotations

from pathlib import Path

import pytest

from pageindex.errors import InitializationError
from pageindex.text import Vocabulary


def test_vocabulary_ids_are_line_positions(vocabulary: Vocabulary) -> None:
    assert vocabulary.get("[PAD]") == 0
    assert vocabulary.get("hello") == 12
    assert vocabulary.get("##ing") == 18
    assert vocabulary.get("missing") is None
    assert vocabulary.token_for(13) == "world"
    assert len(vocabulary) == 25
    assert "fox" in vocabulary


def test_special_ids_come_from_the_table(vocabulary: Vocabulary) -> None:
    assert (vocabulary.cls_id, vocabulary.sep_id, vocabulary.unk_id) == (2, 3, 1)
    assert vocabulary.special_ids == {"[CLS]": 2, "[SEP]": 3, "[UNK]": 1}


def test_special_ids_fall_back_to_bert_defaults() -> None:
    table = Vocabulary(["alpha", "beta"])

    assert (table.cls_id, table.sep_id, table.unk_id) == (101, 102, 100)


def test_last_occurrence_of_duplicate_token_wins() -> None:
    table = Vocabulary(["[PAD]", "a", "a"])

    assert table.get("a") == 2
    assert table.token_for(1) == "a"
    assert len(table) == 3


@pytest.mark.parametrize("tokens", [[], "hello", ["ok", 3]])
def test_invalid_vocabulary_is_rejected(tokens: object) -> None:
    with pytest.raises(InitializationError):
        Vocabulary(tokens)  # type: ignore[arg-type]


def test_from_file_skips_blank_lines(tmp_path: Path) -> None:
    path = tmp_path / "vocab.txt"
    path.write_text("[UNK]\n\n[CLS]\n[SEP]\nword\n", encoding="utf-8")

    table = Vocabulary.from_file(path)

    assert list(table) == ["[UNK]", "[CLS]", "[SEP]", "word"]
    assert table.get("word") == 3


def test_from_file_reports_missing_file(tmp_path: Path) -> None:
    with pytest.raises(InitializationError, match="Unable to read vocabulary"):
        Vocabulary.from_file(tmp_path / "absent.txt")


def test_vocabularies_compare_by_contents(vocab_tokens: list[str]) -> None:
    assert Vocabulary(vocab_tokens) == Vocabulary(list(vocab_tokens))
    assert Vocabulary(vocab_tokens) != Vocabulary(vocab_tokens[:-1])
