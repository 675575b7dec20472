"""Tests for pageindex.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from pageindex.config import ConfigError, IndexerConfig, load_config


def test_load_config_returns_defaults_when_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path, environ={})

    assert isinstance(config, IndexerConfig)
    assert config.root == tmp_path.resolve()
    assert config.model.path == tmp_path.resolve() / "models" / "all-MiniLM-L6-v2" / "model.onnx"
    assert config.model.vocab_path.name == "vocab.txt"
    assert config.model.hidden_size == 384
    assert config.model.max_sequence_length == 512
    assert config.chunking.overlap == 50
    assert config.embedding.chunk_timeout == pytest.approx(30.0)
    assert config.search.default_limit == 10
    assert config.storage.root == tmp_path.resolve() / ".pageindex"
    assert config.logging.verbose is False
    assert config.logging.file is None


def test_load_config_parses_expected_fields(tmp_path: Path) -> None:
    config_file = tmp_path / ".pageindex.yml"
    config_file.write_text(
        """
model:
  path: "encoders/minilm.onnx"
  vocab_path: "/opt/vocab.txt"
  hidden_size: 256
  max_sequence_length: 128
  intra_op_threads: 2
chunking:
  overlap: 16
embedding:
  chunk_timeout: 2.5
search:
  default_limit: 5
storage:
  root: "data/index"
logging:
  verbose: true
  file: "logs/pageindex.log"
""",
        encoding="utf-8",
    )

    config = load_config(config_file, environ={})

    assert config.model.path == tmp_path.resolve() / "encoders" / "minilm.onnx"
    assert config.model.vocab_path == Path("/opt/vocab.txt")
    assert config.model.hidden_size == 256
    assert config.model.max_sequence_length == 128
    assert config.model.intra_op_threads == 2
    assert config.chunking.overlap == 16
    assert config.embedding.chunk_timeout == pytest.approx(2.5)
    assert config.search.default_limit == 5
    assert config.storage.root == tmp_path.resolve() / "data" / "index"
    assert config.logging.verbose is True
    assert config.logging.file == tmp_path.resolve() / "logs" / "pageindex.log"
    assert config.as_settings() == {
        "chunkSize": 128,
        "overlapSize": 16,
        "defaultSearchLimit": 5,
        "chunkTimeout": 2.5,
        "hiddenSize": 256,
    }


def test_null_timeout_disables_deadline(tmp_path: Path) -> None:
    (tmp_path / ".pageindex.yml").write_text("embedding:\n  chunk_timeout: null\n", encoding="utf-8")

    assert load_config(tmp_path, environ={}).embedding.chunk_timeout is None


def test_environment_overrides_file(tmp_path: Path) -> None:
    (tmp_path / ".pageindex.yml").write_text("storage:\n  root: from-file\n", encoding="utf-8")

    config = load_config(
        tmp_path,
        environ={
            "PAGEINDEX_MODEL_PATH": "/models/m.onnx",
            "PAGEINDEX_VOCAB_PATH": "vocab/v.txt",
            "PAGEINDEX_STORAGE_ROOT": "from-env",
        },
    )

    assert config.model.path == Path("/models/m.onnx")
    assert config.model.vocab_path == tmp_path.resolve() / "vocab" / "v.txt"
    assert config.storage.root == tmp_path.resolve() / "from-env"


def test_environment_is_read_from_os(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PAGEINDEX_STORAGE_ROOT", str(tmp_path / "elsewhere"))

    assert load_config(tmp_path).storage.root == tmp_path / "elsewhere"


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("model: [unclosed", "Failed to parse"),
        ("- just\n- a list\n", "mapping at the root"),
        ("chunking:\n  overlap: 600\n", "chunking.overlap"),
        ("model:\n  hidden_size: zero\n", "Expected an integer"),
        ("embedding:\n  chunk_timeout: soon\n", "chunk_timeout"),
        ("search:\n  default_limit: 0\n", "default_limit"),
    ],
)
def test_invalid_config_raises(tmp_path: Path, content: str, message: str) -> None:
    (tmp_path / ".pageindex.yml").write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError, match=message):
        load_config(tmp_path, environ={})


def test_empty_file_uses_defaults(tmp_path: Path) -> None:
    (tmp_path / ".pageindex.yml").write_text("\n", encoding="utf-8")

    assert load_config(tmp_path, environ={}).search.default_limit == 10
