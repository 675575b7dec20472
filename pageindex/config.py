"""Configuration loading for pageindex (.pageindex.yml)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

CONFIG_FILENAME = ".pageindex.yml"
DEFAULT_MODEL_DIR = Path("models") / "all-MiniLM-L6-v2"

ENV_MODEL_PATH = "PAGEINDEX_MODEL_PATH"
ENV_VOCAB_PATH = "PAGEINDEX_VOCAB_PATH"
ENV_STORAGE_ROOT = "PAGEINDEX_STORAGE_ROOT"


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed or holds invalid values."""


@dataclass
class ModelConfig:
    """Encoder model and vocabulary settings."""

    path: Path
    vocab_path: Path
    hidden_size: int = 384
    max_sequence_length: int = 512
    intra_op_threads: int = 1


@dataclass
class ChunkingConfig:
    """Token-window overlap between consecutive chunks."""

    overlap: int = 50


@dataclass
class EmbeddingConfig:
    """Per-chunk inference budget; ``None`` waits indefinitely."""

    chunk_timeout: Optional[float] = 30.0


@dataclass
class SearchConfig:
    default_limit: int = 10


@dataclass
class StorageConfig:
    root: Path


@dataclass
class LoggingConfig:
    verbose: bool = False
    file: Optional[Path] = None


@dataclass
class IndexerConfig:
    """Represents the settings defined in .pageindex.yml."""

    root: Path
    model: ModelConfig
    storage: StorageConfig
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def defaults(cls, root: Path) -> "IndexerConfig":
        root = root.resolve()
        return cls(
            root=root,
            model=ModelConfig(
                path=root / DEFAULT_MODEL_DIR / "model.onnx",
                vocab_path=root / DEFAULT_MODEL_DIR / "vocab.txt",
            ),
            storage=StorageConfig(root=root / ".pageindex"),
        )

    def as_settings(self) -> Dict[str, Any]:
        """Flat view of the tunables, as included in exports."""
        return {
            "chunkSize": self.model.max_sequence_length,
            "overlapSize": self.chunking.overlap,
            "defaultSearchLimit": self.search.default_limit,
            "chunkTimeout": self.embedding.chunk_timeout,
            "hiddenSize": self.model.hidden_size,
        }


def load_config(config_path: Path, *, environ: Mapping[str, str] | None = None) -> IndexerConfig:
    """Load configuration from disk, applying environment overrides."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()
    env = os.environ if environ is None else environ

    config = IndexerConfig.defaults(root)
    if config_file.exists():
        data = _read_config(config_file)
        if not isinstance(data, dict):
            raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")
        _apply_file_settings(config, data, root)

    model_override = env.get(ENV_MODEL_PATH)
    if model_override:
        config.model.path = _resolve_path(root, model_override)
    vocab_override = env.get(ENV_VOCAB_PATH)
    if vocab_override:
        config.model.vocab_path = _resolve_path(root, vocab_override)
    storage_override = env.get(ENV_STORAGE_ROOT)
    if storage_override:
        config.storage.root = _resolve_path(root, storage_override)

    _validate(config)
    return config


def _apply_file_settings(config: IndexerConfig, data: Dict[str, Any], root: Path) -> None:
    model_data = _as_dict(data.get("model"))
    path = _as_str(model_data.get("path"))
    if path:
        config.model.path = _resolve_path(root, path)
    vocab_path = _as_str(model_data.get("vocab_path"))
    if vocab_path:
        config.model.vocab_path = _resolve_path(root, vocab_path)
    config.model.hidden_size = _int_or(model_data.get("hidden_size"), config.model.hidden_size)
    config.model.max_sequence_length = _int_or(
        model_data.get("max_sequence_length"), config.model.max_sequence_length
    )
    config.model.intra_op_threads = _int_or(
        model_data.get("intra_op_threads"), config.model.intra_op_threads
    )

    chunking_data = _as_dict(data.get("chunking"))
    config.chunking.overlap = _int_or(chunking_data.get("overlap"), config.chunking.overlap)

    embedding_data = _as_dict(data.get("embedding"))
    if "chunk_timeout" in embedding_data:
        raw_timeout = embedding_data.get("chunk_timeout")
        if raw_timeout is None:
            config.embedding.chunk_timeout = None
        else:
            timeout = _as_float(raw_timeout)
            if timeout is None:
                raise ConfigError(f"embedding.chunk_timeout must be a number, got {raw_timeout!r}")
            config.embedding.chunk_timeout = timeout

    search_data = _as_dict(data.get("search"))
    config.search.default_limit = _int_or(search_data.get("default_limit"), config.search.default_limit)

    storage_data = _as_dict(data.get("storage"))
    storage_root = _as_str(storage_data.get("root"))
    if storage_root:
        config.storage.root = _resolve_path(root, storage_root)

    logging_data = _as_dict(data.get("logging"))
    verbose = _as_bool(logging_data.get("verbose"))
    if verbose is not None:
        config.logging.verbose = verbose
    log_file = _as_str(logging_data.get("file"))
    if log_file:
        config.logging.file = _resolve_path(root, log_file)


def _validate(config: IndexerConfig) -> None:
    if config.model.hidden_size <= 0:
        raise ConfigError("model.hidden_size must be positive")
    if config.model.max_sequence_length <= 2:
        raise ConfigError("model.max_sequence_length must leave room for [CLS] and [SEP]")
    window = config.model.max_sequence_length - 2
    if not 0 <= config.chunking.overlap < window:
        raise ConfigError(f"chunking.overlap must be between 0 and {window - 1}")
    if config.embedding.chunk_timeout is not None and config.embedding.chunk_timeout <= 0:
        raise ConfigError("embedding.chunk_timeout must be positive or null")
    if config.search.default_limit <= 0:
        raise ConfigError("search.default_limit must be positive")


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _resolve_path(root: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else (root / path)


def _read_config(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _int_or(value: Any, default: int) -> int:
    if value is None:
        return default
    parsed = _as_int(value)
    if parsed is None:
        raise ConfigError(f"Expected an integer, got {value!r}")
    return parsed


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


__all__ = [
    "CONFIG_FILENAME",
    "ChunkingConfig",
    "ConfigError",
    "EmbeddingConfig",
    "IndexerConfig",
    "LoggingConfig",
    "ModelConfig",
    "SearchConfig",
    "StorageConfig",
    "load_config",
]
