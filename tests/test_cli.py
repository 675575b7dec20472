"""CLI behaviour tests."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

import pageindex.cli as cli
from pageindex.cli import _build_parser
from pageindex.config import IndexerConfig
from pageindex.pipeline import Pipeline


def test_cli_accepts_verbose_before_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["--verbose", "pages"])
    assert args.verbose is True
    assert args.command == "pages"


def test_cli_accepts_verbose_after_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["search", "query text", "--verbose"])
    assert args.verbose is True
    assert args.command == "search"
    assert args.query == "query text"
    assert args.limit is None


def test_cli_parses_index_options() -> None:
    parser = _build_parser()
    args = parser.parse_args(["--config", "conf", "index", "page.txt", "--url", "https://x", "--title", "X"])
    assert args.config == "conf"
    assert (args.path, args.url, args.title) == ("page.txt", "https://x", "X")


def test_cli_parses_serve_defaults() -> None:
    args = _build_parser().parse_args(["serve"])
    assert (args.host, args.port) == ("127.0.0.1", 8000)


@pytest.fixture
def workspace(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    make_encoder,
    vocab_tokens: list[str],
) -> Path:
    (tmp_path / ".pageindex.yml").write_text(
        "model:\n  hidden_size: 8\nstorage:\n  root: store\n",
        encoding="utf-8",
    )

    def _create_pipeline(config: IndexerConfig) -> Pipeline:
        pipeline = Pipeline(config, encoder=make_encoder())
        pipeline.initialize(vocab_tokens)
        return pipeline

    monkeypatch.setattr(cli, "_create_pipeline", _create_pipeline)
    monkeypatch.setattr(cli, "configure_logging", lambda **_: None)
    monkeypatch.delenv("PAGEINDEX_STORAGE_ROOT", raising=False)
    return tmp_path


def test_index_then_search_and_list(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    page = workspace / "page.txt"
    page.write_text("hello world", encoding="utf-8")
    config = ["--config", str(workspace)]

    cli.main([*config, "index", str(page), "--url", "https://example.com", "--title", "Example"])
    assert "Indexed page_" in capsys.readouterr().out

    cli.main([*config, "search", "hello world", "--limit", "3"])
    output = capsys.readouterr().out
    assert "1. 1.0000  Example (https://example.com) #chunk_0" in output
    assert "hello world" in output

    cli.main([*config, "pages"])
    assert "Example\thttps://example.com" in capsys.readouterr().out


def test_export_writes_json(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    target = workspace / "export.json"

    cli.main(["--config", str(workspace), "export", "--output", str(target)])

    payload = json.loads(target.read_text(encoding="utf-8"))
    assert payload["pages"] == []
    assert payload["settings"]["hiddenSize"] == 8
    assert "Export written" in capsys.readouterr().out


def test_delete_unknown_page_exits_with_error(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--config", str(workspace), "delete", "page_missing"])

    assert excinfo.value.code == 1
    assert "Unknown page page_missing" in capsys.readouterr().err


def test_empty_document_exits_with_error(workspace: Path) -> None:
    page = workspace / "empty.txt"
    page.write_text("   ", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--config", str(workspace), "index", str(page)])

    assert excinfo.value.code == 1


def test_invalid_config_exits_with_error(tmp_path: Path) -> None:
    (tmp_path / ".pageindex.yml").write_text("search:\n  default_limit: -1\n", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--config", str(tmp_path), "pages"])

    assert excinfo.value.code == 1
