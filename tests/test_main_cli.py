"""Command line entry point."""

import json

import pytest

from deep_research import main as cli

from .conftest import FakeChat, FakeFetcher, FakeSearch, KeywordEmbedder, make_settings


class ClosingSearch(FakeSearch):
    closed = False

    async def aclose(self):
        self.closed = True


class ClosingFetcher(FakeFetcher):
    closed = False

    async def aclose(self):
        self.closed = True


@pytest.fixture
def wired(monkeypatch):
    search, fetcher = ClosingSearch(), ClosingFetcher()
    monkeypatch.setattr(cli, "_init_logging", lambda level: None)
    monkeypatch.setattr(cli, "get_settings", lambda: make_settings())
    monkeypatch.setattr(cli, "build_chat_model", lambda settings: FakeChat())
    monkeypatch.setattr(cli, "SentenceTransformerEmbeddings", lambda name: KeywordEmbedder())
    monkeypatch.setattr(cli, "SearxngSearch", lambda settings: search)
    monkeypatch.setattr(cli, "HttpFetcher", lambda settings: fetcher)
    return search, fetcher


def test_parser_defaults():
    args = cli.build_parser().parse_args(["--query", "solar"])
    assert args.mode == "balanced"
    assert args.budget is None
    assert not args.triangulate


def test_missing_chat_model_exits_with_code_2(monkeypatch, capsys):
    monkeypatch.setattr(cli, "_init_logging", lambda level: None)
    monkeypatch.setattr(cli, "get_settings", lambda: make_settings())
    with pytest.raises(SystemExit) as exc:
        cli.main(["--query", "solar energy"])
    assert exc.value.code == 2
    assert "Configuration error" in capsys.readouterr().err


def test_research_run_prints_and_writes_json(wired, tmp_path, capsys):
    out = tmp_path / "runs" / "result.json"
    cli.main(["--query", "solar energy adoption", "--mode", "speed", "--output", str(out)])

    printed = json.loads(out.read_text(encoding="utf-8"))
    assert printed["mode"] == "speed"
    assert printed["actions"][-1]["kind"] == "terminate"
    assert printed["markdown"].startswith("## Executive Summary")
    assert json.dumps(printed, indent=2, ensure_ascii=False) in capsys.readouterr().out
    search, fetcher = wired
    assert search.closed and fetcher.closed
