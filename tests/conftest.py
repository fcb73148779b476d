"""Shared in-memory capabilities for the research pipeline tests."""

import asyncio
import json
import re
from typing import Callable, Dict, List, Optional, Sequence

import pytest

from deep_research.config import Settings
from deep_research.exceptions import APIError, FetchError
from deep_research.models import ChatMessage, FetchedPage, SearchHit
from deep_research.utils.cancel import cancellable


def make_settings(**overrides) -> Settings:
    """Settings isolated from the environment and any .env file."""
    base = dict(
        LLM_PROVIDER="disabled",
        WALL_CLOCK_LIMIT_SEC=60.0,
        FETCH_TIMEOUT_SEC=2.0,
        UNKNOWN_DOMAINS_LOG="unused.txt",
    )
    base.update(overrides)
    return Settings(_env_file=None, **base)


@pytest.fixture
def settings():
    return make_settings()


def _section(prompt: str, start: str, end: Optional[str] = None) -> str:
    body = prompt.split(start, 1)[1] if start in prompt else ""
    if end and end in body:
        body = body.split(end, 1)[0]
    return body.strip()


def research_responder(prompt: str) -> str:
    """Deterministic replies for every prompt the pipeline sends."""
    if "rewrite the question as a standalone search query" in prompt:
        return "solar power adoption in Germany"
    if "Break the research query into" in prompt:
        query = _section(prompt, "Query:")
        return json.dumps({
            "subquestions": [f"{query} costs", f"{query} policy"],
            "criteria": ["recent data"],
        })
    if "You are reviewing research progress" in prompt:
        query = _section(prompt, "Query:", "\n")
        return json.dumps({"subquestions": [f"{query} outlook"]})
    if "You extract short, atomic facts" in prompt:
        content = _section(prompt, "Web content:")
        lines = [l.strip() for l in content.splitlines() if l.strip()]
        facts = [l for l in lines if not l.startswith('"')]
        quotes = [l.strip('"') for l in lines if l.startswith('"')]
        return json.dumps({"relevant": bool(lines), "reason": "test", "facts": facts, "quotes": quotes})
    if "You are a claim extraction system" in prompt:
        title = _section(prompt, "Title:", "\n")
        return json.dumps([{"text": title, "type": "fact", "confidence": "high"}])
    if "Write a neutral" in prompt:
        return "Outlets across the spectrum agree on the core facts."
    if "You control a web research loop" in prompt:
        return "not json"
    return ""


class FakeChat:
    """ChatModel driven by a prompt -> reply function; records every prompt."""

    def __init__(self, responder: Callable[[str], str] = research_responder, fail_on: Sequence[str] = ()):
        self.responder = responder
        self.fail_on = list(fail_on)
        self.prompts: List[str] = []

    async def _reply(self, prompt: str) -> str:
        await asyncio.sleep(0)
        for marker in self.fail_on:
            if marker in prompt:
                raise APIError("scripted failure", provider="fake", status_code=500)
        return self.responder(prompt)

    async def invoke(self, messages: List[ChatMessage], signal=None) -> str:
        prompt = "\n".join(m.content for m in messages)
        self.prompts.append(prompt)
        return await cancellable(self._reply(prompt), signal)


class KeywordEmbedder:
    """Bag-of-keywords vectors: one dimension per vocabulary word."""

    def __init__(self, vocab: Sequence[str] = ("solar", "wind", "policy", "cost", "grid", "storage")):
        self.vocab = [w.lower() for w in vocab]
        self.calls = 0

    def _vec(self, text: str) -> List[float]:
        words = re.findall(r"\w+", text.lower())
        vec = [float(sum(1 for w in words if w.startswith(v))) for v in self.vocab]
        # constant component keeps every vector non-zero
        return vec + [0.1]

    async def embed(self, text: str) -> List[float]:
        self.calls += 1
        return self._vec(text)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        self.calls += 1
        return [self._vec(t) for t in texts]


def default_hits(query: str, n: int = 3) -> List[SearchHit]:
    slug = re.sub(r"\W+", "-", query.lower()).strip("-")
    return [
        SearchHit(
            title=f"{query} report {i}",
            url=f"https://site{i}.example.com/{slug}",
            snippet=f"About {query}",
        )
        for i in range(n)
    ]


class FakeSearch:
    """SearchBackend returning scripted hits per query text."""

    def __init__(self, results: Optional[Dict[str, List[SearchHit]]] = None,
                 fail: Sequence[str] = (), default: Optional[Callable[[str], List[SearchHit]]] = default_hits):
        self.results = results or {}
        self.fail = set(fail)
        self.default = default
        self.queries: List[tuple] = []

    async def query(self, text: str, page: int = 1) -> List[SearchHit]:
        self.queries.append((text, page))
        await asyncio.sleep(0)
        if text in self.fail:
            raise FetchError("search backend down")
        if (text, page) in self.results:
            return list(self.results[(text, page)])
        if text in self.results:
            return list(self.results[text]) if page == 1 else []
        return self.default(text) if self.default else []


class FakeFetcher:
    """WebFetcher over an in-memory url -> text map."""

    def __init__(self, pages: Optional[Dict[str, str]] = None, fail: Sequence[str] = (),
                 delays: Optional[Dict[str, float]] = None):
        self.pages = pages or {}
        self.fail = set(fail)
        self.delays = delays or {}
        self.fetched: List[str] = []

    async def fetch(self, url: str) -> FetchedPage:
        self.fetched.append(url)
        await asyncio.sleep(self.delays.get(url, 0))
        if url in self.fail:
            raise FetchError("HTTP 503", url=url, status_code=503)
        text = self.pages.get(url)
        if text is None:
            host = url.split("/")[2]
            text = f"Solar cost fell sharply according to {host}\n\"Prices keep dropping\""
        return FetchedPage(url=url, title=None, text=text)


@pytest.fixture
def chat():
    return FakeChat()


@pytest.fixture
def embedder():
    return KeywordEmbedder()


@pytest.fixture
def search():
    return FakeSearch()


@pytest.fixture
def fetcher():
    return FakeFetcher()
