"""Settings, domain normalization, cancellation and chat adapter wiring."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest

from deep_research.exceptions import Cancelled, ConfigurationError, MalformedURLError, RateLimitError
from deep_research.llm.llm_client import build_chat_model
from deep_research.models import ChatMessage, Outline
from deep_research.time_budget import Budget, resolve_action_cap
from deep_research.tools.domain_norm import domain_of, host_of, normalize_domain, registrable_suffix
from deep_research.utils.cancel import CancelToken, cancellable, raise_if_cancelled

from ..conftest import make_settings


def test_settings_normalization_and_helpers():
    s = make_settings(LOG_LEVEL="debug", SEARXNG_URL="http://x/", SEARXNG_ENGINES="a, b,,", BALANCED_MAX_ACTIONS=5)
    assert s.LOG_LEVEL == "DEBUG"
    assert s.SEARXNG_URL == "http://x"
    assert s.engines() == ["a", "b"]
    assert s.max_actions_for("balanced") == 5
    assert s.max_actions_for("quality") == 10


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("QUALITY_MAX_ACTIONS", "8")
    assert make_settings().QUALITY_MAX_ACTIONS == 8


def test_missing_llm_keys():
    assert make_settings(LLM_PROVIDER="openai").missing_llm_keys() == ["OPENAI_API_KEY"]
    assert make_settings(LLM_PROVIDER="anthropic", ANTHROPIC_API_KEY="k").missing_llm_keys() == []


def test_build_chat_model_requires_configuration():
    with pytest.raises(ConfigurationError):
        build_chat_model(make_settings())
    with pytest.raises(ConfigurationError):
        build_chat_model(make_settings(LLM_PROVIDER="openai"))


def test_outline_rejects_out_of_range_confidence():
    with pytest.raises(ValueError):
        Outline(sections=[], confidence_by_section={"x": 1.5})


def test_domain_helpers():
    assert normalize_domain("https://user:pw@WWW.Example.com:8080/path") == "example.com"
    assert normalize_domain("example.com.") == "example.com"
    assert host_of("https://www.bbc.co.uk/news") == "bbc.co.uk"
    assert domain_of("no scheme") == ""
    assert registrable_suffix("a.b.example.com") == "example.com"
    with pytest.raises(MalformedURLError):
        host_of("example.com/path")


def test_action_cap_resolution():
    assert resolve_action_cap(6, None) == 6
    assert resolve_action_cap(6, 3) == 3
    assert resolve_action_cap(6, 50) == 6
    assert resolve_action_cap(6, 0) == 1


def test_budget_with_fake_clock():
    now = [100.0]
    b = Budget(10, clock=lambda: now[0])
    assert b.remaining() == 10
    now[0] = 109.95
    assert b.remaining() == 0.1
    assert not b.is_expired()
    now[0] = 111
    assert b.is_expired()


@pytest.mark.asyncio
async def test_cancel_token():
    token = CancelToken()
    raise_if_cancelled(token)
    assert await cancellable(asyncio.sleep(0, result=5), token) == 5

    token.cancel("stop")
    token.cancel("ignored")
    assert token.reason == "stop"
    with pytest.raises(Cancelled):
        raise_if_cancelled(token)
    with pytest.raises(Cancelled):
        await cancellable(asyncio.sleep(0), token)
    await asyncio.wait_for(token.wait(), 1)


@pytest.mark.asyncio
async def test_openai_adapter_maps_replies_and_errors():
    openai = pytest.importorskip("openai")
    from deep_research.llm.llm_client import OpenAIChatModel

    model = OpenAIChatModel(make_settings(LLM_PROVIDER="openai", OPENAI_API_KEY="sk-test"))
    create = AsyncMock(return_value=SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="hello"))]))
    model._client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))

    assert await model.invoke([ChatMessage(role="user", content="hi")]) == "hello"
    assert create.await_args.kwargs["messages"] == [{"role": "user", "content": "hi"}]

    response = httpx.Response(429, request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
    create.side_effect = openai.RateLimitError("slow down", response=response, body=None)
    with pytest.raises(RateLimitError):
        await model.invoke([ChatMessage(role="user", content="hi")])


@pytest.mark.asyncio
async def test_anthropic_adapter_splits_system_prompt():
    pytest.importorskip("anthropic")
    from deep_research.llm.llm_client import AnthropicChatModel

    model = AnthropicChatModel(make_settings(LLM_PROVIDER="anthropic", ANTHROPIC_API_KEY="k"))
    create = AsyncMock(return_value=SimpleNamespace(content=[SimpleNamespace(type="text", text="answer")]))
    model._client = SimpleNamespace(messages=SimpleNamespace(create=create))

    reply = await model.invoke([
        ChatMessage(role="system", content="be brief"),
        ChatMessage(role="user", content="hi"),
    ])
    assert reply == "answer"
    assert create.await_args.kwargs["system"] == "be brief"
    assert create.await_args.kwargs["messages"] == [{"role": "user", "content": "hi"}]


@pytest.mark.asyncio
async def test_cancelled_chat_call_is_not_sent():
    pytest.importorskip("openai")
    from deep_research.llm.llm_client import OpenAIChatModel

    model = OpenAIChatModel(make_settings(LLM_PROVIDER="openai", OPENAI_API_KEY="sk-test"))
    create = AsyncMock()
    model._client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    token = CancelToken()
    token.cancel()
    with pytest.raises(Cancelled):
        await model.invoke([ChatMessage(role="user", content="hi")], signal=token)
    create.assert_not_awaited()
