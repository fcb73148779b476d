"""Unit tests for query rewriting and subquestion planning."""

import json

import pytest

from deep_research.models import ChatMessage, ResearchMode
from deep_research.search.query_planner import (
    ANGLES, QueryPlanner, angle_subquestions, is_trivial_query, looks_like_follow_up,
)

from ..conftest import FakeChat

HISTORY = [ChatMessage(role="user", content="Tell me about heat pumps")]


def planner(reply="", fail=False):
    # an empty marker matches every prompt
    return QueryPlanner(FakeChat(lambda prompt: reply, fail_on=[""] if fail else ()), max_subquestions=6)


@pytest.mark.parametrize("query", ["", "   ", "hi", "Thanks!", "good morning"])
def test_trivial_queries(query):
    assert is_trivial_query(query)


def test_research_query_is_not_trivial():
    assert not is_trivial_query("history of the printing press")


def test_follow_up_detection():
    assert looks_like_follow_up("what about costs in Europe and Asia for industry")
    assert looks_like_follow_up("costs?")
    assert not looks_like_follow_up("compare heat pump efficiency across European climates")


def test_angle_subquestions_cover_every_angle():
    qs = angle_subquestions("heat pumps?")
    assert len(qs) == len(ANGLES)
    assert qs[0] == "What is heat pumps? Key definitions and background"


@pytest.mark.asyncio
async def test_standalone_rewrite():
    p = planner('"heat pump costs in Europe"')
    assert await p.standalone_query("what about costs?", HISTORY) == "heat pump costs in Europe"


@pytest.mark.asyncio
async def test_standalone_keeps_query_without_history_or_on_failure():
    assert await planner("ignored").standalone_query("what about costs?", []) == "what about costs?"
    assert await planner(fail=True).standalone_query("what about costs?", HISTORY) == "what about costs?"
    assert await planner("ok").standalone_query("what about costs?", HISTORY) == "what about costs?"


@pytest.mark.asyncio
async def test_standalone_keeps_query_when_chat_raises_unexpected_error():
    def explode(prompt):
        raise RuntimeError("provider socket reset")

    p = QueryPlanner(FakeChat(explode))
    assert await p.standalone_query("what about costs?", HISTORY) == "what about costs?"


@pytest.mark.asyncio
async def test_plan_parses_reply():
    reply = json.dumps({"subquestions": ["a", "b", "a", ""], "criteria": ["c"], "notes": ["n1", "n2"]})
    plan = await planner(reply).plan("heat pumps")
    assert plan.subquestions == ["a", "b"]
    assert plan.criteria == ["c"]
    assert plan.notes == "n1; n2"


@pytest.mark.asyncio
async def test_plan_caps_speed_mode_at_three():
    reply = json.dumps({"subquestions": [f"q{i}" for i in range(6)]})
    plan = await planner(reply).plan("heat pumps", ResearchMode.SPEED)
    assert plan.subquestions == ["q0", "q1", "q2"]


@pytest.mark.asyncio
async def test_plan_falls_back_to_angles():
    plan = await planner("no json here").plan("heat pumps", ResearchMode.BALANCED)
    assert plan.subquestions == angle_subquestions("heat pumps")

    speed = await planner(fail=True).plan("heat pumps", ResearchMode.SPEED)
    assert speed.subquestions == ["heat pumps"]


@pytest.mark.asyncio
async def test_gap_subquestions_skip_known():
    reply = json.dumps({"subquestions": ["Known one", "new one", "another", "third"]})
    fresh = await planner(reply).gap_subquestions("q", ["known one"], ["fact"], n=2)
    assert fresh == ["new one", "another"]


@pytest.mark.asyncio
async def test_gap_subquestions_empty_on_failure():
    assert await planner(fail=True).gap_subquestions("q", [], []) == []
