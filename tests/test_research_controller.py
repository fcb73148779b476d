"""End-to-end runs of the iteration controller over in-memory capabilities."""

import pytest

from deep_research.exceptions import ConfigurationError
from deep_research.models import ChatMessage, ResearchMode
from deep_research.orchestration.actions import Action, ActionKind
from deep_research.orchestration.controller import IterationController
from deep_research.orchestration.events import CompletedEvent, FailedEvent, ProgressEvent
from deep_research.report.outline import EXECUTIVE_SUMMARY, LIMITATIONS, NO_CONSENSUS, NO_GAPS
from deep_research.utils.cancel import CancelToken

from .conftest import FakeChat, FakeFetcher, FakeSearch, KeywordEmbedder, make_settings

QUERY = "solar energy adoption"


def build(settings=None, chat=None, search=None, fetcher=None, policy=None):
    return IterationController(
        chat or FakeChat(),
        KeywordEmbedder(),
        search or FakeSearch(),
        fetcher or FakeFetcher(),
        policy=policy,
        settings=settings or make_settings(),
    )


def kinds(state):
    return [a.kind for a in state.actions]


class TestModes:
    @pytest.mark.asyncio
    async def test_balanced_reasons_first_and_stays_within_cap(self):
        state = await build().research(QUERY, mode="balanced")

        assert state.actions_used <= 6
        assert kinds(state)[0] == ActionKind.REASON
        assert kinds(state)[-1] == ActionKind.TERMINATE
        assert kinds(state).count(ActionKind.REASON) <= 2
        assert ActionKind.SEARCH in kinds(state)
        assert state.documents

    @pytest.mark.asyncio
    async def test_balanced_outline_has_fixed_shape(self):
        state = await build().research(QUERY, mode="balanced")
        titles = [s.title for s in state.outline.sections]

        assert titles[0] == EXECUTIVE_SUMMARY
        assert titles[-1] == LIMITATIONS
        assert titles[1:-1] == state.subquestions
        for title, score in state.outline.confidence_by_section.items():
            assert 0.0 <= score <= 1.0

    @pytest.mark.asyncio
    async def test_quality_alternates_and_covers_every_angle(self):
        state = await build().research(QUERY, mode="quality")
        ks = kinds(state)

        assert state.actions_used <= 10
        assert ks[0] == ActionKind.REASON
        for prev, cur in zip(ks, ks[1:]):
            if cur in (ActionKind.SEARCH, ActionKind.EXTRACT):
                assert prev == ActionKind.REASON
        assert state.uncovered_angles == []

    @pytest.mark.asyncio
    async def test_speed_stops_once_documents_exist(self):
        state = await build().research(QUERY, mode="speed")

        assert state.actions_used <= 4
        assert ActionKind.REASON not in kinds(state)
        assert state.stop_reason == "sufficient"
        assert state.documents

    @pytest.mark.asyncio
    async def test_budget_lowers_but_never_raises_cap(self):
        ctrl = build()
        low = await ctrl.research(QUERY, mode="balanced", budget=3)
        high = await ctrl.research(QUERY, mode="balanced", budget=50)

        assert low.max_actions == 3
        assert low.actions_used <= 3
        assert high.max_actions == 6

    @pytest.mark.asyncio
    async def test_run_returns_outline(self):
        outline = await build().run(QUERY, mode=ResearchMode.BALANCED)
        assert outline.section(EXECUTIVE_SUMMARY) is not None


class TestEdgeCases:
    @pytest.mark.asyncio
    async def test_trivial_query_terminates_immediately(self):
        search = FakeSearch()
        state = await build(search=search).research("hello!")

        assert kinds(state) == [ActionKind.TERMINATE]
        assert search.queries == []
        assert state.outline.section(EXECUTIVE_SUMMARY).bullets == [NO_CONSENSUS]
        assert state.outline.section(LIMITATIONS).bullets[0] == NO_GAPS

    @pytest.mark.asyncio
    async def test_empty_search_results_still_produce_outline(self):
        state = await build(search=FakeSearch(default=None)).research(QUERY)

        assert state.documents == []
        assert state.outline.section(EXECUTIVE_SUMMARY).bullets == [NO_CONSENSUS]
        assert "Areas with limited evidence" in state.outline.section(LIMITATIONS).bullets[0]

    @pytest.mark.asyncio
    async def test_missing_capability_raises_before_any_work(self):
        search = FakeSearch()
        ctrl = IterationController(None, KeywordEmbedder(), search, FakeFetcher(), settings=make_settings())
        with pytest.raises(ConfigurationError):
            await ctrl.run(QUERY)
        assert search.queries == []

    @pytest.mark.asyncio
    async def test_failed_fetches_do_not_fail_the_run(self):
        class Unreachable(FakeFetcher):
            async def fetch(self, url):
                self.fetched.append(url)
                raise ConnectionError("unreachable")

        fetcher = Unreachable()
        state = await build(fetcher=fetcher).research(QUERY)

        assert state.documents == []
        assert fetcher.fetched
        assert state.outline is not None

    @pytest.mark.asyncio
    async def test_search_backend_failure_is_recorded_and_skipped(self):
        search = FakeSearch(fail=[f"{QUERY} costs"])
        state = await build(search=search).research(QUERY)

        assert any(c.url.endswith("policy") for c in state.candidates)
        assert state.outline is not None

    @pytest.mark.asyncio
    async def test_follow_up_is_rewritten_with_history(self):
        chat = FakeChat()
        history = [
            ChatMessage(role="user", content="Tell me about solar power in Germany"),
            ChatMessage(role="assistant", content="Germany has expanded solar quickly."),
        ]
        state = await build(chat=chat).research("what about adoption?", history=history)

        assert state.query == "solar power adoption in Germany"
        assert state.original_query == "what about adoption?"

    @pytest.mark.asyncio
    async def test_rewrite_crash_keeps_original_query(self):
        class SocketResetChat(FakeChat):
            async def _reply(self, prompt):
                if "rewrite the question as a standalone search query" in prompt:
                    raise RuntimeError("provider socket reset")
                return await super()._reply(prompt)

        history = [ChatMessage(role="user", content="Tell me about solar power in Germany")]
        ctrl = build(chat=SocketResetChat())

        outline = await ctrl.run("what about adoption?", history=history)
        state = await ctrl.research("what about adoption?", history=history)

        assert outline.sections
        assert state.query == "what about adoption?"
        assert state.outline is not None


class TestPolicyValidation:
    @pytest.mark.asyncio
    async def test_rule_breaking_proposals_are_replaced(self):
        class EagerTerminate:
            async def choose_next_action(self, state):
                return Action.terminate("done already")

        state = await build(policy=EagerTerminate()).research(QUERY, mode="balanced")

        # balanced requires an information action before terminating
        assert ActionKind.SEARCH in kinds(state)

    @pytest.mark.asyncio
    async def test_raising_policy_falls_back_to_rules(self):
        class Broken:
            async def choose_next_action(self, state):
                raise RuntimeError("policy crashed")

        state = await build(policy=Broken()).research(QUERY, mode="balanced")
        assert state.documents


class TestTerminate:
    @pytest.mark.asyncio
    async def test_terminate_is_idempotent(self):
        ctrl = build()
        state = await ctrl.research(QUERY)
        first = state.outline
        used = state.actions_used

        again = await ctrl.terminate(state)

        assert again is first
        assert state.actions_used == used

    @pytest.mark.asyncio
    async def test_cancel_before_start_returns_partial_outline(self):
        search = FakeSearch()
        embedder = KeywordEmbedder()
        token = CancelToken()
        token.cancel("user")
        ctrl = IterationController(FakeChat(), embedder, search, FakeFetcher(), settings=make_settings())

        state = await ctrl.research(QUERY, cancel=token)

        assert state.stop_reason == "cancelled"
        assert search.queries == []
        assert embedder.calls == 0
        assert kinds(state) == [ActionKind.TERMINATE]

    @pytest.mark.asyncio
    async def test_cancel_mid_run_keeps_collected_documents(self):
        token = CancelToken()

        class CancelAfterExtract:
            def __init__(self, rules):
                self.rules = rules

            async def choose_next_action(self, state):
                if state.documents and not token.cancelled:
                    token.cancel("user")
                    return Action.search(["extra question"])
                return self.rules.choose(state)

        ctrl = build()
        ctrl.policy = CancelAfterExtract(ctrl.rules)
        state = await ctrl.research(QUERY, mode="balanced", cancel=token)

        assert state.stop_reason == "cancelled"
        assert state.documents
        assert state.outline is not None

    @pytest.mark.asyncio
    async def test_wall_clock_limit_stops_the_loop(self):
        ctrl = build(settings=make_settings(WALL_CLOCK_LIMIT_SEC=0.05), fetcher=FakeFetcher(
            delays={f"https://site{i}.example.com/solar-energy-adoption-costs": 1.0 for i in range(3)}))
        state = await ctrl.research(QUERY, mode="balanced")

        assert state.stop_reason == "wall_clock"
        assert state.outline is not None


class TestStream:
    @pytest.mark.asyncio
    async def test_stream_ends_with_single_completed_event(self):
        events = [e async for e in build().stream(QUERY, mode="balanced")]

        terminal = [e for e in events if e.kind in ("completed", "failed")]
        assert len(terminal) == 1
        assert isinstance(events[-1], CompletedEvent)
        assert all(isinstance(e, ProgressEvent) for e in events[:-1])
        assert events[-1].actions_used == events[-2].actions_used

    @pytest.mark.asyncio
    async def test_stream_reports_configuration_error_as_failed_event(self):
        ctrl = IterationController(FakeChat(), None, FakeSearch(), FakeFetcher(), settings=make_settings())
        events = [e async for e in ctrl.stream(QUERY)]

        assert len(events) == 1
        assert isinstance(events[0], FailedEvent)
        assert events[0].error_type == "ConfigurationError"
