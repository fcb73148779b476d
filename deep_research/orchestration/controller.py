"""
Iteration controller - the budgeted reason/act loop behind a research run.
"""

import asyncio
from typing import AsyncIterator, List, Optional, Sequence, Union

import structlog

from ..capabilities import ActionPolicy, ChatModel, EmbeddingModel, SearchBackend, WebFetcher
from ..clustering.documents import DocumentClusterer
from ..collection.extractor import ContentExtractor
from ..config import Settings, get_settings
from ..evidence.aggregator import aggregate
from ..exceptions import Cancelled, ConfigurationError
from ..models import ChatMessage, Cluster, Outline, ResearchMode
from ..monitoring_metrics import RESEARCH_ACTIONS
from ..report.outline import OutlineSynthesizer
from ..search.expander import SearchExpander
from ..search.query_planner import QueryPlanner, angle_subquestions, is_trivial_query
from ..time_budget import Budget, resolve_action_cap
from ..utils.cancel import CancelToken, is_cancelled
from .actions import Action, ActionKind, build_profiles
from .events import CompletedEvent, FailedEvent, ProgressEvent, ResearchEvent
from .policy import ModePolicy
from .state import ActionRecord, Phase, ResearchState

logger = structlog.get_logger(__name__)


class IterationController:
    """
    Runs one research query through Search/Extract/Reason actions under a
    mode-specific action cap, then terminates with a cited Outline.

    The policy proposes actions; the controller enforces the mode rules and
    substitutes the rule-based choice when a proposal breaks them. Failed
    actions are recorded and the run continues.
    """

    def __init__(
        self,
        chat: Optional[ChatModel],
        embed: Optional[EmbeddingModel],
        search: Optional[SearchBackend],
        fetcher: Optional[WebFetcher],
        policy: Optional[ActionPolicy] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.chat = chat
        self.embed = embed
        self.search = search
        self.fetcher = fetcher
        self.rules = ModePolicy()
        self.policy = policy or self.rules
        self.profiles = build_profiles(self.settings)

        self.planner = QueryPlanner(chat, max_subquestions=self.settings.MAX_SUBQUESTIONS) if chat else None
        self.expander = SearchExpander(search, self.settings) if search else None
        self.extractor = ContentExtractor(fetcher, chat, self.settings) if fetcher and chat else None
        self.clusterer = DocumentClusterer(self.settings)
        self.synthesizer = OutlineSynthesizer(self.settings)

    def _check_capabilities(self) -> None:
        missing = [name for name, cap in (
            ("ChatModel", self.chat),
            ("EmbeddingModel", self.embed),
            ("SearchBackend", self.search),
            ("WebFetcher", self.fetcher),
        ) if cap is None]
        if missing:
            raise ConfigurationError(f"Missing required capabilities: {', '.join(missing)}")

    def new_state(self, query: str, history: Optional[Sequence[ChatMessage]] = None,
                  mode: Union[ResearchMode, str] = ResearchMode.BALANCED,
                  budget: Optional[int] = None) -> ResearchState:
        mode = ResearchMode(mode)
        profile = self.profiles[mode]
        return ResearchState(
            query=(query or "").strip(),
            original_query=query,
            mode=mode,
            profile=profile,
            max_actions=resolve_action_cap(profile.max_actions, budget),
            history=list(history or []),
            trivial=is_trivial_query(query),
        )

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def research(self, query: str, history: Optional[Sequence[ChatMessage]] = None,
                       mode: Union[ResearchMode, str] = ResearchMode.BALANCED,
                       budget: Optional[int] = None, cancel: Optional[CancelToken] = None) -> ResearchState:
        """Run to completion and return the full state (actions, documents, outline).

        Raises:
            ConfigurationError: a required capability is missing; no work is done
        """
        self._check_capabilities()
        state = self.new_state(query, history, mode, budget)
        async for _ in self._iterate(state, cancel):
            pass
        return state

    async def run(self, query: str, history: Optional[Sequence[ChatMessage]] = None,
                  mode: Union[ResearchMode, str] = ResearchMode.BALANCED,
                  budget: Optional[int] = None, cancel: Optional[CancelToken] = None) -> Outline:
        """
        Research a query and return the cited outline.

        Args:
            query: User query
            history: Prior chat turns, used to make follow-ups standalone
            mode: speed, balanced or quality
            budget: Optional action cap; may lower but never raise the mode cap
            cancel: Optional token; cancelling returns a partial outline

        Returns:
            A structurally complete Outline

        Raises:
            ConfigurationError: a required capability is missing
        """
        state = await self.research(query, history, mode, budget, cancel)
        return state.outline

    async def stream(self, query: str, history: Optional[Sequence[ChatMessage]] = None,
                     mode: Union[ResearchMode, str] = ResearchMode.BALANCED,
                     budget: Optional[int] = None,
                     cancel: Optional[CancelToken] = None) -> AsyncIterator[ResearchEvent]:
        """Progress events for each action, then exactly one completed or failed event."""
        try:
            self._check_capabilities()
            state = self.new_state(query, history, mode, budget)
            async for event in self._iterate(state, cancel):
                yield event
        except ConfigurationError as e:
            logger.error(f"Research run rejected: {e}")
            yield FailedEvent(error=str(e), error_type=type(e).__name__)
        except Exception as e:
            logger.error(f"Research run failed: {e}", exc_info=True)
            yield FailedEvent(error=str(e), error_type=type(e).__name__)

    async def terminate(self, state: ResearchState, cancel: Optional[CancelToken] = None) -> Outline:
        """
        Aggregate, cluster and synthesize. Idempotent: later calls return the
        first Outline unchanged.

        When cancelled no new embedding calls are made and the outline is
        built without clusters.
        """
        if state.outline is not None:
            return state.outline

        state.phase = Phase.TERMINATED
        evidence = aggregate(state.documents)
        subquestions = [] if state.trivial else (state.subquestions or [state.query])

        clusters: List[Cluster] = []
        if state.documents and not is_cancelled(cancel):
            try:
                clusters = await self.clusterer.cluster(state.documents, self.embed, subquestions)
            except Exception as e:
                logger.warning(f"Clustering failed, synthesizing without clusters: {e}")

        outline = self.synthesizer.synthesize(state.query, subquestions, clusters, evidence)
        state.actions.append(ActionRecord(
            index=state.actions_used + 1,
            kind=ActionKind.TERMINATE,
            status="ok",
            detail=state.stop_reason or "terminated",
        ))
        RESEARCH_ACTIONS.labels(mode=state.mode.value, action=ActionKind.TERMINATE.value, status="ok").inc()
        state.outline = outline
        return outline

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _iterate(self, state: ResearchState, cancel: Optional[CancelToken]) -> AsyncIterator[ResearchEvent]:
        clock = Budget(self.settings.WALL_CLOCK_LIMIT_SEC)
        logger.info(f"Starting {state.mode.value} research", query=state.query, max_actions=state.max_actions)

        if state.history and not state.trivial and not is_cancelled(cancel):
            state.query = await self.planner.standalone_query(state.query, state.history, cancel)

        while True:
            if is_cancelled(cancel):
                state.stop_reason = "cancelled"
                break
            if clock.is_expired():
                state.stop_reason = "wall_clock"
                break
            if state.trivial:
                state.stop_reason = "trivial"
                break
            if state.work_remaining <= 0:
                state.stop_reason = "budget_exhausted"
                break

            action = await self._next_action(state)
            if action.kind == ActionKind.TERMINATE:
                state.stop_reason = action.note or "policy"
                break

            record = await self._execute(action, state, cancel, clock)
            yield ProgressEvent(
                action=record.kind,
                status=record.status,
                message=record.detail,
                actions_used=state.actions_used,
                max_actions=state.max_actions,
            )

            if state.profile.stop_when_sufficient and action.kind == ActionKind.EXTRACT and state.documents:
                state.stop_reason = "sufficient"
                break

        outline = await self.terminate(state, cancel)
        logger.info(
            "Research finished",
            stop_reason=state.stop_reason,
            actions=state.actions_used,
            documents=len(state.documents),
        )
        yield ProgressEvent(
            action=ActionKind.TERMINATE,
            status="ok",
            message=state.stop_reason or "",
            actions_used=state.actions_used,
            max_actions=state.max_actions,
        )
        yield CompletedEvent(outline=outline, stop_reason=state.stop_reason or "terminated",
                             actions_used=state.actions_used)

    async def _next_action(self, state: ResearchState) -> Action:
        try:
            proposed = await self.policy.choose_next_action(state)
        except Cancelled:
            return Action.terminate("cancelled")
        except Exception as e:
            logger.warning(f"Action policy raised, using mode rules: {e}")
            return self.rules.choose(state)

        rejection = self._reject(proposed, state)
        if rejection is None:
            return proposed
        fallback = self.rules.choose(state)
        logger.info(f"Rejected {proposed.kind.value}: {rejection}; using {fallback.kind.value}")
        return fallback

    def _reject(self, action: Action, state: ResearchState) -> Optional[str]:
        """Why a proposed action breaks the mode rules, or None if it is allowed."""
        profile = state.profile
        if action.kind == ActionKind.TERMINATE:
            if state.trivial or state.work_remaining <= 0:
                return None
            info_possible = bool(state.unsearched or state.pending_candidates or not state.subquestions)
            if profile.require_info_action and state.info_count == 0 and info_possible:
                return "an information-gathering action is required first"
            if profile.required_angles and state.uncovered_angles:
                return f"angles not yet covered: {', '.join(state.uncovered_angles)}"
            return None

        if state.work_remaining <= 0:
            return "action budget exhausted"

        if action.kind == ActionKind.REASON:
            return None if state.can_reason() else "reasoning limit reached"

        if not state.work_gate_open():
            return "reasoning must come first"
        if action.kind == ActionKind.SEARCH:
            if not action.subquestions and state.subquestions and not state.unsearched:
                return "nothing left to search"
            return None
        if action.kind == ActionKind.EXTRACT:
            return None if state.pending_candidates else "no pending candidates"
        return f"unknown action {action.kind}"

    async def _execute(self, action: Action, state: ResearchState, cancel: Optional[CancelToken],
                       clock: Budget) -> ActionRecord:
        handler = {
            ActionKind.REASON: self._reason,
            ActionKind.SEARCH: self._search,
            ActionKind.EXTRACT: self._extract,
        }[action.kind]
        state.phase = Phase.REASONING if action.kind == ActionKind.REASON else Phase.ACTING

        try:
            detail = await asyncio.wait_for(handler(action, state, cancel), timeout=clock.remaining())
            status = "ok"
        except Cancelled:
            status, detail = "skipped", "cancelled"
        except asyncio.TimeoutError:
            status, detail = "failed", "wall clock limit reached"
        except Exception as e:
            logger.warning(f"{action.kind.value} action failed: {e}")
            status, detail = "failed", str(e)

        record = ActionRecord(index=state.actions_used + 1, kind=action.kind, status=status, detail=detail)
        state.actions.append(record)
        RESEARCH_ACTIONS.labels(mode=state.mode.value, action=action.kind.value, status=status).inc()
        logger.info(f"Action {record.index}/{state.max_actions}", action=action.kind.value, status=status, detail=detail)
        return record

    # ------------------------------------------------------------------
    # Action handlers
    # ------------------------------------------------------------------

    async def _reason(self, action: Action, state: ResearchState, cancel: Optional[CancelToken]) -> str:
        if state.plan is None:
            plan = await self.planner.plan(state.query, state.mode, cancel)
            state.plan = plan
            subquestions = list(plan.subquestions)
            if state.profile.required_angles:
                angle_qs = angle_subquestions(state.query, state.profile.required_angles)
                state.angle_queries = dict(zip(state.profile.required_angles, angle_qs))
                subquestions = angle_qs + [sq for sq in subquestions if sq not in angle_qs][:2]
            state.subquestions = list(dict.fromkeys(subquestions))
            return f"planned {len(state.subquestions)} subquestions"

        findings = [f for d in state.documents for f in d.facts]
        fresh = await self.planner.gap_subquestions(state.query, state.subquestions, findings, n=2, signal=cancel)
        for sq in fresh:
            if sq not in state.subquestions:
                state.subquestions.append(sq)
        return f"added {len(fresh)} subquestions"

    def _pick_subquestions(self, action: Action, state: ResearchState) -> List[str]:
        if action.subquestions:
            for sq in action.subquestions:
                if sq not in state.subquestions:
                    state.subquestions.append(sq)
            return [sq for sq in action.subquestions if sq not in state.searched] or action.subquestions
        if not state.subquestions:
            state.subquestions = [state.query]
        unsearched = state.unsearched
        per_search = state.profile.angles_per_search
        if per_search:
            angle_first = [sq for sq in unsearched if sq in state.angle_queries.values()]
            rest = [sq for sq in unsearched if sq not in angle_first]
            return (angle_first + rest)[:per_search]
        return unsearched

    async def _search(self, action: Action, state: ResearchState, cancel: Optional[CancelToken]) -> str:
        subquestions = self._pick_subquestions(action, state)
        room = self.settings.MAX_TOTAL_CANDIDATES - len(state.candidates)
        if room <= 0:
            state.searched.update(subquestions)
            return "candidate pool full"
        found = await self.expander.expand(subquestions, max_total=room, cancel=cancel, prior=state.candidates)
        state.searched.update(subquestions)
        state.candidates.extend(found)
        return f"{len(found)} candidates from {len(subquestions)} subquestions"

    async def _extract(self, action: Action, state: ResearchState, cancel: Optional[CancelToken]) -> str:
        batch = state.pending_candidates[: self.settings.EXTRACT_MAX_DOCS]
        state.attempted_urls.update(c.url for c in batch)
        docs = await self.extractor.extract(batch, state.query, cancel)
        known = {d.url for d in state.documents}
        state.documents.extend(d for d in docs if d.url not in known)
        return f"{len(docs)} documents from {len(batch)} candidates"
