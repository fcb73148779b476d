"""
Action selection policies.

``ModePolicy`` is the deterministic rule set for each mode; the controller
also uses it whenever another policy's choice breaks a mode rule.
``LLMActionPolicy`` lets the chat model pick and falls back to the rules.
"""

import json
import logging
from typing import Optional

from pydantic import BaseModel, ValidationError, field_validator

from ..capabilities import ChatModel
from ..exceptions import Cancelled, ResearchSystemError
from ..llm.json_output import parse_json_reply
from ..models import ChatMessage, ResearchMode
from .actions import Action, ActionKind
from .state import ResearchState

logger = logging.getLogger(__name__)


class ModePolicy:
    """Deterministic next-action rules per mode"""

    async def choose_next_action(self, state: ResearchState) -> Action:
        return self.choose(state)

    def choose(self, state: ResearchState) -> Action:
        if state.trivial:
            return Action.terminate("trivial query")
        if state.work_remaining <= 0:
            return Action.terminate("budget exhausted")
        if state.mode == ResearchMode.SPEED:
            return self._speed(state)
        return self._deliberate(state)

    def _speed(self, state: ResearchState) -> Action:
        if state.documents:
            return Action.terminate("sufficient evidence")
        if state.unsearched or not state.subquestions:
            return Action.search()
        if state.pending_candidates:
            return Action.extract()
        return Action.terminate("no remaining work")

    def _deliberate(self, state: ResearchState) -> Action:
        if state.plan is None:
            if state.can_reason():
                return Action.reason("plan")
            return Action.terminate("cannot plan")

        if not state.work_gate_open():
            # quality mode: the next work action needs fresh reasoning, which
            # is only worth it when an action slot remains after it
            if state.can_reason() and state.work_remaining >= 2:
                return Action.reason()
            return Action.terminate("no reasoning slot left")

        pending = state.pending_candidates
        # a search only pays off if an extract can still follow it
        search_cost = 3 if state.profile.alternate else 2
        if state.last_kind == ActionKind.SEARCH and pending:
            return Action.extract()
        if state.info_count == 0 and state.unsearched:
            return Action.search()
        if state.unsearched and state.work_remaining >= search_cost:
            return Action.search()
        if pending:
            return Action.extract()
        if state.can_reason() and state.work_remaining >= search_cost + 1:
            return Action.reason("gap analysis")
        return Action.terminate("no remaining work")


class PolicyReply(BaseModel):
    action: ActionKind
    subquestions: list = []
    reason: Optional[str] = None

    @field_validator("action", mode="before")
    @classmethod
    def _lower(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("subquestions", mode="before")
    @classmethod
    def _strings(cls, v):
        if not isinstance(v, list):
            return []
        return [s.strip() for s in v if isinstance(s, str) and s.strip()]


class LLMActionPolicy:
    """Let the chat model choose the next action; fall back to ModePolicy on any failure."""

    def __init__(self, chat: ChatModel, fallback: Optional[ModePolicy] = None):
        self.chat = chat
        self.fallback = fallback or ModePolicy()

    def _prompt(self, state: ResearchState) -> str:
        return f"""You control a web research loop. Choose the single next action.

Actions:
- reason: plan or re-plan subquestions
- search: run web searches (optionally give "subquestions"; otherwise the next unsearched ones are used)
- extract: read pending search results and extract facts
- terminate: stop and write the answer

Current state (JSON):
{json.dumps(state.summary(), indent=2)}

Respond with a single JSON object: {{"action": "reason|search|extract|terminate", "subquestions": [], "reason": "short"}}"""

    async def choose_next_action(self, state: ResearchState) -> Action:
        try:
            text = await self.chat.invoke([ChatMessage(role="user", content=self._prompt(state))])
            data = parse_json_reply(text, expect="object")
            if data is None:
                logger.warning("Action policy reply was not JSON; using mode rules")
                return self.fallback.choose(state)
            reply = PolicyReply.model_validate(data)
        except Cancelled:
            raise
        except (ValidationError, ResearchSystemError) as e:
            logger.warning(f"Action policy failed, using mode rules: {e}")
            return self.fallback.choose(state)
        return Action(kind=reply.action, subquestions=reply.subquestions, note=reply.reason)
