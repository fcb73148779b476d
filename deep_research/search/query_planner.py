"""
Query planning - standalone rewrites of follow-ups and subquestion decomposition.
"""

from __future__ import annotations
import logging
import re
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..capabilities import ChatModel
from ..exceptions import Cancelled, ResearchSystemError
from ..llm.json_output import parse_json_reply
from ..models import ChatMessage, ResearchMode, ResearchPlan
from ..utils.cancel import CancelToken

logger = logging.getLogger(__name__)

FOLLOW_UP = re.compile(r"^(tell me more|what about|how about|and|also|more on|expand|continue|go on|elaborate)", re.IGNORECASE)
TRIVIAL = re.compile(
    r"^\s*(hi|hello|hey|yo|thanks|thank you|thx|ok|okay|cool|great|bye|goodbye|good (morning|afternoon|evening))[\s!.?]*$",
    re.IGNORECASE,
)

ANGLES = ("definition", "comparison", "recency", "critique")
ANGLE_TEMPLATES: Dict[str, str] = {
    "definition": "What is {q}? Key definitions and background",
    "comparison": "How does {q} compare with alternatives?",
    "recency": "Latest developments and recent news on {q}",
    "critique": "Criticisms, limitations and risks of {q}",
}


def is_trivial_query(query: str) -> bool:
    """Empty input or small talk that needs no research."""
    return not (query or "").strip() or bool(TRIVIAL.match(query))


def looks_like_follow_up(query: str) -> bool:
    return bool(FOLLOW_UP.match(query.strip())) or len(query.split()) <= 4


def format_history(history: Sequence[ChatMessage], limit: int = 10) -> str:
    return "\n".join(f"{m.role}: {m.content}" for m in list(history)[-limit:])


def angle_subquestions(query: str, angles: Sequence[str] = ANGLES) -> List[str]:
    q = query.strip().rstrip("?")
    return [ANGLE_TEMPLATES[a].format(q=q) for a in angles]


class PlanReply(BaseModel):
    subquestions: List[str] = Field(default_factory=list)
    criteria: List[str] = Field(default_factory=list)
    notes: Optional[str] = None

    @field_validator("subquestions", "criteria", mode="before")
    @classmethod
    def _strings_only(cls, v):
        if not isinstance(v, list):
            return []
        return [s.strip() for s in v if isinstance(s, str) and s.strip()]

    @field_validator("notes", mode="before")
    @classmethod
    def _join_notes(cls, v):
        if isinstance(v, list):
            return "; ".join(str(x) for x in v)
        return v


class QueryPlanner:
    """Turn a user query into a standalone query and a set of subquestions"""

    def __init__(self, chat: ChatModel, max_subquestions: int = 6):
        self.chat = chat
        self.max_subquestions = max_subquestions

    async def standalone_query(self, query: str, history: Sequence[ChatMessage],
                               signal: Optional[CancelToken] = None) -> str:
        """
        Rewrite a contextual follow-up into a standalone query.

        Returns the original query when there is no history, the query does
        not look like a follow-up, or the rewrite fails.
        """
        if not history or not looks_like_follow_up(query):
            return query

        prompt = f"""Given a conversation history and a follow-up question, rewrite the question as a standalone search query.

Conversation History:
{format_history(history)}

Follow-up Question: {query}

Rewrite as a standalone search query (output ONLY the query, nothing else):"""
        try:
            rewritten = (await self.chat.invoke([ChatMessage(role="user", content=prompt)], signal=signal)).strip()
        except Cancelled:
            return query
        except Exception as e:
            logger.warning(f"Query rewrite failed, keeping original: {e}")
            return query
        rewritten = rewritten.strip().strip('"').strip()
        if len(rewritten) < 3:
            return query
        logger.info(f"Rewrote follow-up '{query}' -> '{rewritten}'")
        return rewritten

    async def plan(self, query: str, mode: ResearchMode = ResearchMode.BALANCED,
                   signal: Optional[CancelToken] = None) -> ResearchPlan:
        """
        Decompose the query into subquestions.

        Quality mode always covers every angle; the angle templates also
        serve as the fallback when the model reply is unusable.
        """
        n = min(self.max_subquestions, 3 if mode == ResearchMode.SPEED else self.max_subquestions)
        prompt = f"""Break the research query into at most {n} focused web-searchable subquestions.
Cover different angles (definition, comparison, recent developments, criticism) where relevant.

Respond with a single JSON object:
{{"subquestions": ["..."], "criteria": ["how to judge a good answer"], "notes": "optional"}}

Query: {query}"""
        reply = None
        try:
            text = await self.chat.invoke([ChatMessage(role="user", content=prompt)], signal=signal)
            data = parse_json_reply(text, expect="object")
            if data is not None:
                reply = PlanReply.model_validate(data)
        except Cancelled:
            raise
        except ValidationError as e:
            logger.warning(f"Planner reply failed validation: {e}")
        except ResearchSystemError as e:
            logger.warning(f"Planner call failed: {e}")

        subquestions = list(dict.fromkeys(reply.subquestions))[:n] if reply else []
        if not subquestions:
            logger.info("Planner produced no subquestions; using angle templates")
            subquestions = angle_subquestions(query)[:n] if mode != ResearchMode.SPEED else [query]

        return ResearchPlan(
            query=query,
            subquestions=subquestions,
            criteria=reply.criteria if reply else [],
            notes=reply.notes if reply else None,
        )

    async def gap_subquestions(self, query: str, known: Sequence[str], findings: Sequence[str],
                               n: int = 2, signal: Optional[CancelToken] = None) -> List[str]:
        """
        Ask for follow-up subquestions covering what the findings so far miss.

        Returns at most ``n`` new subquestions; an empty list on any failure.
        """
        known_block = "\n".join(f"- {k}" for k in known) or "- (none)"
        findings_block = "\n".join(f"- {f}" for f in list(findings)[:20]) or "- (nothing yet)"
        prompt = f"""You are reviewing research progress.

Query: {query}

Subquestions already searched:
{known_block}

Findings so far:
{findings_block}

Propose at most {n} new web-searchable subquestions that fill the biggest gaps.
Respond with a single JSON object: {{"subquestions": ["..."]}}"""
        try:
            text = await self.chat.invoke([ChatMessage(role="user", content=prompt)], signal=signal)
            data = parse_json_reply(text, expect="object")
            reply = PlanReply.model_validate(data) if data is not None else None
        except Cancelled:
            raise
        except (ValidationError, ResearchSystemError) as e:
            logger.warning(f"Gap analysis failed: {e}")
            return []
        if reply is None:
            return []
        seen = {k.lower() for k in known}
        fresh = []
        for sq in reply.subquestions:
            if sq.lower() not in seen:
                seen.add(sq.lower())
                fresh.append(sq)
        return fresh[:n]
