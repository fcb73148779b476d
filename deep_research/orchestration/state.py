"""Mutable per-run state of the iteration controller."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Literal, Optional, Set

from pydantic import BaseModel

from ..models import ChatMessage, ExtractedDocument, Outline, ResearchMode, ResearchPlan, SearchCandidate
from .actions import INFO_ACTIONS, ActionKind, ModeProfile


class Phase(str, Enum):
    REASONING = "reasoning"
    ACTING = "acting"
    TERMINATED = "terminated"


class ActionRecord(BaseModel):
    index: int
    kind: ActionKind
    status: Literal["ok", "failed", "skipped"]
    detail: str = ""


@dataclass
class ResearchState:
    query: str
    mode: ResearchMode
    profile: ModeProfile
    max_actions: int
    history: List[ChatMessage] = field(default_factory=list)
    original_query: Optional[str] = None
    trivial: bool = False

    phase: Phase = Phase.REASONING
    actions: List[ActionRecord] = field(default_factory=list)
    plan: Optional[ResearchPlan] = None
    subquestions: List[str] = field(default_factory=list)
    angle_queries: Dict[str, str] = field(default_factory=dict)
    searched: Set[str] = field(default_factory=set)
    candidates: List[SearchCandidate] = field(default_factory=list)
    attempted_urls: Set[str] = field(default_factory=set)
    documents: List[ExtractedDocument] = field(default_factory=list)
    stop_reason: Optional[str] = None
    outline: Optional[Outline] = None

    @property
    def actions_used(self) -> int:
        return len(self.actions)

    @property
    def work_remaining(self) -> int:
        """Non-terminal actions still allowed; one slot stays reserved for Terminate."""
        return max(0, self.max_actions - 1 - self.actions_used)

    @property
    def reasoning_count(self) -> int:
        return sum(1 for a in self.actions if a.kind == ActionKind.REASON)

    @property
    def info_count(self) -> int:
        return sum(1 for a in self.actions if a.kind in INFO_ACTIONS)

    @property
    def last_kind(self) -> Optional[ActionKind]:
        return self.actions[-1].kind if self.actions else None

    @property
    def unsearched(self) -> List[str]:
        return [sq for sq in self.subquestions if sq not in self.searched]

    @property
    def pending_candidates(self) -> List[SearchCandidate]:
        return [c for c in self.candidates if c.url not in self.attempted_urls]

    @property
    def covered_angles(self) -> Set[str]:
        return {a for a, sq in self.angle_queries.items() if sq in self.searched}

    @property
    def uncovered_angles(self) -> List[str]:
        return [a for a in self.profile.required_angles if a not in self.covered_angles]

    def can_reason(self) -> bool:
        limit = self.profile.max_reasoning
        if limit is not None and self.reasoning_count >= limit:
            return False
        # no back-to-back reasoning
        return self.last_kind != ActionKind.REASON

    def work_gate_open(self) -> bool:
        """Whether mode rules allow a Search/Extract as the next action."""
        if self.profile.alternate:
            return self.last_kind == ActionKind.REASON
        if self.profile.reason_before_first_work and self.reasoning_count == 0:
            return False
        return True

    def summary(self) -> Dict[str, object]:
        return {
            "query": self.query,
            "mode": self.mode.value,
            "actions_used": self.actions_used,
            "max_actions": self.max_actions,
            "reasoning_used": self.reasoning_count,
            "subquestions": self.subquestions,
            "unsearched": self.unsearched,
            "candidates": len(self.candidates),
            "pending_candidates": len(self.pending_candidates),
            "documents": len(self.documents),
            "uncovered_angles": self.uncovered_angles,
            "last_action": self.last_kind.value if self.last_kind else None,
        }
