"""Closed action set of the research loop and per-mode rules."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from ..config import Settings
from ..models import ResearchMode
from ..search.query_planner import ANGLES


class ActionKind(str, Enum):
    SEARCH = "search"
    EXTRACT = "extract"
    REASON = "reason"
    TERMINATE = "terminate"


INFO_ACTIONS = (ActionKind.SEARCH, ActionKind.EXTRACT)


class Action(BaseModel):
    kind: ActionKind
    subquestions: List[str] = Field(default_factory=list)  # Search only; empty = next unsearched
    note: Optional[str] = None

    @classmethod
    def search(cls, subquestions: Optional[List[str]] = None, note: Optional[str] = None) -> "Action":
        return cls(kind=ActionKind.SEARCH, subquestions=subquestions or [], note=note)

    @classmethod
    def extract(cls, note: Optional[str] = None) -> "Action":
        return cls(kind=ActionKind.EXTRACT, note=note)

    @classmethod
    def reason(cls, note: Optional[str] = None) -> "Action":
        return cls(kind=ActionKind.REASON, note=note)

    @classmethod
    def terminate(cls, note: Optional[str] = None) -> "Action":
        return cls(kind=ActionKind.TERMINATE, note=note)


@dataclass(frozen=True)
class ModeProfile:
    """Rules the controller enforces for one mode"""
    mode: ResearchMode
    max_actions: int
    reason_before_first_work: bool   # a Reason must precede the first Search/Extract
    alternate: bool                  # every Search/Extract must directly follow a Reason
    max_reasoning: Optional[int]     # None = unlimited
    require_info_action: bool        # at least one Search/Extract before Terminate
    required_angles: Tuple[str, ...]  # angles to search before Terminate is accepted
    stop_when_sufficient: bool       # terminate once any document has been extracted
    angles_per_search: int


def build_profiles(settings: Settings) -> Dict[ResearchMode, ModeProfile]:
    return {
        ResearchMode.SPEED: ModeProfile(
            mode=ResearchMode.SPEED,
            max_actions=settings.SPEED_MAX_ACTIONS,
            reason_before_first_work=False,
            alternate=False,
            max_reasoning=1,
            require_info_action=False,
            required_angles=(),
            stop_when_sufficient=True,
            angles_per_search=0,
        ),
        ResearchMode.BALANCED: ModeProfile(
            mode=ResearchMode.BALANCED,
            max_actions=settings.BALANCED_MAX_ACTIONS,
            reason_before_first_work=True,
            alternate=False,
            max_reasoning=2,
            require_info_action=True,
            required_angles=(),
            stop_when_sufficient=False,
            angles_per_search=0,
        ),
        ResearchMode.QUALITY: ModeProfile(
            mode=ResearchMode.QUALITY,
            max_actions=settings.QUALITY_MAX_ACTIONS,
            reason_before_first_work=True,
            alternate=True,
            max_reasoning=None,
            require_info_action=True,
            required_angles=ANGLES,
            stop_when_sufficient=False,
            angles_per_search=2,
        ),
    }
