"""Typed progress events emitted by a research run."""

from typing import Literal, Union

from pydantic import BaseModel

from ..models import Outline
from .actions import ActionKind


class ProgressEvent(BaseModel):
    kind: Literal["progress"] = "progress"
    action: ActionKind
    status: Literal["ok", "failed", "skipped"]
    message: str = ""
    actions_used: int
    max_actions: int


class CompletedEvent(BaseModel):
    kind: Literal["completed"] = "completed"
    outline: Outline
    stop_reason: str
    actions_used: int


class FailedEvent(BaseModel):
    kind: Literal["failed"] = "failed"
    error: str
    error_type: str


ResearchEvent = Union[ProgressEvent, CompletedEvent, FailedEvent]
TERMINAL_KINDS = ("completed", "failed")
