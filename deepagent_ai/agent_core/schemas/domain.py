from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import Field

from .base import BaseSchema
from .messages import Message, ToolCall


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return _utc_now().isoformat()


class TodoStatus(str, Enum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


class TodoItem(BaseSchema):
    id: str
    content: str = Field(max_length=100)
    status: TodoStatus = TodoStatus.pending


class FileRecord(BaseSchema):
    """One virtual file: its lines plus ISO-8601 timestamps."""

    content: List[str] = Field(default_factory=list)
    created_at: str = Field(default_factory=utc_now_iso)
    modified_at: str = Field(default_factory=utc_now_iso)


class StateSnapshot(BaseSchema):
    """Serializable copy of an ``AgentState``."""

    todos: List[TodoItem] = Field(default_factory=list)
    files: Dict[str, FileRecord] = Field(default_factory=dict)


class PendingInterrupt(BaseSchema):
    """A tool call paused at the approval gate.

    ``step`` is the number of the step that was in progress when the call was
    paused; it is always one more than the owning checkpoint's ``step``.
    """

    tool_call: ToolCall
    step: int
    approval_id: str = Field(default_factory=lambda: str(uuid4()))
    created_at: datetime = Field(default_factory=_utc_now)


class Checkpoint(BaseSchema):
    thread_id: str
    step: int = 0

    messages: List[Message] = Field(default_factory=list)
    state: StateSnapshot = Field(default_factory=StateSnapshot)
    interrupt: Optional[PendingInterrupt] = None

    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class ResumeDecisionType(str, Enum):
    approve = "approve"
    deny = "deny"


class ResumeDecision(BaseSchema):
    type: ResumeDecisionType
    reason: Optional[str] = None


class ResumeOptions(BaseSchema):
    """Decisions applied to a recorded interrupt, in interrupt order."""

    decisions: List[ResumeDecision] = Field(default_factory=list)


class Usage(BaseSchema):
    input_tokens: int = 0
    output_tokens: int = 0

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


class StepSummary(BaseSchema):
    """What happened in one completed step; handed to stop conditions."""

    step: int
    text: str = ""
    tool_calls: List[Dict[str, Any]] = Field(default_factory=list)
    usage: Optional[Usage] = None
