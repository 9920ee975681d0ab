from .base import BaseSchema
from .domain import (
    Checkpoint,
    FileRecord,
    PendingInterrupt,
    ResumeDecision,
    ResumeDecisionType,
    ResumeOptions,
    StateSnapshot,
    StepSummary,
    TodoItem,
    TodoStatus,
    Usage,
)
from .events import AgentEvent, AgentEventType
from .messages import Message, MessageRole, ToolCall

__all__ = [
    "AgentEvent",
    "AgentEventType",
    "BaseSchema",
    "Checkpoint",
    "FileRecord",
    "Message",
    "MessageRole",
    "PendingInterrupt",
    "ResumeDecision",
    "ResumeDecisionType",
    "ResumeOptions",
    "StateSnapshot",
    "StepSummary",
    "TodoItem",
    "TodoStatus",
    "ToolCall",
    "Usage",
]
