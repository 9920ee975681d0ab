"""Conversation history records.

History is a flat list of ``Message`` objects. Assistant messages may carry
``tool_calls``; every call is answered by exactly one later ``tool`` message
with the same ``tool_call_id``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import Field

from .base import BaseSchema


class MessageRole(str, Enum):
    system = "system"
    user = "user"
    assistant = "assistant"
    tool = "tool"


class ToolCall(BaseSchema):
    tool_call_id: str = Field(default_factory=lambda: f"call_{uuid4().hex[:24]}")
    tool_name: str
    args: Dict[str, Any] = Field(default_factory=dict)


class Message(BaseSchema):
    role: MessageRole
    content: str = ""

    tool_calls: List[ToolCall] = Field(default_factory=list)

    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    is_error: bool = False

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=MessageRole.system, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=MessageRole.user, content=content)

    @classmethod
    def assistant(cls, content: str = "", tool_calls: Optional[List[ToolCall]] = None) -> "Message":
        return cls(role=MessageRole.assistant, content=content, tool_calls=list(tool_calls or []))

    @classmethod
    def tool_result(cls, call: ToolCall, content: str, *, is_error: bool = False) -> "Message":
        return cls(
            role=MessageRole.tool,
            content=content,
            tool_call_id=call.tool_call_id,
            tool_name=call.tool_name,
            is_error=is_error,
        )
