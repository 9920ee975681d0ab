from __future__ import annotations

"""Language-model boundary.

The step loop treats the model as an opaque capability: given a conversation
and a tool catalog it streams back text deltas and/or tool call requests.
``ChatModel`` is that contract. Provider specifics live in adapters such as
``PydanticAIChatModel``.

A stream is a sequence of ``ModelChunk`` objects:

- ``kind="text"``: an incremental text delta in ``text``;
- ``kind="tool-call"``: one fully-formed ``ToolCall``;
- ``kind="finish"``: optional ``usage`` for the whole call (last chunk).
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Literal, Optional, Sequence

from pydantic import Field

from ..schemas.base import BaseSchema
from ..schemas.domain import Usage
from ..schemas.messages import Message, ToolCall


class ToolSpec(BaseSchema):
    """Tool catalog entry handed to the model."""

    name: str
    description: str = ""
    parameters: Dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})


class ModelChunk(BaseSchema):
    kind: Literal["text", "tool-call", "finish"]
    text: str = ""
    tool_call: Optional[ToolCall] = None
    usage: Optional[Usage] = None

    @classmethod
    def delta(cls, text: str) -> "ModelChunk":
        return cls(kind="text", text=text)

    @classmethod
    def call(cls, tool_call: ToolCall) -> "ModelChunk":
        return cls(kind="tool-call", tool_call=tool_call)

    @classmethod
    def finish(cls, usage: Optional[Usage] = None) -> "ModelChunk":
        return cls(kind="finish", usage=usage)


class ModelResponse(BaseSchema):
    text: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)
    usage: Optional[Usage] = None


class ChatModel(ABC):
    """Abstract streaming chat model."""

    name: str = "chat-model"

    @abstractmethod
    def stream(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolSpec] = (),
        *,
        settings: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[ModelChunk]:
        """
        Stream one model turn.

        Args:
            messages: Full conversation, system prompt first.
            tools: Tools the model may call this turn.
            settings: Provider generation settings (temperature, max tokens...).

        Returns:
            An async iterator of ``ModelChunk``.
        """

    async def complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolSpec] = (),
        *,
        settings: Optional[Dict[str, Any]] = None,
    ) -> ModelResponse:
        """Drain ``stream`` into a single ``ModelResponse``."""
        parts: List[str] = []
        calls: List[ToolCall] = []
        usage: Optional[Usage] = None
        async for chunk in self.stream(messages, tools, settings=settings):
            if chunk.kind == "text":
                parts.append(chunk.text)
            elif chunk.kind == "tool-call" and chunk.tool_call is not None:
                calls.append(chunk.tool_call)
            elif chunk.kind == "finish":
                usage = chunk.usage
        return ModelResponse(text="".join(parts), tool_calls=calls, usage=usage)
