"""Deterministic ``ChatModel`` and stream helpers for runtime tests.

``ScriptedModel`` replays one scripted turn per model call:

- ``str``: streamed as a single text delta,
- ``ToolCall``: a single tool call,
- ``list``: any mix of text, ``ToolCall``, ``ModelChunk`` and exceptions,
  streamed in order (an exception is raised when reached),
- an exception instance: raised before anything is streamed,
- a callable: called with the conversation and its result replayed.

When the script runs out the model answers ``"done"``.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from deepagent_ai.agent_core.model.base import ChatModel, ModelChunk, ToolSpec
from deepagent_ai.agent_core.schemas.domain import Usage
from deepagent_ai.agent_core.schemas.events import AgentEvent, AgentEventType
from deepagent_ai.agent_core.schemas.messages import Message, ToolCall


def call(name: str, call_id: str, **args: Any) -> ToolCall:
    return ToolCall(tool_call_id=call_id, tool_name=name, args=args)


class ScriptedModel(ChatModel):
    name = "scripted"

    def __init__(self, turns: Sequence[Any] = ()) -> None:
        self.turns: List[Any] = list(turns)
        self.conversations: List[List[Message]] = []
        self.tool_names: List[List[str]] = []
        self.settings: List[Optional[Dict[str, Any]]] = []

    @property
    def call_count(self) -> int:
        return len(self.conversations)

    async def stream(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolSpec] = (),
        *,
        settings: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[ModelChunk]:
        self.conversations.append(list(messages))
        self.tool_names.append([t.name for t in tools])
        self.settings.append(settings)

        turn = self.turns.pop(0) if self.turns else "done"
        if callable(turn) and not isinstance(turn, ToolCall):
            turn = turn(list(messages))
        if isinstance(turn, BaseException):
            raise turn
        items = turn if isinstance(turn, list) else [turn]

        for item in items:
            if isinstance(item, BaseException):
                raise item
            if isinstance(item, str):
                yield ModelChunk.delta(item)
            elif isinstance(item, ToolCall):
                yield ModelChunk.call(item)
            else:
                yield item
        yield ModelChunk.finish(Usage(input_tokens=10, output_tokens=5))


async def collect(stream: AsyncIterator[AgentEvent]) -> List[AgentEvent]:
    return [event async for event in stream]


def types_of(events: Sequence[AgentEvent]) -> List[AgentEventType]:
    return [e.type for e in events]


def of_type(events: Sequence[AgentEvent], type: AgentEventType) -> List[AgentEvent]:
    return [e for e in events if e.type == type]
