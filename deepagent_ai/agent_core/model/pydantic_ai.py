from __future__ import annotations

"""pydantic-ai adapter for ``ChatModel``.

Converts between the core ``Message`` history and pydantic-ai's
``ModelRequest`` / ``ModelResponse`` messages and streams a single model turn
through ``pydantic_ai.direct.model_request_stream``. Any pydantic-ai model
works: a ``pydantic_ai.models.Model`` instance or a ``"provider:model"`` name.

Tool execution stays in the step loop; pydantic-ai is used only for the
request/response translation to the provider.
"""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Set, Union

from pydantic_ai.direct import model_request_stream
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelRequestPart,
    ModelResponse as PaiModelResponse,
    ModelResponsePart,
    PartDeltaEvent,
    PartStartEvent,
    SystemPromptPart,
    TextPart,
    TextPartDelta,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)
from pydantic_ai.models import Model, ModelRequestParameters
from pydantic_ai.tools import ToolDefinition as PaiToolDefinition

from ..schemas.domain import Usage
from ..schemas.messages import Message, MessageRole, ToolCall
from .base import ChatModel, ModelChunk, ToolSpec

logger = logging.getLogger(__name__)


def to_pydantic_ai_messages(messages: Sequence[Message]) -> List[ModelMessage]:
    """Translate core history into pydantic-ai request/response messages.

    Consecutive system/user/tool messages are grouped into one ``ModelRequest``.
    Tool results whose call is not present earlier in the history (for example
    after summarization dropped the call) are folded in as user text so the
    provider never sees an orphaned tool return.
    """
    out: List[ModelMessage] = []
    pending: List[ModelRequestPart] = []
    known_calls: Set[str] = set()

    def flush() -> None:
        if pending:
            out.append(ModelRequest(parts=list(pending)))
            pending.clear()

    for msg in messages:
        if msg.role == MessageRole.system:
            pending.append(SystemPromptPart(content=msg.content))
        elif msg.role == MessageRole.user:
            pending.append(UserPromptPart(content=msg.content))
        elif msg.role == MessageRole.tool:
            if msg.tool_call_id in known_calls:
                pending.append(
                    ToolReturnPart(
                        tool_name=msg.tool_name or "",
                        content=msg.content,
                        tool_call_id=msg.tool_call_id or "",
                    )
                )
            else:
                pending.append(UserPromptPart(content=f"[Result of {msg.tool_name}]\n{msg.content}"))
        else:
            flush()
            parts: List[ModelResponsePart] = []
            if msg.content:
                parts.append(TextPart(content=msg.content))
            for call in msg.tool_calls:
                known_calls.add(call.tool_call_id)
                parts.append(ToolCallPart(tool_name=call.tool_name, args=dict(call.args), tool_call_id=call.tool_call_id))
            if parts:
                out.append(PaiModelResponse(parts=parts))
    flush()
    return out


def to_pydantic_ai_tools(tools: Sequence[ToolSpec]) -> List[PaiToolDefinition]:
    return [
        PaiToolDefinition(name=t.name, description=t.description, parameters_json_schema=dict(t.parameters))
        for t in tools
    ]


def _usage_of(response: PaiModelResponse) -> Usage:
    usage = response.usage
    return Usage(
        input_tokens=int(getattr(usage, "input_tokens", 0) or 0),
        output_tokens=int(getattr(usage, "output_tokens", 0) or 0),
    )


class PydanticAIChatModel(ChatModel):
    """Stream model turns through any pydantic-ai model."""

    def __init__(self, model: Union[Model, str], *, settings: Optional[Dict[str, Any]] = None) -> None:
        self._model = model
        self._settings = dict(settings or {})
        self.name = model if isinstance(model, str) else getattr(model, "model_name", type(model).__name__)

    async def stream(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolSpec] = (),
        *,
        settings: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[ModelChunk]:
        params = ModelRequestParameters(function_tools=to_pydantic_ai_tools(tools))
        merged = {**self._settings, **(settings or {})}
        async with model_request_stream(
            self._model,
            to_pydantic_ai_messages(messages),
            model_settings=merged or None,  # type: ignore[arg-type]
            model_request_parameters=params,
            instrument=False,
        ) as stream:
            async for event in stream:
                if isinstance(event, PartStartEvent) and isinstance(event.part, TextPart):
                    if event.part.content:
                        yield ModelChunk.delta(event.part.content)
                elif isinstance(event, PartDeltaEvent) and isinstance(event.delta, TextPartDelta):
                    if event.delta.content_delta:
                        yield ModelChunk.delta(event.delta.content_delta)
            response = stream.get()

        for part in response.parts:
            if isinstance(part, ToolCallPart):
                yield ModelChunk.call(
                    ToolCall(tool_call_id=part.tool_call_id, tool_name=part.tool_name, args=part.args_as_dict())
                )
        yield ModelChunk.finish(_usage_of(response))
