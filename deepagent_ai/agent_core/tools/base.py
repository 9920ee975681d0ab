from __future__ import annotations

"""Tool protocol and execution data models.

A tool is the unit of work the model can request. ``ToolDefinition`` pairs a
name and description with a pydantic input model (its JSON schema is what
the model sees) and an async handler.

Tools should:

- validate nothing themselves beyond their input model (the engine validates
  arguments before invoking the handler),
- report expected failures as returned text (``ToolOutput(is_error=True)``)
  and let unexpected ones raise; the engine converts exceptions into error
  results,
- avoid approval decisions (the approval gate runs before invocation).
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, Union

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from ..backends.base import BackendProtocol
from ..errors import ToolValidationError
from ..model.base import ToolSpec
from ..state import AgentState

logger = logging.getLogger(__name__)

Emit = Callable[..., Awaitable[None]]


class ToolInput(BaseModel):
    """Base class for tool argument models."""

    model_config = ConfigDict(extra="forbid")


@dataclass(frozen=True)
class ToolOutput:
    content: str
    is_error: bool = False


@dataclass(frozen=True)
class ToolContext:
    """Execution context passed to tool handlers.

    Attributes
    ----------
    state:
        The run's shared ``AgentState``.
    backend:
        The resolved backend for this run.
    emit:
        ``await emit(AgentEventType.x, **payload)`` publishes an event on the
        run's stream.
    cancel:
        The run's cancellation token; long-running tools should observe it.
    tool_call_id / step:
        Identify the call being executed.
    runtime:
        Engine runtime handle; used by tools that start nested runs.
    """

    state: AgentState
    backend: BackendProtocol
    emit: Emit
    cancel: Any
    tool_call_id: str = ""
    step: int = 0
    runtime: Any = None


Handler = Callable[[ToolContext, Any], Awaitable[Union[str, ToolOutput]]]


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    input_model: Type[BaseModel]
    handler: Handler

    def spec(self) -> ToolSpec:
        return ToolSpec(name=self.name, description=self.description, parameters=self.input_model.model_json_schema())

    def validate_args(self, args: Dict[str, Any]) -> BaseModel:
        try:
            return self.input_model.model_validate(args)
        except PydanticValidationError as exc:
            raise ToolValidationError(self.name, _format_validation_error(exc)) from exc

    async def invoke(self, ctx: ToolContext, args: Dict[str, Any]) -> ToolOutput:
        """Validate ``args`` and run the handler."""
        return await self.execute(ctx, self.validate_args(args))

    async def execute(self, ctx: ToolContext, parsed: BaseModel) -> ToolOutput:
        result = await self.handler(ctx, parsed)
        if isinstance(result, ToolOutput):
            return result
        return ToolOutput(content=str(result))


def _format_validation_error(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "<root>"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def tool(
    name: str, description: str, input_model: Type[BaseModel]
) -> Callable[[Handler], ToolDefinition]:
    """Decorator turning an async handler into a ``ToolDefinition``.

    Usage
    -----

        class WeatherArgs(ToolInput):
            city: str

        @tool("get_weather", "Current weather for a city", WeatherArgs)
        async def get_weather(ctx: ToolContext, args: WeatherArgs) -> str:
            ...
    """

    def wrap(fn: Handler) -> ToolDefinition:
        return ToolDefinition(name=name, description=description, input_model=input_model, handler=fn)

    return wrap


class ToolRegistry:
    """
    Ordered mapping of tool names to definitions.

    Notes:
        - ``register`` overwrites any existing tool with the same name.
        - ``get`` raises ``KeyError`` if the tool is missing.
    """

    def __init__(self, tools: Optional[List[ToolDefinition]] = None) -> None:
        self._tools: Dict[str, ToolDefinition] = {}
        for t in tools or []:
            self.register(t)

    def register(self, definition: ToolDefinition) -> None:
        self._tools[definition.name] = definition

    def get(self, name: str) -> ToolDefinition:
        return self._tools[name]

    def has(self, name: str) -> bool:
        return name in self._tools

    def names(self) -> List[str]:
        return list(self._tools)

    def definitions(self) -> List[ToolDefinition]:
        return list(self._tools.values())

    def specs(self) -> List[ToolSpec]:
        return [t.spec() for t in self._tools.values()]

    def without(self, *names: str) -> "ToolRegistry":
        return ToolRegistry([t for n, t in self._tools.items() if n not in names])

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools


__all__ = [
    "Emit",
    "ToolContext",
    "ToolDefinition",
    "ToolInput",
    "ToolOutput",
    "ToolRegistry",
    "tool",
]
