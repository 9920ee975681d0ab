from __future__ import annotations

"""Subagent dispatch: the ``task`` tool.

``task(description, subagent_type)`` runs a nested step loop with its own
system prompt, tool subset, optional model and step ceiling. The nested run
shares the parent's file map by reference and starts with an empty todo list
that is discarded afterwards, so only file changes reach the parent.

Failures inside the nested loop never propagate: they become the text
``Error executing subagent: ...``. Cancellation is the exception; it is the
parent run's signal and ends the parent too.

Events surfaced on the parent stream: ``subagent-start``, one
``subagent-step`` per nested step, ``subagent-finish``, plus the nested
tools' file/execute/web/approval events.
"""

import json
import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Type

from pydantic import BaseModel, Field

from ...core.config import settings
from ..errors import RunCancelled
from ..model.base import ChatModel
from ..policy.models import ToolPolicy
from ..schemas.events import AgentEventType
from .base import ToolContext, ToolDefinition, ToolInput, ToolOutput, ToolRegistry

logger = logging.getLogger(__name__)

GENERAL_PURPOSE = "general-purpose"
TASK_TOOL_NAME = "task"

GENERAL_PURPOSE_DESCRIPTION = (
    "General-purpose agent for researching complex questions, searching for files and content, "
    "and executing multi-step tasks. It has access to the same tools as the main agent."
)

SUBAGENT_SYSTEM_PROMPT = (
    "In order to complete the objective that the user asks of you, you have access to a number of standard tools. "
    "Complete the task fully, then reply with a concise report of what you did and what you found. "
    "Your reply is the only thing the caller sees."
)

TASK_DESCRIPTION_TEMPLATE = """Launch an ephemeral subagent to handle a complex, multi-step task in an isolated context.

Available agent types and the tools they have access to:
{agents}

Usage notes:
- Give the subagent a detailed, self-contained task description: it does not see this conversation.
- The subagent's final message is returned to you; summarize it for the user as needed.
- Files the subagent writes are visible to you afterwards; its todo list is not.
- Launch several subagents in one message when their tasks are independent."""

EMPTY_RESULT = "Task completed successfully."

# Tools every custom subagent keeps alongside its own.
_CORE_TOOL_NAMES = frozenset({"write_todos", "ls", "read_file", "write_file", "edit_file", "glob", "grep"})


@dataclass(frozen=True)
class SubAgentSpec:
    """Definition of a named subagent.

    ``tools`` defaults to the dispatcher's default tool set; ``model`` to the
    parent's model; ``interrupt_on`` to the parent's approval policies.
    """

    name: str
    description: str
    system_prompt: str
    tools: Optional[Sequence[ToolDefinition]] = None
    model: Optional[ChatModel] = None
    max_steps: Optional[int] = None
    interrupt_on: Optional[Mapping[str, ToolPolicy]] = None
    output_type: Optional[Type[BaseModel]] = None


class TaskArgs(ToolInput):
    description: str = Field(description="The task to execute with the selected agent")
    subagent_type: str = Field(description="Name of the agent to use")


def format_result(text: str, output: Optional[BaseModel]) -> str:
    result = text or EMPTY_RESULT
    if output is not None:
        result = f"{result}\n\n[Structured Output]\n{json.dumps(output.model_dump(mode='json'), indent=2)}"
    return result


class SubAgentDispatcher:
    """Registry of subagent types and factory of the ``task`` tool.

    Usage
    -----

        dispatcher = SubAgentDispatcher(
            [SubAgentSpec(name="researcher", description="...", system_prompt="...")],
            default_tools=parent_tools,
        )
        registry.register(dispatcher.definition())
    """

    def __init__(
        self,
        subagents: Sequence[SubAgentSpec] = (),
        *,
        default_tools: Sequence[ToolDefinition] = (),
        include_general_purpose: bool = True,
        max_steps: Optional[int] = None,
        task_description: Optional[str] = None,
    ) -> None:
        self._default_tools = [t for t in default_tools if t.name != TASK_TOOL_NAME]
        self._max_steps = max_steps or settings.subagent_max_steps
        self._task_description = task_description

        self._specs: Dict[str, SubAgentSpec] = {}
        if include_general_purpose:
            self._specs[GENERAL_PURPOSE] = SubAgentSpec(
                name=GENERAL_PURPOSE,
                description=GENERAL_PURPOSE_DESCRIPTION,
                system_prompt=SUBAGENT_SYSTEM_PROMPT,
            )
        for spec in subagents:
            self._specs[spec.name] = spec

    def names(self) -> List[str]:
        return list(self._specs)

    def get(self, name: str) -> Optional[SubAgentSpec]:
        return self._specs.get(name)

    def description(self) -> str:
        if self._task_description:
            return self._task_description
        agents = "\n".join(f"- {s.name}: {s.description}" for s in self._specs.values())
        return TASK_DESCRIPTION_TEMPLATE.format(agents=agents)

    def tools_for(self, spec: SubAgentSpec) -> ToolRegistry:
        if spec.tools is None:
            return ToolRegistry(list(self._default_tools))
        registry = ToolRegistry([t for t in self._default_tools if t.name in _CORE_TOOL_NAMES])
        for t in spec.tools:
            if t.name != TASK_TOOL_NAME:
                registry.register(t)
        return registry

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=TASK_TOOL_NAME,
            description=self.description(),
            input_model=TaskArgs,
            handler=self._task,
        )

    async def _task(self, ctx: ToolContext, args: TaskArgs) -> ToolOutput:
        spec = self._specs.get(args.subagent_type)
        if spec is None:
            allowed = ", ".join(f"`{n}`" for n in self._specs)
            return ToolOutput(
                content=f"Error: invoked agent of type {args.subagent_type}, the only allowed types are {allowed}",
                is_error=True,
            )
        if ctx.runtime is None:
            return ToolOutput(content="Error executing subagent: no runtime available", is_error=True)

        await ctx.emit(AgentEventType.subagent_start, name=spec.name, task=args.description)
        try:
            text, output = await ctx.runtime.run_subagent(
                ctx,
                task=args.description,
                system_prompt=spec.system_prompt,
                tools=self.tools_for(spec),
                model=spec.model,
                max_steps=spec.max_steps or self._max_steps,
                interrupt_on=dict(spec.interrupt_on) if spec.interrupt_on is not None else None,
                output_type=spec.output_type,
            )
        except RunCancelled:
            raise
        except Exception as exc:
            logger.warning("subagent %s failed: %s", spec.name, exc)
            message = f"Error executing subagent: {exc}"
            await ctx.emit(AgentEventType.subagent_finish, name=spec.name, result=message)
            return ToolOutput(content=message, is_error=True)

        result = format_result(text, output)
        await ctx.emit(AgentEventType.subagent_finish, name=spec.name, result=result)
        return ToolOutput(content=result)
