from __future__ import annotations

"""Convenience factory for wiring a deep agent.

``create_deep_agent`` assembles the default tool registry (planning,
filesystem, ``execute`` for sandbox backends, the ``task`` subagent tool and
any user tools), the approval gate, the model adapter and the ``AgentConfig``
and returns a ``DeepAgent``.

The intent is to keep application wiring and tests concise, while still
allowing advanced deployments to build ``EngineDeps`` / ``AgentEngine``
themselves.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type, Union

from pydantic import BaseModel
from pydantic_ai.models import Model

from ..core.config import Settings, settings as default_settings
from .backends.base import BackendLike, is_sandbox_backend
from .checkpoint.base import CheckpointSaver
from .context.memory import load_agent_memory
from .context.skills import list_skills, skills_prompt_section
from .context.summarization import SummarizationConfig
from .model.base import ChatModel
from .model.pydantic_ai import PydanticAIChatModel
from .policy.approval import ApprovalGate
from .policy.models import ApprovalCallback, SafetyPolicy, ToolPolicy
from .runtime import AgentConfig, AgentEngine, EngineDeps, StopCondition
from .runtime.models import DEFAULT_SYSTEM_PROMPT
from .service import DeepAgent
from .tools import SubAgentDispatcher, SubAgentSpec, ToolDefinition, ToolRegistry, builtin_tools

logger = logging.getLogger(__name__)

ModelLike = Union[ChatModel, Model, str]


def resolve_model(model: Optional[ModelLike], *, settings: Optional[Settings] = None) -> ChatModel:
    """Turn a ``ChatModel``, a pydantic-ai ``Model`` or a model name into a ``ChatModel``."""
    if isinstance(model, ChatModel):
        return model
    if model is None:
        model = (settings or default_settings).default_model
    return PydanticAIChatModel(model)


def build_tool_registry(
    *,
    tools: Sequence[ToolDefinition] = (),
    subagents: Sequence[SubAgentSpec] = (),
    include_general_purpose_agent: bool = True,
    include_execute: bool = False,
    subagent_max_steps: Optional[int] = None,
) -> ToolRegistry:
    """Build the default ``ToolRegistry``.

    User tools override builtins of the same name. The ``task`` tool is added
    when at least one subagent type is available; its default tool set is
    every other tool in the registry.
    """
    registry = ToolRegistry(builtin_tools(include_execute=include_execute))
    for t in tools:
        registry.register(t)

    if include_general_purpose_agent or subagents:
        dispatcher = SubAgentDispatcher(
            subagents,
            default_tools=registry.definitions(),
            include_general_purpose=include_general_purpose_agent,
            max_steps=subagent_max_steps,
        )
        registry.register(dispatcher.definition())
    return registry


def _summarization_config(
    value: Union[SummarizationConfig, bool, None], s: Settings
) -> Optional[SummarizationConfig]:
    if value is False:
        return None
    if isinstance(value, SummarizationConfig):
        return value
    return SummarizationConfig(token_threshold=s.summarization_threshold, keep_messages=s.summarization_keep_messages)


def build_system_prompt(
    system_prompt: Optional[str] = None,
    *,
    agent_id: Optional[str] = None,
    skills_dir: Union[str, Path, None] = None,
    working_directory: Union[str, Path, None] = None,
    settings: Optional[Settings] = None,
) -> str:
    """Compose caller instructions, the default prompt, agent memory and the skills listing."""
    s = settings or default_settings
    parts: List[str] = [system_prompt, DEFAULT_SYSTEM_PROMPT] if system_prompt else [DEFAULT_SYSTEM_PROMPT]
    if agent_id:
        parts.append(load_agent_memory(agent_id, home_dir=s.agent_home_dir, working_directory=working_directory))
    skills = list_skills(
        agent_id=agent_id,
        user_skills_dir=skills_dir,
        working_directory=working_directory,
        home_dir=s.agent_home_dir,
    )
    parts.append(skills_prompt_section(skills))
    return "\n\n".join(p for p in parts if p)


def create_deep_agent(
    model: Optional[ModelLike] = None,
    *,
    system_prompt: Optional[str] = None,
    tools: Sequence[ToolDefinition] = (),
    subagents: Sequence[SubAgentSpec] = (),
    include_general_purpose_agent: bool = True,
    backend: Optional[BackendLike] = None,
    checkpointer: Optional[CheckpointSaver] = None,
    interrupt_on: Optional[Mapping[str, ToolPolicy]] = None,
    on_approval: Optional[ApprovalCallback] = None,
    safety: Optional[SafetyPolicy] = None,
    summarization: Union[SummarizationConfig, bool, None] = None,
    summarization_model: Optional[ModelLike] = None,
    tool_result_eviction_limit: Optional[int] = None,
    max_steps: Optional[int] = None,
    parallel_tool_calls: bool = False,
    output_type: Optional[Type[BaseModel]] = None,
    stop_when: Sequence[StopCondition] = (),
    model_settings: Optional[Dict[str, Any]] = None,
    agent_id: Optional[str] = None,
    skills_dir: Union[str, Path, None] = None,
    working_directory: Union[str, Path, None] = None,
    settings: Optional[Settings] = None,
) -> DeepAgent:
    """
    Create a ``DeepAgent`` with planning, filesystem and subagent tools.

    Args:
        model: ``ChatModel``, pydantic-ai ``Model`` or model name; defaults to
            ``Settings.default_model``.
        system_prompt: Instructions placed before the default agent prompt.
        tools: Extra tools; they override builtins with the same name.
        subagents: Named subagent types for the ``task`` tool.
        include_general_purpose_agent: Register the ``general-purpose`` type.
        backend: Backend instance or ``callable(state) -> backend``; the
            ``execute`` tool is added when the instance passes the sandbox probe.
        checkpointer: Saver used for runs that pass a ``thread_id``.
        interrupt_on: Approval policy per tool name.
        on_approval: Decision callback for guarded calls; without it guarded
            calls are denied.
        safety: Argument size guardrails.
        summarization: ``False`` disables it; a config overrides the defaults.
        summarization_model: Model for the summary call; defaults to ``model``.
        tool_result_eviction_limit: Token limit for eviction; ``0`` disables it.
        max_steps: Step ceiling per run.
        parallel_tool_calls: Execute admitted tool calls of one step concurrently.
        output_type: Pydantic model the final answer is parsed into.
        stop_when: Extra stop conditions evaluated after each step.
        model_settings: Provider generation settings.
        agent_id: Loads memory and skills from the agent home and the project
            ``.deepagents`` directory into the system prompt.
        skills_dir: Skills directory used when no ``agent_id`` is given.
        working_directory: Start of the project root search; defaults to
            the current directory.
        settings: Process settings to read defaults from.

    Returns:
        A ready-to-run ``DeepAgent``.
    """
    s = settings or default_settings
    chat_model = resolve_model(model, settings=s)

    registry = build_tool_registry(
        tools=tools,
        subagents=subagents,
        include_general_purpose_agent=include_general_purpose_agent,
        include_execute=is_sandbox_backend(backend),
        subagent_max_steps=s.subagent_max_steps,
    )

    overrides: Dict[str, Any] = {
        "system_prompt": build_system_prompt(
            system_prompt,
            agent_id=agent_id,
            skills_dir=skills_dir,
            working_directory=working_directory,
            settings=s,
        ),
        "summarization": _summarization_config(summarization, s),
        "parallel_tool_calls": parallel_tool_calls,
        "output_type": output_type,
        "stop_when": list(stop_when),
        "model_settings": model_settings,
    }
    if tool_result_eviction_limit is not None:
        overrides["tool_result_eviction_limit"] = tool_result_eviction_limit or None
    if max_steps is not None:
        overrides["max_steps"] = max_steps
    config = AgentConfig.from_settings(s, **overrides)

    deps = EngineDeps(
        model=chat_model,
        tools=registry,
        approval=ApprovalGate(interrupt_on, on_approval=on_approval, safety=safety),
        backend=backend,
        checkpointer=checkpointer,
        summarization_model=resolve_model(summarization_model, settings=s) if summarization_model else None,
    )
    logger.debug("created deep agent with tools: %s", ", ".join(registry.names()))
    return DeepAgent(engine=AgentEngine(deps=deps, config=config))
