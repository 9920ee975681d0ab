"""Agent execution and state-management core.

This package contains the "engine room" of deepagent-ai.

Design overview
---------------

- ``state.AgentState`` is the State Store: the todo list and virtual file
  table of one run, shared by reference with tools, backends and subagents.
- ``backends`` implement the Backend capability contract (state, local
  filesystem, key-value store, composite routing, shell sandboxes).
- ``runtime.AgentEngine`` runs the step loop on LangGraph and streams
  ``AgentEvent`` objects. Tool calls pass through ``policy.ApprovalGate``;
  ``context`` evicts oversized results and summarizes old history;
  ``checkpoint`` savers persist runs for suspend/resume.
- ``tools.SubAgentDispatcher`` provides the ``task`` tool that runs nested,
  bounded loops sharing only the file table.

Typical usage
-------------

Most applications should use ``create_deep_agent``:

    agent = create_deep_agent("anthropic:claude-sonnet-4-5", checkpointer=MemorySaver())
    async for event in agent.stream("Write a haiku to /poem.txt", thread_id="t-1"):
        ...
"""

from .checkpoint import CheckpointSaver, FileSaver, KeyValueStoreSaver, MemorySaver, SqlCheckpointSaver
from .errors import (
    BackendError,
    DeepAgentError,
    PersistenceError,
    RunCancelled,
    ToolExecutionError,
    ToolValidationError,
    TransportError,
)
from .factory import build_system_prompt, build_tool_registry, create_deep_agent, resolve_model
from .policy import ApprovalGate, ApprovalRequest, DynamicApproval
from .runtime import AgentConfig, AgentEngine, CancellationToken, EngineDeps, step_count_is
from .schemas import AgentEvent, AgentEventType, Checkpoint, Message, ResumeDecision, ResumeOptions, TodoItem
from .service import DeepAgent, GenerateResult
from .state import AgentState
from .tools import SubAgentSpec, ToolDefinition, ToolRegistry, WebTools, tool

__all__ = [
    "AgentConfig",
    "AgentEngine",
    "AgentEvent",
    "AgentEventType",
    "AgentState",
    "ApprovalGate",
    "ApprovalRequest",
    "BackendError",
    "CancellationToken",
    "Checkpoint",
    "CheckpointSaver",
    "DeepAgent",
    "DeepAgentError",
    "DynamicApproval",
    "EngineDeps",
    "FileSaver",
    "GenerateResult",
    "KeyValueStoreSaver",
    "MemorySaver",
    "Message",
    "PersistenceError",
    "ResumeDecision",
    "ResumeOptions",
    "RunCancelled",
    "SqlCheckpointSaver",
    "SubAgentSpec",
    "TodoItem",
    "ToolDefinition",
    "ToolExecutionError",
    "ToolRegistry",
    "ToolValidationError",
    "TransportError",
    "WebTools",
    "build_system_prompt",
    "build_tool_registry",
    "create_deep_agent",
    "resolve_model",
    "step_count_is",
    "tool",
]
