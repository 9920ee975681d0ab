"""LangGraph-based step loop for deep agents.

The runtime drives the model through repeated model-call / tool-dispatch
steps and streams every unit of progress as an ``AgentEvent``:

- tool calls pass through the approval gate before they execute,
- oversized tool results are evicted to the backend,
- old history is summarized before a model call when it grows too large,
- completed steps and approval interrupts are checkpointed when a
  ``thread_id`` and a checkpointer are configured.

The main entry point is ``AgentEngine``; ``EngineDeps`` and ``AgentConfig``
carry its collaborators and tunables.
"""

from .channel import CancellationToken, EventChannel
from .engine import AgentEngine
from .models import DEFAULT_SYSTEM_PROMPT, AgentConfig, EngineDeps, StopCondition, step_count_is

__all__ = [
    "AgentConfig",
    "AgentEngine",
    "CancellationToken",
    "DEFAULT_SYSTEM_PROMPT",
    "EngineDeps",
    "EventChannel",
    "StopCondition",
    "step_count_is",
]
