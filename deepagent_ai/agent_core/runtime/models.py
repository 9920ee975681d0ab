from __future__ import annotations

"""Runtime dependency bundle, run configuration and LangGraph state types.

- ``EngineDeps`` collects the collaborators the engine needs (model, tools,
  approval gate, backend, checkpointer).
- ``AgentConfig`` holds per-agent tunables; defaults come from ``Settings``.
- ``_GraphState`` is the mutable state passed between LangGraph nodes.
"""

from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Dict,
    List,
    NotRequired,
    Optional,
    Required,
    Type,
    TypedDict,
)

from pydantic import BaseModel, ConfigDict, Field

from ...core.config import Settings, settings as default_settings
from ..backends.base import BackendLike
from ..checkpoint.base import CheckpointSaver
from ..context.summarization import SummarizationConfig
from ..model.base import ChatModel
from ..policy.approval import ApprovalGate
from ..schemas.domain import PendingInterrupt, ResumeDecision, StepSummary, Usage
from ..schemas.messages import Message, ToolCall
from ..tools.base import ToolRegistry

DEFAULT_SYSTEM_PROMPT = """You are a capable assistant that completes tasks step by step using the tools available to you.

Plan multi-step work with write_todos and keep the list current.
Files you create live in a virtual filesystem: use ls, read_file, write_file, edit_file, glob and grep.
When you are done, answer the user directly without calling more tools."""

# Returns True to stop the loop after the step it is given.
StopCondition = Callable[[StepSummary], bool]


def step_count_is(n: int) -> StopCondition:
    """Stop once ``n`` steps have completed."""

    def _stop(summary: StepSummary) -> bool:
        return summary.step >= n

    return _stop


class AgentConfig(BaseModel):
    """Per-agent configuration.

    Build it with ``AgentConfig.from_settings()`` to inherit the process-wide
    defaults, then override individual fields.
    """

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True, protected_namespaces=())

    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_steps: int = Field(default=100, ge=1)
    max_retries: int = Field(default=2, ge=0)
    retry_backoff_seconds: float = Field(default=1.0, ge=0.0)

    tool_result_eviction_limit: Optional[int] = Field(default=20_000, ge=1)
    summarization: Optional[SummarizationConfig] = None

    parallel_tool_calls: bool = False
    model_settings: Optional[Dict[str, Any]] = None
    output_type: Optional[Type[BaseModel]] = None
    stop_when: List[StopCondition] = Field(default_factory=list)

    @classmethod
    def from_settings(cls, s: Optional[Settings] = None, **overrides: Any) -> "AgentConfig":
        s = s or default_settings
        values: Dict[str, Any] = {
            "max_steps": s.max_steps,
            "max_retries": s.model_max_retries,
            "retry_backoff_seconds": s.model_retry_backoff_seconds,
            "tool_result_eviction_limit": s.tool_result_eviction_limit,
            "summarization": SummarizationConfig(
                token_threshold=s.summarization_threshold,
                keep_messages=s.summarization_keep_messages,
            ),
        }
        values.update(overrides)
        return cls(**values)


@dataclass(frozen=True)
class EngineDeps:
    """Dependency bundle for ``AgentEngine``.

    - ``model`` serves the main loop; ``summarization_model`` (defaults to
      ``model``) serves the summary call.
    - ``backend`` is an instance or a ``callable(state) -> backend``; None
      means ``StateBackend`` over the run's state.
    - ``checkpointer`` is consulted only for runs with a ``thread_id``.
    """

    model: ChatModel
    tools: ToolRegistry
    approval: ApprovalGate = field(default_factory=ApprovalGate)

    backend: Optional[BackendLike] = None
    checkpointer: Optional[CheckpointSaver] = None
    summarization_model: Optional[ChatModel] = None


class _GraphState(TypedDict):
    """Mutable LangGraph state for one engine run.

    Required keys:

    - ``ctx``: the per-run context (state store, backend, token, event sink).
    - ``messages``: history excluding the system prompt.
    - ``step``: number of fully completed steps.
    - ``calls``: tool calls requested in the step in progress.

    Optional keys:

    - ``pending_input``: user messages appended before the next model call.
    - ``resume``: a recorded interrupt to re-enter, with its ``decision``.
    - ``step_text`` / ``step_usage``: output of the step in progress.
    - ``text`` / ``finished`` / ``usage``: terminal bookkeeping; ``output`` is the parsed
      structured output when an output type is configured.
    """

    ctx: Required[Any]
    messages: Required[List[Message]]
    step: Required[int]
    calls: Required[List[ToolCall]]
    pending_input: NotRequired[List[Message]]
    resume: NotRequired[Optional[PendingInterrupt]]
    decision: NotRequired[Optional[ResumeDecision]]
    step_text: NotRequired[str]
    step_usage: NotRequired[Optional[Usage]]
    text: NotRequired[str]
    usage: NotRequired[Usage]
    output: NotRequired[Optional[BaseModel]]
    finished: NotRequired[bool]


__all__ = [
    "AgentConfig",
    "DEFAULT_SYSTEM_PROMPT",
    "EngineDeps",
    "StopCondition",
    "step_count_is",
]
