from __future__ import annotations

"""High-level facade over the runtime engine.

``DeepAgent`` provides an application-friendly API:

- ``stream``: run and yield ``AgentEvent`` objects as they happen.
- ``generate``: run to completion and return a ``GenerateResult``; a terminal
  ``error`` event is raised as the matching ``DeepAgentError``.
- ``resume``: continue a checkpointed thread, applying approval decisions to
  a recorded interrupt.

``DeepAgent`` is intentionally thin: it delegates execution semantics to
the engine and holds no per-run state itself.
"""

from contextlib import aclosing
from dataclasses import dataclass, field
from typing import AsyncIterator, List, Optional, Sequence, Union

from pydantic import BaseModel

from .errors import DeepAgentError, RunCancelled, TransportError
from .runtime import AgentEngine, CancellationToken
from .runtime.engine import Prompt
from .schemas.domain import ResumeDecision, ResumeOptions, StateSnapshot
from .schemas.events import AgentEvent, AgentEventType
from .schemas.messages import Message
from .state import AgentState


@dataclass(frozen=True)
class GenerateResult:
    """Outcome of a completed run."""

    text: str
    messages: List[Message]
    state: AgentState
    steps: int
    output: Optional[BaseModel] = None
    events: List[AgentEvent] = field(default_factory=list)


def _error_from_event(event: AgentEvent) -> DeepAgentError:
    message = str(event.payload.get("error") or "agent run failed")
    if event.payload.get("cancelled"):
        return RunCancelled(message)
    if event.payload.get("kind") == "transport":
        return TransportError(message)
    return DeepAgentError(message)


class DeepAgent:
    """Run an ``AgentEngine`` for callers that think in prompts and threads."""

    def __init__(self, *, engine: AgentEngine) -> None:
        self._engine = engine

    @property
    def engine(self) -> AgentEngine:
        return self._engine

    def stream(
        self,
        prompt: Prompt = None,
        *,
        thread_id: Optional[str] = None,
        state: Optional[AgentState] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> AsyncIterator[AgentEvent]:
        return self._engine.stream_events(prompt, thread_id=thread_id, state=state, cancel=cancel)

    def resume(
        self,
        thread_id: str,
        decisions: Union[ResumeOptions, Sequence[ResumeDecision], None] = None,
        *,
        prompt: Prompt = None,
        state: Optional[AgentState] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> AsyncIterator[AgentEvent]:
        """Continue ``thread_id`` from its checkpoint.

        ``decisions`` apply to the interrupt recorded in the checkpoint; without
        one, the approval callback (or the deny default) decides.
        """
        options = decisions if isinstance(decisions, ResumeOptions) else ResumeOptions(decisions=list(decisions or []))
        return self._engine.stream_events(prompt, thread_id=thread_id, state=state, resume=options, cancel=cancel)

    async def generate(
        self,
        prompt: Prompt = None,
        *,
        thread_id: Optional[str] = None,
        state: Optional[AgentState] = None,
        resume: Optional[ResumeOptions] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> GenerateResult:
        """Run to completion.

        Raises:
            RunCancelled: the run was cancelled.
            TransportError: the model call failed after retries.
            DeepAgentError: any other run-ending failure.
        """
        agent_state = state if state is not None else AgentState()
        events: List[AgentEvent] = []
        stream = self._engine.stream_events(prompt, thread_id=thread_id, state=agent_state, resume=resume, cancel=cancel)
        async with aclosing(stream):
            async for event in stream:
                events.append(event)
                if event.type == AgentEventType.error:
                    raise _error_from_event(event)
                if event.type == AgentEventType.done:
                    return self._result(event, agent_state, events)
        raise DeepAgentError("event stream ended without a terminal event")

    def _result(self, done: AgentEvent, state: AgentState, events: List[AgentEvent]) -> GenerateResult:
        payload = done.payload
        output = None
        output_type = self._engine.config.output_type
        if output_type is not None and payload.get("output") is not None:
            output = output_type.model_validate(payload["output"])
        return GenerateResult(
            text=str(payload.get("text") or ""),
            messages=[Message.model_validate(m) for m in payload.get("messages") or []],
            state=state,
            steps=int(payload.get("step") or 0),
            output=output,
            events=events,
        )

    @staticmethod
    def snapshot_of(done: AgentEvent) -> StateSnapshot:
        """Rebuild the ``StateSnapshot`` carried by a ``done`` event."""
        return StateSnapshot.model_validate(done.payload.get("state") or {})
