from __future__ import annotations

import asyncio
from contextlib import aclosing
from typing import Any, List, Optional

import pytest
from scripted_model import ScriptedModel, call, collect, of_type, types_of

from deepagent_ai.agent_core.checkpoint import MemorySaver
from deepagent_ai.agent_core.errors import RunCancelled
from deepagent_ai.agent_core.policy import ApprovalGate, ApprovalRequest
from deepagent_ai.agent_core.runtime import AgentConfig, AgentEngine, CancellationToken, EngineDeps
from deepagent_ai.agent_core.schemas.domain import (
    Checkpoint,
    ResumeDecision,
    ResumeDecisionType,
    ResumeOptions,
)
from deepagent_ai.agent_core.schemas.events import AgentEvent, AgentEventType
from deepagent_ai.agent_core.schemas.messages import Message, MessageRole
from deepagent_ai.agent_core.service import DeepAgent
from deepagent_ai.agent_core.state import AgentState
from deepagent_ai.agent_core.tools import ToolContext, ToolInput, ToolRegistry, builtin_tools, tool

WRITE_NOTES = call("write_file", "c1", file_path="/notes.md", content="draft")


class _NoArgs(ToolInput):
    pass


@tool("stall", "Cancel the run and wait", _NoArgs)
async def stall(ctx: ToolContext, args: _NoArgs) -> str:
    ctx.cancel.cancel("user pressed stop")
    await asyncio.sleep(10)
    return "unreachable"


async def _wait_forever(req: ApprovalRequest) -> bool:
    await asyncio.Event().wait()
    return True


class _BrokenSaver:
    async def save(self, checkpoint: Checkpoint) -> None:
        raise OSError("disk full")

    async def load(self, thread_id: str) -> Optional[Checkpoint]:
        return None

    async def list(self) -> List[str]:
        return []

    async def delete(self, thread_id: str) -> None:
        return None

    async def exists(self, thread_id: str) -> bool:
        return False


def _engine(model: ScriptedModel, saver: Any, *, approval: Optional[ApprovalGate] = None) -> AgentEngine:
    return AgentEngine(
        deps=EngineDeps(
            model=model,
            tools=ToolRegistry([*builtin_tools(), stall]),
            approval=approval or ApprovalGate(),
            checkpointer=saver,
        ),
        config=AgentConfig(system_prompt="test", retry_backoff_seconds=0, tool_result_eviction_limit=None),
    )


async def _run_until_approval(saver: MemorySaver, thread_id: str) -> List[AgentEvent]:
    """Start a run whose guarded call waits forever, and abandon it at the approval request."""
    engine = _engine(
        ScriptedModel([WRITE_NOTES]),
        saver,
        approval=ApprovalGate({"write_file": True}, on_approval=_wait_forever),
    )
    events: List[AgentEvent] = []
    async with aclosing(engine.stream_events("write notes", thread_id=thread_id)) as stream:
        async for event in stream:
            events.append(event)
            if event.type == AgentEventType.approval_requested:
                break
    return events


# --------------------------------------------------------------------------
# Step checkpoints
# --------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_checkpoint_saved_after_every_step() -> None:
    saver = MemorySaver()
    model = ScriptedModel([WRITE_NOTES, "done"])
    events = await collect(_engine(model, saver).stream_events("write notes", thread_id="t1"))

    saved = [e.payload for e in of_type(events, AgentEventType.checkpoint_saved)]
    assert [(p["step"], p["messages_count"], p["interrupted"]) for p in saved] == [(1, 3, False), (2, 4, False)]

    cp = await saver.load("t1")
    assert cp is not None
    assert cp.step == 2
    assert cp.interrupt is None
    assert cp.state.files["/notes.md"].content == ["draft"]


@pytest.mark.asyncio
async def test_follow_up_run_continues_thread_history() -> None:
    saver = MemorySaver()
    await collect(_engine(ScriptedModel(["first answer"]), saver).stream_events("one", thread_id="t1"))

    model = ScriptedModel(["second answer"])
    events = await collect(_engine(model, saver).stream_events("two", thread_id="t1"))

    assert types_of(events)[0] == AgentEventType.checkpoint_loaded
    assert [m.content for m in model.conversations[0][1:]] == ["one", "first answer", "two"]
    assert events[-1].payload["step"] == 2


@pytest.mark.asyncio
async def test_save_failure_is_reported_and_run_completes() -> None:
    events = await collect(_engine(ScriptedModel(["fine"]), _BrokenSaver()).stream_events("hi", thread_id="t1"))

    errors = of_type(events, AgentEventType.checkpoint_error)
    assert len(errors) == 1
    assert errors[0].payload == {"thread_id": "t1", "step": 1, "operation": "save", "error": "disk full"}
    assert events[-1].type == AgentEventType.done


@pytest.mark.asyncio
async def test_no_checkpoint_without_thread_id() -> None:
    saver = MemorySaver()
    events = await collect(_engine(ScriptedModel(["fine"]), saver).stream_events("hi"))
    assert not of_type(events, AgentEventType.checkpoint_saved)
    assert saver.size() == 0


# --------------------------------------------------------------------------
# Interrupts and resume
# --------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_interrupt_checkpoint_is_saved_before_the_approval_wait() -> None:
    saver = MemorySaver()
    events = await _run_until_approval(saver, "t1")

    saved = of_type(events, AgentEventType.checkpoint_saved)
    assert saved[-1].payload["interrupted"] is True
    assert types_of(events).index(AgentEventType.checkpoint_saved) < types_of(events).index(
        AgentEventType.approval_requested
    )

    cp = await saver.load("t1")
    assert cp is not None
    assert cp.step == 0
    assert [m.role for m in cp.messages] == [MessageRole.user, MessageRole.assistant]
    assert cp.interrupt is not None
    assert cp.interrupt.step == 1
    assert cp.interrupt.tool_call.tool_call_id == "c1"
    assert cp.interrupt.approval_id == of_type(events, AgentEventType.approval_requested)[0].payload["approval_id"]


@pytest.mark.asyncio
async def test_resume_with_approval_runs_the_recorded_call() -> None:
    saver = MemorySaver()
    await _run_until_approval(saver, "t1")

    model = ScriptedModel(["notes are written"])
    state = AgentState()
    agent = DeepAgent(engine=_engine(model, saver, approval=ApprovalGate({"write_file": True})))
    stream = agent.resume("t1", [ResumeDecision(type=ResumeDecisionType.approve)], state=state)
    events = await collect(stream)

    kinds = types_of(events)
    assert kinds[:2] == [AgentEventType.checkpoint_loaded, AgentEventType.step_start]
    assert events[1].payload == {"step": 1, "resumed": True}
    assert of_type(events, AgentEventType.approval_response)[0].payload["approved"] is True
    assert state.files["/notes.md"].content == ["draft"]

    # Only the follow-up model call; the interrupted step is not re-asked.
    assert model.call_count == 1
    assert model.conversations[0][-1].role == MessageRole.tool

    cp = await saver.load("t1")
    assert cp is not None
    assert cp.step == 2
    assert cp.interrupt is None
    assert events[-1].payload["text"] == "notes are written"


@pytest.mark.asyncio
async def test_resume_with_denial_and_new_prompt() -> None:
    saver = MemorySaver()
    await _run_until_approval(saver, "t1")

    model = ScriptedModel(["ok, skipping the file"])
    state = AgentState()
    agent = DeepAgent(engine=_engine(model, saver, approval=ApprovalGate({"write_file": True})))
    decision = ResumeDecision(type=ResumeDecisionType.deny, reason="not now")
    result = await agent.generate(
        "summarize instead", thread_id="t1", state=state, resume=ResumeOptions(decisions=[decision])
    )

    assert "/notes.md" not in state.files
    conversation = model.conversations[0]
    denial = conversation[-2]
    assert denial.role == MessageRole.tool and denial.is_error
    assert "Reason: not now" in denial.content
    assert conversation[-1] == Message.user("summarize instead")
    assert result.text == "ok, skipping the file"
    assert result.steps == 2


@pytest.mark.asyncio
async def test_resume_without_decision_asks_the_callback() -> None:
    saver = MemorySaver()
    await _run_until_approval(saver, "t1")

    asked: List[str] = []

    def approve(req: ApprovalRequest) -> bool:
        asked.append(req.tool_call_id)
        return True

    agent = DeepAgent(
        engine=_engine(ScriptedModel(["done"]), saver, approval=ApprovalGate({"write_file": True}, on_approval=approve))
    )
    result = await agent.generate(thread_id="t1")
    assert asked == ["c1"]
    assert result.state.files["/notes.md"].content == ["draft"]


@pytest.mark.asyncio
async def test_dangling_calls_in_checkpoint_are_patched() -> None:
    saver = MemorySaver()
    orphan = call("ls", "c9", path="/")
    await saver.save(
        Checkpoint(thread_id="t1", step=1, messages=[Message.user("list"), Message.assistant("", [orphan])])
    )

    model = ScriptedModel(["continuing"])
    await collect(_engine(model, saver).stream_events("go on", thread_id="t1"))

    history = model.conversations[0][1:]
    assert [m.role for m in history] == [MessageRole.user, MessageRole.assistant, MessageRole.tool, MessageRole.user]
    assert history[2].tool_call_id == "c9"
    assert "was cancelled" in history[2].content


# --------------------------------------------------------------------------
# Cancellation
# --------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_cancellation_ends_with_error_and_keeps_last_completed_step() -> None:
    saver = MemorySaver()
    model = ScriptedModel([WRITE_NOTES, call("stall", "c2"), "never"])
    events = await collect(_engine(model, saver).stream_events("go", thread_id="t1"))

    last = events[-1]
    assert last.type == AgentEventType.error
    assert last.payload == {"error": "user pressed stop", "kind": "cancelled", "cancelled": True}
    assert not of_type(events, AgentEventType.done)

    cp = await saver.load("t1")
    assert cp is not None
    assert cp.step == 1
    assert model.call_count == 2


@pytest.mark.asyncio
async def test_pre_cancelled_token_stops_before_the_model_call() -> None:
    token = CancellationToken()
    token.cancel()
    model = ScriptedModel(["never"])
    agent = DeepAgent(engine=_engine(model, None))

    with pytest.raises(RunCancelled):
        await agent.generate("hi", cancel=token)
    assert model.call_count == 0


@pytest.mark.asyncio
async def test_closing_the_stream_early_cancels_the_run() -> None:
    token = CancellationToken()
    engine = _engine(
        ScriptedModel([WRITE_NOTES]),
        None,
        approval=ApprovalGate({"write_file": True}, on_approval=_wait_forever),
    )
    async with aclosing(engine.stream_events("go", cancel=token)) as stream:
        async for event in stream:
            if event.type == AgentEventType.approval_requested:
                break

    assert token.cancelled
    assert token.reason == "event stream closed"
