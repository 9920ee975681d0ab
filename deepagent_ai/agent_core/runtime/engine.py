from __future__ import annotations

"""LangGraph step loop.

``AgentEngine`` drives a chat model through the "propose an action, execute
it, observe the result" loop and streams ``AgentEvent`` objects to the host.

Execution model
---------------

- The engine runs a LangGraph state machine over a mutable ``_GraphState``:
  ``prepare -> model -> tools -> (model | finish)``.
- One step is one model call plus the dispatch of the tool calls it
  requested. Each step is bracketed by ``step-start`` / ``step-finish``.
- The loop ends on a plain-text answer, a ``stop_when`` condition, or the
  ``max_steps`` ceiling (not an error).

Events and cancellation
-----------------------

The graph runs in a producer task that writes to an ``EventChannel``; the
host drains it with ``async for``. Closing the iterator cancels the producer.
A ``CancellationToken`` is checked at step start and before each tool
dispatch, and raced against the model stream, summarization, approval waits
and tool execution. Cancellation ends the stream with an ``error`` event
(``cancelled=True``) and never writes a checkpoint for the step in progress.

Text deltas are streamed as ``text`` events; any ``tool-call``,
``step-finish``, ``error`` or ``done`` event first closes the open text
segment with a ``text-segment`` event carrying the full segment.

Approval and checkpoints
------------------------

Guarded tool calls enter ``PendingApproval``: with a checkpointer and a
``thread_id`` configured, a checkpoint holding the ``PendingInterrupt`` is
saved before the decision is awaited. A checkpoint is also saved after every
completed step. Resuming a checkpoint that carries an interrupt re-enters
``PendingApproval`` for the recorded call without a new model call, then
dispatches the rest of that step's calls.

Tool calls within a step run sequentially by default;
``AgentConfig.parallel_tool_calls`` executes admitted calls concurrently.
Either way results are appended to history in call order.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple, Union

from langgraph.graph import END, StateGraph
from pydantic import BaseModel, ValidationError

from ..backends.base import BackendProtocol, resolve_backend
from ..context.eviction import EVICTION_DIR, evict_tool_result
from ..context.patching import patch_tool_calls
from ..context.summarization import summarize_if_needed
from ..errors import RunCancelled, ToolExecutionError, ToolValidationError, TransportError
from ..model.base import ChatModel, ModelChunk, ModelResponse
from ..policy.approval import denial_message
from ..policy.models import ToolPolicy
from ..schemas.domain import Checkpoint, PendingInterrupt, ResumeDecision, ResumeOptions, StepSummary, Usage
from ..schemas.events import FORWARDED_SUBAGENT_EVENT_TYPES, AgentEvent, AgentEventType
from ..schemas.messages import Message, MessageRole, ToolCall
from ..state import AgentState
from ..tools.base import ToolContext, ToolDefinition, ToolRegistry
from .channel import CancellationToken, EventChannel
from .models import AgentConfig, EngineDeps, _GraphState

logger = logging.getLogger(__name__)

Sink = Callable[[AgentEvent], Awaitable[None]]
Prompt = Union[str, Message, Sequence[Message], None]

_SEGMENT_CLOSERS = frozenset(
    {AgentEventType.tool_call, AgentEventType.step_finish, AgentEventType.error, AgentEventType.done}
)


@dataclass
class _Run:
    """Per-run context carried through the graph state."""

    thread_id: Optional[str]
    state: AgentState
    backend: BackendProtocol
    token: CancellationToken
    sink: Sink
    start_step: int = 0
    segment: List[str] = field(default_factory=list)

    async def emit(self, type: AgentEventType, **payload: Any) -> None:
        if type in _SEGMENT_CLOSERS:
            await self.close_segment()
        elif type == AgentEventType.text:
            self.segment.append(str(payload.get("text", "")))
        await self.sink(AgentEvent(type=type, thread_id=self.thread_id, payload=payload))

    async def close_segment(self) -> None:
        if not self.segment:
            return
        text = "".join(self.segment)
        self.segment = []
        await self.sink(AgentEvent(type=AgentEventType.text_segment, thread_id=self.thread_id, payload={"text": text}))


_Admitted = Tuple[ToolCall, ToolDefinition, BaseModel]


async def _next_chunk(stream: AsyncIterator[ModelChunk]) -> Optional[ModelChunk]:
    try:
        return await stream.__anext__()
    except StopAsyncIteration:
        return None


async def _aclose(stream: Any) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()


def _as_messages(prompt: Prompt) -> List[Message]:
    if prompt is None:
        return []
    if isinstance(prompt, str):
        return [Message.user(prompt)]
    if isinstance(prompt, Message):
        return [prompt]
    return list(prompt)


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()


def _forwarding_sink(emit: Callable[..., Awaitable[None]]) -> Sink:
    """Sink for nested runs: forward selected events to the parent stream."""

    async def sink(event: AgentEvent) -> None:
        if event.type in FORWARDED_SUBAGENT_EVENT_TYPES:
            await emit(event.type, **event.payload)
        elif event.type == AgentEventType.step_finish:
            await emit(
                AgentEventType.subagent_step,
                step_index=event.payload.get("step"),
                tool_calls=event.payload.get("tool_calls", []),
            )

    return sink


class AgentEngine:
    """Run the step loop for one agent configuration.

    The engine itself is stateless between runs: everything a run mutates
    lives in its ``AgentState`` and, when configured, its checkpoint.
    """

    def __init__(self, *, deps: EngineDeps, config: Optional[AgentConfig] = None) -> None:
        """
        Initialize the AgentEngine.

        Args:
            deps: The runtime dependencies (model, tools, approval gate, backend, checkpointer).
            config: Loop configuration; defaults to ``AgentConfig.from_settings()``.
        """
        self._deps = deps
        self._config = config or AgentConfig.from_settings()
        self._graph = self._build_graph()

    @property
    def deps(self) -> EngineDeps:
        return self._deps

    @property
    def config(self) -> AgentConfig:
        return self._config

    def _build_graph(self):
        """Build and compile the LangGraph state machine."""
        g: StateGraph = StateGraph(_GraphState)
        g.add_node("prepare", self._node_prepare)
        g.add_node("model", self._node_model)
        g.add_node("tools", self._node_tools)
        g.add_node("finish", self._node_finish)

        g.set_entry_point("prepare")
        g.add_conditional_edges(
            "prepare",
            self._route_after_prepare,
            {"resume": "tools", "model": "model", "finish": "finish"},
        )
        g.add_conditional_edges("model", self._route_after_model, {"tools": "tools", "finish": "finish"})
        g.add_conditional_edges("tools", self._route_after_tools, {"model": "model", "finish": "finish"})
        g.add_edge("finish", END)
        return g.compile()

    def _graph_config(self) -> Dict[str, Any]:
        # prepare + (model, tools) per step + finish
        return {"recursion_limit": self._config.max_steps * 2 + 5}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def stream_events(
        self,
        prompt: Prompt = None,
        *,
        thread_id: Optional[str] = None,
        state: Optional[AgentState] = None,
        resume: Optional[ResumeOptions] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> AsyncIterator[AgentEvent]:
        """Run the loop and yield its events as they are produced.

        The stream always ends with exactly one ``done`` or ``error`` event.
        Closing the iterator early cancels the run.

        Args:
            prompt: New user input (text or messages). May be empty when
                resuming a thread.
            thread_id: Enables checkpoint load/save with the configured saver.
            state: State store to run against; a fresh one when omitted.
            resume: Decisions for an interrupt recorded in the thread's checkpoint.
            cancel: External cancellation token.
        """
        channel = EventChannel()
        token = cancel or CancellationToken()
        run = self._new_run(thread_id=thread_id, state=state, token=token, sink=channel.put)
        producer = asyncio.create_task(self._produce(run, prompt, resume, channel))
        finished = False
        try:
            async for event in channel:
                finished = event.is_terminal
                yield event
        finally:
            if not finished and not producer.done():
                token.cancel("event stream closed")
                producer.cancel()
            await asyncio.gather(producer, return_exceptions=True)

    async def run_subagent(
        self,
        ctx: ToolContext,
        *,
        task: str,
        system_prompt: str,
        tools: ToolRegistry,
        model: Optional[ChatModel] = None,
        max_steps: int = 50,
        interrupt_on: Optional[Dict[str, ToolPolicy]] = None,
        output_type: Optional[type] = None,
    ) -> Tuple[str, Optional[BaseModel]]:
        """Run a nested loop on behalf of the tool call in ``ctx``.

        The nested run shares the caller's file map and cancellation token,
        starts with an empty todo list, never checkpoints, and forwards its
        file/execute/web/approval events (plus one ``subagent-step`` per
        completed step) through ``ctx.emit``.

        Returns:
            The nested run's final text and parsed structured output.
        """
        approval = self._deps.approval if interrupt_on is None else self._deps.approval.with_policies(interrupt_on)
        child = AgentEngine(
            deps=EngineDeps(
                model=model or self._deps.model,
                tools=tools,
                approval=approval,
                backend=self._deps.backend,
                summarization_model=self._deps.summarization_model,
            ),
            config=self._config.model_copy(
                update={
                    "system_prompt": system_prompt,
                    "max_steps": max_steps,
                    "output_type": output_type,
                    "stop_when": [],
                }
            ),
        )
        sub_state = ctx.state.for_subagent()
        run = child._new_run(thread_id=None, state=sub_state, token=ctx.cancel, sink=_forwarding_sink(ctx.emit))
        initial = await child._initial_state(run, task, None)
        final = await child._graph.ainvoke(initial, config=child._graph_config())
        ctx.state.merge_files(sub_state)
        return str(final.get("text") or ""), final.get("output")

    # ------------------------------------------------------------------
    # Run setup
    # ------------------------------------------------------------------

    def _new_run(
        self,
        *,
        thread_id: Optional[str],
        state: Optional[AgentState],
        token: CancellationToken,
        sink: Sink,
    ) -> _Run:
        agent_state = state if state is not None else AgentState()
        backend = resolve_backend(self._deps.backend, agent_state)
        return _Run(thread_id=thread_id, state=agent_state, backend=backend, token=token, sink=sink)

    async def _produce(
        self,
        run: _Run,
        prompt: Prompt,
        resume: Optional[ResumeOptions],
        channel: EventChannel,
    ) -> None:
        try:
            initial = await self._initial_state(run, prompt, resume)
            await self._graph.ainvoke(initial, config=self._graph_config())
        except RunCancelled as exc:
            logger.info("run %s cancelled: %s", run.thread_id or "-", exc)
            await run.emit(AgentEventType.error, error=str(exc), kind="cancelled", cancelled=True)
        except TransportError as exc:
            logger.error("run %s failed after %d model attempt(s): %s", run.thread_id or "-", exc.attempts, exc)
            await run.emit(AgentEventType.error, error=str(exc), kind="transport", cancelled=False)
        except Exception as exc:
            logger.exception("run %s failed", run.thread_id or "-")
            await run.emit(AgentEventType.error, error=str(exc), kind=type(exc).__name__, cancelled=False)
        finally:
            channel.close()

    async def _initial_state(self, run: _Run, prompt: Prompt, resume: Optional[ResumeOptions]) -> _GraphState:
        messages: List[Message] = []
        step = 0
        interrupt: Optional[PendingInterrupt] = None

        cp = await self._load_checkpoint(run)
        if cp is not None:
            messages = list(cp.messages)
            step = cp.step
            interrupt = cp.interrupt
            restored = AgentState.from_snapshot(cp.state)
            # Restore in place so backends bound to this state stay valid.
            run.state.todos = restored.todos
            run.state.files.clear()
            run.state.files.update(restored.files)

        decision: Optional[ResumeDecision] = None
        if resume is not None and resume.decisions:
            decision = resume.decisions[0]

        run.start_step = step
        return {
            "ctx": run,
            "messages": messages,
            "step": step,
            "calls": [],
            "pending_input": _as_messages(prompt),
            "resume": interrupt,
            "decision": decision,
            "step_text": "",
            "step_usage": None,
            "text": "",
            "usage": Usage(),
            "output": None,
            "finished": False,
        }

    # ------------------------------------------------------------------
    # Graph nodes
    # ------------------------------------------------------------------

    async def _node_prepare(self, state: _GraphState) -> _GraphState:
        """Repair history and locate a recorded interrupt, if any."""
        run: _Run = state["ctx"]
        messages = state["messages"]
        interrupt = state.get("resume")

        skip: Set[str] = set()
        if interrupt is not None:
            calls = self._unanswered_calls_of(messages, interrupt.tool_call.tool_call_id)
            if calls is None:
                logger.warning(
                    "interrupted call %s not found in thread %s history; ignoring interrupt",
                    interrupt.tool_call.tool_call_id,
                    run.thread_id,
                )
                state["resume"] = None
                interrupt = None
            else:
                skip = {c.tool_call_id for c in calls}
                state["calls"] = calls

        patched = patch_tool_calls(messages, skip=skip)
        if len(patched) != len(messages):
            logger.info("patched %d dangling tool call(s) in thread %s", len(patched) - len(messages), run.thread_id)
        state["messages"] = patched

        if interrupt is not None:
            run.token.raise_if_cancelled()
            await run.emit(AgentEventType.step_start, step=interrupt.step, resumed=True)
        return state

    async def _node_model(self, state: _GraphState) -> _GraphState:
        """Call the model once and record its answer."""
        run: _Run = state["ctx"]
        run.token.raise_if_cancelled()

        step_no = state["step"] + 1
        logger.debug("thread %s step %d: model call", run.thread_id or "-", step_no)
        await run.emit(AgentEventType.step_start, step=step_no)

        messages = list(state["messages"]) + list(state.get("pending_input") or [])
        state["pending_input"] = []
        messages = await self._maybe_summarize(run, messages)

        response = await self._call_model(run, messages)
        calls = list(response.tool_calls)
        messages.append(Message.assistant(response.text, calls))

        state["messages"] = messages
        state["calls"] = calls
        state["step_text"] = response.text
        state["step_usage"] = response.usage
        if response.usage is not None:
            state["usage"] = state.get("usage", Usage()) + response.usage

        for call in calls:
            await run.emit(
                AgentEventType.tool_call,
                tool_call_id=call.tool_call_id,
                tool_name=call.tool_name,
                args=dict(call.args),
            )

        if not calls:
            state["text"] = response.text
            await self._complete_step(state, step_no, [])
            state["finished"] = True
        return state

    async def _node_tools(self, state: _GraphState) -> _GraphState:
        """Dispatch the step's tool calls and close the step."""
        run: _Run = state["ctx"]
        interrupt = state.get("resume")
        decision = state.get("decision")
        state["resume"] = None
        state["decision"] = None

        step_no = interrupt.step if interrupt is not None else state["step"] + 1
        calls = list(state["calls"])
        results = await self._dispatch(state, calls, step_no, interrupt=interrupt, decision=decision)

        state["messages"] = list(state["messages"]) + results
        state["calls"] = []
        summary = [
            {"tool_name": call.tool_name, "args": dict(call.args), "result": result.content}
            for call, result in zip(calls, results)
        ]
        await self._complete_step(state, step_no, summary)
        return state

    async def _node_finish(self, state: _GraphState) -> _GraphState:
        """Finish node: parse structured output and emit ``done``."""
        run: _Run = state["ctx"]
        text = state.get("text") or state.get("step_text") or ""
        state["text"] = text
        state["output"] = self._parse_output(text)
        state["finished"] = True

        output = state["output"]
        await run.emit(
            AgentEventType.done,
            state=run.state.snapshot().model_dump(mode="json"),
            text=text,
            messages=[m.model_dump(mode="json") for m in state["messages"]],
            output=output.model_dump(mode="json") if output is not None else None,
            step=state["step"],
        )
        return state

    def _route_after_prepare(self, state: _GraphState) -> str:
        if state.get("resume") is not None:
            return "resume"
        if not state["messages"] and not state.get("pending_input"):
            return "finish"
        return "model"

    def _route_after_model(self, state: _GraphState) -> str:
        return "finish" if state.get("finished") else "tools"

    def _route_after_tools(self, state: _GraphState) -> str:
        run: _Run = state["ctx"]
        if state.get("finished"):
            return "finish"
        if state["step"] - run.start_step >= self._config.max_steps:
            logger.info("thread %s reached max_steps=%d", run.thread_id or "-", self._config.max_steps)
            return "finish"
        return "model"

    # ------------------------------------------------------------------
    # Model
    # ------------------------------------------------------------------

    def _system_prompt(self) -> str:
        prompt = self._config.system_prompt
        output_type = self._config.output_type
        if output_type is not None:
            schema = json.dumps(output_type.model_json_schema())
            prompt += (
                "\n\nWhen you give your final answer, respond with only a JSON object matching this schema:\n"
                f"{schema}"
            )
        return prompt

    async def _call_model(self, run: _Run, messages: List[Message]) -> ModelResponse:
        """Stream one model turn, retrying failures that happen before any output."""
        specs = self._deps.tools.specs()
        conversation = [Message.system(self._system_prompt())] + list(messages)
        attempt = 0
        while True:
            attempt += 1
            emitted = False
            parts: List[str] = []
            calls: List[ToolCall] = []
            usage: Optional[Usage] = None
            stream = self._deps.model.stream(conversation, specs, settings=self._config.model_settings)
            try:
                while True:
                    chunk = await run.token.race(_next_chunk(stream))
                    if chunk is None:
                        break
                    if chunk.kind == "text" and chunk.text:
                        emitted = True
                        parts.append(chunk.text)
                        await run.emit(AgentEventType.text, text=chunk.text)
                    elif chunk.kind == "tool-call" and chunk.tool_call is not None:
                        calls.append(chunk.tool_call)
                    elif chunk.kind == "finish":
                        usage = chunk.usage
                return ModelResponse(text="".join(parts), tool_calls=calls, usage=usage)
            except RunCancelled:
                raise
            except Exception as exc:
                if emitted or attempt > self._config.max_retries:
                    raise TransportError(f"Model call failed: {exc}", attempts=attempt) from exc
                delay = self._config.retry_backoff_seconds * attempt
                logger.warning(
                    "model call failed (attempt %d/%d): %s; retrying in %.1fs",
                    attempt,
                    self._config.max_retries + 1,
                    exc,
                    delay,
                )
                await run.token.race(asyncio.sleep(delay))
            finally:
                await _aclose(stream)

    async def _maybe_summarize(self, run: _Run, messages: List[Message]) -> List[Message]:
        cfg = self._config.summarization
        if cfg is None or not cfg.enabled:
            return messages
        result = await run.token.race(
            summarize_if_needed(
                messages,
                model=self._deps.summarization_model or self._deps.model,
                token_threshold=cfg.token_threshold,
                keep_messages=cfg.keep_messages,
            )
        )
        return result.messages

    def _parse_output(self, text: str) -> Optional[BaseModel]:
        output_type = self._config.output_type
        if output_type is None or not text.strip():
            return None
        try:
            return output_type.model_validate_json(_strip_code_fence(text))
        except ValidationError as exc:
            logger.warning("final answer is not a valid %s: %s", output_type.__name__, exc)
            return None

    # ------------------------------------------------------------------
    # Tool dispatch
    # ------------------------------------------------------------------

    @staticmethod
    def _unanswered_calls_of(messages: Sequence[Message], tool_call_id: str) -> Optional[List[ToolCall]]:
        """Unanswered calls of the assistant message that issued ``tool_call_id``."""
        answered = {m.tool_call_id for m in messages if m.role == MessageRole.tool}
        for msg in reversed(messages):
            if msg.role != MessageRole.assistant:
                continue
            if any(c.tool_call_id == tool_call_id for c in msg.tool_calls):
                if tool_call_id in answered:
                    return None
                return [c for c in msg.tool_calls if c.tool_call_id not in answered]
        return None

    async def _dispatch(
        self,
        state: _GraphState,
        calls: List[ToolCall],
        step_no: int,
        *,
        interrupt: Optional[PendingInterrupt] = None,
        decision: Optional[ResumeDecision] = None,
    ) -> List[Message]:
        run: _Run = state["ctx"]
        results: Dict[str, Message] = {}
        deferred: List[_Admitted] = []

        for call in calls:
            run.token.raise_if_cancelled()
            resumed = interrupt is not None and call.tool_call_id == interrupt.tool_call.tool_call_id
            early, admitted = await self._admit(
                state,
                call,
                step_no,
                [results[c.tool_call_id] for c in calls if c.tool_call_id in results],
                interrupt=interrupt if resumed else None,
                decision=decision if resumed else None,
            )
            if early is not None:
                results[call.tool_call_id] = early
                await self._emit_result(run, early)
            elif self._config.parallel_tool_calls:
                deferred.append(admitted)  # type: ignore[arg-type]
            else:
                results[call.tool_call_id] = await self._execute(run, step_no, *admitted)  # type: ignore[misc]

        if deferred:
            tasks = [asyncio.ensure_future(self._execute(run, step_no, *item)) for item in deferred]
            try:
                for msg in await asyncio.gather(*tasks):
                    results[msg.tool_call_id or ""] = msg
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()

        return [results[c.tool_call_id] for c in calls]

    async def _admit(
        self,
        state: _GraphState,
        call: ToolCall,
        step_no: int,
        completed: List[Message],
        *,
        interrupt: Optional[PendingInterrupt],
        decision: Optional[ResumeDecision],
    ) -> Tuple[Optional[Message], Optional[_Admitted]]:
        """Resolve lookup, validation and approval for one call.

        Returns either a final result message (the call will not run) or the
        validated call ready for execution.
        """
        run: _Run = state["ctx"]
        gate = self._deps.approval
        registry = self._deps.tools

        if not registry.has(call.tool_name):
            available = ", ".join(registry.names())
            return Message.tool_result(
                call,
                f"Error: tool '{call.tool_name}' is not available. Available tools: {available}",
                is_error=True,
            ), None
        tool = registry.get(call.tool_name)

        require_approval = interrupt is not None
        if interrupt is None:
            policy = await gate.decide(call)
            if policy.block:
                return Message.tool_result(call, f"Error: tool call blocked: {policy.block_reason}", is_error=True), None
            require_approval = policy.require_approval

        try:
            parsed = tool.validate_args(call.args)
        except ToolValidationError as exc:
            return Message.tool_result(call, f"Error: {exc}", is_error=True), None

        if require_approval:
            pending = interrupt or PendingInterrupt(tool_call=call, step=step_no)
            if interrupt is None:
                await self._save_checkpoint(
                    run, list(state["messages"]) + completed, state["step"], interrupt=pending
                )
            outcome = await run.token.race(
                gate.request(call, run.emit, approval_id=pending.approval_id, decision=decision)
            )
            if not outcome.approved:
                return Message.tool_result(call, denial_message(call.tool_name, outcome.reason), is_error=True), None

        return None, (call, tool, parsed)

    async def _execute(self, run: _Run, step_no: int, call: ToolCall, tool: ToolDefinition, parsed: BaseModel) -> Message:
        ctx = ToolContext(
            state=run.state,
            backend=run.backend,
            emit=run.emit,
            cancel=run.token,
            tool_call_id=call.tool_call_id,
            step=step_no,
            runtime=self,
        )
        try:
            output = await run.token.race(tool.execute(ctx, parsed))
        except RunCancelled:
            raise
        except ToolValidationError as exc:
            content, is_error = f"Error: {exc}", True
        except Exception as exc:
            logger.exception("tool %s (%s) raised", call.tool_name, call.tool_call_id)
            content, is_error = str(ToolExecutionError(call.tool_name, exc)), True
        else:
            content, is_error = output.content, output.is_error

        content = await self._maybe_evict(run, call, content)
        msg = Message.tool_result(call, content, is_error=is_error)
        await self._emit_result(run, msg)
        return msg

    async def _maybe_evict(self, run: _Run, call: ToolCall, content: str) -> str:
        limit = self._config.tool_result_eviction_limit
        if not limit:
            return content
        # Re-reading an evicted result must not evict it again.
        if call.tool_name == "read_file" and str(call.args.get("file_path", "")).startswith(EVICTION_DIR):
            return content
        result = await evict_tool_result(
            result=content,
            tool_call_id=call.tool_call_id,
            tool_name=call.tool_name,
            backend=run.backend,
            token_limit=limit,
        )
        return result.content

    @staticmethod
    async def _emit_result(run: _Run, msg: Message) -> None:
        await run.emit(
            AgentEventType.tool_result,
            tool_call_id=msg.tool_call_id,
            tool_name=msg.tool_name,
            result=msg.content,
            is_error=msg.is_error,
        )

    async def _complete_step(self, state: _GraphState, step_no: int, tool_calls: List[Dict[str, Any]]) -> None:
        run: _Run = state["ctx"]
        usage = state.get("step_usage")
        await run.emit(
            AgentEventType.step_finish,
            step=step_no,
            tool_calls=tool_calls,
            usage=usage.model_dump() if usage is not None else None,
        )
        state["step"] = step_no
        await self._save_checkpoint(run, state["messages"], step_no)

        summary = StepSummary(step=step_no, text=state.get("step_text", ""), tool_calls=tool_calls, usage=usage)
        if any(cond(summary) for cond in self._config.stop_when):
            logger.debug("stop condition met after step %d", step_no)
            state["finished"] = True

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    async def _save_checkpoint(
        self,
        run: _Run,
        messages: List[Message],
        step: int,
        *,
        interrupt: Optional[PendingInterrupt] = None,
    ) -> None:
        saver = self._deps.checkpointer
        if saver is None or not run.thread_id:
            return
        cp = Checkpoint(
            thread_id=run.thread_id,
            step=step,
            messages=list(messages),
            state=run.state.snapshot(),
            interrupt=interrupt,
        )
        try:
            await saver.save(cp)
        except Exception as exc:
            logger.warning("failed to save checkpoint for thread %s: %s", run.thread_id, exc)
            await run.emit(
                AgentEventType.checkpoint_error, thread_id=run.thread_id, step=step, operation="save", error=str(exc)
            )
            return
        await run.emit(
            AgentEventType.checkpoint_saved,
            thread_id=run.thread_id,
            step=step,
            messages_count=len(messages),
            interrupted=interrupt is not None,
        )

    async def _load_checkpoint(self, run: _Run) -> Optional[Checkpoint]:
        saver = self._deps.checkpointer
        if saver is None or not run.thread_id:
            return None
        try:
            cp = await saver.load(run.thread_id)
        except Exception as exc:
            logger.warning("failed to load checkpoint for thread %s: %s", run.thread_id, exc)
            await run.emit(
                AgentEventType.checkpoint_error, thread_id=run.thread_id, step=None, operation="load", error=str(exc)
            )
            return None
        if cp is not None:
            await run.emit(
                AgentEventType.checkpoint_loaded,
                thread_id=run.thread_id,
                step=cp.step,
                messages_count=len(cp.messages),
                interrupted=cp.interrupt is not None,
            )
        return cp
