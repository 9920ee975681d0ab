"""Repair of unanswered tool calls in history.

Every tool call must have exactly one result before the next model call.
Calls left dangling (a process died mid-call, or a new message arrived before
an approval was answered) receive a synthetic cancellation result placed
right after the assistant message that issued them.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Set

from ..schemas.messages import Message, MessageRole, ToolCall


def cancellation_message(call: ToolCall) -> Message:
    return Message.tool_result(
        call,
        f"Tool call {call.tool_name} with id {call.tool_call_id} was cancelled - "
        "another message came in before it could be completed.",
        is_error=True,
    )


def _answered_ids(messages: Sequence[Message]) -> Set[str]:
    return {m.tool_call_id for m in messages if m.role == MessageRole.tool and m.tool_call_id}


def dangling_tool_calls(messages: Sequence[Message], *, skip: Optional[Set[str]] = None) -> List[ToolCall]:
    answered = _answered_ids(messages)
    skip = skip or set()
    return [
        call
        for m in messages
        if m.role == MessageRole.assistant
        for call in m.tool_calls
        if call.tool_call_id not in answered and call.tool_call_id not in skip
    ]


def has_dangling_tool_calls(messages: Sequence[Message]) -> bool:
    return bool(dangling_tool_calls(messages))


def patch_tool_calls(messages: Sequence[Message], *, skip: Optional[Set[str]] = None) -> List[Message]:
    """Return a copy of ``messages`` where every tool call has a result.

    Call ids in ``skip`` are left unanswered.
    """
    answered = _answered_ids(messages)
    skip = skip or set()
    patched: List[Message] = []
    for msg in messages:
        patched.append(msg)
        if msg.role != MessageRole.assistant:
            continue
        missing = [c for c in msg.tool_calls if c.tool_call_id not in answered and c.tool_call_id not in skip]
        if not missing:
            continue
        patched.extend(cancellation_message(c) for c in missing)
    return _reorder_results(patched)


def _reorder_results(messages: List[Message]) -> List[Message]:
    """Place each assistant message's results directly after it, in call order."""
    by_id = {m.tool_call_id: m for m in messages if m.role == MessageRole.tool and m.tool_call_id}
    issued = {c.tool_call_id for m in messages if m.role == MessageRole.assistant for c in m.tool_calls}
    ordered: List[Message] = []
    for msg in messages:
        if msg.role == MessageRole.tool and msg.tool_call_id in issued:
            continue
        ordered.append(msg)
        if msg.role == MessageRole.assistant:
            ordered.extend(by_id[c.tool_call_id] for c in msg.tool_calls if c.tool_call_id in by_id)
    return ordered
