from __future__ import annotations

from typing import Any, Dict, List, Tuple

import pytest

from deepagent_ai.agent_core.policy import ApprovalGate, DynamicApproval, SafetyPolicy
from deepagent_ai.agent_core.policy.approval import denial_message
from deepagent_ai.agent_core.policy.models import ApprovalRequest
from deepagent_ai.agent_core.schemas.domain import ResumeDecision, ResumeDecisionType
from deepagent_ai.agent_core.schemas.events import AgentEventType
from deepagent_ai.agent_core.schemas.messages import ToolCall


class _Recorder:
    def __init__(self) -> None:
        self.events: List[Tuple[AgentEventType, Dict[str, Any]]] = []

    async def __call__(self, type: AgentEventType, **payload: Any) -> None:
        self.events.append((type, payload))


def _call(name: str = "execute", **args: Any) -> ToolCall:
    return ToolCall(tool_call_id="c1", tool_name=name, args=args)


@pytest.mark.asyncio
async def test_unguarded_tools_do_not_require_approval() -> None:
    gate = ApprovalGate({"write_file": False})
    assert await gate.requires_approval("ls", {}) is False
    assert await gate.requires_approval("write_file", {}) is False
    assert gate.is_guarded("write_file") is False

    decision = await gate.decide(_call("ls"))
    assert decision.require_approval is False and decision.block is False


@pytest.mark.asyncio
async def test_static_and_dynamic_policies() -> None:
    async def only_rm(args: Dict[str, Any]) -> bool:
        return "rm" in args.get("command", "")

    gate = ApprovalGate(
        {
            "write_file": True,
            "execute": DynamicApproval(should_approve=only_rm),
            "edit_file": lambda args: args.get("file_path", "").startswith("/etc"),
            "grep": DynamicApproval(),
        }
    )
    assert await gate.requires_approval("write_file", {}) is True
    assert await gate.requires_approval("execute", {"command": "rm -rf /"}) is True
    assert await gate.requires_approval("execute", {"command": "ls"}) is False
    assert await gate.requires_approval("edit_file", {"file_path": "/etc/hosts"}) is True
    assert await gate.requires_approval("edit_file", {"file_path": "/tmp/x"}) is False
    assert await gate.requires_approval("grep", {}) is True


@pytest.mark.asyncio
async def test_raising_predicate_requires_approval() -> None:
    def broken(args: Dict[str, Any]) -> bool:
        raise ValueError("bad rule")

    gate = ApprovalGate({"execute": broken})
    assert await gate.requires_approval("execute", {"command": "ls"}) is True


@pytest.mark.asyncio
async def test_oversized_arguments_are_blocked() -> None:
    gate = ApprovalGate(safety=SafetyPolicy(max_tool_args_bytes=20))
    decision = await gate.decide(_call("write_file", content="x" * 100))
    assert decision.block is True
    assert "too large" in (decision.block_reason or "")


@pytest.mark.asyncio
async def test_request_without_callback_denies() -> None:
    rec = _Recorder()
    outcome = await ApprovalGate({"execute": True}).request(_call(command="ls"), rec)

    assert outcome.approved is False
    assert outcome.reason == "no approval callback configured"
    assert [t for t, _ in rec.events] == [AgentEventType.approval_requested, AgentEventType.approval_response]
    requested = rec.events[0][1]
    assert requested["tool_name"] == "execute" and requested["args"] == {"command": "ls"}
    assert rec.events[1][1] == {"approval_id": outcome.approval_id, "approved": False}


@pytest.mark.asyncio
async def test_request_uses_sync_and_async_callbacks() -> None:
    seen: List[ApprovalRequest] = []

    def approve(req: ApprovalRequest) -> bool:
        seen.append(req)
        return True

    async def deny(req: ApprovalRequest) -> ResumeDecision:
        return ResumeDecision(type=ResumeDecisionType.deny, reason="not today")

    rec = _Recorder()
    ok = await ApprovalGate({"execute": True}, on_approval=approve).request(_call(), rec, approval_id="ap-1")
    assert ok.approved is True and ok.approval_id == "ap-1"
    assert seen[0].tool_call_id == "c1"

    no = await ApprovalGate({"execute": True}, on_approval=deny).request(_call(), rec)
    assert no.approved is False and no.reason == "not today"


@pytest.mark.asyncio
async def test_explicit_decision_short_circuits_callback() -> None:
    def never(req: ApprovalRequest) -> bool:
        raise AssertionError("callback must not run")

    gate = ApprovalGate({"execute": True}, on_approval=never)
    outcome = await gate.request(
        _call(), _Recorder(), decision=ResumeDecision(type=ResumeDecisionType.approve)
    )
    assert outcome.approved is True


def test_with_policies_keeps_callback_and_safety() -> None:
    def approve(req: ApprovalRequest) -> bool:
        return True

    gate = ApprovalGate({"execute": True}, on_approval=approve, safety=SafetyPolicy(max_tool_args_bytes=10))
    child = gate.with_policies({"write_file": True})
    assert child.has_callback is True
    assert child.policies == {"write_file": True}
    assert gate.policies == {"execute": True}


def test_denial_message_mentions_tool_and_reason() -> None:
    text = denial_message("execute", "too risky")
    assert "'execute'" in text
    assert "Reason: too risky" in text
    assert "Reason" not in denial_message("execute")
