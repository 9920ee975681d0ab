from __future__ import annotations

"""Approval gate.

Per tool call the gate resolves one of:

- Unguarded: no policy for the tool (or ``False``); execute immediately.
- Guarded, not required: the policy predicate returned False; execute.
- PendingApproval: emit ``approval-requested`` and ask the host callback.
  The decision is emitted as ``approval-response``. Without a callback the
  call is denied and a deterministic denial text becomes the tool result, so
  a guarded tool can never hang the run.

The policy is a map keyed by tool name consulted at call time; tool
definitions are never mutated.
"""

import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from ..schemas.domain import ResumeDecision, ResumeDecisionType
from ..schemas.events import AgentEventType
from ..schemas.messages import ToolCall
from .models import (
    ApprovalCallback,
    ApprovalOutcome,
    ApprovalRequest,
    DynamicApproval,
    PolicyDecision,
    SafetyPolicy,
    ToolPolicy,
)

logger = logging.getLogger(__name__)

Emit = Callable[..., Awaitable[None]]


def denial_message(tool_name: str, reason: Optional[str] = None) -> str:
    text = f"Tool execution denied: the user did not approve the '{tool_name}' call."
    if reason:
        text += f" Reason: {reason}"
    return text + " Do not retry the same call; choose a different approach or ask the user."


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class ApprovalGate:
    """Resolve approval requirements for tool calls."""

    def __init__(
        self,
        interrupt_on: Optional[Mapping[str, ToolPolicy]] = None,
        *,
        on_approval: Optional[ApprovalCallback] = None,
        safety: Optional[SafetyPolicy] = None,
    ) -> None:
        self._policies: Dict[str, ToolPolicy] = dict(interrupt_on or {})
        self._on_approval = on_approval
        self._safety = safety or SafetyPolicy()

    @property
    def has_callback(self) -> bool:
        return self._on_approval is not None

    @property
    def policies(self) -> Dict[str, ToolPolicy]:
        return dict(self._policies)

    def with_policies(self, interrupt_on: Optional[Mapping[str, ToolPolicy]]) -> "ApprovalGate":
        """Return a gate with different policies but the same callback and safety limits."""
        return ApprovalGate(interrupt_on, on_approval=self._on_approval, safety=self._safety)

    def is_guarded(self, tool_name: str) -> bool:
        policy = self._policies.get(tool_name)
        return policy is not None and policy is not False

    async def requires_approval(self, tool_name: str, args: Dict[str, Any]) -> bool:
        policy = self._policies.get(tool_name)
        if policy is None or policy is False:
            return False
        if policy is True:
            return True
        predicate = policy.should_approve if isinstance(policy, DynamicApproval) else policy
        if predicate is None:
            return True
        try:
            return bool(await _maybe_await(predicate(dict(args))))
        except Exception:
            # Fail closed: an unevaluable rule still pauses the call.
            logger.exception("approval predicate for %s raised; requiring approval", tool_name)
            return True

    async def decide(self, call: ToolCall) -> PolicyDecision:
        """
        Compute the policy decision for a tool call.

        Args:
            call: The requested tool call.

        Returns:
            ``PolicyDecision`` with ``block`` set for safety violations and
            ``require_approval`` set for guarded calls.
        """
        size = len(json.dumps(call.args, ensure_ascii=False, default=str).encode("utf-8"))
        if size > self._safety.max_tool_args_bytes:
            return PolicyDecision(
                block=True,
                block_reason=f"tool args too large ({size} bytes > {self._safety.max_tool_args_bytes})",
            )
        return PolicyDecision(require_approval=await self.requires_approval(call.tool_name, call.args))

    async def request(
        self,
        call: ToolCall,
        emit: Emit,
        *,
        approval_id: Optional[str] = None,
        decision: Optional[ResumeDecision] = None,
    ) -> ApprovalOutcome:
        """
        Run the PendingApproval state for ``call``.

        ``decision`` short-circuits the callback (used when resuming a
        recorded interrupt with an explicit decision).
        """
        extra = {"approval_id": approval_id} if approval_id else {}
        req = ApprovalRequest(tool_call_id=call.tool_call_id, tool_name=call.tool_name, args=dict(call.args), **extra)
        await emit(AgentEventType.approval_requested, **req.model_dump())

        reason: Optional[str] = None
        if decision is not None:
            approved = decision.type == ResumeDecisionType.approve
            reason = decision.reason
        elif self._on_approval is None:
            approved = False
            reason = "no approval callback configured"
        else:
            raw = await _maybe_await(self._on_approval(req))
            if isinstance(raw, ResumeDecision):
                approved = raw.type == ResumeDecisionType.approve
                reason = raw.reason
            else:
                approved = bool(raw)

        logger.debug("approval %s for %s: approved=%s", req.approval_id, call.tool_name, approved)
        await emit(AgentEventType.approval_response, approval_id=req.approval_id, approved=approved)
        return ApprovalOutcome(approval_id=req.approval_id, approved=approved, reason=reason)
