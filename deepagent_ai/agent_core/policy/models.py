from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union
from uuid import uuid4

from pydantic import Field

from ..schemas.base import BaseSchema
from ..schemas.domain import ResumeDecision

ShouldApprove = Callable[[Dict[str, Any]], Union[bool, Awaitable[bool]]]


@dataclass(frozen=True)
class DynamicApproval:
    """Approval rule whose outcome depends on the call arguments.

    ``should_approve(args)`` returning True means the call must pause for a
    decision. Without a predicate every call of the tool is guarded.
    """

    should_approve: Optional[ShouldApprove] = None


# Per tool name: True/False, a DynamicApproval, or a bare predicate.
ToolPolicy = Union[bool, DynamicApproval, ShouldApprove]


class SafetyPolicy(BaseSchema):
    """
    Guardrails applied to every tool call before dispatch.

    Oversized argument payloads are rejected as validation errors and handed
    back to the model instead of being executed.
    """

    max_tool_args_bytes: int = Field(default=64_000, ge=1, le=5_000_000)


class PolicyDecision(BaseSchema):
    require_approval: bool = False
    block: bool = False
    block_reason: Optional[str] = None


class ApprovalRequest(BaseSchema):
    """Payload handed to the host's approval callback."""

    approval_id: str = Field(default_factory=lambda: str(uuid4()))
    tool_call_id: str
    tool_name: str
    args: Dict[str, Any] = Field(default_factory=dict)


class ApprovalOutcome(BaseSchema):
    approval_id: str
    approved: bool
    reason: Optional[str] = None


ApprovalDecisionLike = Union[bool, ResumeDecision]
ApprovalCallback = Callable[[ApprovalRequest], Union[ApprovalDecisionLike, Awaitable[ApprovalDecisionLike]]]
