from .approval import ApprovalGate, denial_message
from .models import (
    ApprovalCallback,
    ApprovalOutcome,
    ApprovalRequest,
    DynamicApproval,
    PolicyDecision,
    SafetyPolicy,
    ToolPolicy,
)

__all__ = [
    "ApprovalCallback",
    "ApprovalGate",
    "ApprovalOutcome",
    "ApprovalRequest",
    "DynamicApproval",
    "PolicyDecision",
    "SafetyPolicy",
    "ToolPolicy",
    "denial_message",
]
