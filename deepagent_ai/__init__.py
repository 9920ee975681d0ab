"""deepagent-ai: a resumable, approval-gated agent step loop with a virtual filesystem."""

__version__ = "0.1.0"
