from __future__ import annotations

"""Error taxonomy for the agent core.

Only ``TransportError`` (after retries) and ``RunCancelled`` end a run; the
rest are converted into tool results or events at the boundary where they are
caught.
"""


class DeepAgentError(Exception):
    """Base class for all errors raised by deepagent-ai."""


class ToolValidationError(DeepAgentError):
    """Tool arguments failed schema or safety validation."""

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(f"invalid arguments for tool '{tool_name}': {message}")
        self.tool_name = tool_name


class ToolExecutionError(DeepAgentError):
    """A tool handler raised while executing."""

    def __init__(self, tool_name: str, cause: BaseException) -> None:
        super().__init__(f"Error executing tool '{tool_name}': {cause}")
        self.tool_name = tool_name
        self.cause = cause


class TransportError(DeepAgentError):
    """The model provider call failed."""

    def __init__(self, message: str, *, attempts: int = 1) -> None:
        super().__init__(message)
        self.attempts = attempts


class PersistenceError(DeepAgentError):
    """A checkpoint could not be saved or loaded."""


class BackendError(DeepAgentError):
    """A backend operation failed in a way that is not expressible as a result value."""


class RunCancelled(DeepAgentError):
    """The shared cancellation signal was observed at a suspension point."""

    def __init__(self, message: str = "Run cancelled") -> None:
        super().__init__(message)
